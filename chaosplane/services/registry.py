"""
Service Registry: wiring for the control plane.

Everything with process lifetime (record store, executor registry, the
in-process worker pool) is created here once and handed to the services
explicitly.

Usage:
    services = ServiceRegistry(settings)
    await services.start()      # open store + migrate, load executor bundles
    ...
    await services.stop()       # stop in-process workers, close store
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

import structlog

from chaosplane.config import Settings
from chaosplane.db.datafile import resolve_datafile
from chaosplane.db.store import RecordStore
from chaosplane.executors.cri import CriExecutor
from chaosplane.executors.host import CpuLoadPool, OsExecutor
from chaosplane.executors.jvm import JvmAttacher, JvmExecutor, SandboxClient
from chaosplane.services.dispatcher import Dispatcher
from chaosplane.services.experiment import ExperimentService
from chaosplane.services.loader import load_default_executors
from chaosplane.services.preparation import PreparationService

logger = structlog.get_logger(__name__)


@dataclass
class ServiceRegistry:
    settings: Settings
    store: Optional[RecordStore] = None
    dispatcher: Dispatcher = field(default_factory=Dispatcher)
    pool: CpuLoadPool = field(default_factory=CpuLoadPool)

    def __post_init__(self):
        if self.store is None:
            self.store = RecordStore(resolve_datafile(self.settings.datafile_path or None))

        sandbox = SandboxClient(
            namespace=self.settings.jvm_sandbox_namespace,
            timeout=self.settings.jvm_sandbox_timeout_seconds,
        )
        self.os_executor = OsExecutor(exec_bin=self.settings.os_exec_bin, pool=self.pool)
        self.jvm_executor = JvmExecutor(self.store, sandbox)
        self.cri_executor = CriExecutor(self.dispatcher)
        self.attacher = JvmAttacher(
            self.store,
            sandbox,
            sandbox_home=self.settings.jvm_sandbox_home,
            timeout=self.settings.jvm_sandbox_timeout_seconds,
        )
        self.experiments = ExperimentService(self.store, self.dispatcher)
        self.preparations = PreparationService(self.store, self.attacher)
        self._started = False

    @property
    def executors(self) -> dict:
        return {
            self.os_executor.name: self.os_executor,
            self.jvm_executor.name: self.jvm_executor,
            self.cri_executor.name: self.cri_executor,
        }

    async def start(self) -> None:
        """Open the store (MigrationError propagates) and load executor bundles."""
        if self._started:
            return
        await self.store.open()
        load_default_executors(self.dispatcher, self.settings.spec_dir, self.executors)
        self._started = True
        logger.info("services_started", executors=len(self.dispatcher))

    async def stop(self) -> None:
        self.pool.stop_all(timeout=1.0)
        await self.store.close()
        self._started = False
        logger.info("services_stopped")
