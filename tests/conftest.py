"""
Test fixtures for Chaosplane.

Provides:
- Settings pointing at a per-test datastore file
- An opened RecordStore
- A started ServiceRegistry (executor bundles loaded, in-process workers stopped on teardown)
- REST and RPC clients over httpx ASGITransport
"""

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from chaosplane.config import BUNDLED_SPEC_DIR, Settings
from chaosplane.db.store import RecordStore
from chaosplane.main import create_app
from chaosplane.rpc.server import create_rpc_app
from chaosplane.services.registry import ServiceRegistry

AUTH_TOKEN = "s3cret-token"


# ============================================================================
# SETTINGS / STORE
# ============================================================================


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        datafile_path=str(tmp_path / "chaosblade.dat"),
        spec_dir=str(BUNDLED_SPEC_DIR),
        os_exec_bin="true",
        jvm_sandbox_home=str(tmp_path / "sandbox"),
        auth_token="",
        log_level="WARNING",
    )


@pytest_asyncio.fixture
async def store(tmp_path) -> AsyncGenerator[RecordStore, None]:
    record_store = RecordStore(tmp_path / "store.dat")
    await record_store.open()
    yield record_store
    await record_store.close()


# ============================================================================
# SERVICES
# ============================================================================


@pytest_asyncio.fixture
async def services(settings) -> AsyncGenerator[ServiceRegistry, None]:
    registry = ServiceRegistry(settings)
    await registry.start()
    yield registry
    await registry.stop()


@pytest_asyncio.fixture
async def client(services, settings) -> AsyncGenerator[AsyncClient, None]:
    app = create_app(services, settings)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c


@pytest_asyncio.fixture
async def auth_services(settings) -> AsyncGenerator[ServiceRegistry, None]:
    registry = ServiceRegistry(settings.model_copy(update={"auth_token": AUTH_TOKEN}))
    await registry.start()
    yield registry
    await registry.stop()


@pytest_asyncio.fixture
async def auth_client(auth_services) -> AsyncGenerator[AsyncClient, None]:
    app = create_app(auth_services)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c


@pytest_asyncio.fixture
async def rpc_client(services, settings) -> AsyncGenerator[AsyncClient, None]:
    app = create_rpc_app(services, settings)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
