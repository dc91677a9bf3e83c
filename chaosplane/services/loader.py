"""
Executor bundle loader.

A bundle is a YAML document naming the executor that serves it and the
command models it exposes:

    executor: os
    models:
      - target: os
        scope: host
        actions:
          - action: load
            flags: [cpu-percent]

Every action is registered under ``(parent, name, action)`` where ``name`` is
the model target, glued as ``scope-target`` for scopes other than
host/docker/cri.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Union

import structlog
import yaml

from chaosplane.executors.base import Executor
from chaosplane.executors.channel import LocalChannel
from chaosplane.services.dispatcher import Dispatcher

logger = structlog.get_logger(__name__)

UNGLUED_SCOPES = frozenset({"", "host", "docker", "cri"})

OS_BUNDLE = "os.yaml"
JVM_BUNDLE = "jvm.yaml"
CRI_BUNDLE = "cri.yaml"
CRI_PARENT = "cri"


class BundleError(Exception):
    """An executor bundle is missing or malformed."""


@dataclass
class ActionSpec:
    action: str
    flags: list[str] = field(default_factory=list)


@dataclass
class ModelSpec:
    target: str
    scope: str = ""
    actions: list[ActionSpec] = field(default_factory=list)

    @property
    def command_name(self) -> str:
        if self.scope not in UNGLUED_SCOPES:
            return f"{self.scope}-{self.target}"
        return self.target


@dataclass
class Bundle:
    executor: str
    models: list[ModelSpec]


def parse_bundle(path: Union[str, Path]) -> Bundle:
    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as fh:
            raw = yaml.safe_load(fh)
    except OSError as exc:
        raise BundleError(f"cannot read bundle {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise BundleError(f"invalid yaml in bundle {path}: {exc}") from exc

    if not isinstance(raw, dict) or not isinstance(raw.get("models"), list):
        raise BundleError(f"bundle {path} must be a mapping with a 'models' list")

    models = []
    for entry in raw["models"]:
        if not isinstance(entry, dict) or not entry.get("target"):
            raise BundleError(f"bundle {path}: every model needs a target")
        actions = []
        for action in entry.get("actions") or []:
            if not isinstance(action, dict) or not action.get("action"):
                raise BundleError(f"bundle {path}: model {entry['target']} has an action without a name")
            actions.append(ActionSpec(action=str(action["action"]), flags=[str(f) for f in action.get("flags") or []]))
        models.append(ModelSpec(target=str(entry["target"]), scope=str(entry.get("scope") or ""), actions=actions))
    return Bundle(executor=str(raw.get("executor") or ""), models=models)


def register_bundle(dispatcher: Dispatcher, parent: str, bundle: Bundle, executor: Executor) -> int:
    """Bind ``executor`` to every action in ``bundle``. Returns the number of bindings."""
    count = 0
    for model in bundle.models:
        for action in model.actions:
            executor.set_channel(LocalChannel())
            dispatcher.register(parent, model.command_name, action.action, executor)
            count += 1
    return count


def load_default_executors(
    dispatcher: Dispatcher,
    spec_dir: Union[str, Path],
    executors: Mapping[str, Executor],
) -> int:
    """Load the os, jvm and cri bundles from ``spec_dir``.

    ``executors`` maps executor names (``os``, ``jvm``, ``cri``) to instances.
    JVM actions are registered a second time under the ``cri`` parent, bound
    to the CRI executor, so ``cri jvm <action>`` runs inside a container.
    """
    spec_dir = Path(spec_dir)
    jvm_bundle = parse_bundle(spec_dir / JVM_BUNDLE)
    plan = [
        ("", parse_bundle(spec_dir / OS_BUNDLE), ""),
        ("", jvm_bundle, ""),
        (CRI_PARENT, parse_bundle(spec_dir / CRI_BUNDLE), ""),
        (CRI_PARENT, jvm_bundle, "cri"),
    ]

    total = 0
    for parent, bundle, override in plan:
        name = override or bundle.executor
        executor = executors.get(name)
        if executor is None:
            raise BundleError(f"no executor named {name!r} for bundle")
        total += register_bundle(dispatcher, parent, bundle, executor)
    logger.info("executors_loaded", bindings=total, spec_dir=str(spec_dir))
    return total
