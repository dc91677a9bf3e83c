"""Executors: the components that perform an injection or its teardown."""

from chaosplane.executors.base import ExecContext, Executor, ExpModel, Intent, invoke

__all__ = ["ExecContext", "Executor", "ExpModel", "Intent", "invoke"]
