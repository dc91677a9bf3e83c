"""
Tests for the executor registry and bundle loader.

Covers:
- executor key derivation
- register / get / None ignored / overwrite
- dispatch routing, destroy intent, missing executor
- bundle loading: scope gluing, cri re-registration of jvm actions
"""

import pytest

from chaosplane.config import BUNDLED_SPEC_DIR
from chaosplane.errors import ChaosError, ErrorKind, Response
from chaosplane.executors.base import ExecContext, Executor, ExpModel, Intent
from chaosplane.services.dispatcher import Dispatcher, ExecutionRequest, executor_key
from chaosplane.services.loader import BundleError, load_default_executors, parse_bundle, register_bundle


class RecordingExecutor(Executor):
    def __init__(self, name: str = "fake"):
        super().__init__()
        self._name = name
        self.calls: list[tuple[str, ExecContext, ExpModel]] = []

    @property
    def name(self) -> str:
        return self._name

    async def exec(self, uid: str, ctx: ExecContext, model: ExpModel) -> Response:
        self.calls.append((uid, ctx, model))
        return Response.ok(uid)


class TestExecutorKey:
    def test_joins_non_empty_parts(self):
        assert executor_key("", "os", "load") == "os-load"
        assert executor_key("cri", "jvm", "delay") == "cri-jvm-delay"
        assert executor_key("cri", "", "") == "cri"


class TestRegistry:
    def test_register_then_get(self):
        dispatcher = Dispatcher()
        executor = RecordingExecutor()
        dispatcher.register("", "os", "load", executor)
        assert dispatcher.get("", "os", "load") is executor

    def test_none_is_ignored(self):
        dispatcher = Dispatcher()
        executor = RecordingExecutor()
        dispatcher.register("", "os", "load", executor)
        dispatcher.register("", "os", "load", None)
        assert dispatcher.get("", "os", "load") is executor
        dispatcher.register("", "cpu", "fullload", None)
        assert dispatcher.get("", "cpu", "fullload") is None

    def test_overwrite(self):
        dispatcher = Dispatcher()
        first, second = RecordingExecutor("a"), RecordingExecutor("b")
        dispatcher.register("", "os", "load", first)
        dispatcher.register("", "os", "load", second)
        assert dispatcher.get("", "os", "load") is second
        assert len(dispatcher) == 1


class TestDispatch:
    @pytest.mark.asyncio
    async def test_create_intent(self):
        dispatcher = Dispatcher()
        executor = RecordingExecutor()
        dispatcher.register("", "os", "load", executor)

        resp = await dispatcher.dispatch(ExecutionRequest(scope="", target="os", action="load", uid="u1"))
        assert resp.success
        uid, ctx, model = executor.calls[0]
        assert uid == "u1"
        assert ctx.intent is Intent.CREATE
        assert not ctx.is_destroy("u1")
        assert (model.target, model.action) == ("os", "load")

    @pytest.mark.asyncio
    async def test_destroy_intent_carries_uid(self):
        dispatcher = Dispatcher()
        executor = RecordingExecutor()
        dispatcher.register("", "os", "load", executor)

        await dispatcher.dispatch(ExecutionRequest(scope="", target="os", action="load", uid="u2", destroy=True))
        _, ctx, _ = executor.calls[0]
        assert ctx.is_destroy("u2")
        assert not ctx.is_destroy("other")

    @pytest.mark.asyncio
    async def test_missing_executor(self):
        with pytest.raises(ChaosError) as exc_info:
            await Dispatcher().dispatch(ExecutionRequest(scope="", target="nope", action="x", uid="u3"))
        assert exc_info.value.kind is ErrorKind.HANDLER_EXEC_NOT_FOUND
        assert exc_info.value.code == 47000


class TestLoader:
    def test_default_bundles(self):
        dispatcher = Dispatcher()
        executors = {name: RecordingExecutor(name) for name in ("os", "jvm", "cri")}
        total = load_default_executors(dispatcher, BUNDLED_SPEC_DIR, executors)

        assert total > 0
        assert dispatcher.get("", "os", "load") is executors["os"]
        assert dispatcher.get("", "jvm", "delay") is executors["jvm"]
        assert dispatcher.get("cri", "jvm", "delay") is executors["cri"]
        assert dispatcher.get("cri", "cpu", "fullload") is executors["cri"]
        assert dispatcher.get("", "cpu", "fullload") is executors["os"]
        assert executors["os"].channel is not None

    def test_foreign_scope_is_glued(self, tmp_path):
        bundle_file = tmp_path / "k8s.yaml"
        bundle_file.write_text(
            "executor: os\n"
            "models:\n"
            "  - target: pod\n"
            "    scope: k8s\n"
            "    actions:\n"
            "      - action: delete\n"
            "  - target: node\n"
            "    scope: docker\n"
            "    actions:\n"
            "      - action: stop\n"
        )
        dispatcher = Dispatcher()
        executor = RecordingExecutor()
        assert register_bundle(dispatcher, "", parse_bundle(bundle_file), executor) == 2
        assert dispatcher.keys() == ["k8s-pod-delete", "node-stop"]

    def test_missing_bundle(self, tmp_path):
        with pytest.raises(BundleError):
            parse_bundle(tmp_path / "absent.yaml")

    def test_malformed_bundle(self, tmp_path):
        bundle_file = tmp_path / "bad.yaml"
        bundle_file.write_text("executor: os\nmodels: nope\n")
        with pytest.raises(BundleError):
            parse_bundle(bundle_file)

    def test_unknown_executor_name(self):
        with pytest.raises(BundleError):
            load_default_executors(Dispatcher(), BUNDLED_SPEC_DIR, {"os": RecordingExecutor("os")})
