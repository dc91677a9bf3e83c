"""
Tests for the Preparation Service and the JVM sandbox attacher.
"""

import pytest

from chaosplane.db.models import PreparationRecord
from chaosplane.errors import ChaosError, ErrorKind, Response
from chaosplane.executors.channel import Channel
from chaosplane.executors.jvm import JvmAttacher, SandboxClient
from chaosplane.services.preparation import PreparationService, PrepareRequest, RevokeRequest


class FakeChannel(Channel):
    def __init__(self, *responses: Response):
        self.responses = list(responses)
        self.calls: list[tuple[str, list[str], dict]] = []

    async def run(self, command, args=(), timeout=None, env=None):
        self.calls.append((command, list(args), dict(env or {})))
        return self.responses.pop(0) if self.responses else Response.ok("")


class FakeAttacher:
    def __init__(self, store, revoke_response: Response = None):
        self.store = store
        self.revoke_response = revoke_response or Response.ok("shutdown")
        self.prepared: list[dict] = []

    async def prepare(self, **kwargs) -> Response:
        self.prepared.append(kwargs)
        await self.store.insert_preparation(
            PreparationRecord(uid=kwargs["uid"], program_type="jvm", process=kwargs["process"],
                              pid=kwargs["pid"], port="", status="Running", error="")
        )
        return Response.ok(kwargs["uid"])

    async def revoke(self, record) -> Response:
        return self.revoke_response


async def running(store, uid: str = "prep-1") -> PreparationRecord:
    return await store.insert_preparation(
        PreparationRecord(uid=uid, program_type="jvm", process="app", pid="42", port="8080",
                          status="Running", error="")
    )


# ── Prepare ───────────────────────────────────────────────────────────


class TestPrepare:
    @pytest.mark.asyncio
    async def test_unsupported_type(self, store):
        service = PreparationService(store, FakeAttacher(store))
        with pytest.raises(ChaosError) as exc_info:
            await service.prepare(PrepareRequest(type="python", process="app"))
        assert exc_info.value.kind is ErrorKind.PARAMETER_ILLEGAL

    @pytest.mark.asyncio
    async def test_success_returns_record(self, store):
        attacher = FakeAttacher(store)
        service = PreparationService(store, attacher)
        response, record = await service.prepare(PrepareRequest(type="JAVA", process="app"))
        assert response.success
        assert record.uid == response.result
        assert record.status == "Running"
        assert len(attacher.prepared[0]["uid"]) == 16

    @pytest.mark.asyncio
    async def test_caller_uid_is_used(self, store):
        service = PreparationService(store, FakeAttacher(store))
        response, record = await service.prepare(PrepareRequest(type="jvm", pid="7", uid="mine"))
        assert response.result == "mine"
        assert record.pid == "7"


# ── Revoke ────────────────────────────────────────────────────────────


class TestRevoke:
    @pytest.mark.asyncio
    async def test_requires_uid(self, store):
        with pytest.raises(ChaosError) as exc_info:
            await PreparationService(store, FakeAttacher(store)).revoke(RevokeRequest())
        assert exc_info.value.kind is ErrorKind.PARAMETER_LESS

    @pytest.mark.asyncio
    async def test_unknown_uid(self, store):
        with pytest.raises(ChaosError) as exc_info:
            await PreparationService(store, FakeAttacher(store)).revoke(RevokeRequest(uid="ghost"))
        assert exc_info.value.kind is ErrorKind.DATA_NOT_FOUND

    @pytest.mark.asyncio
    async def test_success_marks_revoked(self, store):
        await running(store)
        response = await PreparationService(store, FakeAttacher(store)).revoke(RevokeRequest(uid="prep-1"))
        assert response.success
        assert (await store.get_preparation("prep-1")).status == "Revoked"

    @pytest.mark.asyncio
    async def test_connection_refused_counts_as_revoked(self, store):
        await running(store)
        gone = Response.fail(ErrorKind.OS_CMD_EXEC_FAILED, "dial tcp 127.0.0.1:8080: Connection Refused")
        response = await PreparationService(store, FakeAttacher(store, gone)).revoke(RevokeRequest(uid="prep-1"))
        assert response.success
        assert response.result == "success"
        record = await store.get_preparation("prep-1")
        assert (record.status, record.error) == ("Revoked", "")

    @pytest.mark.asyncio
    async def test_other_failure_keeps_status(self, store):
        await running(store)
        broken = Response.fail(ErrorKind.OS_CMD_EXEC_FAILED, "timeout")
        response = await PreparationService(store, FakeAttacher(store, broken)).revoke(RevokeRequest(uid="prep-1"))
        assert not response.success
        record = await store.get_preparation("prep-1")
        assert record.status == "Running"
        assert record.error == response.err

    @pytest.mark.asyncio
    async def test_failed_status_update_keeps_revoke_response(self, store, monkeypatch):
        await running(store)

        async def broken_update(uid, status, err=""):
            raise ChaosError(ErrorKind.DATABASE_ERROR, "database is locked")

        monkeypatch.setattr(store, "update_preparation_status", broken_update)
        response = await PreparationService(store, FakeAttacher(store)).revoke(RevokeRequest(uid="prep-1"))
        assert response.success
        assert (await store.get_preparation("prep-1")).status == "Running"


# ── Sandbox attacher ──────────────────────────────────────────────────


class TestJvmAttacher:
    def attacher(self, store, channel) -> JvmAttacher:
        return JvmAttacher(store, SandboxClient("chaosblade"), "/opt/sandbox", channel=channel)

    @pytest.mark.asyncio
    async def test_requires_process_or_pid(self, store):
        resp = await self.attacher(store, FakeChannel()).prepare(uid="u")
        assert resp.code == ErrorKind.PARAMETER_LESS.code

    @pytest.mark.asyncio
    async def test_attach_records_port(self, store):
        channel = FakeChannel(Response.ok("sandbox started\nSERVER_PORT : 12345\n"))
        attacher = self.attacher(store, channel)

        resp = await attacher.prepare(pid="99", java_home="/usr/lib/jvm", uid="prep-9")
        assert resp.success
        assert resp.result == "prep-9"
        command, args, env = channel.calls[0]
        assert command == "/opt/sandbox/bin/sandbox.sh"
        assert args == ["-p", "99", "-n", "chaosblade"]
        assert env == {"JAVA_HOME": "/usr/lib/jvm"}

        record = await store.get_preparation("prep-9")
        assert (record.status, record.port, record.pid) == ("Running", "12345", "99")

        again = await attacher.prepare(pid="99", uid="other")
        assert again.result == "prep-9"
        assert len(channel.calls) == 1

    @pytest.mark.asyncio
    async def test_pid_lookup_failure(self, store):
        channel = FakeChannel(Response.fail(ErrorKind.OS_CMD_EXEC_FAILED, "exit status 1"))
        resp = await self.attacher(store, channel).prepare(process="missing-app", uid="prep-x")
        assert resp.code == ErrorKind.DATA_NOT_FOUND.code
        assert channel.calls[0][0] == "pgrep"
        assert (await store.get_preparation("prep-x")).status == "Error"

    @pytest.mark.asyncio
    async def test_attach_failure_marks_error(self, store):
        channel = FakeChannel(Response.fail(ErrorKind.OS_CMD_EXEC_FAILED, "attach refused"))
        resp = await self.attacher(store, channel).prepare(pid="5", uid="prep-e")
        assert not resp.success
        record = await store.get_preparation("prep-e")
        assert record.status == "Error"
        assert "attach refused" in record.error

    @pytest.mark.asyncio
    async def test_revoke_without_port_uses_script(self, store):
        channel = FakeChannel()
        record = PreparationRecord(uid="p", program_type="jvm", process="", pid="5", port="",
                                   status="Running", error="")
        resp = await self.attacher(store, channel).revoke(record)
        assert resp.success
        assert channel.calls[0][1] == ["-p", "5", "-n", "chaosblade", "-S"]
