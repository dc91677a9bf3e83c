"""
Tests for the record store.

Covers:
- experiment insert / update / query / delete
- limit grammar and id ordering
- status first-letter upcasing on filters
- flag-map filtering (query by command)
- preparation running lookup and set-once port
- datastore path resolution
"""

import pytest
from hypothesis import given
from hypothesis import strategies as st

from chaosplane.db.datafile import DATA_FILE, resolve_datafile
from chaosplane.db.models import ExperimentModel, PreparationRecord
from chaosplane.db.repositories.base import parse_limit
from chaosplane.errors import ChaosError, ErrorKind
from chaosplane.flags import format_flags
from chaosplane.status import Status


def experiment(uid: str, command: str = "os", sub_command: str = "load", flags=None, status: str = "Created"):
    return ExperimentModel(
        uid=uid,
        command=command,
        sub_command=sub_command,
        flag=format_flags(flags or {}),
        status=status,
        error="",
    )


def preparation(uid: str, process: str = "app", pid: str = "", status: str = "Running"):
    return PreparationRecord(
        uid=uid,
        program_type="jvm",
        process=process,
        pid=pid,
        port="",
        status=status,
        error="",
    )


# ── Limit grammar ─────────────────────────────────────────────────────


class TestParseLimit:
    def test_count_only(self):
        assert parse_limit("5") == (None, 5)

    def test_offset_and_count(self):
        assert parse_limit("2,3") == (2, 3)

    def test_invalid_parts_ignored(self):
        assert parse_limit("abc") == (None, None)
        assert parse_limit("a,3") == (None, 3)
        assert parse_limit("2,x") == (2, None)
        assert parse_limit("-1") == (None, None)

    def test_empty(self):
        assert parse_limit("") == (None, None)

    @given(offset=st.integers(min_value=0, max_value=10**6), n=st.integers(min_value=0, max_value=10**6))
    def test_numeric_forms(self, offset, n):
        assert parse_limit(str(n)) == (None, n)
        assert parse_limit(f"{offset},{n}") == (offset, n)


# ── Experiments ───────────────────────────────────────────────────────


class TestExperimentStore:
    @pytest.mark.asyncio
    async def test_insert_stamps_times(self, store):
        record = await store.insert_experiment(experiment("uid-1"))
        assert record.id is not None
        assert record.create_time
        assert record.update_time == record.create_time

    @pytest.mark.asyncio
    async def test_get_missing_is_none(self, store):
        assert await store.get_experiment("nope") is None

    @pytest.mark.asyncio
    async def test_duplicate_uid_is_database_error(self, store):
        await store.insert_experiment(experiment("dup"))
        with pytest.raises(ChaosError) as exc_info:
            await store.insert_experiment(experiment("dup"))
        assert exc_info.value.kind is ErrorKind.DATABASE_ERROR
        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_update_status(self, store):
        await store.insert_experiment(experiment("uid-2"))
        await store.update_experiment_status("uid-2", Status.ERROR.value, "boom")
        record = await store.get_experiment("uid-2")
        assert record.status == "Error"
        assert record.error == "boom"
        assert record.update_time >= record.create_time

    @pytest.mark.asyncio
    async def test_update_missing_is_noop(self, store):
        await store.update_experiment_status("ghost", Status.SUCCESS.value, "")
        assert await store.get_experiment("ghost") is None

    @pytest.mark.asyncio
    async def test_delete(self, store):
        await store.insert_experiment(experiment("uid-3"))
        await store.delete_experiment("uid-3")
        await store.delete_experiment("uid-3")
        assert await store.get_experiment("uid-3") is None

    @pytest.mark.asyncio
    async def test_query_filters_and_order(self, store):
        for i in range(5):
            await store.insert_experiment(experiment(f"os-{i}"))
        await store.insert_experiment(experiment("cpu-0", command="cpu", sub_command="fullload"))

        records = await store.query_experiments(target="os")
        assert [r.uid for r in records] == ["os-4", "os-3", "os-2", "os-1", "os-0"]

        records = await store.query_experiments(target="os", asc=True, limit="1,2")
        assert [r.uid for r in records] == ["os-1", "os-2"]

        records = await store.query_experiments(action="fullload")
        assert [r.uid for r in records] == ["cpu-0"]

    @pytest.mark.asyncio
    async def test_status_filter_upcases_first_letter(self, store):
        await store.insert_experiment(experiment("run-1", status="Running"))
        await store.insert_experiment(experiment("ok-1", status="Success"))
        records = await store.query_experiments(status="running")
        assert [r.uid for r in records] == ["run-1"]

    @pytest.mark.asyncio
    async def test_flag_substring_filter(self, store):
        await store.insert_experiment(experiment("a", flags={"cpu-percent": "10"}))
        await store.insert_experiment(experiment("b", flags={"cpu-percent": "20"}))
        records = await store.query_experiments(flag="cpu-percent=20")
        assert [r.uid for r in records] == ["b"]

    @pytest.mark.asyncio
    async def test_query_by_command_matches_flag_map(self, store):
        await store.insert_experiment(experiment("a", flags={"cpu-percent": "10", "timeout": "30"}))
        await store.insert_experiment(experiment("b", flags={"cpu-percent": "20"}))
        await store.insert_experiment(experiment("c", command="cpu", sub_command="fullload"))

        matched = await store.query_experiments_by_command("os", "load", {"cpu-percent": "10", "timeout": ""})
        assert [r.uid for r in matched] == ["a"]

        everything = await store.query_experiments_by_command("os", "load", {})
        assert [r.uid for r in everything] == ["a", "b"]


# ── Preparations ──────────────────────────────────────────────────────


class TestPreparationStore:
    @pytest.mark.asyncio
    async def test_query_running_by_process_or_pid(self, store):
        await store.insert_preparation(preparation("p1", process="app", pid="100"))
        await store.insert_preparation(preparation("p2", process="other", pid="200", status="Revoked"))

        assert (await store.query_running_preparation("jvm", process="app")).uid == "p1"
        assert (await store.query_running_preparation("jvm", pid="100")).uid == "p1"
        assert await store.query_running_preparation("jvm", pid="200") is None
        assert await store.query_running_preparation("jvm", process="app", pid="999") is None

    @pytest.mark.asyncio
    async def test_port_set_once(self, store):
        await store.insert_preparation(preparation("p1"))
        await store.update_preparation_port("p1", "8080")
        await store.update_preparation_port("p1", "9090")
        assert (await store.get_preparation("p1")).port == "8080"

    @pytest.mark.asyncio
    async def test_update_pid_and_status(self, store):
        await store.insert_preparation(preparation("p1", status="Created"))
        await store.update_preparation_pid("p1", "4242")
        await store.update_preparation_status("p1", "Error", "attach failed")
        record = await store.get_preparation("p1")
        assert (record.pid, record.status, record.error) == ("4242", "Error", "attach failed")

    @pytest.mark.asyncio
    async def test_query_preparations(self, store):
        await store.insert_preparation(preparation("p1"))
        await store.insert_preparation(preparation("p2", status="Revoked"))
        records = await store.query_preparations(target="jvm", status="revoked")
        assert [r.uid for r in records] == ["p2"]


# ── Datafile resolution ───────────────────────────────────────────────


class TestResolveDatafile:
    def test_unset_uses_program_dir(self, tmp_path):
        assert resolve_datafile("", base=tmp_path) == tmp_path / DATA_FILE

    def test_existing_directory(self, tmp_path):
        assert resolve_datafile(str(tmp_path)) == tmp_path / DATA_FILE

    def test_missing_directory_is_created(self, tmp_path):
        target = tmp_path / "data"
        assert resolve_datafile(str(target)) == target / DATA_FILE
        assert target.is_dir()

    def test_file_path_creates_parent(self, tmp_path):
        target = tmp_path / "nested" / "store.db"
        assert resolve_datafile(str(target)) == target
        assert target.parent.is_dir()

    def test_existing_file(self, tmp_path):
        target = tmp_path / "existing"
        target.write_text("")
        assert resolve_datafile(str(target)) == target
