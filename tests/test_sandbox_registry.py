"""
Tests for the in-memory sandbox job registry.
"""
from datetime import datetime, timedelta, timezone

from app.sandbox.models import SandboxJobSpec, SandboxJobStatus
from app.sandbox.registry import InMemoryJobRegistry


SPEC = SandboxJobSpec(image="alpine", cmd="true")


class TestJobLifecycle:
    """Tests for status transitions."""

    def test_create_is_running(self):
        registry = InMemoryJobRegistry()
        state = registry.create("a", SPEC)
        assert state.status == SandboxJobStatus.RUNNING
        assert state.exit_code is None
        assert state.ended_at is None

    def test_mark_exited_records_code(self):
        registry = InMemoryJobRegistry()
        registry.create("a", SPEC)
        assert registry.mark_exited("a", 3) is True
        state = registry.get("a")
        assert state.status == SandboxJobStatus.EXITED
        assert state.exit_code == 3
        assert state.ended_at is not None

    def test_terminal_state_is_final(self):
        """A second terminal transition is ignored."""
        registry = InMemoryJobRegistry()
        registry.create("a", SPEC)
        registry.mark_exited("a", 0)
        assert registry.mark_error("a", "late") is False
        assert registry.mark_exited("a", 1) is False
        state = registry.get("a")
        assert state.status == SandboxJobStatus.EXITED
        assert state.exit_code == 0

    def test_mark_error_appends_diagnostic(self):
        registry = InMemoryJobRegistry()
        registry.create("a", SPEC)
        registry.mark_error("a", "spawn docker ENOENT")
        state = registry.get("a")
        assert state.status == SandboxJobStatus.ERROR
        assert state.logs[-1] == "[error] spawn docker ENOENT"

    def test_unknown_job(self):
        registry = InMemoryJobRegistry()
        assert registry.get("missing") is None
        assert registry.mark_exited("missing", 0) is False


class TestLogBuffer:
    """Tests for bounded log retention."""

    def test_keeps_newest_entries(self):
        registry = InMemoryJobRegistry(max_log_entries=3)
        registry.create("a", SPEC)
        for i in range(5):
            registry.append_log("a", f"line{i}")
        assert registry.get("a").logs == ("line2", "line3", "line4")

    def test_snapshot_is_detached(self):
        """Later output does not change an earlier snapshot."""
        registry = InMemoryJobRegistry()
        registry.create("a", SPEC)
        registry.append_log("a", "one")
        before = registry.get("a")
        registry.append_log("a", "two")
        assert before.logs == ("one",)
        assert before.output == "one"


class TestRetention:
    """Tests for eviction and reaping."""

    def test_list_in_creation_order(self):
        registry = InMemoryJobRegistry()
        for job_id in ("a", "b", "c"):
            registry.create(job_id, SPEC)
        assert [state.id for state in registry.list()] == ["a", "b", "c"]

    def test_evicts_oldest_terminal_jobs(self):
        registry = InMemoryJobRegistry(max_jobs=2)
        registry.create("a", SPEC)
        registry.mark_exited("a", 0)
        registry.create("b", SPEC)
        registry.create("c", SPEC)
        assert registry.get("a") is None
        assert [state.id for state in registry.list()] == ["b", "c"]

    def test_running_jobs_never_evicted(self):
        registry = InMemoryJobRegistry(max_jobs=1)
        registry.create("a", SPEC)
        registry.create("b", SPEC)
        assert {state.id for state in registry.list()} == {"a", "b"}

    def test_reap_drops_old_terminal_jobs(self):
        registry = InMemoryJobRegistry()
        registry.create("old", SPEC)
        registry.mark_exited("old", 0)
        registry.create("running", SPEC)
        registry.create("fresh", SPEC)
        registry.mark_exited("fresh", 0)
        # Age the finished record
        registry._jobs["old"].ended_at = datetime.now(timezone.utc) - timedelta(hours=2)

        assert registry.reap(3600) == 1
        assert registry.get("old") is None
        assert registry.get("running") is not None
        assert registry.get("fresh") is not None
