"""
Tests for the transactional directory runner.
"""
import tarfile

import pytest

from app.sandbox.transaction import (
    TransactionError,
    TransactionStep,
    restore_directory,
    run_transaction,
    snapshot_directory,
)


class TestSnapshot:
    """Tests for snapshot and restore."""

    def test_restore_drops_new_files_and_restores_content(self, tmp_path):
        (tmp_path / "a.txt").write_text("one")
        (tmp_path / "sub").mkdir()
        (tmp_path / "sub" / "b.txt").write_text("two")
        snapshot = snapshot_directory(tmp_path)

        (tmp_path / "a.txt").write_text("changed")
        (tmp_path / "sub" / "b.txt").unlink()
        (tmp_path / "extra").mkdir()

        restore_directory(tmp_path, snapshot)
        assert (tmp_path / "a.txt").read_text() == "one"
        assert (tmp_path / "sub" / "b.txt").read_text() == "two"
        assert not (tmp_path / "extra").exists()

    def test_corrupt_snapshot_leaves_directory_untouched(self, tmp_path):
        work = tmp_path / "work"
        work.mkdir()
        (work / "a.txt").write_text("current")
        (work / "sub").mkdir()

        with pytest.raises(tarfile.TarError):
            restore_directory(work, b"not a tarball")

        assert (work / "a.txt").read_text() == "current"
        assert (work / "sub").is_dir()
        assert [p.name for p in tmp_path.iterdir()] == ["work"]

    def test_restore_cleans_up_staging(self, tmp_path):
        work = tmp_path / "work"
        work.mkdir()
        (work / "a.txt").write_text("one")
        snapshot = snapshot_directory(work)
        (work / "b.txt").write_text("two")

        restore_directory(work, snapshot)
        assert sorted(p.name for p in work.iterdir()) == ["a.txt"]
        assert [p.name for p in tmp_path.iterdir()] == ["work"]


class TestRunTransaction:
    """Tests for step execution."""

    @pytest.mark.asyncio
    async def test_all_steps_succeed(self, tmp_path):
        result = await run_transaction(str(tmp_path), [
            TransactionStep("sh", ("-c", "echo first")),
            TransactionStep("sh", ("-c", "echo second >&2")),
        ])
        assert result.ok is True
        assert result.error is None
        assert result.logs == ["first\n", "", "", "second\n"]

    @pytest.mark.asyncio
    async def test_stops_at_first_failure(self, tmp_path):
        (tmp_path / "state.txt").write_text("before")
        result = await run_transaction(str(tmp_path), [
            TransactionStep("sh", ("-c", "echo after > state.txt")),
            TransactionStep("sh", ("-c", "exit 4")),
            TransactionStep("sh", ("-c", "touch never.txt")),
        ])
        assert result.ok is False
        assert result.error == "step failed: sh"
        assert len(result.logs) == 4
        assert (tmp_path / "state.txt").read_text() == "before"
        assert not (tmp_path / "never.txt").exists()

    @pytest.mark.asyncio
    async def test_missing_binary_fails_step(self, tmp_path):
        result = await run_transaction(str(tmp_path), [TransactionStep("/nonexistent/tool")])
        assert result.ok is False
        assert result.error == "step failed: /nonexistent/tool"

    @pytest.mark.asyncio
    async def test_requires_steps(self, tmp_path):
        with pytest.raises(TransactionError):
            await run_transaction(str(tmp_path), [])

    @pytest.mark.asyncio
    async def test_requires_directory(self, tmp_path):
        with pytest.raises(TransactionError):
            await run_transaction(str(tmp_path / "missing"), [TransactionStep("true")])

    def test_result_dict_omits_error_on_success(self):
        from app.sandbox.transaction import TransactionResult
        assert TransactionResult(ok=True, logs=["x"]).to_dict() == {"ok": True, "logs": ["x"]}
