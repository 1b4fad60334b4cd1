"""
Transactional command runner for a host directory.

The directory is snapshotted into an in-memory tar.gz, the steps run one after
another with the directory as cwd, and the first failing step rolls the
directory back to the snapshot. Steps run on the host, not in a container.
"""
import asyncio
import io
import logging
import shutil
import tarfile
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


class TransactionError(ValueError):
    """Transaction could not be attempted (bad path or no steps)."""


@dataclass(frozen=True)
class TransactionStep:
    cmd: str
    args: tuple[str, ...] = ()


@dataclass
class TransactionResult:
    ok: bool
    logs: list[str] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> dict:
        data = {"ok": self.ok, "logs": self.logs}
        if self.error is not None:
            data["error"] = self.error
        return data


def snapshot_directory(path: Path) -> bytes:
    """Archive the directory contents as tar.gz bytes."""
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as archive:
        for child in sorted(path.iterdir()):
            archive.add(child, arcname=child.name)
    return buffer.getvalue()


def restore_directory(path: Path, snapshot: bytes) -> None:
    """
    Make the directory match the snapshot exactly, dropping files created since.

    The archive is extracted into a sibling staging directory first, so a
    corrupt snapshot raises without touching the current contents.
    """
    staging = Path(tempfile.mkdtemp(prefix=f".{path.name}-restore-", dir=path.parent))
    try:
        with tarfile.open(fileobj=io.BytesIO(snapshot), mode="r:gz") as archive:
            archive.extractall(staging, filter="tar")
        for child in path.iterdir():
            if child.is_dir() and not child.is_symlink():
                shutil.rmtree(child)
            else:
                child.unlink()
        for child in staging.iterdir():
            shutil.move(str(child), str(path / child.name))
    finally:
        shutil.rmtree(staging, ignore_errors=True)


async def _run_step(step: TransactionStep, cwd: Path) -> tuple[int, str, str]:
    try:
        process = await asyncio.create_subprocess_exec(
            step.cmd,
            *step.args,
            cwd=str(cwd),
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        return 127, "", f"{type(e).__name__}: {e}"
    out, err = await process.communicate()
    return process.returncode, out.decode("utf-8", "replace"), err.decode("utf-8", "replace")


async def run_transaction(path: str, steps: list[TransactionStep]) -> TransactionResult:
    """
    Run steps in order inside `path`, all-or-nothing.

    Raises TransactionError when the path is not a directory or there are no
    steps; step failures are reported in the result, not raised.
    """
    root = Path(path)
    if not steps:
        raise TransactionError("path and steps required")
    if not root.is_dir():
        raise TransactionError(f"not a directory: {path}")

    snapshot = await asyncio.to_thread(snapshot_directory, root)
    logs: list[str] = []

    for index, step in enumerate(steps, start=1):
        code, out, err = await _run_step(step, root)
        logs.extend([out, err])
        if code != 0:
            await asyncio.to_thread(restore_directory, root, snapshot)
            logger.info(f"sandbox_transaction_rolled_back step={index} exit_code={code}")
            return TransactionResult(ok=False, logs=logs, error=f"step failed: {step.cmd}")

    logger.info(f"sandbox_transaction_committed steps={len(steps)}")
    return TransactionResult(ok=True, logs=logs)
