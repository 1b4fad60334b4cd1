"""
Pytest configuration and fixtures.
"""
import os
import sys
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Optional

import pytest

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.core.config import Settings
from app.core.studio import FileWriter
from app.llm.client import Generator
from app.sandbox.manager import SandboxJobManager
from app.sandbox.models import SandboxJobSpec, SandboxJobState, SandboxJobStatus
from app.sandbox.registry import InMemoryJobRegistry


class FakeGenerator(Generator):
    """
    Replies keyed by system prompt. A reply is a dict (returned as-is), an
    exception (raised) or missing (reported as unavailable).
    """

    def __init__(self, replies: Optional[dict[str, Any]] = None):
        self.replies = replies or {}
        self.calls: list[tuple[str, str]] = []

    async def generate_json(self, system_prompt, user_prompt):
        self.calls.append((system_prompt, user_prompt))
        reply = self.replies.get(system_prompt)
        if isinstance(reply, Exception):
            raise reply
        if reply is None:
            return None, "LLM not configured"
        return reply, None


class FakeFileWriter(FileWriter):
    """Records writes; paths in fail_paths are rejected."""

    def __init__(self, fail_paths: tuple[str, ...] = ()):
        self.fail_paths = set(fail_paths)
        self.writes: list[tuple[str, str, str]] = []

    async def write_file(self, project_id, path, content):
        if path in self.fail_paths:
            return False, f"Failed to update file: {path} (status 500)"
        self.writes.append((project_id, path, content))
        return True, None


class FakeSandbox:
    """
    Stands in for SandboxJobManager in pipeline tests.
    `outcome(script)` returns (exit_code, output); every script succeeds by default.
    """

    def __init__(self, outcome: Optional[Callable[[str], tuple[int, str]]] = None):
        self.outcome = outcome or (lambda script: (0, "ok\n"))
        self.scripts: list[str] = []
        self.shut_down = False

    async def run_and_wait(self, spec: SandboxJobSpec, timeout: float):
        script = spec.args[-1]
        self.scripts.append(script)
        exit_code, output = self.outcome(script)
        now = datetime.now(timezone.utc)
        state = SandboxJobState(
            id=str(uuid.uuid4()),
            spec=spec,
            status=SandboxJobStatus.EXITED,
            started_at=now,
            exit_code=exit_code,
            ended_at=now,
            logs=(output,),
        )
        return state, False

    async def shutdown(self, timeout: float = 5.0):
        self.shut_down = True


class ShellSandboxJobManager(SandboxJobManager):
    """Runs the spec's command directly on the host instead of through an engine."""

    def build_command(self, spec, job_id):
        return [spec.cmd, *spec.args]


@pytest.fixture
def settings(tmp_path):
    """Settings with a throwaway queue database and short timeouts."""
    return Settings(
        queue_url=f"sqlite:///{tmp_path / 'pipeline.db'}",
        workers=1,
        poll_interval_s=0.05,
        step_timeout_s=5,
        test_timeout_s=5,
    )


@pytest.fixture
def shell_manager():
    return ShellSandboxJobManager(registry=InMemoryJobRegistry(max_log_entries=100, max_jobs=50))


@pytest.fixture
def fake_files():
    return FakeFileWriter()


@pytest.fixture
def fake_sandbox():
    return FakeSandbox()
