"""
Service configuration from environment variables.
All settings are optional with safe defaults.
"""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Optional

PROJECT_ROOT = Path(__file__).parent.parent.parent
DEFAULT_QUEUE_URL = f"sqlite:///{PROJECT_ROOT / 'data' / 'pipeline.db'}"


@dataclass(frozen=True)
class Settings:
    """Service configuration (immutable)."""
    # Durable queue
    queue_url: str = DEFAULT_QUEUE_URL
    workers: int = 2
    poll_interval_s: float = 1.0
    max_attempts: int = 1
    job_retention_hours: int = 24

    # External collaborators
    auto_deploy: bool = False
    public_base_url: str = "http://localhost:8000"
    studio_timeout_s: int = 20

    # Sandbox
    sandbox_engine: str = "docker"
    sandbox_image: str = "node:18-alpine"
    sandbox_workdir: str = "/workspace"
    sandbox_workspace_root: Optional[str] = None
    sandbox_network: Literal["none", "bridge"] = "bridge"
    sandbox_default_cpus: str = "1"
    sandbox_default_memory: str = "1g"
    sandbox_max_log_entries: int = 5000
    sandbox_max_jobs: int = 1000
    sandbox_retention_s: int = 3600
    step_timeout_s: float = 300
    test_timeout_s: float = 600

    log_level: str = "INFO"

    def workspace_for(self, project_id: str) -> Optional[str]:
        """
        Host directory mounted for a project, if a workspace root is set.
        Raises ValueError when the id would resolve outside the root.
        """
        if not self.sandbox_workspace_root:
            return None
        root = Path(self.sandbox_workspace_root).resolve()
        candidate = (root / project_id).resolve()
        if candidate == root or not candidate.is_relative_to(root):
            raise ValueError(f"project id escapes workspace root: {project_id!r}")
        return str(candidate)


def _int_env(name: str, default: int, minimum: int = 0) -> int:
    try:
        value = int(os.getenv(name, str(default)))
    except ValueError:
        return default
    return value if value >= minimum else default


def _float_env(name: str, default: float) -> float:
    try:
        value = float(os.getenv(name, str(default)))
    except ValueError:
        return default
    return value if value > 0 else default


def get_settings() -> Settings:
    """Load service configuration from environment."""
    network = os.getenv("SANDBOX_NETWORK", "bridge").lower()
    if network not in ("none", "bridge"):
        network = "bridge"

    return Settings(
        queue_url=os.getenv("PIPELINE_QUEUE_URL", DEFAULT_QUEUE_URL),
        workers=_int_env("PIPELINE_WORKERS", 2, minimum=1),
        poll_interval_s=_float_env("PIPELINE_POLL_INTERVAL_S", 1.0),
        max_attempts=_int_env("PIPELINE_MAX_ATTEMPTS", 1, minimum=1),
        job_retention_hours=_int_env("PIPELINE_JOB_RETENTION_HOURS", 24, minimum=1),
        auto_deploy=os.getenv("PIPELINE_AUTO_DEPLOY", "") == "1",
        public_base_url=os.getenv("PUBLIC_BASE_URL", "http://localhost:8000").rstrip("/"),
        studio_timeout_s=_int_env("STUDIO_TIMEOUT_S", 20, minimum=1),
        sandbox_engine=os.getenv("SANDBOX_ENGINE", "docker"),
        sandbox_image=os.getenv("SANDBOX_IMAGE", "node:18-alpine"),
        sandbox_workdir=os.getenv("SANDBOX_WORKDIR", "/workspace"),
        sandbox_workspace_root=os.getenv("SANDBOX_WORKSPACE_ROOT") or None,
        sandbox_network=network,  # type: ignore
        sandbox_default_cpus=os.getenv("SANDBOX_DEFAULT_CPUS", "1"),
        sandbox_default_memory=os.getenv("SANDBOX_DEFAULT_MEMORY", "1g"),
        sandbox_max_log_entries=_int_env("SANDBOX_MAX_LOG_ENTRIES", 5000, minimum=1),
        sandbox_max_jobs=_int_env("SANDBOX_MAX_JOBS", 1000, minimum=1),
        sandbox_retention_s=_int_env("SANDBOX_RETENTION_S", 3600, minimum=1),
        step_timeout_s=_float_env("SANDBOX_STEP_TIMEOUT_S", 300),
        test_timeout_s=_float_env("SANDBOX_TEST_TIMEOUT_S", 600),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )
