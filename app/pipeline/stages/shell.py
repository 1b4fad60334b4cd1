"""Run a shell script for a project inside the sandbox."""
from app.core.config import Settings
from app.sandbox.manager import SandboxJobManager
from app.sandbox.models import SandboxJobSpec, SandboxJobState, SandboxMount


def shell_spec(settings: Settings, project_id: str, script: str) -> SandboxJobSpec:
    """`sh -c <script>` in the pipeline image, with the project workspace mounted if configured."""
    mounts = ()
    workspace = settings.workspace_for(project_id)
    if workspace:
        mounts = (SandboxMount(host=workspace, target=settings.sandbox_workdir),)
    return SandboxJobSpec(
        image=settings.sandbox_image,
        cmd="sh",
        args=("-c", script),
        workdir=settings.sandbox_workdir,
        env={"CI": "true"},
        mounts=mounts,
        network=settings.sandbox_network,
    )


async def run_script(
    sandbox: SandboxJobManager,
    settings: Settings,
    project_id: str,
    script: str,
    timeout: float,
) -> tuple[SandboxJobState, bool]:
    """Returns (final state, timed_out)."""
    return await sandbox.run_and_wait(shell_spec(settings, project_id, script), timeout)


def failure_reason(state: SandboxJobState, timed_out: bool, timeout: float) -> str:
    if timed_out:
        return f"timed out after {timeout:g}s"
    if state.exit_code is None:
        return "sandbox job could not run"
    return f"exit code {state.exit_code}"
