"""
execute: run every plan step in ascending order.

File steps go through the file-write capability; every other kind runs as a
sandbox job. A failed step is recorded and the next one still runs. The stage
is ok when at least one step succeeded.
"""
import logging
import shlex
from typing import Optional

from app.core.config import Settings
from app.core.studio import FileWriter
from app.pipeline.models import (
    CommandStep,
    DependencyStep,
    DeployStep,
    ExecutionResult,
    FileStep,
    PipelineContext,
    PlanResult,
    PlanStep,
    StepResult,
    TestStep,
    step_name,
)
from app.pipeline.stages.shell import failure_reason, run_script
from app.sandbox.manager import SandboxJobManager

logger = logging.getLogger(__name__)

INSTALL_COMMANDS = {
    "npm": ["npm", "install"],
    "pip": ["pip", "install"],
}


def script_for(step: PlanStep) -> str:
    """Shell script for a sandbox-backed step."""
    if isinstance(step, DependencyStep):
        base = INSTALL_COMMANDS.get(step.manager, INSTALL_COMMANDS["npm"])
        return shlex.join(base + list(step.packages))
    if isinstance(step, (CommandStep, TestStep, DeployStep)):
        return " && ".join(step.commands)
    raise TypeError(f"Unsupported step type: {type(step).__name__}")


async def _run_step(
    ctx: PipelineContext,
    step: PlanStep,
    files: FileWriter,
    sandbox: SandboxJobManager,
    settings: Settings,
) -> tuple[bool, str, Optional[str]]:
    if isinstance(step, FileStep):
        ok, error = await files.write_file(ctx.project_id, step.path, step.content)
        return ok, (f"wrote {step.path}" if ok else ""), error

    script = script_for(step)
    if not script.strip():
        return False, "", "step has no commands"

    state, timed_out = await run_script(sandbox, settings, ctx.project_id, script, settings.step_timeout_s)
    if not timed_out and state.succeeded:
        return True, state.output, None
    return False, state.output, failure_reason(state, timed_out, settings.step_timeout_s)


async def execute(
    ctx: PipelineContext,
    plan: PlanResult,
    files: FileWriter,
    sandbox: SandboxJobManager,
    settings: Settings,
) -> ExecutionResult:
    steps = plan.ordered()
    ctx.log(f"execute:steps:{len(steps)}")

    results: list[StepResult] = []
    for index, step in enumerate(steps, start=1):
        name = step_name(step)
        try:
            success, output, error = await _run_step(ctx, step, files, sandbox, settings)
        except Exception as e:
            logger.warning(f"execute_step_crashed step={index} error_type={type(e).__name__}",
                           extra={"stage": "execute"})
            success, output, error = False, "", f"{type(e).__name__}: {e}"

        results.append(StepResult(
            step_id=f"step-{index}",
            step_name=name,
            step_type=step.type,
            success=success,
            output=output,
            error=error,
        ))
        ctx.log(f"execute:{step.type.value}:{'ok' if success else 'failed'}:{name}")

    success_count = sum(1 for result in results if result.success)
    ctx.log(f"execute:succeeded:{success_count}/{len(results)}")
    return ExecutionResult(
        ok=success_count > 0,
        results=results,
        success_count=success_count,
        total_steps=len(results),
    )
