"""
fix: one remediation attempt per failed suite.

For each failure the model proposes file changes and commands; a fix counts as
applied only when every file write and every command succeeded. The stage
does not re-run tests.
"""
import logging
from typing import Optional

from pydantic import ValidationError

from app.core.config import Settings
from app.core.studio import FileWriter
from app.llm.client import Generator
from app.llm.prompts import FIX_SYSTEM_PROMPT, get_fix_prompt
from app.llm.schemas import FixOutput
from app.pipeline.models import FileChange, FixRecord, FixResult, PipelineContext, SuiteResult, TestResult
from app.pipeline.stages.shell import run_script
from app.sandbox.manager import SandboxJobManager

logger = logging.getLogger(__name__)


def failures_to_fix(test_result: TestResult) -> list[SuiteResult]:
    """Failed suites; a skipped test stage counts as one pipeline-level failure."""
    failed = [suite for suite in test_result.test_results if not suite.passed]
    if not failed and test_result.error:
        failed = [SuiteResult(name="Pipeline", type="pipeline", passed=False, error=test_result.error)]
    return failed


async def _propose(ctx: PipelineContext, failure: SuiteResult, generator: Generator) -> Optional[FixRecord]:
    user_prompt = get_fix_prompt(failure.name, failure.type, failure.output, failure.error or "")
    try:
        data, error = await generator.generate_json(FIX_SYSTEM_PROMPT, user_prompt)
        if data is None:
            ctx.log(f"fix:generate_failed:{failure.name}:{error}")
            return None
        output = FixOutput.model_validate(data)
    except ValidationError:
        ctx.log(f"fix:generate_failed:{failure.name}:invalid fix")
        return None

    return FixRecord(
        test_name=failure.name,
        description=output.description,
        type=output.type,
        files=[FileChange(path=f.path, content=f.content) for f in output.files],
        commands=output.commands,
        explanation=output.explanation,
    )


async def _apply(
    ctx: PipelineContext,
    record: FixRecord,
    files: FileWriter,
    sandbox: SandboxJobManager,
    settings: Settings,
) -> bool:
    for change in record.files:
        ok, error = await files.write_file(ctx.project_id, change.path, change.content)
        if not ok:
            ctx.log(f"fix:file_failed:{change.path}")
            return False

    for command in record.commands:
        state, timed_out = await run_script(sandbox, settings, ctx.project_id, command, settings.step_timeout_s)
        if timed_out or not state.succeeded:
            ctx.log(f"fix:command_failed:{command}")
            return False
    return True


async def fix(
    ctx: PipelineContext,
    test_result: TestResult,
    generator: Generator,
    files: FileWriter,
    sandbox: SandboxJobManager,
    settings: Settings,
) -> FixResult:
    ctx.log("fix:analyzing")
    if test_result.passed:
        ctx.log("fix:not_needed")
        return FixResult(fixed=True, fixes=[], summary="No issues found")

    fixes: list[FixRecord] = []
    for failure in failures_to_fix(test_result):
        ctx.log(f"fix:failure:{failure.name}")
        try:
            record = await _propose(ctx, failure, generator)
            if record is None:
                continue
            fixes.append(record)
            record.applied = await _apply(ctx, record, files, sandbox, settings)
        except Exception as e:
            logger.warning(f"fix_crashed suite={failure.type} error_type={type(e).__name__}",
                           extra={"stage": "fix"})
            ctx.log(f"fix:error:{failure.name}:{type(e).__name__}")
            continue
        ctx.log(f"fix:{'applied' if record.applied else 'not_applied'}:{failure.name}")

    applied = sum(1 for record in fixes if record.applied)
    ctx.log(f"fix:applied:{applied}/{len(fixes)}")
    return FixResult(
        fixed=applied > 0,
        fixes=fixes,
        summary=f"Applied {applied} fixes out of {len(fixes)} attempted",
    )
