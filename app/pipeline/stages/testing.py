"""
test: run the fixed check suites (unit, integration, lint, type-check) in the sandbox.

Optional suites pass when their tool reports it is not configured (detected by
a marker in the output). Coverage is the share of passing suites, not
statement coverage.
"""
import logging
import time
from dataclasses import dataclass
from typing import Optional

from app.core.config import Settings
from app.pipeline.models import ExecutionResult, PipelineContext, SuiteResult, TestResult, TestSummary
from app.pipeline.stages.shell import failure_reason, run_script
from app.sandbox.manager import SandboxJobManager
from app.sandbox.models import SandboxJobStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SuiteDefinition:
    name: str
    type: str
    script: str
    absent_marker: Optional[str] = None  # output that means "tool not configured"


SUITES = (
    SuiteDefinition("Unit Tests", "unit", "npm run test:unit || npm test"),
    SuiteDefinition(
        "Integration Tests", "integration",
        "npm run test:integration || echo 'No integration tests configured'",
        absent_marker="No integration tests",
    ),
    SuiteDefinition(
        "Linting", "lint",
        "npm run lint || npx eslint . || echo 'No linting configured'",
        absent_marker="No linting",
    ),
    SuiteDefinition(
        "Type Checking", "typecheck",
        "npm run type-check || npx tsc --noEmit || echo 'No TypeScript configured'",
        absent_marker="No TypeScript",
    ),
)


def calculate_coverage(results: list[SuiteResult]) -> float:
    if not results:
        return 0.0
    return sum(1 for result in results if result.passed) / len(results) * 100


async def _run_suite(
    ctx: PipelineContext,
    suite: SuiteDefinition,
    sandbox: SandboxJobManager,
    settings: Settings,
) -> SuiteResult:
    ctx.log(f"test:run:{suite.type}")
    started = time.perf_counter()
    try:
        state, timed_out = await run_script(sandbox, settings, ctx.project_id, suite.script, settings.test_timeout_s)
    except Exception as e:
        logger.warning(f"test_suite_crashed suite={suite.type} error_type={type(e).__name__}",
                       extra={"stage": "test"})
        return SuiteResult(name=suite.name, type=suite.type, passed=False, error=f"{type(e).__name__}: {e}")

    duration_ms = int((time.perf_counter() - started) * 1000)
    output = state.output
    tool_absent = bool(suite.absent_marker) and suite.absent_marker in output
    passed = (
        not timed_out
        and state.status == SandboxJobStatus.EXITED
        and (state.exit_code == 0 or tool_absent)
    )
    error = None
    if not passed:
        error = f"{suite.name} failed: {failure_reason(state, timed_out, settings.test_timeout_s)}"
    return SuiteResult(
        name=suite.name,
        type=suite.type,
        passed=passed,
        output=output,
        duration_ms=duration_ms,
        error=error,
    )


async def run_tests(
    ctx: PipelineContext,
    execution: ExecutionResult,
    sandbox: SandboxJobManager,
    settings: Settings,
    suites: tuple[SuiteDefinition, ...] = SUITES,
) -> TestResult:
    if not execution.ok:
        ctx.log("test:skipped:execution_failed")
        return TestResult(
            passed=False,
            test_results=[],
            coverage=0.0,
            summary=TestSummary(),
            error="Execution failed, cannot run tests",
        )

    results = []
    for suite in suites:
        results.append(await _run_suite(ctx, suite, sandbox, settings))

    passed_count = sum(1 for result in results if result.passed)
    ctx.log(f"test:passed:{passed_count}/{len(results)}")
    return TestResult(
        passed=bool(results) and passed_count == len(results),
        test_results=results,
        coverage=calculate_coverage(results),
        summary=TestSummary(
            total=len(results),
            passed=passed_count,
            failed=len(results) - passed_count,
            duration_ms=sum(result.duration_ms for result in results),
        ),
    )
