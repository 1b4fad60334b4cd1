"""
summarize: narrative report with an overall status.
Without a usable model reply the summary is synthesized from local counters,
so a run always ends with a report.
"""
import logging
from typing import Optional

from pydantic import ValidationError

from app.llm.client import Generator
from app.llm.prompts import SUMMARY_SYSTEM_PROMPT, get_summary_prompt
from app.llm.schemas import SummaryOutput
from app.pipeline.models import FixResult, OverallStatus, PipelineContext, Summary, TestResult

logger = logging.getLogger(__name__)


def classify(test_result: TestResult, fix_result: Optional[FixResult]) -> OverallStatus:
    """Status from local outcomes only."""
    if test_result.passed:
        return OverallStatus.SUCCESS
    if fix_result is not None and fix_result.applied_count > 0:
        return OverallStatus.PARTIAL_SUCCESS
    return OverallStatus.FAILED


async def summarize(
    ctx: PipelineContext,
    test_result: TestResult,
    fix_result: Optional[FixResult],
    generator: Generator,
) -> Summary:
    ctx.log("summarize:generating")
    fixes = fix_result.fixes if fix_result else []
    applied = [record.description for record in fixes if record.applied]

    try:
        data, error = await generator.generate_json(
            SUMMARY_SYSTEM_PROMPT,
            get_summary_prompt(
                ctx.prompt,
                ctx.logs,
                fixed=bool(fix_result and fix_result.fixed),
                fix_count=len(fixes),
                fix_summary=fix_result.summary if fix_result else "Fix stage not run",
            ),
        )
        if data is not None:
            output = SummaryOutput.model_validate(data)
            ctx.log("summarize:complete")
            return Summary(
                overall_status=OverallStatus(output.overall_status),
                summary=output.summary,
                key_achievements=output.key_achievements,
                issues_encountered=output.issues_encountered,
                fixes_applied=output.fixes_applied or applied,
                recommendations=output.recommendations,
                metrics=output.metrics,
                deployment_status=output.deployment_status,
                execution_logs=list(ctx.logs),
            )
    except ValidationError as e:
        error = f"Validation error: {str(e)[:200]}"
    except Exception as e:
        error = f"{type(e).__name__}: {e}"

    logger.info("summarize_fallback", extra={"stage": "summarize"})
    ctx.log("summarize:fallback")
    status = classify(test_result, fix_result)
    return Summary(
        overall_status=status,
        summary=(
            "Pipeline execution completed"
            if status == OverallStatus.SUCCESS
            else "Pipeline execution completed with errors"
        ),
        issues_encountered=[f"Summary generation failed: {error}"],
        fixes_applied=applied,
        recommendations=["Review execution logs for details", "Consider manual intervention"],
        metrics={
            "total_logs": len(ctx.logs),
            "fixes_attempted": len(fixes),
            "fixes_successful": len(applied),
        },
        execution_logs=list(ctx.logs),
        source="fallback",
    )
