"""
Pipeline orchestrator: one request in, one report out.

Stage order is fixed: analyze -> plan -> execute -> test -> [fix] -> summarize.
fix runs at most once, and only when test did not pass. Stages capture their
own failures in their result records; the orchestrator does not retry (retry
is re-delivery of the whole queue job).
"""
import logging
import time
from typing import Optional

from app.core.config import Settings
from app.core.metrics import metrics
from app.core.studio import FileWriter, StudioClient
from app.llm.client import Generator
from app.pipeline.models import OverallStatus, PipelineContext, PipelinePayload, PipelineReport
from app.pipeline.stages.analyze import analyze
from app.pipeline.stages.execute import execute
from app.pipeline.stages.fix import fix
from app.pipeline.stages.plan import plan
from app.pipeline.stages.summarize import summarize
from app.pipeline.stages.testing import run_tests
from app.sandbox.manager import SandboxJobManager

logger = logging.getLogger(__name__)


class PipelineOrchestrator:
    """Sequences the stages for a single pipeline run."""

    def __init__(
        self,
        generator: Generator,
        files: FileWriter,
        sandbox: SandboxJobManager,
        settings: Settings,
        deployer: Optional[StudioClient] = None,
    ):
        self.generator = generator
        self.files = files
        self.sandbox = sandbox
        self.settings = settings
        self.deployer = deployer

    def _enter(self, ctx: PipelineContext, stage: str) -> None:
        ctx.log(f"{stage}:start")
        logger.info(f"pipeline_stage project_id={ctx.project_id}", extra={"stage": stage})

    async def run(self, payload: PipelinePayload) -> PipelineReport:
        ctx = PipelineContext(project_id=payload.project_id, prompt=payload.prompt)
        started = time.perf_counter()
        logger.info(f"pipeline_started project_id={ctx.project_id}")

        self._enter(ctx, "analyze")
        analysis = await analyze(ctx, self.generator)

        self._enter(ctx, "plan")
        plan_result = await plan(ctx, analysis, self.generator)

        self._enter(ctx, "execute")
        execution = await execute(ctx, plan_result, self.files, self.sandbox, self.settings)

        self._enter(ctx, "test")
        test_result = await run_tests(ctx, execution, self.sandbox, self.settings)

        fix_result = None
        if not test_result.passed:
            self._enter(ctx, "fix")
            metrics.inc("pipeline_fix_runs_total")
            fix_result = await fix(ctx, test_result, self.generator, self.files, self.sandbox, self.settings)

        self._enter(ctx, "summarize")
        summary = await summarize(ctx, test_result, fix_result, self.generator)

        if self.settings.auto_deploy and self.deployer is not None:
            await self.deployer.trigger_deploy(ctx.project_id)

        duration_ms = int((time.perf_counter() - started) * 1000)
        logger.info(
            f"pipeline_finished project_id={ctx.project_id} "
            f"status={summary.overall_status.value} duration_ms={duration_ms}"
        )
        return PipelineReport(
            ok=summary.overall_status != OverallStatus.FAILED,
            project_id=ctx.project_id,
            overall_status=summary.overall_status,
            analysis=analysis,
            plan=plan_result,
            execution=execution,
            test=test_result,
            fix=fix_result,
            summary=summary,
            logs=ctx.logs,
        )
