"""
plan: analysis -> ordered, typed build steps.
Without a usable plan from the model, each objective becomes an echo command.
"""
import logging
import shlex

from pydantic import ValidationError

from app.llm.client import Generator
from app.llm.prompts import PLAN_SYSTEM_PROMPT, get_plan_prompt
from app.llm.schemas import (
    CommandStepOutput,
    DependencyStepOutput,
    DeployStepOutput,
    FileStepOutput,
    PlanOutput,
    TestStepOutput,
)
from app.pipeline.models import (
    AnalysisResult,
    CommandStep,
    DependencyStep,
    DeployStep,
    FileStep,
    PipelineContext,
    PlanResult,
    PlanStep,
    TestStep,
)

logger = logging.getLogger(__name__)


def to_plan_step(output) -> PlanStep:
    """Convert a validated step into its dataclass variant."""
    if isinstance(output, FileStepOutput):
        return FileStep(order=output.order, path=output.path, content=output.content,
                        description=output.description)
    if isinstance(output, CommandStepOutput):
        return CommandStep(order=output.order, commands=output.commands, description=output.description)
    if isinstance(output, DependencyStepOutput):
        return DependencyStep(order=output.order, packages=output.packages, manager=output.manager,
                              description=output.description)
    if isinstance(output, TestStepOutput):
        return TestStep(order=output.order, commands=output.commands, description=output.description)
    if isinstance(output, DeployStepOutput):
        return DeployStep(order=output.order, commands=output.commands, target=output.target,
                          description=output.description)
    raise TypeError(f"Unsupported step output: {type(output).__name__}")


def fallback_plan(analysis: AnalysisResult) -> list[PlanStep]:
    return [
        CommandStep(
            order=index,
            commands=[shlex.join(["echo", objective])],
            description=f"Objective {index}",
        )
        for index, objective in enumerate(analysis.objectives, start=1)
    ]


async def plan(ctx: PipelineContext, analysis: AnalysisResult, generator: Generator) -> PlanResult:
    ctx.log(f"plan:objectives:{len(analysis.objectives)}")

    analysis_view = {
        "objectives": analysis.objectives,
        "requirements": analysis.requirements,
        "constraints": analysis.constraints,
        "technologies": analysis.technologies,
    }
    try:
        data, error = await generator.generate_json(PLAN_SYSTEM_PROMPT, get_plan_prompt(ctx.prompt, analysis_view))
        if data is not None:
            output = PlanOutput.model_validate(data)
            result = PlanResult(steps=[to_plan_step(step) for step in output.steps])
            ctx.log(f"plan:steps:{len(result.steps)}")
            return result
    except ValidationError as e:
        error = f"Validation error: {str(e)[:200]}"
    except Exception as e:
        error = f"{type(e).__name__}: {e}"

    logger.info("plan_fallback", extra={"stage": "plan"})
    steps = fallback_plan(analysis)
    ctx.log(f"plan:fallback:steps:{len(steps)}")
    return PlanResult(steps=steps, source="fallback", error=error)
