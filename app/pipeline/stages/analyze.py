"""
analyze: prompt -> objectives, requirements, constraints, technologies.
Falls back to the raw prompt as the sole objective; never aborts the run.
"""
import logging

from pydantic import ValidationError

from app.llm.client import Generator
from app.llm.prompts import ANALYZE_SYSTEM_PROMPT, get_analyze_prompt
from app.llm.schemas import AnalysisOutput
from app.pipeline.models import AnalysisResult, PipelineContext

logger = logging.getLogger(__name__)


async def analyze(ctx: PipelineContext, generator: Generator) -> AnalysisResult:
    ctx.log(f"analyze:prompt:{ctx.prompt[:100]}")

    try:
        data, error = await generator.generate_json(ANALYZE_SYSTEM_PROMPT, get_analyze_prompt(ctx.prompt))
        if data is not None:
            output = AnalysisOutput.model_validate(data)
            if output.objectives:
                ctx.log(f"analyze:objectives:{len(output.objectives)}")
                return AnalysisResult(
                    objectives=output.objectives,
                    requirements=output.requirements,
                    constraints=output.constraints,
                    technologies=output.technologies,
                )
            error = "Analysis returned no objectives"
    except ValidationError as e:
        error = f"Validation error: {str(e)[:200]}"
    except Exception as e:
        error = f"{type(e).__name__}: {e}"

    logger.info("analyze_fallback", extra={"stage": "analyze"})
    ctx.log("analyze:fallback")
    return AnalysisResult(objectives=[ctx.prompt], source="fallback", error=error)
