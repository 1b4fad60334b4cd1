"""
Pydantic schemas for structured LLM output.
Every stage validates the model's JSON here before using it.
"""
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

MAX_PLAN_STEPS = 50


def _as_str_list(value: Any) -> list[str]:
    """Accept a single string or a list of scalars."""
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, list):
        return [str(item) for item in value if item is not None and str(item).strip()]
    return [str(value)]


class AnalysisOutput(BaseModel):
    objectives: list[str] = Field(default_factory=list)
    requirements: list[str] = Field(default_factory=list)
    constraints: list[str] = Field(default_factory=list)
    technologies: list[str] = Field(default_factory=list)

    @field_validator("objectives", "requirements", "constraints", "technologies", mode="before")
    @classmethod
    def coerce_lists(cls, v):
        return _as_str_list(v)


class _StepBase(BaseModel):
    order: int = Field(..., ge=0)
    description: str = Field(default="", max_length=500)


class FileStepOutput(_StepBase):
    type: Literal["file"]
    path: str = Field(..., min_length=1, max_length=500)
    content: str = ""


class CommandStepOutput(_StepBase):
    type: Literal["command"]
    commands: list[str] = Field(..., min_length=1)

    @field_validator("commands", mode="before")
    @classmethod
    def coerce_commands(cls, v):
        return _as_str_list(v)


class DependencyStepOutput(_StepBase):
    type: Literal["dependency"]
    packages: list[str] = Field(..., min_length=1)
    manager: Literal["npm", "pip"] = "npm"

    @field_validator("packages", mode="before")
    @classmethod
    def coerce_packages(cls, v):
        return _as_str_list(v)


class TestStepOutput(_StepBase):
    type: Literal["test"]
    commands: list[str] = Field(default_factory=lambda: ["npm test"])

    @field_validator("commands", mode="before")
    @classmethod
    def coerce_commands(cls, v):
        return _as_str_list(v) or ["npm test"]


class DeployStepOutput(_StepBase):
    type: Literal["deploy"]
    commands: list[str] = Field(..., min_length=1)
    target: Optional[str] = None

    @field_validator("commands", mode="before")
    @classmethod
    def coerce_commands(cls, v):
        return _as_str_list(v)


StepOutput = Annotated[
    Union[FileStepOutput, CommandStepOutput, DependencyStepOutput, TestStepOutput, DeployStepOutput],
    Field(discriminator="type"),
]


class PlanOutput(BaseModel):
    steps: list[StepOutput] = Field(..., min_length=1, max_length=MAX_PLAN_STEPS)


class FileChangeOutput(BaseModel):
    path: str = Field(..., min_length=1)
    content: str = ""


class FixOutput(BaseModel):
    description: str = "Unknown issue"
    type: Literal["code_fix", "dependency_fix", "config_fix", "test_fix"] = "code_fix"
    files: list[FileChangeOutput] = Field(default_factory=list)
    commands: list[str] = Field(default_factory=list)
    explanation: str = ""

    @field_validator("commands", mode="before")
    @classmethod
    def coerce_commands(cls, v):
        return _as_str_list(v)


class SummaryOutput(BaseModel):
    overall_status: Literal["success", "partial_success", "failed"]
    summary: str = "Pipeline execution completed"
    key_achievements: list[str] = Field(default_factory=list)
    issues_encountered: list[str] = Field(default_factory=list)
    fixes_applied: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    metrics: dict[str, Any] = Field(default_factory=dict)
    deployment_status: str = "unknown"

    @field_validator(
        "key_achievements", "issues_encountered", "fixes_applied", "recommendations",
        mode="before",
    )
    @classmethod
    def coerce_lists(cls, v):
        return _as_str_list(v)
