"""
Pipeline data model: payload, per-run context and stage result records.

Each stage returns one of these records; later stages read them but never
mutate an earlier stage's result.
"""
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Union


def _dict_factory(items: list[tuple[str, Any]]) -> dict[str, Any]:
    return {key: (value.value if isinstance(value, Enum) else value) for key, value in items}


@dataclass(frozen=True)
class PipelinePayload:
    """Queue message: immutable once enqueued."""
    project_id: str
    prompt: str

    def to_dict(self) -> dict[str, str]:
        return {"project_id": self.project_id, "prompt": self.prompt}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PipelinePayload":
        return cls(project_id=str(data["project_id"]), prompt=str(data["prompt"]))


@dataclass
class PipelineContext:
    """Per-run state: owned by one orchestrator invocation, never shared."""
    project_id: str
    prompt: str
    logs: list[str] = field(default_factory=list)

    def log(self, marker: str) -> None:
        """Append a progress marker. The log is append-only."""
        self.logs.append(marker)


# =============================================================================
# analyze / plan
# =============================================================================

@dataclass
class AnalysisResult:
    objectives: list[str]
    requirements: list[str] = field(default_factory=list)
    constraints: list[str] = field(default_factory=list)
    technologies: list[str] = field(default_factory=list)
    source: str = "llm"  # "llm" or "fallback"
    error: Optional[str] = None


class StepType(str, Enum):
    """Closed set of plan step kinds."""
    FILE = "file"
    COMMAND = "command"
    DEPENDENCY = "dependency"
    TEST = "test"
    DEPLOY = "deploy"


@dataclass
class FileStep:
    """Create or overwrite one file through the file-write capability."""
    order: int
    path: str
    content: str
    description: str = ""
    type: StepType = field(default=StepType.FILE, init=False)


@dataclass
class CommandStep:
    order: int
    commands: list[str]
    description: str = ""
    type: StepType = field(default=StepType.COMMAND, init=False)


@dataclass
class DependencyStep:
    order: int
    packages: list[str]
    description: str = ""
    manager: str = "npm"
    type: StepType = field(default=StepType.DEPENDENCY, init=False)


@dataclass
class TestStep:
    __test__ = False

    order: int
    commands: list[str]
    description: str = ""
    type: StepType = field(default=StepType.TEST, init=False)


@dataclass
class DeployStep:
    order: int
    commands: list[str]
    description: str = ""
    target: Optional[str] = None
    type: StepType = field(default=StepType.DEPLOY, init=False)


PlanStep = Union[FileStep, CommandStep, DependencyStep, TestStep, DeployStep]


def step_name(step: PlanStep) -> str:
    return step.description or f"{step.type.value} #{step.order}"


@dataclass
class PlanResult:
    steps: list[PlanStep]
    source: str = "llm"
    error: Optional[str] = None

    def ordered(self) -> list[PlanStep]:
        """Steps by ascending order; ties keep plan position (stable sort)."""
        return sorted(self.steps, key=lambda step: step.order)


# =============================================================================
# execute / test / fix
# =============================================================================

@dataclass
class StepResult:
    step_id: str
    step_name: str
    step_type: StepType
    success: bool
    output: str = ""
    error: Optional[str] = None


@dataclass
class ExecutionResult:
    ok: bool
    results: list[StepResult]
    success_count: int
    total_steps: int


@dataclass
class SuiteResult:
    name: str
    type: str
    passed: bool
    output: str = ""
    duration_ms: int = 0
    error: Optional[str] = None


@dataclass
class TestSummary:
    __test__ = False

    total: int = 0
    passed: int = 0
    failed: int = 0
    duration_ms: int = 0


@dataclass
class TestResult:
    __test__ = False

    passed: bool
    test_results: list[SuiteResult]
    coverage: float
    summary: TestSummary
    error: Optional[str] = None


@dataclass
class FileChange:
    path: str
    content: str


@dataclass
class FixRecord:
    test_name: str
    description: str
    type: str
    files: list[FileChange] = field(default_factory=list)
    commands: list[str] = field(default_factory=list)
    explanation: str = ""
    applied: bool = False


@dataclass
class FixResult:
    fixed: bool
    fixes: list[FixRecord]
    summary: str

    @property
    def applied_count(self) -> int:
        return sum(1 for fix in self.fixes if fix.applied)


# =============================================================================
# summarize / report
# =============================================================================

class OverallStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL_SUCCESS = "partial_success"
    FAILED = "failed"


@dataclass
class Summary:
    overall_status: OverallStatus
    summary: str
    key_achievements: list[str] = field(default_factory=list)
    issues_encountered: list[str] = field(default_factory=list)
    fixes_applied: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    metrics: dict[str, Any] = field(default_factory=dict)
    deployment_status: str = "unknown"
    execution_logs: list[str] = field(default_factory=list)
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    source: str = "llm"


@dataclass
class PipelineReport:
    """Everything one run produced. fix is present iff tests failed."""
    ok: bool
    project_id: str
    overall_status: OverallStatus
    analysis: AnalysisResult
    plan: PlanResult
    execution: ExecutionResult
    test: TestResult
    fix: Optional[FixResult]
    summary: Summary
    logs: list[str]

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready form stored as the queue job result."""
        return asdict(self, dict_factory=_dict_factory)
