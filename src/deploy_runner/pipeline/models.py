"""Data models for the pipeline module."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Tuple, TYPE_CHECKING

if TYPE_CHECKING:
    from ..config import AppConfig
    from ..secrets import Secrets
    from ..tools import BoundTools, CommandRecord


class Action(str, Enum):
    """The single selector that decides which stages run."""
    DOCKER_ONLY = "docker-only"
    TERRAFORM_PLAN = "terraform-plan"
    TERRAFORM_APPLY = "terraform-apply"
    TERRAFORM_DESTROY = "terraform-destroy"
    FULL_DEPLOY = "full-deploy"
    TERRAFORM_CLEAN_AND_APPLY = "terraform-clean-and-apply"

    @classmethod
    def choices(cls) -> List[str]:
        return [a.value for a in cls]

    @classmethod
    def parse(cls, value: str) -> "Action":
        try:
            return cls(value)
        except ValueError:
            raise ValueError(
                f"Unknown action {value!r}; expected one of: {', '.join(cls.choices())}"
            ) from None


class StageKind(Enum):
    """Side-effect classification of a stage."""
    LOGIN = "login"
    BUILD = "build"
    PUSH = "push"
    PLAN = "plan"
    APPLY = "apply"
    DESTROY = "destroy"
    CONFIGURE = "configure"
    VERIFY = "verify"
    CLEANUP = "cleanup"


class FailurePolicy(Enum):
    FATAL = "fatal"
    BEST_EFFORT = "best_effort"     # 失败记录为 warning，继续执行


class StageStatus(Enum):
    """Stage 执行状态"""
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    WARNING = "warning"     # best-effort stage 失败被吸收
    SKIPPED = "skipped"


class RunOutcome(Enum):
    SUCCESS = "success"
    SUCCESS_WITH_WARNINGS = "success_with_warnings"
    FAILED = "failed"
    ABORTED = "aborted"


StageHandler = Callable[["StageContext"], Optional[Dict[str, Any]]]


@dataclass(frozen=True)
class Stage:
    """A named unit of pipeline work with an inclusion predicate and a failure policy."""
    name: str
    kind: StageKind
    policy: FailurePolicy
    actions: FrozenSet[Action]
    handler: StageHandler
    required_secrets: Tuple[str, ...] = ()
    destructive: bool = False
    lane: Optional[str] = None      # 并行镜像通道（client / server）

    def includes(self, action: Action) -> bool:
        return action in self.actions

    @property
    def best_effort(self) -> bool:
        return self.policy is FailurePolicy.BEST_EFFORT


@dataclass
class StageContext:
    """Everything a stage body may touch."""
    stage: str
    action: Action
    config: "AppConfig"
    secrets: "Secrets"
    tools: "BoundTools"
    # 之前 stage 的产出（只读副本）
    shared: Dict[str, Any] = field(default_factory=dict)
    commands: List["CommandRecord"] = field(default_factory=list)
    started: bool = True  # False when the stage was never entered


@dataclass
class StageResult:
    """Stage 执行结果"""
    name: str
    status: StageStatus
    error: Optional[str] = None
    duration_seconds: float = 0.0
    outputs: Dict[str, Any] = field(default_factory=dict)
    commands: List["CommandRecord"] = field(default_factory=list)
    started: bool = True  # False when the stage was never entered

    @property
    def ok(self) -> bool:
        return self.status in (StageStatus.SUCCESS, StageStatus.WARNING, StageStatus.SKIPPED)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stage": self.name,
            "status": self.status.value,
            "error": self.error,
            "duration_seconds": round(self.duration_seconds, 3),
            "outputs": self.outputs,
            "started": self.started,
            "commands": [c.to_dict() for c in self.commands],
        }


@dataclass
class RunResult:
    """One execution binding an Action to the stages that ran."""
    action: Action
    outcome: RunOutcome = RunOutcome.SUCCESS
    stages: List[StageResult] = field(default_factory=list)
    epilogue: Optional[StageResult] = None
    failed_stage: Optional[str] = None
    error: Optional[str] = None
    log_file: Optional[str] = None

    @property
    def executed_stages(self) -> List[str]:
        return [
            r.name for r in self.stages if r.started and r.status is not StageStatus.SKIPPED
        ]

    @property
    def warnings(self) -> List[StageResult]:
        return [r for r in self.stages if r.status is StageStatus.WARNING]

    @property
    def ok(self) -> bool:
        return self.outcome in (RunOutcome.SUCCESS, RunOutcome.SUCCESS_WITH_WARNINGS)

    def result_for(self, name: str) -> Optional[StageResult]:
        for r in self.stages:
            if r.name == name:
                return r
        return None
