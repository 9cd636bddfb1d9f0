"""Pipeline module: the stage table and the executor that consumes it.

- Action/Stage/StageResult/RunResult: data model for one run
- STAGES/EPILOGUE: the single ordered stage definition
- PipelineOrchestrator: computes included stages and executes them
"""

from .models import (
    Action,
    FailurePolicy,
    RunOutcome,
    RunResult,
    Stage,
    StageContext,
    StageKind,
    StageResult,
    StageStatus,
)
from .orchestrator import PipelineOrchestrator
from .stages import EPILOGUE, STAGES, stage_names, stages_for

__all__ = [
    "Action",
    "FailurePolicy",
    "RunOutcome",
    "RunResult",
    "Stage",
    "StageContext",
    "StageKind",
    "StageResult",
    "StageStatus",
    "PipelineOrchestrator",
    "EPILOGUE",
    "STAGES",
    "stage_names",
    "stages_for",
]
