"""Error hierarchy for deploy-runner."""

from __future__ import annotations

from typing import Dict, List, Optional


class DeployRunnerError(RuntimeError):
    """Base class for errors raised by deploy-runner."""


class StageError(DeployRunnerError):
    """Raised by a stage body when its unit of work fails.

    The orchestrator decides whether the failure is fatal or absorbed
    based on the stage's failure policy.
    """

    def __init__(self, message: str, stage: Optional[str] = None) -> None:
        self.stage = stage
        super().__init__(message)


class CommandError(StageError):
    """Raised when an external tool exits with a non-zero status."""

    def __init__(self, command: str, exit_code: int, stderr: str) -> None:
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(f"Command `{command}` failed with code {exit_code}: {stderr}")


class RunTimeoutError(StageError):
    """Raised when the run-level deadline has passed."""


class MissingSecretError(DeployRunnerError):
    """Raised during preflight when included stages need absent secrets."""

    def __init__(self, missing: Dict[str, List[str]]) -> None:
        # secret 名称 -> 需要它的 stage 列表
        self.missing = missing
        details = ", ".join(
            f"{name} (needed by {', '.join(stages)})" for name, stages in missing.items()
        )
        super().__init__(f"Missing required secrets: {details}")
