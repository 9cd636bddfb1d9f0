"""Pipeline orchestrator: runs the stages an Action includes, in table order."""

from __future__ import annotations

import json
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from ..config import AppConfig
from ..errors import MissingSecretError, RunTimeoutError, StageError
from ..interaction import (
    CLIInteractionHandler,
    InteractionRequest,
    UserInteractionHandler,
)
from ..paths import get_runs_dir
from ..secrets import ENV_NAMES, Secrets
from ..tools import CommandRecord, Toolbox
from .models import (
    Action,
    RunOutcome,
    RunResult,
    Stage,
    StageContext,
    StageResult,
    StageStatus,
)
from .stages import EPILOGUE, STAGES, stages_for

logger = logging.getLogger(__name__)


class PipelineOrchestrator:
    """
    部署流水线编排器

    Computes the ordered stage subsequence for one Action, checks secrets,
    asks for confirmation before destructive stages, then executes each
    stage in turn. The first fatal failure stops the run; best-effort
    failures are logged and absorbed. The epilogue always runs.
    """

    def __init__(
        self,
        config: AppConfig,
        secrets: Secrets,
        toolbox: Toolbox,
        interaction_handler: Optional[UserInteractionHandler] = None,
        *,
        stages: Sequence[Stage] = STAGES,
        epilogue: Optional[Stage] = EPILOGUE,
        log_dir: Optional[str] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self.secrets = secrets
        self.toolbox = toolbox
        self.interaction_handler = interaction_handler or CLIInteractionHandler()
        self.stages = stages
        self.epilogue = epilogue
        self.log_dir = Path(log_dir or config.logging.run_log_dir)
        self.clock = clock

        self._deadline: Optional[float] = None
        self._log_lock = threading.Lock()
        self.run_log: Dict[str, Any] = {}
        self.current_log_file: Optional[Path] = None

    # ------------------------------------------------------------------
    # planning
    # ------------------------------------------------------------------

    def preview(self, action: Union[Action, str]) -> List[str]:
        """Ordered stage names for ``action`` plus the epilogue, without executing."""
        names = [stage.name for stage in stages_for(Action.parse(action), self.stages)]
        if self.epilogue:
            names.append(self.epilogue.name)
        return names

    def preflight(self, action: Action) -> List[Stage]:
        """Return included stages or raise if any of their secrets is absent."""
        included = stages_for(action, self.stages)
        missing: Dict[str, List[str]] = {}
        for stage in included:
            for name in self.secrets.missing(stage.required_secrets):
                missing.setdefault(ENV_NAMES.get(name, name), []).append(stage.name)
        if missing:
            raise MissingSecretError(missing)
        return included

    # ------------------------------------------------------------------
    # execution
    # ------------------------------------------------------------------

    def run(self, action: Union[Action, str]) -> RunResult:
        """
        执行一次流水线

        Raises:
            MissingSecretError: before anything runs, if a required secret is absent.
        """
        action = Action.parse(action)
        included = self.preflight(action)
        result = RunResult(action=action)
        self._init_log(action, included)

        run_timeout = self.config.execution.run_timeout
        self._deadline = self.clock() + run_timeout if run_timeout else None

        logger.info("")
        logger.info("=" * 60)
        logger.info("🚀 PIPELINE RUN: %s", action.value)
        logger.info("=" * 60)
        for i, stage in enumerate(included, 1):
            marker = " (best-effort)" if stage.best_effort else ""
            logger.info("  %d. [%s] %s%s", i, stage.kind.value.upper(), stage.name, marker)
        logger.info("")

        shared: Dict[str, Any] = {}
        try:
            if not self._confirm(action, included):
                logger.warning("🛑 Destructive stages not confirmed, aborting run")
                result.outcome = RunOutcome.ABORTED
                result.error = "Operator declined destructive stages"
            else:
                self._execute(action, included, shared, result)
        except KeyboardInterrupt:
            result.outcome = RunOutcome.ABORTED
            result.error = "Interrupted"
            raise
        except Exception as exc:
            result.outcome = RunOutcome.FAILED
            result.error = str(exc)
            raise
        finally:
            if self.epilogue:
                result.epilogue = self._run_epilogue(action, shared)
            self._finalize_log(result)

        return result

    def _confirm(self, action: Action, included: Sequence[Stage]) -> bool:
        destructive = [stage.name for stage in included if stage.destructive]
        if not destructive or not self.config.execution.require_confirmation:
            return True

        request = InteractionRequest(
            question=(
                f"Action '{action.value}' will run destructive stages: "
                f"{', '.join(destructive)}. Continue?"
            ),
            context="This removes infrastructure and/or local Terraform state.",
            default="n",
        )
        response = self.interaction_handler.ask(request)
        return response.confirmed

    def _execute(
        self,
        action: Action,
        included: Sequence[Stage],
        shared: Dict[str, Any],
        result: RunResult,
    ) -> None:
        parallel = self.config.execution.parallel_images
        i = 0
        while i < len(included):
            stage = included[i]
            if parallel and stage.lane:
                block = [stage]
                while i + len(block) < len(included) and included[i + len(block)].lane:
                    block.append(included[i + len(block)])
                batch = self._run_lanes(action, block, shared)
                i += len(block)
            else:
                batch = [self._run_stage(action, stage, shared)]
                i += 1

            for stage_result in batch:
                result.stages.append(stage_result)
                if stage_result.ok:
                    shared.update(stage_result.outputs)

            failed = next((r for r in batch if r.status is StageStatus.FAILED), None)
            if failed:
                result.outcome = RunOutcome.FAILED
                result.failed_stage = failed.name
                result.error = failed.error
                logger.error("❌ Run failed at stage '%s': %s", failed.name, failed.error)
                return

        if result.warnings:
            result.outcome = RunOutcome.SUCCESS_WITH_WARNINGS
            logger.info("⚠️  Run completed with warnings: %s", ", ".join(r.name for r in result.warnings))
        else:
            result.outcome = RunOutcome.SUCCESS
            logger.info("🎉 Run completed successfully")

    def _run_lanes(
        self,
        action: Action,
        block: Sequence[Stage],
        shared: Dict[str, Any],
    ) -> List[StageResult]:
        """
        Run image lanes concurrently; each lane is sequential internally.

        A fatal failure in one lane stops every lane before its next stage.
        A stage already running in another lane is allowed to finish.
        """
        lanes: Dict[str, List[Stage]] = {}
        for stage in block:
            lanes.setdefault(stage.lane or stage.name, []).append(stage)

        logger.info("⚡ Running image lanes in parallel: %s", ", ".join(lanes))
        abort = threading.Event()

        def run_lane(lane_stages: List[Stage]) -> List[StageResult]:
            done = []
            for stage in lane_stages:
                if abort.is_set():
                    logger.info("   ⏭️ %s not started, another lane failed", stage.name)
                    break
                stage_result = self._run_stage(action, stage, shared)
                done.append(stage_result)
                if stage_result.status is StageStatus.FAILED:
                    abort.set()
                    break
            return done

        with ThreadPoolExecutor(max_workers=len(lanes), thread_name_prefix="lane") as executor:
            futures = [executor.submit(run_lane, lane_stages) for lane_stages in lanes.values()]
            by_name = {r.name: r for future in futures for r in future.result()}

        # 按表顺序记录结果
        return [by_name[stage.name] for stage in block if stage.name in by_name]

    def _remaining(self) -> Optional[float]:
        if self._deadline is None:
            return None
        return self._deadline - self.clock()

    def _run_stage(self, action: Action, stage: Stage, shared: Dict[str, Any]) -> StageResult:
        logger.info("📍 Stage: %s", stage.name)
        records: List[CommandRecord] = []
        started = self.clock()

        remaining = self._remaining()
        if remaining is not None and remaining <= 0:
            error = RunTimeoutError(
                f"Run timeout of {self.config.execution.run_timeout}s exceeded before '{stage.name}'",
                stage=stage.name,
            )
            stage_result = StageResult(
                name=stage.name, status=StageStatus.FAILED, error=str(error), started=False
            )
            self._log_stage(stage_result)
            return stage_result

        timeout = self.config.execution.command_timeout
        if remaining is not None:
            timeout = max(1, min(timeout, int(remaining)))

        ctx = StageContext(
            stage=stage.name,
            action=action,
            config=self.config,
            secrets=self.secrets,
            tools=self.toolbox.bind(records, timeout),
            shared=dict(shared),
            commands=records,
        )

        outputs: Dict[str, Any] = {}
        error: Optional[str] = None
        try:
            outputs = stage.handler(ctx) or {}
            status = StageStatus.SUCCESS
            logger.info("   ✅ %s succeeded", stage.name)
        except StageError as exc:
            error = str(exc)
            if stage.best_effort:
                status = StageStatus.WARNING
                logger.warning("   ⚠️ %s failed (best-effort, continuing): %s", stage.name, error)
            else:
                status = StageStatus.FAILED
                logger.error("   ❌ %s failed: %s", stage.name, error)

        stage_result = StageResult(
            name=stage.name,
            status=status,
            error=error,
            duration_seconds=self.clock() - started,
            outputs=outputs,
            commands=records,
        )
        self._log_stage(stage_result)
        return stage_result

    def _run_epilogue(self, action: Action, shared: Dict[str, Any]) -> StageResult:
        assert self.epilogue is not None
        logger.info("🧹 Epilogue: %s", self.epilogue.name)
        records: List[CommandRecord] = []
        started = self.clock()
        ctx = StageContext(
            stage=self.epilogue.name,
            action=action,
            config=self.config,
            secrets=self.secrets,
            tools=self.toolbox.bind(records, self.config.execution.command_timeout),
            shared=dict(shared),
            commands=records,
        )
        try:
            self.epilogue.handler(ctx)
            status, error = StageStatus.SUCCESS, None
        except StageError as exc:
            status, error = StageStatus.WARNING, str(exc)
            logger.warning("   ⚠️ Epilogue failed: %s", error)
        except Exception as exc:
            status, error = StageStatus.WARNING, str(exc)
            logger.warning("   ⚠️ Epilogue raised %s: %s", type(exc).__name__, error)

        stage_result = StageResult(
            name=self.epilogue.name,
            status=status,
            error=error,
            duration_seconds=self.clock() - started,
            commands=records,
        )
        with self._log_lock:
            self.run_log["epilogue"] = stage_result.to_dict()
            self._save_log()
        return stage_result

    # ------------------------------------------------------------------
    # run log
    # ------------------------------------------------------------------

    def _init_log(self, action: Action, included: Sequence[Stage]) -> None:
        """初始化日志文件"""
        self.log_dir = get_runs_dir(self.log_dir)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        self.current_log_file = self.log_dir / f"run_{action.value}_{timestamp}.json"
        self.run_log = {
            "version": "1.0",
            "action": action.value,
            "start_time": datetime.now().isoformat(),
            "end_time": None,
            "status": "running",
            "planned_stages": [stage.name for stage in included],
            "config": self.config.snapshot(),
            "secrets": self.secrets.masked(),
            "stages": [],
            "epilogue": None,
        }
        self._save_log()
        logger.info("📝 Logging to: %s", self.current_log_file)

    def _log_stage(self, stage_result: StageResult) -> None:
        with self._log_lock:
            self.run_log["stages"].append(stage_result.to_dict())
            self._save_log()

    def _finalize_log(self, result: RunResult) -> None:
        """完成日志记录"""
        with self._log_lock:
            self.run_log["end_time"] = datetime.now().isoformat()
            self.run_log["status"] = result.outcome.value
            self.run_log["summary"] = {
                "executed_stages": result.executed_stages,
                "warnings": [r.name for r in result.warnings],
                "failed_stage": result.failed_stage,
                "error": result.error,
                "duration_seconds": self._calculate_duration(),
            }
            self._save_log()
        result.log_file = str(self.current_log_file) if self.current_log_file else None
        logger.info("📄 Log saved to: %s", self.current_log_file)

    def _calculate_duration(self) -> float:
        start = datetime.fromisoformat(self.run_log["start_time"])
        end = datetime.fromisoformat(self.run_log["end_time"])
        return (end - start).total_seconds()

    def _save_log(self) -> None:
        if self.current_log_file:
            with open(self.current_log_file, "w", encoding="utf-8") as f:
                json.dump(self.run_log, f, indent=2, ensure_ascii=False, default=str)
