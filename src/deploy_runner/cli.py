"""Command-line interface for deploy-runner."""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .config import AppConfig, load_config
from .errors import MissingSecretError
from .interaction import AutoResponseHandler, CLIInteractionHandler, UserInteractionHandler
from .local import LocalSession
from .pipeline import Action, PipelineOrchestrator, RunOutcome, RunResult
from .secrets import Secrets
from .ssh import SSHCredentials, SSHSession
from .tools import Toolbox
from .tools.base import Session
from .utils.logging import get_logger

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2
EXIT_ABORTED = 3

_STATUS_EMOJI = {
    "success": "✅",
    "success_with_warnings": "⚠️",
    "failed": "❌",
    "aborted": "🛑",
    "running": "🔄",
    "warning": "⚠️",
    "skipped": "⏭️",
}


@dataclass
class CLIContext:
    """Context captured from CLI arguments."""

    config: AppConfig
    secrets: Secrets


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="deploy-runner",
        description="Run the build/infra/deploy pipeline for a selected action.",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to a JSON config file overriding defaults.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Execute the pipeline for an action")
    run_parser.add_argument("--action", required=True, choices=Action.choices())
    run_parser.add_argument(
        "--yes", "-y", action="store_true",
        help="Confirm destructive stages without prompting",
    )
    run_parser.add_argument(
        "--parallel-images", action="store_true",
        help="Build and push client/server images concurrently",
    )
    run_parser.add_argument("--build-tag", default=None, help="Image tag (default: BUILD_NUMBER)")

    plan_parser = subparsers.add_parser("plan", help="Show the stages an action would run")
    plan_parser.add_argument("--action", required=True, choices=Action.choices())

    # logs 子命令 - 查看运行日志
    logs_parser = subparsers.add_parser("logs", help="View pipeline run logs")
    logs_parser.add_argument(
        "--list", "-l", action="store_true", dest="list_logs",
        help="List all available run logs",
    )
    logs_parser.add_argument("--latest", action="store_true", help="Show the latest run log")
    logs_parser.add_argument("--file", "-f", type=str, help="Show a specific log file")

    return parser


def _build_context(args: argparse.Namespace) -> CLIContext:
    config = load_config(args.config)
    if getattr(args, "parallel_images", False):
        config.execution.parallel_images = True
    if getattr(args, "build_tag", None):
        config.docker.build_tag = args.build_tag
    return CLIContext(config=config, secrets=Secrets.from_env())


def build_session(config: AppConfig) -> Session:
    """Create the execution session selected by ``execution.target``."""
    if config.execution.target == "local":
        return LocalSession(working_dir=config.execution.working_dir)
    if config.execution.target == "ssh":
        ssh = config.ssh
        missing = [name for name, value in (("host", ssh.host), ("username", ssh.username)) if not value]
        if missing:
            raise ValueError("Missing SSH connection values: " + ", ".join(missing))
        credentials = SSHCredentials(
            host=ssh.host,
            username=ssh.username,
            port=ssh.port,
            auth_method=ssh.auth_method or "key",
            password=ssh.password,
            key_path=ssh.key_path,
        )
        credentials.validate()
        return SSHSession(credentials, working_dir=config.execution.working_dir)
    raise ValueError(f"Unsupported execution target: {config.execution.target}")


def _interaction_handler(args: argparse.Namespace) -> UserInteractionHandler:
    if args.yes:
        return AutoResponseHandler(always_confirm=True)
    if not sys.stdin.isatty():
        # 非交互环境（CI）中未加 --yes 时拒绝破坏性操作
        return AutoResponseHandler(always_confirm=False)
    return CLIInteractionHandler()


def print_run_summary(result: RunResult) -> None:
    print(f"\n{'=' * 60}")
    print(f"{_STATUS_EMOJI.get(result.outcome.value, '❓')} Action: {result.action.value}")
    print(f"   Outcome: {result.outcome.value}")
    print(f"{'=' * 60}")
    for stage_result in result.stages:
        icon = _STATUS_EMOJI.get(stage_result.status.value, "•")
        print(f"  {icon} {stage_result.name:<28} {stage_result.status.value:<8} "
              f"{stage_result.duration_seconds:6.1f}s")
        if stage_result.error:
            print(f"      └ {stage_result.error[:200]}")
    if result.epilogue:
        icon = _STATUS_EMOJI.get(result.epilogue.status.value, "•")
        print(f"  {icon} {result.epilogue.name:<28} {result.epilogue.status.value}")
    if result.failed_stage:
        print(f"\n❌ Failed stage: {result.failed_stage}")
    if result.log_file:
        print(f"\n📄 Log: {result.log_file}")
    print(f"{'=' * 60}\n")


def handle_run_command(
    args: argparse.Namespace,
    context: CLIContext,
    session: Optional[Session] = None,
    interaction_handler: Optional[UserInteractionHandler] = None,
) -> int:
    session = session or build_session(context.config)
    toolbox = Toolbox(session, context.config, context.secrets)
    orchestrator = PipelineOrchestrator(
        context.config,
        context.secrets,
        toolbox,
        interaction_handler or _interaction_handler(args),
    )
    try:
        with session:
            result = orchestrator.run(Action.parse(args.action))
    except MissingSecretError as exc:
        print(f"❌ {exc}")
        return EXIT_USAGE

    print_run_summary(result)
    if result.outcome is RunOutcome.ABORTED:
        return EXIT_ABORTED
    return EXIT_OK if result.ok else EXIT_FAILED


def handle_plan_command(args: argparse.Namespace, context: CLIContext) -> int:
    action = Action.parse(args.action)
    orchestrator = PipelineOrchestrator(context.config, context.secrets, toolbox=None)  # type: ignore[arg-type]
    print(f"\n📋 Stages for '{action.value}':")
    for i, name in enumerate(orchestrator.preview(action), 1):
        print(f"  {i:2}. {name}")
    try:
        orchestrator.preflight(action)
    except MissingSecretError as exc:
        print(f"\n⚠️  {exc}")
    print()
    return EXIT_OK


def handle_logs_command(args: argparse.Namespace, context: CLIContext) -> int:
    """Handle the logs subcommand."""
    log_dir = Path(context.config.logging.run_log_dir)

    if not log_dir.exists():
        print("📁 No run logs found. Run a pipeline first.")
        return EXIT_OK

    log_files = sorted(log_dir.glob("run_*.json"), key=lambda p: p.stat().st_mtime, reverse=True)
    if not log_files:
        print("📁 No run logs found.")
        return EXIT_OK

    if args.list_logs:
        print(f"📁 Run logs in: {log_dir}\n")
        print(f"{'#':<4} {'Status':<26} {'Action':<28} {'Time':<20} {'File'}")
        print("-" * 100)
        for i, log_file in enumerate(log_files, 1):
            try:
                with open(log_file, "r", encoding="utf-8") as f:
                    data = json.load(f)
            except (OSError, json.JSONDecodeError):
                print(f"{i:<4} ❓ {'unreadable':<24} {'?':<28} {'?':<20} {log_file.name}")
                continue
            status = data.get("status", "unknown")
            start_time = (data.get("start_time") or "")[:19].replace("T", " ")
            print(f"{i:<4} {_STATUS_EMOJI.get(status, '❓')} {status:<24} "
                  f"{data.get('action', '?'):<28} {start_time:<20} {log_file.name}")
        return EXIT_OK

    target_file = log_files[0]
    if args.file:
        target_file = Path(args.file)
        if not target_file.exists():
            target_file = log_dir / args.file
        if not target_file.exists():
            print(f"❌ Log file not found: {args.file}")
            return EXIT_FAILED

    show_log_file(target_file)
    return EXIT_OK


def show_log_file(log_file: Path) -> None:
    """Display a run log file."""
    with open(log_file, "r", encoding="utf-8") as f:
        data = json.load(f)

    status = data.get("status", "unknown")
    print(f"\n{'=' * 60}")
    print(f"📄 Run Log: {log_file.name}")
    print(f"{'=' * 60}")
    print(f"🎯 Action:  {data.get('action', 'N/A')}")
    print(f"⏰ Started: {data.get('start_time', 'N/A')}")
    print(f"⏱️  Ended:   {data.get('end_time', 'N/A')}")
    print(f"{_STATUS_EMOJI.get(status, '❓')} Status:  {status}")
    print(f"{'=' * 60}\n")

    for entry in data.get("stages", []) + ([data["epilogue"]] if data.get("epilogue") else []):
        icon = _STATUS_EMOJI.get(entry.get("status"), "•")
        print(f"{icon} {entry.get('stage')} ({entry.get('status')})")
        for cmd in entry.get("commands", []):
            print(f"    $ {cmd.get('command')}  [exit {cmd.get('exit_code')}]")
        if entry.get("error"):
            print(f"    ⚠️ {entry['error'][:300]}")
        print()


def dispatch_command(args: argparse.Namespace, session: Optional[Session] = None) -> int:
    context = _build_context(args)
    get_logger(__name__, context.config.logging.level)

    if args.command == "plan":
        return handle_plan_command(args, context)
    if args.command == "logs":
        return handle_logs_command(args, context)
    if args.command == "run":
        return handle_run_command(args, context, session=session)

    raise ValueError(f"Unsupported command: {args.command}")


def run_cli(argv: Optional[list[str]] = None, session: Optional[Session] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    return dispatch_command(args, session=session)
