"""Shared command execution for the external tool wrappers."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, List, Mapping, Optional, Protocol

from ..errors import CommandError

logger = logging.getLogger(__name__)

MASK = "***"


class Session(Protocol):
    """What the tools need from LocalSession / SSHSession."""

    def run(
        self,
        command: str,
        *,
        timeout: Optional[int] = None,
        env: Optional[Mapping[str, str]] = None,
        input: Optional[str] = None,
        stream_output: bool = True,
    ) -> Any: ...


@dataclass
class CommandRecord:
    """命令执行记录（已脱敏）"""
    command: str
    success: bool
    exit_code: int
    stdout: str
    stderr: str
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self, max_stdout: int = 1000, max_stderr: int = 500) -> dict:
        return {
            "command": self.command,
            "success": self.success,
            "exit_code": self.exit_code,
            "stdout": self.stdout[:max_stdout],
            "stderr": self.stderr[:max_stderr],
            "timestamp": self.timestamp,
        }


class CommandRunner:
    """Runs commands through a session, masking secrets and recording results."""

    def __init__(
        self,
        session: Session,
        *,
        records: Optional[List[CommandRecord]] = None,
        secrets: Iterable[str] = (),
        timeout: Optional[int] = None,
    ) -> None:
        self.session = session
        self.records = records if records is not None else []
        self.secrets = [s for s in secrets if s]
        self.timeout = timeout

    def mask(self, text: str) -> str:
        for secret in self.secrets:
            text = text.replace(secret, MASK)
        return text

    def run(
        self,
        command: str,
        *,
        env: Optional[Mapping[str, str]] = None,
        input: Optional[str] = None,
        check: bool = True,
        stream_output: bool = True,
    ) -> Any:
        display = self.mask(command)
        logger.info("   $ %s", display)
        result = self.session.run(
            command,
            timeout=self.timeout,
            env=env,
            input=input,
            stream_output=stream_output,
        )
        record = CommandRecord(
            command=display,
            success=result.ok,
            exit_code=result.exit_status,
            stdout=self.mask(result.stdout or ""),
            stderr=self.mask(result.stderr or ""),
        )
        self.records.append(record)
        if check and not result.ok:
            raise CommandError(display, result.exit_status, record.stderr)
        return result
