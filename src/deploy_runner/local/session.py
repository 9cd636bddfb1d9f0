"""Local command execution session."""

from __future__ import annotations

import os
import selectors
import subprocess
import sys
import time
from dataclasses import dataclass
from typing import Mapping, Optional


@dataclass
class LocalCommandResult:
    """Result of executing a local command."""
    command: str
    stdout: str
    stderr: str
    exit_status: int

    @property
    def ok(self) -> bool:
        return self.exit_status == 0


class LocalSession:
    """
    Local command execution session.

    Provides the same interface as SSHSession but executes commands on the
    machine running the pipeline, under bash.
    """

    def __init__(self, working_dir: Optional[str] = None) -> None:
        """
        Initialize local session.

        Args:
            working_dir: Working directory for commands. Defaults to the current directory.
        """
        self.working_dir = working_dir or os.getcwd()
        self._connected = False

    def connect(self) -> None:
        """No-op for local session (for API compatibility with SSHSession)."""
        self._connected = True

    def close(self) -> None:
        """No-op for local session (for API compatibility with SSHSession)."""
        self._connected = False

    def __enter__(self) -> "LocalSession":
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def run(
        self,
        command: str,
        *,
        timeout: Optional[int] = None,
        env: Optional[Mapping[str, str]] = None,
        input: Optional[str] = None,
        stream_output: bool = True,
    ) -> LocalCommandResult:
        """
        Execute a command locally.

        Args:
            command: The command to execute
            timeout: Total timeout in seconds (default: 600)
            env: Extra environment variables layered over the current environment
            input: Text written to the command's stdin
            stream_output: Whether to echo output in real-time

        Returns:
            LocalCommandResult with stdout, stderr, and exit status
        """
        # 设置默认总超时
        if timeout is None:
            timeout = 600

        if stream_output and input is None:
            return self._run_streaming(command, timeout, env)
        return self._run_blocking(command, timeout, env, input)

    def _run_blocking(
        self,
        command: str,
        timeout: int,
        env: Optional[Mapping[str, str]],
        input: Optional[str],
    ) -> LocalCommandResult:
        """Run command and wait for completion."""
        try:
            result = subprocess.run(
                command,
                shell=True,
                capture_output=True,
                text=True,
                input=input,
                timeout=timeout,
                cwd=self.working_dir,
                env=self._get_env(env),
                executable="/bin/bash",
            )
        except subprocess.TimeoutExpired:
            return LocalCommandResult(
                command=command,
                stdout="",
                stderr=f"Command timed out after {timeout} seconds",
                exit_status=-1,
            )
        except OSError as e:
            return LocalCommandResult(
                command=command,
                stdout="",
                stderr=str(e),
                exit_status=-1,
            )

        return LocalCommandResult(
            command=command,
            stdout=result.stdout.strip(),
            stderr=result.stderr.strip(),
            exit_status=result.returncode,
        )

    def _run_streaming(
        self,
        command: str,
        timeout: int,
        env: Optional[Mapping[str, str]],
    ) -> LocalCommandResult:
        """Run command with real-time output streaming and a total timeout."""
        try:
            process = subprocess.Popen(
                command,
                shell=True,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                cwd=self.working_dir,
                env=self._get_env(env),
                executable="/bin/bash",
            )
        except OSError as e:
            return LocalCommandResult(command=command, stdout="", stderr=str(e), exit_status=-1)

        stdout_chunks = []
        stderr_chunks = []
        start_time = time.time()

        sel = selectors.DefaultSelector()
        sel.register(process.stdout, selectors.EVENT_READ)
        sel.register(process.stderr, selectors.EVENT_READ)

        try:
            while process.poll() is None:
                for key, _ in sel.select(timeout=0.1):
                    line = key.fileobj.readline()
                    if not line:
                        continue
                    if key.fileobj is process.stdout:
                        stdout_chunks.append(line)
                        sys.stdout.write(line)
                        sys.stdout.flush()
                    else:
                        stderr_chunks.append(line)
                        sys.stderr.write(line)
                        sys.stderr.flush()

                # 检查总超时
                if time.time() - start_time > timeout:
                    process.kill()
                    process.wait()
                    return LocalCommandResult(
                        command=command,
                        stdout="".join(stdout_chunks).strip(),
                        stderr=f"TOTAL_TIMEOUT: Command exceeded {timeout} seconds total execution time.",
                        exit_status=-2,
                    )

            # 读取剩余输出
            for line in process.stdout:
                stdout_chunks.append(line)
                sys.stdout.write(line)
            for line in process.stderr:
                stderr_chunks.append(line)
                sys.stderr.write(line)
            sys.stdout.flush()
            sys.stderr.flush()
        finally:
            sel.close()

        return LocalCommandResult(
            command=command,
            stdout="".join(stdout_chunks).strip(),
            stderr="".join(stderr_chunks).strip(),
            exit_status=process.returncode or 0,
        )

    def _get_env(self, extra: Optional[Mapping[str, str]] = None) -> dict:
        """Get environment variables for subprocess."""
        env = os.environ.copy()

        # 确保常用工具在 PATH 中
        current_path = env.get("PATH", "")
        for p in (os.path.expanduser("~/.local/bin"), "/usr/local/bin"):
            if os.path.exists(p) and p not in current_path.split(os.pathsep):
                current_path = p + os.pathsep + current_path
        env["PATH"] = current_path

        if extra:
            env.update(extra)
        return env
