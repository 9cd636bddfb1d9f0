"""SSH session management built on Paramiko."""

from __future__ import annotations

import shlex
import sys
import time
from dataclasses import dataclass
from typing import Callable, List, Mapping, Optional

import paramiko

from .credentials import SSHCredentials

_CHUNK_SIZE = 32768


class SSHConnectionError(RuntimeError):
    """Raised when an SSH connection cannot be established."""

    pass


@dataclass
class SSHCommandResult:
    command: str
    stdout: str
    stderr: str
    exit_status: int

    @property
    def ok(self) -> bool:
        return self.exit_status == 0


class SSHSession:
    """High-level wrapper around paramiko.SSHClient.

    Exposes the same ``run`` signature as :class:`LocalSession`, so the
    pipeline tools can drive a remote build agent unchanged.
    """

    def __init__(
        self,
        credentials: SSHCredentials,
        *,
        working_dir: Optional[str] = None,
        client_factory: Callable[[], paramiko.SSHClient] | None = None,
    ) -> None:
        self.credentials = credentials
        self.working_dir = working_dir
        self._client_factory = client_factory or paramiko.SSHClient
        self._client: Optional[paramiko.SSHClient] = None

    def __enter__(self) -> "SSHSession":
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        self.close()

    def connect(self) -> None:
        if self._client:
            return
        client = self._client_factory()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            connect_kwargs = {
                "hostname": self.credentials.host,
                "port": self.credentials.port,
                "username": self.credentials.username,
                "timeout": self.credentials.timeout,
                "look_for_keys": False,
                "allow_agent": False,
            }
            if self.credentials.auth_method == "password":
                connect_kwargs["password"] = self.credentials.password
            else:
                connect_kwargs["key_filename"] = self.credentials.key_path
                if self.credentials.passphrase:
                    connect_kwargs["passphrase"] = self.credentials.passphrase
            client.connect(**connect_kwargs)
        except Exception as exc:  # pragma: no cover - network errors hard to simulate
            client.close()
            raise SSHConnectionError(str(exc)) from exc
        self._client = client

    def close(self) -> None:
        if self._client:
            self._client.close()
            self._client = None

    def run(
        self,
        command: str,
        *,
        timeout: Optional[int] = None,
        env: Optional[Mapping[str, str]] = None,
        input: Optional[str] = None,
        stream_output: bool = True,
    ) -> SSHCommandResult:
        """
        Execute a command on the remote build agent.

        Environment entries are exported inline rather than through
        ``exec_command(environment=...)``, since most sshd configs reject
        unknown variables via AcceptEnv.

        Output is drained while the command runs so a chatty build cannot
        fill the channel window and stall before exiting. A command still
        running after ``timeout`` seconds is abandoned with exit status -1.
        """
        if not self._client:
            self.connect()
        assert self._client is not None

        # 设置默认总超时
        if timeout is None:
            timeout = 600

        actual_command = self._wrap(command, env)
        stdin, stdout, _ = self._client.exec_command(actual_command, timeout=timeout)

        if input is not None and stdin is not None:
            stdin.write(input)
            stdin.flush()
            stdin.channel.shutdown_write()

        channel = stdout.channel
        stdout_chunks: List[bytes] = []
        stderr_chunks: List[bytes] = []
        start_time = time.time()

        while True:
            has_activity = self._drain(channel, stdout_chunks, stderr_chunks, stream_output)
            if channel.exit_status_ready() and not (channel.recv_ready() or channel.recv_stderr_ready()):
                break

            # 检查总超时
            if time.time() - start_time > timeout:
                channel.close()
                return SSHCommandResult(
                    command=command,
                    stdout=b"".join(stdout_chunks).decode("utf-8", errors="replace").strip(),
                    stderr=f"TIMEOUT: Command did not complete within {timeout} seconds.",
                    exit_status=-1,
                )

            if not has_activity:
                time.sleep(0.1)

        exit_status = channel.recv_exit_status()
        return SSHCommandResult(
            command=command,
            stdout=b"".join(stdout_chunks).decode("utf-8", errors="replace").strip(),
            stderr=b"".join(stderr_chunks).decode("utf-8", errors="replace").strip(),
            exit_status=exit_status,
        )

    @staticmethod
    def _drain(channel, stdout_chunks: List[bytes], stderr_chunks: List[bytes], echo: bool) -> bool:
        """Read whatever is buffered on the channel; True if anything was read."""
        has_activity = False
        while channel.recv_ready():
            chunk = channel.recv(_CHUNK_SIZE)
            if not chunk:
                break
            stdout_chunks.append(chunk)
            if echo:
                sys.stdout.write(chunk.decode("utf-8", errors="replace"))
                sys.stdout.flush()
            has_activity = True
        while channel.recv_stderr_ready():
            chunk = channel.recv_stderr(_CHUNK_SIZE)
            if not chunk:
                break
            stderr_chunks.append(chunk)
            if echo:
                sys.stderr.write(chunk.decode("utf-8", errors="replace"))
                sys.stderr.flush()
            has_activity = True
        return has_activity

    def _wrap(self, command: str, env: Optional[Mapping[str, str]]) -> str:
        parts = []
        if self.working_dir:
            parts.append(f"cd {shlex.quote(self.working_dir)}")
        for key, value in (env or {}).items():
            parts.append(f"export {key}={shlex.quote(value)}")
        parts.append(command)
        return " && ".join(parts)
