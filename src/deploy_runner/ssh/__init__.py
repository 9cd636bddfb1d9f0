"""SSH utilities for running the pipeline on a remote build agent."""

from .credentials import SSHCredentials
from .session import SSHCommandResult, SSHConnectionError, SSHSession

__all__ = [
    "SSHCredentials",
    "SSHCommandResult",
    "SSHConnectionError",
    "SSHSession",
]
