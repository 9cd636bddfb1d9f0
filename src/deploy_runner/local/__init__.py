"""Local execution module for running the pipeline on the current machine."""

from .session import LocalSession, LocalCommandResult

__all__ = ["LocalSession", "LocalCommandResult"]
