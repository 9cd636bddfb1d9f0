"""Operator interaction module."""

from .handler import (
    UserInteractionHandler,
    InteractionRequest,
    InteractionResponse,
    CLIInteractionHandler,
    CallbackInteractionHandler,
    AutoResponseHandler,
)

__all__ = [
    "UserInteractionHandler",
    "InteractionRequest",
    "InteractionResponse",
    "CLIInteractionHandler",
    "CallbackInteractionHandler",
    "AutoResponseHandler",
]
