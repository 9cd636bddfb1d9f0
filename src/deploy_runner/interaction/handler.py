"""Operator interaction handlers used by the pipeline confirmation gate."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional

logger = logging.getLogger(__name__)


@dataclass
class InteractionRequest:
    """A yes/no question from the runner to the operator."""

    question: str
    context: Optional[str] = None
    default: str = "n"

    def format_prompt(self) -> str:
        """Format the request as an operator-facing prompt."""
        lines = [f"\n⚠️ {self.question}"]
        if self.context:
            lines.append(f"   ℹ️  {self.context}")
        lines.append(f"   Enter [y/n] (default: {self.default}):")
        return "\n".join(lines)


@dataclass
class InteractionResponse:
    """Operator's response to an interaction request."""

    value: str
    cancelled: bool = False

    @property
    def confirmed(self) -> bool:
        return not self.cancelled and self.value.lower() in ("y", "yes")

    @classmethod
    def cancelled_response(cls) -> "InteractionResponse":
        return cls(value="", cancelled=True)


class UserInteractionHandler(ABC):
    """Abstract base class for handling operator interactions."""

    @abstractmethod
    def ask(self, request: InteractionRequest) -> InteractionResponse:
        """Present a request to the operator and return their response."""


class CLIInteractionHandler(UserInteractionHandler):
    """Command-line interaction handler reading from stdin."""

    def __init__(self, input_func: Callable[[str], str] = input) -> None:
        self._input = input_func

    def ask(self, request: InteractionRequest) -> InteractionResponse:
        print(request.format_prompt())
        try:
            while True:
                user_input = self._input(
                    f"   Confirm? [y/n] (default: {request.default}): "
                ).strip().lower()
                if not user_input:
                    user_input = request.default
                if user_input in ("y", "yes"):
                    return InteractionResponse(value="yes")
                if user_input in ("n", "no"):
                    return InteractionResponse(value="no")
                print("   ❌ Please enter y or n")
        except (KeyboardInterrupt, EOFError):
            print("\n   (cancelled)")
            return InteractionResponse.cancelled_response()


class CallbackInteractionHandler(UserInteractionHandler):
    """
    Interaction handler that uses a callback.
    Useful when the runner is embedded in another service.
    """

    def __init__(self, ask_callback: Callable[[InteractionRequest], InteractionResponse]) -> None:
        self.ask_callback = ask_callback

    def ask(self, request: InteractionRequest) -> InteractionResponse:
        return self.ask_callback(request)


class AutoResponseHandler(UserInteractionHandler):
    """
    Automatic response handler for CI or non-interactive mode.

    Confirmations are answered with ``always_confirm``; a runner started
    without ``--yes`` in a non-interactive shell therefore declines
    destructive actions.
    """

    def __init__(self, always_confirm: bool = False) -> None:
        self.always_confirm = always_confirm

    def ask(self, request: InteractionRequest) -> InteractionResponse:
        logger.info("Auto-responding to: %s", request.question[:80])
        return InteractionResponse(value="yes" if self.always_confirm else "no")
