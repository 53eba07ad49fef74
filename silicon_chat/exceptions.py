"""
Error taxonomy for SiliconChat.

``ModelError`` and its subclasses describe failures of the model capability and
are surfaced to the user both as an alert and as an inline transcript entry.
``AppleFMSetupError`` covers environment problems (missing SDK, wrong platform)
that stop the CLI before any conversation starts.
"""

from __future__ import annotations

import importlib
import sys

_INSTALL_GUIDE = "https://github.com/apple/python-apple-fm-sdk#installation"


class ModelError(Exception):
    """Base class for every failure coming from the model capability."""

    description = "The language model reported an error."

    def __init__(self, description: str | None = None) -> None:
        if description is not None:
            self.description = description
        super().__init__(self.description)

    def __str__(self) -> str:
        return self.description


class ModelUnavailableError(ModelError):
    """The capability is absent on this device or currently disabled."""

    description = (
        "The on-device Apple Intelligence model is not available. "
        "A supported Mac with Apple Intelligence enabled is required."
    )


class SessionNotInitializedError(ModelError):
    """A session could not be created, or was missing when it had to exist."""

    description = "Failed to initialize the model session."


class ResponseError(ModelError):
    """The capability failed while answering a specific prompt."""

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"An error occurred while getting the response: {detail}")


class AppleFMSetupError(RuntimeError):
    """Raised when the Apple Foundation Models SDK cannot be used at all."""


def require_apple_fm(context: str = "silicon-chat") -> None:
    """Fail fast with installation guidance when the SDK is not importable."""
    if sys.platform != "darwin":
        raise AppleFMSetupError(
            f"\n[SiliconChat] {context} requires macOS with Apple Intelligence.\n"
            f"Detected platform: {sys.platform}\n"
        )
    try:
        importlib.import_module("apple_fm_sdk")
    except ImportError as exc:
        raise AppleFMSetupError(
            f"\n[SiliconChat] {context} requires 'apple-fm-sdk', which is not installed.\n"
            "The Apple Foundation Models SDK has to be installed manually.\n"
            f"Please follow the installation guide: {_INSTALL_GUIDE}\n"
        ) from exc
