"""
Capability protocol: the boundary between SiliconChat and an inference engine.

The session manager only ever talks to an object implementing
``ModelCapability``. ``AppleFMCapability`` binds that protocol to the Apple
Foundation Models SDK; tests and alternative backends supply their own.
"""

from __future__ import annotations

import enum
import importlib
import logging
import sys
from types import ModuleType
from typing import Any, Protocol, runtime_checkable

from .exceptions import AppleFMSetupError

logger = logging.getLogger("silicon_chat")

DEFAULT_INSTRUCTIONS = (
    "You are a helpful, concise assistant running entirely on this device. "
    "Answer clearly and keep the conversation context in mind."
)


class Availability(enum.Enum):
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class ModelCapability(Protocol):
    """The four operations SiliconChat needs from an inference engine."""

    def is_supported(self) -> bool: ...

    def availability(self) -> Availability: ...

    def create_session(self, relaxed_safety: bool) -> Any: ...

    async def respond(self, session: Any, prompt: str) -> str: ...


# ---------------------------------------------------------------------------
# AppleFMCapability
# ---------------------------------------------------------------------------


class AppleFMCapability:
    """``ModelCapability`` backed by ``apple_fm_sdk``.

    The SDK is imported lazily so the package stays importable on machines
    without it. Pass *sdk* to bind a specific module object instead of
    importing ``apple_fm_sdk``.
    """

    def __init__(
        self,
        instructions: str = DEFAULT_INSTRUCTIONS,
        sdk: ModuleType | Any | None = None,
    ) -> None:
        self.instructions = instructions
        self._sdk = sdk
        self.unavailable_reason: str | None = None

    @property
    def sdk(self) -> Any:
        if self._sdk is None:
            try:
                self._sdk = importlib.import_module("apple_fm_sdk")
            except ImportError as exc:
                raise AppleFMSetupError(
                    "\n[SiliconChat] 'apple-fm-sdk' is not installed.\n"
                    "The Apple Foundation Models SDK has to be installed manually.\n"
                ) from exc
        return self._sdk

    def is_supported(self) -> bool:
        if self._sdk is None and sys.platform != "darwin":
            self.unavailable_reason = f"unsupported platform: {sys.platform}"
            return False
        try:
            self.sdk
        except AppleFMSetupError:
            self.unavailable_reason = "apple-fm-sdk is not installed"
            return False
        return True

    def availability(self) -> Availability:
        model = self.sdk.SystemLanguageModel()
        is_available, reason = model.is_available()
        if is_available:
            self.unavailable_reason = None
            return Availability.AVAILABLE
        self.unavailable_reason = str(reason) if reason else "model unavailable"
        logger.info("[SiliconChat] System language model unavailable: %s", self.unavailable_reason)
        return Availability.UNAVAILABLE

    def create_session(self, relaxed_safety: bool) -> Any:
        fm = self.sdk
        model = self._make_model(relaxed_safety)
        return fm.LanguageModelSession(model=model, instructions=self.instructions)

    async def respond(self, session: Any, prompt: str) -> str:
        result = await session.respond(prompt)
        content = getattr(result, "content", result)
        return str(content)

    def _make_model(self, relaxed_safety: bool) -> Any:
        fm = self.sdk
        guardrails_type = getattr(fm, "SystemLanguageModelGuardrails", None)
        permissive = getattr(guardrails_type, "PERMISSIVE_CONTENT_TRANSFORMATIONS", None)
        if relaxed_safety and permissive is not None:
            return fm.SystemLanguageModel(guardrails=permissive)
        if relaxed_safety:
            logger.debug(
                "[SiliconChat] SDK exposes no permissive guardrails; using default model settings."
            )
        return fm.SystemLanguageModel()

    def __repr__(self) -> str:
        return f"AppleFMCapability(instructions={self.instructions!r})"


def create_capability(instructions: str = DEFAULT_INSTRUCTIONS) -> AppleFMCapability:
    """Default capability factory used by the CLI."""
    return AppleFMCapability(instructions=instructions)
