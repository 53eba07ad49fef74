"""
Model session management: the single owner of the capability session handle.

``ModelSessionManager`` keeps at most one session alive, creates it lazily on
the first send, replaces it wholesale on reset, and drops it when the
capability reports unsafe content (or a response times out) so the next send
starts from a clean provider-side context.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import time
from collections.abc import Callable, Iterable
from typing import Any

from .exceptions import (
    ModelError,
    ModelUnavailableError,
    ResponseError,
    SessionNotInitializedError,
)
from .models import LLMResponse
from .protocols import Availability, ModelCapability

logger = logging.getLogger("silicon_chat.session")

CHARS_PER_TOKEN = 3
DEFAULT_RESPONSE_TIMEOUT_SECONDS = 120.0
DEFAULT_UNSAFE_MARKERS: tuple[str, ...] = ("unsafe",)


class SessionState(enum.Enum):
    NO_SESSION = "no_session"
    READY = "ready"


def estimate_output_tokens(text: str) -> int:
    """Approximate the token count of *text* at three characters per token."""
    return max(1, len(text) // CHARS_PER_TOKEN)


def tokens_per_second(tokens: int, response_time: float) -> float:
    if response_time <= 0:
        return 0.0
    return tokens / response_time


def is_unsafe_content_error(
    error: BaseException | str, markers: Iterable[str] = DEFAULT_UNSAFE_MARKERS
) -> bool:
    """Return True if the error description mentions one of *markers* (case-insensitive)."""
    description = str(error).lower()
    return any(marker.lower() in description for marker in markers)


class ModelSessionManager:
    """Owns the capability session and classifies its failures.

    Args:
        capability: Object implementing ``ModelCapability``.
        response_timeout: Upper bound in seconds for a single ``respond`` call.
            ``None`` waits indefinitely.
        unsafe_markers: Substrings that mark an error as an unsafe-content
            rejection, which invalidates the session.
        clock: Monotonic time source used to measure response time.
    """

    def __init__(
        self,
        capability: ModelCapability,
        response_timeout: float | None = DEFAULT_RESPONSE_TIMEOUT_SECONDS,
        unsafe_markers: Iterable[str] = DEFAULT_UNSAFE_MARKERS,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        if response_timeout is not None and response_timeout <= 0:
            raise ValueError("response_timeout must be > 0 or None")
        self._capability = capability
        self._session: Any | None = None
        self.response_timeout = response_timeout
        self.unsafe_markers = tuple(unsafe_markers)
        self._clock = clock
        self._relaxed_safety = True

    @property
    def state(self) -> SessionState:
        return SessionState.READY if self._session is not None else SessionState.NO_SESSION

    @property
    def has_session(self) -> bool:
        return self._session is not None

    def check_availability(self) -> bool:
        """Return True if the capability is supported and ready to use."""
        try:
            if not self._capability.is_supported():
                return False
            return self._capability.availability() is Availability.AVAILABLE
        except Exception:
            logger.warning("[SiliconChat] Availability check failed.", exc_info=True)
            return False

    def initialize_session(self, relaxed_safety: bool = True) -> None:
        """Create a fresh session and make it current.

        The previous session is replaced only once the new one exists; on
        failure it stays in place.

        Raises:
            ModelUnavailableError: the capability is not usable right now.
            SessionNotInitializedError: the capability refused to create a session.
        """
        self._relaxed_safety = relaxed_safety
        session = self._make_session(relaxed_safety)
        self._session = session
        logger.debug("[SiliconChat] Session initialized (relaxed_safety=%s).", relaxed_safety)

    def reset_session(self, relaxed_safety: bool = True) -> None:
        """Replace the session with a new one, or leave none if creation fails."""
        self._session = None
        self._relaxed_safety = relaxed_safety
        try:
            self._session = self._make_session(relaxed_safety)
        except ModelError as exc:
            logger.warning("[SiliconChat] Session reset left no active session: %s", exc)
            return
        logger.debug("[SiliconChat] Session reset.")

    async def send_message(self, text: str) -> LLMResponse:
        """Send *text* within the current session and measure the reply.

        Raises:
            ModelUnavailableError / SessionNotInitializedError: lazy
                initialization failed.
            ResponseError: the capability failed to answer.
        """
        if self._session is None:
            self.initialize_session(relaxed_safety=self._relaxed_safety)

        session = self._session
        if session is None:
            raise SessionNotInitializedError()

        start_time = self._clock()
        deadline: asyncio.Timeout | None = None
        try:
            if self.response_timeout is None:
                response_text = await self._capability.respond(session, text)
            else:
                async with asyncio.timeout(self.response_timeout) as deadline:
                    response_text = await self._capability.respond(session, text)
        except Exception as exc:
            if deadline is not None and deadline.expired():
                # The provider may still be mid-turn; never reuse that context.
                self._drop_if_current(session)
                logger.warning(
                    "[SiliconChat] Response timed out after %.0fs; session discarded.",
                    self.response_timeout,
                )
                raise ResponseError(
                    f"Timed out after {self.response_timeout:.0f}s waiting for the model response."
                ) from exc
            if is_unsafe_content_error(exc, self.unsafe_markers):
                self._drop_if_current(session)
                logger.info("[SiliconChat] Unsafe-content rejection; session discarded.")
            else:
                logger.error("[SiliconChat] Model response failed: %s", exc)
            raise ResponseError(str(exc)) from exc

        response_time = self._clock() - start_time
        response_text = str(response_text)
        output_tokens = estimate_output_tokens(response_text)
        rate = tokens_per_second(output_tokens, response_time)
        logger.info(
            "[SiliconChat] Response received in %.3fs (~%d tokens, %.1f tokens/sec).",
            response_time,
            output_tokens,
            rate,
        )
        return LLMResponse(
            text=response_text,
            response_time=response_time,
            output_tokens=output_tokens,
            tokens_per_second=rate,
        )

    def _make_session(self, relaxed_safety: bool) -> Any:
        if not self.check_availability():
            raise ModelUnavailableError()
        try:
            return self._capability.create_session(relaxed_safety)
        except Exception as exc:
            logger.error("[SiliconChat] Session creation failed: %s", exc)
            raise SessionNotInitializedError(
                f"Failed to initialize the model session: {exc}"
            ) from exc

    def _drop_if_current(self, session: Any) -> None:
        # A reset may already have replaced the session while we were awaiting.
        if self._session is session:
            self._session = None

    def __repr__(self) -> str:
        return (
            f"ModelSessionManager(state={self.state.value}, "
            f"response_timeout={self.response_timeout})"
        )
