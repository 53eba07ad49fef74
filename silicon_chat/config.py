from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from .protocols import DEFAULT_INSTRUCTIONS
from .session import DEFAULT_RESPONSE_TIMEOUT_SECONDS, DEFAULT_UNSAFE_MARKERS

logger = logging.getLogger("silicon_chat")

ENV_PREFIX = "SILICON_CHAT_"


@dataclass(frozen=True)
class ChatSettings:
    """Runtime configuration for a chat session.

    Values come from defaults, then ``SILICON_CHAT_*`` environment variables,
    then explicit overrides (CLI options).
    """

    relaxed_safety: bool = True
    instructions: str = DEFAULT_INSTRUCTIONS
    response_timeout: float | None = DEFAULT_RESPONSE_TIMEOUT_SECONDS
    unsafe_markers: tuple[str, ...] = field(default=DEFAULT_UNSAFE_MARKERS)
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ChatSettings:
        env = os.environ if environ is None else environ
        defaults = cls()
        return cls(
            relaxed_safety=_env_bool(env, "RELAXED_SAFETY", defaults.relaxed_safety),
            instructions=_env_str(env, "INSTRUCTIONS", defaults.instructions),
            response_timeout=_env_timeout(env, "TIMEOUT", defaults.response_timeout),
            unsafe_markers=_env_markers(env, "UNSAFE_MARKERS", defaults.unsafe_markers),
            log_level=_env_str(env, "LOG_LEVEL", defaults.log_level).upper(),
        )

    def with_overrides(self, **overrides: Any) -> ChatSettings:
        """Return a copy with every non-None override applied."""
        changes = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **changes)


def _env_str(env: Mapping[str, str], key: str, default: str) -> str:
    value = env.get(ENV_PREFIX + key)
    if value is None or not value.strip():
        return default
    return value.strip()


def _env_bool(env: Mapping[str, str], key: str, default: bool) -> bool:
    value = env.get(ENV_PREFIX + key)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    logger.warning(
        "[SiliconChat] Ignoring invalid boolean %s%s=%r; using %s.",
        ENV_PREFIX,
        key,
        value,
        default,
    )
    return default


def _env_timeout(env: Mapping[str, str], key: str, default: float | None) -> float | None:
    value = env.get(ENV_PREFIX + key)
    if value is None or not value.strip():
        return default
    if value.strip().lower() in {"none", "off", "0"}:
        return None
    try:
        timeout = float(value)
    except ValueError:
        logger.warning(
            "[SiliconChat] Ignoring invalid timeout %s%s=%r; using %s.",
            ENV_PREFIX,
            key,
            value,
            default,
        )
        return default
    if timeout == 0:
        return None
    if timeout < 0:
        logger.warning(
            "[SiliconChat] Negative timeout %s%s=%r; using %s.", ENV_PREFIX, key, value, default
        )
        return default
    return timeout


def _env_markers(env: Mapping[str, str], key: str, default: tuple[str, ...]) -> tuple[str, ...]:
    value = env.get(ENV_PREFIX + key)
    if value is None:
        return default
    markers = tuple(part.strip() for part in value.split(",") if part.strip())
    return markers or default
