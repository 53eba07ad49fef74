"""Shared fixtures: a scriptable fake capability and a deterministic clock."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from silicon_chat.controller import ConversationController
from silicon_chat.protocols import Availability
from silicon_chat.session import ModelSessionManager


class FakeCapability:
    """In-memory ``ModelCapability`` that records every call."""

    def __init__(
        self,
        *,
        supported: bool = True,
        available: bool = True,
        reply: str = "Hi there!",
        create_error: Exception | None = None,
    ) -> None:
        self.supported = supported
        self.available = available
        self.create_error = create_error
        self.unavailable_reason: str | None = None
        self.sessions: list[object] = []
        self.create_calls: list[bool] = []
        self.prompts: list[str] = []
        self.respond_mock = AsyncMock(return_value=reply)

    def is_supported(self) -> bool:
        return self.supported

    def availability(self) -> Availability:
        if self.available:
            self.unavailable_reason = None
            return Availability.AVAILABLE
        self.unavailable_reason = "model not ready"
        return Availability.UNAVAILABLE

    def create_session(self, relaxed_safety: bool) -> object:
        self.create_calls.append(relaxed_safety)
        if self.create_error is not None:
            raise self.create_error
        handle = object()
        self.sessions.append(handle)
        return handle

    async def respond(self, session: object, prompt: str) -> str:
        self.prompts.append(prompt)
        return await self.respond_mock(session, prompt)


def make_clock(*values: float):
    """Return a clock callable yielding *values*, then repeating the last one."""
    remaining = list(values)

    def clock() -> float:
        if len(remaining) > 1:
            return remaining.pop(0)
        return remaining[0]

    return clock


@pytest.fixture
def capability() -> FakeCapability:
    return FakeCapability()


@pytest.fixture
def manager(capability: FakeCapability) -> ModelSessionManager:
    return ModelSessionManager(capability, response_timeout=None)


@pytest.fixture
def controller(manager: ModelSessionManager) -> ConversationController:
    return ConversationController(manager)
