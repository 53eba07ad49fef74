"""
Conversation controller: orchestrates input, the message store and the model.

All state lives on one asyncio event loop. ``submit`` appends the user message
synchronously and schedules the model call as a task; the model call is the
only suspension point. UI layers observe changes through ``subscribe``.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Callable
from dataclasses import dataclass

from .exceptions import ModelError
from .models import Message, MessageStore, Role
from .session import ModelSessionManager

logger = logging.getLogger("silicon_chat")

MODEL_UNAVAILABLE_MESSAGE = (
    "The Apple Intelligence model is not available. "
    "macOS 26 or later on a supported Apple silicon Mac "
    "with Apple Intelligence enabled is required."
)


class ChatEventKind(enum.Enum):
    MESSAGE_APPENDED = "message_appended"
    MESSAGES_CLEARED = "messages_cleared"
    LOADING_CHANGED = "loading_changed"
    ERROR_CHANGED = "error_changed"


@dataclass(frozen=True)
class ChatEvent:
    kind: ChatEventKind
    message: Message | None = None


Listener = Callable[[ChatEvent], None]


class ConversationController:
    """Turns user input into model calls and transcript entries.

    Errors never disappear silently: each failed send sets ``error_message``
    (for an alert the user dismisses) and appends an assistant message that
    embeds the error description.
    """

    def __init__(self, session_manager: ModelSessionManager, relaxed_safety: bool = True) -> None:
        self.session_manager = session_manager
        self.relaxed_safety = relaxed_safety
        self.messages = MessageStore()
        self.current_input = ""
        self.error_message: str | None = None
        self.show_error = False
        self._in_flight = 0
        self._listeners: list[Listener] = []
        self._tasks: set[asyncio.Task] = set()
        self.check_model_availability()

    # -- observation -----------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register *listener* for state changes. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, kind: ChatEventKind, message: Message | None = None) -> None:
        event = ChatEvent(kind, message)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.warning("[SiliconChat] Listener failed for %s.", kind.value, exc_info=True)

    # -- state -------------------------------------------------------------

    @property
    def is_loading(self) -> bool:
        return self._in_flight > 0

    def check_model_availability(self) -> None:
        if not self.session_manager.check_availability():
            self._set_error(MODEL_UNAVAILABLE_MESSAGE)
            return
        try:
            self.session_manager.initialize_session(relaxed_safety=self.relaxed_safety)
        except ModelError as exc:
            self._set_error(f"Failed to initialize the session: {exc}")

    def dismiss_error(self) -> None:
        self.show_error = False
        self.error_message = None
        self._emit(ChatEventKind.ERROR_CHANGED)

    def _set_error(self, description: str) -> None:
        self.error_message = description
        self.show_error = True
        self._emit(ChatEventKind.ERROR_CHANGED)

    def _append(self, message: Message) -> Message:
        self.messages.append(message)
        self._emit(ChatEventKind.MESSAGE_APPENDED, message)
        return message

    # -- actions -----------------------------------------------------------

    def submit(self, text: str | None = None) -> asyncio.Task | None:
        """Append the user message now and schedule the model call.

        Uses ``current_input`` when *text* is None. Blank input is ignored and
        returns None; otherwise the scheduled task is returned. Must be called
        from a running event loop.
        """
        asyncio.get_running_loop()
        prompt = self._accept_input(text)
        if prompt is None:
            return None
        return self._schedule(prompt)

    async def send(self, text: str | None = None) -> Message | None:
        """Awaitable form of ``submit``; returns the assistant message appended."""
        prompt = self._accept_input(text)
        if prompt is None:
            return None
        return await self._run(prompt)

    def regenerate(self, message: Message) -> asyncio.Task | None:
        """Resend the prompt behind an assistant *message* as a new turn.

        Ignored while a send is in flight, for user messages, and for messages
        without an ``original_prompt``. The original message is left untouched.
        """
        prompt = self._regeneration_prompt(message)
        if prompt is None:
            return None
        return self._schedule(prompt)

    async def regenerate_now(self, message: Message) -> Message | None:
        prompt = self._regeneration_prompt(message)
        if prompt is None:
            return None
        return await self._run(prompt)

    def clear(self) -> None:
        """Empty the transcript and start a fresh model session."""
        self.messages.clear()
        self.session_manager.reset_session(relaxed_safety=self.relaxed_safety)
        self._emit(ChatEventKind.MESSAGES_CLEARED)

    async def wait_idle(self) -> None:
        """Wait for every scheduled send to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # -- internals ---------------------------------------------------------

    def _accept_input(self, text: str | None) -> str | None:
        raw = self.current_input if text is None else text
        if not raw.strip():
            return None
        self.current_input = ""
        self._append(Message(role=Role.USER, text=raw))
        return raw

    def _regeneration_prompt(self, message: Message) -> str | None:
        if self.is_loading:
            logger.debug("[SiliconChat] Regenerate ignored: a response is still in flight.")
            return None
        if message.role is not Role.ASSISTANT or message.original_prompt is None:
            return None
        return message.original_prompt

    def _schedule(self, prompt: str) -> asyncio.Task:
        self._begin()
        task = asyncio.get_running_loop().create_task(self._respond(prompt))
        self._tasks.add(task)
        task.add_done_callback(self._finish_task)
        return task

    def _finish_task(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        self._end()

    async def _run(self, prompt: str) -> Message:
        self._begin()
        try:
            return await self._respond(prompt)
        finally:
            self._end()

    def _begin(self) -> None:
        self._in_flight += 1
        self._emit(ChatEventKind.LOADING_CHANGED)

    def _end(self) -> None:
        self._in_flight -= 1
        self._emit(ChatEventKind.LOADING_CHANGED)

    async def _respond(self, prompt: str) -> Message:
        try:
            response = await self.session_manager.send_message(prompt)
        except ModelError as exc:
            description = str(exc)
            self._set_error(description)
            return self._append(
                Message(role=Role.ASSISTANT, text=f"An error occurred: {description}")
            )

        return self._append(
            Message(
                role=Role.ASSISTANT,
                text=response.text,
                response_time=response.response_time,
                output_tokens=response.output_tokens,
                tokens_per_second=response.tokens_per_second,
                original_prompt=prompt,
            )
        )
