from __future__ import annotations

import enum
import uuid
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(UTC)


class Role(str, enum.Enum):
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class Message:
    """One immutable conversation turn.

    ``original_prompt`` is only carried by assistant replies to a specific user
    prompt, which is what makes a reply regenerable.
    """

    role: Role
    text: str
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    timestamp: datetime = field(default_factory=utc_now)
    response_time: float | None = None
    output_tokens: int | None = None
    tokens_per_second: float | None = None
    original_prompt: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.role, Role):
            object.__setattr__(self, "role", Role(self.role))
        if self.role is Role.USER and self.original_prompt is not None:
            raise ValueError("original_prompt is only valid on assistant messages")

    @property
    def is_regenerable(self) -> bool:
        return self.role is Role.ASSISTANT and self.original_prompt is not None

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "role": self.role.value,
            "text": self.text,
            "timestamp": self.timestamp.isoformat(),
            "response_time": self.response_time,
            "output_tokens": self.output_tokens,
            "tokens_per_second": self.tokens_per_second,
            "original_prompt": self.original_prompt,
        }


@dataclass(frozen=True)
class LLMResponse:
    """A successful model reply plus the metrics measured around it."""

    text: str
    response_time: float
    output_tokens: int
    tokens_per_second: float


class MessageStore:
    """Append-only, ordered log of conversation turns.

    Insertion order is display order and causal order. Individual messages are
    never removed or replaced; ``clear`` empties the whole log at once.
    """

    def __init__(self) -> None:
        self._messages: list[Message] = []

    def append(self, message: Message) -> Message:
        if not isinstance(message, Message):
            raise TypeError(f"expected Message, got {type(message).__name__}")
        self._messages.append(message)
        return message

    def clear(self) -> None:
        self._messages = []

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    @property
    def is_empty(self) -> bool:
        return not self._messages

    def last_regenerable(self) -> Message | None:
        """Most recent assistant reply that still carries its prompt."""
        for message in reversed(self._messages):
            if message.is_regenerable:
                return message
        return None

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(tuple(self._messages))

    def __getitem__(self, index: int) -> Message:
        return self._messages[index]

    def __repr__(self) -> str:
        return f"MessageStore(len={len(self._messages)})"
