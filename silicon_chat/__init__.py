"""
SiliconChat: a thin, local-first chat client for the on-device Apple Foundation Model.

The package keeps the conversation transcript, owns exactly one model session at a
time, and turns every model failure into both a user-facing alert and a visible
transcript entry. The inference engine itself is reached through the
``ModelCapability`` protocol, so any backend (or a test double) can stand in for
``apple_fm_sdk``.
"""

from .controller import ChatEvent, ChatEventKind, ConversationController
from .exceptions import (
    AppleFMSetupError,
    ModelError,
    ModelUnavailableError,
    ResponseError,
    SessionNotInitializedError,
)
from .models import LLMResponse, Message, MessageStore, Role
from .protocols import AppleFMCapability, Availability, ModelCapability
from .session import ModelSessionManager, SessionState

__all__ = [
    "AppleFMCapability",
    "AppleFMSetupError",
    "Availability",
    "ChatEvent",
    "ChatEventKind",
    "ConversationController",
    "LLMResponse",
    "Message",
    "MessageStore",
    "ModelCapability",
    "ModelError",
    "ModelSessionManager",
    "ModelUnavailableError",
    "ResponseError",
    "Role",
    "SessionNotInitializedError",
    "SessionState",
]
