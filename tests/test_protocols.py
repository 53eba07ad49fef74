"""
Tests for silicon_chat.protocols and the SDK guard in silicon_chat.exceptions.

The Apple SDK is never imported here; ``AppleFMCapability`` is bound to a
MagicMock module object instead.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from silicon_chat.exceptions import (
    AppleFMSetupError,
    ModelError,
    ResponseError,
    SessionNotInitializedError,
    require_apple_fm,
)
from silicon_chat.protocols import (
    DEFAULT_INSTRUCTIONS,
    AppleFMCapability,
    Availability,
    ModelCapability,
    create_capability,
)

from .conftest import FakeCapability


def make_mock_sdk(available=True, reason=None):
    sdk = MagicMock()
    sdk.SystemLanguageModel.return_value.is_available.return_value = (available, reason)
    return sdk


# ========================================================================
# Protocol conformance
# ========================================================================


class TestProtocol:
    def test_apple_capability_satisfies_protocol(self):
        assert isinstance(AppleFMCapability(sdk=make_mock_sdk()), ModelCapability)

    def test_fake_capability_satisfies_protocol(self):
        assert isinstance(FakeCapability(), ModelCapability)

    def test_create_capability(self):
        capability = create_capability("Be brief.")
        assert isinstance(capability, AppleFMCapability)
        assert capability.instructions == "Be brief."


# ========================================================================
# AppleFMCapability
# ========================================================================


class TestAppleFMCapability:
    def test_injected_sdk_is_supported(self):
        assert AppleFMCapability(sdk=make_mock_sdk()).is_supported() is True

    def test_available(self):
        capability = AppleFMCapability(sdk=make_mock_sdk())
        assert capability.availability() is Availability.AVAILABLE
        assert capability.unavailable_reason is None

    def test_unavailable_records_reason(self):
        capability = AppleFMCapability(sdk=make_mock_sdk(False, "Apple Intelligence is off"))
        assert capability.availability() is Availability.UNAVAILABLE
        assert capability.unavailable_reason == "Apple Intelligence is off"

    def test_unavailable_without_reason(self):
        capability = AppleFMCapability(sdk=make_mock_sdk(False, None))
        capability.availability()
        assert capability.unavailable_reason == "model unavailable"

    def test_relaxed_session_uses_permissive_guardrails(self):
        sdk = make_mock_sdk()
        capability = AppleFMCapability(instructions="Be kind.", sdk=sdk)
        session = capability.create_session(relaxed_safety=True)

        permissive = sdk.SystemLanguageModelGuardrails.PERMISSIVE_CONTENT_TRANSFORMATIONS
        sdk.SystemLanguageModel.assert_called_with(guardrails=permissive)
        sdk.LanguageModelSession.assert_called_once_with(
            model=sdk.SystemLanguageModel.return_value, instructions="Be kind."
        )
        assert session is sdk.LanguageModelSession.return_value

    def test_strict_session_uses_default_model(self):
        sdk = make_mock_sdk()
        AppleFMCapability(sdk=sdk).create_session(relaxed_safety=False)
        sdk.SystemLanguageModel.assert_called_with()

    def test_sdk_without_guardrails_falls_back(self):
        sdk = MagicMock(spec=["SystemLanguageModel", "LanguageModelSession"])
        AppleFMCapability(sdk=sdk).create_session(relaxed_safety=True)
        sdk.SystemLanguageModel.assert_called_with()

    async def test_respond_returns_plain_string(self):
        session = MagicMock()
        session.respond = AsyncMock(return_value="hello")
        capability = AppleFMCapability(sdk=make_mock_sdk())
        assert await capability.respond(session, "hi") == "hello"
        session.respond.assert_awaited_once_with("hi")

    async def test_respond_unwraps_content_attribute(self):
        result = MagicMock()
        result.content = "structured hello"
        session = MagicMock()
        session.respond = AsyncMock(return_value=result)
        capability = AppleFMCapability(sdk=make_mock_sdk())
        assert await capability.respond(session, "hi") == "structured hello"

    def test_unsupported_platform_without_sdk(self):
        capability = AppleFMCapability()
        with patch("silicon_chat.protocols.sys.platform", "linux"):
            assert capability.is_supported() is False
        assert "linux" in capability.unavailable_reason

    def test_missing_sdk_on_darwin(self):
        capability = AppleFMCapability()
        with (
            patch("silicon_chat.protocols.sys.platform", "darwin"),
            patch(
                "silicon_chat.protocols.importlib.import_module",
                side_effect=ImportError("No module named 'apple_fm_sdk'"),
            ),
        ):
            assert capability.is_supported() is False
            with pytest.raises(AppleFMSetupError):
                capability.sdk
        assert capability.unavailable_reason == "apple-fm-sdk is not installed"

    def test_default_instructions(self):
        assert AppleFMCapability(sdk=make_mock_sdk()).instructions == DEFAULT_INSTRUCTIONS


# ========================================================================
# Errors and SDK guard
# ========================================================================


class TestErrors:
    def test_model_error_description(self):
        assert str(SessionNotInitializedError()) == "Failed to initialize the model session."
        assert str(ModelError("custom")) == "custom"

    def test_response_error_embeds_detail(self):
        error = ResponseError("boom")
        assert error.detail == "boom"
        assert error.description == "An error occurred while getting the response: boom"
        assert isinstance(error, ModelError)

    def test_require_apple_fm_rejects_other_platforms(self):
        with patch("silicon_chat.exceptions.sys.platform", "linux"):
            with pytest.raises(AppleFMSetupError, match="requires macOS"):
                require_apple_fm("test")

    def test_require_apple_fm_reports_missing_sdk(self):
        with (
            patch("silicon_chat.exceptions.sys.platform", "darwin"),
            patch(
                "silicon_chat.exceptions.importlib.import_module",
                side_effect=ImportError("missing"),
            ),
        ):
            with pytest.raises(AppleFMSetupError, match="apple-fm-sdk"):
                require_apple_fm("test")
