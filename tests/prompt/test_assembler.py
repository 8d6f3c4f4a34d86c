"""Tests for final message assembly."""

from dataclasses import replace
from datetime import date
from unittest.mock import Mock

import pytest

from tutormem.prompt import (
    ChatPayload,
    ChatSettings,
    Message,
    MessageImage,
    SourceItem,
    build_final_messages,
    build_gemini_messages,
    build_system_prompt,
    count_characters,
    format_sources,
)

TODAY = date(2026, 10, 16)
PROFILE = "User test profile context."
WORKSPACE = "Test workspace instructions."


def make_message(
    i: int, content: str, role: str = "user", **overrides
) -> Message:
    return Message(id=f"msg_{i}", sequence_number=i, role=role, content=content, **overrides)


@pytest.fixture
def settings() -> ChatSettings:
    return ChatSettings(model="gpt-4", prompt="Test base prompt.", context_length=400)


@pytest.fixture
def payload(settings: ChatSettings) -> ChatPayload:
    return ChatPayload(
        settings=settings,
        workspace_instructions=WORKSPACE,
        messages=[
            make_message(1, "Hello"),
            make_message(2, "Hi there", role="assistant"),
        ],
    )


def system_prompt_for(payload: ChatPayload, profile: str = PROFILE) -> str:
    return build_system_prompt(
        payload.settings.prompt,
        profile_context=profile,
        workspace_instructions=payload.workspace_instructions,
        today=TODAY,
    )


class TestBuildFinalMessages:
    """Tests for build_final_messages."""

    def test_without_truncation(self, payload: ChatPayload):
        """All messages fit and follow the system message."""
        result = build_final_messages(
            payload, count_characters, profile_context=PROFILE, today=TODAY
        )

        assert [m["role"] for m in result.messages] == ["system", "user", "assistant"]
        system = result.messages[0]["content"]
        assert "Test base prompt." in system
        assert PROFILE in system
        assert WORKSPACE in system
        assert result.messages[1]["content"] == "Hello"
        assert result.messages[2]["content"] == "Hi there"
        assert result.system_prompt == system
        assert result.used_tokens == len(system) + len("Hello") + len("Hi there")

    def test_truncates_older_messages(self, payload: ChatPayload):
        """Older messages are dropped when the budget runs out."""
        recent = "Recent message - should be included"
        system_tokens = len(system_prompt_for(payload))
        payload.settings = replace(payload.settings, context_length=system_tokens + 100)
        payload.messages = [
            make_message(1, "First message - should be truncated"),
            make_message(2, "a" * 150, role="assistant"),
            make_message(3, recent),
        ]

        result = build_final_messages(
            payload, count_characters, profile_context=PROFILE, today=TODAY
        )

        assert [m["content"] for m in result.messages[1:]] == [recent]
        assert result.used_tokens == system_tokens + len(recent)

    def test_system_prompt_counts_against_budget(self, payload: ChatPayload):
        """A budget smaller than the system prompt keeps no history."""
        payload.settings = replace(payload.settings, context_length=10)

        result = build_final_messages(payload, count_characters, today=TODAY)

        assert len(result.messages) == 1
        assert result.messages[0]["role"] == "system"

    def test_profile_toggle(self, payload: ChatPayload):
        """include_profile_context=False leaves the profile out."""
        payload.settings = replace(payload.settings, include_profile_context=False)

        result = build_final_messages(
            payload, count_characters, profile_context=PROFILE, today=TODAY
        )

        assert PROFILE not in result.system_prompt

    def test_admin_student_and_assistant(self, payload: ChatPayload):
        """Admin, student and persona layers reach the system prompt."""
        payload.admin_prompt = "Never give answers outright."
        payload.student_system_prompt = "Use simple words."
        payload.assistant_name = "Ada"

        result = build_final_messages(payload, count_characters, today=TODAY)

        system = result.system_prompt
        assert system.startswith("<INJECT ROLE>\nYou are not an AI. You are Ada.")
        assert "Never give answers outright." in system
        assert "Use simple words." in system

    def test_sources_injected_after_budget(self, payload: ChatPayload):
        """Sources are appended to the newest message and not counted."""
        source = SourceItem(id="s1", content="Greetings are polite.")
        payload.message_sources = [source]

        result = build_final_messages(payload, count_characters, today=TODAY)

        assert result.messages[-1]["content"] == "Hi there" + format_sources([source])
        assert result.used_tokens == len(result.system_prompt) + len("Hello") + len(
            "Hi there"
        )

    def test_images(self, payload: ChatPayload):
        """Image paths are resolved into image_url parts."""
        payload.messages = [
            make_message(1, "What is this?", image_paths=("user/plant.jpg",))
        ]
        images = [
            MessageImage(
                message_id="msg_1", path="user/plant.jpg", data="data:image/jpeg;base64,AAAA"
            )
        ]

        result = build_final_messages(payload, count_characters, images=images, today=TODAY)

        assert result.messages[1]["content"] == [
            {"type": "text", "text": "What is this?"},
            {"type": "image_url", "image_url": {"url": "data:image/jpeg;base64,AAAA"}},
        ]

    def test_logs_event(self, payload: ChatPayload):
        """The event logger receives the assembly summary."""
        payload.chat_id = "chat_123"
        event_logger = Mock()

        result = build_final_messages(
            payload, count_characters, event_logger=event_logger, today=TODAY
        )

        event_logger.log_prompt_assembled.assert_called_once_with(
            model="gpt-4",
            budget=400,
            used_tokens=result.used_tokens,
            messages_total=2,
            messages_included=2,
            chat_id="chat_123",
        )

    def test_payload_not_mutated(self, payload: ChatPayload):
        """Assembly leaves the stored messages untouched."""
        payload.message_sources = [SourceItem(id="s1", content="x")]
        build_final_messages(payload, count_characters, today=TODAY)
        assert payload.messages[-1].content == "Hi there"


class TestBuildGeminiMessages:
    """Tests for build_gemini_messages."""

    def test_roles_and_parts(self, payload: ChatPayload):
        """The system prompt is a user turn and assistants become model."""
        result = build_gemini_messages(
            payload, count_characters, profile_context=PROFILE, today=TODAY
        )

        assert result.messages == [
            {"role": "user", "parts": [{"text": result.system_prompt}]},
            {"role": "user", "parts": [{"text": "Hello"}]},
            {"role": "model", "parts": [{"text": "Hi there"}]},
        ]

    def test_same_budget_as_chat_format(self, payload: ChatPayload):
        """Both formats keep the same history for the same payload."""
        payload.settings = replace(payload.settings, context_length=len(system_prompt_for(payload, "")) + 9)

        chat = build_final_messages(payload, count_characters, today=TODAY)
        gemini = build_gemini_messages(payload, count_characters, today=TODAY)

        assert len(chat.messages) == len(gemini.messages) == 2
        assert chat.used_tokens == gemini.used_tokens

    def test_images_inline(self, payload: ChatPayload):
        """Images become inline_data parts."""
        payload.messages = [
            make_message(1, "What is this?", image_paths=("data:image/png;base64,BBBB",))
        ]

        result = build_gemini_messages(payload, count_characters, today=TODAY)

        assert result.messages[1]["parts"] == [
            {"text": "What is this?"},
            {"inline_data": {"mime_type": "image/png", "data": "BBBB"}},
        ]
