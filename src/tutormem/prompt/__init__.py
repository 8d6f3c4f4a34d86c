"""Prompt assembly: system prompt, context budget, sources and content."""

from .assembler import AssembledPrompt, build_final_messages, build_gemini_messages
from .budget import ContextWindow, allocate_context
from .composer import build_system_prompt
from .content import format_content, format_parts, resolve_image
from .models import ChatPayload, ChatSettings, Message, MessageImage, SourceItem
from .retrieval import format_sources, inject_sources
from .tokens import TiktokenCounter, TokenCounter, count_characters

__all__ = [
    "AssembledPrompt",
    "ChatPayload",
    "ChatSettings",
    "ContextWindow",
    "Message",
    "MessageImage",
    "SourceItem",
    "TiktokenCounter",
    "TokenCounter",
    "allocate_context",
    "build_final_messages",
    "build_gemini_messages",
    "build_system_prompt",
    "count_characters",
    "format_content",
    "format_parts",
    "format_sources",
    "inject_sources",
    "resolve_image",
]
