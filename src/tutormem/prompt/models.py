"""Data models for prompt assembly."""

from dataclasses import dataclass, field
from typing import Literal

Role = Literal["user", "assistant", "system"]


@dataclass(frozen=True)
class Message:
    """A stored chat message.

    Attributes:
        id: Message id, used to resolve image paths.
        sequence_number: Position in the conversation.
        role: "user", "assistant" or "system".
        content: The message text.
        created_at: ISO timestamp, if known.
        image_paths: Image references, either data URIs or storage paths.
        attached_source_ids: Ids of chat-level sources this message refers to.
    """

    id: str
    sequence_number: int
    role: Role
    content: str
    created_at: str | None = None
    image_paths: tuple[str, ...] = ()
    attached_source_ids: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.role not in ("user", "assistant", "system"):
            raise ValueError(f"Invalid message role: {self.role}")
        object.__setattr__(self, "image_paths", tuple(self.image_paths))
        object.__setattr__(self, "attached_source_ids", tuple(self.attached_source_ids))


@dataclass(frozen=True)
class SourceItem:
    """A retrieved snippet eligible for injection into a message."""

    id: str
    content: str


@dataclass(frozen=True)
class MessageImage:
    """Resolved data for an image stored at a path."""

    message_id: str
    path: str
    data: str


@dataclass
class ChatSettings:
    """Model settings for one chat.

    Attributes:
        model: Model identifier, used for logging.
        prompt: The user's base prompt.
        temperature: Sampling temperature.
        context_length: Total token budget for system prompt plus history.
        include_profile_context: Whether to add the "User Info" section.
        include_workspace_instructions: Whether to add "System Instructions".
    """

    model: str
    prompt: str
    temperature: float = 0.5
    context_length: int = 4096
    include_profile_context: bool = True
    include_workspace_instructions: bool = True

    def __post_init__(self) -> None:
        if (
            isinstance(self.context_length, bool)
            or not isinstance(self.context_length, int)
            or self.context_length < 1
        ):
            raise ValueError(
                f"context_length must be a positive integer, got {self.context_length!r}"
            )


@dataclass
class ChatPayload:
    """Everything needed to assemble the messages for one model call."""

    settings: ChatSettings
    workspace_instructions: str = ""
    messages: list[Message] = field(default_factory=list)
    message_sources: list[SourceItem] = field(default_factory=list)
    chat_sources: list[SourceItem] = field(default_factory=list)
    admin_prompt: str | None = None
    student_system_prompt: str | None = None
    assistant_name: str | None = None
    chat_id: str | None = None
