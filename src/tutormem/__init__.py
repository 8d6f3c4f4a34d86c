"""Student fact memory and prompt assembly for tutoring chats."""

__version__ = "0.1.0"
