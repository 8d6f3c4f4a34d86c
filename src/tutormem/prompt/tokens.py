"""Token counting.

A token counter is any callable mapping text to a non-negative integer,
returning 0 for empty text. Exact token semantics are up to the caller.
"""

from typing import Callable

import tiktoken

TokenCounter = Callable[[str], int]

DEFAULT_ENCODING = "cl100k_base"


def count_characters(text: str) -> int:
    """Use the character count as the token count."""
    return len(text)


class TiktokenCounter:
    """Counts tokens with a tiktoken encoding."""

    def __init__(self, encoding_name: str = DEFAULT_ENCODING) -> None:
        self.encoding_name = encoding_name
        self._encoding: tiktoken.Encoding | None = None

    @property
    def encoding(self) -> tiktoken.Encoding:
        # Loading an encoding may download its BPE file, so do it on first use
        if self._encoding is None:
            self._encoding = tiktoken.get_encoding(self.encoding_name)
        return self._encoding

    def __call__(self, text: str) -> int:
        if not text:
            return 0
        return len(self.encoding.encode(text, disallowed_special=()))
