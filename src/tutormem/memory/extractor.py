"""Fact extraction from conversations using an LLM."""

import json
import logging
from typing import Any

from groq import AsyncGroq

from .models import FACT_TYPES, FactCandidate, FactType, normalize_tags

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "llama-3.1-70b-versatile"

EXTRACTION_PROMPT = """Extract relevant facts, preferences, learning goals, and struggles mentioned by the student in the following conversation. Focus on atomic pieces of information.

Return ONLY valid JSON:
{
  "facts": [
    {
      "fact_type": "<preference|struggle|goal|topic_interest|learning_style|other>",
      "subject": "<academic subject, or null>",
      "details": "<concise description of the fact>",
      "confidence": <number between 0 and 1>
    },
    ...
  ]
}

Rules:
- One fact per entry; split compound statements
- Only facts about the student, not about the assistant
- Use "subject" for the academic subject the fact relates to (e.g. Math, History)
- If there are no relevant facts, return {"facts": []}

Conversation:
"""


def strip_code_fences(content: str) -> str:
    """Remove markdown code fence lines around a JSON reply."""
    text = content.strip()
    if text.startswith("```"):
        text = "\n".join(line for line in text.split("\n") if not line.startswith("```"))
    return text


class FactExtractor:
    """Extracts candidate facts from conversations using an LLM."""

    def __init__(
        self,
        llm_client: AsyncGroq,
        model: str = DEFAULT_MODEL,
    ) -> None:
        """Initialize the extractor.

        Args:
            llm_client: The Groq client for LLM calls.
            model: The model to use for extraction.
        """
        self.client = llm_client
        self.model = model

    async def extract(self, messages: list[dict[str, Any]]) -> list[FactCandidate]:
        """Extract candidate facts from a conversation.

        Args:
            messages: The conversation messages to analyze.

        Returns:
            List of candidates, empty if none found or on any error.
        """
        if not messages:
            return []

        conversation_text = self._format_conversation(messages)
        if not conversation_text:
            return []

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "user", "content": EXTRACTION_PROMPT + conversation_text}
                ],
                temperature=0,
            )
            content = response.choices[0].message.content or ""
            return self._parse_response(content)
        except Exception as e:
            logger.warning(f"Fact extraction failed: {e}")
            return []

    def _format_conversation(self, messages: list[dict[str, Any]]) -> str:
        """Format messages into a readable conversation string."""
        lines = []
        for msg in messages:
            role = msg.get("role", "unknown")
            content = msg.get("content", "")
            if not isinstance(content, str):
                content = json.dumps(content, ensure_ascii=False)
            if role == "user":
                lines.append(f"Student: {content}")
            elif role == "assistant":
                lines.append(f"Assistant: {content}")
            # Skip system and tool messages
        return "\n".join(lines)

    def _parse_response(self, content: str) -> list[FactCandidate]:
        """Parse LLM response into candidates.

        Args:
            content: The raw LLM response.

        Returns:
            List of candidates, empty on parse error.
        """
        try:
            data = json.loads(strip_code_fences(content))
        except json.JSONDecodeError as e:
            logger.warning(f"Failed to parse extraction response: {e}")
            return []

        if not isinstance(data, dict) or not isinstance(data.get("facts"), list):
            logger.warning("Invalid response structure: missing 'facts' list")
            return []

        candidates = []
        for item in data["facts"]:
            try:
                candidate = self._to_candidate(item)
            except (TypeError, ValueError):
                candidate = None
            if candidate is None:
                logger.warning(f"Skipping invalid fact item: {item}")
                continue
            candidates.append(candidate)
        return candidates

    def _to_candidate(self, item: Any) -> FactCandidate | None:
        if not isinstance(item, dict):
            return None

        details = item.get("details")
        if not isinstance(details, str) or not details.strip():
            return None

        fact_type = str(item.get("fact_type") or "").strip().lower()
        if fact_type not in FACT_TYPES:
            fact_type = FactType.OTHER.value

        subject = item.get("subject")
        if not isinstance(subject, str) or subject.strip().lower() in ("", "null", "none"):
            subject = None

        confidence = item.get("confidence")
        if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
            confidence = None
        elif not 0.0 <= confidence <= 1.0:
            confidence = None

        return FactCandidate(
            fact_type=fact_type,
            details=details.strip(),
            subject=subject.strip() if subject else None,
            confidence=float(confidence) if confidence is not None else None,
            tags=normalize_tags(item.get("tags")),
        )
