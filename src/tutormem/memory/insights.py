"""Communication style, topic engagement and social-emotional insights."""

import json
import logging
from dataclasses import dataclass, field
from typing import Any

from groq import AsyncGroq

from .extractor import DEFAULT_MODEL, strip_code_fences

logger = logging.getLogger(__name__)

PREFERENCE_TYPES = ("likes", "dislikes")
ENGAGEMENT_LEVELS = ("high", "moderate", "low", "negative")
INDICATOR_TYPES = ("frustration", "engagement", "confidence", "motivation", "other")

ENGAGEMENT_PHRASES = {
    "high": "Shows high interest in",
    "moderate": "Is moderately interested in",
    "low": "Shows little interest in",
    "negative": "Reacts negatively to",
}

INSIGHTS_PROMPT = """Analyze the conversation and extract insights about how the student communicates and engages:

1. COMMUNICATION STYLE: language they respond well or badly to (formal vs. informal, humor, emojis, what they find "cringe", technical vs. simple wording)
2. TOPIC ENGAGEMENT: topics they enjoy or avoid, and the contexts where that changes (e.g. likes games in general but not as math examples)
3. SOCIAL-EMOTIONAL: frustration, confidence, engagement and motivation signals, what triggers them and how they show

Only report what the conversation clearly shows.

Return ONLY valid JSON:
{
  "communication_styles": [
    {"preference_type": "<likes|dislikes>", "style_element": "...", "details": "...", "example_phrase": "<optional>"}
  ],
  "topic_engagement": [
    {"topic": "...", "engagement_level": "<high|moderate|low|negative>", "context": "...", "exception": "<optional>"}
  ],
  "social_emotional": [
    {"indicator_type": "<frustration|engagement|confidence|motivation|other>", "trigger": "...", "manifestation": "...", "suggested_response": "<optional>"}
  ]
}

Conversation:
"""


@dataclass(frozen=True)
class CommunicationStyle:
    """Something about phrasing the student likes or dislikes."""

    preference_type: str
    style_element: str
    details: str
    example_phrase: str | None = None


@dataclass(frozen=True)
class TopicEngagement:
    """How engaged the student is with a topic, and in which context."""

    topic: str
    engagement_level: str
    context: str = ""
    exception: str | None = None


@dataclass(frozen=True)
class SocialEmotionalIndicator:
    """An emotional response, what triggers it and how it shows."""

    indicator_type: str
    trigger: str
    manifestation: str
    suggested_response: str | None = None


@dataclass
class LearnerInsights:
    """Everything the insight extractor found in one conversation."""

    communication_styles: list[CommunicationStyle] = field(default_factory=list)
    topic_engagement: list[TopicEngagement] = field(default_factory=list)
    social_emotional: list[SocialEmotionalIndicator] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (
            self.communication_styles or self.topic_engagement or self.social_emotional
        )


def _text(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _parse_style(item: dict[str, Any]) -> CommunicationStyle | None:
    preference_type = _text(item.get("preference_type"))
    style_element = _text(item.get("style_element"))
    details = _text(item.get("details"))
    if preference_type not in PREFERENCE_TYPES or not style_element or not details:
        return None
    return CommunicationStyle(
        preference_type=preference_type,
        style_element=style_element,
        details=details,
        example_phrase=_text(item.get("example_phrase")),
    )


def _parse_topic(item: dict[str, Any]) -> TopicEngagement | None:
    topic = _text(item.get("topic"))
    level = _text(item.get("engagement_level"))
    if not topic or level not in ENGAGEMENT_LEVELS:
        return None
    return TopicEngagement(
        topic=topic,
        engagement_level=level,
        context=_text(item.get("context")) or "",
        exception=_text(item.get("exception")),
    )


def _parse_indicator(item: dict[str, Any]) -> SocialEmotionalIndicator | None:
    indicator_type = _text(item.get("indicator_type"))
    trigger = _text(item.get("trigger"))
    manifestation = _text(item.get("manifestation"))
    if not trigger or not manifestation:
        return None
    if indicator_type not in INDICATOR_TYPES:
        indicator_type = "other"
    return SocialEmotionalIndicator(
        indicator_type=indicator_type,
        trigger=trigger,
        manifestation=manifestation,
        suggested_response=_text(item.get("suggested_response")),
    )


def _parse_list(data: dict[str, Any], key: str, parse) -> list:
    items = data.get(key)
    if not isinstance(items, list):
        return []
    parsed = []
    for item in items:
        entry = parse(item) if isinstance(item, dict) else None
        if entry is None:
            logger.debug(f"Skipping invalid {key} item: {item}")
            continue
        parsed.append(entry)
    return parsed


class InsightExtractor:
    """Extracts learner insights from conversations using an LLM."""

    def __init__(self, llm_client: AsyncGroq, model: str = DEFAULT_MODEL) -> None:
        self.client = llm_client
        self.model = model

    async def extract(self, messages: list[dict[str, Any]]) -> LearnerInsights:
        """Extract insights from a conversation.

        Returns:
            LearnerInsights, empty if nothing was found or on any error.
        """
        lines = []
        for msg in messages:
            content = msg.get("content", "")
            if not isinstance(content, str):
                content = json.dumps(content, ensure_ascii=False)
            if msg.get("role") == "user":
                lines.append(f"Student: {content}")
            elif msg.get("role") == "assistant":
                lines.append(f"Assistant: {content}")
        if not lines:
            return LearnerInsights()

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": INSIGHTS_PROMPT + "\n".join(lines)}],
                temperature=0,
            )
            content = response.choices[0].message.content or ""
            data = json.loads(strip_code_fences(content))
        except Exception as e:
            logger.warning(f"Insight extraction failed: {e}")
            return LearnerInsights()

        if not isinstance(data, dict):
            logger.warning("Invalid insight response: expected an object")
            return LearnerInsights()

        return LearnerInsights(
            communication_styles=_parse_list(data, "communication_styles", _parse_style),
            topic_engagement=_parse_list(data, "topic_engagement", _parse_topic),
            social_emotional=_parse_list(data, "social_emotional", _parse_indicator),
        )


def format_communication_styles(styles: list[CommunicationStyle]) -> str:
    if not styles:
        return ""
    lines = []
    for style in styles:
        prefix = "Use" if style.preference_type == "likes" else "Avoid"
        example = f' (e.g., "{style.example_phrase}")' if style.example_phrase else ""
        lines.append(f"- {prefix} {style.style_element}: {style.details}{example}")
    return "COMMUNICATION STYLE PREFERENCES:\n" + "\n".join(lines)


def format_topic_engagement(topics: list[TopicEngagement]) -> str:
    if not topics:
        return ""
    lines = []
    for topic in topics:
        context = f" when {topic.context}" if topic.context else ""
        exception = f" Exception: {topic.exception}" if topic.exception else ""
        phrase = ENGAGEMENT_PHRASES[topic.engagement_level]
        lines.append(f"- {phrase} {topic.topic}{context}.{exception}")
    return "TOPIC ENGAGEMENT PATTERNS:\n" + "\n".join(lines)


def format_social_emotional(indicators: list[SocialEmotionalIndicator]) -> str:
    if not indicators:
        return ""
    lines = []
    for indicator in indicators:
        line = (
            f"- When {indicator.trigger}, shows {indicator.indicator_type} "
            f"through {indicator.manifestation}."
        )
        if indicator.suggested_response:
            line += f"\n  Effective response: {indicator.suggested_response}"
        lines.append(line)
    return "SOCIAL-EMOTIONAL INDICATORS:\n" + "\n".join(lines)


def format_insights(insights: LearnerInsights) -> str:
    """Render all insight sections as one prompt block.

    Returns an empty string when there is nothing to report.
    """
    sections = [
        format_communication_styles(insights.communication_styles),
        format_topic_engagement(insights.topic_engagement),
        format_social_emotional(insights.social_emotional),
    ]
    sections = [s for s in sections if s]
    if not sections:
        return ""
    return "SOCIAL-EMOTIONAL LEARNING INSIGHTS:\n" + "\n\n".join(sections)
