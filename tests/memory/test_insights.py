"""Tests for learner insight extraction and formatting."""

import json
from unittest.mock import AsyncMock, Mock

import pytest

from tutormem.memory import InsightExtractor, LearnerInsights, format_insights
from tutormem.memory.insights import (
    CommunicationStyle,
    SocialEmotionalIndicator,
    TopicEngagement,
    format_communication_styles,
    format_social_emotional,
    format_topic_engagement,
)

MESSAGES = [
    {"role": "user", "content": "Ugh, please stop saying 'fellow kids'"},
    {"role": "assistant", "content": "Got it!"},
    {"role": "user", "content": "I love Minecraft but not in math problems"},
]


@pytest.fixture
def mock_client() -> AsyncMock:
    """Create a mock Groq client."""
    return AsyncMock()


@pytest.fixture
def extractor(mock_client: AsyncMock) -> InsightExtractor:
    return InsightExtractor(mock_client, model="test-model")


def respond_with(mock_client: AsyncMock, content: str | None) -> None:
    response = Mock()
    response.choices = [Mock()]
    response.choices[0].message.content = content
    mock_client.chat.completions.create = AsyncMock(return_value=response)


class TestInsightExtractor:
    """Tests for InsightExtractor.extract."""

    @pytest.mark.asyncio
    async def test_parses_all_sections(
        self, extractor: InsightExtractor, mock_client: AsyncMock
    ):
        """Each section of the reply becomes typed entries."""
        respond_with(
            mock_client,
            json.dumps(
                {
                    "communication_styles": [
                        {
                            "preference_type": "dislikes",
                            "style_element": "forced slang",
                            "details": "Finds it cringe",
                            "example_phrase": "fellow kids",
                        }
                    ],
                    "topic_engagement": [
                        {
                            "topic": "Minecraft",
                            "engagement_level": "high",
                            "context": "talking about building",
                            "exception": "not as math examples",
                        }
                    ],
                    "social_emotional": [
                        {
                            "indicator_type": "frustration",
                            "trigger": "long word problems",
                            "manifestation": "one-word replies",
                        }
                    ],
                }
            ),
        )

        insights = await extractor.extract(MESSAGES)

        assert insights.communication_styles == [
            CommunicationStyle("dislikes", "forced slang", "Finds it cringe", "fellow kids")
        ]
        assert insights.topic_engagement == [
            TopicEngagement(
                "Minecraft", "high", "talking about building", "not as math examples"
            )
        ]
        assert insights.social_emotional == [
            SocialEmotionalIndicator("frustration", "long word problems", "one-word replies")
        ]

        call = mock_client.chat.completions.create.call_args
        assert call.kwargs["model"] == "test-model"
        assert "Student: I love Minecraft" in call.kwargs["messages"][0]["content"]

    @pytest.mark.asyncio
    async def test_invalid_items_skipped(
        self, extractor: InsightExtractor, mock_client: AsyncMock
    ):
        """Entries with bad enums or missing fields are dropped."""
        respond_with(
            mock_client,
            json.dumps(
                {
                    "communication_styles": [
                        {"preference_type": "loves", "style_element": "x", "details": "y"},
                        "not an object",
                    ],
                    "topic_engagement": [{"topic": "Chess", "engagement_level": 3}],
                    "social_emotional": [
                        {"indicator_type": "boredom", "trigger": "drills", "manifestation": "sighs"}
                    ],
                }
            ),
        )

        insights = await extractor.extract(MESSAGES)

        assert insights.communication_styles == []
        assert insights.topic_engagement == []
        assert insights.social_emotional[0].indicator_type == "other"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content", ["not json", "[1, 2]", None])
    async def test_bad_reply_returns_empty(
        self, extractor: InsightExtractor, mock_client: AsyncMock, content
    ):
        """Unparseable replies give empty insights."""
        respond_with(mock_client, content)
        assert (await extractor.extract(MESSAGES)).is_empty()

    @pytest.mark.asyncio
    async def test_llm_error_returns_empty(
        self, extractor: InsightExtractor, mock_client: AsyncMock
    ):
        """LLM errors give empty insights."""
        mock_client.chat.completions.create = AsyncMock(side_effect=Exception("down"))
        assert (await extractor.extract(MESSAGES)).is_empty()

    @pytest.mark.asyncio
    async def test_no_conversation(
        self, extractor: InsightExtractor, mock_client: AsyncMock
    ):
        """Without user or assistant turns the LLM is not called."""
        insights = await extractor.extract([{"role": "system", "content": "x"}])

        assert insights.is_empty()
        mock_client.chat.completions.create.assert_not_called()


class TestFormatting:
    """Tests for the prompt formatters."""

    def test_communication_styles(self):
        """Likes become "Use", dislikes "Avoid"."""
        text = format_communication_styles(
            [
                CommunicationStyle("likes", "emoji", "Enjoys a few", ":)"),
                CommunicationStyle("dislikes", "formal tone", "Feels stiff"),
            ]
        )
        assert text == (
            "COMMUNICATION STYLE PREFERENCES:\n"
            '- Use emoji: Enjoys a few (e.g., ":)")\n'
            "- Avoid formal tone: Feels stiff"
        )

    def test_topic_engagement(self):
        """Engagement level, context and exception are described."""
        text = format_topic_engagement(
            [
                TopicEngagement("Minecraft", "high", "discussing builds", "not for math"),
                TopicEngagement("poetry", "negative"),
            ]
        )
        assert text == (
            "TOPIC ENGAGEMENT PATTERNS:\n"
            "- Shows high interest in Minecraft when discussing builds. Exception: not for math\n"
            "- Reacts negatively to poetry."
        )

    def test_social_emotional(self):
        """Suggested responses go on their own line."""
        text = format_social_emotional(
            [
                SocialEmotionalIndicator(
                    "confidence", "being praised", "longer answers", "Praise effort"
                )
            ]
        )
        assert text == (
            "SOCIAL-EMOTIONAL INDICATORS:\n"
            "- When being praised, shows confidence through longer answers.\n"
            "  Effective response: Praise effort"
        )

    def test_format_insights_combines_sections(self):
        """Non-empty sections are joined under one heading."""
        insights = LearnerInsights(
            topic_engagement=[TopicEngagement("chess", "moderate")],
        )
        assert format_insights(insights) == (
            "SOCIAL-EMOTIONAL LEARNING INSIGHTS:\n"
            "TOPIC ENGAGEMENT PATTERNS:\n"
            "- Is moderately interested in chess."
        )

    def test_format_empty(self):
        """Empty insights render as an empty string."""
        assert format_insights(LearnerInsights()) == ""
        assert format_communication_styles([]) == ""
