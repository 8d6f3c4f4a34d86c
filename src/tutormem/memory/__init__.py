"""Memory module for persistent, conflict-resolved user facts."""

from .analytics import (
    KnowledgeGaps,
    KnowledgeProfile,
    PatternAnalysis,
    analyze_fact_patterns,
    generate_profile_summary,
    group_facts,
    identify_knowledge_gaps,
)
from .conflicts import (
    BatchImportResult,
    ConflictAction,
    ConflictResolver,
    ConflictResult,
    ConflictStrategy,
    ImportFailure,
)
from .extractor import FactExtractor
from .insights import InsightExtractor, LearnerInsights, format_insights
from .manager import MemoryManager
from .models import (
    Fact,
    FactCandidate,
    FactExport,
    FactType,
    SearchParams,
    SearchResult,
)
from .relevance import rank_facts, score_fact
from .store import FactStore

__all__ = [
    "BatchImportResult",
    "ConflictAction",
    "ConflictResolver",
    "ConflictResult",
    "ConflictStrategy",
    "Fact",
    "FactCandidate",
    "FactExport",
    "FactExtractor",
    "FactStore",
    "FactType",
    "ImportFailure",
    "InsightExtractor",
    "LearnerInsights",
    "KnowledgeGaps",
    "KnowledgeProfile",
    "MemoryManager",
    "PatternAnalysis",
    "SearchParams",
    "SearchResult",
    "analyze_fact_patterns",
    "format_insights",
    "generate_profile_summary",
    "group_facts",
    "identify_knowledge_gaps",
    "rank_facts",
    "score_fact",
]
