"""
Context Engine - Grounding Material for Lesson and Quiz Generation

Pipeline:
    1. Query Expansion - Static concept tables, synonyms, reformulations
    2. Hybrid Retrieval - Similarity + keyword passes, fused scoring
    3. Context Packing - Token budget, source diversity, reading order
    4. Concept Analysis - Cross-source concept frequency
    5. Conflict Resolution - Lexical claim conflicts and consensus
    6. Knowledge Base Aggregation - Concept clusters and prerequisites
"""

from .models import (
    AggregatedContext,
    ContextResult,
    PassageCandidate,
    PassageMetadata,
    RetrievalConfig,
    SearchFilters,
    SearchQuery,
)
from .query_expander import QueryExpander
from .hybrid_retriever import HybridRetriever
from .context_packer import ContextPacker
from .concept_analyzer import ConceptAnalyzer
from .conflict_resolver import ConflictResolver
from .context_aggregator import ContextAggregator
from .result_cache import ResultCache

__all__ = [
    "AggregatedContext",
    "ContextResult",
    "PassageCandidate",
    "PassageMetadata",
    "RetrievalConfig",
    "SearchFilters",
    "SearchQuery",
    "QueryExpander",
    "HybridRetriever",
    "ContextPacker",
    "ConceptAnalyzer",
    "ConflictResolver",
    "ContextAggregator",
    "ResultCache",
]

__version__ = "0.1.0"
