"""
Value objects flowing through the context engine.

Everything here is created fresh per retrieval call and never mutated;
re-scoring or truncating a passage produces a new instance.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from types import MappingProxyType
from typing import Any, Mapping, Optional, Tuple

from ..core.config import Settings, settings as default_settings
from ..core.exceptions import ConfigurationError


@dataclass(frozen=True)
class SearchFilters:
    difficulty_range: Optional[Tuple[int, int]] = None  # inclusive
    chapter: Optional[str] = None
    topics: Tuple[str, ...] = ()

    def is_empty(self) -> bool:
        return self.difficulty_range is None and not self.chapter and not self.topics


@dataclass(frozen=True)
class SearchQuery:
    text: str
    subject_id: Optional[str] = None
    document_ids: Tuple[str, ...] = ()
    knowledge_base_id: Optional[str] = None
    filters: SearchFilters = field(default_factory=SearchFilters)

    def with_text(self, text: str) -> "SearchQuery":
        return replace(self, text=text)

    def with_subject(self, subject_id: str) -> "SearchQuery":
        return replace(self, subject_id=subject_id)


@dataclass(frozen=True)
class PassageMetadata:
    document_id: str
    document_name: str
    chapter: Optional[str] = None
    page: Optional[int] = None
    subject_id: Optional[str] = None
    topics: Tuple[str, ...] = ()
    difficulty: int = 3  # 1-5
    source_type: str = "pdf"  # pdf, docx, generated
    relevance_score: float = 0.0
    recency_score: float = 0.0
    authority_score: float = 1.0
    token_count: int = 0


@dataclass(frozen=True)
class PassageCandidate:
    """A retrievable unit of text plus its scoring metadata"""
    content: str
    metadata: PassageMetadata
    hybrid_score: Optional[float] = None
    truncated: bool = False

    @property
    def document_id(self) -> str:
        return self.metadata.document_id

    @property
    def token_count(self) -> int:
        return self.metadata.token_count

    def dedupe_key(self, prefix_chars: int = 100) -> str:
        return self.content[:prefix_chars]

    def with_hybrid_score(self, score: float) -> "PassageCandidate":
        return replace(self, hybrid_score=score)


@dataclass(frozen=True)
class QueryExpansion:
    primary: Tuple[str, ...] = ()
    related: Tuple[str, ...] = ()
    synonyms: Tuple[str, ...] = ()
    questions: Tuple[str, ...] = ()


@dataclass(frozen=True)
class PackedContext:
    chunks: Tuple[PassageCandidate, ...]
    total_tokens: int


@dataclass(frozen=True)
class SourceContribution:
    document_id: str
    document_name: str
    chunks: int
    contribution_score: float


@dataclass(frozen=True)
class ConceptStats:
    frequency: int
    sources: Tuple[str, ...]
    agreement: str  # consensus, mixed, conflicting


@dataclass(frozen=True)
class ConflictSource:
    document_id: str
    document_name: str
    claim: str
    confidence: float
    chapter: Optional[str] = None


@dataclass(frozen=True)
class Conflict:
    concept: str
    sources: Tuple[ConflictSource, ...]


@dataclass(frozen=True)
class ConsensusSource:
    document_id: str
    document_name: str
    claim: str


@dataclass(frozen=True)
class ConsensusArea:
    concept: str
    sources: Tuple[ConsensusSource, ...]
    confidence: str  # high, medium, low


@dataclass(frozen=True)
class ContextResult:
    chunks: Tuple[PassageCandidate, ...] = ()
    total_tokens: int = 0
    sources: Tuple[SourceContribution, ...] = ()
    concepts: Mapping[str, ConceptStats] = field(default_factory=lambda: MappingProxyType({}))
    conflicts: Tuple[Conflict, ...] = ()
    consensus: Tuple[ConsensusArea, ...] = ()

    @property
    def has_grounding(self) -> bool:
        """False when callers should fall back to ungrounded generation"""
        return bool(self.chunks)

    @property
    def source_count(self) -> int:
        return len({chunk.document_id for chunk in self.chunks})


@dataclass(frozen=True)
class ConceptCluster:
    concept: str
    chunks: Tuple[PassageCandidate, ...]
    centrality_score: float
    related_concepts: Tuple[str, ...]


@dataclass(frozen=True)
class PrerequisiteLink:
    concept: str
    prerequisites: Tuple[str, ...]
    strength: float = 1.0


@dataclass(frozen=True)
class AggregatedContext:
    chunks: Tuple[PassageCandidate, ...]
    total_sources: int
    subject_coverage: Mapping[str, float]
    concept_clusters: Tuple[ConceptCluster, ...]
    prerequisite_links: Tuple[PrerequisiteLink, ...]
    difficulty_distribution: Tuple[int, int, int, int, int]


@dataclass(frozen=True)
class RetrievalConfig:
    """Per-call retrieval settings. Build once, override with ``with_overrides``."""
    max_tokens: int = 12000
    top_k: int = 20
    similarity_threshold: float = 0.7
    expand_queries: bool = True
    use_hybrid_search: bool = True
    retrieval_timeout_seconds: float = 10.0
    query_max_chars: int = 100
    use_cache: bool = True

    def __post_init__(self):
        invalid = [
            name for name in ("max_tokens", "top_k", "query_max_chars", "retrieval_timeout_seconds")
            if getattr(self, name) <= 0
        ]
        if not 0.0 <= self.similarity_threshold <= 1.0:
            invalid.append("similarity_threshold")
        if invalid:
            raise ConfigurationError(
                f"Invalid retrieval config values: {', '.join(sorted(invalid))}",
                invalid_keys=invalid,
            )

    @classmethod
    def from_settings(cls, source: Optional[Settings] = None) -> "RetrievalConfig":
        source = source or default_settings
        return cls(
            max_tokens=source.MAX_TOKENS,
            top_k=source.TOP_K,
            similarity_threshold=source.SIMILARITY_THRESHOLD,
            expand_queries=source.EXPAND_QUERIES,
            use_hybrid_search=source.USE_HYBRID_SEARCH,
            retrieval_timeout_seconds=source.RETRIEVAL_TIMEOUT_SECONDS,
            query_max_chars=source.QUERY_MAX_CHARS,
            use_cache=source.CACHE_ENABLED,
        )

    def with_overrides(self, **overrides: Any) -> "RetrievalConfig":
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise ConfigurationError(
                f"Unknown retrieval config keys: {', '.join(sorted(unknown))}",
                invalid_keys=unknown,
            )
        if not overrides:
            return self
        return replace(self, **overrides)

    def cache_key_parts(self) -> Tuple[Any, ...]:
        return (
            self.max_tokens,
            self.top_k,
            self.similarity_threshold,
            self.expand_queries,
            self.use_hybrid_search,
            self.query_max_chars,
        )
