"""
Hybrid Retriever - Similarity + Keyword Retrieval

Runs two independent lexical strategies against the chapter corpus and fuses
them into one ranked list:

- Similarity pass: chapters whose title matches the query, scored by the share
  of query words found in the passage (a stand-in for embedding similarity)
- Keyword pass: chapters whose body matches the query, scored by whole-word
  term hits normalized by query length

Both passes also carry recency (exponential decay, ~1 year) and authority
(pluggable, constant by default). The fused score is
0.5 * relevance + 0.2 * recency + 0.3 * authority.
"""

from __future__ import annotations

import asyncio
import math
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Optional

import numpy as np

from .models import PassageCandidate, PassageMetadata, SearchFilters, SearchQuery
from .scoring import (
    AuthorityScorer,
    constant_authority,
    hybrid_scores,
    keyword_relevance,
    recency_score,
    similarity_relevance,
)
from ..core.exceptions import ContextEngineError
from ..core.logging_config import LoggerMixin
from ..services.corpus_reader import CorpusReader, CorpusRecord, MatchField, SearchScope
from ..utils.text_processing import estimate_token_count

SIMILARITY_SHARE = 0.6
KEYWORD_SHARE = 0.4
DEDUPE_PREFIX_CHARS = 100


class HybridRetriever(LoggerMixin):
    """
    Hybrid retrieval over the read-only corpus.

    Strategy:
    1. Similarity and keyword passes run concurrently, each asking the store
       for its share of top_k (60% / 40%)
    2. Results are merged and deduplicated by content prefix
    3. Candidates are ranked by hybrid score, thresholded and truncated
    """

    def __init__(
        self,
        corpus: CorpusReader,
        authority_scorer: AuthorityScorer = constant_authority,
        timeout_seconds: float = 10.0,
        query_max_chars: int = 100,
        clock: Optional[Callable[[], datetime]] = None
    ):
        """
        Initialize hybrid retriever.

        Args:
            corpus: Store to read chapters from
            authority_scorer: Maps a record to an authority score in [0, 1]
            timeout_seconds: Per store call budget; slower calls yield no results
            query_max_chars: Store-side query length limit
            clock: Source of "now" for recency scoring
        """
        self.corpus = corpus
        self.authority_scorer = authority_scorer
        self.timeout_seconds = timeout_seconds
        self.query_max_chars = query_max_chars
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    async def search(
        self,
        query: SearchQuery,
        top_k: int = 20,
        similarity_threshold: float = 0.7,
        search_text: Optional[str] = None,
        use_hybrid_search: bool = True,
        timeout_seconds: Optional[float] = None,
        query_max_chars: Optional[int] = None
    ) -> List[PassageCandidate]:
        """
        Main retrieval method.

        Args:
            query: Caller query; its text anchors relevance scoring
            top_k: Maximum number of passages to return
            similarity_threshold: Minimum hybrid score to keep a passage
            search_text: Store-side text (e.g. with expansion terms); defaults to query.text
            use_hybrid_search: When False only the similarity pass runs, with the full top_k
            timeout_seconds: Overrides the per store call budget for this search
            query_max_chars: Overrides the store-side query length limit for this search

        Returns:
            Passages sorted by hybrid score, highest first
        """
        if not query.text or not query.text.strip() or top_k <= 0:
            return []

        max_chars = query_max_chars if query_max_chars is not None else self.query_max_chars
        store_text = (search_text or query.text)[:max_chars]
        timeout = timeout_seconds if timeout_seconds is not None else self.timeout_seconds

        if use_hybrid_search:
            similarity_results, keyword_results = await asyncio.gather(
                self.retrieve_similarity(
                    query, store_text, math.ceil(top_k * SIMILARITY_SHARE), timeout
                ),
                self.retrieve_keyword(
                    query, store_text, math.ceil(top_k * KEYWORD_SHARE), timeout
                ),
            )
        else:
            similarity_results = await self.retrieve_similarity(query, store_text, top_k, timeout)
            keyword_results = []

        merged = self.deduplicate(similarity_results + keyword_results)
        merged = self.apply_filters(merged, query.filters)

        ranked = self.rank(merged, similarity_threshold, top_k)
        self.log_debug(
            "Hybrid search completed",
            query=query.text[:80],
            subject_id=query.subject_id,
            result_count=len(ranked),
        )
        return ranked

    async def retrieve_similarity(
        self,
        query: SearchQuery,
        store_text: str,
        limit: int,
        timeout: Optional[float] = None
    ) -> List[PassageCandidate]:
        """Similarity-oriented pass: title match, word-overlap relevance."""
        records = await self._fetch(
            "similarity",
            lambda: self.corpus.search(
                store_text,
                match_field=MatchField.TITLE,
                scope=self._scope(query),
                limit=limit,
            ),
            query,
            timeout,
        )
        return [
            self.to_candidate(record, similarity_relevance(record.content, query.text))
            for record in records
        ]

    async def retrieve_keyword(
        self,
        query: SearchQuery,
        store_text: str,
        limit: int,
        timeout: Optional[float] = None
    ) -> List[PassageCandidate]:
        """Keyword-oriented pass: body match, term-hit relevance."""
        records = await self._fetch(
            "keyword",
            lambda: self.corpus.search(
                store_text,
                match_field=MatchField.CONTENT,
                scope=self._scope(query),
                limit=limit,
            ),
            query,
            timeout,
        )
        return [
            self.to_candidate(record, keyword_relevance(record.content, query.text))
            for record in records
        ]

    def rank(
        self,
        candidates: List[PassageCandidate],
        similarity_threshold: float,
        top_k: int
    ) -> List[PassageCandidate]:
        """Score, sort descending (stable), threshold and truncate."""
        if not candidates:
            return []

        scores = hybrid_scores(candidates)
        order = np.argsort(-scores, kind="stable")

        ranked: List[PassageCandidate] = []
        for idx in order:
            score = float(scores[idx])
            if score < similarity_threshold:
                continue
            ranked.append(candidates[int(idx)].with_hybrid_score(score))
            if len(ranked) >= top_k:
                break
        return ranked

    @staticmethod
    def deduplicate(candidates: List[PassageCandidate]) -> List[PassageCandidate]:
        """Drop passages whose first 100 characters were already seen."""
        seen = set()
        unique = []
        for candidate in candidates:
            key = candidate.dedupe_key(DEDUPE_PREFIX_CHARS)
            if key in seen:
                continue
            seen.add(key)
            unique.append(candidate)
        return unique

    @staticmethod
    def apply_filters(
        candidates: List[PassageCandidate],
        filters: SearchFilters
    ) -> List[PassageCandidate]:
        if filters.is_empty():
            return candidates

        wanted_topics = {t.lower() for t in filters.topics}
        kept = []
        for candidate in candidates:
            meta = candidate.metadata
            if filters.difficulty_range is not None:
                low, high = filters.difficulty_range
                if not low <= meta.difficulty <= high:
                    continue
            if filters.chapter and filters.chapter.lower() not in (meta.chapter or "").lower():
                continue
            if wanted_topics and not wanted_topics & {t.lower() for t in meta.topics}:
                continue
            kept.append(candidate)
        return kept

    async def _fetch(
        self,
        strategy: str,
        call: Callable[[], Awaitable[List[CorpusRecord]]],
        query: SearchQuery,
        timeout: Optional[float] = None
    ) -> List[CorpusRecord]:
        """Run one store call; timeouts and store failures count as zero results."""
        timeout = timeout if timeout is not None else self.timeout_seconds
        try:
            return await asyncio.wait_for(call(), timeout=timeout)
        except asyncio.TimeoutError:
            self.log_warning(
                "Corpus search timed out",
                strategy=strategy,
                subject_id=query.subject_id,
                error=f"timeout after {timeout}s",
            )
        except ContextEngineError as exc:
            self.log_warning(
                "Corpus search failed",
                strategy=strategy,
                subject_id=query.subject_id,
                error=exc.message,
            )
        except Exception as exc:
            self.logger.error(
                "Unexpected corpus search error",
                exc_info=True,
                extra={"strategy": strategy, "subject_id": query.subject_id, "error": str(exc)},
            )
        return []

    @staticmethod
    def _scope(query: SearchQuery) -> SearchScope:
        return SearchScope(
            subject_id=query.subject_id,
            document_ids=tuple(query.document_ids),
            knowledge_base_id=query.knowledge_base_id,
        )

    def to_candidate(self, record: CorpusRecord, relevance: float) -> PassageCandidate:
        """Wrap a store record as a scored passage (hybrid score not yet set)."""
        return PassageCandidate(
            content=record.content,
            metadata=PassageMetadata(
                document_id=record.document_id,
                document_name=record.document_name,
                chapter=record.chapter,
                page=record.page,
                subject_id=record.subject_id,
                topics=tuple(record.topics),
                difficulty=record.difficulty,
                source_type=record.source_type,
                relevance_score=relevance,
                recency_score=recency_score(record.created_at, self.clock()),
                authority_score=self.authority_scorer(record),
                token_count=record.word_count or estimate_token_count(record.content),
            ),
        )
