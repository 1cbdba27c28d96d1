"""
Passage scoring signals.

Relevance is lexical (word overlap or keyword hits), recency decays
exponentially with document age, and authority comes from a pluggable scorer
that defaults to a constant.
"""

from __future__ import annotations

import math
import re
from datetime import datetime, timezone
from typing import Callable, Optional, Sequence

import numpy as np

from .models import PassageCandidate
from ..services.corpus_reader import CorpusRecord
from ..utils.text_processing import tokenize, word_set

# relevance, recency, authority
HYBRID_WEIGHTS = np.array([0.5, 0.2, 0.3])

RECENCY_DECAY_DAYS = 365.0
SECONDS_PER_DAY = 86400.0

AuthorityScorer = Callable[[CorpusRecord], float]


def constant_authority(record: CorpusRecord) -> float:
    """Placeholder authority model: every document is fully trusted."""
    return 1.0


def similarity_relevance(content: str, query: str) -> float:
    """Share of distinct query words that also appear in the passage."""
    query_words = word_set(query)
    if not query_words:
        return 0.0
    overlap = len(query_words & word_set(content))
    return overlap / len(query_words)


def keyword_relevance(content: str, query: str) -> float:
    """Whole-word hits of each query term, normalized by term count, capped at 1."""
    terms = tokenize(query)
    if not terms:
        return 0.0

    content_lower = (content or "").lower()
    hits = 0
    for term in terms:
        pattern = re.compile(rf"\b{re.escape(term)}\b")
        hits += len(pattern.findall(content_lower))

    return min(hits / len(terms), 1.0)


def recency_score(created_at: Optional[datetime], now: Optional[datetime] = None) -> float:
    """exp(-age_days / 365); undated or future documents count as fresh."""
    if created_at is None:
        return 1.0
    now = now or datetime.now(timezone.utc)
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    age_days = max((now - created_at).total_seconds() / SECONDS_PER_DAY, 0.0)
    return math.exp(-age_days / RECENCY_DECAY_DAYS)


def hybrid_scores(candidates: Sequence[PassageCandidate]) -> np.ndarray:
    """Weighted blend of the three signals for each candidate."""
    if not candidates:
        return np.zeros(0)

    signals = np.array([
        [
            c.metadata.relevance_score,
            c.metadata.recency_score,
            c.metadata.authority_score,
        ]
        for c in candidates
    ], dtype=float)
    return signals @ HYBRID_WEIGHTS
