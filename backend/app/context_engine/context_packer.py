"""
Context Packer - Token Budgeted Passage Selection

Greedy knapsack over retrieved passages:
    1. Highest relevance first, while the budget allows
    2. One truncated copy may fill the remaining space
    3. Diversity pass to reach up to three source documents
    4. Reorder for reading flow (introductions first, conclusions last)

Not optimal, but deterministic and never over budget.
"""

from dataclasses import replace
from typing import List, Optional, Sequence, Set

from .models import PackedContext, PassageCandidate
from ..core.logging_config import get_logger
from ..utils.text_processing import CHARS_PER_TOKEN

logger = get_logger(__name__)

TRUNCATION_MARKER = "... [truncated]"
MIN_TRUNCATION_SHARE = 0.3
TARGET_DISTINCT_SOURCES = 3

INTRODUCTORY_MARKERS = ("intro", "overview", "chapter 1")
CONCLUDING_MARKERS = ("conclusion", "summary", "final")


def is_introductory(chapter: Optional[str]) -> bool:
    if not chapter:
        return False
    lower = chapter.lower()
    return lower == "1" or any(marker in lower for marker in INTRODUCTORY_MARKERS)


def is_concluding(chapter: Optional[str]) -> bool:
    if not chapter:
        return False
    lower = chapter.lower()
    return any(marker in lower for marker in CONCLUDING_MARKERS)


def truncate_passage(candidate: PassageCandidate, max_tokens: int) -> PassageCandidate:
    """Copy of the passage cut to roughly ``max_tokens`` worth of characters."""
    content = candidate.content[: max_tokens * CHARS_PER_TOKEN] + TRUNCATION_MARKER
    return replace(
        candidate,
        content=content,
        metadata=replace(candidate.metadata, token_count=max_tokens),
        truncated=True,
    )


class ContextPacker:
    """Selects passages for a fixed token budget"""

    def __init__(self, target_sources: int = TARGET_DISTINCT_SOURCES):
        self.target_sources = target_sources

    def pack(self, candidates: Sequence[PassageCandidate], max_tokens: int) -> PackedContext:
        """
        Pack passages into the token budget.

        Args:
            candidates: Retrieved passages, in retrieval order
            max_tokens: Token budget

        Returns:
            PackedContext whose total_tokens never exceeds max_tokens
        """
        if not candidates or max_tokens <= 0:
            return PackedContext(chunks=(), total_tokens=0)

        candidates = list(candidates)
        # sorted() is stable: equal relevance keeps retrieval order
        by_relevance = sorted(
            range(len(candidates)),
            key=lambda i: -candidates[i].metadata.relevance_score
        )

        selected: List[PassageCandidate] = []
        used: Set[int] = set()
        total = 0
        truncated_fill: Optional[PassageCandidate] = None

        for index in by_relevance:
            candidate = candidates[index]
            tokens = candidate.token_count
            if total + tokens <= max_tokens:
                selected.append(candidate)
                used.add(index)
                total += tokens
                continue

            remaining = max_tokens - total
            if remaining > 0 and remaining >= tokens * MIN_TRUNCATION_SHARE:
                truncated_fill = truncate_passage(candidate, remaining)
                selected.append(truncated_fill)
                used.add(index)
                total = max_tokens
            break

        selected, total = self._diversify(candidates, selected, used, total, max_tokens, truncated_fill)

        ordered = self._reorder(selected)
        logger.debug(
            "Packed context",
            extra={"result_count": len(ordered), "total_tokens": total}
        )
        return PackedContext(chunks=tuple(ordered), total_tokens=total)

    def _diversify(
        self,
        candidates: List[PassageCandidate],
        selected: List[PassageCandidate],
        used: Set[int],
        total: int,
        max_tokens: int,
        truncated_fill: Optional[PassageCandidate]
    ):
        """
        Add passages from unseen documents until enough sources are covered.

        A truncated fill only occupies leftover space, so its budget is
        released when a passage from a new document needs it.
        """
        documents = {chunk.document_id for chunk in selected}
        if len(documents) >= min(self.target_sources, len(selected)):
            return selected, total

        for index, candidate in enumerate(candidates):
            if index in used or candidate.document_id in documents:
                continue

            tokens = candidate.token_count
            if total + tokens > max_tokens and truncated_fill is not None:
                reclaimed = total - truncated_fill.token_count
                if reclaimed + tokens <= max_tokens:
                    selected = [chunk for chunk in selected if chunk is not truncated_fill]
                    total = reclaimed
                    documents = {chunk.document_id for chunk in selected}
                    truncated_fill = None

            if total + tokens <= max_tokens:
                selected.append(candidate)
                used.add(index)
                total += tokens
                documents.add(candidate.document_id)
                if len(documents) >= self.target_sources:
                    break

        return selected, total

    @staticmethod
    def _reorder(chunks: List[PassageCandidate]) -> List[PassageCandidate]:
        introductory, middle, concluding, unlabeled = [], [], [], []
        for chunk in chunks:
            chapter = chunk.metadata.chapter
            if not chapter:
                unlabeled.append(chunk)
            elif is_introductory(chapter):
                introductory.append(chunk)
            elif is_concluding(chapter):
                concluding.append(chunk)
            else:
                middle.append(chunk)
        return introductory + middle + concluding + unlabeled
