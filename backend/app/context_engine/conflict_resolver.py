"""
Conflict Resolution - Lexical Claim Comparison Across Sources

For each frequent concept in the packed passages, pulls one representative
claim per source document and compares claims pairwise:
    - Conflicts: a greedy, in-order set of sources whose claims all differ
      from one another
    - Consensus: groups of sources whose claims do not differ

Claims "differ" when their word overlap, relative to the shorter claim, is
below 50%. This is a lexical heuristic: paraphrased agreement can read as a
conflict and vice versa.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from .models import (
    Conflict,
    ConflictSource,
    ConsensusArea,
    ConsensusSource,
    PassageCandidate,
)
from ..utils.text_processing import (
    extract_concepts,
    normalize_whitespace,
    split_sentences,
    word_overlap_ratio,
)

CONCEPT_MIN_LENGTH = 6
CONCEPT_MIN_COUNT = 3
CONCEPTS_PER_PASSAGE = 10
DIFFERENCE_THRESHOLD = 0.5

HIGH_AGREEMENT = 0.7
MEDIUM_AGREEMENT = 0.5

REASONING_MARKERS = ("because", "therefore")
RESEARCH_MARKERS = ("study", "research")
EVIDENCE_MARKERS = ("evidence", "data")


@dataclass
class _SourceClaim:
    claim: str
    chunk: PassageCandidate


def extract_claim(text: str, concept: str) -> Optional[str]:
    """Clause before the first comma or colon of the first sentence naming the concept."""
    concept = concept.lower()
    for sentence in split_sentences(text):
        if concept in sentence.lower():
            clause = sentence.replace(":", ",").split(",", 1)[0].strip()
            return clause or None
    return None


def claims_differ(first: str, second: str) -> bool:
    if normalize_whitespace(first) == normalize_whitespace(second):
        return False
    return word_overlap_ratio(first, second) < DIFFERENCE_THRESHOLD


def calculate_confidence(claim: str) -> float:
    """Specificity heuristic: longer claims citing reasons or evidence score higher."""
    confidence = 0.5
    if len(claim) > 50:
        confidence += 0.2
    if any(marker in claim for marker in REASONING_MARKERS):
        confidence += 0.1
    if any(marker in claim for marker in RESEARCH_MARKERS):
        confidence += 0.1
    if any(marker in claim for marker in EVIDENCE_MARKERS):
        confidence += 0.1
    return min(round(confidence, 2), 1.0)


def confidence_level(agreeing: int, total: int) -> str:
    ratio = agreeing / total if total else 0.0
    if ratio >= HIGH_AGREEMENT:
        return "high"
    if ratio >= MEDIUM_AGREEMENT:
        return "medium"
    return "low"


class ConflictResolver:
    """Detects disagreement and agreement between sources, concept by concept"""

    def __init__(
        self,
        min_length: int = CONCEPT_MIN_LENGTH,
        min_count: int = CONCEPT_MIN_COUNT,
        top_n: int = CONCEPTS_PER_PASSAGE
    ):
        self.min_length = min_length
        self.min_count = min_count
        self.top_n = top_n

    def detect_conflicts(self, chunks: Sequence[PassageCandidate]) -> List[Conflict]:
        """
        Find concepts where two or more sources make mutually different claims.

        Args:
            chunks: Packed passages

        Returns:
            One Conflict per concept, in first-seen concept order
        """
        conflicts: List[Conflict] = []

        for concept, claims in self._claims_by_concept(chunks).items():
            if len(claims) < 2:
                continue

            disputed = self._pairwise_different(list(claims.items()))
            if len(disputed) < 2:
                continue

            conflicts.append(Conflict(
                concept=concept,
                sources=tuple(
                    ConflictSource(
                        document_id=document_id,
                        document_name=source.chunk.metadata.document_name,
                        chapter=source.chunk.metadata.chapter,
                        claim=source.claim,
                        confidence=calculate_confidence(source.claim),
                    )
                    for document_id, source in disputed
                ),
            ))

        return conflicts

    def find_consensus(self, chunks: Sequence[PassageCandidate]) -> List[ConsensusArea]:
        """
        Group sources whose claims about a concept do not differ.

        Each group of two or more sources becomes a ConsensusArea, leveled by
        the share of the concept's sources that agree.
        """
        areas: List[ConsensusArea] = []

        for concept, claims in self._claims_by_concept(chunks).items():
            if len(claims) < 2:
                continue

            entries = list(claims.items())
            for group in self._group_similar(entries):
                if len(group) < 2:
                    continue
                areas.append(ConsensusArea(
                    concept=concept,
                    sources=tuple(
                        ConsensusSource(
                            document_id=document_id,
                            document_name=source.chunk.metadata.document_name,
                            claim=source.claim,
                        )
                        for document_id, source in group
                    ),
                    confidence=confidence_level(len(group), len(entries)),
                ))

        return areas

    def _claims_by_concept(
        self,
        chunks: Sequence[PassageCandidate]
    ) -> Dict[str, Dict[str, _SourceClaim]]:
        """concept -> document_id -> claim; a later claim replaces only a different one"""
        by_concept: Dict[str, Dict[str, _SourceClaim]] = {}

        for chunk in chunks:
            concepts = extract_concepts(
                chunk.content,
                min_length=self.min_length,
                min_count=self.min_count,
                top_n=self.top_n,
            )
            for concept in concepts:
                claims = by_concept.setdefault(concept, {})
                claim = extract_claim(chunk.content, concept)
                if not claim:
                    continue

                existing = claims.get(chunk.document_id)
                if existing is None or claims_differ(existing.claim, claim):
                    claims[chunk.document_id] = _SourceClaim(claim=claim, chunk=chunk)

        return by_concept

    @staticmethod
    def _pairwise_different(
        entries: List[Tuple[str, _SourceClaim]]
    ) -> List[Tuple[str, _SourceClaim]]:
        """Sources in order, keeping each one whose claim differs from all kept so far"""
        kept: List[Tuple[str, _SourceClaim]] = []
        for document_id, source in entries:
            if all(claims_differ(source.claim, other.claim) for _, other in kept):
                kept.append((document_id, source))
        return kept

    @staticmethod
    def _group_similar(
        entries: List[Tuple[str, _SourceClaim]]
    ) -> List[List[Tuple[str, _SourceClaim]]]:
        groups = []
        grouped = set()
        for i, (document_id, seed) in enumerate(entries):
            if i in grouped:
                continue
            grouped.add(i)
            group = [(document_id, seed)]
            for j in range(i + 1, len(entries)):
                if j in grouped:
                    continue
                if not claims_differ(seed.claim, entries[j][1].claim):
                    group.append(entries[j])
                    grouped.add(j)
            groups.append(group)
        return groups
