"""
Concept Analyzer - Cross-Source Concept Frequency

Tallies candidate concept words (five letters or more) across packed passages
and labels each by how many distinct documents mention it. The label is a
frequency signal only; claim-level agreement lives in the conflict resolver.
"""

from typing import Dict, List, Sequence, Tuple

from .models import ConceptStats, PassageCandidate, SourceContribution
from ..utils.text_processing import extract_concepts

CONCEPT_MIN_LENGTH = 5

CONSENSUS = "consensus"
MIXED = "mixed"
CONFLICTING = "conflicting"


def agreement_label(source_count: int) -> str:
    if source_count > 2:
        return CONSENSUS
    if source_count == 2:
        return MIXED
    return CONFLICTING


class ConceptAnalyzer:
    """Builds the concept map attached to every context result"""

    def __init__(self, min_length: int = CONCEPT_MIN_LENGTH):
        self.min_length = min_length

    def analyze(self, chunks: Sequence[PassageCandidate]) -> Dict[str, ConceptStats]:
        """
        Count concept mentions per passage and the documents behind them.

        Args:
            chunks: Packed passages

        Returns:
            concept -> ConceptStats, in first-seen order
        """
        frequency: Dict[str, int] = {}
        sources: Dict[str, List[str]] = {}

        for chunk in chunks:
            # Each passage counts a concept once
            for concept in extract_concepts(chunk.content, min_length=self.min_length):
                frequency[concept] = frequency.get(concept, 0) + 1
                documents = sources.setdefault(concept, [])
                if chunk.document_id not in documents:
                    documents.append(chunk.document_id)

        return {
            concept: ConceptStats(
                frequency=frequency[concept],
                sources=tuple(sources[concept]),
                agreement=agreement_label(len(sources[concept])),
            )
            for concept in frequency
        }

    def summarize_sources(self, chunks: Sequence[PassageCandidate]) -> Tuple[SourceContribution, ...]:
        """Per-document passage count and mean relevance, best contributors first."""
        totals: Dict[str, List] = {}
        for chunk in chunks:
            entry = totals.setdefault(
                chunk.document_id,
                [chunk.metadata.document_name, 0, 0.0]
            )
            entry[1] += 1
            entry[2] += chunk.metadata.relevance_score

        summary = [
            SourceContribution(
                document_id=document_id,
                document_name=name,
                chunks=count,
                contribution_score=score / count,
            )
            for document_id, (name, count, score) in totals.items()
        ]
        return tuple(sorted(summary, key=lambda s: -s.contribution_score))
