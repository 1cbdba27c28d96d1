"""
Knowledge Base Aggregation - Cross-Subject Context

Retrieves context for a subject and for every subject sharing its knowledge
base, then derives:
    - Concept clusters ranked by centrality (share of passages mentioning them)
    - Prerequisite links mined from "before X" / "prerequisites for X" phrasing
    - Subject coverage and difficulty distribution of the combined passages
"""

from __future__ import annotations

import asyncio
import re
from types import MappingProxyType
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence

from .models import (
    AggregatedContext,
    ConceptCluster,
    PassageCandidate,
    PrerequisiteLink,
    SearchQuery,
)
from ..core.exceptions import ContextEngineError
from ..core.logging_config import LoggerMixin
from ..services.corpus_reader import KnowledgeBaseDirectory, RelatedSubject
from ..utils.text_processing import STOP_WORDS, extract_concepts, split_sentences

if TYPE_CHECKING:
    from ..services.context_retrieval_service import ContextRetrievalService

KEY_CONCEPT_MIN_LENGTH = 6
KEY_CONCEPT_MIN_COUNT = 2
KEY_CONCEPTS_PER_PASSAGE = 15
MAX_CLUSTERS = 20
MAX_RELATED_CONCEPTS = 10
DIFFICULTY_LEVELS = 5
PREREQUISITE_CUES = ("prerequisite", "before")
CUE_WORDS = frozenset({"prerequisite", "prerequisites", "before"})


def key_concepts(text: str, min_count: int = KEY_CONCEPT_MIN_COUNT) -> List[str]:
    return extract_concepts(
        text,
        min_length=KEY_CONCEPT_MIN_LENGTH,
        min_count=min_count,
        top_n=KEY_CONCEPTS_PER_PASSAGE,
        stopwords=STOP_WORDS,
    )


def prerequisite_pattern(concept: str) -> re.Pattern:
    escaped = re.escape(concept)
    return re.compile(
        rf"prerequisites? for {escaped}|before {escaped}|need to know.*{escaped}",
        re.IGNORECASE,
    )


class ContextAggregator(LoggerMixin):
    """Combines context across the subjects of a knowledge base"""

    def __init__(
        self,
        service: "ContextRetrievalService",
        directory: Optional[KnowledgeBaseDirectory] = None
    ):
        """
        Args:
            service: Retrieval service used for every subject
            directory: Related subject lookup; defaults to the service corpus
                when it also acts as a directory
        """
        self.service = service
        if directory is None and isinstance(service.corpus, KnowledgeBaseDirectory):
            directory = service.corpus
        self.directory = directory

    async def aggregate_by_subject(self, subject_id: str, query: str) -> AggregatedContext:
        """
        Retrieve context for a subject and its related subjects.

        Args:
            subject_id: Subject the learner is studying
            query: Query text

        Returns:
            AggregatedContext over all retrieved passages
        """
        related = await self._related_subjects(subject_id)
        subject_ids = [subject_id] + [subject.id for subject in related]

        results = await asyncio.gather(*(
            self.service.retrieve_context(SearchQuery(text=query, subject_id=sid))
            for sid in subject_ids
        ))
        chunks = [chunk for result in results for chunk in result.chunks]

        self.log_info(
            "Aggregated knowledge base context",
            subject_id=subject_id,
            result_count=len(chunks),
        )

        return AggregatedContext(
            chunks=tuple(chunks),
            total_sources=len({chunk.document_id for chunk in chunks}),
            subject_coverage=MappingProxyType(self.subject_coverage(chunks)),
            concept_clusters=tuple(self.cluster_concepts(chunks)),
            prerequisite_links=tuple(self.identify_prerequisites(chunks)),
            difficulty_distribution=self.difficulty_distribution(chunks),
        )

    def cluster_concepts(self, chunks: Sequence[PassageCandidate]) -> List[ConceptCluster]:
        """Group passages by key concept and rank the groups by centrality."""
        if not chunks:
            return []

        concepts_per_chunk = [key_concepts(chunk.content) for chunk in chunks]
        lowered = [chunk.content.lower() for chunk in chunks]

        members: Dict[str, List[PassageCandidate]] = {}
        for chunk, concepts in zip(chunks, concepts_per_chunk):
            for concept in concepts:
                members.setdefault(concept, []).append(chunk)

        clusters = []
        for concept, concept_chunks in members.items():
            mentioning = [i for i, text in enumerate(lowered) if concept in text]

            related: List[str] = []
            for i in mentioning:
                for other in concepts_per_chunk[i]:
                    if other != concept and other not in related:
                        related.append(other)

            clusters.append(ConceptCluster(
                concept=concept,
                chunks=tuple(concept_chunks),
                centrality_score=len(mentioning) / len(chunks),
                related_concepts=tuple(related[:MAX_RELATED_CONCEPTS]),
            ))

        clusters.sort(key=lambda cluster: -cluster.centrality_score)
        return clusters[:MAX_CLUSTERS]

    def identify_prerequisites(self, chunks: Sequence[PassageCandidate]) -> List[PrerequisiteLink]:
        """
        Find concepts a passage says must come first.

        A key concept qualifies when its passage reads "prerequisite(s) for C",
        "before C" or "need to know ... C". Its prerequisites are the other
        concepts named in sentences that mention prerequisites or "before".
        One link per concept, merging every passage that qualifies it.
        """
        links: Dict[str, List[str]] = {}

        for chunk in chunks:
            for concept in key_concepts(chunk.content):
                if not prerequisite_pattern(concept).search(chunk.content):
                    continue
                found = self._extract_prerequisites(chunk.content, concept)
                if not found:
                    continue
                merged = links.setdefault(concept, [])
                merged.extend(p for p in found if p not in merged)

        return [
            PrerequisiteLink(concept=concept, prerequisites=tuple(prereqs), strength=1.0)
            for concept, prereqs in links.items()
        ]

    @staticmethod
    def subject_coverage(chunks: Sequence[PassageCandidate]) -> Dict[str, float]:
        """Percentage of passages per subject"""
        if not chunks:
            return {}

        counts: Dict[str, int] = {}
        for chunk in chunks:
            subject_id = chunk.metadata.subject_id
            if subject_id:
                counts[subject_id] = counts.get(subject_id, 0) + 1

        return {subject_id: count / len(chunks) * 100 for subject_id, count in counts.items()}

    @staticmethod
    def difficulty_distribution(chunks: Sequence[PassageCandidate]):
        """Passage counts for difficulty levels 1-5; out-of-range levels are clamped"""
        distribution = [0] * DIFFICULTY_LEVELS
        for chunk in chunks:
            level = min(max(chunk.metadata.difficulty, 1), DIFFICULTY_LEVELS)
            distribution[level - 1] += 1
        return tuple(distribution)

    @staticmethod
    def _extract_prerequisites(text: str, concept: str) -> List[str]:
        found: List[str] = []
        for sentence in split_sentences(text):
            lower = sentence.lower()
            if not any(cue in lower for cue in PREREQUISITE_CUES):
                continue
            # A single sentence rarely repeats a term, so any mention counts
            for candidate in key_concepts(sentence, min_count=1):
                if candidate == concept or candidate in CUE_WORDS:
                    continue
                if candidate not in found:
                    found.append(candidate)
        return found

    async def _related_subjects(self, subject_id: str) -> List[RelatedSubject]:
        if self.directory is None:
            return []
        timeout = self.service.config.retrieval_timeout_seconds
        try:
            return await asyncio.wait_for(
                self.directory.get_related_subjects(subject_id),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            self.log_warning(
                "Related subject lookup timed out",
                subject_id=subject_id,
                error=f"timeout after {timeout}s",
            )
        except ContextEngineError as exc:
            self.log_warning(
                "Related subject lookup failed",
                subject_id=subject_id,
                error=exc.message,
            )
        except Exception as exc:
            self.logger.error(
                "Unexpected related subject error",
                exc_info=True,
                extra={"subject_id": subject_id, "error": str(exc)},
            )
        return []
