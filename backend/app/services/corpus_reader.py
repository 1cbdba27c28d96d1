"""
Corpus Read Abstraction Layer

The document/chapter store is owned by the platform; the context engine only
reads it. This module defines the read contract so the retrieval pipeline can
run against the SQL store in production and an in-memory store in tests.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple

# Terms this short are ignored by store-side matching
MIN_MATCH_TERM_LENGTH = 4


class MatchField(str, Enum):
    TITLE = "title"      # chapter title
    CONTENT = "content"  # chapter body


@dataclass(frozen=True)
class SearchScope:
    subject_id: Optional[str] = None
    document_ids: Tuple[str, ...] = ()
    knowledge_base_id: Optional[str] = None  # restricts to subjects of this knowledge base


@dataclass(frozen=True)
class CorpusRecord:
    """A chapter row joined with its owning document"""
    document_id: str
    document_name: str
    content: str
    created_at: datetime
    chapter: Optional[str] = None
    word_count: Optional[int] = None
    subject_id: Optional[str] = None
    topics: Tuple[str, ...] = ()
    difficulty: int = 3
    source_type: str = "pdf"
    page: Optional[int] = None


@dataclass(frozen=True)
class RelatedSubject:
    id: str
    name: str
    knowledge_base_id: Optional[str] = None


@dataclass
class CorpusStats:
    documents: int = 0
    chapters: int = 0
    subjects: List[str] = field(default_factory=list)


def match_terms(text: str) -> List[str]:
    """Terms a store matches against; shared so every store agrees"""
    seen = []
    for term in (text or "").lower().split():
        term = term.strip(".,;:!?\"'()[]{}")
        if len(term) >= MIN_MATCH_TERM_LENGTH and term not in seen:
            seen.append(term)
    return seen


class CorpusReader(ABC):
    """Read-only access to the chapter corpus"""

    @abstractmethod
    async def search(
        self,
        text: str,
        *,
        match_field: MatchField,
        scope: SearchScope,
        limit: int
    ) -> List[CorpusRecord]:
        """
        Find chapters whose ``match_field`` contains any term of ``text``
        (case-insensitive) or whose document is listed in
        ``scope.document_ids``. ``scope.subject_id`` restricts to one subject
        and ``scope.knowledge_base_id`` to the subjects of one knowledge base.
        Results are ordered by word count, longest first.

        Raises:
            CorpusReadError: If the store cannot be read
        """
        pass

    @abstractmethod
    async def get_chapters(
        self,
        document_id: str,
        chapter_title: str,
        limit: int = 10
    ) -> List[CorpusRecord]:
        """Chapters of one document with an exact title match"""
        pass

    @abstractmethod
    async def get_stats(self) -> CorpusStats:
        """Corpus size summary"""
        pass


class KnowledgeBaseDirectory(ABC):
    """Resolves the subjects grouped with a subject in a knowledge base"""

    @abstractmethod
    async def get_related_subjects(self, subject_id: str) -> List[RelatedSubject]:
        """
        Subjects sharing a knowledge base with ``subject_id``, excluding it.

        Raises:
            KnowledgeBaseLookupError: If the grouping cannot be resolved
        """
        pass
