"""
In-memory corpus store.

Holds chapter records in a list and mirrors the matching rules of the SQL
store. Used for local development, demos and tests.
"""

from typing import Dict, Iterable, List, Optional

from ..corpus_reader import (
    CorpusReader,
    CorpusRecord,
    CorpusStats,
    KnowledgeBaseDirectory,
    MatchField,
    RelatedSubject,
    SearchScope,
    match_terms,
)


class InMemoryCorpusStore(CorpusReader, KnowledgeBaseDirectory):
    """Corpus and knowledge base directory backed by plain Python lists"""

    def __init__(
        self,
        records: Optional[Iterable[CorpusRecord]] = None,
        subject_knowledge_bases: Optional[Dict[str, str]] = None,
        subject_names: Optional[Dict[str, str]] = None
    ) -> None:
        """
        Args:
            records: Chapter records
            subject_knowledge_bases: subject_id -> knowledge_base_id
            subject_names: subject_id -> display name
        """
        self.records: List[CorpusRecord] = list(records or [])
        self.subject_knowledge_bases = dict(subject_knowledge_bases or {})
        self.subject_names = dict(subject_names or {})

    def add_record(self, record: CorpusRecord) -> None:
        self.records.append(record)

    async def search(
        self,
        text: str,
        *,
        match_field: MatchField,
        scope: SearchScope,
        limit: int
    ) -> List[CorpusRecord]:
        if limit <= 0:
            return []

        terms = match_terms(text)
        document_ids = set(scope.document_ids)

        matches = []
        for record in self.records:
            if scope.subject_id and record.subject_id != scope.subject_id:
                continue
            if (
                scope.knowledge_base_id
                and self.subject_knowledge_bases.get(record.subject_id) != scope.knowledge_base_id
            ):
                continue
            haystack = (record.chapter or "") if match_field == MatchField.TITLE else record.content
            haystack = haystack.lower()
            if record.document_id in document_ids or any(term in haystack for term in terms):
                matches.append(record)

        # sorted() is stable, so equal word counts keep insertion order
        matches = sorted(matches, key=lambda r: -(r.word_count or 0))
        return matches[:limit]

    async def get_chapters(
        self,
        document_id: str,
        chapter_title: str,
        limit: int = 10
    ) -> List[CorpusRecord]:
        chapters = [
            record for record in self.records
            if record.document_id == document_id and record.chapter == chapter_title
        ]
        chapters = sorted(chapters, key=lambda r: -(r.word_count or 0))
        return chapters[:limit]

    async def get_stats(self) -> CorpusStats:
        return CorpusStats(
            documents=len({record.document_id for record in self.records}),
            chapters=len(self.records),
            subjects=sorted({record.subject_id for record in self.records if record.subject_id}),
        )

    async def get_related_subjects(self, subject_id: str) -> List[RelatedSubject]:
        knowledge_base_id = self.subject_knowledge_bases.get(subject_id)
        if knowledge_base_id is None:
            return []

        return [
            RelatedSubject(
                id=other_id,
                name=self.subject_names.get(other_id, other_id),
                knowledge_base_id=knowledge_base_id,
            )
            for other_id, kb_id in sorted(self.subject_knowledge_bases.items())
            if kb_id == knowledge_base_id and other_id != subject_id
        ]
