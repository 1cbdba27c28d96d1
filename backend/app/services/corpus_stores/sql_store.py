"""
SQLAlchemy corpus store.

Reads chapters joined with their documents. Matching uses ILIKE per term, so
the same query text behaves the same here and in the in-memory store.
"""

from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from ...core.database import get_session_factory
from ...core.exceptions import CorpusReadError, KnowledgeBaseLookupError
from ...core.logging_config import LoggerMixin
from ...models.corpus import Chapter, Document, Subject
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


class SqlCorpusStore(CorpusReader, KnowledgeBaseDirectory, LoggerMixin):
    """Corpus reader over the platform's documents/chapters tables"""

    def __init__(self, session_factory: Optional[async_sessionmaker] = None) -> None:
        self._session_factory = session_factory

    @property
    def session_factory(self) -> async_sessionmaker:
        if self._session_factory is None:
            self._session_factory = get_session_factory()
        return self._session_factory

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

        column = Chapter.title if match_field == MatchField.TITLE else Chapter.content
        conditions = [column.ilike(f"%{term}%") for term in match_terms(text)]
        if scope.document_ids:
            conditions.append(Chapter.document_id.in_(scope.document_ids))
        if not conditions:
            return []

        stmt = (
            select(Chapter, Document)
            .join(Document, Chapter.document_id == Document.id)
            .where(or_(*conditions))
            .order_by(Chapter.word_count.desc().nulls_last(), Chapter.id.asc())
            .limit(limit)
        )
        if scope.subject_id:
            stmt = stmt.where(Document.subject_id == scope.subject_id)
        if scope.knowledge_base_id:
            stmt = stmt.where(Document.subject_id.in_(
                select(Subject.id).where(Subject.knowledge_base_id == scope.knowledge_base_id)
            ))

        try:
            async with self.session_factory() as session:
                result = await session.execute(stmt)
                rows = result.all()
        except SQLAlchemyError as exc:
            raise CorpusReadError(
                f"Chapter search failed: {exc}",
                store="sql",
                operation=f"search_{match_field.value}",
            ) from exc

        self.log_debug(
            "Chapter search completed",
            strategy=match_field.value,
            subject_id=scope.subject_id,
            result_count=len(rows),
        )
        return [self._to_record(chapter, document) for chapter, document in rows]

    async def get_chapters(
        self,
        document_id: str,
        chapter_title: str,
        limit: int = 10
    ) -> List[CorpusRecord]:
        stmt = (
            select(Chapter, Document)
            .join(Document, Chapter.document_id == Document.id)
            .where(Chapter.document_id == document_id, Chapter.title == chapter_title)
            .order_by(Chapter.word_count.desc().nulls_last(), Chapter.id.asc())
            .limit(limit)
        )
        try:
            async with self.session_factory() as session:
                result = await session.execute(stmt)
                rows = result.all()
        except SQLAlchemyError as exc:
            raise CorpusReadError(
                f"Chapter lookup failed: {exc}",
                store="sql",
                operation="get_chapters",
            ) from exc

        return [self._to_record(chapter, document) for chapter, document in rows]

    async def get_stats(self) -> CorpusStats:
        try:
            async with self.session_factory() as session:
                documents = await session.scalar(select(func.count(Document.id)))
                chapters = await session.scalar(select(func.count(Chapter.id)))
                subjects = (await session.execute(select(Subject.id).order_by(Subject.id))).scalars().all()
        except SQLAlchemyError as exc:
            raise CorpusReadError(f"Corpus stats failed: {exc}", store="sql", operation="stats") from exc

        return CorpusStats(documents=documents or 0, chapters=chapters or 0, subjects=list(subjects))

    async def get_related_subjects(self, subject_id: str) -> List[RelatedSubject]:
        try:
            async with self.session_factory() as session:
                knowledge_base_id = await session.scalar(
                    select(Subject.knowledge_base_id).where(Subject.id == subject_id)
                )
                if knowledge_base_id is None:
                    return []

                result = await session.execute(
                    select(Subject)
                    .where(Subject.knowledge_base_id == knowledge_base_id, Subject.id != subject_id)
                    .order_by(Subject.id)
                )
                subjects = result.scalars().all()
        except SQLAlchemyError as exc:
            raise KnowledgeBaseLookupError(
                f"Related subject lookup failed: {exc}",
                subject_id=subject_id,
            ) from exc

        return [
            RelatedSubject(id=subject.id, name=subject.name, knowledge_base_id=subject.knowledge_base_id)
            for subject in subjects
        ]

    @staticmethod
    def _to_record(chapter: Chapter, document: Document) -> CorpusRecord:
        created_at = chapter.created_at or document.created_at or datetime.now(timezone.utc)
        return CorpusRecord(
            document_id=document.id,
            document_name=document.title,
            content=chapter.content,
            created_at=created_at,
            chapter=chapter.title,
            word_count=chapter.word_count,
            subject_id=document.subject_id,
            topics=tuple(chapter.topics or ()),
            difficulty=chapter.difficulty or 3,
            source_type=document.source_type or "pdf",
            page=chapter.page,
        )
