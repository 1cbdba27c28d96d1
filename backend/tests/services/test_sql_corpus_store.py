"""
Tests for the SQLAlchemy corpus store (aiosqlite in-memory database)
"""

import pytest
from sqlalchemy.exc import OperationalError

from app.context_engine.hybrid_retriever import HybridRetriever
from app.context_engine.models import SearchQuery
from app.core.exceptions import CorpusReadError, KnowledgeBaseLookupError
from app.services.context_retrieval_service import ContextRetrievalService
from app.services.corpus_reader import MatchField, SearchScope
from app.services.corpus_stores.sql_store import SqlCorpusStore


class BrokenSession:
    async def __aenter__(self):
        raise OperationalError("SELECT 1", {}, Exception("database is locked"))

    async def __aexit__(self, exc_type, exc, tb):
        return False


@pytest.fixture
def store(seeded_session_factory):
    return SqlCorpusStore(seeded_session_factory)


@pytest.mark.asyncio
async def test_title_search_ordered_by_word_count(store):
    records = await store.search(
        "photosynthesis", match_field=MatchField.TITLE, scope=SearchScope(), limit=10
    )

    assert [r.document_id for r in records] == ["bio-202", "bio-101"]
    assert records[0].document_name == "Plant Physiology"
    assert records[0].topics == ("photosynthesis",)
    assert records[0].subject_id == "biology"


@pytest.mark.asyncio
async def test_content_search_matches_any_term(store):
    records = await store.search(
        "chloroplasts glucose", match_field=MatchField.CONTENT, scope=SearchScope(), limit=10
    )

    assert [r.document_id for r in records] == ["bio-101", "chem-101"]


@pytest.mark.asyncio
async def test_search_is_case_insensitive_and_limited(store):
    records = await store.search(
        "PHOTOSYNTHESIS", match_field=MatchField.CONTENT, scope=SearchScope(), limit=2
    )

    assert [r.document_id for r in records] == ["bio-202", "bio-101"]


@pytest.mark.asyncio
async def test_search_scope(store):
    by_subject = await store.search(
        "photosynthesis",
        match_field=MatchField.CONTENT,
        scope=SearchScope(subject_id="chemistry"),
        limit=10,
    )
    by_document = await store.search(
        "zzzz",
        match_field=MatchField.CONTENT,
        scope=SearchScope(document_ids=("cs-101",)),
        limit=10,
    )

    assert [r.document_id for r in by_subject] == ["chem-101"]
    assert [r.document_id for r in by_document] == ["cs-101"]


@pytest.mark.asyncio
async def test_search_knowledge_base_scope(store):
    life_sciences = await store.search(
        "photosynthesis",
        match_field=MatchField.CONTENT,
        scope=SearchScope(knowledge_base_id="life-sciences"),
        limit=10,
    )
    engineering = await store.search(
        "photosynthesis",
        match_field=MatchField.CONTENT,
        scope=SearchScope(knowledge_base_id="engineering"),
        limit=10,
    )

    assert [r.document_id for r in life_sciences] == ["bio-202", "bio-101", "chem-101"]
    assert engineering == []


@pytest.mark.asyncio
async def test_short_terms_do_not_match(store):
    records = await store.search("the and of", match_field=MatchField.CONTENT, scope=SearchScope(), limit=10)

    assert records == []


@pytest.mark.asyncio
async def test_get_chapters(store):
    records = await store.get_chapters("bio-101", "Introduction to Photosynthesis")

    assert len(records) == 1
    assert records[0].word_count == 120
    assert await store.get_chapters("bio-101", "Missing Chapter") == []


@pytest.mark.asyncio
async def test_get_stats(store):
    stats = await store.get_stats()

    assert stats.documents == 4
    assert stats.chapters == 4
    assert stats.subjects == ["biology", "chemistry", "computing"]


@pytest.mark.asyncio
async def test_related_subjects_share_knowledge_base(store):
    related = await store.get_related_subjects("biology")

    assert [(s.id, s.name, s.knowledge_base_id) for s in related] == [
        ("chemistry", "Chemistry", "life-sciences")
    ]
    assert await store.get_related_subjects("computing") == []
    assert await store.get_related_subjects("unknown") == []


@pytest.mark.asyncio
async def test_driver_errors_are_wrapped():
    store = SqlCorpusStore(lambda: BrokenSession())

    with pytest.raises(CorpusReadError) as exc_info:
        await store.search("photosynthesis", match_field=MatchField.TITLE, scope=SearchScope(), limit=5)
    assert exc_info.value.code == "CORPUS_READ_ERROR"
    assert exc_info.value.details["operation"] == "search_title"

    with pytest.raises(KnowledgeBaseLookupError):
        await store.get_related_subjects("biology")


@pytest.mark.asyncio
async def test_pipeline_over_sql_store(store, fixed_now):
    retriever = HybridRetriever(store, clock=lambda: fixed_now)
    service = ContextRetrievalService(store, retriever=retriever)

    result = await service.retrieve_context(SearchQuery(text="photosynthesis", subject_id="biology"))

    assert [c.document_id for c in result.chunks] == ["bio-101", "bio-202"]
    assert result.consensus[0].confidence == "high"
