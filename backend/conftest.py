"""
Global pytest configuration and fixtures for the context engine tests.
"""

import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Add project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

# Set test environment
os.environ["CONTEXT_ENVIRONMENT"] = "test"
os.environ["CONTEXT_DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"

FIXED_NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


@pytest.fixture
def fixed_now() -> datetime:
    """Reference "now" so recency scores are deterministic."""
    return FIXED_NOW


@pytest.fixture
def make_passage():
    """Factory for packed/retrieved passages."""
    from app.context_engine.models import PassageCandidate, PassageMetadata

    def _make(
        content: str = "Sample passage content.",
        document_id: str = "doc-a",
        document_name: str = None,
        chapter: str = None,
        tokens: int = 100,
        relevance: float = 0.5,
        subject_id: str = None,
        difficulty: int = 3,
        topics=(),
    ) -> PassageCandidate:
        return PassageCandidate(
            content=content,
            metadata=PassageMetadata(
                document_id=document_id,
                document_name=document_name or f"Document {document_id}",
                chapter=chapter,
                subject_id=subject_id,
                topics=tuple(topics),
                difficulty=difficulty,
                relevance_score=relevance,
                recency_score=1.0,
                authority_score=1.0,
                token_count=tokens,
            ),
        )

    return _make


@pytest.fixture
def sample_records():
    """Chapters across two subjects of one knowledge base plus an unrelated subject."""
    from app.services.corpus_reader import CorpusRecord

    recent = FIXED_NOW - timedelta(days=10)
    return [
        CorpusRecord(
            document_id="bio-101",
            document_name="Biology Basics",
            chapter="Introduction to Photosynthesis",
            content=(
                "Photosynthesis converts light into chemical energy. "
                "Photosynthesis happens inside the chloroplasts of plant cells. "
                "Without photosynthesis most ecosystems would collapse."
            ),
            created_at=recent,
            word_count=120,
            subject_id="biology",
            topics=("photosynthesis", "plants"),
            difficulty=1,
        ),
        CorpusRecord(
            document_id="bio-202",
            document_name="Plant Physiology",
            chapter="Photosynthesis in Depth",
            content=(
                "Photosynthesis converts light into chemical energy. "
                "Chlorophyll absorbs light that drives photosynthesis. "
                "Before photosynthesis makes sense you need chemistry basics: "
                "molecules and reactions. Studying photosynthesis rewards patience."
            ),
            created_at=recent,
            word_count=200,
            subject_id="biology",
            topics=("photosynthesis",),
            difficulty=3,
        ),
        CorpusRecord(
            document_id="chem-101",
            document_name="Chemistry Foundations",
            chapter="Chemical Energy",
            content=(
                "Chemical energy is stored in the bonds between atoms. "
                "Photosynthesis stores light as chemical energy in glucose."
            ),
            created_at=recent,
            word_count=80,
            subject_id="chemistry",
            topics=("energy",),
            difficulty=2,
        ),
        CorpusRecord(
            document_id="cs-101",
            document_name="Machine Learning Primer",
            chapter="Chapter 1 Overview",
            content=(
                "Machine learning builds predictive models from data. "
                "Supervised learning needs labeled training data."
            ),
            created_at=recent,
            word_count=60,
            subject_id="computing",
            topics=("machine learning",),
            difficulty=2,
        ),
    ]


@pytest.fixture
def corpus_store(sample_records):
    """In-memory corpus where biology and chemistry share a knowledge base."""
    from app.services.corpus_stores.in_memory_store import InMemoryCorpusStore

    return InMemoryCorpusStore(
        sample_records,
        subject_knowledge_bases={
            "biology": "life-sciences",
            "chemistry": "life-sciences",
            "computing": "engineering",
        },
        subject_names={
            "biology": "Biology",
            "chemistry": "Chemistry",
            "computing": "Computing",
        },
    )


@pytest_asyncio.fixture
async def test_engine():
    """Create a test database engine with the corpus tables."""
    # Import database models here so they register on Base
    from app.core.database import Base, create_tables
    import app.models  # noqa: F401

    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        echo=False
    )
    await create_tables(engine)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def seeded_session_factory(session_factory, sample_records):
    """Session factory over a database holding the sample corpus."""
    from app.models.corpus import Chapter, Document, KnowledgeBase, Subject

    async with session_factory() as session:
        session.add_all([
            KnowledgeBase(id="life-sciences", name="Life Sciences"),
            KnowledgeBase(id="engineering", name="Engineering"),
            Subject(id="biology", name="Biology", knowledge_base_id="life-sciences"),
            Subject(id="chemistry", name="Chemistry", knowledge_base_id="life-sciences"),
            Subject(id="computing", name="Computing", knowledge_base_id="engineering"),
        ])
        for record in sample_records:
            session.add(Document(
                id=record.document_id,
                title=record.document_name,
                source_type=record.source_type,
                subject_id=record.subject_id,
                created_at=record.created_at,
            ))
            session.add(Chapter(
                document_id=record.document_id,
                title=record.chapter,
                content=record.content,
                word_count=record.word_count,
                page=record.page,
                topics=list(record.topics),
                difficulty=record.difficulty,
                created_at=record.created_at,
            ))
        await session.commit()

    return session_factory
