"""
Tests for Concept Analyzer
"""

import pytest

from app.context_engine.concept_analyzer import ConceptAnalyzer


@pytest.fixture
def analyzer():
    return ConceptAnalyzer()


def test_agreement_by_source_count(analyzer, make_passage):
    chunks = [
        make_passage("Learning neural models. Learning again.", document_id="a"),
        make_passage("Neural learning in practice.", document_id="b"),
        make_passage("Gradient descent drives learning.", document_id="c"),
    ]

    concepts = analyzer.analyze(chunks)

    assert concepts["learning"].agreement == "consensus"
    assert concepts["learning"].sources == ("a", "b", "c")
    assert concepts["neural"].agreement == "mixed"
    assert concepts["gradient"].agreement == "conflicting"


def test_counts_once_per_passage(analyzer, make_passage):
    chunks = [
        make_passage("Entropy entropy entropy.", document_id="a"),
        make_passage("More about entropy.", document_id="a"),
    ]

    stats = analyzer.analyze(chunks)["entropy"]

    assert stats.frequency == 2
    assert stats.sources == ("a",)


def test_short_words_ignored(analyzer, make_passage):
    concepts = analyzer.analyze([make_passage("Data and code are fun to read.")])

    assert concepts == {}


def test_empty_chunks(analyzer):
    assert analyzer.analyze([]) == {}
    assert analyzer.summarize_sources([]) == ()


def test_summarize_sources(analyzer, make_passage):
    chunks = [
        make_passage("one", document_id="a", document_name="Alpha", relevance=0.8),
        make_passage("two", document_id="b", document_name="Beta", relevance=0.9),
        make_passage("three", document_id="a", document_name="Alpha", relevance=0.4),
        make_passage("four", document_id="c", document_name="Gamma", relevance=0.2),
    ]

    summary = analyzer.summarize_sources(chunks)

    assert [s.document_id for s in summary] == ["b", "a", "c"]
    alpha = summary[1]
    assert alpha.document_name == "Alpha"
    assert alpha.chunks == 2
    assert alpha.contribution_score == pytest.approx(0.6)


def test_identifiers_and_alphanumerics_are_not_concepts(analyzer, make_passage):
    chunks = [make_passage("snake_case value covid19abcde", document_id="a")]

    concepts = analyzer.analyze(chunks)

    assert set(concepts) == {"value"}
