"""
Query Expansion - Static Term Relationships and Reformulations

Turns one learner query into several related strings to widen retrieval:
    - Primary terms (query tokens longer than 3 characters)
    - Related terms from educational concept tables and word associations
    - Synonyms for common learning verbs
    - Templated question reformulations

Expansion is best-effort and table driven. Unknown terms contribute nothing
and the expander never raises.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Iterable, List, Mapping, Tuple

from .models import QueryExpansion
from ..utils.text_processing import dedupe_preserving_order


CONCEPT_RELATIONSHIPS: Mapping[str, Tuple[str, ...]] = MappingProxyType({
    "algorithm": ("procedure", "method", "process", "computation"),
    "data": ("information", "dataset", "records", "values"),
    "learning": ("education", "study", "training", "instruction"),
    "system": ("framework", "architecture", "structure", "model"),
    "analysis": ("examination", "evaluation", "investigation", "study"),
    "theory": ("principle", "concept", "framework", "hypothesis"),
    "practice": ("application", "implementation", "exercise", "use"),
    "model": ("representation", "abstraction", "framework", "pattern"),
    "process": ("procedure", "workflow", "method", "sequence"),
    "structure": ("organization", "arrangement", "composition", "architecture"),
})

WORD_ASSOCIATIONS: Mapping[str, Tuple[str, ...]] = MappingProxyType({
    "machine": ("learning", "algorithm", "model", "data", "training"),
    "neural": ("network", "brain", "connection", "node", "layer"),
    "computer": ("science", "programming", "algorithm", "data", "software"),
    "statistics": ("probability", "data", "distribution", "hypothesis", "inference"),
    "database": ("data", "storage", "query", "sql", "table"),
    "network": ("connection", "protocol", "communication", "internet", "graph"),
    "programming": ("code", "algorithm", "function", "variable", "loop"),
    "mathematics": ("equation", "proof", "theorem", "calculation", "formula"),
})

SYNONYMS: Mapping[str, Tuple[str, ...]] = MappingProxyType({
    "understand": ("comprehend", "grasp", "follow", "appreciate"),
    "explain": ("describe", "clarify", "illustrate", "elaborate"),
    "demonstrate": ("show", "prove", "display", "exhibit"),
    "analyze": ("examine", "investigate", "study", "evaluate"),
    "compare": ("contrast", "differentiate", "distinguish", "examine"),
    "solve": ("resolve", "address", "tackle", "work out"),
    "apply": ("use", "implement", "employ", "utilize"),
    "create": ("develop", "design", "construct", "build"),
    "evaluate": ("assess", "judge", "critique", "appraise"),
    "synthesize": ("combine", "integrate", "merge", "unite"),
})

INTERROGATIVE_PREFIXES = ("what", "how", "why")

INTERROGATIVE_TEMPLATES = (
    "What is {query}?",
    "How does {query} work?",
    "Why is {query} important?",
)

QUESTION_TEMPLATES = (
    "Define {query}",
    "Explain {query} in detail",
    "How is {query} used in practice?",
    "What are examples of {query}?",
    "How does {query} relate to other concepts?",
)

PRIMARY_MIN_LENGTH = 4


class QueryExpander:
    """Expand learner queries with static domain tables."""

    def __init__(
        self,
        relationships: Mapping[str, Tuple[str, ...]] = CONCEPT_RELATIONSHIPS,
        associations: Mapping[str, Tuple[str, ...]] = WORD_ASSOCIATIONS,
        synonyms: Mapping[str, Tuple[str, ...]] = SYNONYMS,
    ) -> None:
        self.relationships = relationships
        self.associations = associations
        self.synonyms = synonyms

    def expand(self, query: str) -> QueryExpansion:
        """
        Expand a query into related search strings.

        Args:
            query: Raw query text (may be empty)

        Returns:
            QueryExpansion with deduplicated term lists
        """
        query = (query or "").strip()
        if not query:
            return QueryExpansion()

        primary = self._primary_terms(query)

        return QueryExpansion(
            primary=tuple(primary),
            related=tuple(self._related_terms(primary)),
            synonyms=tuple(self._synonym_terms(primary)),
            questions=tuple(self._question_forms(query)),
        )

    def expanded_text(self, query: str, expansion: QueryExpansion) -> str:
        """Store-side search text: the query followed by related terms and synonyms."""
        parts = [query, *expansion.related, *expansion.synonyms]
        return " ".join(part for part in parts if part)

    def _primary_terms(self, query: str) -> List[str]:
        words = query.lower().split()
        return dedupe_preserving_order(w for w in words if len(w) >= PRIMARY_MIN_LENGTH)

    def _related_terms(self, terms: Iterable[str]) -> List[str]:
        related: List[str] = []
        terms = list(terms)
        for term in terms:
            related.extend(self.relationships.get(term, ()))

        # Associations match on containment either way ("networks" ~ "network")
        for term in terms:
            for key, associated in self.associations.items():
                if key in term or term in key:
                    related.extend(associated)

        return dedupe_preserving_order(related)

    def _synonym_terms(self, terms: Iterable[str]) -> List[str]:
        found: List[str] = []
        for term in terms:
            found.extend(self.synonyms.get(term, ()))
        return dedupe_preserving_order(found)

    def _question_forms(self, query: str) -> List[str]:
        questions: List[str] = []
        if not query.strip().lower().startswith(INTERROGATIVE_PREFIXES):
            questions.extend(t.format(query=query) for t in INTERROGATIVE_TEMPLATES)
        questions.extend(t.format(query=query) for t in QUESTION_TEMPLATES)
        return dedupe_preserving_order(questions)
