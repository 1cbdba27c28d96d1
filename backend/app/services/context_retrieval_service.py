"""
Context retrieval service.

Entry point for lesson and quiz generation: expands the query, runs hybrid
retrieval, packs the token budget and analyzes the packed passages across
sources. Failures inside the pipeline degrade to an empty result, which
callers treat as "no grounding available".
"""

import asyncio
from types import MappingProxyType
from typing import List, Optional

from app.context_engine.concept_analyzer import ConceptAnalyzer
from app.context_engine.conflict_resolver import ConflictResolver
from app.context_engine.context_packer import ContextPacker
from app.context_engine.hybrid_retriever import HybridRetriever
from app.context_engine.models import (
    ContextResult,
    PassageCandidate,
    RetrievalConfig,
    SearchQuery,
)
from app.context_engine.query_expander import QueryExpander
from app.context_engine.result_cache import ResultCache
from app.core.config import settings
from app.core.exceptions import ContextEngineError
from app.core.logging_config import LoggerMixin
from app.services.corpus_reader import CorpusReader

NO_GROUNDING_NOTICE = (
    "No relevant course material was found for this request. "
    "Answer from general knowledge and say that no source material was available."
)

RELATED_CONTENT_LIMIT = 10
PREREQUISITE_RESULT_LIMIT = 5
PREREQUISITE_QUERY_TEMPLATES = (
    "{concept} prerequisites",
    "before learning {concept}",
    "prerequisites for {concept}",
    "what to know before {concept}",
)


class ContextRetrievalService(LoggerMixin):
    """Assembles grounding context from the document corpus"""

    def __init__(
        self,
        corpus: Optional[CorpusReader] = None,
        config: Optional[RetrievalConfig] = None,
        expander: Optional[QueryExpander] = None,
        retriever: Optional[HybridRetriever] = None,
        packer: Optional[ContextPacker] = None,
        analyzer: Optional[ConceptAnalyzer] = None,
        resolver: Optional[ConflictResolver] = None,
        cache: Optional[ResultCache] = None
    ):
        if corpus is None:
            from app.services.corpus_stores.sql_store import SqlCorpusStore
            corpus = SqlCorpusStore()

        self.corpus = corpus
        self.config = config or RetrievalConfig.from_settings()
        self.expander = expander or QueryExpander()
        self.retriever = retriever or HybridRetriever(
            corpus,
            timeout_seconds=self.config.retrieval_timeout_seconds,
            query_max_chars=self.config.query_max_chars,
        )
        self.packer = packer or ContextPacker()
        self.analyzer = analyzer or ConceptAnalyzer()
        self.resolver = resolver or ConflictResolver()
        self.cache = cache or ResultCache(
            ttl_seconds=settings.CACHE_TTL_SECONDS,
            max_items=settings.CACHE_MAX_ITEMS,
        )

    async def retrieve_context(
        self,
        query: SearchQuery,
        config: Optional[RetrievalConfig] = None,
        **overrides
    ) -> ContextResult:
        """
        Retrieve and synthesize grounding context for a query.

        Args:
            query: Learner query with optional subject/document scope
            config: Retrieval config (defaults to the service config)
            **overrides: Individual config fields to override for this call

        Returns:
            ContextResult; empty when nothing relevant was found

        Raises:
            ConfigurationError: If an override names an unknown config field
        """
        config = (config or self.config).with_overrides(**overrides)

        if not query.text or not query.text.strip():
            return ContextResult()

        cache_key = None
        if config.use_cache:
            cache_key = self.cache.make_key(query, config)
            cached = self.cache.get(cache_key)
            if cached is not None:
                self.log_debug("Context cache hit", query=query.text[:80], subject_id=query.subject_id)
                return cached

        search_text = query.text
        if config.expand_queries:
            expansion = self.expander.expand(query.text)
            search_text = self.expander.expanded_text(query.text, expansion)

        candidates = await self.retriever.search(
            query,
            top_k=config.top_k,
            similarity_threshold=config.similarity_threshold,
            search_text=search_text,
            use_hybrid_search=config.use_hybrid_search,
            timeout_seconds=config.retrieval_timeout_seconds,
            query_max_chars=config.query_max_chars,
        )

        packed = self.packer.pack(candidates, config.max_tokens)
        chunks = packed.chunks

        result = ContextResult(
            chunks=chunks,
            total_tokens=packed.total_tokens,
            sources=self.analyzer.summarize_sources(chunks),
            concepts=MappingProxyType(self.analyzer.analyze(chunks)),
            conflicts=tuple(self.resolver.detect_conflicts(chunks)),
            consensus=tuple(self.resolver.find_consensus(chunks)),
        )

        if cache_key is not None:
            self.cache.set(cache_key, result)

        self.log_info(
            "Context retrieved",
            query=query.text[:80],
            subject_id=query.subject_id,
            result_count=len(chunks),
            total_tokens=packed.total_tokens,
        )
        return result

    async def get_related_content(
        self,
        document_id: str,
        chapter_title: str,
        config: Optional[RetrievalConfig] = None
    ) -> List[PassageCandidate]:
        """
        Passages of one chapter, fully relevant by construction.

        Timeouts and store failures are logged and yield an empty list.
        """
        timeout = (config or self.config).retrieval_timeout_seconds
        try:
            records = await asyncio.wait_for(
                self.corpus.get_chapters(document_id, chapter_title, limit=RELATED_CONTENT_LIMIT),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            self.log_warning(
                "Related content lookup timed out",
                document_id=document_id,
                error=f"timeout after {timeout}s",
            )
            return []
        except ContextEngineError as exc:
            self.log_warning(
                "Related content lookup failed",
                document_id=document_id,
                error=exc.message,
            )
            return []
        except Exception as exc:
            self.logger.error(
                "Unexpected related content error",
                exc_info=True,
                extra={"document_id": document_id, "error": str(exc)},
            )
            return []

        return [self.retriever.to_candidate(record, 1.0) for record in records]

    async def get_prerequisites(
        self,
        concept: str,
        subject_id: Optional[str] = None
    ) -> List[PassageCandidate]:
        """
        Passages describing what to learn before a concept.

        Runs several prerequisite phrasings of the concept and returns the
        first few distinct passages.
        """
        queries = [
            SearchQuery(text=template.format(concept=concept), subject_id=subject_id)
            for template in PREREQUISITE_QUERY_TEMPLATES
        ]
        results = await asyncio.gather(*(self.retrieve_context(q) for q in queries))

        passages = [chunk for result in results for chunk in result.chunks]
        return HybridRetriever.deduplicate(passages)[:PREREQUISITE_RESULT_LIMIT]

    @staticmethod
    def format_context(result: ContextResult) -> str:
        """Render packed passages as numbered source blocks for a generation prompt"""
        if not result.has_grounding:
            return NO_GROUNDING_NOTICE

        formatted = "Relevant course material:\n\n"
        for i, chunk in enumerate(result.chunks, start=1):
            meta = chunk.metadata
            header = f"[Source {i}] {meta.document_name}"
            if meta.chapter:
                header += f" - {meta.chapter}"
            if meta.page is not None:
                header += f" (page {meta.page})"
            formatted += f"{header}\n{chunk.content}\n\n"

        if result.conflicts:
            concepts = ", ".join(conflict.concept for conflict in result.conflicts)
            formatted += f"[Note: sources disagree about: {concepts}]\n"

        return formatted.rstrip() + "\n"
