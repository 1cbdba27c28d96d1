"""
Exception hierarchy for the context engine.

Corpus failures are raised by store adapters and absorbed by the retrieval
pipeline, which degrades to empty results instead of propagating them.
"""

from typing import Any, Dict, Iterable


class ContextEngineError(Exception):
    """Base exception for context engine errors"""
    def __init__(self, message: str, code: str = None, details: Dict[str, Any] = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)


class CorpusReadError(ContextEngineError):
    """The document store could not be read"""
    def __init__(self, message: str, store: str = None, operation: str = None):
        details = {}
        if store:
            details["store"] = store
        if operation:
            details["operation"] = operation
        super().__init__(message, code="CORPUS_READ_ERROR", details=details)


class KnowledgeBaseLookupError(ContextEngineError):
    """Related subjects could not be resolved"""
    def __init__(self, message: str, subject_id: str = None):
        details = {}
        if subject_id:
            details["subject_id"] = subject_id
        super().__init__(message, code="KNOWLEDGE_BASE_LOOKUP_ERROR", details=details)


class ConfigurationError(ContextEngineError):
    """Invalid retrieval configuration"""
    def __init__(self, message: str, invalid_keys: Iterable[str] = None):
        self.invalid_keys = sorted(invalid_keys or [])
        super().__init__(
            message,
            code="CONFIGURATION_ERROR",
            details={"invalid_keys": self.invalid_keys},
        )
