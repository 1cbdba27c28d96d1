from ..core.database import Base
from .corpus import KnowledgeBase, Subject, Document, Chapter

__all__ = [
    "Base",
    "KnowledgeBase",
    "Subject",
    "Document",
    "Chapter",
]
