from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey, JSON
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from ..core.database import Base


class KnowledgeBase(Base):
    __tablename__ = "knowledge_bases"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)

    subjects = relationship("Subject", back_populates="knowledge_base")


class Subject(Base):
    __tablename__ = "subjects"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)

    # Subjects sharing a knowledge base are aggregated together
    knowledge_base_id = Column(String, ForeignKey("knowledge_bases.id"), nullable=True, index=True)

    knowledge_base = relationship("KnowledgeBase", back_populates="subjects")
    documents = relationship("Document", back_populates="subject")


class Document(Base):
    __tablename__ = "documents"

    id = Column(String, primary_key=True)
    title = Column(String, nullable=False)
    source_type = Column(String, default="pdf")  # pdf, docx, generated
    subject_id = Column(String, ForeignKey("subjects.id"), nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    subject = relationship("Subject", back_populates="documents")
    chapters = relationship("Chapter", back_populates="document")


class Chapter(Base):
    __tablename__ = "chapters"

    id = Column(Integer, primary_key=True, index=True)
    document_id = Column(String, ForeignKey("documents.id"), nullable=False, index=True)
    title = Column(String, nullable=True)
    content = Column(Text, nullable=False)
    word_count = Column(Integer, nullable=True)
    page = Column(Integer, nullable=True)

    # Learning metadata
    topics = Column(JSON, default=list)
    difficulty = Column(Integer, default=3)  # 1-5

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    document = relationship("Document", back_populates="chapters")
