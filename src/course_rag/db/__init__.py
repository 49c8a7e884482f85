"""
Database Package

Provides SQLAlchemy async session management, the chunk model for
PostgreSQL with pgvector, and the chunk store implementations.
"""

from .session import (
    async_engine,
    AsyncSessionLocal,
    init_models,
    make_engine,
    make_session_factory,
)
from .models import Base, DocumentChunk
from .vector_store import ChunkStore, VectorStore
from .memory_store import InMemoryVectorStore

__all__ = [
    "async_engine",
    "AsyncSessionLocal",
    "init_models",
    "make_engine",
    "make_session_factory",
    "Base",
    "DocumentChunk",
    "ChunkStore",
    "VectorStore",
    "InMemoryVectorStore",
]
