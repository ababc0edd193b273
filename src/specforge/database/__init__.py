"""Database layer for SpecForge.

This module handles database connections, session management, and provides
the SQLAlchemy async engine configuration for PostgreSQL.

Public API:
    get_engine: Create an AsyncEngine from DatabaseConfig.
    get_session_factory: Create an async_sessionmaker from an engine.
    Base: SQLAlchemy declarative base for all models.
"""

from specforge.database.connection import get_engine, get_session_factory
from specforge.database.models import (
    Base,
    ConversationTurn,
    DownloadEvent,
    GeneratedDocument,
    OutboundEvent,
    Project,
    ProjectStatus,
    ResearchArtifact,
    ResearchStatus,
    TimestampMixin,
)

__all__ = [
    "get_engine",
    "get_session_factory",
    "Base",
    "TimestampMixin",
    "Project",
    "ProjectStatus",
    "ConversationTurn",
    "ResearchArtifact",
    "ResearchStatus",
    "GeneratedDocument",
    "DownloadEvent",
    "OutboundEvent",
]
