"""AI job queue and response cache."""

import uuid

from sqlalchemy import Column, Integer, String, DateTime, JSON, Text
from sqlalchemy.sql import func
from armour.database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class AIJob(Base):
    """A unit of deferred AI work, polled by id until completed or failed."""
    __tablename__ = "ai_jobs"

    id = Column(String(36), primary_key=True, default=_uuid)
    kind = Column(String(50), nullable=False)  # safe_clause, safe_contract, negotiation_message
    user_id = Column(String(36), nullable=True, index=True)
    payload = Column(JSON, nullable=False, default=dict)
    status = Column(String(20), nullable=False, default="pending", index=True)  # pending, processing, completed, failed
    result = Column(JSON, nullable=True)  # opaque result or {"error": "..."}
    retry_count = Column(Integer, default=0)
    retry_after = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    processed_at = Column(DateTime, nullable=True)


class AICacheEntry(Base):
    """Cached AI responses served on the handler fast path."""
    __tablename__ = "ai_cache"

    id = Column(Integer, primary_key=True, autoincrement=True)
    cache_key = Column(Text, unique=True, nullable=False, index=True)
    response = Column(JSON, nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
