"""Cache table model for database-backed cache stores."""

from datetime import datetime

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from . import Base


class CacheRecord(Base):
    """One raw cache value owned by one agent.

    Rows are unique per ``(key, agentId)`` so the same key string is a
    distinct entry for every agent.
    """

    __tablename__ = "cache"

    key: Mapped[str] = mapped_column(Text, primary_key=True)
    agent_id: Mapped[str] = mapped_column("agentId", String(36), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)  # raw JSON envelope
    created_at: Mapped[datetime] = mapped_column(
        "createdAt", DateTime, nullable=False, server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"CacheRecord(key={self.key!r}, agent_id={self.agent_id!r})"
