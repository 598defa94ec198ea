"""History table - one row per served recommendation, recipe or image"""
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, BigInteger, DateTime, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from eatwhat.db.base import Base

# BIGINT autoincrement is not supported by SQLite; fall back to INTEGER there
_PK = BigInteger().with_variant(Integer(), "sqlite")


class HistoryEntry(Base):
    """Audit trail and persistent cache tier.

    ``kind`` is one of recommend / recommend_fallback / recipe / recipe_fallback / image.
    """

    __tablename__ = "history_entry"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    kind: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    request_hash: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    input_text: Mapped[str] = mapped_column(Text, nullable=False, default="")
    owned_ingredients: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    dish_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    recommendations: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)
    recipe_detail: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)
    image_url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, server_default=func.current_timestamp())

    def __repr__(self) -> str:
        return f"<HistoryEntry(id={self.id}, kind={self.kind}, hash={self.request_hash[:8]})>"
