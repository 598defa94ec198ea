"""Persistent history store - audit trail and second cache tier"""

import logging
from typing import Optional, Protocol

from pydantic import ValidationError as SchemaValidationError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from eatwhat.core.errors import PersistenceError
from eatwhat.db.models import HistoryEntry
from eatwhat.schemas.history import CachedRecommendation, HistoryRecord, NewHistoryRecord
from eatwhat.schemas.recipe import RecipeDetail

logger = logging.getLogger(__name__)


class HistoryStore(Protocol):
    async def find_cached_recommendation(self, request_hash: str) -> Optional[CachedRecommendation]:
        ...

    async def find_cached_recipe_detail(self, request_hash: str) -> Optional[RecipeDetail]:
        ...

    async def find_cached_image(self, request_hash: str) -> Optional[str]:
        ...

    async def find_latest_owned_ingredients(self, input_text: str) -> Optional[list[str]]:
        ...

    async def append_history_record(self, record: NewHistoryRecord) -> int:
        ...

    async def list_history(self, limit: int = 20) -> list[HistoryRecord]:
        ...


class SqlHistoryStore:
    """SQLAlchemy implementation of :class:`HistoryStore`.

    Every driver or ORM failure surfaces as :class:`PersistenceError`; callers
    decide whether that is a cache miss or a logged no-op.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def _latest(self, session: AsyncSession, kind: str, request_hash: str) -> Optional[HistoryEntry]:
        stmt = (
            select(HistoryEntry)
            .where(HistoryEntry.kind == kind, HistoryEntry.request_hash == request_hash)
            .order_by(HistoryEntry.id.desc())
            .limit(1)
        )
        result = await session.execute(stmt)
        return result.scalars().first()

    async def find_cached_recommendation(self, request_hash: str) -> Optional[CachedRecommendation]:
        try:
            async with self.session_factory() as session:
                row = await self._latest(session, "recommend", request_hash)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"recommendation lookup failed: {exc}") from exc
        if row is None or row.recommendations is None:
            return None
        try:
            return CachedRecommendation(
                recommendations=row.recommendations,
                input_text=row.input_text,
                owned_ingredients=row.owned_ingredients or [],
            )
        except SchemaValidationError as exc:
            logger.warning("discarding malformed cached recommendation %s: %s", row.id, exc)
            return None

    async def find_cached_recipe_detail(self, request_hash: str) -> Optional[RecipeDetail]:
        try:
            async with self.session_factory() as session:
                row = await self._latest(session, "recipe", request_hash)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"recipe lookup failed: {exc}") from exc
        if row is None or not row.recipe_detail:
            return None
        try:
            return RecipeDetail.model_validate(row.recipe_detail)
        except SchemaValidationError as exc:
            logger.warning("discarding malformed cached recipe %s: %s", row.id, exc)
            return None

    async def find_cached_image(self, request_hash: str) -> Optional[str]:
        try:
            async with self.session_factory() as session:
                row = await self._latest(session, "image", request_hash)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"image lookup failed: {exc}") from exc
        return row.image_url if row is not None else None

    async def find_latest_owned_ingredients(self, input_text: str) -> Optional[list[str]]:
        """Owned ingredients of the most recent recommendation made for exactly this text."""
        text = (input_text or "").strip()
        if not text:
            return None
        stmt = (
            select(HistoryEntry.owned_ingredients)
            .where(
                HistoryEntry.input_text == text,
                HistoryEntry.kind.in_(("recommend", "recommend_fallback")),
            )
            .order_by(HistoryEntry.id.desc())
            .limit(5)
        )
        try:
            async with self.session_factory() as session:
                rows = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"owned ingredient lookup failed: {exc}") from exc
        for owned in rows:
            if owned:
                return list(owned)
        return None

    async def append_history_record(self, record: NewHistoryRecord) -> int:
        entry = HistoryEntry(
            kind=record.kind,
            request_hash=record.request_hash,
            input_text=record.input_text.strip(),
            owned_ingredients=list(record.owned_ingredients),
            dish_name=record.dish_name,
            recommendations=record.recommendations,
            recipe_detail=record.recipe_detail,
            image_url=record.image_url,
        )
        try:
            async with self.session_factory() as session:
                session.add(entry)
                await session.commit()
                await session.refresh(entry)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"history append failed: {exc}") from exc
        return entry.id

    async def list_history(self, limit: int = 20) -> list[HistoryRecord]:
        stmt = select(HistoryEntry).order_by(HistoryEntry.id.desc()).limit(limit)
        try:
            async with self.session_factory() as session:
                rows = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"history listing failed: {exc}") from exc
        return [
            HistoryRecord(
                id=row.id,
                kind=row.kind,
                request_hash=row.request_hash,
                input_text=row.input_text,
                owned_ingredients=row.owned_ingredients or [],
                dish_name=row.dish_name,
                recommendations=row.recommendations,
                recipe_detail=row.recipe_detail,
                image_url=row.image_url,
                created_at=row.created_at,
            )
            for row in rows
        ]
