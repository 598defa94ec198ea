"""Cooking service - the surface the routes call.

Wires extraction, recommendation and recipe generation behind the two cache
tiers (in-process TTL caches, then the persistent history store) and records
every served result in the history audit trail.
"""

import logging
from typing import Awaitable, Callable, List, Optional, Sequence, TypeVar

from eatwhat.core.config import Settings
from eatwhat.core.errors import GenerationParseError, PersistenceError, TransientServiceFailure, ValidationError
from eatwhat.db.store import HistoryStore
from eatwhat.schemas.history import HistoryKind, HistoryRecord, NewHistoryRecord
from eatwhat.schemas.recipe import (
    FilledSteps,
    IngredientExtractResult,
    IngredientItem,
    RecipeDetail,
    RecipePreview,
    RecommendResult,
    SourceType,
)
from eatwhat.services.circuit_breaker import CircuitBreaker
from eatwhat.services.corpus_index import CorpusIndex
from eatwhat.services.corpus_retriever import CorpusRetriever
from eatwhat.services.generation_client import GenerationClient, LangChainTransport, ModelTransport
from eatwhat.services.ingredient_extractor import IngredientExtractor
from eatwhat.services.ingredient_normalizer import IngredientNormalizer
from eatwhat.services.memory_cache import TTLCache
from eatwhat.services.recipe_detail_service import RecipeDetailGenerator
from eatwhat.services.recommendation_service import NO_MATCH_MESSAGE, RecommendationGenerator
from eatwhat.services.request_hash import image_cache_key, request_hash

logger = logging.getLogger(__name__)

T = TypeVar("T")

SOURCE_HINT_TYPES = ("corpus", "model")


class CookingService:
    def __init__(
        self,
        settings: Settings,
        normalizer: IngredientNormalizer,
        extractor: IngredientExtractor,
        recommender: RecommendationGenerator,
        detailer: RecipeDetailGenerator,
        store: HistoryStore,
    ):
        self.settings = settings
        self.normalizer = normalizer
        self.extractor = extractor
        self.recommender = recommender
        self.detailer = detailer
        self.store = store
        self.recommend_cache: TTLCache[RecommendResult] = TTLCache(settings.recommend_cache_ttl_sec, name="recommend")
        self.recipe_cache: TTLCache[RecipeDetail] = TTLCache(settings.recipe_cache_ttl_sec, name="recipe")
        self.image_cache: TTLCache[str] = TTLCache(settings.image_cache_ttl_sec, name="image")

    # ------------------------------------------------------------------
    # Store helpers
    # ------------------------------------------------------------------
    async def _read_store(self, lookup: Callable[[str], Awaitable[Optional[T]]], key: str) -> Optional[T]:
        try:
            return await lookup(key)
        except PersistenceError as exc:
            logger.warning("store read failed, treating as cache miss: %s", exc)
            return None

    async def _append_history(self, record: NewHistoryRecord) -> Optional[int]:
        try:
            return await self.store.append_history_record(record)
        except PersistenceError as exc:
            logger.warning("history append failed (kind=%s): %s", record.kind, exc)
            return None

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------
    async def extract(self, input_text: str, draft: Sequence[str] = ()) -> IngredientExtractResult:
        text = (input_text or "").strip()
        if not text and not draft:
            raise ValidationError("inputText 不能为空")
        return await self.extractor.extract(text, list(draft))

    async def recommend(self, input_text: str, owned_draft: Sequence[str] = ()) -> RecommendResult:
        """
        Recommend dishes for the ingredients described in ``input_text``.

        Raises:
            ValidationError: nothing usable could be extracted from the input.
            TransientServiceFailure: generation and the corpus fallback both failed.
        """
        text = (input_text or "").strip()
        extraction = await self.extract(text, owned_draft)
        owned = extraction.ingredients
        if not owned:
            raise ValidationError("没有识别到可用的食材")

        key = request_hash(self.normalizer, text, owned)
        cached = self.recommend_cache.get(key)
        if cached is not None:
            logger.info("recommend cache hit (memory) %s", key[:12])
            return cached.model_copy(update={"cache_source": "memory"})

        stored = await self._read_store(self.store.find_cached_recommendation, key)
        if stored is not None:
            logger.info("recommend cache hit (store) %s", key[:12])
            result = RecommendResult(
                recommendations=stored.recommendations,
                reference_sources=await self.recommender.references_for(text, owned),
                owned_ingredients=owned,
                no_match=not stored.recommendations,
                no_match_message=None if stored.recommendations else NO_MATCH_MESSAGE,
            )
            self.recommend_cache.set(key, result)
            return result.model_copy(update={"cache_source": "store"})

        result = await self.recommender.recommend(text, owned)
        if result.transient_failure:
            raise TransientServiceFailure(result.no_match_message or "recommendation unavailable", result=result)

        kind: HistoryKind = "recommend_fallback" if result.degraded else "recommend"
        if not result.degraded:
            self.recommend_cache.set(key, result)
        await self._append_history(
            NewHistoryRecord(
                kind=kind,
                request_hash=key,
                input_text=text,
                owned_ingredients=owned,
                recommendations=[rec.model_dump(mode="json", by_alias=True) for rec in result.recommendations],
            )
        )
        return result

    async def detail(
        self,
        dish_name: str,
        owned_ingredients: Sequence[str] = (),
        source_hint_path: Optional[str] = None,
        source_hint_type: Optional[SourceType] = None,
        preview: Optional[RecipePreview] = None,
    ) -> RecipeDetail:
        dish = (dish_name or "").strip()
        if not dish:
            raise ValidationError("dishName 不能为空")
        if source_hint_type is not None and source_hint_type not in SOURCE_HINT_TYPES:
            raise ValidationError(f"sourceHintType 只能是 {'/'.join(SOURCE_HINT_TYPES)}")
        owned = self.normalizer.normalize_list(owned_ingredients)

        key = request_hash(self.normalizer, dish, owned, hint=f"{source_hint_type or ''}|{source_hint_path or ''}")
        cached = self.recipe_cache.get(key)
        if cached is not None:
            logger.info("recipe cache hit (memory) %s", key[:12])
            return cached.model_copy(update={"cache_source": "memory"})

        stored = await self._read_store(self.store.find_cached_recipe_detail, key)
        if stored is not None:
            logger.info("recipe cache hit (store) %s", key[:12])
            self.recipe_cache.set(key, stored)
            return stored.model_copy(update={"cache_source": "store"})

        if preview is not None and (preview.steps or preview.source_type != "corpus" or not source_hint_path):
            detail = await self._detail_from_preview(dish, owned, preview, source_hint_path, source_hint_type)
        else:
            detail = await self.detailer.detail(dish, owned, source_hint_path, source_hint_type)

        cacheable = detail.source_type != "fallback" and detail.fill_status != "failed"
        if cacheable:
            self.recipe_cache.set(key, detail)
        await self._append_history(
            NewHistoryRecord(
                kind="recipe" if cacheable else "recipe_fallback",
                request_hash=key,
                input_text=dish,
                owned_ingredients=owned,
                dish_name=dish,
                recipe_detail=detail.model_dump(mode="json", by_alias=True),
            )
        )
        return detail

    async def _detail_from_preview(
        self,
        dish: str,
        owned: List[str],
        preview: RecipePreview,
        source_hint_path: Optional[str],
        source_hint_type: Optional[SourceType],
    ) -> RecipeDetail:
        await self.detailer.retriever.ensure_ready()
        hints = {"source_hint_path": source_hint_path, "source_hint_type": source_hint_type}
        if preview.steps:
            return self.detailer.detail_from_preview(dish, owned, preview, **hints)
        try:
            filled = await self.fill_steps_from_preview(dish, preview.required_ingredients or [], owned)
        except GenerationParseError as exc:
            logger.warning("step fill failed for %s, returning preview only: %s", dish, exc)
            return self.detailer.detail_from_preview(dish, owned, preview, fill_status="failed", **hints)
        return self.detailer.detail_from_preview(dish, owned, preview, filled=filled, fill_status="filled", **hints)

    async def fill_steps_from_preview(
        self,
        dish_name: str,
        required_ingredients: Sequence[IngredientItem],
        owned_ingredients: Sequence[str],
        reason: Optional[str] = None,
        estimated_time_min: Optional[int] = None,
    ) -> FilledSteps:
        if not (dish_name or "").strip():
            raise ValidationError("dishName 不能为空")
        return await self.detailer.fill_steps_from_preview(
            dish_name.strip(), required_ingredients, owned_ingredients, reason, estimated_time_min
        )

    async def cached_image_url(self, dish_name: str, style: str = "", model: str = "", size: str = "") -> Optional[str]:
        key = image_cache_key(self.normalizer, dish_name, style, model, size)
        url = self.image_cache.get(key)
        if url is not None:
            logger.info("image cache hit (memory) %s", key[:12])
            return url
        url = await self._read_store(self.store.find_cached_image, key)
        if url:
            logger.info("image cache hit (store) %s", key[:12])
            self.image_cache.set(key, url)
        return url

    async def remember_image_url(
        self, dish_name: str, url: str, style: str = "", model: str = "", size: str = ""
    ) -> None:
        key = image_cache_key(self.normalizer, dish_name, style, model, size)
        self.image_cache.set(key, url)
        await self._append_history(
            NewHistoryRecord(kind="image", request_hash=key, input_text=dish_name, dish_name=dish_name, image_url=url)
        )

    async def list_history(self, limit: int = 20) -> List[HistoryRecord]:
        return await self.store.list_history(max(1, min(limit, 100)))


def build_cooking_service(
    settings: Settings,
    normalizer: IngredientNormalizer,
    store: HistoryStore,
    transport: Optional[ModelTransport] = None,
    index: Optional[CorpusIndex] = None,
) -> CookingService:
    """Assemble the service graph. Each call builds fresh breaker and cache state."""
    client = GenerationClient(transport or LangChainTransport(settings), settings.openai_model)
    retriever = CorpusRetriever(index or CorpusIndex(settings.corpus_index_path), normalizer)
    breaker = CircuitBreaker(settings.breaker_failure_threshold, settings.breaker_cooldown_sec)
    extractor = IngredientExtractor(
        client,
        normalizer,
        breaker,
        TTLCache(settings.extract_cache_ttl_sec, name="extract"),
        store,
        settings,
    )
    return CookingService(
        settings=settings,
        normalizer=normalizer,
        extractor=extractor,
        recommender=RecommendationGenerator(client, retriever, normalizer, settings),
        detailer=RecipeDetailGenerator(client, retriever, normalizer, settings),
        store=store,
    )
