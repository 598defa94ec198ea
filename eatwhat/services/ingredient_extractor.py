"""Ingredient extraction - model first, breaker-guarded, deterministic fallback"""

import asyncio
import logging
import re
from typing import List, Optional, Sequence

from pydantic import BaseModel, Field
from pydantic import ValidationError as SchemaValidationError

from eatwhat.core.config import Settings
from eatwhat.core.errors import GenerationParseError, PersistenceError
from eatwhat.db.store import HistoryStore
from eatwhat.schemas.recipe import ExtractReason, IngredientExtractResult
from eatwhat.services.circuit_breaker import CircuitBreaker
from eatwhat.services.generation_client import GenerationClient
from eatwhat.services.ingredient_normalizer import IngredientNormalizer
from eatwhat.services.memory_cache import TTLCache
from eatwhat.services.prompts import (
    EXTRACT_CONTRACT,
    SYSTEM_PROMPT_BASE,
    SYSTEM_PROMPT_INGREDIENT_EXTRACT,
    build_extract_user_prompt,
)
from eatwhat.services.request_hash import extraction_cache_key

logger = logging.getLogger(__name__)

_CANDIDATE_SPLIT = re.compile(r"[，,、；;。\n\s]+")


class _ExtractPayload(BaseModel):
    ingredients: list[str] = Field(..., max_length=20)


def split_candidates(input_text: str, draft: Sequence[str]) -> List[str]:
    from_text = [item.strip() for item in _CANDIDATE_SPLIT.split(input_text or "")]
    return [item for item in [*from_text, *draft] if item and item.strip()]


class IngredientExtractor:
    """Turns free text into a canonical owned-ingredient list.

    Model-side failures never escape: the breaker and the rule fallback
    always produce a result.
    """

    def __init__(
        self,
        client: GenerationClient,
        normalizer: IngredientNormalizer,
        breaker: CircuitBreaker,
        cache: TTLCache,
        store: Optional[HistoryStore],
        settings: Settings,
    ):
        self.client = client
        self.normalizer = normalizer
        self.breaker = breaker
        self.cache = cache
        self.store = store
        self.settings = settings

    async def extract(self, input_text: str, draft: Sequence[str] = ()) -> IngredientExtractResult:
        key = extraction_cache_key(self.normalizer, input_text, draft)
        cached = self.cache.get(key)
        if cached is not None:
            logger.info("extract cache hit (memory)")
            return cached

        raw_candidates = split_candidates(input_text, draft)

        if not self.breaker.allow_request():
            logger.warning("extract model skipped: breaker open")
            result = await self._fallback(input_text, raw_candidates, "breaker_open")
        else:
            result = await self._from_model(input_text, raw_candidates)

        self.cache.set(key, result)
        return result

    async def _from_model(self, input_text: str, raw_candidates: List[str]) -> IngredientExtractResult:
        try:
            raw = await self.client.generate_json(
                system_prompt=f"{SYSTEM_PROMPT_BASE}\n{SYSTEM_PROMPT_INGREDIENT_EXTRACT}",
                user_prompt=build_extract_user_prompt(input_text, raw_candidates),
                contract=EXTRACT_CONTRACT,
                retries=1,
                model=self.settings.extract_model,
                timeout=self.settings.extract_timeout_sec,
                max_output_tokens=300,
            )
            payload = _ExtractPayload.model_validate(raw)
        except asyncio.CancelledError:
            self.breaker.release_trial()
            raise
        except (GenerationParseError, SchemaValidationError) as exc:
            self.breaker.record_failure()
            logger.warning("extract model failed, using fallback: %s", exc)
            return await self._fallback(input_text, raw_candidates, "model_failed_fallback")

        ingredients = self.normalizer.normalize_list(item for item in payload.ingredients if item.strip())
        if not ingredients:
            self.breaker.record_failure()
            logger.warning("extract model returned no usable ingredients, using fallback")
            return await self._fallback(input_text, raw_candidates, "model_failed_fallback")

        self.breaker.record_success()
        return IngredientExtractResult(
            ingredients=ingredients,
            source="model",
            raw_candidates=raw_candidates,
            reason="model_success",
        )

    async def _fallback(self, input_text: str, raw_candidates: List[str], reason: ExtractReason) -> IngredientExtractResult:
        reused = await self._reuse_previous(input_text)
        if reused:
            return IngredientExtractResult(
                ingredients=reused,
                source="model",
                raw_candidates=raw_candidates,
                reason="cache_reuse",
            )
        return IngredientExtractResult(
            ingredients=self.normalizer.normalize_list(raw_candidates),
            source="rule_fallback",
            raw_candidates=raw_candidates,
            reason=reason,
        )

    async def _reuse_previous(self, input_text: str) -> Optional[List[str]]:
        if self.store is None:
            return None
        try:
            owned = await self.store.find_latest_owned_ingredients(input_text)
        except PersistenceError as exc:
            logger.warning("owned ingredient reuse lookup failed: %s", exc)
            return None
        if not owned:
            return None
        return self.normalizer.normalize_list(owned) or None
