"""Recommendation generation - corpus grounding, banded LLM template, corpus-only fallback"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError as SchemaValidationError

from eatwhat.core.config import Settings
from eatwhat.core.errors import GenerationParseError
from eatwhat.schemas.corpus import ReferenceDocument, ReferenceMatch
from eatwhat.schemas.recipe import (
    DIFFICULTY_BANDS,
    IngredientItem,
    RecipePreview,
    RecipeStep,
    RecipeTiming,
    Recommendation,
    RecommendResult,
)
from eatwhat.services.corpus_retriever import CorpusRetriever, build_context
from eatwhat.services.dish_matching import match_dish_to_corpus
from eatwhat.services.generation_client import GenerationClient, ResponseContract, as_list
from eatwhat.services.ingredient_normalizer import IngredientNormalizer
from eatwhat.services.prompts import (
    RECOMMEND_CONTRACT,
    RECOMMEND_LITE_CONTRACT,
    SYSTEM_PROMPT_BASE,
    SYSTEM_PROMPT_RECOMMEND,
    SYSTEM_PROMPT_RECOMMEND_PREVIEW,
    build_recommend_user_prompt,
)

logger = logging.getLogger(__name__)

MAX_RECOMMENDATIONS = 3
GROUNDING_LIMIT = 3
DISH_CANDIDATE_LIMIT = 8
NO_MATCH_MESSAGE = "暂时没有找到适合这些食材的菜，换几样食材试试吧。"
TRANSIENT_MESSAGE = "服务暂时不可用，请稍后重试。"
_BAND_MINUTES = {"easy": 15, "medium": 25, "hard": 40}


class RecommendationGenerator:
    """Builds up to three difficulty-banded dish recommendations for an owned-ingredient list."""

    def __init__(
        self,
        client: GenerationClient,
        retriever: CorpusRetriever,
        normalizer: IngredientNormalizer,
        settings: Settings,
    ):
        self.client = client
        self.retriever = retriever
        self.normalizer = normalizer
        self.settings = settings

    async def references_for(self, input_text: str, owned_ingredients: Sequence[str]) -> List[ReferenceMatch]:
        """Grounding documents for a request; also used to rebuild store-tier hits."""
        await self.retriever.ensure_ready()
        return self.retriever.retrieve(
            query_text=input_text, owned_ingredients=list(owned_ingredients), limit=GROUNDING_LIMIT
        )

    async def recommend(self, input_text: str, owned_ingredients: Sequence[str]) -> RecommendResult:
        owned = list(owned_ingredients)
        references = await self.references_for(input_text, owned)

        try:
            recommendations = await self._generate(input_text, owned, references)
        except GenerationParseError as exc:
            logger.warning("recommendation generation failed, trying corpus-only fallback: %s", exc)
            fallback = self._corpus_fallback(references)
            if fallback:
                return RecommendResult(
                    recommendations=fallback,
                    reference_sources=references,
                    owned_ingredients=owned,
                    degraded=True,
                )
            logger.error("recommendation fallback produced nothing for %s", owned)
            return RecommendResult(
                reference_sources=references,
                owned_ingredients=owned,
                transient_failure=True,
                retryable=True,
                no_match_message=TRANSIENT_MESSAGE,
            )

        grounded = [self._ground(rec) for rec in recommendations]
        return RecommendResult(
            recommendations=grounded,
            reference_sources=references,
            owned_ingredients=owned,
            no_match=not grounded,
            no_match_message=None if grounded else NO_MATCH_MESSAGE,
        )

    async def _generate(
        self, input_text: str, owned: List[str], references: List[ReferenceMatch]
    ) -> List[Recommendation]:
        user_prompt = build_recommend_user_prompt(input_text, owned, build_context(references))
        attempts = (
            (RECOMMEND_CONTRACT, f"{SYSTEM_PROMPT_RECOMMEND}{SYSTEM_PROMPT_RECOMMEND_PREVIEW}",
             self.settings.recommend_timeout_sec, 2200),
            (RECOMMEND_LITE_CONTRACT, SYSTEM_PROMPT_RECOMMEND, self.settings.recommend_lite_timeout_sec, 900),
        )
        last_error: Optional[GenerationParseError] = None
        for contract, task_prompt, timeout, max_tokens in attempts:
            try:
                raw = await self.client.generate_json(
                    system_prompt=f"{SYSTEM_PROMPT_BASE}\n{task_prompt}",
                    user_prompt=user_prompt,
                    contract=contract,
                    retries=0,
                    model=self.settings.recommend_model,
                    timeout=timeout,
                    max_output_tokens=max_tokens,
                )
                return self.parse_recommendations(raw, with_preview=contract is RECOMMEND_CONTRACT)
            except GenerationParseError as exc:
                last_error = exc
                logger.warning("recommend template %s failed: %s", _contract_name(contract), exc)
        raise last_error or GenerationParseError("recommendation generation failed")

    def parse_recommendations(self, raw: Dict[str, Any], with_preview: bool = True) -> List[Recommendation]:
        """Validate each item independently, dedupe by normalized dish name, cap at three.

        Raises:
            GenerationParseError: the payload carried items but none of them were usable.
        """
        items = raw.get("recommendations")
        if not isinstance(items, list):
            raise GenerationParseError("recommendations is not a list")

        result: List[Recommendation] = []
        seen = set()
        for index, item in enumerate(items):
            rec = self._coerce_item(item, index, with_preview)
            if rec is None:
                continue
            key = self.normalizer.normalize_dish_name(rec.name)
            if not key or key in seen:
                continue
            seen.add(key)
            result.append(rec)
            if len(result) >= MAX_RECOMMENDATIONS:
                break

        if items and not result:
            raise GenerationParseError("no valid recommendation in model output")
        return result

    def _coerce_item(self, item: Any, index: int, with_preview: bool) -> Optional[Recommendation]:
        if not isinstance(item, dict):
            return None
        data = dict(item)
        data.pop("sourceType", None)
        data.pop("sourcePath", None)
        data.pop("sourceTitle", None)
        difficulty = str(data.get("difficulty") or "").strip().lower()
        data["difficulty"] = difficulty
        if not str(data.get("id") or "").strip():
            data["id"] = f"dish_{difficulty or 'x'}_{index + 1}"
        required = self.normalizer.unique_items(_ingredient_items(data.get("requiredIngredients")))
        data["requiredIngredients"] = [ingredient.model_dump() for ingredient in required[:6]]
        preview = data.pop("recipePreview", None)
        try:
            rec = Recommendation.model_validate(data)
        except SchemaValidationError as exc:
            logger.info("dropping invalid recommendation item %s: %s", index, exc.error_count())
            return None
        if with_preview and isinstance(preview, dict):
            rec = rec.model_copy(update={"recipe_preview": _coerce_preview(preview)})
        return rec

    def _ground(self, rec: Recommendation) -> Recommendation:
        candidates = self.retriever.retrieve(dish_name=rec.name, limit=DISH_CANDIDATE_LIMIT)
        match = match_dish_to_corpus(self.normalizer, rec.name, candidates)
        if match is not None:
            update = {"source_type": "corpus", "source_path": match.path, "source_title": match.title}
        else:
            update = {"source_type": "model", "source_path": None, "source_title": None}
        preview = rec.recipe_preview
        if preview is not None:
            preview = preview.model_copy(update=update)
        return rec.model_copy(update={**update, "recipe_preview": preview})

    def _corpus_fallback(self, references: Sequence[ReferenceMatch]) -> List[Recommendation]:
        """One recommendation per band lifted verbatim from the grounding documents."""
        result: List[Recommendation] = []
        for match in references:
            if len(result) >= min(MAX_RECOMMENDATIONS, len(DIFFICULTY_BANDS)):
                break
            doc = self.retriever.get_document(match.path)
            if doc is None or not doc.ingredients:
                continue
            band = DIFFICULTY_BANDS[len(result)]
            result.append(corpus_recommendation(doc, band, len(result) + 1))
        return result


def corpus_recommendation(doc: ReferenceDocument, band: str, index: int) -> Recommendation:
    ingredients = [IngredientItem(name=name, amount="适量") for name in doc.ingredients[:6]]
    steps = [
        RecipeStep(step_no=i, instruction=text, source_tag="corpus")
        for i, text in enumerate(doc.operations[:8], start=1)
    ]
    minutes = _BAND_MINUTES.get(band, 25)
    preview = RecipePreview(
        servings="2人份",
        required_ingredients=ingredients,
        steps=steps or None,
        timing=RecipeTiming(prep_min=minutes // 3, cook_min=minutes - minutes // 3, total_min=minutes),
        source_type="corpus",
        source_path=doc.relative_path,
        source_title=doc.title,
    )
    return Recommendation(
        id=f"dish_{band}_{index}",
        name=doc.title,
        reason="本地菜谱匹配",
        required_ingredients=ingredients,
        estimated_time_min=minutes,
        difficulty=band,
        source_type="corpus",
        source_path=doc.relative_path,
        source_title=doc.title,
        recipe_preview=preview,
    )


def _ingredient_items(raw: Any) -> List[IngredientItem]:
    items = []
    for entry in as_list(raw):
        try:
            items.append(IngredientItem.model_validate(entry))
        except SchemaValidationError:
            continue
    return items


def _coerce_preview(preview: Dict[str, Any]) -> Optional[RecipePreview]:
    data = dict(preview)
    steps = [s for s in as_list(data.get("steps")) if isinstance(s, dict) and str(s.get("instruction") or "").strip()]
    data["steps"] = [
        {"stepNo": i, "instruction": str(s["instruction"]).strip(), "keyPoint": s.get("keyPoint") or None}
        for i, s in enumerate(steps[:8], start=1)
    ] or None
    for key in ("sourceType", "sourcePath", "sourceTitle"):
        data.pop(key, None)
    try:
        return RecipePreview.model_validate(data)
    except SchemaValidationError:
        data.pop("timing", None)
        try:
            return RecipePreview.model_validate(data)
        except SchemaValidationError:
            return None


def _contract_name(contract: ResponseContract) -> str:
    return "full" if contract is RECOMMEND_CONTRACT else "lite"
