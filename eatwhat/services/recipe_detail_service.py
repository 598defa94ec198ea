"""Recipe detail generation - corpus parsing, web-grounded generation, deterministic fallback"""

import logging
import re
from typing import Any, Dict, Iterable, List, Optional, Sequence

from pydantic import ValidationError as SchemaValidationError

from eatwhat.core.config import Settings
from eatwhat.core.errors import GenerationParseError
from eatwhat.schemas.corpus import ReferenceDocument, ReferenceMatch
from eatwhat.schemas.recipe import (
    FilledSteps,
    FillStatus,
    IngredientItem,
    RecipeDetail,
    RecipePreview,
    RecipeStep,
    RecipeTiming,
    SourceType,
    WebReference,
)
from eatwhat.services.corpus_retriever import CorpusRetriever
from eatwhat.services.dish_matching import match_dish_to_corpus
from eatwhat.services.generation_client import GenerationClient, as_list
from eatwhat.services.ingredient_normalizer import IngredientNormalizer
from eatwhat.services.prompts import (
    FILL_CONTRACT,
    RECIPE_CONTRACT,
    SYSTEM_PROMPT_BASE,
    SYSTEM_PROMPT_RECIPE,
    SYSTEM_PROMPT_RECIPE_FILL,
    SYSTEM_PROMPT_RECIPE_WEB,
    build_fill_user_prompt,
    build_recipe_user_prompt,
)

logger = logging.getLogger(__name__)

MAX_STEPS = 8
MAX_INGREDIENTS = 8
DETAIL_CANDIDATE_LIMIT = 4
WEB_SEARCH_TOOLS = ({"type": "web_search_preview"},)
DEFAULT_PREP_MIN = 10
DEFAULT_COOK_MIN = 15

SECTION_INGREDIENTS = "必备原料和工具"
SECTION_CALCULATION = "计算"
SECTION_OPERATIONS = "操作"
SECTION_EXTRA = "附加内容"

_KEY_POINT = re.compile(
    r"(?:大火|中大火|中火|中小火|小火|文火|旺火)[^，。；,;]{0,16}"
    r"|\d+(?:\.\d+)?(?:\s*-\s*\d+(?:\.\d+)?)?\s*(?:秒|分钟|min|小时|s)"
    r"|变色|断生|收汁|金黄|软烂|沸腾|透明|浓稠|出香味|焦糖色",
    re.IGNORECASE,
)
_DURATION = re.compile(r"(\d+(?:\.\d+)?)(?:\s*-\s*(\d+(?:\.\d+)?))?\s*(秒|分钟|min|小时)", re.IGNORECASE)
_LIST_MARKER = re.compile(r"^(?:[-*+]|\d+[.、)])\s*")
GENERIC_KEY_POINT = "关键控制：按原文节奏执行，注意火候与时间。"


def infer_key_point(instruction: str) -> str:
    """Heat level, duration or state-change phrase found in the step text."""
    match = _KEY_POINT.search(instruction)
    if match is None:
        return GENERIC_KEY_POINT
    return f"关键控制：{match.group(0).strip()}"


def estimate_timing(steps: Iterable[RecipeStep], prep_min: int = DEFAULT_PREP_MIN) -> RecipeTiming:
    """Cook time is the sum of the durations mentioned in the steps (upper bound of ranges)."""
    seconds = 0.0
    for step in steps:
        for low, high, unit in _DURATION.findall(step.instruction):
            value = float(high or low)
            unit = unit.lower()
            if unit == "秒":
                seconds += value
            elif unit == "小时":
                seconds += value * 3600
            else:
                seconds += value * 60
    cook_min = round(seconds / 60) if seconds else DEFAULT_COOK_MIN
    cook_min = max(cook_min, 1)
    return RecipeTiming(prep_min=prep_min, cook_min=cook_min, total_min=prep_min + cook_min)


def parse_section(content: str, header: str, next_headers: Sequence[str]) -> List[str]:
    """Non-empty lines under a section heading, up to the next known heading.

    The index stores markdown with ``#`` stripped, so headings are matched as
    bare lines too.
    """
    lines = content.splitlines()
    start = next((i for i, line in enumerate(lines) if line.strip().lstrip("#").strip() == header), None)
    if start is None:
        return []
    section: List[str] = []
    for line in lines[start + 1:]:
        stripped = line.strip()
        if stripped.lstrip("#").strip() in next_headers:
            break
        item = _LIST_MARKER.sub("", stripped).strip()
        if item and not item.startswith("#"):
            section.append(item)
    return section


def renumber_steps(raw_steps: Iterable[Any], source_tag: SourceType) -> List[RecipeStep]:
    steps: List[RecipeStep] = []
    for raw in raw_steps:
        if isinstance(raw, RecipeStep):
            instruction, key_point = raw.instruction, raw.key_point
        elif isinstance(raw, dict):
            instruction = str(raw.get("instruction") or "").strip()
            key_point = str(raw.get("keyPoint") or raw.get("key_point") or "").strip() or None
        else:
            continue
        if not instruction:
            continue
        steps.append(
            RecipeStep(step_no=len(steps) + 1, instruction=instruction, key_point=key_point, source_tag=source_tag)
        )
        if len(steps) >= MAX_STEPS:
            break
    return steps


def _valid_items(model, raw_items: Iterable[Any]) -> list:
    items = []
    for raw in raw_items:
        try:
            items.append(model.model_validate(raw))
        except SchemaValidationError:
            continue
    return items


def _timing_or_estimate(raw: Any, steps: Sequence[RecipeStep]) -> RecipeTiming:
    if isinstance(raw, dict):
        try:
            return RecipeTiming.model_validate(raw)
        except SchemaValidationError:
            pass
    return estimate_timing(steps)


def _clean_tips(raw: Any) -> List[str]:
    return [str(tip).strip() for tip in as_list(raw) if str(tip).strip()]


class RecipeDetailGenerator:
    """Builds a full recipe for one dish. Model failures never escape; the fallback recipe always works."""

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

    async def detail(
        self,
        dish_name: str,
        owned_ingredients: Sequence[str],
        source_hint_path: Optional[str] = None,
        source_hint_type: Optional[SourceType] = None,
    ) -> RecipeDetail:
        await self.retriever.ensure_ready()
        owned = list(owned_ingredients)
        grounding = self.resolve_grounding(dish_name, owned, source_hint_path, source_hint_type)
        if grounding is not None:
            doc = self.retriever.get_document(grounding.path)
            if doc is not None:
                return self.build_from_document(doc, dish_name, owned, [grounding])
            logger.warning("grounding %s resolved but document is missing", grounding.path)

        try:
            return await self._generate_web(dish_name, owned)
        except GenerationParseError as exc:
            logger.warning("recipe generation failed for %s, using fallback recipe: %s", dish_name, exc)
            return self.fallback_recipe(dish_name, owned)

    def resolve_grounding(
        self,
        dish_name: str,
        owned: Sequence[str],
        source_hint_path: Optional[str],
        source_hint_type: Optional[SourceType],
    ) -> Optional[ReferenceMatch]:
        if source_hint_type == "model":
            # provenance follows the originating recommendation
            return None
        if source_hint_type == "corpus" and source_hint_path:
            match = self.retriever.resolve_by_path(source_hint_path)
            if match is not None:
                return match
            logger.info("source hint %s did not resolve, re-ranking", source_hint_path)
        candidates = self.retriever.retrieve(
            dish_name=dish_name, owned_ingredients=owned, limit=DETAIL_CANDIDATE_LIMIT
        )
        return match_dish_to_corpus(self.normalizer, dish_name, candidates)

    def build_from_document(
        self,
        doc: ReferenceDocument,
        dish_name: str,
        owned: Sequence[str],
        references: Sequence[ReferenceMatch],
    ) -> RecipeDetail:
        """Corpus text is authoritative: parse it, do not regenerate it."""
        names = list(doc.ingredients) or [
            line for line in parse_section(doc.content, SECTION_INGREDIENTS, (SECTION_CALCULATION, SECTION_OPERATIONS, SECTION_EXTRA))
            if "WARNING" not in line
        ]
        required = self.normalizer.unique_items(IngredientItem(name=name, amount="适量") for name in names)
        required = required[:MAX_INGREDIENTS]
        if not required:
            required = [IngredientItem(name=name, amount="按现有库存") for name in owned[:6]]

        operations = list(doc.operations) or parse_section(doc.content, SECTION_OPERATIONS, (SECTION_EXTRA,))
        steps = [
            RecipeStep(step_no=i, instruction=text, key_point=infer_key_point(text), source_tag="corpus")
            for i, text in enumerate((op for op in operations if not op.endswith("步骤")), start=1)
            if i <= MAX_STEPS
        ]
        if not steps:
            steps = [
                RecipeStep(
                    step_no=1,
                    instruction="按参考菜谱原文完成备菜、烹饪与调味流程。",
                    key_point="关键控制：先备齐原料，再按火候与时长执行。",
                    source_tag="corpus",
                )
            ]

        tips = [
            line
            for line in parse_section(doc.content, SECTION_EXTRA, ())
            if "Issue" not in line and "Pull request" not in line
        ][:3] or ["优先按参考菜谱原文的火候与时长执行。"]

        return RecipeDetail(
            dish_name=dish_name,
            required_ingredients=required,
            missing_ingredients=self.normalizer.compute_missing(required, owned),
            steps=steps,
            tips=tips,
            source_type="corpus",
            timing=estimate_timing(steps),
            reference_sources=list(references),
            source_path=doc.relative_path,
            source_title=doc.title,
        )

    async def _generate_web(self, dish_name: str, owned: List[str]) -> RecipeDetail:
        raw = await self.client.generate_json(
            system_prompt=f"{SYSTEM_PROMPT_BASE}\n{SYSTEM_PROMPT_RECIPE}\n{SYSTEM_PROMPT_RECIPE_WEB}",
            user_prompt=build_recipe_user_prompt(dish_name, owned),
            contract=RECIPE_CONTRACT,
            retries=1,
            model=self.settings.websearch_model,
            timeout=self.settings.recipe_timeout_sec,
            max_output_tokens=1600,
            tools=list(WEB_SEARCH_TOOLS),
        )
        return self.parse_generated(raw, dish_name, owned)

    def parse_generated(self, raw: Dict[str, Any], dish_name: str, owned: Sequence[str]) -> RecipeDetail:
        """Coerce model output; web provenance only when references actually came back."""
        web_references = _valid_items(WebReference, as_list(raw.get("webReferences")))[:3]
        source_type: SourceType = "web" if web_references else "model"
        required = self.normalizer.unique_items(
            _valid_items(IngredientItem, as_list(raw.get("requiredIngredients")))
        )
        steps = renumber_steps(as_list(raw.get("steps")), source_type)
        if not required or not steps:
            raise GenerationParseError("recipe output missing ingredients or steps")
        return RecipeDetail(
            dish_name=dish_name,
            servings=str(raw.get("servings") or "2人份"),
            required_ingredients=required,
            missing_ingredients=self.normalizer.compute_missing(required, owned),
            steps=steps,
            tips=_clean_tips(raw.get("tips")),
            source_type=source_type,
            timing=_timing_or_estimate(raw.get("timing"), steps),
            web_references=web_references,
        )

    async def fill_steps_from_preview(
        self,
        dish_name: str,
        required_ingredients: Sequence[IngredientItem],
        owned_ingredients: Sequence[str],
        reason: Optional[str] = None,
        estimated_time_min: Optional[int] = None,
    ) -> FilledSteps:
        """
        Generate only steps, tips and timing for a recommendation that shipped without them.

        Steps mentioning an implausible ingredient (fruit in a savory dish and the
        like) are dropped.

        Raises:
            GenerationParseError: the call failed or no step survived filtering.
        """
        allowed = self.normalizer.normalize_list(item.name for item in required_ingredients)
        raw = await self.client.generate_json(
            system_prompt=f"{SYSTEM_PROMPT_BASE}\n{SYSTEM_PROMPT_RECIPE_FILL}",
            user_prompt=build_fill_user_prompt(
                dish_name, required_ingredients, owned_ingredients, reason, estimated_time_min
            ),
            contract=FILL_CONTRACT,
            retries=0,
            model=self.settings.extract_model,
            timeout=self.settings.fill_timeout_sec,
            max_output_tokens=700,
        )
        candidates = renumber_steps(as_list(raw.get("steps")), "model")
        kept = []
        for step in candidates:
            suspicious = self.normalizer.find_suspicious(self.normalizer.clean(step.instruction), allowed)
            if suspicious:
                logger.info("fill step dropped for %s: mentions %s", dish_name, suspicious)
                continue
            kept.append(step)
        steps = renumber_steps(kept, "model")
        if not steps:
            raise GenerationParseError("fill produced no usable steps")
        timing = _timing_or_estimate(raw.get("timing"), steps)
        if estimated_time_min and not isinstance(raw.get("timing"), dict):
            timing = RecipeTiming(
                prep_min=min(DEFAULT_PREP_MIN, estimated_time_min),
                cook_min=max(estimated_time_min - DEFAULT_PREP_MIN, 0),
                total_min=estimated_time_min,
            )
        return FilledSteps(steps=steps, tips=_clean_tips(raw.get("tips")), timing=timing)

    def preview_grounding(
        self,
        preview: RecipePreview,
        source_hint_path: Optional[str] = None,
        source_hint_type: Optional[SourceType] = None,
    ) -> Optional[ReferenceMatch]:
        """Corpus document a client-supplied preview may keep claiming, if any.

        The preview's own provenance is not trusted: it stays ``corpus`` only
        when its path resolves in the loaded index and the hint is not ``model``.
        """
        if preview.source_type != "corpus" or source_hint_type == "model":
            return None
        path = preview.source_path or source_hint_path
        match = self.retriever.resolve_by_path(path) if path else None
        if match is None:
            logger.info("preview claims corpus path %s that does not resolve, treating as model", path)
        return match

    def detail_from_preview(
        self,
        dish_name: str,
        owned_ingredients: Sequence[str],
        preview: RecipePreview,
        filled: Optional[FilledSteps] = None,
        fill_status: FillStatus = "not_needed",
        source_hint_path: Optional[str] = None,
        source_hint_type: Optional[SourceType] = None,
    ) -> RecipeDetail:
        """Detail assembled from a recommendation's preview; ``preview_only`` when no steps exist."""
        required = self.normalizer.unique_items(preview.required_ingredients or [])
        grounding = self.preview_grounding(preview, source_hint_path, source_hint_type)
        source_type: SourceType = "corpus" if grounding is not None else "model"
        if filled is not None:
            steps, tips, timing = filled.steps, filled.tips, filled.timing
        else:
            steps = renumber_steps(preview.steps or [], source_type)
            tips = list(preview.tips or [])
            timing = preview.timing or estimate_timing(steps)
        return RecipeDetail(
            dish_name=dish_name,
            servings=preview.servings or "2人份",
            required_ingredients=required,
            missing_ingredients=self.normalizer.compute_missing(required, owned_ingredients),
            steps=steps,
            tips=tips,
            source_type=source_type,
            detail_mode="full" if steps else "preview_only",
            timing=timing,
            reference_sources=[grounding] if grounding is not None else [],
            source_path=grounding.path if grounding is not None else None,
            source_title=grounding.title if grounding is not None else None,
            fill_status=fill_status,
        )

    def fallback_recipe(self, dish_name: str, owned_ingredients: Sequence[str]) -> RecipeDetail:
        primary = owned_ingredients[0] if owned_ingredients else "主食材"
        secondary = owned_ingredients[1] if len(owned_ingredients) > 1 else "辅料"
        required = self.normalizer.unique_items(
            [
                IngredientItem(name=primary, amount="300g"),
                IngredientItem(name=secondary, amount="120g"),
                IngredientItem(name="食用油", amount="15ml"),
                IngredientItem(name="盐", amount="2g"),
                IngredientItem(name="生抽", amount="8ml"),
            ]
        )
        instructions = (
            (f"{primary} 清洗后切成均匀小块，{secondary} 处理备用。", "食材大小尽量一致，后续受热更均匀。"),
            ("热锅后加入食用油，中火加热至微微起纹。", "油温约 150-160°C 下主料，避免粘锅。"),
            (f"先下 {primary} 快炒，再加入 {secondary} 翻炒 2-3 分钟。", "保持中火持续翻动，避免局部焦糊。"),
            ("加入盐和生抽调味，翻炒至断生后出锅。", "调味后再炒 30-60 秒，让味道附着。"),
        )
        steps = [
            RecipeStep(step_no=i, instruction=text, key_point=key_point, source_tag="fallback")
            for i, (text, key_point) in enumerate(instructions, start=1)
        ]
        return RecipeDetail(
            dish_name=dish_name,
            required_ingredients=required,
            missing_ingredients=self.normalizer.compute_missing(required, owned_ingredients),
            steps=steps,
            tips=["如口味偏清淡，可将生抽减至 5ml。", "可加 20ml 清水焖 1 分钟提升融合度。"],
            source_type="fallback",
            timing=RecipeTiming(prep_min=8, cook_min=10, total_min=18),
        )
