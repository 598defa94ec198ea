"""Recipe, recommendation and extraction schemas"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from eatwhat.schemas.corpus import ReferenceMatch

Difficulty = Literal["easy", "medium", "hard"]
SourceType = Literal["corpus", "model", "web", "fallback"]
DetailMode = Literal["full", "preview_only"]
FillStatus = Literal["not_needed", "filled", "failed"]
CacheSource = Literal["memory", "store"]
ExtractSource = Literal["model", "rule_fallback"]
ExtractReason = Literal["model_success", "breaker_open", "model_failed_fallback", "cache_reuse"]

DIFFICULTY_BANDS: tuple[Difficulty, ...] = ("easy", "medium", "hard")


class IngredientItem(BaseModel):
    """Ingredient with a free-text amount ("300g", "适量")."""

    name: str = Field(..., min_length=1)
    amount: str = "适量"


class RecipeStep(BaseModel):
    """One cooking step"""

    model_config = ConfigDict(populate_by_name=True)

    step_no: int = Field(..., gt=0, alias="stepNo")
    instruction: str = Field(..., min_length=1)
    key_point: str | None = Field(None, alias="keyPoint")
    source_tag: SourceType = Field("model", alias="sourceTag")


class RecipeTiming(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    prep_min: int = Field(..., ge=0, alias="prepMin")
    cook_min: int = Field(..., ge=0, alias="cookMin")
    total_min: int = Field(..., gt=0, alias="totalMin")


class WebReference(BaseModel):
    title: str = Field(..., min_length=1)
    url: str = Field(..., min_length=1)
    snippet: str = ""


class RecipePreview(BaseModel):
    """Partial recipe embedded in a recommendation card."""

    model_config = ConfigDict(populate_by_name=True)

    servings: str | None = None
    required_ingredients: list[IngredientItem] | None = Field(None, alias="requiredIngredients")
    steps: list[RecipeStep] | None = None
    tips: list[str] | None = None
    timing: RecipeTiming | None = None
    source_type: SourceType | None = Field(None, alias="sourceType")
    source_path: str | None = Field(None, alias="sourcePath")
    source_title: str | None = Field(None, alias="sourceTitle")


class Recommendation(BaseModel):
    """One recommended dish"""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    reason: str = ""
    required_ingredients: list[IngredientItem] = Field(..., min_length=1, max_length=6, alias="requiredIngredients")
    estimated_time_min: int = Field(..., gt=0, alias="estimatedTimeMin")
    difficulty: Difficulty
    source_type: SourceType = Field("model", alias="sourceType")
    source_path: str | None = Field(None, alias="sourcePath")
    source_title: str | None = Field(None, alias="sourceTitle")
    recipe_preview: RecipePreview | None = Field(None, alias="recipePreview")


class RecommendResult(BaseModel):
    """Outcome of a recommend call, including the failure metadata callers need."""

    model_config = ConfigDict(populate_by_name=True)

    recommendations: list[Recommendation] = Field(default_factory=list, max_length=9)
    reference_sources: list[ReferenceMatch] = Field(default_factory=list, alias="referenceSources")
    owned_ingredients: list[str] = Field(default_factory=list, alias="ownedIngredients")
    no_match: bool = Field(False, alias="noMatch")
    no_match_message: str | None = Field(None, alias="noMatchMessage")
    transient_failure: bool = Field(False, alias="transientFailure")
    retryable: bool = False
    degraded: bool = False
    cache_source: CacheSource | None = Field(None, alias="cacheSource")


class RecipeDetail(BaseModel):
    """Full structured recipe"""

    model_config = ConfigDict(populate_by_name=True)

    dish_name: str = Field(..., min_length=1, alias="dishName")
    servings: str = "2人份"
    required_ingredients: list[IngredientItem] = Field(default_factory=list, alias="requiredIngredients")
    missing_ingredients: list[IngredientItem] = Field(default_factory=list, alias="missingIngredients")
    steps: list[RecipeStep] = Field(default_factory=list, max_length=8)
    tips: list[str] = Field(default_factory=list)
    source_type: SourceType = Field("model", alias="sourceType")
    detail_mode: DetailMode = Field("full", alias="detailMode")
    timing: RecipeTiming
    web_references: list[WebReference] = Field(default_factory=list, alias="webReferences")
    reference_sources: list[ReferenceMatch] = Field(default_factory=list, alias="referenceSources")
    source_path: str | None = Field(None, alias="sourcePath")
    source_title: str | None = Field(None, alias="sourceTitle")
    fill_status: FillStatus = Field("not_needed", alias="fillStatus")
    cache_source: CacheSource | None = Field(None, alias="cacheSource")


class FilledSteps(BaseModel):
    """Steps, tips and timing generated for a preview-only recommendation."""

    steps: list[RecipeStep]
    tips: list[str] = Field(default_factory=list)
    timing: RecipeTiming


class IngredientExtractResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ingredients: list[str] = Field(default_factory=list)
    source: ExtractSource
    raw_candidates: list[str] = Field(default_factory=list, alias="rawCandidates")
    reason: ExtractReason
