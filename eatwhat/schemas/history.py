"""History record schemas"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from eatwhat.schemas.recipe import Recommendation

HistoryKind = Literal["recommend", "recommend_fallback", "recipe", "recipe_fallback", "image"]


class NewHistoryRecord(BaseModel):
    """Row to append to the history store."""

    model_config = ConfigDict(populate_by_name=True)

    kind: HistoryKind
    request_hash: str = Field(..., alias="requestHash")
    input_text: str = Field("", alias="inputText")
    owned_ingredients: list[str] = Field(default_factory=list, alias="ownedIngredients")
    dish_name: str | None = Field(None, alias="dishName")
    recommendations: list[dict[str, Any]] | None = None
    recipe_detail: dict[str, Any] | None = Field(None, alias="recipeDetail")
    image_url: str | None = Field(None, alias="imageUrl")


class HistoryRecord(NewHistoryRecord):
    """Stored history row."""

    id: int
    created_at: datetime | None = Field(None, alias="createdAt")


class CachedRecommendation(BaseModel):
    """Persisted recommendation payload for a request hash."""

    model_config = ConfigDict(populate_by_name=True)

    recommendations: list[Recommendation] = Field(default_factory=list)
    input_text: str = Field("", alias="inputText")
    owned_ingredients: list[str] = Field(default_factory=list, alias="ownedIngredients")
