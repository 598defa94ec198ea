"""Request bodies for the cooking endpoints"""

from typing import Literal, Optional, List

from pydantic import BaseModel, ConfigDict, Field

from eatwhat.schemas.recipe import IngredientItem, RecipePreview


class ExtractRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    input_text: str = Field("", alias="inputText", max_length=500, description="自然语言食材描述")
    owned_ingredients: List[str] = Field(default_factory=list, alias="ownedIngredients", max_length=50)


class RecommendRequest(ExtractRequest):
    """Recommendation request; ``ownedIngredients`` is an optional client-side draft."""


class RecipeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    dish_name: str = Field(..., alias="dishName", min_length=1, max_length=100)
    owned_ingredients: List[str] = Field(default_factory=list, alias="ownedIngredients", max_length=50)
    source_hint_path: Optional[str] = Field(None, alias="sourceHintPath", description="推荐卡片携带的参考菜谱路径")
    source_hint_type: Optional[Literal["corpus", "model"]] = Field(None, alias="sourceHintType")
    recipe_preview: Optional[RecipePreview] = Field(None, alias="recipePreview")


class FillRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    dish_name: str = Field(..., alias="dishName", min_length=1, max_length=100)
    required_ingredients: List[IngredientItem] = Field(..., alias="requiredIngredients", min_length=1)
    owned_ingredients: List[str] = Field(default_factory=list, alias="ownedIngredients")
    reason: Optional[str] = None
    estimated_time_min: Optional[int] = Field(None, alias="estimatedTimeMin", gt=0)
