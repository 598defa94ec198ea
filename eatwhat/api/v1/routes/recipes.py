"""Recipe detail routes"""
from fastapi import APIRouter, Depends

from eatwhat.api.dependencies import get_cooking_service
from eatwhat.api.v1.schemas.common import ApiResponse
from eatwhat.api.v1.schemas.cooking import FillRequest, RecipeRequest
from eatwhat.schemas.recipe import FilledSteps, RecipeDetail
from eatwhat.services.cooking_service import CookingService

router = APIRouter()


@router.post("", response_model=ApiResponse[RecipeDetail])
async def recipe_detail(
    request: RecipeRequest,
    service: CookingService = Depends(get_cooking_service),
) -> ApiResponse[RecipeDetail]:
    """
    Full recipe for one dish

    `sourceHintType`/`sourceHintPath` carry the provenance of the recommendation
    card; `recipePreview` lets the card's preview be expanded without regeneration.
    """
    detail = await service.detail(
        request.dish_name,
        request.owned_ingredients,
        source_hint_path=request.source_hint_path,
        source_hint_type=request.source_hint_type,
        preview=request.recipe_preview,
    )
    return ApiResponse(success=True, data=detail)


@router.post("/fill", response_model=ApiResponse[FilledSteps])
async def fill_recipe_steps(
    request: FillRequest,
    service: CookingService = Depends(get_cooking_service),
) -> ApiResponse[FilledSteps]:
    """Generate steps, tips and timing for a preview-only recommendation."""
    filled = await service.fill_steps_from_preview(
        request.dish_name,
        request.required_ingredients,
        request.owned_ingredients,
        reason=request.reason,
        estimated_time_min=request.estimated_time_min,
    )
    return ApiResponse(success=True, data=filled)
