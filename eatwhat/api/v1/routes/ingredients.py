"""Ingredient extraction routes"""
from fastapi import APIRouter, Depends

from eatwhat.api.dependencies import get_cooking_service
from eatwhat.api.v1.schemas.common import ApiResponse
from eatwhat.api.v1.schemas.cooking import ExtractRequest
from eatwhat.schemas.recipe import IngredientExtractResult
from eatwhat.services.cooking_service import CookingService

router = APIRouter()


@router.post("/extract", response_model=ApiResponse[IngredientExtractResult])
async def extract_ingredients(
    request: ExtractRequest,
    service: CookingService = Depends(get_cooking_service),
) -> ApiResponse[IngredientExtractResult]:
    """
    Extract owned ingredients from free text

    **Returns:**
        canonical ingredient names plus where they came from (`model` or `rule_fallback`)
    """
    result = await service.extract(request.input_text, request.owned_ingredients)
    return ApiResponse(success=True, data=result)
