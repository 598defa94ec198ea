"""Dish recommendation routes"""
from fastapi import APIRouter, Depends

from eatwhat.api.dependencies import get_cooking_service
from eatwhat.api.v1.schemas.common import ApiResponse
from eatwhat.api.v1.schemas.cooking import RecommendRequest
from eatwhat.schemas.recipe import RecommendResult
from eatwhat.services.cooking_service import CookingService

router = APIRouter()


@router.post("", response_model=ApiResponse[RecommendResult])
async def recommend_dishes(
    request: RecommendRequest,
    service: CookingService = Depends(get_cooking_service),
) -> ApiResponse[RecommendResult]:
    """
    Recommend up to three dishes (easy / medium / hard) for the described ingredients.

    A valid request with no suitable dish still succeeds with `noMatch=true`.
    """
    result = await service.recommend(request.input_text, request.owned_ingredients)
    message = result.no_match_message if result.no_match else None
    return ApiResponse(success=True, data=result, message=message)
