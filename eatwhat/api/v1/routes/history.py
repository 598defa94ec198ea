"""History routes"""
from typing import List

from fastapi import APIRouter, Depends, Query

from eatwhat.api.dependencies import get_cooking_service
from eatwhat.api.v1.schemas.common import ApiResponse
from eatwhat.schemas.history import HistoryRecord
from eatwhat.services.cooking_service import CookingService

router = APIRouter()


@router.get("", response_model=ApiResponse[List[HistoryRecord]])
async def list_history(
    limit: int = Query(20, ge=1, le=100),
    service: CookingService = Depends(get_cooking_service),
) -> ApiResponse[List[HistoryRecord]]:
    """Most recent recommendation / recipe / image records, newest first."""
    records = await service.list_history(limit)
    return ApiResponse(success=True, data=records)
