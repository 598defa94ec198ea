from fastapi import APIRouter, Depends

from eatwhat.api.dependencies import get_cooking_service
from eatwhat.api.v1.schemas.common import HealthStatus
from eatwhat.services.cooking_service import CookingService

router = APIRouter()


@router.get("", response_model=HealthStatus, summary="API health check")
async def health_check(service: CookingService = Depends(get_cooking_service)) -> HealthStatus:
    """Return a status payload with the number of loaded reference documents."""
    return HealthStatus(status="ok", corpus_documents=len(service.recommender.retriever.index))
