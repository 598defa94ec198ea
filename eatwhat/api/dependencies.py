"""API dependencies"""

from fastapi import HTTPException, Request

from eatwhat.services.cooking_service import CookingService


def get_cooking_service(request: Request) -> CookingService:
    """
    CookingService built once in the app lifespan.

    Usage:
        @router.post("/recommend")
        async def recommend(service: CookingService = Depends(get_cooking_service)):
            ...
    """
    service = getattr(request.app.state, "cooking_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="服务尚未就绪")
    return service
