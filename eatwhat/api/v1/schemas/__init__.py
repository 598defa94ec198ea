from eatwhat.api.v1.schemas.common import ApiResponse, HealthStatus
from eatwhat.api.v1.schemas.cooking import ExtractRequest, FillRequest, RecipeRequest, RecommendRequest

__all__ = [
    "ApiResponse",
    "ExtractRequest",
    "FillRequest",
    "HealthStatus",
    "RecipeRequest",
    "RecommendRequest",
]
