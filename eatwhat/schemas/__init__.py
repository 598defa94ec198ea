"""Domain schemas shared by services and routes."""

from eatwhat.schemas.corpus import ReferenceDocument, ReferenceMatch
from eatwhat.schemas.history import CachedRecommendation, HistoryKind, HistoryRecord, NewHistoryRecord
from eatwhat.schemas.recipe import (
    DIFFICULTY_BANDS,
    FilledSteps,
    IngredientExtractResult,
    IngredientItem,
    RecipeDetail,
    RecipePreview,
    RecipeStep,
    RecipeTiming,
    Recommendation,
    RecommendResult,
    WebReference,
)

__all__ = [
    "CachedRecommendation",
    "HistoryKind",
    "HistoryRecord",
    "NewHistoryRecord",
    "DIFFICULTY_BANDS",
    "FilledSteps",
    "IngredientExtractResult",
    "IngredientItem",
    "RecipeDetail",
    "RecipePreview",
    "RecipeStep",
    "RecipeTiming",
    "Recommendation",
    "RecommendResult",
    "ReferenceDocument",
    "ReferenceMatch",
    "WebReference",
]
