"""API v1 router"""
from fastapi import APIRouter

from eatwhat.api.v1.routes import health, history, ingredients, recipes, recommend

api_router = APIRouter()

api_router.include_router(health.router, prefix="/health", tags=["health"])

# 食材提取
api_router.include_router(ingredients.router, prefix="/ingredients", tags=["ingredients"])

# 推荐与菜谱详情
api_router.include_router(recommend.router, prefix="/recommend", tags=["recommend"])
api_router.include_router(recipes.router, prefix="/recipe", tags=["recipe"])

api_router.include_router(history.router, prefix="/history", tags=["history"])
