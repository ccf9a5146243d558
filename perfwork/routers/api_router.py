from fastapi import APIRouter
from perfwork.routers import performance

# Routers are aggregated here; main.py only imports this hub.
api_router = APIRouter()

api_router.include_router(performance.router, prefix="/performance", tags=["Performance"])
