from fastapi import APIRouter
from leave_engine.routers import leave, comp_off, batch

# Routers are aggregated here; main.py only imports this hub.
api_router = APIRouter()

api_router.include_router(leave.router, tags=["Leave"])
api_router.include_router(comp_off.router, tags=["Comp Off"])
api_router.include_router(batch.router, tags=["Batch"])
