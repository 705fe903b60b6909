from fastapi import APIRouter

from careernet.api.v1.endpoints import connections

api_router = APIRouter()

# Include routers
api_router.include_router(connections.router, prefix="/connections", tags=["connections"])
