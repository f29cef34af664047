from fastapi import APIRouter
from app.api.v2 import (
    auth,
    inventory,
    crews,
    cron,
)

api_router = APIRouter()

# Include all v2 routers
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(inventory.router, prefix="/inventory", tags=["inventory"])
api_router.include_router(crews.router, prefix="/crews", tags=["crews"])
api_router.include_router(cron.router, prefix="/cron", tags=["cron"])
