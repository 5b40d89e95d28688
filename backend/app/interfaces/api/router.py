from fastapi import APIRouter

from app.interfaces.api.auth import router as auth_router
from app.interfaces.api.components import router as components_router
from app.interfaces.api.health import router as health_router
from app.interfaces.api.incidents import router as incidents_router
from app.interfaces.api.maintenances import router as maintenances_router
from app.interfaces.api.status import router as status_router
from app.interfaces.api.webhooks import router as webhooks_router

api_router = APIRouter()
api_router.include_router(health_router, tags=["health"])
api_router.include_router(auth_router)
api_router.include_router(status_router)
api_router.include_router(components_router)
api_router.include_router(incidents_router)
api_router.include_router(maintenances_router)
api_router.include_router(webhooks_router)
