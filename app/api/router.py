from fastapi import APIRouter
from api.routes.system import router as system_router
from api.routes.notifications import router as notifications_router

api_router = APIRouter()

api_router.include_router(system_router)
api_router.include_router(notifications_router)
