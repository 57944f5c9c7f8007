from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.router import api_router
from api.dependencies.rate_limits import setup_rate_limiter
from infrastructure.services import get_settings
from server.lifespan import lifespan


def create_app() -> FastAPI:
    """Build the FastAPI application serving the notification queue admin API."""
    settings = get_settings()

    app = FastAPI(title="Notification Delivery", lifespan=lifespan)
    setup_rate_limiter(app)

    allow_origins = (
        [settings.notify.NOTIFY_CLIENT_URL]
        if settings.is_production and settings.notify.NOTIFY_CLIENT_URL
        else [
            "http://localhost:8000",
            "http://127.0.0.1:8000",
        ]
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router)
    return app
