from fastapi import APIRouter, Request
from api.dependencies.rate_limits import SYSTEM_LIMIT, get_limiter
from infrastructure.services import NotificationServiceDep, SettingsDep

router = APIRouter(tags=["System"])
limiter = get_limiter()


# Load balancer health checks hit these endpoints every few seconds, so the limits are generous.
@router.get("/version")
@limiter.limit(SYSTEM_LIMIT)
def get_version(request: Request, settings: SettingsDep):  # pylint: disable=unused-argument
    """Get the version of the application."""
    return {"version": settings.GIT_SHA}


@router.get("/health")
@limiter.limit(SYSTEM_LIMIT)
def get_health(request: Request, service: NotificationServiceDep):  # pylint: disable=unused-argument
    """Healthcheck endpoint.

    Reports "closing" once the notification queue has been shut down so the
    load balancer stops routing to this instance.
    """
    if service.is_closed:
        return {"status": "closing"}
    return {"status": "ok", "paused": service.is_paused}
