"""Notification queue administration endpoints."""

from datetime import timedelta
from typing import Optional

import structlog
from fastapi import APIRouter, HTTPException, Request, status
from pydantic import BaseModel, Field

from api.dependencies.rate_limits import (
    ENQUEUE_LIMIT,
    OPERATOR_LIMIT,
    QUERY_LIMIT,
    get_limiter,
)
from infrastructure.notifications import NotificationJob
from infrastructure.queue import EntryNotFoundError, JobValidationError, QueueClosedError
from infrastructure.services import NotificationServiceDep

logger = structlog.get_logger()

router = APIRouter(prefix="/notifications/queue", tags=["Notifications"])
limiter = get_limiter()


class PruneRequest(BaseModel):
    """Optional age threshold for pruning completed entries."""

    older_than_seconds: Optional[int] = Field(default=None, ge=0)


@router.post("/jobs", status_code=status.HTTP_202_ACCEPTED)
@limiter.limit(ENQUEUE_LIMIT)
def enqueue_job(request: Request, job: NotificationJob, service: NotificationServiceDep):
    """Queue a notification for delivery.

    Enqueueing a notification_id that is already waiting or being processed
    returns the existing entry instead of creating a new one.
    """
    try:
        entry = service.enqueue(job)
    except JobValidationError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    except QueueClosedError as e:
        raise HTTPException(status_code=503, detail="Notification queue is shutting down") from e

    return {
        "id": entry.id,
        "job_id": job.job_id,
        "notification_id": job.notification_id,
        "state": entry.state.value,
        "priority": entry.priority,
    }


@router.get("/jobs/{entry_id}")
@limiter.limit(QUERY_LIMIT)
def get_job(request: Request, entry_id: str, service: NotificationServiceDep):
    try:
        entry = service.get_entry(entry_id)
    except EntryNotFoundError as e:
        raise HTTPException(status_code=404, detail=f"Queue entry {entry_id} not found") from e
    return entry.to_dict()


@router.get("/stats")
@limiter.limit(QUERY_LIMIT)
def get_stats(request: Request, service: NotificationServiceDep):
    """Counts of queue entries per state."""
    return {**service.stats().to_dict(), "paused": service.is_paused}


@router.post("/pause")
@limiter.limit(OPERATOR_LIMIT)
def pause_queue(request: Request, service: NotificationServiceDep):
    service.pause()
    logger.info("notification_queue_paused_via_api")
    return {"paused": True}


@router.post("/resume")
@limiter.limit(OPERATOR_LIMIT)
def resume_queue(request: Request, service: NotificationServiceDep):
    service.resume()
    logger.info("notification_queue_resumed_via_api")
    return {"paused": False}


@router.post("/retry-failed")
@limiter.limit(OPERATOR_LIMIT)
def retry_failed_jobs(request: Request, service: NotificationServiceDep):
    """Re-admit every failed entry with a fresh attempt budget."""
    return {"retried": service.retry_failed()}


@router.post("/prune")
@limiter.limit(OPERATOR_LIMIT)
def prune_completed_jobs(
    request: Request,
    service: NotificationServiceDep, prune_request: Optional[PruneRequest] = None
):
    """Delete completed entries older than the threshold (default: retention window)."""
    older_than = None
    if prune_request is not None and prune_request.older_than_seconds is not None:
        older_than = timedelta(seconds=prune_request.older_than_seconds)
    return {"removed": service.prune(older_than)}


@router.get("/deliveries/{notification_id}")
@limiter.limit(QUERY_LIMIT)
def get_deliveries(request: Request, notification_id: str, service: NotificationServiceDep):
    """Delivery log rows for one notification, oldest first."""
    rows = service.delivery_log(notification_id)
    return {
        "notification_id": notification_id,
        "deliveries": [row.model_dump(mode="json") for row in rows],
    }


@router.get("/deliveries-summary")
@limiter.limit(QUERY_LIMIT)
def get_delivery_summary(
    request: Request,
    service: NotificationServiceDep, notification_id: Optional[str] = None
):
    """Sent, failed and pending counts overall and per channel."""
    return service.delivery_summary(notification_id).model_dump()
