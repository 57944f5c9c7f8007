"""Test data factories for deterministic test data generation."""

from tests.factories.notifications import (
    make_contact,
    make_delivery_log_entry,
    make_job_request,
    make_notification_job,
    make_payload,
)

__all__ = [
    "make_contact",
    "make_delivery_log_entry",
    "make_job_request",
    "make_notification_job",
    "make_payload",
]
