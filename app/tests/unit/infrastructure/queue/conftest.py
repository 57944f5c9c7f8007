"""Shared fixtures for job queue tests."""

import fakeredis
import pytest

from infrastructure.notifications.models import NotificationJob
from infrastructure.operations import OperationResult
from infrastructure.queue import FakeClock, InMemoryJobQueue, QueueConfig, RedisJobQueue
from tests.factories.notifications import make_notification_job


@pytest.fixture
def clock():
    """Manually advanced clock shared by the queue and its rate limiter."""
    return FakeClock()


@pytest.fixture
def queue_config_factory():
    """Factory for creating QueueConfig instances."""

    def _factory(
        max_attempts: int = 3,
        backoff_base_seconds: float = 2.0,
        backoff_max_seconds: float = 3600.0,
        rate_limit_max: int = 100,
        rate_limit_window_seconds: float = 60.0,
        completed_retention_seconds: int = 7 * 24 * 3600,
        completed_retention_count: int = 1000,
        claim_lease_seconds: int = 300,
    ) -> QueueConfig:
        return QueueConfig(
            max_attempts=max_attempts,
            backoff_base_seconds=backoff_base_seconds,
            backoff_max_seconds=backoff_max_seconds,
            rate_limit_max=rate_limit_max,
            rate_limit_window_seconds=rate_limit_window_seconds,
            completed_retention_seconds=completed_retention_seconds,
            completed_retention_count=completed_retention_count,
            claim_lease_seconds=claim_lease_seconds,
        )

    return _factory


@pytest.fixture
def queue_factory(queue_config_factory, clock):
    """Factory for creating InMemoryJobQueue instances on the fake clock."""

    def _factory(**config_overrides) -> InMemoryJobQueue:
        return InMemoryJobQueue(queue_config_factory(**config_overrides), clock=clock)

    return _factory


@pytest.fixture
def job_queue(queue_factory):
    """Create a fresh InMemoryJobQueue with default configuration."""
    return queue_factory()


@pytest.fixture
def job_factory():
    return make_notification_job


@pytest.fixture
def transient_failure():
    return OperationResult.transient_error("provider timeout", error_code="TIMEOUT")


@pytest.fixture
def permanent_failure():
    return OperationResult.permanent_error("rejected", error_code="HTTP_400")


@pytest.fixture
def redis_server():
    """In-process Redis server; clients on the same server share data."""
    return fakeredis.FakeServer()


@pytest.fixture
def redis_client_factory(redis_server):
    def _factory() -> fakeredis.FakeRedis:
        return fakeredis.FakeRedis(server=redis_server, decode_responses=True)

    return _factory


@pytest.fixture
def redis_queue_factory(queue_config_factory, clock, redis_client_factory):
    """Factory for RedisJobQueue instances backed by the fake server.

    Each call opens a new client, so two queues built here behave like two
    worker processes sharing one Redis.
    """

    def _factory(**config_overrides) -> RedisJobQueue:
        return RedisJobQueue(
            redis_client_factory(),
            job_type=NotificationJob,
            config=queue_config_factory(**config_overrides),
            clock=clock,
            key_prefix="test-queue",
            idle_poll_seconds=0.01,
        )

    return _factory


@pytest.fixture
def redis_queue(redis_queue_factory):
    return redis_queue_factory()
