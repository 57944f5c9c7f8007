"""Redis client for the persistent job queue.

This module owns the process-wide connection pool to the Redis (or
ElastiCache/Valkey) server that stores queue state. It is a database
client connection, not a cloud API client.

Usage:
    from integrations.redis import get_redis_client

    client = get_redis_client(settings.redis)
    client.ping()
"""

import threading
from typing import Optional

from redis import ConnectionPool, Redis, RedisError  # type: ignore
from redis.connection import SSLConnection  # type: ignore
from redis.exceptions import ConnectionError, TimeoutError  # type: ignore

from infrastructure.configuration import RedisSettings
from infrastructure.logging import get_module_logger
from infrastructure.operations import OperationResult

logger = get_module_logger()

# Global connection pool (initialized on first use)
_connection_pool: Optional[ConnectionPool] = None
_redis_client: Optional[Redis] = None
_client_lock = threading.Lock()


def get_redis_client(settings: RedisSettings) -> Redis:
    """Get or create the Redis client with connection pooling.

    Responses are decoded to str; the queue stores JSON text.

    Raises:
        ConnectionError: If the server cannot be reached
    """
    global _connection_pool, _redis_client

    with _client_lock:
        if _redis_client is not None:
            return _redis_client

        try:
            if _connection_pool is None:
                pool_kwargs = {}
                if settings.REDIS_SSL:
                    pool_kwargs["connection_class"] = SSLConnection
                _connection_pool = ConnectionPool(
                    host=settings.REDIS_HOST,
                    port=settings.REDIS_PORT,
                    db=settings.REDIS_DB,
                    password=settings.REDIS_PASSWORD,
                    decode_responses=True,
                    max_connections=settings.REDIS_MAX_CONNECTIONS,
                    socket_timeout=settings.REDIS_SOCKET_TIMEOUT_SECONDS,
                    socket_connect_timeout=settings.REDIS_SOCKET_TIMEOUT_SECONDS,
                    retry_on_timeout=True,
                    health_check_interval=30,
                    **pool_kwargs,
                )
                logger.info(
                    "redis_connection_pool_created",
                    host=settings.REDIS_HOST,
                    port=settings.REDIS_PORT,
                    db=settings.REDIS_DB,
                )

            client = Redis(connection_pool=_connection_pool)
            client.ping()
            _redis_client = client
            logger.info("redis_client_connected")
            return _redis_client

        except (ConnectionError, TimeoutError, RedisError) as e:
            logger.error(
                "redis_connection_failed",
                error=str(e),
                host=settings.REDIS_HOST,
            )
            raise


def close_redis_client() -> None:
    """Disconnect the pool so the next get_redis_client() reconnects."""
    global _connection_pool, _redis_client

    with _client_lock:
        if _connection_pool is not None:
            _connection_pool.disconnect()
            logger.info("redis_connection_pool_closed")
        _connection_pool = None
        _redis_client = None


def health_check(client: Redis) -> OperationResult:
    """Check the Redis connection.

    Returns:
        OperationResult: Success if healthy, transient error when the server
        is unreachable, permanent error for other Redis failures
    """
    try:
        client.ping()
        return OperationResult.success(message="Redis connection healthy")

    except (ConnectionError, TimeoutError) as e:
        logger.error("redis_health_check_connection_error", error=str(e))
        return OperationResult.transient_error(
            message=f"Redis connection error: {str(e)}",
            error_code="CONNECTION_ERROR",
        )

    except RedisError as e:
        logger.error("redis_health_check_error", error=str(e))
        return OperationResult.permanent_error(
            message=f"Redis health check failed: {str(e)}",
            error_code="REDIS_ERROR",
        )
