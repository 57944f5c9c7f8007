"""Redis connection settings."""

from pydantic import Field

from infrastructure.configuration.base import IntegrationSettings


class RedisSettings(IntegrationSettings):
    """Connection to the Redis server backing the persistent job queue.

    Only read when QUEUE_BACKEND is 'redis'.

    Environment Variables:
        REDIS_HOST: Redis (or ElastiCache/Valkey) endpoint host
        REDIS_PORT: Port (default: 6379)
        REDIS_DB: Database index (default: 0)
        REDIS_PASSWORD: AUTH password, if the server requires one
        REDIS_SSL: Use TLS for the connection (default: False)
        REDIS_SOCKET_TIMEOUT_SECONDS: Socket and connect timeout (default: 5s)
        REDIS_MAX_CONNECTIONS: Connection pool size (default: 20)

    Example:
        ```python
        from infrastructure.services import get_settings

        settings = get_settings()

        host = settings.redis.REDIS_HOST
        ```
    """

    REDIS_HOST: str = Field(default="localhost", alias="REDIS_HOST")
    REDIS_PORT: int = Field(default=6379, alias="REDIS_PORT")
    REDIS_DB: int = Field(default=0, alias="REDIS_DB")
    REDIS_PASSWORD: str | None = Field(default=None, alias="REDIS_PASSWORD")
    REDIS_SSL: bool = Field(default=False, alias="REDIS_SSL")
    REDIS_SOCKET_TIMEOUT_SECONDS: float = Field(
        default=5.0, alias="REDIS_SOCKET_TIMEOUT_SECONDS"
    )
    REDIS_MAX_CONNECTIONS: int = Field(default=20, alias="REDIS_MAX_CONNECTIONS")
