"""Infrastructure modules for the notification delivery service.

Centralized infrastructure components:
- configuration: Settings management (Settings, NotificationQueueSettings, NotifySettings)
- logging: Structured logging (configure_logging, get_module_logger)
- operations: Operation results and error classification
- resilience: Circuit breakers guarding provider transports
- queue: Deduplicating, priority-ordered, rate-limited job queue and worker pool
- notifications: Dispatcher, channels, delivery log and queue control service
- services: Dependency injection services (SettingsDep, NotificationServiceDep, get_settings)
"""

# Observability
from infrastructure.logging import get_module_logger

# Operations
from infrastructure.operations.result import OperationResult
from infrastructure.operations.status import OperationStatus

__all__ = [
    # Observability
    "get_module_logger",
    # Operations
    "OperationResult",
    "OperationStatus",
]
