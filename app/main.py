import signal
import sys

from dotenv import load_dotenv

from infrastructure.logging import configure_logging, get_module_logger
from infrastructure.services import get_notification_service, get_settings
from integrations.redis import close_redis_client
from server import server

load_dotenv()

logger = get_module_logger()
server_app = server.create_app()


def install_signal_handlers(service) -> None:
    """Close the notification queue on SIGTERM and SIGINT."""

    def _handle(signum, _frame):
        logger.info("shutdown_signal_received", signal=signal.Signals(signum).name)
        service.close()

    signal.signal(signal.SIGTERM, _handle)
    signal.signal(signal.SIGINT, _handle)


def run_worker() -> int:
    """Run the notification workers without the HTTP server until signalled."""
    settings = get_settings()
    configure_logging(settings=settings)

    service = get_notification_service()
    install_signal_handlers(service)

    logger.info(
        "notification_worker_startup",
        concurrency=settings.queue.concurrency,
        rate_limit_max=settings.queue.rate_limit_max,
        rate_limit_window_seconds=settings.queue.rate_limit_window_seconds,
    )
    service.start()

    # Signal handlers run on the main thread between these waits.
    while not service.wait_closed(timeout=1.0):
        pass

    logger.info("notification_worker_shutdown")
    close_redis_client()
    return 0


if __name__ == "__main__":
    sys.exit(run_worker())
