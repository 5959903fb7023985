import logging
import os
import signal
import threading

from pulse.celery import AGGREGATE_TASK, celery_app
from pulse.channels import ObservationChannel
from pulse.prober import Prober
from pulse.scheduler import Scheduler
from pulse.settings import Settings

logger = logging.getLogger(__name__)


def install_signal_handlers(cancel: threading.Event):
    """
    Cancel the agent on the first SIGINT/SIGTERM, exit at once on the second.
    """

    def handle(signum, frame):
        if cancel.is_set():
            logger.error("Second signal received, exiting")
            os._exit(1)

        logger.info(f"Received {signal.Signals(signum).name}, shutting down")
        cancel.set()

    signal.signal(signal.SIGINT, handle)
    signal.signal(signal.SIGTERM, handle)


def run_agent(settings: Settings) -> int:
    """
    Probe the configured URLs until interrupted and queue every observation
    for the aggregator. Return the process exit status.
    """

    logger.info("Monitoring agent starting")
    logger.info(f"Refresh interval: {settings.interval_ms}ms")
    logger.info(f"Request timeout: {settings.timeout_ms}ms")
    logger.info("Monitoring servers:")
    for endpoint in settings.endpoints:
        logger.info(f"  - {endpoint}")

    cancel = threading.Event()
    install_signal_handlers(cancel)

    scheduler = Scheduler(
        prober_factory=lambda: Prober(timeout=settings.timeout),
        channel=ObservationChannel(celery_app, AGGREGATE_TASK, settings.queue_name),
        grace=settings.shutdown_grace,
    )

    clean = scheduler.run(settings.endpoints, settings.interval, cancel)

    logger.info("Monitoring agent stopped")
    return 0 if clean else 1
