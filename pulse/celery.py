from celery import Celery

from pulse.settings import settings

celery_app = Celery("pulse", broker=settings.broker_url, include=["pulse.tasks"])

AGGREGATE_TASK = "pulse.tasks.aggregate"

celery_app.conf.task_routes = {AGGREGATE_TASK: settings.queue_name}

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    task_ignore_result=True,
    # Acknowledge observations once folded, a crashed worker gets them again
    task_acks_late=True,
    # Observations are folded one by one, in the order they were queued
    worker_pool="solo",
    worker_concurrency=1,
    worker_prefetch_multiplier=settings.prefetch,
    broker_connection_retry_on_startup=True,
    broker_connection_max_retries=10,
)
