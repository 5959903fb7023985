import logging
from typing import Optional

from pydantic import ValidationError

from pulse.aggregator import Aggregator
from pulse.celery import AGGREGATE_TASK, celery_app
from pulse.channels import SummaryChannel
from pulse.models import Observation
from pulse.settings import settings

logger = logging.getLogger(__name__)

# State of the worker process, folded by one task at a time
aggregator = Aggregator(window_size=settings.window_size)

summary_channel = SummaryChannel(settings.broker_url, settings.summary_channel)


@celery_app.task(name=AGGREGATE_TASK)
def aggregate(payload: str) -> Optional[dict]:
    """
    Fold a queued observation into the statistics of its URL.

    The updated statistics are published on the summary channel and returned,
    a malformed observation is logged and dropped.
    """

    try:
        observation = Observation.model_validate_json(payload)
    except ValidationError as exc:
        logger.warning(f"Dropping malformed observation: {exc}")
        return None

    record = aggregator.fold(observation)

    logger.info(
        f"{record.endpoint} alive={record.alive} "
        f"avail.(%)={record.availability:.2f} res(ms)={record.latency:.2f} "
        f"min(ms)={record.latency_min:.2f} max(ms)={record.latency_max:.2f} "
        f"avg(ms)={record.latency_mean:.2f} status_codes={record.status_codes}"
    )

    try:
        summary_channel.publish(record)
    except Exception:
        logger.exception(f"Failed to publish summary of {record.endpoint}")
        raise

    return record.model_dump(mode="json")
