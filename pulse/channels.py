import logging
from typing import AsyncIterator, Optional

import redis
import redis.asyncio
from celery import Celery
from pydantic import ValidationError

from pulse.models import Observation, SummaryRecord

logger = logging.getLogger(__name__)


class ObservationChannel:
    """
    Queue observations for the aggregator.

    Every observation becomes one aggregate task on the broker, routed to
    `queue`. Publishing raises the broker error once Celery gave up retrying.
    """

    def __init__(self, app: Celery, task_name: str, queue: str):
        self.app = app
        self.task_name = task_name
        self.queue = queue

    def publish(self, observation: Observation):
        self.app.send_task(
            self.task_name, args=[observation.model_dump_json()], queue=self.queue
        )

    def close(self):
        self.app.close()


class SummaryChannel:
    """
    Redis pub/sub channel carrying aggregated summaries to the presenters.

    Only the presenters listening at publish time receive a summary, nothing
    is kept for late subscribers.
    """

    def __init__(self, url: str, channel: str):
        self.url = url
        self.channel = channel
        self._client: Optional[redis.Redis] = None

    def publish(self, record: SummaryRecord) -> int:
        """
        Publish the summary and return the number of presenters it reached.
        """

        if self._client is None:
            self._client = redis.Redis.from_url(self.url)
        return self._client.publish(self.channel, record.model_dump_json())

    async def subscribe(self) -> AsyncIterator[SummaryRecord]:
        """
        Yield summaries as they are published, skipping undecodable ones.
        """

        client = redis.asyncio.Redis.from_url(self.url)
        pubsub = client.pubsub(ignore_subscribe_messages=True)

        try:
            await pubsub.subscribe(self.channel)
            logger.info(f"Subscribed to summary channel {self.channel!r}")

            async for message in pubsub.listen():
                if message["type"] != "message":
                    continue
                try:
                    yield SummaryRecord.model_validate_json(message["data"])
                except ValidationError as exc:
                    logger.warning(f"Dropping malformed summary: {exc}")
        finally:
            await pubsub.aclose()
            await client.aclose()

    def close(self):
        if self._client is not None:
            self._client.close()
            self._client = None
