import asyncio
import logging
import uuid
from typing import AsyncIterator, Dict, Optional

from fastapi import WebSocket
from starlette import status

from pulse.models import SummaryRecord

logger = logging.getLogger(__name__)


class Subscriber:
    """
    A connected websocket client and the summaries waiting to be sent to it.
    """

    def __init__(self, websocket: WebSocket, queue_size: int):
        self.id = str(uuid.uuid4())
        self.websocket = websocket
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self.close_code: Optional[int] = None

    def offer(self, message: str) -> bool:
        try:
            self.queue.put_nowait(message)
        except asyncio.QueueFull:
            return False
        return True

    def stop(self, code: int):
        # The backlog is discarded to make room for the stop marker
        while not self.queue.empty():
            self.queue.get_nowait()
        self.close_code = code
        self.queue.put_nowait(None)


class Presenter:
    """
    Fan out aggregated summaries to every connected websocket client.

    Summaries are delivered in the order they were broadcast. Clients only
    receive the summaries broadcast after they connected. A client that cannot
    keep up is disconnected instead of delaying the others: its queue holds at
    most `queue_size` summaries and each write must complete within
    `send_timeout` seconds.
    """

    def __init__(self, queue_size: int = 64, send_timeout: float = 1.0):
        self.queue_size = queue_size
        self.send_timeout = send_timeout
        self.subscribers: Dict[str, Subscriber] = {}
        self.latest: Dict[str, SummaryRecord] = {}

    async def connect(self, websocket: WebSocket) -> Subscriber:
        await websocket.accept()
        subscriber = Subscriber(websocket, self.queue_size)
        self.subscribers[subscriber.id] = subscriber
        logger.info(f"Subscriber {subscriber.id} connected")
        return subscriber

    def disconnect(self, subscriber: Subscriber):
        if self.subscribers.pop(subscriber.id, None) is not None:
            logger.info(f"Subscriber {subscriber.id} disconnected")

    def broadcast(self, record: SummaryRecord):
        self.latest[record.endpoint] = record
        message = record.model_dump_json()

        for subscriber in list(self.subscribers.values()):
            if not subscriber.offer(message):
                logger.warning(f"Subscriber {subscriber.id} is too slow, dropping it")
                self.disconnect(subscriber)
                subscriber.stop(status.WS_1013_TRY_AGAIN_LATER)

    async def run(self, source: AsyncIterator[SummaryRecord]):
        async for record in source:
            self.broadcast(record)

    async def serve(self, subscriber: Subscriber):
        """
        Stream summaries to the subscriber until it goes away or gets dropped.
        """

        forward = asyncio.create_task(self._forward(subscriber))
        drain = asyncio.create_task(self._drain(subscriber))

        try:
            await asyncio.wait({forward, drain}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            forward.cancel()
            drain.cancel()
            await asyncio.gather(forward, drain, return_exceptions=True)
            self.disconnect(subscriber)

    async def close(self):
        for subscriber in list(self.subscribers.values()):
            self.disconnect(subscriber)
            subscriber.stop(status.WS_1001_GOING_AWAY)

    async def _forward(self, subscriber: Subscriber):
        websocket = subscriber.websocket

        while True:
            message = await subscriber.queue.get()

            if message is None:
                try:
                    await websocket.close(code=subscriber.close_code)
                except Exception as exc:
                    logger.debug(f"Closing subscriber {subscriber.id} failed: {exc}")
                return

            try:
                await asyncio.wait_for(websocket.send_text(message), self.send_timeout)
            except asyncio.TimeoutError:
                logger.warning(f"Send to {subscriber.id} timed out, dropping it")
                return
            except Exception as exc:
                logger.warning(f"Failed to send to {subscriber.id}: {exc}")
                return

    async def _drain(self, subscriber: Subscriber):
        # Incoming messages are ignored, only the disconnection matters
        while True:
            try:
                message = await subscriber.websocket.receive()
            except Exception as exc:
                logger.debug(f"Receiving from {subscriber.id} failed: {exc}")
                return
            if message["type"] == "websocket.disconnect":
                return
