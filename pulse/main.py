import asyncio
import logging
import os
import signal
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, List, Optional

from fastapi import APIRouter, FastAPI, Request, WebSocket
from fastapi.middleware.cors import CORSMiddleware

from pulse.channels import SummaryChannel
from pulse.models import SummaryRecord
from pulse.presenter import Presenter
from pulse.settings import settings

logger = logging.getLogger(__name__)

SummarySource = Callable[[], AsyncIterator[SummaryRecord]]

router = APIRouter()


@router.websocket("/ws_stats")
async def stream_summaries(websocket: WebSocket):
    """
    Stream the aggregated statistics of every monitored URL.

    Each message is a JSON encoded summary, sent as soon as the aggregator
    folded a new probe result. Summaries produced before the connection are
    not replayed.
    """

    presenter: Presenter = websocket.app.state.presenter
    subscriber = await presenter.connect(websocket)
    await presenter.serve(subscriber)


@router.get(path="/summaries", response_model=List[SummaryRecord], tags=["Monitoring"])
async def get_summaries(request: Request):
    """
    Return the latest summary received for each monitored URL, sorted by URL.
    """

    presenter: Presenter = request.app.state.presenter
    return [presenter.latest[endpoint] for endpoint in sorted(presenter.latest)]


def shutdown_server():
    # uvicorn shuts down gracefully on SIGTERM
    os.kill(os.getpid(), signal.SIGTERM)


def create_app(
    presenter: Optional[Presenter] = None,
    source: Optional[SummarySource] = None,
    shutdown: Callable[[], None] = shutdown_server,
) -> FastAPI:
    """
    Build the presenter application.

    `source` is called once at startup and must return the async iterator of
    summaries to fan out, it defaults to the Redis summary channel. Without
    summaries there is nothing left to serve, so `shutdown` is called as soon
    as the source ends or fails.
    """

    if presenter is None:
        presenter = Presenter(
            queue_size=settings.subscriber_queue_size,
            send_timeout=settings.send_timeout,
        )

    if source is None:
        source = SummaryChannel(settings.broker_url, settings.summary_channel).subscribe

    def on_pump_done(task: asyncio.Task):
        if task.cancelled():
            return

        exc = task.exception()
        if exc is None:
            logger.error("Summary stream ended, shutting down")
        else:
            logger.error("Summary stream failed, shutting down", exc_info=exc)
        shutdown()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        pump = asyncio.create_task(presenter.run(source()))
        pump.add_done_callback(on_pump_done)
        logger.info("Summary stream started")

        yield

        pump.cancel()
        await asyncio.gather(pump, return_exceptions=True)
        await presenter.close()
        logger.info("Summary stream stopped")

    app = FastAPI(
        title="Pulse",
        description="This service streams the health statistics of the monitored URLs.",
        version="0.1.0",
        debug=settings.debug,
        docs_url=None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.presenter = presenter
    app.include_router(router)

    return app


app = create_app()
