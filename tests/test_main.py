"""Tests for the presenter HTTP and websocket API."""
import asyncio
import time
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from pulse.main import create_app
from pulse.presenter import Presenter

from conftest import make_record


async def no_summaries():
    return
    yield


def test_websocket_streams_summaries():
    presenter = Presenter()
    records = [make_record(latency=1.0), make_record(latency=2.0)]

    async def source():
        while not presenter.subscribers:
            await asyncio.sleep(0.01)
        for record in records:
            yield record

    with TestClient(create_app(presenter, source, MagicMock())) as client:
        with client.websocket_connect("/ws_stats") as websocket:
            first = websocket.receive_json()
            second = websocket.receive_json()

    assert first["latency"] == 1.0
    assert second["latency"] == 2.0
    assert first["endpoint"] == "http://example.com"
    assert presenter.subscribers == {}


def test_summaries_snapshot_sorted_by_endpoint():
    presenter = Presenter()
    presenter.broadcast(make_record(endpoint="http://b", latency=2.0))
    presenter.broadcast(make_record(endpoint="http://a", latency=1.0))
    presenter.broadcast(make_record(endpoint="http://b", latency=3.0))

    with TestClient(create_app(presenter, no_summaries, MagicMock())) as client:
        response = client.get("/summaries")

    assert response.status_code == 200
    body = response.json()
    assert [item["endpoint"] for item in body] == ["http://a", "http://b"]
    assert body[1]["latency"] == 3.0
    assert body[0]["status_codes"] == {"200": 1}


def test_summaries_empty_before_any_probe():
    with TestClient(create_app(Presenter(), no_summaries, MagicMock())) as client:
        assert client.get("/summaries").json() == []


def wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            return False
        time.sleep(0.01)
    return True


async def failing_summaries():
    raise ConnectionError("redis went away")
    yield


@pytest.mark.parametrize("source", [no_summaries, failing_summaries])
def test_server_shuts_down_when_stream_stops(source):
    shutdown = MagicMock()

    with TestClient(create_app(Presenter(), source, shutdown)):
        assert wait_for(lambda: shutdown.called)

    shutdown.assert_called_once_with()


def test_server_keeps_running_while_stream_is_open():
    shutdown = MagicMock()

    async def endless_summaries():
        while True:
            await asyncio.sleep(3600)
            yield

    app = create_app(Presenter(), endless_summaries, shutdown)

    with TestClient(app) as client:
        assert client.get("/summaries").json() == []
        time.sleep(0.1)

    shutdown.assert_not_called()
