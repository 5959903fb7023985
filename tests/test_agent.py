"""Tests for the agent process wiring."""
import signal
import threading
from unittest.mock import patch

import pytest

from pulse import agent
from pulse.settings import Settings


@pytest.fixture
def restore_signals():
    handlers = {sig: signal.getsignal(sig) for sig in (signal.SIGINT, signal.SIGTERM)}
    yield
    for sig, handler in handlers.items():
        signal.signal(sig, handler)


def test_first_signal_cancels_second_exits(restore_signals):
    cancel = threading.Event()
    agent.install_signal_handlers(cancel)
    handler = signal.getsignal(signal.SIGTERM)

    with patch("pulse.agent.os._exit") as exit_:
        handler(signal.SIGTERM, None)
        assert cancel.is_set()
        exit_.assert_not_called()

        handler(signal.SIGINT, None)
        exit_.assert_called_once_with(1)


@pytest.mark.parametrize("clean, status", [(True, 0), (False, 1)])
def test_run_agent_exit_status(clean, status):
    settings = Settings(endpoints=["http://a", "http://b"], interval_ms=100)

    with patch("pulse.agent.install_signal_handlers"), patch(
        "pulse.agent.Scheduler"
    ) as scheduler:
        scheduler.return_value.run.return_value = clean
        assert agent.run_agent(settings) == status

    endpoints, interval, cancel = scheduler.return_value.run.call_args.args
    assert endpoints == ["http://a", "http://b"]
    assert interval == 0.1
    assert isinstance(cancel, threading.Event)
    assert scheduler.call_args.kwargs["grace"] == settings.timeout
