"""Shared fixtures for the pulse test suite."""
import os
from datetime import datetime, timezone

import pytest

# Keep a local pulse.yaml out of the settings loaded by the tests
os.environ["PULSE_CONFIG_FILE"] = os.path.join(os.path.dirname(__file__), "missing.yaml")

from pulse.models import Observation, SummaryRecord  # noqa: E402

ENDPOINT = "http://example.com"


def make_observation(
    latency: float = 10.0, status_code: int = 200, endpoint: str = ENDPOINT, **kwargs
) -> Observation:
    values = {
        "endpoint": endpoint,
        "timestamp": datetime(2024, 1, 1, tzinfo=timezone.utc),
        "alive": status_code != -1,
        "latency": latency,
        "status_code": status_code,
    }
    values.update(kwargs)
    return Observation(**values)


def make_record(latency: float = 10.0, endpoint: str = ENDPOINT) -> SummaryRecord:
    return SummaryRecord(
        endpoint=endpoint,
        timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
        alive=True,
        availability=100.0,
        latency=latency,
        latency_min=latency,
        latency_max=latency,
        latency_mean=latency,
        samples=1,
        status_codes={200: 1},
    )


@pytest.fixture
def observation() -> Observation:
    return make_observation()
