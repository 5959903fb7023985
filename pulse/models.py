from datetime import datetime
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

# Status code recorded when no HTTP exchange happened at all
PROBE_FAILED_STATUS = -1

# Lowest status code counted against availability
ERROR_STATUS_THRESHOLD = 400


def is_error_status(status_code: int) -> bool:
    return status_code == PROBE_FAILED_STATUS or status_code >= ERROR_STATUS_THRESHOLD


class ErrorClass(str, Enum):
    """
    Reason of a failed probe, set only when no HTTP response was received.
    """

    TIMEOUT = "timeout"
    CONNECTION = "connection"
    INVALID_URL = "invalid_url"
    TOO_MANY_REDIRECTS = "too_many_redirects"
    REQUEST = "request"
    UNKNOWN = "unknown"


class Observation(BaseModel):
    """
    Observation model stands for the result of a single probe request
    """

    model_config = ConfigDict(frozen=True)

    endpoint: str = Field(..., description="The probed URL")
    timestamp: datetime = Field(..., description="Timestamp when the probe started")
    alive: bool = Field(..., description="Whether an HTTP response was received")
    latency: float = Field(..., ge=0, description="Elapsed time in milliseconds")
    status_code: int = Field(
        ..., description="HTTP status code, or -1 when the probe failed"
    )
    error_class: Optional[ErrorClass] = Field(
        None, description="Failure reason when no response was received"
    )


class SummaryRecord(BaseModel):
    """
    Rolling statistics of a URL after folding one more observation, as sent
    to the live subscribers.
    """

    model_config = ConfigDict(frozen=True)

    endpoint: str = Field(..., description="The monitored URL")
    timestamp: datetime = Field(..., description="Timestamp of the latest probe")
    alive: bool = Field(..., description="Outcome of the latest probe")
    availability: float = Field(
        ..., ge=0, le=100, description="Percentage of non-error status codes"
    )
    latency: float = Field(..., description="Latency of the latest probe (ms)")
    latency_min: float = Field(..., description="Lowest latency in the window (ms)")
    latency_max: float = Field(..., description="Highest latency in the window (ms)")
    latency_mean: float = Field(..., description="Mean latency in the window (ms)")
    samples: int = Field(..., description="Number of latencies in the window")
    status_codes: Dict[int, int] = Field(
        default_factory=dict, description="Occurrences of each status code"
    )
