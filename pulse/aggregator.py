import logging
from collections import Counter
from typing import Dict, Optional

from pulse.models import Observation, SummaryRecord, is_error_status
from pulse.window import RollingWindow

logger = logging.getLogger(__name__)


class EndpointSummary:
    """
    Rolling statistics of a single monitored URL.

    A summary owns its latency window and status code histogram, nothing else
    holds a reference to them.
    """

    def __init__(self, endpoint: str, window_size: int):
        self.endpoint = endpoint
        self.alive = False
        self.availability = 0.0
        self.last_latency = 0.0
        self.last_seen = None
        self.latency_window = RollingWindow(window_size)
        self.status_codes: Counter = Counter()

    def fold(self, observation: Observation):
        self.status_codes[observation.status_code] += 1

        # Availability is computed over the whole history, not the window
        total = sum(self.status_codes.values())
        errors = sum(
            count for code, count in self.status_codes.items() if is_error_status(code)
        )
        self.availability = 100.0 * (total - errors) / total

        self.alive = observation.alive
        self.last_latency = observation.latency
        self.last_seen = observation.timestamp
        self.latency_window.put(observation.latency)

    def to_record(self) -> SummaryRecord:
        return SummaryRecord(
            endpoint=self.endpoint,
            timestamp=self.last_seen,
            alive=self.alive,
            availability=self.availability,
            latency=self.last_latency,
            latency_min=self.latency_window.min(),
            latency_max=self.latency_window.max(),
            latency_mean=self.latency_window.mean(),
            samples=len(self.latency_window),
            status_codes=dict(self.status_codes),
        )


class Aggregator:
    """
    Fold incoming observations into one `EndpointSummary` per URL.

    The aggregator is meant to be driven by a single consumer, observations
    are folded one at a time in the order they are received, so the summaries
    are never updated concurrently.
    """

    def __init__(self, window_size: int):
        self.window_size = window_size
        self._summaries: Dict[str, EndpointSummary] = {}

    def __len__(self) -> int:
        return len(self._summaries)

    def get(self, endpoint: str) -> Optional[EndpointSummary]:
        return self._summaries.get(endpoint)

    def fold(self, observation: Observation) -> SummaryRecord:
        """
        Add the observation to the history of its URL and return the updated
        statistics.

        The first observation of a URL creates its summary and is folded into
        it right away.
        """

        summary = self._summaries.get(observation.endpoint)
        if summary is None:
            logger.info(f"Tracking new endpoint {observation.endpoint}")
            summary = EndpointSummary(observation.endpoint, self.window_size)
            self._summaries[observation.endpoint] = summary

        summary.fold(observation)
        return summary.to_record()
