import logging
import time
from datetime import datetime, timezone
from typing import Optional

import requests

from pulse.models import PROBE_FAILED_STATUS, ErrorClass, Observation

logger = logging.getLogger(__name__)


def classify_error(exc: Exception) -> ErrorClass:
    # Connect timeouts are connection errors too, check timeouts first
    if isinstance(exc, requests.exceptions.Timeout):
        return ErrorClass.TIMEOUT
    if isinstance(exc, requests.exceptions.ConnectionError):
        return ErrorClass.CONNECTION
    if isinstance(
        exc,
        (
            requests.exceptions.InvalidURL,
            requests.exceptions.MissingSchema,
            requests.exceptions.InvalidSchema,
        ),
    ):
        return ErrorClass.INVALID_URL
    if isinstance(exc, requests.exceptions.TooManyRedirects):
        return ErrorClass.TOO_MANY_REDIRECTS
    if isinstance(exc, requests.exceptions.RequestException):
        return ErrorClass.REQUEST
    return ErrorClass.UNKNOWN


class Prober:
    """
    Send GET requests to monitored URLs and report how they went.

    A prober keeps its own HTTP session, so it must be used by one thread
    only. Every probe returns an `Observation`, a failed request is reported
    as a dead URL with the `PROBE_FAILED_STATUS` status code instead of being
    raised.
    """

    def __init__(self, timeout: float, session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.session = session or requests.Session()

    def probe(self, endpoint: str) -> Observation:
        """
        GET the endpoint and report the outcome once the response headers
        arrived, the body is never read.

        `timeout` bounds every connect and read step of the request, and the
        whole probe as well: a response slower than `timeout`, redirects
        included, is reported as a timeout.
        """

        timestamp = datetime.now(timezone.utc)
        start = time.monotonic()

        try:
            response = self.session.get(endpoint, timeout=self.timeout, stream=True)
        except Exception as exc:
            error_class = classify_error(exc)

            if error_class == ErrorClass.UNKNOWN:
                logger.exception(f"Unexpected error while probing {endpoint}")
            else:
                logger.debug(f"Probe of {endpoint} failed: {exc}")

            return self._failure(endpoint, timestamp, start, error_class)

        elapsed = time.monotonic() - start
        response.close()

        if elapsed > self.timeout:
            logger.debug(f"Probe of {endpoint} took {elapsed:.2f}s, over the timeout")
            return self._failure(endpoint, timestamp, start, ErrorClass.TIMEOUT)

        return Observation(
            endpoint=endpoint,
            timestamp=timestamp,
            alive=True,
            latency=elapsed * 1000,
            status_code=response.status_code,
        )

    def _failure(
        self, endpoint: str, timestamp: datetime, start: float, error_class: ErrorClass
    ) -> Observation:
        return Observation(
            endpoint=endpoint,
            timestamp=timestamp,
            alive=False,
            latency=(time.monotonic() - start) * 1000,
            status_code=PROBE_FAILED_STATUS,
            error_class=error_class,
        )

    def close(self):
        self.session.close()
