import logging
import queue
import threading
import time
from typing import Callable, List, Sequence

from pulse.channels import ObservationChannel
from pulse.prober import Prober

logger = logging.getLogger(__name__)

# How often an idle worker checks for cancellation
POLL_INTERVAL = 0.1


class ProbeWorker(threading.Thread):
    """
    Probe one URL each time it is dispatched and publish the observation.

    A worker holds at most one pending dispatch besides the probe in flight,
    so a slow URL never accumulates probes. Publishing errors are fatal: the
    worker flags itself as failed and cancels the whole agent.
    """

    def __init__(
        self,
        endpoint: str,
        prober: Prober,
        channel: ObservationChannel,
        cancel: threading.Event,
    ):
        super().__init__(name=f"probe-{endpoint}", daemon=True)
        self.endpoint = endpoint
        self.prober = prober
        self.channel = channel
        self.cancel = cancel
        self.failed = False
        self._inbox = queue.Queue(maxsize=1)

    def dispatch(self) -> bool:
        try:
            self._inbox.put_nowait(self.endpoint)
        except queue.Full:
            return False
        return True

    def run(self):
        try:
            while not self.cancel.is_set():
                try:
                    endpoint = self._inbox.get(timeout=POLL_INTERVAL)
                except queue.Empty:
                    continue

                if self.cancel.is_set():
                    break

                observation = self.prober.probe(endpoint)

                try:
                    self.channel.publish(observation)
                except Exception:
                    logger.exception(f"Cannot publish observation of {endpoint}")
                    self.failed = True
                    self.cancel.set()
        finally:
            self.prober.close()


class Scheduler:
    """
    Drive the probes: every `interval` seconds, dispatch each URL to its own
    worker thread, in configuration order.
    """

    def __init__(
        self,
        prober_factory: Callable[[], Prober],
        channel: ObservationChannel,
        grace: float,
    ):
        self.prober_factory = prober_factory
        self.channel = channel
        self.grace = grace

    def run(
        self, endpoints: Sequence[str], interval: float, cancel: threading.Event
    ) -> bool:
        """
        Sweep the URLs until `cancel` is set, then stop the workers.

        Return `True` if the agent stopped cleanly, `False` if a worker failed
        to publish or did not finish within the grace period.
        """

        workers = [
            ProbeWorker(endpoint, self.prober_factory(), self.channel, cancel)
            for endpoint in endpoints
        ]

        for worker in workers:
            worker.start()

        try:
            while not cancel.is_set():
                self.sweep(workers)
                cancel.wait(interval)
        finally:
            cancel.set()
            stopped = self.stop(workers)

        return stopped and not any(worker.failed for worker in workers)

    def sweep(self, workers: List[ProbeWorker]):
        for worker in workers:
            if not worker.dispatch():
                logger.warning(
                    f"Previous probe of {worker.endpoint} still pending, skipping"
                )

    def stop(self, workers: List[ProbeWorker]) -> bool:
        deadline = time.monotonic() + self.grace + POLL_INTERVAL

        for worker in workers:
            worker.join(max(0.0, deadline - time.monotonic()))

        stuck = [worker.endpoint for worker in workers if worker.is_alive()]
        if stuck:
            logger.error(f"Probe workers still running after shutdown: {stuck}")

        self.channel.close()
        return not stuck
