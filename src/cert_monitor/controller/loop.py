"""Fixed-interval repetition of renewal batches.

The loop runs one batch immediately, then one per interval, reloading the
configuration before each tick. Cancellation is only observed between
batches: a batch that has started always runs to completion. A batch that
raises is logged and does not end the loop.
"""
from __future__ import annotations

import logging
import signal
import threading
from datetime import timedelta
from typing import Any, Callable, Generic, Optional, TypeVar

from cert_monitor.errors import ConfigError

logger = logging.getLogger(__name__)

PlanT = TypeVar("PlanT")


class SchedulingLoop(Generic[PlanT]):
    """Repeats batch runs until :meth:`stop` is called.

    Parameters
    ----------
    load_plan:
        Reads a fresh configuration snapshot. Called on every tick.
    run_plan:
        Runs one batch against a snapshot.
    interval:
        Time between the end of one wait and the start of the next batch.
    initial_plan:
        Snapshot for the first batch; loaded with *load_plan* when omitted.
    """

    def __init__(
        self,
        load_plan: Callable[[], PlanT],
        run_plan: Callable[[PlanT], Any],
        interval: timedelta,
        initial_plan: Optional[PlanT] = None,
    ) -> None:
        if interval <= timedelta(0):
            raise ValueError(f"interval must be positive, got {interval}")
        self._load_plan = load_plan
        self._run_plan = run_plan
        self._interval = interval
        self._initial_plan = initial_plan
        self._stopped = threading.Event()
        self._batches = 0

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    @property
    def batches(self) -> int:
        """Number of batches run so far."""
        return self._batches

    def stop(self) -> None:
        """Ask the loop to exit after the batch in progress, if any."""
        if not self._stopped.is_set():
            logger.info("Exiting...")
            self._stopped.set()

    def install_signal_handlers(self) -> None:
        """Stop the loop on SIGINT or SIGTERM. Must run in the main thread."""

        def _handler(signum: int, frame: object) -> None:
            logger.info("Received signal %s", signal.Signals(signum).name)
            self.stop()

        signal.signal(signal.SIGINT, _handler)
        signal.signal(signal.SIGTERM, _handler)

    def run(self) -> int:
        """Run batches until stopped and return how many were run.

        Raises
        ------
        ConfigError
            If the configuration for the first batch cannot be loaded.
        """
        plan = self._initial_plan if self._initial_plan is not None else self._load_plan()
        self._run(plan)

        logger.info("Check interval set to %s", self._interval)
        while not self._stopped.wait(self._interval.total_seconds()):
            try:
                plan = self._load_plan()
            except ConfigError as exc:
                logger.error("Skipping check, configuration could not be loaded: %s", exc)
                continue
            self._run(plan)
        return self._batches

    def _run(self, plan: PlanT) -> None:
        self._batches += 1
        try:
            self._run_plan(plan)
        except Exception:
            # the loop outlives any single batch; the next tick retries
            logger.exception("Batch %d failed unexpectedly", self._batches)
