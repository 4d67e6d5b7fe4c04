"""
somleng-deploy Health - Readiness poller.

Fixed-interval bounded polling. This is the only retry loop in the tool:
no exponential backoff, no retries anywhere else.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass

from loguru import logger

from somleng_deploy.config.constants import READINESS_INTERVAL_SECONDS, READINESS_MAX_ATTEMPTS


@dataclass(frozen=True)
class PollResult:
    """Outcome of waiting for one service."""

    service: str
    ready: bool
    attempts: int
    elapsed_seconds: float


class ReadinessPoller:
    """
    Polls a probe until it succeeds or the attempt budget runs out.

    Args:
        max_attempts: Maximum number of probe calls (>= 1).
        interval: Seconds slept between two consecutive attempts.
        sleep: Sleep function (injectable for tests).
        clock: Monotonic clock (injectable for tests).
    """

    def __init__(
        self,
        max_attempts: int = READINESS_MAX_ATTEMPTS,
        interval: float = READINESS_INTERVAL_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got: {max_attempts}")
        if interval < 0:
            raise ValueError(f"interval must be >= 0, got: {interval}")
        self.max_attempts = max_attempts
        self.interval = interval
        self._sleep = sleep
        self._clock = clock

    @property
    def budget_seconds(self) -> float:
        """Upper bound on time spent sleeping for one service."""
        return self.interval * (self.max_attempts - 1)

    def wait_for(self, service: str, probe: Callable[[], bool]) -> PollResult:
        """
        Call `probe` until it returns True, at most max_attempts times.

        A probe raising an exception counts as a failed attempt.

        Returns:
            PollResult with ready=True on the first successful probe.
        """
        start = self._clock()

        for attempt in range(1, self.max_attempts + 1):
            try:
                ready = bool(probe())
            except Exception as e:
                logger.debug(f"Probe for {service} raised: {e}")
                ready = False

            if ready:
                elapsed = self._clock() - start
                logger.info(f"✅ {service} is ready ({attempt} attempt(s), {elapsed:.1f}s)")
                return PollResult(service, True, attempt, elapsed)

            if attempt < self.max_attempts:
                logger.debug(f"🔄 {service} not ready ({attempt}/{self.max_attempts}), retry in {self.interval}s")
                self._sleep(self.interval)

        elapsed = self._clock() - start
        logger.warning(f"⏱️ {service} not ready after {self.max_attempts} attempts ({elapsed:.1f}s)")
        return PollResult(service, False, self.max_attempts, elapsed)
