"""
Tests for the fixed-interval readiness poller.
"""
import pytest

from somleng_deploy.health.poller import ReadinessPoller


class FakeClock:
    """Monotonic clock advanced only by the fake sleep."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds

    def __call__(self):
        return self.now


def probe_ready_after(n):
    """Probe that fails n-1 times, then succeeds."""
    calls = {"count": 0}

    def probe():
        calls["count"] += 1
        return calls["count"] >= n

    probe.calls = calls
    return probe


class TestReadinessPoller:
    """Tests for ReadinessPoller.wait_for."""

    def test_ready_first_attempt(self):
        """No sleep when the service is already up."""
        clock = FakeClock()
        poller = ReadinessPoller(max_attempts=5, interval=2, sleep=clock.sleep, clock=clock)

        result = poller.wait_for("db", lambda: True)

        assert result.ready
        assert result.attempts == 1
        assert clock.sleeps == []

    def test_ready_after_retries(self):
        """Sleeps a fixed interval between attempts."""
        clock = FakeClock()
        poller = ReadinessPoller(max_attempts=5, interval=2, sleep=clock.sleep, clock=clock)
        probe = probe_ready_after(3)

        result = poller.wait_for("redis", probe)

        assert result.ready
        assert result.attempts == 3
        assert clock.sleeps == [2, 2]
        assert result.elapsed_seconds == 4

    def test_exhausts_budget(self):
        """Exactly max_attempts probes and no sleep after the last."""
        clock = FakeClock()
        poller = ReadinessPoller(max_attempts=4, interval=1.5, sleep=clock.sleep, clock=clock)
        probe = probe_ready_after(100)

        result = poller.wait_for("web", probe)

        assert not result.ready
        assert result.attempts == 4
        assert probe.calls["count"] == 4
        assert clock.sleeps == [1.5, 1.5, 1.5]
        assert result.elapsed_seconds == poller.budget_seconds

    def test_single_attempt(self):
        """max_attempts=1 probes once and never sleeps."""
        clock = FakeClock()
        poller = ReadinessPoller(max_attempts=1, interval=10, sleep=clock.sleep, clock=clock)

        result = poller.wait_for("web", lambda: False)

        assert not result.ready
        assert result.attempts == 1
        assert clock.sleeps == []

    def test_raising_probe_counts_as_failure(self):
        """Exceptions from a probe are failed attempts, not crashes."""
        clock = FakeClock()
        poller = ReadinessPoller(max_attempts=3, interval=0, sleep=clock.sleep, clock=clock)
        calls = []

        def probe():
            calls.append(1)
            if len(calls) < 3:
                raise ConnectionError("refused")
            return True

        result = poller.wait_for("media_proxy", probe)

        assert result.ready
        assert result.attempts == 3

    @pytest.mark.parametrize("attempts,interval", [(0, 1), (-1, 1), (3, -0.5)])
    def test_invalid_bounds(self, attempts, interval):
        with pytest.raises(ValueError):
            ReadinessPoller(max_attempts=attempts, interval=interval)

    def test_budget(self):
        assert ReadinessPoller(max_attempts=30, interval=2).budget_seconds == 58
