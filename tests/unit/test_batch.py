"""Unit tests for bounded fan-out batch submission."""

import asyncio

import pytest

from nfe.lib.batch import BatchFailure, submit_batch


class _Tracker:
    """Records start order and peak concurrency of submissions."""

    def __init__(self, delays=None, failures=()):
        self.delays = delays or {}
        self.failures = set(failures)
        self.started = []
        self.in_flight = 0
        self.peak = 0

    async def submit(self, item):
        self.started.append(item)
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            await asyncio.sleep(self.delays.get(item, 0))
            if item in self.failures:
                raise ValueError(f"item {item} rejected")
            return item * 10
        finally:
            self.in_flight -= 1


class TestSubmitBatch:
    def test_results_in_input_order(self):
        # later items finish first
        tracker = _Tracker(delays={1: 0.03, 2: 0.02, 3: 0.01, 4: 0})
        results = asyncio.run(submit_batch([1, 2, 3, 4], tracker.submit, max_concurrent=4))
        assert results == [10, 20, 30, 40]

    def test_concurrency_bounded_by_chunk(self):
        tracker = _Tracker(delays={i: 0.005 for i in range(10)})
        results = asyncio.run(submit_batch(range(10), tracker.submit, max_concurrent=3))
        assert results == [i * 10 for i in range(10)]
        assert tracker.peak == 3

    def test_abort_raises_first_failure_and_stops(self):
        tracker = _Tracker(failures={2, 3})
        with pytest.raises(ValueError, match="item 2 rejected"):
            asyncio.run(submit_batch([1, 2, 3, 4, 5], tracker.submit, max_concurrent=3))
        # chunk [1, 2, 3] settled; [4, 5] never started
        assert tracker.started == [1, 2, 3]

    def test_continue_on_error_records_failures(self):
        tracker = _Tracker(failures={2})
        results = asyncio.run(
            submit_batch([1, 2, 3], tracker.submit, max_concurrent=2, continue_on_error=True)
        )
        assert results[0] == 10
        assert results[2] == 30
        failure = results[1]
        assert isinstance(failure, BatchFailure)
        assert failure.data == 2
        assert failure.message == "item 2 rejected"
        assert isinstance(failure.error, ValueError)

    def test_empty_batch(self):
        tracker = _Tracker()
        assert asyncio.run(submit_batch([], tracker.submit)) == []

    def test_invalid_max_concurrent(self):
        tracker = _Tracker()
        with pytest.raises(ValueError):
            asyncio.run(submit_batch([1], tracker.submit, max_concurrent=0))
