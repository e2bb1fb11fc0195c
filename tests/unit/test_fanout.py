"""Tests for the fan-out / fan-in stage runner."""

import asyncio

import pytest

from mediasync.ingest.core.exceptions import StageFailedError
from mediasync.ingest.core.types import PipelineStage
from mediasync.ingest.pipeline.fanout import fan_out


def test_empty_input_returns_empty_list():
    async def worker(index, item):
        raise AssertionError("worker should not run")

    assert asyncio.run(fan_out(PipelineStage.DOWNLOAD, [], worker)) == []


def test_results_keep_input_order_regardless_of_finish_order():
    delays = [0.05, 0.0, 0.02]

    async def worker(index, delay):
        await asyncio.sleep(delay)
        return f"item-{index}"

    results = asyncio.run(fan_out(PipelineStage.UPLOAD, delays, worker))

    assert results == ["item-0", "item-1", "item-2"]


def test_units_run_concurrently():
    running = 0
    peak = 0

    async def worker(index, item):
        nonlocal running, peak
        running += 1
        peak = max(peak, running)
        await asyncio.sleep(0.01)
        running -= 1
        return item

    asyncio.run(fan_out(PipelineStage.CREATE, list(range(5)), worker))

    assert peak == 5


def test_first_failure_cancels_siblings_and_reports_index():
    cancelled = []

    async def worker(index, item):
        if index == 1:
            raise ValueError("boom")
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            cancelled.append(index)
            raise
        return item

    with pytest.raises(StageFailedError) as excinfo:
        asyncio.run(fan_out(PipelineStage.DOWNLOAD, ["a", "b", "c"], worker))

    error = excinfo.value
    assert error.stage == PipelineStage.DOWNLOAD
    assert error.source_index == 1
    assert isinstance(error.cause, ValueError)
    assert sorted(cancelled) == [0, 2]


def test_partial_results_hold_completed_slots():
    async def worker(index, item):
        if index == 2:
            await asyncio.sleep(0.01)
            raise RuntimeError("late failure")
        return item.upper()

    with pytest.raises(StageFailedError) as excinfo:
        asyncio.run(fan_out(PipelineStage.UPLOAD, ["a", "b", "c"], worker))

    assert excinfo.value.partial_results == ["A", "B", None]
