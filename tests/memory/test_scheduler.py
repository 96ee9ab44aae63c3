"""Tests for the periodic compression scheduler."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from cynicalclaw.memory.scheduler import CompressionScheduler


def _compressor(result=2, error=None):
    compressor = MagicMock()
    compressor.periodic_compression = AsyncMock(return_value=result, side_effect=error)
    return compressor


@pytest.mark.asyncio
async def test_run_once_passes_settings():
    compressor = _compressor(3)
    scheduler = CompressionScheduler(compressor, older_than_days=2, min_messages=9)

    assert await scheduler.run_once() == 3

    compressor.periodic_compression.assert_awaited_once_with(older_than_days=2, min_messages=9)
    assert scheduler.last_result == 3
    assert scheduler.last_run is not None


@pytest.mark.asyncio
async def test_run_once_swallows_sweep_failure():
    scheduler = CompressionScheduler(_compressor(error=RuntimeError("db locked")))
    assert await scheduler.run_once() == 0
    assert scheduler.last_result == 0


@pytest.mark.asyncio
async def test_loop_sweeps_on_interval_and_stops():
    compressor = _compressor()
    scheduler = CompressionScheduler(compressor, interval_seconds=0.01)

    scheduler.start()
    assert scheduler.running
    await asyncio.sleep(0.1)
    await scheduler.stop()

    assert not scheduler.running
    assert compressor.periodic_compression.await_count >= 2


@pytest.mark.asyncio
async def test_stop_before_first_interval_runs_nothing():
    compressor = _compressor()
    scheduler = CompressionScheduler(compressor, interval_seconds=3600)

    scheduler.start()
    await asyncio.sleep(0)
    await scheduler.stop()

    compressor.periodic_compression.assert_not_called()


@pytest.mark.asyncio
async def test_start_is_idempotent():
    scheduler = CompressionScheduler(_compressor(), interval_seconds=3600)
    scheduler.start()
    task = scheduler._task
    scheduler.start()
    assert scheduler._task is task
    await scheduler.stop()


@pytest.mark.asyncio
async def test_stop_without_start():
    scheduler = CompressionScheduler(_compressor())
    await scheduler.stop()
    assert not scheduler.running
