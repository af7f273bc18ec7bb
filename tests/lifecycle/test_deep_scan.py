import asyncio
import pytest
from unittest.mock import AsyncMock, MagicMock

from taipulse.lifecycle.deep_scan import DeepScanScheduler
from taipulse.schemas.analysis import AnalysisMode


@pytest.fixture
def compositor():
    comp = MagicMock()
    comp.get_analyze = AsyncMock(side_effect=lambda sid, mode: f"detail-{sid}")
    return comp


@pytest.fixture
def watchlist():
    return MagicMock()


@pytest.mark.asyncio
async def test_duplicate_ids_are_queued_once(compositor, watchlist):
    scanner = DeepScanScheduler(compositor, watchlist, batch_size=15, delay=0, sleep=AsyncMock())

    assert await scanner.enqueue(["2330", "2454"]) == 2
    assert await scanner.enqueue(["2330"]) == 0
    assert scanner.pending == 2
    assert scanner.total_targets == 2

    await scanner.join()
    analysed = [c.args[0] for c in compositor.get_analyze.await_args_list]
    assert sorted(analysed) == ["2330", "2454"]
    assert all(c.args[1] == AnalysisMode.FULL for c in compositor.get_analyze.await_args_list)
    watchlist.sync_stock.assert_any_call("2330", "detail-2330")


@pytest.mark.asyncio
async def test_batches_with_delay_and_completion_callback(compositor, watchlist):
    sleep = AsyncMock()
    done = MagicMock()
    scanner = DeepScanScheduler(compositor, watchlist, batch_size=2, delay=2.5, on_complete=done, sleep=sleep)

    await scanner.enqueue(["1", "2", "3", "4", "5"])
    await scanner.join()

    assert scanner.processed == 5
    assert sleep.await_count == 3
    sleep.assert_awaited_with(2.5)
    done.assert_called_once()
    assert not scanner.running


@pytest.mark.asyncio
async def test_only_one_loop_runs(compositor, watchlist):
    gate = asyncio.Event()

    async def slow(sid, mode):
        await gate.wait()
        return sid

    compositor.get_analyze = AsyncMock(side_effect=slow)
    scanner = DeepScanScheduler(compositor, watchlist, batch_size=1, delay=0, sleep=AsyncMock())

    await scanner.enqueue(["2330"])
    first_task = scanner._task
    await asyncio.sleep(0)
    assert scanner.running

    assert await scanner.enqueue(["2454"]) == 1
    assert scanner._task is first_task

    gate.set()
    await scanner.join()
    assert scanner.processed == 2


@pytest.mark.asyncio
async def test_failed_symbol_is_skipped(compositor, watchlist):
    async def flaky(sid, mode):
        if sid == "bad":
            raise RuntimeError("timeout")
        return sid

    compositor.get_analyze = AsyncMock(side_effect=flaky)
    scanner = DeepScanScheduler(compositor, watchlist, delay=0, sleep=AsyncMock())

    await scanner.enqueue(["bad", "good"])
    await scanner.join()

    watchlist.sync_stock.assert_called_once_with("good", "good")
    assert scanner.processed == 2


@pytest.mark.asyncio
async def test_stop_drops_queue(compositor, watchlist):
    gate = asyncio.Event()

    async def blocked(sid, mode):
        await gate.wait()

    compositor.get_analyze = AsyncMock(side_effect=blocked)
    scanner = DeepScanScheduler(compositor, watchlist, batch_size=1, delay=0, sleep=AsyncMock())

    await scanner.enqueue(["1", "2", "3"])
    await asyncio.sleep(0)
    await scanner.stop()

    assert not scanner.running
    assert scanner.pending == 0
    # ids can be queued again after a stop
    assert await scanner.enqueue(["2"]) == 1
    await scanner.stop()
