import asyncio
import time
import pytest

from taipulse.core.market.throttle import (
    ThrottledScheduler, ProviderCooldowns, ProviderCoolingDown, SchedulerClosed
)


@pytest.mark.asyncio
async def test_results_in_fifo_order_with_minimum_gap():
    scheduler = ThrottledScheduler(min_gap=0.05, cooldowns=ProviderCooldowns({}))
    started = []

    def make(i):
        async def job():
            started.append((i, time.monotonic()))
            return i * 10
        return job

    results = await asyncio.gather(*(scheduler.submit(make(i)) for i in range(4)))

    assert results == [0, 10, 20, 30]
    assert [i for i, _ in started] == [0, 1, 2, 3]
    assert started[-1][1] - started[0][1] >= 3 * 0.05 * 0.9
    await scheduler.close()


@pytest.mark.asyncio
async def test_job_exception_reaches_caller_and_queue_continues():
    scheduler = ThrottledScheduler(min_gap=0.0, cooldowns=ProviderCooldowns({}))

    async def boom():
        raise ValueError("upstream broke")

    async def ok():
        return "ok"

    with pytest.raises(ValueError):
        await scheduler.submit(boom)
    assert await scheduler.submit(ok) == "ok"
    assert scheduler.completed == 2
    await scheduler.close()


@pytest.mark.asyncio
async def test_cooling_provider_is_skipped_without_running():
    now = [100.0]
    cooldowns = ProviderCooldowns({"finmind": 300}, time_fn=lambda: now[0])
    scheduler = ThrottledScheduler(min_gap=0.0, cooldowns=cooldowns)
    calls = []

    async def job():
        calls.append(1)
        return True

    cooldowns.trigger("finmind")
    with pytest.raises(ProviderCoolingDown) as exc:
        await scheduler.submit(job, provider="finmind")
    assert exc.value.provider == "finmind"

    # other providers are unaffected
    assert await scheduler.submit(job, provider="fugle") is True
    assert calls == [1]

    now[0] += 301
    assert await scheduler.submit(job, provider="finmind") is True
    await scheduler.close()


@pytest.mark.asyncio
async def test_cooldown_started_while_queued_skips_job():
    cooldowns = ProviderCooldowns({"fugle": 60})
    scheduler = ThrottledScheduler(min_gap=0.0, cooldowns=cooldowns)
    ran = []

    async def hits_rate_limit():
        cooldowns.trigger("fugle")
        return "first"

    async def second():
        ran.append("second")
        return "second"

    first_result, second_result = await asyncio.gather(
        scheduler.submit(hits_rate_limit, provider="fugle"),
        scheduler.submit(second, provider="fugle"),
        return_exceptions=True,
    )
    assert first_result == "first"
    assert isinstance(second_result, ProviderCoolingDown)
    assert ran == []
    await scheduler.close()


@pytest.mark.asyncio
async def test_close_fails_pending_jobs():
    scheduler = ThrottledScheduler(min_gap=10.0, cooldowns=ProviderCooldowns({}))

    async def quick():
        return 1

    first = asyncio.ensure_future(scheduler.submit(quick))
    second = asyncio.ensure_future(scheduler.submit(quick))
    assert await first == 1

    # worker is now sleeping out the gap with `second` still queued
    await scheduler.close()
    with pytest.raises(SchedulerClosed):
        await second
    with pytest.raises(SchedulerClosed):
        await scheduler.submit(quick)
