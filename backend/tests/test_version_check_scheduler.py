import asyncio

from app.application.services.version_check_scheduler import VersionCheckScheduler


def test_run_once_survives_failing_cycle():
    async def failing_cycle():
        raise RuntimeError("database unavailable")

    scheduler = VersionCheckScheduler(failing_cycle, interval_seconds=60)

    asyncio.run(scheduler.run_once())

    assert scheduler.last_run_at is not None


def test_scheduler_repeats_until_stopped():
    calls: list[int] = []

    async def cycle():
        calls.append(len(calls))

    async def scenario():
        scheduler = VersionCheckScheduler(cycle, interval_seconds=0.01)
        scheduler.start()
        assert scheduler.is_running is True
        await asyncio.sleep(0.1)
        await scheduler.stop()
        return scheduler

    scheduler = asyncio.run(scenario())

    assert len(calls) >= 2
    assert scheduler.is_running is False
    assert scheduler.last_run_at is not None


def test_initial_delay_postpones_first_cycle():
    calls: list[int] = []

    async def cycle():
        calls.append(1)

    async def scenario():
        scheduler = VersionCheckScheduler(cycle, interval_seconds=60, initial_delay_seconds=30)
        scheduler.start()
        await asyncio.sleep(0.02)
        await scheduler.stop()

    asyncio.run(scenario())

    assert calls == []


def test_start_is_idempotent_and_failures_do_not_stop_the_loop():
    calls: list[int] = []

    async def flaky_cycle():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("first cycle fails")

    async def scenario():
        scheduler = VersionCheckScheduler(flaky_cycle, interval_seconds=0.01)
        scheduler.start()
        first_task = scheduler._task
        scheduler.start()
        assert scheduler._task is first_task
        await asyncio.sleep(0.1)
        await scheduler.stop()

    asyncio.run(scenario())

    assert len(calls) >= 2
