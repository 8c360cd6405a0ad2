from __future__ import annotations

import asyncio

from core.clock import SchedulerClock


def test_scheduler_clock_fires_jobs_and_honours_cancel() -> None:
    async def scenario() -> None:
        clock = SchedulerClock()
        fired: list[str] = []

        async def record(value: str) -> None:
            fired.append(value)

        kept = clock.call_later(0.05, record, "kept")
        dropped = clock.call_later(0.05, record, "dropped")
        dropped.cancel()

        await asyncio.sleep(0.5)
        clock.close()

        assert fired == ["kept"]
        # Cancelling after the job ran or was removed is a no-op.
        kept.cancel()
        dropped.cancel()

    asyncio.run(scenario())


def test_scheduler_clock_close_is_idempotent() -> None:
    clock = SchedulerClock()
    clock.close()
    clock.close()
