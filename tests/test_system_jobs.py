"""
Cron matching and the system job registry.
"""

import asyncio
from datetime import datetime

import pytest

from system_jobs import (
    SystemJobHandlers,
    SystemJobName,
    SystemJobsSchedule,
    cron_matches,
    parse_cron,
)


class TestCron:
    def test_trial_tracker_schedule(self):
        expr = "*/59 23 * * *"
        assert cron_matches(expr, datetime(2026, 10, 18, 23, 0))
        assert cron_matches(expr, datetime(2026, 10, 18, 23, 59))
        assert not cron_matches(expr, datetime(2026, 10, 18, 23, 30))
        assert not cron_matches(expr, datetime(2026, 10, 18, 22, 59))

    def test_ranges_lists_and_steps(self):
        minutes, hours, _, _, weekdays = parse_cron("0,15-20/5 9-17/4 * * 1-5")
        assert minutes == {0, 15, 20}
        assert hours == {9, 13, 17}
        assert weekdays == {1, 2, 3, 4, 5}

    def test_sunday_as_seven(self):
        # 2026-10-18 is a Sunday
        assert cron_matches("0 12 * * 7", datetime(2026, 10, 18, 12, 0))
        assert cron_matches("0 12 * * 0", datetime(2026, 10, 18, 12, 0))
        assert not cron_matches("0 12 * * 1", datetime(2026, 10, 18, 12, 0))

    def test_day_fields_are_ored_when_both_set(self):
        # the 1st, or any Sunday
        assert cron_matches("0 0 1 * 0", datetime(2026, 10, 18, 0, 0))
        assert cron_matches("0 0 1 * 0", datetime(2026, 10, 1, 0, 0))
        assert not cron_matches("0 0 1 * 0", datetime(2026, 10, 2, 0, 0))

    @pytest.mark.parametrize("expr", ["* * * *", "60 * * * *", "*/0 * * * *", "5-1 * * * *", "a * * * *"])
    def test_invalid_expressions(self, expr):
        with pytest.raises(ValueError):
            parse_cron(expr)


class TestSchedule:
    @pytest.mark.asyncio
    async def test_upsert_replaces_schedule(self):
        schedule = SystemJobsSchedule(SystemJobHandlers())
        await schedule.upsert_job(SystemJobName.TRIAL_TRACKER, "0 0 * * *")
        await schedule.upsert_job(SystemJobName.TRIAL_TRACKER, "*/59 23 * * *")
        assert schedule.jobs == {SystemJobName.TRIAL_TRACKER: "*/59 23 * * *"}

    @pytest.mark.asyncio
    async def test_upsert_rejects_bad_cron(self):
        schedule = SystemJobsSchedule(SystemJobHandlers())
        with pytest.raises(ValueError):
            await schedule.upsert_job(SystemJobName.TRIAL_TRACKER, "nope")

    @pytest.mark.asyncio
    async def test_tick_fires_due_handler(self):
        fired = []
        handlers = SystemJobHandlers()

        async def handler():
            fired.append(True)

        handlers.register_job_handler(SystemJobName.TRIAL_TRACKER, handler)
        schedule = SystemJobsSchedule(handlers)
        await schedule.upsert_job(SystemJobName.TRIAL_TRACKER, "*/59 23 * * *")

        assert schedule.tick(datetime(2026, 10, 18, 12, 0)) == []
        tasks = schedule.tick(datetime(2026, 10, 18, 23, 59))
        await asyncio.gather(*tasks)
        assert fired == [True]

    @pytest.mark.asyncio
    async def test_handler_failure_is_logged_not_raised(self, caplog):
        handlers = SystemJobHandlers()

        async def handler():
            raise RuntimeError("boom")

        handlers.register_job_handler(SystemJobName.TRIAL_TRACKER, handler)
        schedule = SystemJobsSchedule(handlers)
        await schedule.fire(SystemJobName.TRIAL_TRACKER)
        assert "trial-tracker failed" in caplog.text

    @pytest.mark.asyncio
    async def test_hung_firing_does_not_block_next(self):
        started = []
        release = asyncio.Event()
        handlers = SystemJobHandlers()

        async def handler():
            started.append(True)
            await release.wait()

        handlers.register_job_handler(SystemJobName.TRIAL_TRACKER, handler)
        schedule = SystemJobsSchedule(handlers)
        await schedule.upsert_job(SystemJobName.TRIAL_TRACKER, "* * * * *")

        schedule.tick(datetime(2026, 10, 18, 23, 0))
        schedule.tick(datetime(2026, 10, 18, 23, 1))
        await asyncio.sleep(0)
        assert len(started) == 2

        release.set()
        await schedule.stop()
