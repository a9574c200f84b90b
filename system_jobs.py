"""
System-wide recurring jobs.

Jobs are registered once by name with a 5-field cron expression.
A background asyncio task wakes every minute and starts each due
handler as its own task, so a slow firing never delays the next one.
"""

import asyncio
import enum
import logging
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Dict, List, Optional, Set

log = logging.getLogger("entitlements.jobs")

JobHandler = Callable[[], Awaitable[object]]


class SystemJobName(str, enum.Enum):
    TRIAL_TRACKER = "trial-tracker"


# =====================================================
#  CRON
# =====================================================

# minute, hour, day of month, month, day of week (7 is also Sunday)
_FIELD_RANGES = ((0, 59), (0, 23), (1, 31), (1, 12), (0, 7))


def _parse_field(field: str, lo: int, hi: int) -> Set[int]:
    values = set()
    for part in field.split(","):
        step = 1
        stepped = "/" in part
        if stepped:
            part, raw_step = part.split("/", 1)
            step = int(raw_step)
            if step < 1:
                raise ValueError(f"invalid cron step: {raw_step}")

        if part == "*":
            start, end = lo, hi
        elif "-" in part:
            a, b = part.split("-", 1)
            start, end = int(a), int(b)
        else:
            start = int(part)
            end = hi if stepped else start

        if start < lo or end > hi or start > end:
            raise ValueError(f"cron field out of range: {field}")
        values.update(range(start, end + 1, step))
    return values


def parse_cron(expr: str) -> List[Set[int]]:
    fields = expr.split()
    if len(fields) != 5:
        raise ValueError(f"cron expression needs 5 fields: {expr!r}")
    parsed = [_parse_field(f, lo, hi) for f, (lo, hi) in zip(fields, _FIELD_RANGES)]
    if 7 in parsed[4]:
        parsed[4] = (parsed[4] - {7}) | {0}
    return parsed


def cron_matches(expr: str, when: datetime) -> bool:
    minutes, hours, days, months, weekdays = parse_cron(expr)
    dom_field, dow_field = expr.split()[2], expr.split()[4]
    weekday = (when.weekday() + 1) % 7   # cron counts from Sunday

    if when.minute not in minutes or when.hour not in hours or when.month not in months:
        return False
    # both day fields restricted: either may match
    if dom_field != "*" and dow_field != "*":
        return when.day in days or weekday in weekdays
    return when.day in days and weekday in weekdays


# =====================================================
#  REGISTRY + SCHEDULE
# =====================================================

class SystemJobHandlers:
    def __init__(self):
        self._handlers: Dict[SystemJobName, JobHandler] = {}

    def register_job_handler(self, name: SystemJobName, handler: JobHandler) -> None:
        self._handlers[name] = handler

    def get(self, name: SystemJobName) -> Optional[JobHandler]:
        return self._handlers.get(name)


class SystemJobsSchedule:

    def __init__(self, handlers: SystemJobHandlers):
        self.handlers = handlers
        self.jobs: Dict[SystemJobName, str] = {}
        self._task: Optional[asyncio.Task] = None
        self._running: Set[asyncio.Task] = set()

    async def upsert_job(self, name: SystemJobName, cron: str) -> None:
        parse_cron(cron)
        self.jobs[name] = cron
        log.info("Scheduled system job %s with cron %r", name.value, cron)

    async def fire(self, name: SystemJobName) -> None:
        handler = self.handlers.get(name)
        if handler is None:
            log.warning("No handler registered for system job %s", name.value)
            return
        try:
            await handler()
        except Exception:
            log.exception("System job %s failed", name.value)

    def tick(self, now: datetime) -> List[asyncio.Task]:
        started = []
        for name, cron in self.jobs.items():
            if cron_matches(cron, now):
                task = asyncio.create_task(self.fire(name))
                self._running.add(task)
                task.add_done_callback(self._running.discard)
                started.append(task)
        return started

    async def _loop(self) -> None:
        last_minute = None
        while True:
            now = datetime.now(timezone.utc).replace(second=0, microsecond=0)
            if now != last_minute:
                self.tick(now)
                last_minute = now
            next_minute = now + timedelta(minutes=1)
            await asyncio.sleep(max(1.0, (next_minute - datetime.now(timezone.utc)).total_seconds()))

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        tasks = [t for t in [self._task, *self._running] if t is not None]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._task = None
