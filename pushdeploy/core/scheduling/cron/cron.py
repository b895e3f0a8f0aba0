"""Cron Jobs - Time-based triggers on the event loop

Responsibilities:
- Validate cron expressions (croniter syntax, optional seconds field)
- Sleep until the next fire time and invoke the tick callback
- Keep firing after a failing tick; stop on request
"""

import asyncio
import inspect
import logging
from datetime import datetime
from typing import Any, Callable, Optional

from croniter import croniter

from pushdeploy.core.exceptions import InvalidSchedule

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now().astimezone()


class CronJob:
    """Periodic callback driven by a cron expression

    Expressions are evaluated in local time, like a crontab.
    """

    def __init__(self, cron_time: str, on_tick: Callable[[], Any], start: bool = False, name: str = None, clock=_now):
        if not isinstance(cron_time, str) or not croniter.is_valid(cron_time):
            raise InvalidSchedule(str(cron_time))

        self.cron_time = cron_time
        self.on_tick = on_tick
        self.name = name or cron_time
        self.clock = clock
        self.last_fired_at: Optional[datetime] = None
        self._next_at: Optional[datetime] = None
        self._task: Optional[asyncio.Task] = None

        if start:
            self.start()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def next_fire_time(self, after: Optional[datetime] = None) -> datetime:
        """Next fire time strictly after ``after`` (default: now)"""
        base = after or self.clock()
        return croniter(self.cron_time, base).get_next(datetime)

    def start(self):
        """Arm the job on the running event loop"""
        if self.running:
            return
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._run_forever(), name=f"cron:{self.name}")
        logger.debug(f"Cron job {self.name} armed: {self.cron_time}")

    def stop(self):
        if self._task is not None:
            self._task.cancel()
            self._task = None
            logger.debug(f"Cron job {self.name} stopped")

    async def _run_forever(self):
        while True:
            now = self.clock()
            # Never fire twice for the same slot if the sleep woke early
            base = max(now, self._next_at) if self._next_at else now
            self._next_at = self.next_fire_time(base)
            delay = max(0.0, (self._next_at - now).total_seconds())
            await asyncio.sleep(delay)
            await self.fire()

    async def fire(self):
        """Invoke the tick callback once; failures are logged, not raised"""
        self.last_fired_at = self.clock()
        logger.info(f"⏰ Cron job {self.name} fired")
        try:
            result = self.on_tick()
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Cron job {self.name} tick failed: {e}", exc_info=True)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for status output"""
        return {
            "name": self.name,
            "cron_time": self.cron_time,
            "running": self.running,
            "next_fire_at": self._next_at.isoformat() if self._next_at else None,
            "last_fired_at": self.last_fired_at.isoformat() if self.last_fired_at else None,
        }
