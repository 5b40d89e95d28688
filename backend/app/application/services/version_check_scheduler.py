import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime

logger = logging.getLogger(__name__)


class VersionCheckScheduler:
    """Periodic driver for full version check cycles inside the API process.

    Owns a single ``asyncio.Task``: waits ``initial_delay_seconds`` once, then runs
    ``run_cycle`` every ``interval_seconds`` until stopped. A failing cycle is
    logged and the next tick still happens.
    """

    def __init__(
        self,
        run_cycle: Callable[[], Awaitable[object]],
        *,
        interval_seconds: float,
        initial_delay_seconds: float = 0.0,
    ) -> None:
        self._run_cycle = run_cycle
        self.interval_seconds = interval_seconds
        self.initial_delay_seconds = initial_delay_seconds
        self.last_run_at: datetime | None = None
        self._running = False
        self._task: asyncio.Task | None = None

    @property
    def is_running(self) -> bool:
        return self._running and self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_running:
            logger.warning("version_check_scheduler_already_running")
            return
        self._running = True
        self._task = asyncio.get_running_loop().create_task(self._loop(), name="version-check-scheduler")
        logger.info(
            "version_check_scheduler_started interval_seconds=%s initial_delay_seconds=%s",
            self.interval_seconds,
            self.initial_delay_seconds,
        )

    async def stop(self) -> None:
        self._running = False
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("version_check_scheduler_stopped")

    async def run_once(self) -> None:
        started_at = datetime.now(UTC)
        try:
            await self._run_cycle()
        except Exception:
            logger.exception("version_check_cycle_failed")
        finally:
            self.last_run_at = started_at

    async def _loop(self) -> None:
        if self.initial_delay_seconds > 0:
            await asyncio.sleep(self.initial_delay_seconds)
        while self._running:
            await self.run_once()
            await asyncio.sleep(self.interval_seconds)
