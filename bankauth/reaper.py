"""Background reclamation of dead sessions."""

import asyncio
import logging
from typing import Any

from .exceptions import ConfigurationError
from .session_manager import SessionRegistry
from .utils import Clock, utc_now

logger = logging.getLogger(__name__)


class SessionReaper:
    """
    Periodically deletes sessions that are inactive or past their refresh window.

    The reaper only talks to the session registry. A failing sweep is logged
    and the loop carries on at the next interval.

    Configuration:
        interval_seconds: Time between sweeps (default: 3600)
        run_on_start: Sweep immediately when started (default: True)
    """

    def __init__(
        self,
        session_registry: SessionRegistry,
        config: dict[str, Any] | None = None,
        *,
        clock: Clock | None = None,
    ):
        config = config or {}
        self.interval = config.get("interval_seconds", 3600)
        if self.interval <= 0:
            raise ConfigurationError("Reaper interval must be positive")
        self.run_on_start = config.get("run_on_start", True)

        self.session_registry = session_registry
        self.clock = clock or utc_now
        self._task: asyncio.Task | None = None
        self._running = False
        self.last_removed = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the background sweep task."""
        if self.running:
            return
        self._running = True
        self._task = asyncio.create_task(self._loop(), name="session-reaper")
        logger.info(f"Session reaper started (interval {self.interval}s)")

    async def stop(self) -> None:
        """Stop the background sweep task."""
        self._running = False
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        logger.info("Session reaper stopped")

    async def run_once(self) -> int:
        """Run one sweep now and return the number of sessions removed."""
        removed = await self.session_registry.sweep_expired(self.clock())
        self.last_removed = removed
        if removed:
            logger.info(f"Session reaper removed {removed} session(s)")
        return removed

    async def _loop(self) -> None:
        if not self.run_on_start:
            await asyncio.sleep(self.interval)
        while self._running:
            try:
                await self.run_once()
            except Exception:
                logger.error("Session sweep failed; retrying next interval", exc_info=True)
            await asyncio.sleep(self.interval)
