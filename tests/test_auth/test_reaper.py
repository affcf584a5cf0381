"""Tests for the background session reaper."""

import asyncio

import pytest

from bankauth.bundled.memory.session import MemorySessionRegistry
from bankauth.exceptions import ConfigurationError, StoreUnavailableError
from bankauth.reaper import SessionReaper


class FlakyRegistry(MemorySessionRegistry):
    """Registry whose first sweep fails."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.sweeps = 0

    async def sweep_expired(self, now=None):
        self.sweeps += 1
        if self.sweeps == 1:
            raise StoreUnavailableError("database unreachable")
        return await super().sweep_expired(now)


async def wait_for_sweeps(registry, count: int) -> None:
    for _ in range(200):
        if registry.sweeps >= count:
            return
        await asyncio.sleep(0.005)


class TestSessionReaper:
    @pytest.fixture(autouse=True)
    def setup(self, clock):
        self.clock = clock
        self.registry = MemorySessionRegistry({"single_active_session": False}, clock=clock)

    async def _session(self, name: str, ttl: int = 60, refresh_ttl: int = 120):
        return await self.registry.create(
            "p1", f"access-{name}", f"refresh-{name}", ttl, refresh_ttl
        )

    def test_interval_must_be_positive(self):
        with pytest.raises(ConfigurationError):
            SessionReaper(self.registry, {"interval_seconds": 0})

    @pytest.mark.asyncio
    async def test_run_once_removes_dead_sessions(self):
        live = await self._session("live", refresh_ttl=1000)
        expired = await self._session("expired", refresh_ttl=100)
        revoked = await self._session("revoked", refresh_ttl=1000)
        await self.registry.deactivate(revoked.id)

        self.clock.advance(101)
        reaper = SessionReaper(self.registry, clock=self.clock)
        removed = await reaper.run_once()

        assert removed == 2
        assert reaper.last_removed == 2
        assert await self.registry.get(live.id) is not None
        assert await self.registry.get(expired.id) is None
        assert await self.registry.get(revoked.id) is None
        assert await self.registry.find_by_access_token("access-expired") is None

    @pytest.mark.asyncio
    async def test_session_at_refresh_boundary_is_kept(self):
        session = await self._session("edge", refresh_ttl=100)
        self.clock.advance(100)

        reaper = SessionReaper(self.registry, clock=self.clock)
        assert await reaper.run_once() == 0
        assert await self.registry.get(session.id) is not None

    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        await self._session("revoked")
        await self.registry.deactivate_all_for_principal("p1")

        reaper = SessionReaper(self.registry, {"interval_seconds": 60}, clock=self.clock)
        await reaper.start()
        assert reaper.running
        await reaper.start()

        for _ in range(200):
            if reaper.last_removed:
                break
            await asyncio.sleep(0.005)
        assert reaper.last_removed == 1

        await reaper.stop()
        assert not reaper.running

    @pytest.mark.asyncio
    async def test_stop_without_start(self):
        reaper = SessionReaper(self.registry)
        await reaper.stop()
        assert not reaper.running

    @pytest.mark.asyncio
    async def test_failed_sweep_does_not_stop_loop(self, clock, caplog):
        registry = FlakyRegistry({}, clock=clock)
        reaper = SessionReaper(registry, {"interval_seconds": 0.01}, clock=clock)

        await reaper.start()
        await wait_for_sweeps(registry, 2)
        await reaper.stop()

        assert registry.sweeps >= 2
        assert "Session sweep failed" in caplog.text

    @pytest.mark.asyncio
    async def test_run_on_start_disabled_waits_one_interval(self, clock):
        registry = FlakyRegistry({}, clock=clock)
        reaper = SessionReaper(
            registry, {"interval_seconds": 60, "run_on_start": False}, clock=clock
        )

        await reaper.start()
        await asyncio.sleep(0.02)
        await reaper.stop()

        assert registry.sweeps == 0
