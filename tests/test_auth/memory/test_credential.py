"""
Tests for the memory credential store.
"""

import pytest

from bankauth.bundled.memory.credential import MemoryCredentialStore
from bankauth.exceptions import ConcurrentModificationError, PrincipalExistsError
from bankauth.types import Principal


def make_principal(**overrides) -> Principal:
    fields = {"id": "p1", "handle": "alice", "secret_hash": "hash"}
    fields.update(overrides)
    return Principal(**fields)


class TestMemoryCredentialStore:
    @pytest.fixture(autouse=True)
    def setup(self):
        self.store = MemoryCredentialStore()

    @pytest.mark.asyncio
    async def test_create_and_lookup(self):
        created = await self.store.create(make_principal(profile={"email": "a@example.com"}))

        assert created.version == 1
        by_handle = await self.store.get_by_handle("alice")
        by_id = await self.store.get_by_id("p1")
        assert by_handle == by_id == created

    @pytest.mark.asyncio
    async def test_lookup_missing(self):
        assert await self.store.get_by_handle("nobody") is None
        assert await self.store.get_by_id("nobody") is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "duplicate",
        [{"id": "p2", "handle": "alice"}, {"id": "p1", "handle": "alice2"}],
    )
    async def test_duplicate_rejected(self, duplicate):
        await self.store.create(make_principal())

        with pytest.raises(PrincipalExistsError):
            await self.store.create(make_principal(**duplicate))

    @pytest.mark.asyncio
    async def test_save_bumps_version(self):
        principal = await self.store.create(make_principal())
        principal.failed_attempts = 2

        saved = await self.store.save(principal)

        assert saved.version == 2
        assert (await self.store.get_by_id("p1")).failed_attempts == 2

    @pytest.mark.asyncio
    async def test_stale_save_rejected(self):
        await self.store.create(make_principal())
        first = await self.store.get_by_id("p1")
        second = await self.store.get_by_id("p1")

        first.failed_attempts = 1
        await self.store.save(first)

        second.failed_attempts = 5
        with pytest.raises(ConcurrentModificationError) as exc_info:
            await self.store.save(second)
        assert exc_info.value.details == {"expected_version": 1, "actual_version": 2}
        assert (await self.store.get_by_id("p1")).failed_attempts == 1

    @pytest.mark.asyncio
    async def test_save_missing_principal(self):
        with pytest.raises(ConcurrentModificationError):
            await self.store.save(make_principal(version=1))

    @pytest.mark.asyncio
    async def test_returned_records_are_copies(self):
        await self.store.create(make_principal(profile={"tier": "gold"}))

        principal = await self.store.get_by_id("p1")
        principal.failed_attempts = 4
        principal.profile["tier"] = "bronze"

        stored = await self.store.get_by_id("p1")
        assert stored.failed_attempts == 0
        assert stored.profile == {"tier": "gold"}
