"""
Security and concurrency utilities for the authentication system.

This module provides timing attack protection, per-key async locking, store
call deadlines and helpers for keeping secrets out of logs.

Security considerations:
- Timing protection keeps "unknown handle" and "wrong secret" indistinguishable
- Token comparisons must be constant time
- Tokens must never be written to logs in full
"""

import asyncio
import time
from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import TypeVar

from cryptography.hazmat.primitives import constant_time

from .exceptions import StoreUnavailableError

T = TypeVar("T")

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Default clock used by every component."""
    return datetime.now(UTC)


class MinimumRuntime:
    """
    Context manager that ensures authentication operations take a minimum time.

    Prevents timing attacks where response time reveals whether a handle
    exists or whether a secret was close.
    """

    def __init__(self, seconds: float):
        if seconds <= 0:
            raise ValueError("Minimum runtime must be positive")
        self.minimum_seconds = seconds
        self.start_time: float | None = None

    async def __aenter__(self):
        self.start_time = time.perf_counter()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self.start_time is None:
            return

        remaining = self.minimum_seconds - (time.perf_counter() - self.start_time)
        if remaining > 0:
            await asyncio.sleep(remaining)


@asynccontextmanager
async def timing_protection(seconds: float | None) -> AsyncGenerator[None]:
    """
    Async context manager for timing attack protection.

    A falsy ``seconds`` disables the floor, which tests rely on.

    Usage:
        async with timing_protection(0.2):
            await orchestrator.login(handle, secret)
    """
    if not seconds:
        yield
        return

    async with MinimumRuntime(seconds):
        yield


def secure_compare(a: str, b: str) -> bool:
    """
    Timing-safe string comparison.

    Strings are padded to the same length so the comparison time does not
    depend on where they first differ.
    """
    max_len = max(len(a), len(b))
    a_padded = a.ljust(max_len, "\0")
    b_padded = b.ljust(max_len, "\0")

    return constant_time.bytes_eq(a_padded.encode("utf-8"), b_padded.encode("utf-8"))


def mask_token(token: str | None, visible: int = 8) -> str:
    """Loggable form of a token: a short prefix and nothing else."""
    if not token:
        return "<none>"
    return f"{token[:visible]}..."


async def call_with_deadline(
    awaitable: Awaitable[T], timeout: float | None, operation: str = "store call"
) -> T:
    """
    Await a backing store call under a deadline.

    A timeout becomes a retryable ``StoreUnavailableError``; nothing is
    retried here.
    """
    if timeout is None:
        return await awaitable

    try:
        async with asyncio.timeout(timeout):
            return await awaitable
    except TimeoutError as e:
        raise StoreUnavailableError(
            f"{operation} exceeded deadline of {timeout}s",
            {"operation": operation, "timeout": timeout},
        ) from e


class KeyedLock:
    """
    One ``asyncio.Lock`` per key.

    Used to serialize read-modify-write sequences for a single principal
    while leaving other principals unaffected. A key's lock is dropped once
    nobody holds or waits for it.
    """

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    def __contains__(self, key: str) -> bool:
        return key in self._locks

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, key: str, timeout: float | None = None) -> AsyncGenerator[None]:
        """Hold the lock for ``key``; failing to acquire in time is a store outage."""
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            await call_with_deadline(lock.acquire(), timeout, f"lock {key}")
            try:
                yield
            finally:
                lock.release()
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                self._locks.pop(key, None)
