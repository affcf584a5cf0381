"""Memory-based backends."""

from .credential import MemoryCredentialStore
from .session import MemorySessionRegistry
from .store import MemoryStore

__all__ = [
    "MemoryStore",
    "MemoryCredentialStore",
    "MemorySessionRegistry",
]
