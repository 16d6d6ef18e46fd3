from .base import BaseBackend, Subscription
from .factory import BackendKind
from .memory import MemoryBackend
from .sqlite import SqliteBackend

__all__ = ["BackendKind", "BaseBackend", "MemoryBackend", "SqliteBackend", "Subscription"]
