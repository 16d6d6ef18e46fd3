from .backends import BaseBackend, MemoryBackend, SqliteBackend, Subscription
from .connectivity import ConnectivityMonitor, ConnectivityState
from .models import Boss, FilterState, Machine, Record, Shift, VocabularyKind
from .project import ShiftlogProject, connect
from .records import RecordStore
from .vocabulary import VocabularyRegistry

__all__ = [
    # models
    "Record",
    "Machine",
    "Shift",
    "Boss",
    "VocabularyKind",
    "FilterState",
    # backends
    "BaseBackend",
    "MemoryBackend",
    "SqliteBackend",
    "Subscription",
    # core
    "RecordStore",
    "VocabularyRegistry",
    "ConnectivityMonitor",
    "ConnectivityState",
    # project
    "ShiftlogProject",
    "connect",
]
