"""
Client-side persistence behind one data-access contract.

DurableLocalStore
    Namespaced, best-effort persistence on a pluggable medium (file, redis,
    memory). Never raises on reads; evicts old trips when the medium is full.

LocalStoreAdapter / RemoteStoreAdapter
    The two implementations of DataAccess. StoreSelector routes each call
    to one of them from the live session.

MigrationEngine
    Promotes local data into the remote store once per login.

Usage:
    from services.tripsync.storage import StoreSelector, MigrationEngine
"""

from __future__ import annotations

from services.tripsync.storage.contract import DataAccess
from services.tripsync.storage.local_adapter import LocalStoreAdapter
from services.tripsync.storage.local_store import DurableLocalStore, LocalSnapshot, Namespace
from services.tripsync.storage.medium import FileMedium, MemoryMedium, RedisMedium, StorageMedium
from services.tripsync.storage.migration import MigrationEngine, MigrationResult
from services.tripsync.storage.remote_adapter import RemoteStoreAdapter
from services.tripsync.storage.selector import StoreSelector

__all__ = [
    "DataAccess",
    "DurableLocalStore",
    "FileMedium",
    "LocalSnapshot",
    "LocalStoreAdapter",
    "MemoryMedium",
    "MigrationEngine",
    "MigrationResult",
    "Namespace",
    "RedisMedium",
    "RemoteStoreAdapter",
    "StorageMedium",
    "StoreSelector",
]
