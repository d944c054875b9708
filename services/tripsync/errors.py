"""
Error taxonomy for the sync layer.

Adapters translate store-specific failures (httpx, redis, pydantic) into
these types so callers never see which backing store produced them.

  NotFound                 -- operation targeted a missing identifier
  ValidationFailed         -- required fields absent or malformed
  TransportFailed          -- network/server failure, including timeouts
  QuotaExceeded            -- local medium is full; handled inside the store
  PartialMigrationFailure  -- aggregate of per-item migration errors
  ChannelDisconnected      -- real-time channel is not connected
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from services.tripsync.storage.migration import MigrationResult


class SyncError(Exception):
    """Base class for every error raised by the sync layer."""


class NotFound(SyncError):
    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(f"{entity} not found: {entity_id}")
        self.entity = entity
        self.entity_id = entity_id


class ValidationFailed(SyncError):
    def __init__(self, message: str, fields: list[str] | None = None) -> None:
        super().__init__(message)
        self.fields = fields or []


class TransportFailed(SyncError):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class QuotaExceeded(SyncError):
    """Raised by a storage medium when a write would exceed its quota."""


class PartialMigrationFailure(SyncError):
    def __init__(self, result: MigrationResult) -> None:
        super().__init__(
            f"{len(result.errors)} item(s) failed to migrate "
            f"({result.total_migrated} migrated)"
        )
        self.result = result


class ChannelDisconnected(SyncError):
    """Raised when an operation requires a connected real-time channel."""
