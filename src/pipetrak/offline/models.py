"""Data models for the offline milestone queue."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

MilestoneValue = Union[bool, int, float]


class SyncStatus(str, Enum):
    IDLE = "idle"
    SYNCING = "syncing"
    ERROR = "error"


@dataclass
class QueuedUpdate:
    """One pending milestone edit, keyed by (component_id, milestone_name)."""

    id: str
    component_id: str
    milestone_name: str
    value: MilestoneValue
    timestamp: int
    retry_count: int = 0
    user_id: str = ""

    @property
    def key(self) -> tuple[str, str]:
        return (self.component_id, self.milestone_name)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "component_id": self.component_id,
            "milestone_name": self.milestone_name,
            "value": self.value,
            "timestamp": self.timestamp,
            "retry_count": self.retry_count,
            "user_id": self.user_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "QueuedUpdate":
        value = data["value"]
        if not isinstance(value, (bool, int, float)):
            raise TypeError(f"Unsupported milestone value: {value!r}")
        return cls(
            id=str(data["id"]),
            component_id=str(data["component_id"]),
            milestone_name=str(data["milestone_name"]),
            value=value,
            timestamp=int(data["timestamp"]),
            retry_count=int(data.get("retry_count", 0)),
            user_id=str(data.get("user_id", "")),
        )


@dataclass
class FailedUpdate:
    """A queued update that exhausted its retries or failed permanently."""

    update: QueuedUpdate
    error_message: str
    failed_at: int

    def to_dict(self) -> dict:
        return {
            "update": self.update.to_dict(),
            "error_message": self.error_message,
            "failed_at": self.failed_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "FailedUpdate":
        return cls(
            update=QueuedUpdate.from_dict(data["update"]),
            error_message=str(data.get("error_message", "")),
            failed_at=int(data["failed_at"]),
        )


@dataclass
class OfflineQueueState:
    """The persisted aggregate: pending updates plus sync bookkeeping."""

    updates: list[QueuedUpdate] = field(default_factory=list)
    last_sync_attempt: Optional[int] = None
    sync_status: SyncStatus = SyncStatus.IDLE
    failed_updates: list[FailedUpdate] = field(default_factory=list)

    def find(self, update_id: str) -> Optional[QueuedUpdate]:
        for update in self.updates:
            if update.id == update_id:
                return update
        return None

    def find_by_key(self, component_id: str,
                    milestone_name: str) -> Optional[QueuedUpdate]:
        for update in self.updates:
            if update.key == (component_id, milestone_name):
                return update
        return None

    def to_dict(self) -> dict:
        return {
            "updates": [u.to_dict() for u in self.updates],
            "last_sync_attempt": self.last_sync_attempt,
            "sync_status": self.sync_status.value,
            "failed_updates": [f.to_dict() for f in self.failed_updates],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "OfflineQueueState":
        """Build a state from a decoded snapshot.

        Raises KeyError, TypeError or ValueError on malformed input;
        callers that must never fail catch those and fall back to an
        empty queue.
        """
        if not isinstance(data, dict):
            raise TypeError("Queue snapshot must be an object")
        last = data.get("last_sync_attempt")
        return cls(
            updates=[QueuedUpdate.from_dict(u) for u in data["updates"]],
            last_sync_attempt=int(last) if last is not None else None,
            sync_status=SyncStatus(data.get("sync_status", "idle")),
            failed_updates=[
                FailedUpdate.from_dict(f)
                for f in data.get("failed_updates", [])
            ],
        )
