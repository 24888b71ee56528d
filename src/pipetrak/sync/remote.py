"""Remote mutation client — applies one milestone update on the backend.

The sync manager only depends on ``RemoteMutationClient.apply_update``
and the ``MutationResult`` it returns. Failures are classified exactly
once, here, into a ``FailureKind``; nothing downstream inspects status
codes or exception types.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Union

import httpx

from pipetrak.offline.models import QueuedUpdate
from pipetrak.utils.constants import (
    HTTP_CONFLICT,
    HTTP_UNAUTHORIZED,
    MILESTONE_RPC_NAME,
)

logger = logging.getLogger(__name__)


class FailureKind(str, Enum):
    CONFLICT = "conflict"
    AUTH = "auth"
    TRANSIENT = "transient"
    UNKNOWN = "unknown"


def classify_status(status: Optional[int]) -> FailureKind:
    """Map an HTTP-like status (None for network errors) to a FailureKind."""
    if status is None:
        return FailureKind.TRANSIENT
    if status == HTTP_CONFLICT:
        return FailureKind.CONFLICT
    if status == HTTP_UNAUTHORIZED:
        return FailureKind.AUTH
    if 500 <= status <= 599:
        return FailureKind.TRANSIENT
    return FailureKind.UNKNOWN


def to_wire_value(value: Union[bool, int, float]) -> Union[int, float]:
    """Discrete milestones travel as 1/0; percentages pass through."""
    if isinstance(value, bool):
        return 1 if value else 0
    return value


@dataclass
class MilestoneUpdateRequest:
    component_id: str
    milestone_name: str
    new_value: Union[int, float]
    user_id: str

    @classmethod
    def from_update(cls, update: QueuedUpdate) -> "MilestoneUpdateRequest":
        return cls(
            component_id=update.component_id,
            milestone_name=update.milestone_name,
            new_value=to_wire_value(update.value),
            user_id=update.user_id,
        )

    def to_rpc_params(self) -> dict:
        return {
            "p_component_id": self.component_id,
            "p_milestone_name": self.milestone_name,
            "p_new_value": self.new_value,
            "p_user_id": self.user_id,
        }


@dataclass
class RemoteFailure:
    kind: FailureKind
    message: str
    status: Optional[int] = None

    @classmethod
    def from_status(cls, status: Optional[int],
                    message: str) -> "RemoteFailure":
        return cls(kind=classify_status(status), message=message,
                   status=status)


@dataclass
class MutationResult:
    ok: bool
    data: Any = None
    failure: Optional[RemoteFailure] = None

    @classmethod
    def success(cls, data: Any = None) -> "MutationResult":
        return cls(ok=True, data=data)

    @classmethod
    def failed(cls, failure: RemoteFailure) -> "MutationResult":
        return cls(ok=False, failure=failure)


class RemoteMutationClient:
    """Applies a single milestone update on the system of record."""

    def apply_update(self, request: MilestoneUpdateRequest) -> MutationResult:
        raise NotImplementedError


class SupabaseMutationClient(RemoteMutationClient):
    """Calls the ``update_component_milestone`` RPC through PostgREST."""

    def __init__(self, base_url: str, api_key: str,
                 access_token: str | None = None, timeout: float = 10.0,
                 http_client: httpx.Client | None = None):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.access_token = access_token
        self.client = http_client or httpx.Client(
            timeout=httpx.Timeout(timeout, connect=min(timeout, 10.0)),
        )

    @property
    def rpc_url(self) -> str:
        return f"{self.base_url}/rest/v1/rpc/{MILESTONE_RPC_NAME}"

    def set_access_token(self, token: str | None):
        """Swap the user session token after a sign-in or refresh."""
        self.access_token = token

    def _headers(self) -> dict:
        return {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.access_token or self.api_key}",
            "Content-Type": "application/json",
        }

    def apply_update(self, request: MilestoneUpdateRequest) -> MutationResult:
        try:
            response = self.client.post(
                self.rpc_url,
                json=request.to_rpc_params(),
                headers=self._headers(),
            )
        except httpx.TransportError as e:
            logger.debug("Network failure calling %s: %s", MILESTONE_RPC_NAME, e)
            return MutationResult.failed(
                RemoteFailure.from_status(None, f"Network error: {e}")
            )

        if response.is_success:
            try:
                data = response.json() if response.content else None
            except ValueError:
                data = None
            return MutationResult.success(data)

        return MutationResult.failed(
            RemoteFailure.from_status(
                response.status_code, self._error_message(response)
            )
        )

    def close(self):
        self.client.close()

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        """Prefer PostgREST's ``message`` field over the raw body."""
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and body.get("message"):
            return str(body["message"])
        return response.text or response.reason_phrase or (
            f"HTTP {response.status_code}"
        )
