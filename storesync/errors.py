"""Error types shared by the sync pipeline and the abandonment detector."""

from __future__ import annotations

import enum


class SyncErrorKind(str, enum.Enum):
    NO_CREDENTIAL = "NoCredential"
    FETCH_FAILED = "FetchFailed"
    DISPATCH_REJECTED = "DispatchRejected"
    DISPATCH_NETWORK_ERROR = "DispatchNetworkError"
    NOTIFICATION_FAILED = "NotificationFailed"


class SyncError(Exception):
    kind: SyncErrorKind


class NoCredential(SyncError):
    kind = SyncErrorKind.NO_CREDENTIAL

    def __init__(self, tenant_id: str) -> None:
        super().__init__(f"No API key configured for tenant {tenant_id}")
        self.tenant_id = tenant_id


class FetchFailed(SyncError):
    """Raised when a page of upstream records could not be fetched."""

    kind = SyncErrorKind.FETCH_FAILED


class DispatchRejected(SyncError):
    kind = SyncErrorKind.DISPATCH_REJECTED

    def __init__(self, status_code: int) -> None:
        super().__init__(f"API call failed with status: {status_code}")
        self.status_code = status_code


class DispatchNetworkError(SyncError):
    kind = SyncErrorKind.DISPATCH_NETWORK_ERROR


class NotificationFailed(SyncError):
    kind = SyncErrorKind.NOTIFICATION_FAILED
