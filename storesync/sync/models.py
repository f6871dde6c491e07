"""Sync run bookkeeping."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime

from storesync.errors import SyncErrorKind


class SyncStatus(str, enum.Enum):
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    PARTIAL = "partial"


class BatchStatus(str, enum.Enum):
    OK = "ok"
    REJECTED = "rejected"
    NETWORK_ERROR = "network_error"


@dataclass(slots=True, frozen=True)
class BatchOutcome:
    sequence: int
    status: BatchStatus
    size: int
    http_status: int | None = None

    @property
    def ok(self) -> bool:
        return self.status is BatchStatus.OK


@dataclass(slots=True)
class SyncRun:
    tenant_id: str
    started_at: datetime
    status: SyncStatus = SyncStatus.RUNNING
    batches: list[BatchOutcome] = field(default_factory=list)
    total_forwarded: int = 0
    error: SyncErrorKind | None = None
    failed_sequence: int | None = None
    message: str | None = None
    finished_at: datetime | None = None

    @property
    def finished(self) -> bool:
        return self.status is not SyncStatus.RUNNING

    def record(self, outcome: BatchOutcome) -> None:
        if self.finished:
            raise RuntimeError("Cannot record a batch on a finished run")
        expected = len(self.batches) + 1
        if outcome.sequence != expected:
            raise ValueError(f"Batch sequence {outcome.sequence} out of order, expected {expected}")
        self.batches.append(outcome)
        if outcome.ok:
            self.total_forwarded += outcome.size

    def finish(
        self,
        status: SyncStatus,
        finished_at: datetime,
        *,
        error: SyncErrorKind | None = None,
        failed_sequence: int | None = None,
        message: str | None = None,
    ) -> SyncRun:
        if self.finished:
            raise RuntimeError(f"Sync run for {self.tenant_id} already finished as {self.status.value}")
        if status is SyncStatus.RUNNING:
            raise ValueError("A run cannot finish as running")
        self.status = status
        self.finished_at = finished_at
        self.error = error
        self.failed_sequence = failed_sequence
        self.message = message
        return self

    def summary(self) -> dict[str, object]:
        return {
            "tenant_id": self.tenant_id,
            "status": self.status.value,
            "total_forwarded": self.total_forwarded,
            "batches": len(self.batches),
            "error": self.error.value if self.error else None,
            "failed_sequence": self.failed_sequence,
            "message": self.message,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }
