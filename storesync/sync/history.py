"""Persistence of finished sync runs."""

from __future__ import annotations

from typing import Any

from sqlalchemy.engine import Engine
from sqlalchemy.sql import text

from storesync.sync.models import SyncRun
from storesync.utils.dates import isoformat


def record_run(engine: Engine, run: SyncRun) -> None:
    if not run.finished:
        raise ValueError("Only finished runs can be recorded")
    with engine.begin() as conn:
        conn.execute(
            text(
                """
                INSERT INTO sync_runs (tenant_id, started_at, finished_at, status, error, total_forwarded, batches, failed_sequence)
                VALUES (:tenant_id, :started_at, :finished_at, :status, :error, :total_forwarded, :batches, :failed_sequence)
                """
            ),
            {
                "tenant_id": run.tenant_id,
                "started_at": isoformat(run.started_at),
                "finished_at": isoformat(run.finished_at),
                "status": run.status.value,
                "error": run.error.value if run.error else None,
                "total_forwarded": run.total_forwarded,
                "batches": len(run.batches),
                "failed_sequence": run.failed_sequence,
            },
        )


def latest_run(engine: Engine, tenant_id: str) -> dict[str, Any] | None:
    with engine.connect() as conn:
        row = conn.execute(
            text(
                """
                SELECT status, error, total_forwarded, batches, failed_sequence, started_at, finished_at
                FROM sync_runs
                WHERE tenant_id = :tenant_id
                ORDER BY id DESC
                LIMIT 1
                """
            ),
            {"tenant_id": tenant_id},
        ).mappings().first()
    return dict(row) if row else None
