from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


@dataclass
class SyncError:
    external_order_id: str | None
    message: str
    error_type: str = "order_processing"

    def as_dict(self) -> dict[str, Any]:
        return {"external_order_id": self.external_order_id, "error_type": self.error_type, "error": self.message}


@dataclass
class SyncResult:
    """
    Outcome of one store pass.

    ``imported`` keeps the historical meaning (inserts + updates) that existing
    tooling reads; ``inserted`` and ``updated`` give the split.
    """
    store_id: uuid.UUID
    store_name: str | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None
    fetched: int = 0
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    api_calls: int = 0
    errors: list[SyncError] = field(default_factory=list)
    status: str = "running"
    error: str | None = None  # fatal, pass-level failure
    auth_error: bool = False
    watermark_after: datetime | None = None

    @property
    def imported(self) -> int:
        return self.inserted + self.updated

    @property
    def success(self) -> bool:
        return self.status != "failed"

    def record_error(self, external_order_id: str | None, message: str, error_type: str = "order_processing") -> None:
        self.errors.append(SyncError(external_order_id=external_order_id, message=message, error_type=error_type))


class SyncErrorOut(BaseModel):
    external_order_id: str | None = None
    error_type: str
    error: str


class StoreSyncOut(BaseModel):
    store_id: str
    store_name: str | None = None
    success: bool
    status: str
    fetched: int = 0
    imported: int = 0
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    errors: list[SyncErrorOut] = Field(default_factory=list)
    error: str | None = None
    reconnect_required: bool = False

    @classmethod
    def from_result(cls, result: SyncResult) -> "StoreSyncOut":
        return cls(
            store_id=str(result.store_id),
            store_name=result.store_name,
            success=result.success,
            status=result.status,
            fetched=result.fetched,
            imported=result.imported,
            inserted=result.inserted,
            updated=result.updated,
            skipped=result.skipped,
            errors=[SyncErrorOut(**e.as_dict()) for e in result.errors],
            error=result.error,
            reconnect_required=result.auth_error,
        )


class SyncSummaryOut(BaseModel):
    success: bool
    results: list[StoreSyncOut] = Field(default_factory=list)
    total_imported: int = 0
    total_skipped: int = 0
    error: str | None = None
