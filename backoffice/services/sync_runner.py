import logging
import time
import traceback
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.orm import Session

from backoffice.errors import UpstreamAuthError
from backoffice.models import Store, SyncLog, SyncStatus
from backoffice.schemas.sync import SyncError, SyncResult
from backoffice.settings import settings

logger = logging.getLogger(__name__)


def summarize_errors(errors: list[SyncError], limit: Optional[int] = None, max_length: Optional[int] = None) -> str | None:
    """Short, operator-facing error list for the audit log."""
    if not errors:
        return None
    limit = limit or settings.sync_error_summary_limit
    max_length = max_length or settings.sync_error_message_max_length

    lines = []
    for err in errors[:limit]:
        message = " ".join(str(err.message).split())
        if len(message) > max_length:
            message = message[: max_length - 3] + "..."
        prefix = f"{err.external_order_id}: " if err.external_order_id else ""
        lines.append(f"{prefix}{message}")
    if len(errors) > limit:
        lines.append(f"... and {len(errors) - limit} more")
    return "\n".join(lines)


class SyncRunner:
    """
    Wraps one store pass and writes its audit record.
    - exactly one SyncLog per pass: success, partial or failed
    - advances the store watermark only when the pass ran to completion
    """
    def __init__(self, session: Session, store: Store):
        self.session = session
        self.store = store

    async def run(self, func: Callable[[SyncResult], Awaitable[Any]], started_at: datetime | None = None) -> SyncResult:
        result = SyncResult(
            store_id=self.store.id,
            store_name=self.store.name,
            started_at=started_at or datetime.now(timezone.utc),
        )
        start_time = time.time()
        logger.info(f"[SYNC] Starting pass for store '{self.store.name}' ({self.store.platform})")

        try:
            await func(result)
            result.status = SyncStatus.SUCCESS.value if not result.errors else SyncStatus.PARTIAL.value
        except UpstreamAuthError as e:
            logger.error(f"[SYNC] Store '{self.store.name}' needs to be reconnected: {e}")
            self._fail(result, str(e))
            result.auth_error = True
        except Exception as e:
            logger.error(f"[SYNC] Pass for store '{self.store.name}' failed: {e}")
            logger.debug(traceback.format_exc())
            self._fail(result, str(e))
        finally:
            result.finished_at = datetime.now(timezone.utc)
            self._write_log(result, duration_ms=int((time.time() - start_time) * 1000))

        logger.info(
            f"[SYNC] Store '{self.store.name}' pass completed. Status: {result.status}, "
            f"Imported: {result.imported} (new {result.inserted}, updated {result.updated}), "
            f"Skipped: {result.skipped}, Errors: {len(result.errors)}"
        )
        return result

    def _fail(self, result: SyncResult, message: str) -> None:
        # Drop whatever the failing step left half-written; committed orders stay.
        self.session.rollback()
        result.status = SyncStatus.FAILED.value
        result.error = message
        result.watermark_after = None

    def _write_log(self, result: SyncResult, duration_ms: int) -> None:
        if result.status == SyncStatus.FAILED.value:
            error_message = result.error
            if result.errors:
                error_message = f"{result.error}\n{summarize_errors(result.errors)}"
        else:
            error_message = summarize_errors(result.errors)

        self.session.add(
            SyncLog(
                store_id=self.store.id,
                status=result.status,
                sync_started_at=result.started_at,
                sync_completed_at=result.finished_at,
                duration_ms=duration_ms,
                orders_fetched=result.fetched,
                orders_imported=result.imported,
                orders_skipped=result.skipped,
                orders_inserted=result.inserted,
                orders_updated=result.updated,
                error_count=len(result.errors),
                error_message=error_message,
            )
        )
        if result.watermark_after is not None:
            self.store.last_sync_timestamp = result.watermark_after
        self.session.commit()
