from __future__ import annotations

import logging
import traceback
from datetime import timedelta
from typing import Any

from sqlalchemy import delete
from sqlalchemy.orm import Session

from timeclock.logging_utils import redact
from timeclock.models import ApiLog
from timeclock.timeutils import utcnow

logger = logging.getLogger("timeclock.api_logs")

_MAX_MESSAGE_LENGTH = 4000


def record_api_error(
    db: Session,
    *,
    level: str,
    url: str,
    method: str,
    ip: str | None,
    payload: dict[str, Any] | None,
    exc: BaseException | None,
    message: str,
) -> None:
    """Persist an error response. Failures are logged and never raised."""
    trace = None
    if exc is not None and exc.__traceback__ is not None:
        trace = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))

    row = ApiLog(
        level=level,
        url=url[:2048],
        method=method[:10],
        ip=ip,
        input=redact(payload) if payload else None,
        exception=type(exc).__name__ if exc is not None else None,
        message=message[:_MAX_MESSAGE_LENGTH],
        trace=trace,
    )
    db.add(row)
    try:
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("api_log_write_failed", extra={"url": url, "method": method})


def purge_api_logs(db: Session, *, days: int) -> int:
    if days < 0:
        raise ValueError("days must be zero or positive")
    threshold = utcnow() - timedelta(days=days)
    result = db.execute(delete(ApiLog).where(ApiLog.created_at < threshold))
    db.commit()
    removed = int(result.rowcount or 0)
    logger.info("api_logs_purged", extra={"days": days, "removed": removed})
    return removed
