# backend/flipops/services/notifications.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..domain.jsonfields import dumps_compact
from ..models import Notification

log = logging.getLogger(__name__)


def mark_seen(
    db: Session,
    *,
    event_id: str,
    type: str = "panel_seen",
    message: Optional[str] = None,
    metadata: Optional[dict[str, Any]] = None,
) -> tuple[Notification, bool]:
    """
    Upsert keyed by event id. Returns (row, created). Repeat calls only
    refresh message/metadata; the row stays processed.
    """
    row = db.scalar(select(Notification).where(Notification.event_id == str(event_id)))
    created = row is None
    if row is None:
        row = Notification(event_id=str(event_id), type=type, created_at=datetime.utcnow())
        db.add(row)

    row.processed = True
    if message is not None:
        row.message = message
    if metadata:
        row.metadata_json = dumps_compact(metadata)

    db.flush()
    log.info("event marked seen", extra={"event_id": str(event_id), "action": "created" if created else "updated"})
    return row, created
