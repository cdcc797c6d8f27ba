# salevest/events.py
from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from salevest import models

logger = logging.getLogger(__name__)


def _canonical_json(payload: Dict[str, Any]) -> str:
    # Deterministic JSON so indexers can diff/hash payloads.
    return json.dumps(payload, ensure_ascii=False, sort_keys=True, separators=(",", ":"))


def emit(db: Session, scope: str, name: str, **fields: Any) -> models.EventLog:
    """Append an event to the log of the current unit of work.

    The row is only flushed, never committed here: an operation that aborts
    after emitting takes its events down with it.
    """
    row = models.EventLog(
        scope=scope,
        name=name,
        payload=_canonical_json(fields),
    )
    db.add(row)
    db.flush()
    logger.info("%s.%s %s", scope, name, row.payload)
    return row


def decode(row: models.EventLog) -> Dict[str, Any]:
    return json.loads(row.payload)


def list_events(
    db: Session,
    *,
    scope: Optional[str] = None,
    name: Optional[str] = None,
    limit: Optional[int] = None,
) -> List[models.EventLog]:
    q = db.query(models.EventLog)
    if scope:
        q = q.filter(models.EventLog.scope == scope)
    if name:
        q = q.filter(models.EventLog.name == name)
    q = q.order_by(models.EventLog.id)
    if limit:
        q = q.limit(limit)
    return q.all()
