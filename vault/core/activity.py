"""
Activity feed - the audit trail of every mutating vault operation.

Rows are written inside the caller's transaction so an operation and its
audit record commit (or roll back) together.
"""

import json
import sqlite3
from typing import Any, Dict, List, Optional

from . import config
from .db import get_db
from .schema import ActivityEvent, now_iso, _ts


def record_activity(conn: sqlite3.Connection, actor_id: Optional[str], action_type: str,
                    target_type: Optional[str] = None, target_id: Optional[str] = None,
                    metadata: Optional[Dict[str, Any]] = None) -> int:
    """Append an activity row and return its id."""
    cursor = conn.execute(
        "INSERT INTO activity (actor_id, action_type, target_type, target_id, metadata, created_at) "
        "VALUES (?, ?, ?, ?, ?, ?)",
        (actor_id, action_type, target_type, target_id, json.dumps(metadata or {}, default=str), now_iso())
    )
    return cursor.lastrowid


def list_activity(actor_id: Optional[str] = None, target_id: Optional[str] = None,
                  action_type: Optional[str] = None, limit: int = 50) -> List[ActivityEvent]:
    """List recent activity, newest first."""
    if limit <= 0:
        return []

    clauses = []
    params: List[Any] = []
    if actor_id:
        clauses.append("actor_id = ?")
        params.append(actor_id)
    if target_id:
        clauses.append("target_id = ?")
        params.append(target_id)
    if action_type:
        clauses.append("action_type = ?")
        params.append(action_type)

    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    params.append(limit)

    with get_db() as conn:
        rows = conn.execute(
            f"SELECT * FROM activity {where} ORDER BY id DESC LIMIT ?", params
        ).fetchall()

    events = []
    for row in rows:
        try:
            metadata = json.loads(row['metadata']) if row['metadata'] else {}
        except json.JSONDecodeError:
            # Treat unparseable metadata as raw text
            metadata = {"raw": row['metadata']}
        events.append(ActivityEvent(
            id=row['id'],
            actor_id=row['actor_id'],
            action_type=row['action_type'],
            target_type=row['target_type'],
            target_id=row['target_id'],
            metadata=metadata,
            created_at=_ts(row['created_at']),
        ))

    if config.debug_enabled():
        print(f"Activity query returned {len(events)} events")

    return events
