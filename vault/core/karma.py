"""
Karma ledger - append-only record of point-earning actions.

A user's karma is the sum of their ledger points. Rows are never edited or
removed, there is no decay and no manual adjustment path.
"""

import sqlite3
from typing import Dict, List, Optional

from util.logging import logger
from .db import get_db
from .schema import Contribution, now_iso

# Fixed point awards per action kind
KARMA_ACTIONS: Dict[str, int] = {
    'create_entry': 5,
    'verify_entry': 2,
    'entry_verified': 3,
    'add_image': 5,
    'edit_accepted': 3,
}

# Credit for an approved (or directly applied) edit
EDIT_ACCEPTED_POINTS = KARMA_ACTIONS['edit_accepted']


def has_awarded(conn: sqlite3.Connection, actor_id: str, action: str,
                reference_type: str, reference_id: str) -> bool:
    """Has the actor already been credited for this action on this reference?"""
    row = conn.execute(
        "SELECT 1 FROM contributions WHERE actor_id = ? AND action = ? "
        "AND reference_type = ? AND reference_id = ?",
        (actor_id, action, reference_type, reference_id)
    ).fetchone()
    return row is not None


def award(conn: sqlite3.Connection, actor_id: str, action: str, reference_type: str,
          reference_id: str, entry_id: Optional[str] = None,
          points: Optional[int] = None) -> Optional[Contribution]:
    """
    Append a ledger row for one logical event.

    Idempotent: if the actor was already credited for (action, reference) the
    call appends nothing and returns None. Runs on the caller's connection so
    the credit commits together with the action that earned it.
    """
    if points is None:
        if action not in KARMA_ACTIONS:
            raise ValueError(f"Unknown karma action: {action}")
        points = KARMA_ACTIONS[action]

    if has_awarded(conn, actor_id, action, reference_type, reference_id):
        logger.log_karma_award(actor_id, action, points, reference_id, status="duplicate")
        return None

    created_at = now_iso()
    cursor = conn.execute(
        "INSERT OR IGNORE INTO contributions "
        "(actor_id, action, points, reference_type, reference_id, entry_id, created_at) "
        "VALUES (?, ?, ?, ?, ?, ?, ?)",
        (actor_id, action, points, reference_type, reference_id, entry_id, created_at)
    )
    if cursor.rowcount == 0:
        # Lost a race against a concurrent insert of the same event
        logger.log_karma_award(actor_id, action, points, reference_id, status="duplicate")
        return None

    logger.log_karma_award(actor_id, action, points, reference_id)

    row = conn.execute("SELECT * FROM contributions WHERE id = ?", (cursor.lastrowid,)).fetchone()
    return Contribution.from_row(row)


def score_for(conn: sqlite3.Connection, actor_id: str) -> int:
    """Sum of an actor's ledger points on an open connection."""
    row = conn.execute(
        "SELECT COALESCE(SUM(points), 0) FROM contributions WHERE actor_id = ?", (actor_id,)
    ).fetchone()
    return int(row[0])


def karma_score(actor_id: str) -> int:
    """Karma score for an actor: the sum of points across all their ledger rows."""
    with get_db() as conn:
        return score_for(conn, actor_id)


def list_contributions(actor_id: Optional[str] = None, entry_id: Optional[str] = None,
                       limit: int = 50) -> List[Contribution]:
    """List ledger rows, newest first."""
    if limit <= 0:
        return []

    clauses = []
    params: list = []
    if actor_id:
        clauses.append("actor_id = ?")
        params.append(actor_id)
    if entry_id:
        clauses.append("entry_id = ?")
        params.append(entry_id)

    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    params.append(limit)

    with get_db() as conn:
        rows = conn.execute(
            f"SELECT * FROM contributions {where} ORDER BY id DESC LIMIT ?", params
        ).fetchall()
    return [Contribution.from_row(row) for row in rows]
