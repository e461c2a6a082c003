"""
Scoring engine - up/down vote tallies shared by entries, tags, images and proposals.

Each voter holds one slot per target with three states: none, up, down.
Casting a new direction fills or flips the slot; casting the same direction
again retracts it. Tallies are recounted from the slots after every change,
so net_score == upvotes - downvotes and nobody counts twice.
"""

import sqlite3
from enum import Enum
from typing import Optional

from util.logging import logger
from .errors import InvalidInput, NotFoundError
from .schema import VoteDirection, VoteTally, now_iso


class VoteTarget(str, Enum):
    ENTRY = "catalog_entry"
    ITEM_TAG = "item_tag"
    ITEM_IMAGE = "item_image"
    EDIT_PROPOSAL = "edit_proposal"

    @property
    def table(self) -> str:
        return _TARGET_TABLES[self]


_TARGET_TABLES = {
    VoteTarget.ENTRY: "catalog_entries",
    VoteTarget.ITEM_TAG: "item_tags",
    VoteTarget.ITEM_IMAGE: "item_images",
    VoteTarget.EDIT_PROPOSAL: "edit_proposals",
}


def parse_direction(direction) -> VoteDirection:
    try:
        return VoteDirection(direction)
    except ValueError:
        raise InvalidInput("direction must be 'up' or 'down'") from None


def get_user_vote(conn: sqlite3.Connection, target: VoteTarget, target_id: str,
                  voter_id: Optional[str]) -> Optional[str]:
    """The voter's current slot: 'up', 'down' or None."""
    if not voter_id:
        return None
    row = conn.execute(
        "SELECT direction FROM votes WHERE target_type = ? AND target_id = ? AND voter_id = ?",
        (target.value, target_id, voter_id)
    ).fetchone()
    return row['direction'] if row else None


def get_tally(conn: sqlite3.Connection, target: VoteTarget, target_id: str,
              voter_id: Optional[str] = None) -> VoteTally:
    row = conn.execute(
        f"SELECT upvotes, downvotes FROM {target.table} WHERE id = ?", (target_id,)
    ).fetchone()
    if row is None:
        raise NotFoundError(f"{target.value} {target_id} not found")
    return VoteTally(
        upvotes=row['upvotes'],
        downvotes=row['downvotes'],
        user_vote=get_user_vote(conn, target, target_id, voter_id),
    )


def recount(conn: sqlite3.Connection, target: VoteTarget, target_id: str) -> None:
    """Rewrite the target's counters from its vote slots."""
    conn.execute(
        f"""
        UPDATE {target.table} SET
            upvotes = (SELECT COUNT(*) FROM votes
                       WHERE target_type = ? AND target_id = ? AND direction = 'up'),
            downvotes = (SELECT COUNT(*) FROM votes
                         WHERE target_type = ? AND target_id = ? AND direction = 'down')
        WHERE id = ?
        """,
        (target.value, target_id, target.value, target_id, target_id)
    )


def cast_vote(conn: sqlite3.Connection, target: VoteTarget, target_id: str, voter_id: str,
              direction: VoteDirection) -> VoteTally:
    """
    Apply one vote click to a target and return the new tally.

    Must run inside the caller's transaction; permission checks are the
    caller's job.
    """
    direction = parse_direction(direction)
    exists = conn.execute(f"SELECT 1 FROM {target.table} WHERE id = ?", (target_id,)).fetchone()
    if exists is None:
        raise NotFoundError(f"{target.value} {target_id} not found")

    current = get_user_vote(conn, target, target_id, voter_id)

    if current == direction.value:
        # Same direction again: retract
        conn.execute(
            "DELETE FROM votes WHERE target_type = ? AND target_id = ? AND voter_id = ?",
            (target.value, target_id, voter_id)
        )
    else:
        conn.execute(
            "INSERT INTO votes (target_type, target_id, voter_id, direction, created_at) "
            "VALUES (?, ?, ?, ?, ?) "
            "ON CONFLICT (target_type, target_id, voter_id) DO UPDATE SET direction = excluded.direction",
            (target.value, target_id, voter_id, direction.value, now_iso())
        )

    recount(conn, target, target_id)
    tally = get_tally(conn, target, target_id, voter_id)
    logger.log_vote(target.value, target_id, voter_id, tally.user_vote, tally.net_score)
    return tally
