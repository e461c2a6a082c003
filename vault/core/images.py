"""
Image curation - per-entry, per-view image candidates ranked by votes.

The primary flag is derived: after any change to an (entry, view_type) group
the highest net score candidate holds it, ties going to the earliest
submission. It is recomputed inside the same transaction as the vote.
"""

import sqlite3
import uuid
from typing import List, Optional, Union

from util.logging import logger
from .activity import record_activity
from .catalog import load_entry
from .db import get_db, transaction
from .errors import InvalidInput, NotFoundError
from .karma import award
from .permissions import Capability, authorize, require_user
from .schema import ItemImage, LegacyReferenceImage, ViewType, VoteTally, now_iso
from .scoring import VoteTarget, cast_vote, get_user_vote

# Ranking within a group; the first row is the primary
_GROUP_RANK = "(upvotes - downvotes) DESC, created_at ASC, rowid ASC"


def _view_type(view_type: str) -> str:
    try:
        return ViewType(view_type).value
    except ValueError:
        valid = [v.value for v in ViewType]
        raise InvalidInput(f"view type must be one of: {valid}") from None


def _load_image(conn: sqlite3.Connection, image_id: str, viewer_id: Optional[str] = None) -> ItemImage:
    row = conn.execute("SELECT * FROM item_images WHERE id = ?", (image_id,)).fetchone()
    if row is None:
        raise NotFoundError(f"Image {image_id} not found")
    return ItemImage.from_row(row, get_user_vote(conn, VoteTarget.ITEM_IMAGE, image_id, viewer_id))


def recompute_primary(conn: sqlite3.Connection, entry_id: str, view_type: str) -> Optional[str]:
    """Move the primary flag to the group's top-ranked image; return its id."""
    ranked = conn.execute(
        f"SELECT id, is_primary FROM item_images WHERE entry_id = ? AND view_type = ? ORDER BY {_GROUP_RANK}",
        (entry_id, view_type)
    ).fetchall()
    if not ranked:
        return None

    winner = ranked[0]['id']
    previous = next((row['id'] for row in ranked if row['is_primary']), None)
    if previous == winner:
        return winner

    conn.execute(
        "UPDATE item_images SET is_primary = (id = ?) WHERE entry_id = ? AND view_type = ?",
        (winner, entry_id, view_type)
    )
    logger.log_primary_changed(entry_id, view_type, previous, winner)
    return winner


def add_image(entry_id: str, user_id: str, view_type: str, url: str,
              caption: Optional[str] = None) -> ItemImage:
    """Submit an image candidate for one view of an entry."""
    view_type = _view_type(view_type)
    url = (url or "").strip()
    if not url:
        raise InvalidInput("image url cannot be empty")

    image_id = str(uuid.uuid4())
    with get_db() as conn:
        with transaction(conn):
            authorize(conn, user_id, Capability.ADD_IMAGES)
            load_entry(conn, entry_id)
            conn.execute(
                "INSERT INTO item_images (id, entry_id, view_type, url, caption, added_by, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (image_id, entry_id, view_type, url, (caption or "").strip() or None, user_id, now_iso())
            )
            recompute_primary(conn, entry_id, view_type)
            award(conn, user_id, 'add_image', 'item_image', image_id, entry_id=entry_id)
            record_activity(conn, user_id, "image_added", "catalog_entry", entry_id,
                            {"image_id": image_id, "view_type": view_type})
            image = _load_image(conn, image_id, user_id)

    logger.log_image_added(entry_id, image_id, view_type)
    return image


def vote_image(image_id: str, voter_id: str, direction: str) -> VoteTally:
    """Vote on an image and re-derive its group's primary in the same transaction."""
    with get_db() as conn:
        with transaction(conn):
            require_user(conn, voter_id)
            tally = cast_vote(conn, VoteTarget.ITEM_IMAGE, image_id, voter_id, direction)
            image = _load_image(conn, image_id)
            recompute_primary(conn, image.entry_id, image.view_type)
    return tally


def get_image(image_id: str, viewer_id: Optional[str] = None) -> ItemImage:
    with get_db() as conn:
        return _load_image(conn, image_id, viewer_id)


def list_images(entry_id: str, view_type: Optional[str] = None,
                viewer_id: Optional[str] = None) -> List[ItemImage]:
    """Images of an entry, grouped by view type and ranked within each group."""
    with get_db() as conn:
        load_entry(conn, entry_id)
        if view_type:
            rows = conn.execute(
                f"SELECT * FROM item_images WHERE entry_id = ? AND view_type = ? ORDER BY {_GROUP_RANK}",
                (entry_id, _view_type(view_type))
            ).fetchall()
        else:
            rows = conn.execute(
                f"SELECT * FROM item_images WHERE entry_id = ? "
                f"ORDER BY view_type, {_GROUP_RANK}",
                (entry_id,)
            ).fetchall()
        return [
            ItemImage.from_row(row, get_user_vote(conn, VoteTarget.ITEM_IMAGE, row['id'], viewer_id))
            for row in rows
        ]


def display_image(entry_id: str, view_type: str) -> Union[ItemImage, LegacyReferenceImage, None]:
    """
    The image to show for one view: the group's primary, else the entry's
    legacy reference image as a non-votable sentinel, else None.
    """
    view_type = _view_type(view_type)
    with get_db() as conn:
        entry = load_entry(conn, entry_id)
        row = conn.execute(
            "SELECT * FROM item_images WHERE entry_id = ? AND view_type = ? AND is_primary",
            (entry_id, view_type)
        ).fetchone()

    if row is not None:
        return ItemImage.from_row(row)
    if entry.reference_image_url:
        return LegacyReferenceImage(entry_id=entry_id, view_type=view_type, url=entry.reference_image_url)
    return None
