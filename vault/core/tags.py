"""
Tag curation - a shared tag pool plus per-entry tag associations ranked by votes.

Names are normalized to slugs so "Bootleg" and " bootleg " land on the same
pool entry. Autocomplete over the pool steers users toward existing tags.
"""

import re
import sqlite3
import uuid
from typing import List, Optional

from util.logging import logger
from . import config
from .activity import record_activity
from .catalog import load_entry
from .db import get_db, transaction
from .errors import ConflictError, InvalidInput, NotFoundError
from .permissions import Capability, authorize, require_user
from .schema import ItemTag, TagPoolEntry, VoteTally, now_iso
from .scoring import VoteTarget, cast_vote, get_user_vote

_SEPARATORS = re.compile(r"[\W_]+", re.UNICODE)

_ITEM_TAG_SELECT = """
    SELECT it.id, it.entry_id, it.tag_id, tp.slug, tp.name, it.added_by,
           it.upvotes, it.downvotes, it.created_at
    FROM item_tags it JOIN tag_pool tp ON tp.id = it.tag_id
"""


def normalize_slug(raw_name: str) -> str:
    """Lowercase, trim and collapse whitespace/punctuation runs into single dashes."""
    return _SEPARATORS.sub("-", (raw_name or "").strip().lower()).strip("-")


def _display_name(raw_name: str) -> str:
    return " ".join((raw_name or "").split())


def _load_item_tag(conn: sqlite3.Connection, item_tag_id: str,
                   viewer_id: Optional[str] = None) -> ItemTag:
    row = conn.execute(_ITEM_TAG_SELECT + " WHERE it.id = ?", (item_tag_id,)).fetchone()
    if row is None:
        raise NotFoundError(f"Item tag {item_tag_id} not found")
    return ItemTag.from_row(row, get_user_vote(conn, VoteTarget.ITEM_TAG, item_tag_id, viewer_id))


def add_tag(entry_id: str, user_id: str, raw_name: str) -> ItemTag:
    """
    Attach a tag to an entry, creating the pool entry on first use.

    Adding a name whose slug is already on the entry raises ConflictError and
    leaves usage counts untouched.
    """
    name = _display_name(raw_name)
    slug = normalize_slug(raw_name)
    if not slug:
        raise InvalidInput("tag name cannot be empty")
    if len(name) > config.TAG_MAX_LENGTH:
        raise InvalidInput(f"tag name must be at most {config.TAG_MAX_LENGTH} characters")

    with get_db() as conn:
        with transaction(conn):
            authorize(conn, user_id, Capability.ADD_TAGS)
            load_entry(conn, entry_id)

            pool_row = conn.execute("SELECT * FROM tag_pool WHERE slug = ?", (slug,)).fetchone()
            created_pool_entry = pool_row is None
            if created_pool_entry:
                tag_id = str(uuid.uuid4())
                conn.execute(
                    "INSERT INTO tag_pool (id, slug, name, usage_count, created_at) VALUES (?, ?, ?, 0, ?)",
                    (tag_id, slug, name, now_iso())
                )
            else:
                tag_id = pool_row['id']

            item_tag_id = str(uuid.uuid4())
            try:
                conn.execute(
                    "INSERT INTO item_tags (id, entry_id, tag_id, added_by, created_at) VALUES (?, ?, ?, ?, ?)",
                    (item_tag_id, entry_id, tag_id, user_id, now_iso())
                )
            except sqlite3.IntegrityError as e:
                raise ConflictError(f"Entry already has tag '{slug}'") from e

            conn.execute("UPDATE tag_pool SET usage_count = usage_count + 1 WHERE id = ?", (tag_id,))
            record_activity(conn, user_id, "tag_added", "catalog_entry", entry_id, {"slug": slug})
            item_tag = _load_item_tag(conn, item_tag_id, user_id)

    logger.log_tag_added(entry_id, slug, created_pool_entry)
    return item_tag


def search_tags(prefix: str, limit: Optional[int] = None) -> List[TagPoolEntry]:
    """Autocomplete over the shared pool: slug prefix match, most used first."""
    slug_prefix = normalize_slug(prefix)
    if not slug_prefix:
        return []
    if limit is None:
        limit = config.TAG_SUGGESTION_LIMIT

    # Normalized slugs never contain LIKE wildcards
    with get_db() as conn:
        rows = conn.execute(
            "SELECT * FROM tag_pool WHERE slug LIKE ? "
            "ORDER BY usage_count DESC, name ASC LIMIT ?",
            (f"{slug_prefix}%", limit)
        ).fetchall()
    return [TagPoolEntry.from_row(row) for row in rows]


def list_item_tags(entry_id: str, viewer_id: Optional[str] = None) -> List[ItemTag]:
    """Tags on an entry in display order: net score descending, oldest first on ties."""
    with get_db() as conn:
        load_entry(conn, entry_id)
        rows = conn.execute(
            _ITEM_TAG_SELECT + """
            WHERE it.entry_id = ?
            ORDER BY (it.upvotes - it.downvotes) DESC, it.created_at ASC, it.rowid ASC
            """,
            (entry_id,)
        ).fetchall()
        return [
            ItemTag.from_row(row, get_user_vote(conn, VoteTarget.ITEM_TAG, row['id'], viewer_id))
            for row in rows
        ]


def vote_tag(item_tag_id: str, voter_id: str, direction: str) -> VoteTally:
    with get_db() as conn:
        with transaction(conn):
            require_user(conn, voter_id)
            return cast_vote(conn, VoteTarget.ITEM_TAG, item_tag_id, voter_id, direction)
