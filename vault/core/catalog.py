"""
Catalog entries - creation, variant linking, verification and lookup.

Entries belong to the shared catalog. After creation they change only through
the proposal workflow (see proposals.py).
"""

import sqlite3
import uuid
from typing import List, Optional

from util.logging import logger
from . import config
from .activity import record_activity
from .db import get_db, transaction
from .errors import ConflictError, InvalidInput, NotFoundError
from .karma import award, has_awarded
from .permissions import Capability, authorize, require_user
from .schema import CatalogEntry, Category, VariantKind, VoteTally, now_iso
from .scoring import VoteTarget, cast_vote

SUBJECT_MAX_LENGTH = 200
DESCRIPTION_MAX_LENGTH = 5000


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def load_entry(conn: sqlite3.Connection, entry_id: str) -> CatalogEntry:
    row = conn.execute("SELECT * FROM catalog_entries WHERE id = ?", (entry_id,)).fetchone()
    if row is None:
        raise NotFoundError(f"Catalog entry {entry_id} not found")
    return CatalogEntry.from_row(row)


def validate_category(category: str) -> str:
    try:
        return Category(category).value
    except ValueError:
        valid = [c.value for c in Category]
        raise InvalidInput(f"category must be one of: {valid}") from None


def create_entry(user_id: str, subject: str, category: str, year: Optional[str] = None,
                 tag_brand: Optional[str] = None, material: Optional[str] = None,
                 origin: Optional[str] = None, stitch_type: Optional[str] = None,
                 body_type: Optional[str] = None, description: Optional[str] = None,
                 reference_image_url: Optional[str] = None, parent_id: Optional[str] = None,
                 variant_kind: Optional[str] = None) -> CatalogEntry:
    """
    Create a catalog entry, either independent or as a variant of parent_id.

    A variant must say how it differs: parent_id requires variant_kind.
    """
    subject = _clean(subject)
    if not subject:
        raise InvalidInput("subject cannot be empty")
    if len(subject) > SUBJECT_MAX_LENGTH:
        raise InvalidInput(f"subject must be at most {SUBJECT_MAX_LENGTH} characters")
    category = validate_category(category)
    description = _clean(description)
    if description and len(description) > DESCRIPTION_MAX_LENGTH:
        raise InvalidInput(f"description must be at most {DESCRIPTION_MAX_LENGTH} characters")

    parent_id = _clean(parent_id)
    variant_kind = _clean(variant_kind)
    if parent_id and not variant_kind:
        raise InvalidInput("A variant must declare its variant kind")
    if variant_kind and not parent_id:
        raise InvalidInput("variant kind requires a parent entry")
    if variant_kind:
        try:
            variant_kind = VariantKind(variant_kind).value
        except ValueError:
            valid = [k.value for k in VariantKind]
            raise InvalidInput(f"variant kind must be one of: {valid}") from None

    entry_id = str(uuid.uuid4())
    timestamp = now_iso()

    with get_db() as conn:
        with transaction(conn):
            authorize(conn, user_id, Capability.CREATE_ENTRY)
            if parent_id:
                load_entry(conn, parent_id)

            conn.execute(
                """
                INSERT INTO catalog_entries (
                    id, subject, category, year, tag_brand, material, origin, stitch_type,
                    body_type, description, reference_image_url, parent_id, variant_kind,
                    created_by, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (entry_id, subject, category, _clean(year), _clean(tag_brand), _clean(material),
                 _clean(origin), _clean(stitch_type), _clean(body_type), description,
                 _clean(reference_image_url), parent_id, variant_kind, user_id, timestamp, timestamp)
            )
            award(conn, user_id, 'create_entry', 'catalog_entry', entry_id, entry_id=entry_id)
            record_activity(conn, user_id, "variant_created" if parent_id else "entry_created",
                            "catalog_entry", entry_id,
                            {"subject": subject, "parent_id": parent_id, "variant_kind": variant_kind})
            entry = load_entry(conn, entry_id)

    logger.log_operation("catalog.create", "success", {"entry_id": entry_id, "parent_id": parent_id})
    return entry


def create_variant(parent_id: str, user_id: str, variant_kind: str,
                   description: Optional[str] = None,
                   reference_image_url: Optional[str] = None) -> CatalogEntry:
    """Create a known close relative of an existing entry, inheriting its identifying fields."""
    parent = get_entry(parent_id)
    return create_entry(
        user_id=user_id,
        subject=parent.subject,
        category=parent.category,
        year=parent.year,
        tag_brand=parent.tag_brand,
        description=description,
        reference_image_url=reference_image_url,
        parent_id=parent.id,
        variant_kind=variant_kind,
    )


def get_entry(entry_id: str) -> CatalogEntry:
    with get_db() as conn:
        return load_entry(conn, entry_id)


def list_variants(parent_id: str) -> List[CatalogEntry]:
    """Variants of an entry, oldest first."""
    with get_db() as conn:
        load_entry(conn, parent_id)
        rows = conn.execute(
            "SELECT * FROM catalog_entries WHERE parent_id = ? ORDER BY created_at, rowid", (parent_id,)
        ).fetchall()
    return [CatalogEntry.from_row(row) for row in rows]


def list_entries(limit: Optional[int] = None) -> List[CatalogEntry]:
    """All entries ranked by net score."""
    sql = "SELECT * FROM catalog_entries ORDER BY (upvotes - downvotes) DESC, created_at, rowid"
    params: tuple = ()
    if limit is not None:
        sql += " LIMIT ?"
        params = (limit,)
    with get_db() as conn:
        rows = conn.execute(sql, params).fetchall()
    return [CatalogEntry.from_row(row) for row in rows]


def search_entries(query: str, limit: Optional[int] = None) -> List[CatalogEntry]:
    """
    Incremental lookup as the user types: case-insensitive substring match on
    subject or tag brand, best scored first.
    """
    query = (query or "").strip()
    if not query:
        return []
    if limit is None:
        limit = config.ENTRY_SEARCH_LIMIT

    escaped = query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    pattern = f"%{escaped}%"
    with get_db() as conn:
        rows = conn.execute(
            """
            SELECT * FROM catalog_entries
            WHERE subject LIKE ? ESCAPE '\\' OR tag_brand LIKE ? ESCAPE '\\'
            ORDER BY (upvotes - downvotes) DESC, created_at, rowid
            LIMIT ?
            """,
            (pattern, pattern, limit)
        ).fetchall()
    return [CatalogEntry.from_row(row) for row in rows]


def verify_entry(entry_id: str, user_id: str) -> CatalogEntry:
    """
    Record one user's verification of an entry. Repeats are conflicts.
    The verifier is credited, and so is the creator when it is someone else.
    """
    with get_db() as conn:
        with transaction(conn):
            authorize(conn, user_id, Capability.VERIFY_OWN)
            entry = load_entry(conn, entry_id)

            if has_awarded(conn, user_id, 'verify_entry', 'catalog_entry', entry_id):
                raise ConflictError("Already verified")

            award(conn, user_id, 'verify_entry', 'catalog_entry', entry_id, entry_id=entry_id)
            if entry.created_by and entry.created_by != user_id:
                # One credit per verifier, keyed by the verifier
                award(conn, entry.created_by, 'entry_verified', 'verification',
                      f"{entry_id}:{user_id}", entry_id=entry_id)

            conn.execute(
                "UPDATE catalog_entries SET verification_count = verification_count + 1 WHERE id = ?",
                (entry_id,)
            )
            record_activity(conn, user_id, "entry_verified", "catalog_entry", entry_id)
            entry = load_entry(conn, entry_id)

    return entry


def vote_entry(entry_id: str, voter_id: str, direction: str) -> VoteTally:
    with get_db() as conn:
        with transaction(conn):
            require_user(conn, voter_id)
            return cast_vote(conn, VoteTarget.ENTRY, entry_id, voter_id, direction)
