"""
User records, usernames and single-use invite codes.

Authentication happens outside the vault; these records only carry the
identity that trust and uniqueness rules hang off.
"""

import re
import secrets
import sqlite3
import uuid
from datetime import datetime, timedelta
from typing import Optional

from util.logging import audit_event
from .activity import record_activity
from .db import get_db, transaction
from .errors import ConflictError, InvalidInput, NotFoundError
from .permissions import Capability, authorize
from .schema import InviteCode, User, now_iso

USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9_]{3,20}$")


def create_user(display_name: Optional[str] = None, user_id: Optional[str] = None,
                is_admin: bool = False) -> User:
    """Register an authenticated identity with the vault."""
    user_id = user_id or str(uuid.uuid4())
    with get_db() as conn:
        try:
            conn.execute(
                "INSERT INTO users (id, display_name, is_admin, created_at) VALUES (?, ?, ?, ?)",
                (user_id, display_name, is_admin, now_iso())
            )
        except sqlite3.IntegrityError as e:
            raise ConflictError(f"User {user_id} already exists") from e
        row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
    return User.from_row(row)


def get_user(user_id: str) -> User:
    with get_db() as conn:
        row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
    if row is None:
        raise NotFoundError(f"User {user_id} not found")
    return User.from_row(row)


def validate_username(name: str) -> str:
    """Check username format and return its canonical (lowercase) form."""
    name = (name or "").strip()
    if len(name) < 3:
        raise InvalidInput("Username must be at least 3 characters")
    if len(name) > 20:
        raise InvalidInput("Username must be 20 characters or less")
    if not USERNAME_PATTERN.match(name):
        raise InvalidInput("Username may only contain letters, numbers, and underscores")
    return name.lower()


def set_username(user_id: str, username: str) -> User:
    """Claim a username. A taken name is a conflict: pick another, do not retry."""
    canonical = validate_username(username)
    with get_db() as conn:
        with transaction(conn):
            try:
                cursor = conn.execute("UPDATE users SET username = ? WHERE id = ?", (canonical, user_id))
            except sqlite3.IntegrityError as e:
                raise ConflictError(f"Username '{canonical}' is taken") from e
            if cursor.rowcount == 0:
                raise NotFoundError(f"User {user_id} not found")
            record_activity(conn, user_id, "username_set", "user", user_id, {"username": canonical})
        row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()

    audit_event("user.username_set", {"user_id": user_id, "username": canonical})
    return User.from_row(row)


def create_invite(user_id: str, expires_in: Optional[timedelta] = None) -> InviteCode:
    """Issue a single-use invite code."""
    code = secrets.token_urlsafe(8)
    created_at = datetime.now()
    expires_at = created_at + expires_in if expires_in else None

    with get_db() as conn:
        with transaction(conn):
            authorize(conn, user_id, Capability.ISSUE_INVITES)
            conn.execute(
                "INSERT INTO invite_codes (code, created_by, expires_at, created_at) VALUES (?, ?, ?, ?)",
                (code, user_id, expires_at.isoformat() if expires_at else None, created_at.isoformat())
            )
            record_activity(conn, user_id, "invite_created", "invite", code)

    audit_event("invite.created", {"created_by": user_id, "code": code})
    return get_invite(code)


def get_invite(code: str) -> InviteCode:
    with get_db() as conn:
        row = conn.execute("SELECT * FROM invite_codes WHERE code = ?", (code,)).fetchone()
    if row is None:
        raise NotFoundError("Invite code not found")
    return InviteCode.from_row(row)


def redeem_invite(code: str, user_id: str) -> InviteCode:
    """
    Redeem an invite code. The conditional update lets exactly one of several
    concurrent claimants win; the others get ConflictError.
    """
    used_at = now_iso()
    with get_db() as conn:
        with transaction(conn):
            cursor = conn.execute(
                "UPDATE invite_codes SET used_by = ?, used_at = ? "
                "WHERE code = ? AND used_by IS NULL AND (expires_at IS NULL OR expires_at > ?)",
                (user_id, used_at, code, used_at)
            )
            if cursor.rowcount == 0:
                row = conn.execute("SELECT * FROM invite_codes WHERE code = ?", (code,)).fetchone()
                if row is None:
                    raise NotFoundError("Invite code not found")
                if row['used_by'] is not None:
                    raise ConflictError("Invite code has already been redeemed")
                raise ConflictError("Invite code has expired")
            record_activity(conn, user_id, "invite_redeemed", "invite", code)

    audit_event("invite.redeemed", {"used_by": user_id, "code": code})
    return get_invite(code)
