"""
Permission model - karma score to tier, tier to capabilities.

All trust rules live in the tables below. Feature code asks one question,
has(tier, capability), instead of comparing scores inline.
"""

import sqlite3
from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Tuple

from util.logging import logger
from .db import get_db
from .errors import PermissionDenied
from .karma import score_for
from .schema import EntryField


class Tier(str, Enum):
    NEWCOMER = "newcomer"
    CONTRIBUTOR = "contributor"
    TRUSTED = "trusted"
    EXPERT = "expert"
    CURATOR = "curator"
    MODERATOR = "moderator"

    @property
    def rank(self) -> int:
        return TIER_ORDER.index(self)


TIER_ORDER: List[Tier] = [
    Tier.NEWCOMER, Tier.CONTRIBUTOR, Tier.TRUSTED, Tier.EXPERT, Tier.CURATOR, Tier.MODERATOR,
]

# Minimum karma per tier, ascending. Moderator is granted by the admin flag only.
TIER_THRESHOLDS: List[Tuple[Tier, int]] = [
    (Tier.NEWCOMER, 0),
    (Tier.CONTRIBUTOR, 50),
    (Tier.TRUSTED, 200),
    (Tier.EXPERT, 500),
    (Tier.CURATOR, 1000),
]


class Capability(str, Enum):
    CREATE_ENTRY = "create_entry"
    VERIFY_OWN = "verify_own"
    ADD_TAGS = "add_tags"
    SUGGEST_EDITS = "suggest_edits"
    EDIT_TYPOS = "edit_typos"
    ADD_IMAGES = "add_images"
    VOTE_ON_EDITS = "vote_on_edits"
    APPROVE_EDITS = "approve_edits"
    ISSUE_INVITES = "issue_invites"
    ADMIN_ACTIONS = "admin_actions"


# Lowest tier holding each capability; every higher tier inherits it.
CAPABILITY_MIN_TIER: Dict[Capability, Tier] = {
    Capability.CREATE_ENTRY: Tier.NEWCOMER,
    Capability.VERIFY_OWN: Tier.NEWCOMER,
    Capability.ADD_TAGS: Tier.NEWCOMER,
    Capability.SUGGEST_EDITS: Tier.NEWCOMER,
    Capability.VOTE_ON_EDITS: Tier.NEWCOMER,
    Capability.EDIT_TYPOS: Tier.CONTRIBUTOR,
    Capability.ADD_IMAGES: Tier.CONTRIBUTOR,
    Capability.APPROVE_EDITS: Tier.TRUSTED,
    Capability.ISSUE_INVITES: Tier.TRUSTED,
    Capability.ADMIN_ACTIONS: Tier.MODERATOR,
}

_TIER_CAPABILITIES: Dict[Tier, FrozenSet[Capability]] = {
    tier: frozenset(cap for cap, min_tier in CAPABILITY_MIN_TIER.items() if tier.rank >= min_tier.rank)
    for tier in TIER_ORDER
}


class FieldSensitivity(str, Enum):
    LOW = "low"
    HIGH = "high"


@dataclass(frozen=True)
class FieldRule:
    sensitivity: FieldSensitivity
    propose: Capability
    direct: Optional[Capability]  # None: the field is never edited without review


_LOW = FieldRule(FieldSensitivity.LOW, propose=Capability.SUGGEST_EDITS, direct=Capability.EDIT_TYPOS)
_HIGH = FieldRule(FieldSensitivity.HIGH, propose=Capability.EDIT_TYPOS, direct=None)

FIELD_RULES: Dict[EntryField, FieldRule] = {
    EntryField.SUBJECT: _HIGH,
    EntryField.CATEGORY: _HIGH,
    EntryField.YEAR: _HIGH,
    EntryField.TAG_BRAND: _HIGH,
    EntryField.MATERIAL: _LOW,
    EntryField.ORIGIN: _LOW,
    EntryField.STITCH_TYPE: _LOW,
    EntryField.BODY_TYPE: _LOW,
    EntryField.DESCRIPTION: _LOW,
}


def _validate_tables():
    missing_fields = [f.value for f in EntryField if f not in FIELD_RULES]
    if missing_fields:
        raise RuntimeError(f"Edit fields without a permission rule: {missing_fields}")
    missing_caps = [c.value for c in Capability if c not in CAPABILITY_MIN_TIER]
    if missing_caps:
        raise RuntimeError(f"Capabilities without a tier: {missing_caps}")
    thresholds = [points for _, points in TIER_THRESHOLDS]
    if thresholds != sorted(thresholds) or thresholds[0] != 0:
        raise RuntimeError("Tier thresholds must start at 0 and ascend")


_validate_tables()


def tier_for_karma(karma: int) -> Tier:
    """Highest tier whose threshold the score reaches. Pure and monotonic."""
    tier = Tier.NEWCOMER
    for candidate, minimum in TIER_THRESHOLDS:
        if karma >= minimum:
            tier = candidate
    return tier


def effective_tier(karma: int, is_admin: bool = False) -> Tier:
    """Admins act as moderators regardless of karma."""
    if is_admin:
        return Tier.MODERATOR
    return tier_for_karma(karma)


def capabilities(tier: Tier) -> FrozenSet[Capability]:
    return _TIER_CAPABILITIES[Tier(tier)]


def has(tier: Tier, capability: Capability) -> bool:
    return Capability(capability) in capabilities(tier)


def field_rule(field: EntryField) -> FieldRule:
    return FIELD_RULES[EntryField(field)]


def next_tier(tier: Tier) -> Optional[Tier]:
    """Next tier reachable through karma, or None at the top."""
    earned = [t for t, _ in TIER_THRESHOLDS]
    if tier not in earned or tier == earned[-1]:
        return None
    return earned[earned.index(tier) + 1]


def karma_to_next_tier(karma: int) -> Optional[int]:
    upcoming = next_tier(tier_for_karma(karma))
    if upcoming is None:
        return None
    return dict(TIER_THRESHOLDS)[upcoming] - karma


def resolve_tier(conn: sqlite3.Connection, user_id: str) -> Optional[Tier]:
    """Tier of a known user, or None if the user does not exist."""
    if not user_id:
        return None
    row = conn.execute("SELECT is_admin FROM users WHERE id = ?", (user_id,)).fetchone()
    if row is None:
        return None
    return effective_tier(score_for(conn, user_id), bool(row['is_admin']))


def require_user(conn: sqlite3.Connection, user_id: str) -> Tier:
    """Authentication-only gate, used by votes."""
    tier = resolve_tier(conn, user_id)
    if tier is None:
        logger.log_permission_denied(user_id, "authenticated")
        raise PermissionDenied("Authentication required", capability="authenticated")
    return tier


def authorize(conn: sqlite3.Connection, user_id: str, capability: Capability) -> Tier:
    """Raise PermissionDenied unless the user's tier holds the capability."""
    tier = resolve_tier(conn, user_id)
    if tier is None:
        logger.log_permission_denied(user_id, capability.value)
        raise PermissionDenied("Authentication required", capability=capability.value)
    if not has(tier, capability):
        logger.log_permission_denied(user_id, capability.value, tier.value)
        raise PermissionDenied(
            f"Tier '{tier.value}' lacks capability '{capability.value}'",
            capability=capability.value,
            tier=tier.value,
        )
    return tier


def check_capability(user_id: str, capability: Capability) -> Tier:
    """authorize() on a fresh connection, for callers outside a transaction."""
    with get_db() as conn:
        return authorize(conn, user_id, capability)


def user_tier(user_id: str) -> Optional[Tier]:
    with get_db() as conn:
        return resolve_tier(conn, user_id)
