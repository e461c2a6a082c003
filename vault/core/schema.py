"""
Typed records and enumerations shared by the vault core.
"""

import sqlite3
from dataclasses import dataclass, asdict
from datetime import datetime
from enum import Enum
from typing import Dict, Optional, Any


class Category(str, Enum):
    MUSIC = "Music"
    MOTORCYCLE = "Motorcycle"
    MOVIE = "Movie"
    ART = "Art"
    SPORT = "Sport"
    ADVERTISING = "Advertising"
    OTHER = "Other"


class ViewType(str, Enum):
    FRONT = "front"
    BACK = "back"
    TAG = "tag"


class VoteDirection(str, Enum):
    UP = "up"
    DOWN = "down"


class ProposalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    APPLIED = "applied"


class ReviewDecision(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


class VariantKind(str, Enum):
    GRAPHIC_CHANGE = "graphic_change"
    BOOTLEG = "bootleg"
    COLOR_VARIANT = "color_variant"
    REPRINT = "reprint"


class EntryField(str, Enum):
    """Catalog entry fields that can be changed through the proposal workflow."""
    SUBJECT = "subject"
    CATEGORY = "category"
    YEAR = "year"
    TAG_BRAND = "tag_brand"
    MATERIAL = "material"
    ORIGIN = "origin"
    STITCH_TYPE = "stitch_type"
    BODY_TYPE = "body_type"
    DESCRIPTION = "description"


def _ts(value) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def now_iso() -> str:
    return datetime.now().isoformat()


@dataclass
class User:
    id: str
    username: Optional[str]
    display_name: Optional[str]
    is_admin: bool
    created_at: datetime

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> 'User':
        return cls(
            id=row['id'],
            username=row['username'],
            display_name=row['display_name'],
            is_admin=bool(row['is_admin']),
            created_at=_ts(row['created_at']),
        )


@dataclass
class InviteCode:
    code: str
    created_by: str
    used_by: Optional[str]
    used_at: Optional[datetime]
    expires_at: Optional[datetime]
    created_at: datetime

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> 'InviteCode':
        return cls(
            code=row['code'],
            created_by=row['created_by'],
            used_by=row['used_by'],
            used_at=_ts(row['used_at']),
            expires_at=_ts(row['expires_at']),
            created_at=_ts(row['created_at']),
        )


@dataclass
class CatalogEntry:
    id: str
    subject: str
    category: str
    year: Optional[str]
    tag_brand: Optional[str]
    material: Optional[str]
    origin: Optional[str]
    stitch_type: Optional[str]
    body_type: Optional[str]
    description: Optional[str]
    reference_image_url: Optional[str]
    verification_count: int
    upvotes: int
    downvotes: int
    parent_id: Optional[str]
    variant_kind: Optional[str]
    created_by: Optional[str]
    created_at: datetime
    updated_at: datetime

    @property
    def net_score(self) -> int:
        return self.upvotes - self.downvotes

    @property
    def is_variant(self) -> bool:
        return self.parent_id is not None

    def field_value(self, field: EntryField) -> Optional[str]:
        return getattr(self, field.value)

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> 'CatalogEntry':
        data = dict(row)
        data['created_at'] = _ts(data['created_at'])
        data['updated_at'] = _ts(data['updated_at'])
        return cls(**data)


@dataclass
class Contribution:
    id: int
    actor_id: str
    action: str
    points: int
    reference_type: str
    reference_id: str
    entry_id: Optional[str]
    created_at: datetime

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> 'Contribution':
        data = dict(row)
        data['created_at'] = _ts(data['created_at'])
        return cls(**data)


@dataclass
class VoteTally:
    upvotes: int
    downvotes: int
    user_vote: Optional[str] = None

    @property
    def net_score(self) -> int:
        return self.upvotes - self.downvotes

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['net_score'] = self.net_score
        return data


@dataclass
class TagPoolEntry:
    id: str
    slug: str
    name: str
    usage_count: int
    created_at: datetime

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> 'TagPoolEntry':
        data = dict(row)
        data['created_at'] = _ts(data['created_at'])
        return cls(**data)


@dataclass
class ItemTag:
    id: str
    entry_id: str
    tag_id: str
    slug: str
    name: str
    added_by: Optional[str]
    upvotes: int
    downvotes: int
    created_at: datetime
    user_vote: Optional[str] = None

    @property
    def net_score(self) -> int:
        return self.upvotes - self.downvotes

    @classmethod
    def from_row(cls, row: sqlite3.Row, user_vote: Optional[str] = None) -> 'ItemTag':
        return cls(
            id=row['id'],
            entry_id=row['entry_id'],
            tag_id=row['tag_id'],
            slug=row['slug'],
            name=row['name'],
            added_by=row['added_by'],
            upvotes=row['upvotes'],
            downvotes=row['downvotes'],
            created_at=_ts(row['created_at']),
            user_vote=user_vote,
        )


@dataclass
class ItemImage:
    id: str
    entry_id: str
    view_type: str
    url: str
    caption: Optional[str]
    is_primary: bool
    added_by: Optional[str]
    upvotes: int
    downvotes: int
    created_at: datetime
    user_vote: Optional[str] = None

    @property
    def net_score(self) -> int:
        return self.upvotes - self.downvotes

    @classmethod
    def from_row(cls, row: sqlite3.Row, user_vote: Optional[str] = None) -> 'ItemImage':
        data = dict(row)
        data['is_primary'] = bool(data['is_primary'])
        data['created_at'] = _ts(data['created_at'])
        return cls(user_vote=user_vote, **data)


@dataclass(frozen=True)
class LegacyReferenceImage:
    """The entry's single reference image, shown only when a view type has no
    community images. It has no identity in the scoring system and cannot be voted on."""
    entry_id: str
    view_type: str
    url: str

    votable = False


@dataclass
class EditProposal:
    id: str
    entry_id: str
    field_name: str
    old_value: Optional[str]
    new_value: str
    proposer_id: str
    status: str
    reviewer_id: Optional[str]
    reviewed_at: Optional[datetime]
    review_note: Optional[str]
    upvotes: int
    downvotes: int
    created_at: datetime

    @property
    def net_score(self) -> int:
        return self.upvotes - self.downvotes

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> 'EditProposal':
        data = dict(row)
        data['reviewed_at'] = _ts(data['reviewed_at'])
        data['created_at'] = _ts(data['created_at'])
        return cls(**data)


@dataclass
class ActivityEvent:
    id: int
    actor_id: Optional[str]
    action_type: str
    target_type: Optional[str]
    target_id: Optional[str]
    metadata: Dict[str, Any]
    created_at: datetime
