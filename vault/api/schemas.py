"""
Request and response models for the vault HTTP API.
"""

from pydantic import BaseModel, field_validator, ConfigDict
from typing import Optional, List, Dict, Any
from datetime import datetime


def _not_empty(v: str, name: str) -> str:
    if not v or not v.strip():
        raise ValueError(f'{name} cannot be empty')
    return v


class UserCreateRequest(BaseModel):
    display_name: Optional[str] = None


class UsernameRequest(BaseModel):
    username: str

    @field_validator('username')
    @classmethod
    def username_must_not_be_empty(cls, v):
        return _not_empty(v, 'username')


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    username: Optional[str]
    display_name: Optional[str]
    is_admin: bool
    created_at: datetime


class StandingResponse(BaseModel):
    user: UserResponse
    karma: int
    tier: str
    capabilities: List[str]
    next_tier: Optional[str] = None
    karma_to_next_tier: Optional[int] = None


class InviteCreateRequest(BaseModel):
    expires_in_hours: Optional[int] = None

    @field_validator('expires_in_hours')
    @classmethod
    def expiry_must_be_positive(cls, v):
        if v is not None and v <= 0:
            raise ValueError('expires_in_hours must be positive')
        return v


class InviteRedeemRequest(BaseModel):
    code: str

    @field_validator('code')
    @classmethod
    def code_must_not_be_empty(cls, v):
        return _not_empty(v, 'code').strip()


class InviteResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    code: str
    created_by: str
    used_by: Optional[str]
    used_at: Optional[datetime]
    expires_at: Optional[datetime]
    created_at: datetime


class EntryCreateRequest(BaseModel):
    subject: str
    category: str
    year: Optional[str] = None
    tag_brand: Optional[str] = None
    material: Optional[str] = None
    origin: Optional[str] = None
    stitch_type: Optional[str] = None
    body_type: Optional[str] = None
    description: Optional[str] = None
    reference_image_url: Optional[str] = None
    parent_id: Optional[str] = None
    variant_kind: Optional[str] = None

    @field_validator('subject')
    @classmethod
    def subject_must_not_be_empty(cls, v):
        return _not_empty(v, 'subject')


class VariantCreateRequest(BaseModel):
    variant_kind: str
    description: Optional[str] = None
    reference_image_url: Optional[str] = None


class EntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

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
    net_score: int
    parent_id: Optional[str]
    variant_kind: Optional[str]
    created_by: Optional[str]
    created_at: datetime
    updated_at: datetime


class EntryListResponse(BaseModel):
    entries: List[EntryResponse]


class VoteRequest(BaseModel):
    direction: str

    @field_validator('direction')
    @classmethod
    def direction_must_be_valid(cls, v):
        if v not in ['up', 'down']:
            raise ValueError("direction must be 'up' or 'down'")
        return v


class TallyResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    upvotes: int
    downvotes: int
    net_score: int
    user_vote: Optional[str]


class TagAddRequest(BaseModel):
    name: str

    @field_validator('name')
    @classmethod
    def name_must_not_be_empty(cls, v):
        return _not_empty(v, 'name')


class ItemTagResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    entry_id: str
    tag_id: str
    slug: str
    name: str
    added_by: Optional[str]
    upvotes: int
    downvotes: int
    net_score: int
    user_vote: Optional[str]
    created_at: datetime


class TagPoolResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    slug: str
    name: str
    usage_count: int


class ImageAddRequest(BaseModel):
    view_type: str
    url: str
    caption: Optional[str] = None

    @field_validator('url')
    @classmethod
    def url_must_not_be_empty(cls, v):
        return _not_empty(v, 'url')


class ImageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    entry_id: str
    view_type: str
    url: str
    caption: Optional[str]
    is_primary: bool
    added_by: Optional[str]
    upvotes: int
    downvotes: int
    net_score: int
    user_vote: Optional[str]
    created_at: datetime


class DisplayImageResponse(BaseModel):
    entry_id: str
    view_type: str
    url: Optional[str] = None
    image_id: Optional[str] = None
    votable: bool = False
    legacy: bool = False


class ProposalCreateRequest(BaseModel):
    field: str
    new_value: str

    @field_validator('new_value')
    @classmethod
    def value_must_not_be_empty(cls, v):
        return _not_empty(v, 'new_value')


class ReviewRequest(BaseModel):
    decision: str
    note: str = ""

    @field_validator('decision')
    @classmethod
    def decision_must_be_valid(cls, v):
        if v not in ['approve', 'reject']:
            raise ValueError("decision must be 'approve' or 'reject'")
        return v


class ProposalResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

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
    net_score: int
    created_at: datetime


class ProposalListResponse(BaseModel):
    proposals: List[ProposalResponse]


class ContributionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    actor_id: str
    action: str
    points: int
    reference_type: str
    reference_id: str
    entry_id: Optional[str]
    created_at: datetime


class ActivityResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    actor_id: Optional[str]
    action_type: str
    target_type: Optional[str]
    target_id: Optional[str]
    metadata: Dict[str, Any]
    created_at: datetime


class ClassifyRequest(BaseModel):
    images: List[str]

    @field_validator('images')
    @classmethod
    def images_must_not_be_empty(cls, v):
        if not v:
            raise ValueError('at least one image is required')
        return v


class MatchResponse(BaseModel):
    entry: EntryResponse
    similarity: int


class SuggestionResponse(BaseModel):
    classification: Dict[str, Any]
    matches: List[MatchResponse]


class ReconcileResponse(BaseModel):
    accepted_proposals: int
    missing_credits: int
    awarded: int
    dry_run: bool
    proposal_ids: List[str]


class HealthResponse(BaseModel):
    status: str
    version: str
    db_health: bool


class ErrorResponse(BaseModel):
    error_type: str
    message: str
    details: Dict[str, Any] = {}
