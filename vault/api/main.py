"""
HTTP adapter for the vault consensus engine.

Authentication happens upstream; the authenticated user id arrives in the
X-User-Id header. Every route is a thin call into vault.core, and vault
errors map to status codes in one exception handler.
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import timedelta
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Depends, Header, Query
from fastapi.responses import JSONResponse

from util.logging import logger
from .schemas import (
    UserCreateRequest,
    UsernameRequest,
    UserResponse,
    StandingResponse,
    InviteCreateRequest,
    InviteRedeemRequest,
    InviteResponse,
    EntryCreateRequest,
    VariantCreateRequest,
    EntryResponse,
    EntryListResponse,
    VoteRequest,
    TallyResponse,
    TagAddRequest,
    ItemTagResponse,
    TagPoolResponse,
    ImageAddRequest,
    ImageResponse,
    DisplayImageResponse,
    ProposalCreateRequest,
    ReviewRequest,
    ProposalResponse,
    ProposalListResponse,
    ContributionResponse,
    ActivityResponse,
    ClassifyRequest,
    MatchResponse,
    SuggestionResponse,
    ReconcileResponse,
    HealthResponse,
    ErrorResponse,
)
from ..core import accounts, catalog, images, proposals, tags
from ..core.activity import list_activity
from ..core.classifier import Classifier, MockClassifier
from ..core.config import VERSION, debug_enabled
from ..core.db import health_check, init_db
from ..core.errors import (
    VaultError,
    PermissionDenied,
    NotFoundError,
    ConflictError,
    StaleValueConflict,
    InvalidTransition,
    InvalidInput,
    UpstreamFailure,
)
from ..core.karma import karma_score, list_contributions
from ..core.matching import suggest_matches
from ..core.permissions import (
    Capability,
    capabilities,
    check_capability,
    karma_to_next_tier,
    next_tier,
    user_tier,
)
from ..core.reconcile import reconcile_edit_credits
from ..core.schema import LegacyReferenceImage

# Most specific first
ERROR_STATUS = [
    (PermissionDenied, 403),
    (NotFoundError, 404),
    (StaleValueConflict, 409),
    (ConflictError, 409),
    (InvalidTransition, 409),
    (InvalidInput, 400),
    (UpstreamFailure, 502),
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


# Initialize the FastAPI application
app = FastAPI(
    title="Vault Consensus API",
    version=VERSION,
    description="Community catalog with karma-gated edits, voting and duplicate resolution",
    docs_url="/docs" if debug_enabled() else None,
    redoc_url="/redoc" if debug_enabled() else None,
    lifespan=lifespan,
)


def current_user(x_user_id: Optional[str] = Header(None)) -> str:
    """The authenticated user making the request."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="X-User-Id header required")
    return x_user_id.strip()


def optional_viewer(x_user_id: Optional[str] = Header(None)) -> Optional[str]:
    return x_user_id.strip() if x_user_id and x_user_id.strip() else None


def get_classifier() -> Classifier:
    """Classifier used by /match/classify; override in deployments."""
    return MockClassifier()


@app.exception_handler(VaultError)
async def vault_error_handler(request, exc: VaultError):
    status_code = next((code for cls, code in ERROR_STATUS if isinstance(exc, cls)), 500)
    details = {}
    if isinstance(exc, PermissionDenied):
        details = {"capability": exc.capability, "tier": exc.tier}
    elif isinstance(exc, StaleValueConflict):
        details = {
            "proposal_id": exc.proposal_id,
            "field_name": exc.field_name,
            "expected": exc.expected,
            "actual": exc.actual,
        }
    if status_code >= 500:
        logger.error(f"{exc.__class__.__name__}: {exc}")
    body = ErrorResponse(error_type=exc.__class__.__name__, message=str(exc), details=details)
    return JSONResponse(status_code=status_code, content=body.model_dump())


@app.get("/health", response_model=HealthResponse)
def health_check_endpoint():
    """Check system health."""
    db_health = health_check()
    return HealthResponse(
        status="healthy" if db_health else "unhealthy",
        version=VERSION,
        db_health=db_health,
    )


# Users and invites

@app.post("/users", response_model=UserResponse, status_code=201)
def create_user_endpoint(request: UserCreateRequest, user_id: str = Depends(current_user)):
    """Register the authenticated identity with the vault."""
    return UserResponse.model_validate(accounts.create_user(request.display_name, user_id=user_id))


@app.put("/users/me/username", response_model=UserResponse)
def set_username_endpoint(request: UsernameRequest, user_id: str = Depends(current_user)):
    return UserResponse.model_validate(accounts.set_username(user_id, request.username))


@app.get("/users/{user_id}", response_model=StandingResponse)
def get_user_endpoint(user_id: str):
    """A user's karma, tier and capabilities."""
    user = accounts.get_user(user_id)
    karma = karma_score(user_id)
    tier = user_tier(user_id)
    upcoming = next_tier(tier)
    return StandingResponse(
        user=UserResponse.model_validate(user),
        karma=karma,
        tier=tier.value,
        capabilities=sorted(cap.value for cap in capabilities(tier)),
        next_tier=upcoming.value if upcoming else None,
        karma_to_next_tier=karma_to_next_tier(karma) if upcoming else None,
    )


@app.get("/users/{user_id}/contributions", response_model=List[ContributionResponse])
def list_contributions_endpoint(user_id: str, limit: int = Query(50, le=200)):
    return [ContributionResponse.model_validate(c) for c in list_contributions(actor_id=user_id, limit=limit)]


@app.post("/invites", response_model=InviteResponse, status_code=201)
def create_invite_endpoint(request: InviteCreateRequest, user_id: str = Depends(current_user)):
    expires_in = timedelta(hours=request.expires_in_hours) if request.expires_in_hours else None
    return InviteResponse.model_validate(accounts.create_invite(user_id, expires_in))


@app.post("/invites/redeem", response_model=InviteResponse)
def redeem_invite_endpoint(request: InviteRedeemRequest, user_id: str = Depends(current_user)):
    return InviteResponse.model_validate(accounts.redeem_invite(request.code, user_id))


# Catalog entries

@app.post("/entries", response_model=EntryResponse, status_code=201)
def create_entry_endpoint(request: EntryCreateRequest, user_id: str = Depends(current_user)):
    entry = catalog.create_entry(user_id=user_id, **request.model_dump())
    return EntryResponse.model_validate(entry)


# Define /entries/search BEFORE /entries/{entry_id} to avoid path parameter conflict
@app.get("/entries/search", response_model=EntryListResponse)
def search_entries_endpoint(q: str = Query(..., description="Subject or tag brand substring"),
                            limit: Optional[int] = Query(None, le=100)):
    return EntryListResponse(entries=[EntryResponse.model_validate(e) for e in catalog.search_entries(q, limit)])


@app.get("/entries", response_model=EntryListResponse)
def list_entries_endpoint(limit: int = Query(50, le=200)):
    return EntryListResponse(entries=[EntryResponse.model_validate(e) for e in catalog.list_entries(limit)])


@app.get("/entries/{entry_id}", response_model=EntryResponse)
def get_entry_endpoint(entry_id: str):
    return EntryResponse.model_validate(catalog.get_entry(entry_id))


@app.post("/entries/{entry_id}/variants", response_model=EntryResponse, status_code=201)
def create_variant_endpoint(entry_id: str, request: VariantCreateRequest,
                            user_id: str = Depends(current_user)):
    variant = catalog.create_variant(entry_id, user_id, request.variant_kind,
                                     request.description, request.reference_image_url)
    return EntryResponse.model_validate(variant)


@app.get("/entries/{entry_id}/variants", response_model=EntryListResponse)
def list_variants_endpoint(entry_id: str):
    return EntryListResponse(entries=[EntryResponse.model_validate(e) for e in catalog.list_variants(entry_id)])


@app.post("/entries/{entry_id}/verify", response_model=EntryResponse)
def verify_entry_endpoint(entry_id: str, user_id: str = Depends(current_user)):
    return EntryResponse.model_validate(catalog.verify_entry(entry_id, user_id))


@app.post("/entries/{entry_id}/vote", response_model=TallyResponse)
def vote_entry_endpoint(entry_id: str, request: VoteRequest, user_id: str = Depends(current_user)):
    return TallyResponse.model_validate(catalog.vote_entry(entry_id, user_id, request.direction))


# Tags

@app.post("/entries/{entry_id}/tags", response_model=ItemTagResponse, status_code=201)
def add_tag_endpoint(entry_id: str, request: TagAddRequest, user_id: str = Depends(current_user)):
    return ItemTagResponse.model_validate(tags.add_tag(entry_id, user_id, request.name))


@app.get("/entries/{entry_id}/tags", response_model=List[ItemTagResponse])
def list_tags_endpoint(entry_id: str, viewer_id: Optional[str] = Depends(optional_viewer)):
    return [ItemTagResponse.model_validate(t) for t in tags.list_item_tags(entry_id, viewer_id)]


@app.get("/tags/search", response_model=List[TagPoolResponse])
def search_tags_endpoint(prefix: str = Query(...), limit: Optional[int] = Query(None, le=50)):
    return [TagPoolResponse.model_validate(t) for t in tags.search_tags(prefix, limit)]


@app.post("/tags/{item_tag_id}/vote", response_model=TallyResponse)
def vote_tag_endpoint(item_tag_id: str, request: VoteRequest, user_id: str = Depends(current_user)):
    return TallyResponse.model_validate(tags.vote_tag(item_tag_id, user_id, request.direction))


# Images

@app.post("/entries/{entry_id}/images", response_model=ImageResponse, status_code=201)
def add_image_endpoint(entry_id: str, request: ImageAddRequest, user_id: str = Depends(current_user)):
    image = images.add_image(entry_id, user_id, request.view_type, request.url, request.caption)
    return ImageResponse.model_validate(image)


@app.get("/entries/{entry_id}/images", response_model=List[ImageResponse])
def list_images_endpoint(entry_id: str, view_type: Optional[str] = None,
                         viewer_id: Optional[str] = Depends(optional_viewer)):
    return [ImageResponse.model_validate(i) for i in images.list_images(entry_id, view_type, viewer_id)]


@app.get("/entries/{entry_id}/images/{view_type}/display", response_model=DisplayImageResponse)
def display_image_endpoint(entry_id: str, view_type: str):
    """The image shown for one view, falling back to the legacy reference image."""
    shown = images.display_image(entry_id, view_type)
    if shown is None:
        return DisplayImageResponse(entry_id=entry_id, view_type=view_type)
    if isinstance(shown, LegacyReferenceImage):
        return DisplayImageResponse(entry_id=entry_id, view_type=view_type, url=shown.url, legacy=True)
    return DisplayImageResponse(entry_id=entry_id, view_type=view_type, url=shown.url,
                                image_id=shown.id, votable=True)


@app.post("/images/{image_id}/vote", response_model=TallyResponse)
def vote_image_endpoint(image_id: str, request: VoteRequest, user_id: str = Depends(current_user)):
    return TallyResponse.model_validate(images.vote_image(image_id, user_id, request.direction))


# Edit proposals

@app.post("/entries/{entry_id}/proposals", response_model=ProposalResponse, status_code=201)
def propose_endpoint(entry_id: str, request: ProposalCreateRequest, user_id: str = Depends(current_user)):
    return ProposalResponse.model_validate(proposals.propose(entry_id, user_id, request.field, request.new_value))


@app.post("/entries/{entry_id}/edits", response_model=ProposalResponse)
def direct_edit_endpoint(entry_id: str, request: ProposalCreateRequest, user_id: str = Depends(current_user)):
    """Apply a low-sensitivity edit immediately."""
    return ProposalResponse.model_validate(
        proposals.direct_edit(entry_id, user_id, request.field, request.new_value)
    )


@app.get("/entries/{entry_id}/history", response_model=ProposalListResponse)
def entry_history_endpoint(entry_id: str):
    return ProposalListResponse(
        proposals=[ProposalResponse.model_validate(p) for p in proposals.entry_history(entry_id)]
    )


@app.get("/proposals", response_model=ProposalListResponse)
def list_proposals_endpoint(status: Optional[str] = None, entry_id: Optional[str] = None,
                            limit: Optional[int] = Query(None, le=200)):
    """The review queue; pending proposals unless a status is given."""
    return ProposalListResponse(
        proposals=[ProposalResponse.model_validate(p)
                   for p in proposals.list_proposals(status, entry_id, limit)]
    )


@app.get("/proposals/{proposal_id}", response_model=ProposalResponse)
def get_proposal_endpoint(proposal_id: str):
    return ProposalResponse.model_validate(proposals.get_proposal(proposal_id))


@app.post("/proposals/{proposal_id}/vote", response_model=TallyResponse)
def vote_proposal_endpoint(proposal_id: str, request: VoteRequest, user_id: str = Depends(current_user)):
    return TallyResponse.model_validate(proposals.cast_vote(proposal_id, user_id, request.direction))


@app.post("/proposals/{proposal_id}/review", response_model=ProposalResponse)
def review_proposal_endpoint(proposal_id: str, request: ReviewRequest, user_id: str = Depends(current_user)):
    return ProposalResponse.model_validate(
        proposals.review(proposal_id, user_id, request.decision, request.note)
    )


# Duplicate resolution

@app.post("/match/classify", response_model=SuggestionResponse)
def classify_endpoint(request: ClassifyRequest, classifier: Classifier = Depends(get_classifier)):
    """Classify item photos and list existing entries it may duplicate. Writes nothing."""
    result, candidates = suggest_matches(classifier, request.images)
    return SuggestionResponse(
        classification=result.to_dict(),
        matches=[MatchResponse(entry=EntryResponse.model_validate(c.entry), similarity=c.similarity)
                 for c in candidates],
    )


# Activity and administration

@app.get("/activity", response_model=List[ActivityResponse])
def list_activity_endpoint(actor_id: Optional[str] = None, target_id: Optional[str] = None,
                           limit: int = Query(50, le=200)):
    return [ActivityResponse.model_validate(e) for e in list_activity(actor_id, target_id, limit=limit)]


@app.post("/admin/reconcile-credits", response_model=ReconcileResponse)
def reconcile_endpoint(dry_run: bool = False, user_id: str = Depends(current_user)):
    check_capability(user_id, Capability.ADMIN_ACTIONS)
    summary = reconcile_edit_credits(dry_run=dry_run)
    return ReconcileResponse(**asdict(summary))


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Handle all unhandled exceptions."""
    logging.error(f"Unhandled exception: {exc}")
    content = {"detail": "Internal server error"}
    if debug_enabled():
        content["debug"] = str(exc)
    return JSONResponse(status_code=500, content=content)
