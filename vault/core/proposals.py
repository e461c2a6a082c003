"""
Edit proposal workflow - the only way a catalog entry changes after creation.

Reviewed path: propose -> (advisory votes) -> approve | reject.
Direct path: users holding a field's direct capability edit immediately and
the change is logged as an 'applied' proposal.

Both paths write the field, log the proposal row and credit the proposer
through _apply_and_credit, inside the caller's transaction.
"""

import sqlite3
import uuid
from typing import Any, Dict, List, Optional

from util.logging import logger
from . import config
from .activity import record_activity
from .catalog import load_entry, validate_category
from .db import get_db, transaction
from .errors import InvalidInput, InvalidTransition, NotFoundError, PermissionDenied, StaleValueConflict
from .karma import award
from .permissions import Capability, authorize, field_rule
from .schema import EditProposal, EntryField, ProposalStatus, ReviewDecision, VoteTally, now_iso
from .scoring import VoteTarget, cast_vote as cast_target_vote

FIELD_MAX_LENGTH = 5000


def _resolve_field(field: str) -> EntryField:
    try:
        return EntryField(field)
    except ValueError:
        valid = [f.value for f in EntryField]
        raise InvalidInput(f"field must be one of: {valid}") from None


def _clean_value(field: EntryField, value: Optional[str]) -> str:
    value = "" if value is None else str(value).strip()
    if not value:
        raise InvalidInput(f"{field.value} cannot be empty")
    if len(value) > FIELD_MAX_LENGTH:
        raise InvalidInput(f"{field.value} must be at most {FIELD_MAX_LENGTH} characters")
    if field == EntryField.CATEGORY:
        value = validate_category(value)
    return value


def _load_proposal(conn: sqlite3.Connection, proposal_id: str) -> EditProposal:
    row = conn.execute("SELECT * FROM edit_proposals WHERE id = ?", (proposal_id,)).fetchone()
    if row is None:
        raise NotFoundError(f"Proposal {proposal_id} not found")
    return EditProposal.from_row(row)


def _require_pending(proposal: EditProposal):
    if proposal.status != ProposalStatus.PENDING.value:
        raise InvalidTransition(f"Proposal {proposal.id} is {proposal.status}, not pending")


def _apply_and_credit(conn: sqlite3.Connection, proposal: EditProposal, status: ProposalStatus,
                      reviewer_id: str, note: Optional[str] = None,
                      metadata: Optional[Dict[str, Any]] = None, credit: bool = True) -> EditProposal:
    """
    Write the proposal's value onto its entry, close the proposal row with the
    given status and, unless credit is False, credit the proposer. Shared by
    review approval and direct edits; must run inside a transaction.
    """
    field = EntryField(proposal.field_name)
    timestamp = now_iso()

    # Column name comes from the EntryField enum, never from input
    conn.execute(
        f"UPDATE catalog_entries SET {field.value} = ?, updated_at = ? WHERE id = ?",
        (proposal.new_value, timestamp, proposal.entry_id)
    )
    conn.execute(
        "UPDATE edit_proposals SET status = ?, reviewer_id = ?, reviewed_at = ?, review_note = ? "
        "WHERE id = ?",
        (status.value, reviewer_id, timestamp, note or None, proposal.id)
    )
    if credit:
        award(conn, proposal.proposer_id, 'edit_accepted', 'edit_proposal', proposal.id,
              entry_id=proposal.entry_id)

    details = {
        "proposal_id": proposal.id,
        "field_name": field.value,
        "old_value": proposal.old_value,
        "new_value": proposal.new_value,
    }
    details.update(metadata or {})
    record_activity(conn, reviewer_id, f"edit_{status.value}", "catalog_entry", proposal.entry_id, details)
    return _load_proposal(conn, proposal.id)


def propose(entry_id: str, user_id: str, field: str, new_value: str) -> EditProposal:
    """Queue a change to one field of an entry for review."""
    entry_field = _resolve_field(field)
    new_value = _clean_value(entry_field, new_value)
    rule = field_rule(entry_field)

    proposal_id = str(uuid.uuid4())
    with get_db() as conn:
        with transaction(conn):
            authorize(conn, user_id, rule.propose)
            entry = load_entry(conn, entry_id)
            current = entry.field_value(entry_field)
            if current == new_value:
                raise InvalidInput(f"{entry_field.value} already has that value")

            conn.execute(
                "INSERT INTO edit_proposals (id, entry_id, field_name, old_value, new_value, "
                "proposer_id, status, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (proposal_id, entry_id, entry_field.value, current, new_value, user_id,
                 ProposalStatus.PENDING.value, now_iso())
            )
            record_activity(conn, user_id, "edit_proposed", "catalog_entry", entry_id,
                            {"proposal_id": proposal_id, "field_name": entry_field.value})
            proposal = _load_proposal(conn, proposal_id)

    logger.log_proposal_created(proposal_id, entry_id, entry_field.value, user_id)
    return proposal


def cast_vote(proposal_id: str, voter_id: str, direction: str) -> VoteTally:
    """Advisory vote on a pending proposal. Votes never change its status."""
    with get_db() as conn:
        with transaction(conn):
            authorize(conn, voter_id, Capability.VOTE_ON_EDITS)
            _require_pending(_load_proposal(conn, proposal_id))
            return cast_target_vote(conn, VoteTarget.EDIT_PROPOSAL, proposal_id, voter_id, direction)


def review(proposal_id: str, reviewer_id: str, decision: str, note: str = "") -> EditProposal:
    """
    Approve or reject a pending proposal.

    Approval checks the proposal's snapshot against the live field first. With
    STALE_PROPOSAL_MODE=block a drifted proposal raises StaleValueConflict and
    stays pending; with 'warn' it is applied and the drift is recorded in the
    activity metadata.
    """
    try:
        decision = ReviewDecision(decision)
    except ValueError:
        raise InvalidInput("decision must be 'approve' or 'reject'") from None

    with get_db() as conn:
        with transaction(conn):
            authorize(conn, reviewer_id, Capability.APPROVE_EDITS)
            proposal = _load_proposal(conn, proposal_id)
            _require_pending(proposal)

            if decision == ReviewDecision.REJECT:
                conn.execute(
                    "UPDATE edit_proposals SET status = ?, reviewer_id = ?, reviewed_at = ?, "
                    "review_note = ? WHERE id = ?",
                    (ProposalStatus.REJECTED.value, reviewer_id, now_iso(), note or None, proposal_id)
                )
                record_activity(conn, reviewer_id, "edit_rejected", "catalog_entry", proposal.entry_id,
                                {"proposal_id": proposal_id, "field_name": proposal.field_name})
                result = _load_proposal(conn, proposal_id)
            else:
                entry = load_entry(conn, proposal.entry_id)
                live_value = entry.field_value(EntryField(proposal.field_name))
                metadata = None
                if live_value != proposal.old_value:
                    mode = config.get_stale_proposal_mode()
                    logger.log_stale_proposal(proposal_id, proposal.field_name, mode)
                    if mode == "block":
                        raise StaleValueConflict(proposal_id, proposal.field_name,
                                                 proposal.old_value, live_value)
                    metadata = {"stale": True, "live_value": live_value}
                # No karma for approving one's own proposal
                result = _apply_and_credit(conn, proposal, ProposalStatus.APPROVED, reviewer_id,
                                           note, metadata,
                                           credit=reviewer_id != proposal.proposer_id)

    logger.log_proposal_decision(proposal_id, result.status, reviewer_id, note)
    return result


def direct_edit(entry_id: str, user_id: str, field: str, new_value: str) -> EditProposal:
    """
    Apply a change immediately, without review, when the field allows it and
    the user holds its direct capability. Returns the 'applied' log row.
    """
    entry_field = _resolve_field(field)
    new_value = _clean_value(entry_field, new_value)
    rule = field_rule(entry_field)

    proposal_id = str(uuid.uuid4())
    with get_db() as conn:
        with transaction(conn):
            if rule.direct is None:
                tier = authorize(conn, user_id, rule.propose)
                logger.log_permission_denied(user_id, f"direct:{entry_field.value}", tier.value)
                raise PermissionDenied(
                    f"Field '{entry_field.value}' can only be changed through review",
                    capability=f"direct:{entry_field.value}",
                    tier=tier.value,
                )
            authorize(conn, user_id, rule.direct)

            entry = load_entry(conn, entry_id)
            current = entry.field_value(entry_field)
            if current == new_value:
                raise InvalidInput(f"{entry_field.value} already has that value")

            conn.execute(
                "INSERT INTO edit_proposals (id, entry_id, field_name, old_value, new_value, "
                "proposer_id, status, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (proposal_id, entry_id, entry_field.value, current, new_value, user_id,
                 ProposalStatus.PENDING.value, now_iso())
            )
            proposal = _load_proposal(conn, proposal_id)
            result = _apply_and_credit(conn, proposal, ProposalStatus.APPLIED, user_id)

    logger.log_proposal_decision(proposal_id, result.status, user_id)
    return result


def get_proposal(proposal_id: str) -> EditProposal:
    with get_db() as conn:
        return _load_proposal(conn, proposal_id)


def list_proposals(status: Optional[str] = None, entry_id: Optional[str] = None,
                   limit: Optional[int] = None) -> List[EditProposal]:
    """Review queue listing, newest first. Defaults to pending proposals only."""
    if status is None:
        status = ProposalStatus.PENDING.value
    else:
        try:
            status = ProposalStatus(status).value
        except ValueError:
            valid = [s.value for s in ProposalStatus]
            raise InvalidInput(f"status must be one of: {valid}") from None
    if limit is None:
        limit = config.PROPOSAL_LIST_LIMIT

    clauses = ["status = ?"]
    params: list = [status]
    if entry_id:
        clauses.append("entry_id = ?")
        params.append(entry_id)
    params.append(limit)

    with get_db() as conn:
        rows = conn.execute(
            f"SELECT * FROM edit_proposals WHERE {' AND '.join(clauses)} "
            "ORDER BY created_at DESC, rowid DESC LIMIT ?",
            params
        ).fetchall()
    return [EditProposal.from_row(row) for row in rows]


def entry_history(entry_id: str) -> List[EditProposal]:
    """Every proposal and direct edit recorded for an entry, oldest first."""
    with get_db() as conn:
        load_entry(conn, entry_id)
        rows = conn.execute(
            "SELECT * FROM edit_proposals WHERE entry_id = ? ORDER BY created_at, rowid",
            (entry_id,)
        ).fetchall()
    return [EditProposal.from_row(row) for row in rows]
