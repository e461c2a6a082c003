"""
Credit reconciliation - award edit credits that accepted proposals are missing.

Approval and its credit normally commit together. Rows written by older code
paths or restored from backups can still lack the ledger row; this pass finds
them and awards the credit. The ledger's idempotency makes reruns harmless.
"""

from dataclasses import dataclass, field
from typing import List

from util.logging import logger
from .db import get_db, transaction
from .karma import award
from .schema import ProposalStatus


@dataclass
class ReconciliationSummary:
    """Summary of a reconciliation pass."""
    accepted_proposals: int
    missing_credits: int
    awarded: int
    dry_run: bool
    proposal_ids: List[str] = field(default_factory=list)


def find_uncredited(conn) -> List[dict]:
    """
    Approved or applied proposals with no edit_accepted ledger row for their
    proposer. Self-approved proposals earn no credit and are skipped.
    """
    rows = conn.execute(
        """
        SELECT p.id, p.entry_id, p.proposer_id FROM edit_proposals p
        WHERE p.status IN (?, ?)
          AND NOT (p.status = ? AND p.reviewer_id = p.proposer_id)
          AND NOT EXISTS (
              SELECT 1 FROM contributions c
              WHERE c.actor_id = p.proposer_id AND c.action = 'edit_accepted'
                AND c.reference_type = 'edit_proposal' AND c.reference_id = p.id
          )
        ORDER BY p.created_at, p.rowid
        """,
        (ProposalStatus.APPROVED.value, ProposalStatus.APPLIED.value, ProposalStatus.APPROVED.value)
    ).fetchall()
    return [dict(row) for row in rows]


def reconcile_edit_credits(dry_run: bool = False) -> ReconciliationSummary:
    with get_db() as conn:
        with transaction(conn):
            accepted = conn.execute(
                "SELECT COUNT(*) FROM edit_proposals WHERE status IN (?, ?)",
                (ProposalStatus.APPROVED.value, ProposalStatus.APPLIED.value)
            ).fetchone()[0]
            missing = find_uncredited(conn)

            awarded = 0
            if not dry_run:
                for row in missing:
                    if award(conn, row['proposer_id'], 'edit_accepted', 'edit_proposal', row['id'],
                             entry_id=row['entry_id']):
                        awarded += 1

    summary = ReconciliationSummary(
        accepted_proposals=accepted,
        missing_credits=len(missing),
        awarded=awarded,
        dry_run=dry_run,
        proposal_ids=[row['id'] for row in missing],
    )
    logger.log_operation("reconcile.edit_credits", "dry_run" if dry_run else "success", {
        "accepted_proposals": summary.accepted_proposals,
        "missing_credits": summary.missing_credits,
        "awarded": summary.awarded,
    })
    return summary
