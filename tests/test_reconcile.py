"""
Credit reconciliation tests.
"""

import sys
from unittest.mock import patch

from vault.core.db import get_db, transaction
from vault.core.karma import EDIT_ACCEPTED_POINTS, karma_score
from vault.core.proposals import propose, review
from vault.core.reconcile import reconcile_edit_credits


def drop_edit_credit(proposal_id):
    """Simulate an approval written without its ledger row."""
    with get_db() as conn:
        with transaction(conn):
            conn.execute(
                "DELETE FROM contributions WHERE action = 'edit_accepted' AND reference_id = ?",
                (proposal_id,)
            )


class TestReconcile:
    """Test detection and repair of missing edit credits."""

    def test_nothing_to_do(self, make_user, entry):
        proposer = make_user("proposer", karma=50)
        proposal = propose(entry.id, proposer.id, "year", "1992")
        review(proposal.id, make_user("reviewer", karma=200).id, "approve")

        summary = reconcile_edit_credits()

        assert summary.accepted_proposals == 1
        assert summary.missing_credits == 0
        assert summary.awarded == 0

    def test_awards_missing_credit_once(self, make_user, entry):
        proposer = make_user("proposer", karma=50)
        proposal = propose(entry.id, proposer.id, "year", "1992")
        review(proposal.id, make_user("reviewer", karma=200).id, "approve")
        drop_edit_credit(proposal.id)
        assert karma_score(proposer.id) == 50

        dry = reconcile_edit_credits(dry_run=True)
        assert dry.proposal_ids == [proposal.id]
        assert dry.awarded == 0
        assert karma_score(proposer.id) == 50

        summary = reconcile_edit_credits()
        assert summary.awarded == 1
        assert karma_score(proposer.id) == 50 + EDIT_ACCEPTED_POINTS

        assert reconcile_edit_credits().missing_credits == 0

    def test_self_approved_proposals_stay_uncredited(self, make_user, entry):
        trusted = make_user("trusted", karma=250)
        review(propose(entry.id, trusted.id, "year", "1992").id, trusted.id, "approve")

        summary = reconcile_edit_credits()

        assert summary.accepted_proposals == 1
        assert summary.missing_credits == 0
        assert karma_score(trusted.id) == 250

    def test_rejected_and_pending_are_ignored(self, make_user, entry):
        proposer = make_user("proposer", karma=50)
        reviewer = make_user("reviewer", karma=200)
        review(propose(entry.id, proposer.id, "year", "1992").id, reviewer.id, "reject")
        propose(entry.id, proposer.id, "origin", "USA")

        summary = reconcile_edit_credits()

        assert summary.accepted_proposals == 0
        assert summary.missing_credits == 0


class TestReconcileScript:
    """Test the command-line wrapper."""

    def test_dry_run_reports_without_awarding(self, make_user, entry, capsys):
        from scripts.reconcile_credits import main

        proposer = make_user("proposer", karma=50)
        proposal = propose(entry.id, proposer.id, "year", "1992")
        review(proposal.id, make_user("reviewer", karma=200).id, "approve")
        drop_edit_credit(proposal.id)

        with patch.object(sys, "argv", ["reconcile_credits.py", "--dry-run"]):
            assert main() == 0

        output = capsys.readouterr().out
        assert "DRY RUN" in output
        assert proposal.id in output
        assert karma_score(proposer.id) == 50
