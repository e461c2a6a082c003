"""
Edit proposal workflow tests - review round trips, direct edits and stale snapshots.
"""

import pytest

from vault.core import config
from vault.core.activity import list_activity
from vault.core.catalog import get_entry
from vault.core.errors import (
    InvalidInput,
    InvalidTransition,
    NotFoundError,
    PermissionDenied,
    StaleValueConflict,
)
from vault.core.karma import EDIT_ACCEPTED_POINTS, karma_score, list_contributions
from vault.core.proposals import (
    cast_vote,
    direct_edit,
    entry_history,
    get_proposal,
    list_proposals,
    propose,
    review,
)


@pytest.fixture
def contributor(make_user):
    return make_user("contributor", karma=50)


@pytest.fixture
def trusted(make_user):
    return make_user("trusted", karma=250)


def edit_credits(user_id):
    return [c for c in list_contributions(actor_id=user_id) if c.action == 'edit_accepted']


class TestPropose:
    """Test proposal creation."""

    def test_snapshot_of_old_value(self, contributor, entry):
        proposal = propose(entry.id, contributor.id, "category", "Sport")

        assert proposal.status == "pending"
        assert proposal.old_value == "Music"
        assert proposal.new_value == "Sport"
        assert get_entry(entry.id).category == "Music"

    def test_newcomer_may_suggest_low_sensitivity_fields(self, make_user, entry):
        newcomer = make_user("newbie")
        proposal = propose(entry.id, newcomer.id, "material", "100% cotton")
        assert proposal.old_value is None

    def test_newcomer_cannot_propose_high_sensitivity_fields(self, make_user, entry):
        newcomer = make_user("newbie")
        with pytest.raises(PermissionDenied):
            propose(entry.id, newcomer.id, "subject", "Megadeth")
        assert list_proposals(entry_id=entry.id) == []

    @pytest.mark.parametrize("field,value", [
        ("colour", "red"),
        ("description", "   "),
        ("description", "Black tee"),
        ("category", "Cooking"),
    ])
    def test_invalid_proposals(self, contributor, entry, field, value):
        with pytest.raises(InvalidInput):
            propose(entry.id, contributor.id, field, value)

    def test_missing_entry(self, contributor):
        with pytest.raises(NotFoundError):
            propose("missing", contributor.id, "description", "x")


class TestReview:
    """Test approve and reject."""

    def test_approve_category_change(self, contributor, trusted, entry):
        proposal = propose(entry.id, contributor.id, "category", "Sport")
        before = karma_score(contributor.id)

        approved = review(proposal.id, trusted.id, "approve", note="matches the tag")

        assert approved.status == "approved"
        assert approved.reviewer_id == trusted.id
        assert approved.reviewed_at is not None
        assert get_entry(entry.id).category == "Sport"
        assert karma_score(contributor.id) == before + EDIT_ACCEPTED_POINTS
        assert len(edit_credits(contributor.id)) == 1

    def test_reject_leaves_entry_and_karma(self, contributor, trusted, entry):
        proposal = propose(entry.id, contributor.id, "category", "Sport")
        before = karma_score(contributor.id)

        rejected = review(proposal.id, trusted.id, "reject", note="it is a band shirt")

        assert rejected.status == "rejected"
        assert rejected.review_note == "it is a band shirt"
        assert get_entry(entry.id).category == "Music"
        assert karma_score(contributor.id) == before
        assert edit_credits(contributor.id) == []

    def test_contributor_cannot_approve(self, contributor, entry):
        proposal = propose(entry.id, contributor.id, "category", "Sport")

        with pytest.raises(PermissionDenied):
            review(proposal.id, contributor.id, "approve")

        assert get_proposal(proposal.id).status == "pending"
        assert get_entry(entry.id).category == "Music"

    def test_only_pending_can_be_reviewed(self, contributor, trusted, entry):
        proposal = propose(entry.id, contributor.id, "year", "1992")
        review(proposal.id, trusted.id, "approve")

        with pytest.raises(InvalidTransition):
            review(proposal.id, trusted.id, "reject")
        assert len(edit_credits(contributor.id)) == 1

    def test_self_approval_earns_no_credit(self, trusted, entry):
        proposal = propose(entry.id, trusted.id, "category", "Sport")
        before = karma_score(trusted.id)

        approved = review(proposal.id, trusted.id, "approve")

        assert approved.status == "approved"
        assert get_entry(entry.id).category == "Sport"
        assert karma_score(trusted.id) == before
        assert edit_credits(trusted.id) == []

    def test_invalid_decision(self, contributor, trusted, entry):
        proposal = propose(entry.id, contributor.id, "year", "1992")
        with pytest.raises(InvalidInput):
            review(proposal.id, trusted.id, "maybe")


class TestStaleProposals:
    """Test approval of proposals whose snapshot no longer matches the entry."""

    def _drift(self, contributor, trusted, entry):
        stale = propose(entry.id, contributor.id, "year", "1992")
        other = propose(entry.id, contributor.id, "year", "1993")
        review(other.id, trusted.id, "approve")
        return stale

    def test_block_mode_raises_and_keeps_pending(self, contributor, trusted, entry):
        stale = self._drift(contributor, trusted, entry)

        with pytest.raises(StaleValueConflict) as exc_info:
            review(stale.id, trusted.id, "approve")

        assert exc_info.value.expected == "1991"
        assert exc_info.value.actual == "1993"
        assert get_proposal(stale.id).status == "pending"
        assert get_entry(entry.id).year == "1993"

    def test_stale_proposal_can_still_be_rejected(self, contributor, trusted, entry):
        stale = self._drift(contributor, trusted, entry)
        assert review(stale.id, trusted.id, "reject").status == "rejected"

    def test_warn_mode_applies_and_records_drift(self, contributor, trusted, entry):
        stale = self._drift(contributor, trusted, entry)
        config.STALE_PROPOSAL_MODE = "warn"

        approved = review(stale.id, trusted.id, "approve")

        assert approved.status == "approved"
        assert get_entry(entry.id).year == "1992"
        events = list_activity(target_id=entry.id, action_type="edit_approved")
        assert events[0].metadata["stale"] is True
        assert events[0].metadata["live_value"] == "1993"


class TestProposalVotes:
    """Test advisory votes on proposals."""

    def test_trusted_votes_are_advisory(self, contributor, trusted, entry):
        proposal = propose(entry.id, contributor.id, "description", "Faded black tee")

        tally = cast_vote(proposal.id, trusted.id, "down")

        assert tally.net_score == -1
        assert get_proposal(proposal.id).status == "pending"

    def test_non_approver_vote_counts(self, contributor, make_user, entry):
        proposal = propose(entry.id, contributor.id, "description", "Faded black tee")
        voter = make_user("voter", karma=199)

        first = cast_vote(proposal.id, voter.id, "up")
        second = cast_vote(proposal.id, make_user("newbie").id, "up")

        assert first.user_vote == "up"
        assert second.upvotes == 2
        assert get_proposal(proposal.id).status == "pending"

    def test_unknown_voter_is_denied(self, contributor, entry):
        proposal = propose(entry.id, contributor.id, "description", "Faded black tee")
        with pytest.raises(PermissionDenied):
            cast_vote(proposal.id, "ghost", "up")

    def test_closed_proposals_take_no_votes(self, contributor, trusted, entry):
        proposal = propose(entry.id, contributor.id, "description", "Faded black tee")
        review(proposal.id, trusted.id, "reject")

        with pytest.raises(InvalidTransition):
            cast_vote(proposal.id, trusted.id, "up")


class TestDirectEdit:
    """Test the unreviewed edit path."""

    def test_contributor_fixes_description(self, contributor, entry):
        applied = direct_edit(entry.id, contributor.id, "description", "Black tee, single stitch")

        assert applied.status == "applied"
        assert applied.old_value == "Black tee"
        assert applied.reviewer_id == contributor.id
        assert get_entry(entry.id).description == "Black tee, single stitch"
        assert len(edit_credits(contributor.id)) == 1

    def test_newcomer_cannot_edit_directly(self, make_user, entry):
        newcomer = make_user("newbie")
        with pytest.raises(PermissionDenied):
            direct_edit(entry.id, newcomer.id, "description", "typo fix")
        assert get_entry(entry.id).description == "Black tee"

    def test_high_sensitivity_fields_have_no_direct_path(self, make_user, entry):
        admin = make_user("admin", is_admin=True)
        with pytest.raises(PermissionDenied):
            direct_edit(entry.id, admin.id, "subject", "Megadeth")
        assert get_entry(entry.id).subject == "Metallica"
        assert entry_history(entry.id) == []

    def test_history_holds_both_paths(self, contributor, trusted, entry):
        reviewed = propose(entry.id, contributor.id, "origin", "USA")
        review(reviewed.id, trusted.id, "approve")
        direct = direct_edit(entry.id, contributor.id, "body_type", "Tee")

        history = entry_history(entry.id)
        assert [(p.id, p.status) for p in history] == [(reviewed.id, "approved"), (direct.id, "applied")]
        assert list_proposals(status="applied")[0].id == direct.id
