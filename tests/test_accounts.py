"""
Account tests - usernames and single-use invite codes.
"""

import threading
from datetime import timedelta

import pytest

from vault.core.accounts import (
    create_invite,
    create_user,
    get_invite,
    get_user,
    redeem_invite,
    set_username,
    validate_username,
)
from vault.core.errors import ConflictError, InvalidInput, NotFoundError, PermissionDenied


class TestUsers:
    """Test user records and usernames."""

    def test_create_and_get(self):
        user = create_user("Alice", user_id="alice")
        assert get_user("alice") == user
        assert user.username is None
        assert not user.is_admin

    def test_duplicate_user_id(self):
        create_user(user_id="alice")
        with pytest.raises(ConflictError):
            create_user(user_id="alice")

    def test_missing_user(self):
        with pytest.raises(NotFoundError):
            get_user("ghost")

    @pytest.mark.parametrize("name", ["ab", "a" * 21, "bad name", "dash-name"])
    def test_invalid_usernames(self, name):
        with pytest.raises(InvalidInput):
            validate_username(name)

    def test_username_stored_lowercase(self, make_user):
        user = make_user("alice")
        assert set_username(user.id, "Vintage_Fan").username == "vintage_fan"

    def test_username_taken(self, make_user):
        set_username(make_user("alice").id, "collector")

        with pytest.raises(ConflictError):
            set_username(make_user("bob").id, "COLLECTOR")
        assert get_user("bob").username is None


class TestInvites:
    """Test invite issuing and redemption."""

    @pytest.fixture
    def issuer(self, make_user):
        return make_user("issuer", karma=200)

    def test_issue_requires_trust(self, make_user):
        with pytest.raises(PermissionDenied):
            create_invite(make_user("newbie").id)

    def test_redeem_once(self, make_user, issuer):
        invite = create_invite(issuer.id)
        first, second = make_user("first"), make_user("second")

        redeemed = redeem_invite(invite.code, first.id)
        assert redeemed.used_by == first.id
        assert redeemed.used_at is not None

        with pytest.raises(ConflictError):
            redeem_invite(invite.code, second.id)
        assert get_invite(invite.code).used_by == first.id

    def test_unknown_code(self, make_user):
        with pytest.raises(NotFoundError):
            redeem_invite("nope", make_user("someone").id)

    def test_expired_code(self, make_user, issuer):
        invite = create_invite(issuer.id, expires_in=timedelta(seconds=-1))
        with pytest.raises(ConflictError):
            redeem_invite(invite.code, make_user("late").id)
        assert get_invite(invite.code).used_by is None

    def test_concurrent_redemption_has_one_winner(self, make_user, issuer):
        invite = create_invite(issuer.id)
        claimants = [make_user("racer1").id, make_user("racer2").id]
        barrier = threading.Barrier(len(claimants))
        outcomes = {}

        def claim(user_id):
            barrier.wait()
            try:
                redeem_invite(invite.code, user_id)
                outcomes[user_id] = "won"
            except ConflictError:
                outcomes[user_id] = "conflict"

        threads = [threading.Thread(target=claim, args=(user_id,)) for user_id in claimants]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sorted(outcomes.values()) == ["conflict", "won"]
        winner = next(user_id for user_id, outcome in outcomes.items() if outcome == "won")
        assert get_invite(invite.code).used_by == winner
