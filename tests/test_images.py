"""
Image curation tests - primary selection, tie-breaks and the legacy fallback.
"""

import pytest

from vault.core.catalog import create_entry
from vault.core.errors import InvalidInput, NotFoundError, PermissionDenied
from vault.core.images import add_image, display_image, get_image, list_images, vote_image
from vault.core.karma import KARMA_ACTIONS, karma_score
from vault.core.schema import ItemImage, LegacyReferenceImage


def primaries(entry_id, view_type):
    return [i.id for i in list_images(entry_id, view_type) if i.is_primary]


@pytest.fixture
def uploader(make_user):
    return make_user("uploader", karma=60)


@pytest.fixture
def voters(make_user):
    return [make_user(f"voter{i}").id for i in range(8)]


class TestAddImage:
    """Test image submission and its permission gate."""

    def test_newcomer_cannot_add_images(self, make_user, entry):
        user = make_user("newbie", karma=40)

        with pytest.raises(PermissionDenied):
            add_image(entry.id, user.id, "front", "https://img.example/a.jpg")

        assert list_images(entry.id) == []
        assert karma_score(user.id) == 40

    def test_first_image_becomes_primary(self, uploader, entry):
        image = add_image(entry.id, uploader.id, "front", "https://img.example/a.jpg", caption="Front")

        assert image.is_primary
        assert image.caption == "Front"
        assert karma_score(uploader.id) == 60 + KARMA_ACTIONS['add_image']

    def test_invalid_view_type(self, uploader, entry):
        with pytest.raises(InvalidInput):
            add_image(entry.id, uploader.id, "side", "https://img.example/a.jpg")

    def test_missing_entry(self, uploader):
        with pytest.raises(NotFoundError):
            add_image("missing", uploader.id, "front", "https://img.example/a.jpg")


class TestPrimarySelection:
    """Test that the primary flag always sits on the top-scored image of its group."""

    def test_ties_go_to_earliest(self, uploader, entry):
        first = add_image(entry.id, uploader.id, "front", "https://img.example/a.jpg")
        add_image(entry.id, uploader.id, "front", "https://img.example/b.jpg")

        assert primaries(entry.id, "front") == [first.id]

    def test_overtaking_by_one_vote(self, uploader, entry, voters):
        leader = add_image(entry.id, uploader.id, "front", "https://img.example/a.jpg")
        challenger = add_image(entry.id, uploader.id, "front", "https://img.example/b.jpg")

        for voter in voters[:3]:
            vote_image(leader.id, voter, "up")
        for voter in voters[3:6]:
            vote_image(challenger.id, voter, "up")

        # 3 vs 3: the earlier submission keeps the flag
        assert get_image(leader.id).net_score == 3
        assert primaries(entry.id, "front") == [leader.id]

        vote_image(challenger.id, voters[6], "up")

        assert get_image(challenger.id).net_score == 4
        assert primaries(entry.id, "front") == [challenger.id]

    def test_retraction_restores_previous_primary(self, uploader, entry, voters):
        first = add_image(entry.id, uploader.id, "front", "https://img.example/a.jpg")
        second = add_image(entry.id, uploader.id, "front", "https://img.example/b.jpg")

        vote_image(second.id, voters[0], "up")
        assert primaries(entry.id, "front") == [second.id]

        vote_image(second.id, voters[0], "up")
        assert primaries(entry.id, "front") == [first.id]

    def test_downvotes_demote(self, uploader, entry, voters):
        first = add_image(entry.id, uploader.id, "front", "https://img.example/a.jpg")
        second = add_image(entry.id, uploader.id, "front", "https://img.example/b.jpg")

        vote_image(first.id, voters[0], "down")

        assert primaries(entry.id, "front") == [second.id]

    def test_groups_are_independent(self, uploader, entry, voters):
        front = add_image(entry.id, uploader.id, "front", "https://img.example/front.jpg")
        back_a = add_image(entry.id, uploader.id, "back", "https://img.example/back-a.jpg")
        back_b = add_image(entry.id, uploader.id, "back", "https://img.example/back-b.jpg")

        vote_image(back_b.id, voters[0], "up")

        assert primaries(entry.id, "front") == [front.id]
        assert primaries(entry.id, "back") == [back_b.id]
        assert not get_image(back_a.id).is_primary

    def test_at_most_one_primary_after_many_votes(self, uploader, entry, voters):
        images = [
            add_image(entry.id, uploader.id, "tag", f"https://img.example/{n}.jpg") for n in range(3)
        ]
        for n, voter in enumerate(voters):
            vote_image(images[n % 3].id, voter, "up" if n % 2 else "down")

        ranked = list_images(entry.id, "tag")
        assert len([i for i in ranked if i.is_primary]) == 1
        assert ranked[0].is_primary
        assert ranked[0].net_score == max(i.net_score for i in ranked)


class TestDisplayImage:
    """Test what is shown for a view."""

    def test_primary_is_displayed(self, uploader, entry):
        image = add_image(entry.id, uploader.id, "front", "https://img.example/a.jpg")

        shown = display_image(entry.id, "front")
        assert isinstance(shown, ItemImage)
        assert shown.id == image.id

    def test_legacy_reference_fallback(self, entry):
        shown = display_image(entry.id, "back")

        assert isinstance(shown, LegacyReferenceImage)
        assert shown.url == "https://img.example/metallica.jpg"
        assert shown.votable is False

    def test_nothing_to_display(self, creator):
        bare = create_entry(user_id=creator.id, subject="Slayer", category="Music")
        assert display_image(bare.id, "front") is None

    def test_invalid_view_type(self, entry):
        with pytest.raises(InvalidInput):
            display_image(entry.id, "side")
