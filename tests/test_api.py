"""
HTTP API tests - routing, X-User-Id handling and error status mapping.
"""

import pytest
from fastapi.testclient import TestClient

from vault.api.main import app, get_classifier
from vault.core.classifier import ClassificationResult, MockClassifier


@pytest.fixture
def client():
    return TestClient(app)


def as_user(user_id):
    return {"X-User-Id": user_id}


@pytest.fixture
def api_entry(client, creator):
    response = client.post("/entries", headers=as_user(creator.id), json={
        "subject": "Metallica",
        "category": "Music",
        "year": "1991",
        "reference_image_url": "https://img.example/metallica.jpg",
    })
    assert response.status_code == 201
    return response.json()


class TestBasics:
    """Test health and identity handling."""

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["db_health"] is True

    def test_register_and_standing(self, client):
        response = client.post("/users", headers=as_user("alice"), json={"display_name": "Alice"})
        assert response.status_code == 201

        standing = client.get("/users/alice").json()
        assert standing["karma"] == 0
        assert standing["tier"] == "newcomer"
        assert "create_entry" in standing["capabilities"]
        assert standing["next_tier"] == "contributor"
        assert standing["karma_to_next_tier"] == 50

    def test_missing_header(self, client):
        response = client.post("/entries", json={"subject": "Metallica", "category": "Music"})
        assert response.status_code == 401

    def test_unknown_user_is_forbidden(self, client):
        response = client.post("/entries", headers=as_user("ghost"),
                               json={"subject": "Metallica", "category": "Music"})
        assert response.status_code == 403
        assert response.json()["error_type"] == "PermissionDenied"


class TestErrorMapping:
    """Test vault errors map to status codes."""

    def test_not_found(self, client):
        assert client.get("/entries/missing").status_code == 404

    def test_invalid_input(self, client, creator):
        response = client.post("/entries", headers=as_user(creator.id),
                               json={"subject": "Metallica", "category": "Cooking"})
        assert response.status_code == 400
        assert response.json()["error_type"] == "InvalidInput"

    def test_schema_validation(self, client, creator, api_entry):
        response = client.post(f"/entries/{api_entry['id']}/vote", headers=as_user(creator.id),
                               json={"direction": "sideways"})
        assert response.status_code == 422

    def test_conflict_on_repeat_verification(self, client, make_user, api_entry):
        verifier = make_user("verifier")
        url = f"/entries/{api_entry['id']}/verify"
        assert client.post(url, headers=as_user(verifier.id)).status_code == 200
        assert client.post(url, headers=as_user(verifier.id)).status_code == 409

    def test_permission_details(self, client, make_user, api_entry):
        contributor = make_user("contributor", karma=50)
        proposal = client.post(f"/entries/{api_entry['id']}/proposals", headers=as_user(contributor.id),
                               json={"field": "category", "new_value": "Sport"}).json()

        response = client.post(f"/proposals/{proposal['id']}/review", headers=as_user(contributor.id),
                               json={"decision": "approve"})

        assert response.status_code == 403
        assert response.json()["details"] == {"capability": "approve_edits", "tier": "contributor"}

    def test_upstream_failure(self, client, creator):
        app.dependency_overrides[get_classifier] = lambda: MockClassifier(error=ConnectionError("down"))
        try:
            response = client.post("/match/classify", json={"images": ["https://img.example/a.jpg"]})
        finally:
            app.dependency_overrides.clear()
        assert response.status_code == 502


class TestWorkflow:
    """Test the main flows end to end over HTTP."""

    def test_proposal_approval(self, client, make_user, api_entry):
        contributor = make_user("contributor", karma=50)
        trusted = make_user("trusted", karma=250)

        created = client.post(f"/entries/{api_entry['id']}/proposals", headers=as_user(contributor.id),
                              json={"field": "category", "new_value": "Sport"})
        assert created.status_code == 201
        assert [p["id"] for p in client.get("/proposals").json()["proposals"]] == [created.json()["id"]]

        reviewed = client.post(f"/proposals/{created.json()['id']}/review", headers=as_user(trusted.id),
                               json={"decision": "approve", "note": "tour shirt"})

        assert reviewed.status_code == 200
        assert reviewed.json()["status"] == "approved"
        assert client.get(f"/entries/{api_entry['id']}").json()["category"] == "Sport"
        assert client.get(f"/users/{contributor.id}").json()["karma"] == 53

    def test_stale_approval_conflict(self, client, make_user, api_entry):
        contributor = make_user("contributor", karma=50)
        trusted = make_user("trusted", karma=250)
        url = f"/entries/{api_entry['id']}/proposals"
        stale = client.post(url, headers=as_user(contributor.id), json={"field": "year", "new_value": "1992"}).json()
        other = client.post(url, headers=as_user(contributor.id), json={"field": "year", "new_value": "1993"}).json()
        client.post(f"/proposals/{other['id']}/review", headers=as_user(trusted.id), json={"decision": "approve"})

        response = client.post(f"/proposals/{stale['id']}/review", headers=as_user(trusted.id),
                               json={"decision": "approve"})

        assert response.status_code == 409
        assert response.json()["error_type"] == "StaleValueConflict"
        assert response.json()["details"]["actual"] == "1993"

    def test_images_and_display(self, client, make_user, api_entry):
        uploader = make_user("uploader", karma=60)
        entry_id = api_entry["id"]

        legacy = client.get(f"/entries/{entry_id}/images/front/display").json()
        assert legacy == {
            "entry_id": entry_id, "view_type": "front", "url": "https://img.example/metallica.jpg",
            "image_id": None, "votable": False, "legacy": True,
        }

        image = client.post(f"/entries/{entry_id}/images", headers=as_user(uploader.id),
                            json={"view_type": "front", "url": "https://img.example/a.jpg"}).json()
        tally = client.post(f"/images/{image['id']}/vote", headers=as_user(uploader.id),
                            json={"direction": "up"}).json()
        assert tally == {"upvotes": 1, "downvotes": 0, "net_score": 1, "user_vote": "up"}

        shown = client.get(f"/entries/{entry_id}/images/front/display").json()
        assert shown["image_id"] == image["id"]
        assert shown["votable"] is True

    def test_tags(self, client, creator, api_entry):
        url = f"/entries/{api_entry['id']}/tags"
        assert client.post(url, headers=as_user(creator.id), json={"name": "Single Stitch"}).status_code == 201
        assert client.post(url, headers=as_user(creator.id), json={"name": "single-stitch"}).status_code == 409

        suggestions = client.get("/tags/search", params={"prefix": "sing"}).json()
        assert [t["slug"] for t in suggestions] == ["single-stitch"]

    def test_classify_returns_matches(self, client, api_entry):
        result = ClassificationResult(subject="Metallica", category="Music", confidence=90)
        app.dependency_overrides[get_classifier] = lambda: MockClassifier(result)
        try:
            response = client.post("/match/classify", json={"images": ["https://img.example/a.jpg"]})
        finally:
            app.dependency_overrides.clear()

        body = response.json()
        assert response.status_code == 200
        assert body["classification"]["subject"] == "Metallica"
        assert [(m["entry"]["id"], m["similarity"]) for m in body["matches"]] == [(api_entry["id"], 100)]

    def test_invite_race_loser_gets_conflict(self, client, make_user):
        issuer = make_user("issuer", karma=200)
        code = client.post("/invites", headers=as_user(issuer.id), json={}).json()["code"]

        first = client.post("/invites/redeem", headers=as_user(make_user("a").id), json={"code": code})
        second = client.post("/invites/redeem", headers=as_user(make_user("b").id), json={"code": code})

        assert first.status_code == 200
        assert second.status_code == 409

    def test_reconcile_requires_admin(self, client, make_user):
        assert client.post("/admin/reconcile-credits", headers=as_user(make_user("u", karma=900).id)).status_code == 403

        admin = make_user("admin", is_admin=True)
        response = client.post("/admin/reconcile-credits", params={"dry_run": True}, headers=as_user(admin.id))
        assert response.status_code == 200
        assert response.json()["dry_run"] is True
