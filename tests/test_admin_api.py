from datetime import timedelta

import pytest

from facevote.security import hash_password
from facevote.seed_admin import seed_admin
from tests.conftest import PASSWORD, add_candidate, add_voter, auth_header

ADMIN_EMAIL = "admin@example.com"


@pytest.fixture
def admin_headers(client, store, clock):
    seed_admin(store, "Admin", ADMIN_EMAIL, PASSWORD, clock=clock)
    return auth_header(client, ADMIN_EMAIL)


@pytest.fixture
def voter(store):
    return add_voter(store, email="voter@example.com", password_hash=hash_password(PASSWORD), verified=False)


class TestAdminAccess:
    def test_voter_is_forbidden(self, client, voter):
        headers = auth_header(client, voter.email)
        resp = client.get("/api/admin/voters", headers=headers)
        assert resp.status_code == 403

    def test_list_voters_hides_secrets(self, client, admin_headers, voter):
        resp = client.get("/api/admin/voters", headers=admin_headers)
        assert resp.status_code == 200
        voters = resp.json()
        assert [v["email"] for v in voters] == ["voter@example.com"]
        assert "password_hash" not in voters[0]
        assert "biometrics" not in voters[0]


class TestVerification:
    """Admins move pending voters to verified or rejected, once."""

    def test_verify(self, client, admin_headers, voter):
        resp = client.put(f"/api/admin/verify-voter/{voter.id}", json={"status": "verified"},
                          headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json()["user"]["verification_status"] == "verified"

    def test_no_second_transition(self, client, admin_headers, voter):
        client.put(f"/api/admin/verify-voter/{voter.id}", json={"status": "rejected"}, headers=admin_headers)
        resp = client.put(f"/api/admin/verify-voter/{voter.id}", json={"status": "verified"},
                          headers=admin_headers)
        assert resp.status_code == 400
        assert resp.json()["detail"]["code"] == "InvalidStatusTransition"

    def test_bad_status(self, client, admin_headers, voter):
        resp = client.put(f"/api/admin/verify-voter/{voter.id}", json={"status": "pending"},
                          headers=admin_headers)
        assert resp.status_code == 400

    def test_unknown_voter(self, client, admin_headers):
        resp = client.put("/api/admin/verify-voter/missing", json={"status": "verified"}, headers=admin_headers)
        assert resp.status_code == 404


class TestElectionAdmin:
    def test_candidates_and_window(self, client, admin_headers, clock):
        resp = client.post("/api/admin/candidates", json={"name": "Bob", "party": "Blue"}, headers=admin_headers)
        assert resp.status_code == 201
        assert resp.json()["vote_count"] == 0

        start = clock.now()
        body = {"start_date": start.isoformat(), "end_date": (start + timedelta(days=1)).isoformat(),
                "title": "Spring"}
        assert client.put("/api/admin/election", json=body, headers=admin_headers).status_code == 200
        assert client.get("/api/election").json()["title"] == "Spring"

    def test_reset_needs_password(self, client, admin_headers):
        resp = client.post("/api/admin/election/reset", json={"password": "wrong"}, headers=admin_headers)
        assert resp.status_code == 401
        assert resp.json()["detail"]["message"] == "Password confirmation failed"

    def test_reset(self, client, admin_headers, store):
        add_candidate(store, vote_count=4)
        add_voter(store, email="done@example.com", has_voted=True)

        resp = client.post("/api/admin/election/reset", json={"password": PASSWORD}, headers=admin_headers)

        assert resp.status_code == 200
        assert resp.json()["candidates_reset"] == 1
        assert resp.json()["voters_reset"] == 1

    def test_emergency_stop_closes_voting(self, client, admin_headers, store):
        voter = add_voter(store, email="late@example.com", password_hash=hash_password(PASSWORD))
        candidate = add_candidate(store)

        resp = client.post("/api/admin/election/emergency-stop", json={"password": PASSWORD},
                           headers=admin_headers)
        assert resp.status_code == 200

        vote = client.post("/api/vote", json={"candidate_id": candidate.id},
                           headers=auth_header(client, voter.email))
        assert vote.status_code == 403
        assert vote.json()["detail"]["code"] == "ElectionClosed"

    def test_results_publishing(self, client, admin_headers, store):
        add_candidate(store, "Bob", vote_count=2)
        assert client.get("/api/election/results").status_code == 403

        resp = client.put("/api/admin/election/publish", json={"publish": True}, headers=admin_headers)
        assert resp.json()["results_published"] is True

        results = client.get("/api/election/results").json()
        assert results["winner"]["name"] == "Bob"
        assert results["total_votes"] == 2


def test_health(client):
    assert client.get("/health").json()["status"] == "healthy"


class TestNaiveWindow:
    """Dates sent without an offset are read as UTC."""

    def test_vote_and_stop(self, client, admin_headers, store):
        voter = add_voter(store, email="naive@example.com", password_hash=hash_password(PASSWORD))
        candidate = add_candidate(store)
        body = {"start_date": "2025-12-31T00:00:00", "end_date": "2026-01-02T00:00:00"}
        assert client.put("/api/admin/election", json=body, headers=admin_headers).status_code == 200
        headers = auth_header(client, voter.email)

        vote = client.post("/api/vote", json={"candidate_id": candidate.id}, headers=headers)
        stop = client.post("/api/admin/election/emergency-stop", json={"password": PASSWORD},
                           headers=admin_headers)

        assert vote.status_code == 200
        assert stop.status_code == 200
        assert client.get("/api/election").json()["end_date"].startswith("2026-01-01T09:00:00")

    def test_mixed_offsets(self, client, admin_headers):
        body = {"start_date": "2025-12-31T00:00:00", "end_date": "2026-01-02T00:00:00+00:00"}
        assert client.put("/api/admin/election", json=body, headers=admin_headers).status_code == 200
