"""API tests: watch lifecycle for users and guests, ad-hoc search, admin endpoints."""
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from listingwatch.core.auth import rate_limit_admin, rate_limit_public
from listingwatch.core.security import create_access_token
from listingwatch.db.session import get_db
from listingwatch.main import app
from listingwatch.models import Base, WatchMatch
from tests.conftest import FakeCatalog, make_listing, make_record, seed_listings

ADMIN = {"X-Admin-Key": "test-admin-key"}
ASUNTO = [{"field_path": "tyyppi", "kind": "exact_or_set", "values": ["Asunto"]}]


def _bearer(user_id: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


@pytest.fixture()
def api_session():
    """Sessionmaker over a single shared in-memory connection (TestClient runs in another thread)."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    Session = sessionmaker(bind=engine)
    yield Session
    engine.dispose()


@pytest.fixture()
def client(api_session):
    def override_get_db():
        db = api_session()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    rate_limit_public._hits.clear()
    rate_limit_admin._hits.clear()
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture()
def seed(api_session):
    def _seed(*ids, **attrs):
        db = api_session()
        try:
            seed_listings(db, [
                make_listing(id=i, title=f"Asunto {i}", attributes=attrs or {"tyyppi": "Asunto"}) for i in ids
            ])
        finally:
            db.close()
    return _seed


def _create(client, headers=None, **body):
    payload = {"name": "Asunnot", "category": "asunnot", "criteria": ASUNTO}
    payload.update(body)
    return client.post("/api/watches", json=payload, headers=headers or {})


@pytest.mark.integration
class TestUserWatches:

    def test_create_run_and_new_listing(self, client, seed):
        seed("1", "2")
        resp = _create(client, _bearer("alice"))
        assert resp.status_code == 201
        data = resp.json()
        assert data["seen_count"] == 2
        assert data["is_guest"] is False
        assert data["deletion_token"] is None
        assert data["criteria_summary"] == "tyyppi: Asunto"

        run = client.post(f"/api/watches/{data['id']}/run", headers=_bearer("alice"))
        assert run.status_code == 200
        assert run.json()["new_count"] == 0
        assert run.json()["total_current_matches"] == 2

        seed("3")
        assert client.get(f"/api/watches/{data['id']}/new-count", headers=_bearer("alice")).json()["new_count"] == 1
        run = client.post(f"/api/watches/{data['id']}/run", headers=_bearer("alice")).json()
        assert [l["id"] for l in run["new_listings"]] == ["3"]

        matches = client.get(f"/api/watches/{data['id']}/matches", headers=_bearer("alice")).json()
        assert [m["listing_id"] for m in matches] == ["3"]

    def test_list_get_rename_delete(self, client):
        watch_id = _create(client, _bearer("alice")).json()["id"]
        _create(client, _bearer("bob"), name="Bobin")

        listing = client.get("/api/watches", headers=_bearer("alice")).json()
        assert listing["total"] == 1

        assert client.get(f"/api/watches/{watch_id}", headers=_bearer("alice")).status_code == 200
        assert client.get(f"/api/watches/{watch_id}", headers=_bearer("bob")).status_code == 403
        assert client.get("/api/watches/missing", headers=_bearer("alice")).status_code == 404

        renamed = client.patch(f"/api/watches/{watch_id}", json={"name": "Uusi"}, headers=_bearer("alice"))
        assert renamed.json()["name"] == "Uusi"

        assert client.delete(f"/api/watches/{watch_id}", headers=_bearer("bob")).status_code == 404
        assert client.delete(f"/api/watches/{watch_id}", headers=_bearer("alice")).status_code == 204
        assert client.get("/api/watches", headers=_bearer("alice")).json()["total"] == 0

    def test_run_by_non_owner_forbidden(self, client):
        watch_id = _create(client, _bearer("alice")).json()["id"]
        assert client.post(f"/api/watches/{watch_id}/run", headers=_bearer("bob")).status_code == 403

    def test_anonymous_requests_rejected(self, client):
        assert client.get("/api/watches").status_code == 401
        assert _create(client).status_code == 401
        assert client.get("/api/watches", headers={"Authorization": "Bearer not-a-jwt"}).status_code == 401

    def test_invalid_payload(self, client):
        resp = _create(client, _bearer("alice"), criteria=[{"field_path": "x", "kind": "range", "values": []}])
        assert resp.status_code == 422
        assert _create(client, _bearer("alice"), name="   ").status_code == 422

    def test_legacy_criteria_shape_accepted(self, client):
        resp = _create(client, _bearer("alice"), criteria=[{"name": "tyyppi", "values": ["Asunto"]}])
        assert resp.status_code == 201
        assert resp.json()["criteria"] == ASUNTO


@pytest.mark.integration
class TestGuestWatches:

    def test_guest_lifecycle(self, client, api_session):
        resp = _create(client, guest_email="Guest@Example.com")
        assert resp.status_code == 201
        data = resp.json()
        token = data["deletion_token"]
        assert token
        assert data["is_guest"] is True
        assert data["expires_at"] is not None

        guest = {"X-Guest-Email": "guest@example.com", "X-Guest-Token": token}
        assert client.get("/api/watches", headers=guest).json()["total"] == 1
        wrong = {"X-Guest-Email": "guest@example.com", "X-Guest-Token": "nope"}
        assert client.post(f"/api/watches/{data['id']}/run", headers=wrong).status_code == 403

        assert client.delete("/api/watches/by-token/nope").status_code == 404
        assert client.delete(f"/api/watches/by-token/{token}").status_code == 204
        assert client.get("/api/watches", headers=guest).json()["total"] == 0

    def test_bad_guest_email(self, client):
        assert _create(client, guest_email="not-an-email").status_code == 422


@pytest.mark.integration
class TestSearch:

    def test_search(self, client, seed):
        seed("1", hinta=50000)
        seed("2", hinta=300000)
        body = {"criteria": [{"field_path": "hinta", "kind": "range", "values": ["40000", "100000"]}], "debug": True}
        data = client.post("/api/search", json=body).json()
        assert data["total_found"] == 1
        assert data["posts"][0]["id"] == "1"
        assert data["criteria"] == {"hinta_min": 40000, "hinta_max": 100000}
        assert data["posts"][0]["matched_criteria"][0]["matched"] is True

    def test_fields(self, client, seed):
        seed("1", hinta=1, sijainti="Espoo")
        data = client.get("/api/search/fields", params={"category": "asunnot"}).json()
        assert data["categories"] == ["asunnot"]
        assert data["fields"] == ["hinta", "sijainti"]


@pytest.mark.integration
class TestAdmin:

    def test_requires_key(self, client):
        assert client.post("/api/admin/watches/run").status_code == 401
        assert client.post("/api/admin/watches/run", headers={"X-Admin-Key": "wrong"}).status_code == 403

    def test_run_all_and_status(self, client, seed, api_session):
        _create(client, _bearer("alice"))
        seed("1")
        report = client.post("/api/admin/watches/run", headers=ADMIN).json()
        assert report["watches_processed"] == 1
        assert report["total_new_matches"] == 1
        assert report["trigger"] == "manual"

        status = client.get("/api/admin/watches/status", headers=ADMIN).json()
        assert status["watch_count"] == 1
        assert status["match_count"] == 1
        assert status["last_run"]["new_matches"] == 1
        assert status["scheduler"]["enabled"] is False

        recent = client.get("/api/admin/watches/recent-matches", headers=ADMIN).json()
        assert recent[0]["listing_id"] == "1"

    def test_invalid_trigger(self, client):
        assert client.post("/api/admin/watches/run", params={"trigger": "cron"}, headers=ADMIN).status_code == 422

    def test_sweep(self, client, api_session):
        _create(client, _bearer("alice"))
        resp = client.post("/api/admin/watches/sweep", headers=ADMIN)
        assert resp.json() == {"expired_swept": 0, "events_purged": 0}
        db = api_session()
        try:
            assert db.query(WatchMatch).count() == 0
        finally:
            db.close()

    def test_field_analysis_csv(self, client, seed):
        seed("1", hinta=1)
        resp = client.get("/api/admin/fields/analysis", params={"format": "csv"}, headers=ADMIN)
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/csv")
        assert resp.text.splitlines()[0].startswith("Field Name,Usage Count")

    def test_field_analysis_catalog_down(self, client):
        down = FakeCatalog([make_record("1")], fail_on_page=1)
        with patch("listingwatch.api.routes.admin.build_catalog", return_value=down):
            resp = client.get("/api/admin/fields/analysis", headers=ADMIN)
        assert resp.status_code == 503


@pytest.mark.integration
def test_health_and_headers(client, api_session):
    with patch("listingwatch.api.routes.health.check_db_connection", return_value=True), \
            patch("listingwatch.api.routes.health.SessionLocal", api_session):
        resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["watches"] == 0
    assert resp.headers["X-Frame-Options"] == "DENY"


@pytest.mark.integration
def test_health_degraded(client):
    with patch("listingwatch.api.routes.health.check_db_connection", return_value=False):
        assert client.get("/health").status_code == 503
