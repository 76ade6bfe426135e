import uuid
from datetime import datetime, timedelta, timezone

from jose import jwt

from app.config import settings
from app.db.models import Campaign
from app.db.repositories.campaigns import CampaignsRepository


def _seed(db_session, user_id: str, name: str, **fields):
    fields.setdefault("from_name", "Acme")
    fields.setdefault("from_email", "team@acme.com")
    return CampaignsRepository(db_session).create(user_id, name, commit=False, **fields)


def _campaign_body(**overrides):
    body = {
        "name": "April product update",
        "from_name": "Acme",
        "from_email": "team@acme.com",
        "subject_line": "What shipped in April",
    }
    body.update(overrides)
    return body


def test_create_campaign_defaults_to_draft(api_client, auth_context):
    resp = api_client.post("/campaigns", json=_campaign_body(list_ids=["list-1"]))
    assert resp.status_code == 201
    body = resp.json()
    assert body["success"] is True
    data = body["data"]
    assert data["user_id"] == auth_context.user_id
    assert data["status"] == "draft"
    assert data["type"] == "one-time"
    assert data["ai_generated"] is False
    assert data["send_config"] == {}
    assert data["list_ids"] == ["list-1"]
    assert data["stats"] == {"sent": 0, "delivered": 0, "opened": 0, "clicked": 0, "bounced": 0}
    uuid.UUID(data["id"])


def test_create_campaign_validation_errors(api_client):
    body = _campaign_body()
    del body["from_email"]
    resp = api_client.post("/campaigns", json=body)
    assert resp.status_code == 400
    payload = resp.json()
    assert payload["success"] is False
    assert payload["error"] == "Validation failed"
    assert any(detail["path"].endswith("from_email") for detail in payload["details"])

    bad_email = api_client.post("/campaigns", json=_campaign_body(from_email="not-an-email"))
    assert bad_email.status_code == 400


def test_list_campaigns_paginates(api_client, db_session, auth_context):
    start = datetime(2026, 1, 1, tzinfo=timezone.utc)
    for index in range(25):
        _seed(db_session, auth_context.user_id, f"Campaign {index:02d}", created_at=start + timedelta(minutes=index))

    resp = api_client.get("/campaigns", params={"page": 2})
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert len(data["campaigns"]) == 12
    assert data["pagination"] == {"page": 2, "limit": 12, "total": 25, "totalPages": 3}
    # Newest first: page two starts at the 13th most recent campaign.
    assert data["campaigns"][0]["name"] == "Campaign 12"

    last_page = api_client.get("/campaigns", params={"page": 3}).json()["data"]
    assert [campaign["name"] for campaign in last_page["campaigns"]] == ["Campaign 00"]


def test_list_campaigns_filters(api_client, db_session, auth_context):
    _seed(db_session, auth_context.user_id, "Spring Sale")
    _seed(db_session, auth_context.user_id, "Summer sale", status="sent")
    _seed(db_session, auth_context.user_id, "Weekly digest", type="sequence")
    _seed(db_session, str(uuid.uuid4()), "Someone else's sale")

    search = api_client.get("/campaigns", params={"search": "SALE"}).json()["data"]
    assert sorted(campaign["name"] for campaign in search["campaigns"]) == ["Spring Sale", "Summer sale"]

    sent = api_client.get("/campaigns", params={"status": "sent"}).json()["data"]
    assert [campaign["name"] for campaign in sent["campaigns"]] == ["Summer sale"]

    sequences = api_client.get("/campaigns", params={"type": "sequence"}).json()["data"]
    assert [campaign["name"] for campaign in sequences["campaigns"]] == ["Weekly digest"]
    assert sequences["pagination"]["totalPages"] == 1


def test_empty_list_has_zero_pages(api_client):
    data = api_client.get("/campaigns").json()["data"]
    assert data["campaigns"] == []
    assert data["pagination"]["total"] == 0
    assert data["pagination"]["totalPages"] == 0


def test_limit_is_bounded(api_client):
    resp = api_client.get("/campaigns", params={"limit": 500})
    assert resp.status_code == 400


def test_get_and_delete_campaign(api_client):
    created = api_client.post("/campaigns", json=_campaign_body()).json()["data"]

    fetched = api_client.get(f"/campaigns/{created['id']}")
    assert fetched.status_code == 200
    assert fetched.json()["data"]["name"] == "April product update"

    deleted = api_client.delete(f"/campaigns/{created['id']}")
    assert deleted.status_code == 200
    assert deleted.json() == {"success": True, "data": {"id": created["id"]}}

    missing = api_client.get(f"/campaigns/{created['id']}")
    assert missing.status_code == 404
    assert missing.json() == {"success": False, "error": "Campaign not found"}
    assert api_client.delete(f"/campaigns/{created['id']}").status_code == 404


def test_update_campaign_applies_partial_changes(api_client, db_session, auth_context):
    stale = datetime(2020, 1, 1, tzinfo=timezone.utc)
    campaign = _seed(
        db_session, auth_context.user_id, "Draft", subject_line="Old subject", created_at=stale, updated_at=stale
    )

    resp = api_client.put(
        f"/campaigns/{campaign.id}",
        json={"name": "Renamed", "status": "scheduled", "subject_line": None, "stats": {"sent": 99}},
    )
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["name"] == "Renamed"
    assert data["status"] == "scheduled"
    assert data["subject_line"] is None
    assert data["from_email"] == "team@acme.com"
    assert data["stats"] == {"sent": 0, "delivered": 0, "opened": 0, "clicked": 0, "bounced": 0}
    assert not data["updated_at"].startswith("2020-01-01")
    assert data["created_at"].startswith("2020-01-01")

    assert api_client.get(f"/campaigns/{campaign.id}").json()["data"]["name"] == "Renamed"


def test_update_campaign_rejects_invalid_changes(api_client, db_session, auth_context):
    campaign = _seed(db_session, auth_context.user_id, "Draft")

    cleared = api_client.put(f"/campaigns/{campaign.id}", json={"name": None})
    assert cleared.status_code == 400
    assert cleared.json()["error"] == "Validation failed"
    assert "name" in cleared.json()["details"][0]["message"]

    bad_status = api_client.put(f"/campaigns/{campaign.id}", json={"status": "archived"})
    assert bad_status.status_code == 400

    bad_email = api_client.put(f"/campaigns/{campaign.id}", json={"from_email": "nope"})
    assert bad_email.status_code == 400


def test_update_campaign_is_scoped_to_owner(api_client, db_session):
    other = _seed(db_session, str(uuid.uuid4()), "Private launch")
    resp = api_client.put(f"/campaigns/{other.id}", json={"name": "Hijacked"})
    assert resp.status_code == 404
    assert resp.json() == {"success": False, "error": "Campaign not found"}
    assert db_session.get(Campaign, other.id).name == "Private launch"

    missing = api_client.put(f"/campaigns/{uuid.uuid4()}", json={"name": "Ghost"})
    assert missing.status_code == 404


def test_create_campaign_ignores_client_stats(api_client):
    resp = api_client.post("/campaigns", json=_campaign_body(stats={"sent": 12, "opened": 7}, status="sent"))
    assert resp.status_code == 201
    data = resp.json()["data"]
    assert data["status"] == "draft"
    assert data["stats"] == {"sent": 0, "delivered": 0, "opened": 0, "clicked": 0, "bounced": 0}


def test_other_users_campaigns_are_not_visible(api_client, db_session):
    other = _seed(db_session, str(uuid.uuid4()), "Private launch")
    resp = api_client.get(f"/campaigns/{other.id}")
    assert resp.status_code == 404


def test_requests_without_token_are_rejected(anonymous_client):
    resp = anonymous_client.get("/campaigns")
    assert resp.status_code == 401
    assert resp.json() == {"success": False, "error": "Unauthorized"}

    bad = anonymous_client.get("/campaigns", headers={"Authorization": "Bearer not-a-jwt"})
    assert bad.status_code == 401


def test_supabase_token_authenticates(anonymous_client):
    user_id = str(uuid.uuid4())
    token = jwt.encode(
        {"sub": user_id, "aud": "authenticated", "email": "owner@example.com"},
        settings.SUPABASE_JWT_SECRET,
        algorithm="HS256",
    )
    headers = {"Authorization": f"Bearer {token}"}
    created = anonymous_client.post("/campaigns", json=_campaign_body(), headers=headers)
    assert created.status_code == 201
    assert created.json()["data"]["user_id"] == user_id

    wrong_audience = jwt.encode({"sub": user_id, "aud": "anon"}, settings.SUPABASE_JWT_SECRET)
    resp = anonymous_client.get("/campaigns", headers={"Authorization": f"Bearer {wrong_audience}"})
    assert resp.status_code == 401
