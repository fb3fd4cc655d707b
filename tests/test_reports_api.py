"""Reports API: submission, moderation and visibility."""

from tests.conftest import auth_header, make_profile


def _submit(client, user_id, **body):
    payload = {"title": "Pothole on 5th", "description": "Deep one near the bus stop"}
    payload.update(body)
    r = client.post("/reports", json=payload, headers=auth_header(user_id))
    assert r.status_code == 201
    return r.json()


def test_submit_requires_authentication(client):
    r = client.post("/reports", json={"title": "x"})
    assert r.status_code == 401


def test_submit_creates_pending_report(client, db):
    owner = make_profile(db)
    data = _submit(client, owner.id, location={"lat": 4.96, "lng": 8.34, "address": "5th Ave"})

    assert data["status"] == "pending"
    assert data["owner_id"] == owner.id
    assert data["location"] == {"lat": 4.96, "lng": 8.34, "address": "5th Ave"}
    assert data["votes"] == 0
    assert data["comments_count"] == 0


def test_pending_report_hidden_from_others(client, db):
    owner = make_profile(db)
    stranger = make_profile(db)
    admin = make_profile(db, role="admin")
    report_id = _submit(client, owner.id)["id"]

    assert client.get(f"/reports/{report_id}").status_code == 404
    assert client.get(f"/reports/{report_id}", headers=auth_header(stranger.id)).status_code == 404
    assert client.get(f"/reports/{report_id}", headers=auth_header(owner.id)).status_code == 200
    assert client.get(f"/reports/{report_id}", headers=auth_header(admin.id)).status_code == 200


def test_admin_moderation_flow(client, db):
    owner = make_profile(db)
    admin = make_profile(db, role="admin")
    report_id = _submit(client, owner.id)["id"]

    r = client.post(f"/reports/{report_id}/status", json={"status": "approved"}, headers=auth_header(admin.id))
    assert r.status_code == 200
    assert r.json()["status"] == "approved"
    assert client.get(f"/reports/{report_id}").status_code == 200

    r = client.post(f"/reports/{report_id}/status", json={"status": "resolved"}, headers=auth_header(admin.id))
    assert r.json()["status"] == "resolved"
    assert client.get(f"/reports/{report_id}").json()["status"] == "resolved"


def test_non_admin_cannot_moderate(client, db):
    owner = make_profile(db)
    agent = make_profile(db, role="agent")
    report_id = _submit(client, owner.id)["id"]

    r = client.post(f"/reports/{report_id}/status", json={"status": "approved"}, headers=auth_header(owner.id))
    assert r.status_code == 403
    r = client.post(f"/reports/{report_id}/status", json={"status": "resolved"}, headers=auth_header(agent.id))
    assert r.status_code == 403


def test_illegal_transition_conflicts(client, db):
    owner = make_profile(db)
    admin = make_profile(db, role="admin")
    report_id = _submit(client, owner.id)["id"]

    client.post(f"/reports/{report_id}/status", json={"status": "rejected"}, headers=auth_header(admin.id))
    r = client.post(f"/reports/{report_id}/status", json={"status": "approved"}, headers=auth_header(admin.id))
    assert r.status_code == 409

    r = client.post(f"/reports/{report_id}/status", json={"status": "archived"}, headers=auth_header(admin.id))
    assert r.status_code == 422


def test_moderating_missing_report_is_404(client, db):
    admin = make_profile(db, role="admin")
    r = client.post("/reports/nope/status", json={"status": "approved"}, headers=auth_header(admin.id))
    assert r.status_code == 404


def test_delete_owner_or_admin_only(client, db):
    owner = make_profile(db)
    stranger = make_profile(db)
    admin = make_profile(db, role="admin")
    first = _submit(client, owner.id)["id"]
    second = _submit(client, owner.id)["id"]

    assert client.delete(f"/reports/{first}", headers=auth_header(stranger.id)).status_code == 403
    assert client.delete(f"/reports/{first}", headers=auth_header(owner.id)).status_code == 204
    assert client.get(f"/reports/{first}", headers=auth_header(owner.id)).status_code == 404
    assert client.delete(f"/reports/{second}", headers=auth_header(admin.id)).status_code == 204
    assert client.delete(f"/reports/{second}", headers=auth_header(admin.id)).status_code == 404


def test_summary_counts_by_status(client, db):
    owner = make_profile(db)
    admin = make_profile(db, role="admin")
    approved = _submit(client, owner.id)["id"]
    _submit(client, owner.id)
    client.post(f"/reports/{approved}/status", json={"status": "approved"}, headers=auth_header(admin.id))

    r = client.get("/reports/me/summary", headers=auth_header(owner.id))
    assert r.status_code == 200
    assert r.json() == {"total": 2, "pending": 1, "approved": 1, "rejected": 0, "resolved": 0}


def test_invalid_token_is_rejected(client):
    r = client.get("/reports/anything", headers={"Authorization": "Bearer not-a-token"})
    assert r.status_code == 401
