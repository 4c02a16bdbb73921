import uuid

from ubuntu_api.models import UserTier

VOUCH = {"relationship_type": "community", "years_known": "3+", "trust_level": "high", "trust_with_child": True}


def _vouch(client, headers, receiver_id, **extra):
    return client.post("/vouches", headers=headers, json={**VOUCH, "receiver_id": receiver_id, **extra})


def test_vouch_lifecycle(client, login):
    mentor_h, _ = login(tier=UserTier.TRUSTED_MENTOR)
    member_h, member = login()

    r = _vouch(client, mentor_h, member["id"], note="Known from church")
    assert r.status_code == 201, r.text
    vouch = r.json()
    assert vouch["status"] == "pending"

    received = client.get("/vouches/received", headers=member_h).json()["vouches"]
    assert [v["id"] for v in received] == [vouch["id"]]

    # Only the receiver may accept
    assert client.post(f"/vouches/{vouch['id']}/accept", headers=mentor_h).status_code == 403
    r = client.post(f"/vouches/{vouch['id']}/accept", headers=member_h)
    assert r.status_code == 200
    assert r.json()["status"] == "active"
    assert client.get("/users/me", headers=member_h).json()["vouch_count"] == 1
    assert client.post(f"/vouches/{vouch['id']}/accept", headers=member_h).status_code == 409

    # Only the giver may revoke
    assert client.post(f"/vouches/{vouch['id']}/revoke", headers=member_h).status_code == 403
    r = client.post(f"/vouches/{vouch['id']}/revoke", headers=mentor_h)
    assert r.status_code == 200
    assert r.json()["status"] == "revoked"
    assert client.get("/users/me", headers=member_h).json()["vouch_count"] == 0
    assert client.post(f"/vouches/{vouch['id']}/revoke", headers=mentor_h).status_code == 409


def test_basic_tier_cannot_vouch(client, login):
    basic_h, _ = login()
    _, other = login()
    r = _vouch(client, basic_h, other["id"])
    assert r.status_code == 403


def test_self_vouch_rejected(client, login):
    mentor_h, mentor = login(tier=UserTier.TRUSTED_MENTOR)
    assert _vouch(client, mentor_h, mentor["id"]).status_code == 400


def test_unknown_receiver(client, login):
    mentor_h, _ = login(tier=UserTier.TRUSTED_MENTOR)
    assert _vouch(client, mentor_h, str(uuid.uuid4())).status_code == 404


def test_duplicate_vouch_conflicts_until_revoked(client, login):
    mentor_h, _ = login(tier=UserTier.TRUSTED_MENTOR)
    _, member = login()
    first = _vouch(client, mentor_h, member["id"]).json()
    assert _vouch(client, mentor_h, member["id"]).status_code == 409
    client.post(f"/vouches/{first['id']}/revoke", headers=mentor_h)
    assert _vouch(client, mentor_h, member["id"]).status_code == 201


def test_given_filter_by_status(client, login):
    mentor_h, _ = login(tier=UserTier.TRUSTED_MENTOR)
    _, a = login()
    _, b = login()
    _vouch(client, mentor_h, a["id"])
    second = _vouch(client, mentor_h, b["id"]).json()
    client.post(f"/vouches/{second['id']}/revoke", headers=mentor_h)

    all_given = client.get("/vouches/given", headers=mentor_h).json()["vouches"]
    assert len(all_given) == 2
    pending = client.get("/vouches/given", headers=mentor_h, params={"status": "pending"}).json()["vouches"]
    assert [v["receiver_id"] for v in pending] == [a["id"]]


def test_invalid_years_known(client, login):
    mentor_h, _ = login(tier=UserTier.TRUSTED_MENTOR)
    _, member = login()
    assert _vouch(client, mentor_h, member["id"], years_known="10").status_code == 400
