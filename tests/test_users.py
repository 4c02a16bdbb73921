import uuid


def test_update_profile(client, login):
    headers, user = login()
    r = client.patch("/users/me", headers=headers, json={"display_name": "  Thandi  "})
    assert r.status_code == 200, r.text
    assert r.json()["display_name"] == "Thandi"
    assert client.get("/users/me", headers=headers).json()["display_name"] == "Thandi"


def test_update_profile_rejects_blank_name(client, login):
    headers, _ = login()
    r = client.patch("/users/me", headers=headers, json={"display_name": "   "})
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "VALIDATION_ERROR"


def test_get_user_by_id(client, login):
    headers, _ = login()
    _, other = login()
    r = client.get(f"/users/{other['id']}", headers=headers)
    assert r.status_code == 200
    assert r.json()["phone"] == other["phone"]
    r = client.get(f"/users/{uuid.uuid4()}", headers=headers)
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "NOT_FOUND"


def test_list_users_paginates(client, login):
    headers, _ = login()
    for _ in range(4):
        login()
    r = client.get("/users", headers=headers, params={"page": 2, "limit": 2})
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["pagination"] == {"page": 2, "limit": 2, "total": 5, "total_pages": 3}
    assert len(body["items"]) == 2


def test_list_users_limit_capped(client, login):
    headers, _ = login()
    r = client.get("/users", headers=headers, params={"limit": 101})
    assert r.status_code == 400
