"""
User administration API tests.
"""

from defect_tracker.models import db as _db
from defect_tracker.models.auth import User


def _new_user_body(**overrides):
    body = {
        "first_name": "Barbara",
        "last_name": "Liskov",
        "email": "barbara@example.com",
        "password": "Subst1tution!",
    }
    body.update(overrides)
    return body


def test_list_users_requires_privilege(client, seeded, make_user, auth_headers):
    res = client.get("/api/users", headers=auth_headers(make_user()))
    assert res.status_code == 403
    assert res.get_json()["details"] == {"module": "users", "action": "READ"}


def test_list_users_search_and_active_filter(client, admin, make_user, auth_headers):
    make_user("Alan", "Turing")
    make_user("Edsger", "Dijkstra", is_active=False)
    headers = auth_headers(admin)

    found = client.get("/api/users?search=turing", headers=headers).get_json()
    assert [u["last_name"] for u in found["data"]] == ["Turing"]

    inactive = client.get("/api/users?is_active=false", headers=headers).get_json()
    assert [u["last_name"] for u in inactive["data"]] == ["Dijkstra"]
    assert inactive["pagination"]["total"] == 1


def test_create_and_update_user(client, admin, auth_headers):
    headers = auth_headers(admin)
    created = client.post("/api/users", headers=headers, json=_new_user_body())
    assert created.status_code == 201
    user = created.get_json()["data"]
    assert user["username"].startswith("US")

    res = client.put(f"/api/users/{user['id']}", headers=headers,
                     json={"last_name": "Liskov-Updated", "phone": "+1 555 0100"})
    assert res.status_code == 200
    assert res.get_json()["data"]["phone"] == "+1 555 0100"


def test_update_user_rejects_taken_email(client, admin, make_user, auth_headers):
    other = make_user(email="taken@example.com")
    target = make_user()
    res = client.put(f"/api/users/{target.id}", headers=auth_headers(admin),
                     json={"email": other.email})
    assert res.status_code == 409


def test_update_user_rejects_bad_phone(client, admin, make_user, auth_headers):
    target = make_user()
    res = client.put(f"/api/users/{target.id}", headers=auth_headers(admin), json={"phone": "call me"})
    assert res.status_code == 400


def test_get_unknown_user_is_404(client, admin, auth_headers):
    assert client.get("/api/users/9999", headers=auth_headers(admin)).status_code == 404


def test_delete_deactivates(client, admin, make_user, auth_headers):
    target = make_user()
    res = client.delete(f"/api/users/{target.id}", headers=auth_headers(admin))
    assert res.status_code == 200

    _db.session.expire_all()
    assert _db.session.get(User, target.id).is_active is False


def test_cannot_deactivate_self(client, admin, auth_headers):
    res = client.patch(f"/api/users/{admin.id}/status", headers=auth_headers(admin),
                       json={"is_active": False})
    assert res.status_code == 400


def test_status_requires_boolean(client, admin, make_user, auth_headers):
    target = make_user()
    res = client.patch(f"/api/users/{target.id}/status", headers=auth_headers(admin),
                       json={"is_active": "no"})
    assert res.status_code == 400


def test_reset_password(client, admin, make_user, auth_headers):
    target = make_user()
    res = client.patch(f"/api/users/{target.id}/password", headers=auth_headers(admin),
                       json={"new_password": "Fresh-Passw0rd"})
    assert res.status_code == 200

    login = client.post("/api/auth/login",
                        json={"username": target.username, "password": "Fresh-Passw0rd"})
    assert login.status_code == 200


def test_privileges_summary(client, seeded, admin, make_user, make_project, allocate,
                            grant, auth_headers):
    target = make_user()
    project = make_project(admin)
    allocate(target, project, seeded.role("Developer"))
    grant(target, "releases", "READ", project=project)

    data = client.get(f"/api/users/{target.id}/privileges", headers=auth_headers(admin)).get_json()["data"]
    assert [g["privilege"]["action"] for g in data["userPrivileges"]] == ["READ"]
    assert data["projectPrivileges"] == []
    assert len(data["rolePrivileges"]) == 1
    role_block = data["rolePrivileges"][0]
    assert role_block["role"] == "Developer"
    assert {(p["module"], p["action"]) for p in role_block["privileges"]} == {
        ("projects", "READ"), ("defects", "READ"), ("defects", "UPDATE"), ("releases", "READ"),
    }


def test_user_projects(client, seeded, admin, make_user, make_project, allocate, auth_headers):
    target = make_user()
    owned = make_project(target, "Owned")
    joined = make_project(admin, "Joined")
    allocate(target, joined, seeded.role("Tester"), allocation_percentage=25)

    data = client.get(f"/api/users/{target.id}/projects", headers=auth_headers(admin)).get_json()["data"]
    assert [p["id"] for p in data["owned"]] == [owned.id]
    assert data["allocated"][0]["project"]["id"] == joined.id
    assert data["allocated"][0]["role"] == "Tester"
    assert data["allocated"][0]["allocation_percentage"] == 25.0


# ── Privilege check ──────────────────────────────────────────────────────


def test_check_own_privilege(client, seeded, make_user, make_project, allocate, auth_headers):
    owner = make_user()
    dev = make_user()
    project = make_project(owner)
    allocate(dev, project, seeded.role("Developer"))

    res = client.get(
        f"/api/users/{dev.id}/privileges/check?module=defects&action=update&projectId={project.id}",
        headers=auth_headers(dev),
    )
    assert res.status_code == 200
    data = res.get_json()["data"]
    assert data["allowed"] is True
    assert data["decision"] == "group_privilege"
    assert data["action"] == "UPDATE"
    assert data["user_id"] == dev.id


def test_check_other_user_needs_manage(client, seeded, make_user, auth_headers):
    me = make_user()
    other = make_user()
    res = client.get(f"/api/users/{other.id}/privileges/check?module=users&action=READ",
                     headers=auth_headers(me))
    assert res.status_code == 403


def test_check_requires_module_and_action(client, admin, auth_headers):
    res = client.get(f"/api/users/{admin.id}/privileges/check?module=users", headers=auth_headers(admin))
    assert res.status_code == 400
    assert res.get_json()["code"] == "ERR_VALIDATION_REQUIRED"


def test_check_unknown_action(client, admin, auth_headers):
    res = client.get(f"/api/users/{admin.id}/privileges/check?module=users&action=FLY",
                     headers=auth_headers(admin))
    assert res.status_code == 400


# ── Email preferences ────────────────────────────────────────────────────


def test_email_preferences_default_enabled(client, make_user, auth_headers):
    user = make_user()
    prefs = client.get(f"/api/users/{user.id}/email-preferences",
                       headers=auth_headers(user)).get_json()["data"]
    assert all(p["is_enabled"] for p in prefs)
    assert {p["email_type"] for p in prefs} == {
        "DEFECT_ASSIGNED", "DEFECT_STATUS_CHANGED", "PROJECT_ALLOCATED", "USER_REGISTERED",
    }


def test_update_own_email_preferences(client, make_user, auth_headers):
    user = make_user()
    res = client.put(f"/api/users/{user.id}/email-preferences", headers=auth_headers(user),
                     json={"DEFECT_ASSIGNED": False})
    assert res.status_code == 200
    prefs = {p["email_type"]: p["is_enabled"] for p in res.get_json()["data"]}
    assert prefs["DEFECT_ASSIGNED"] is False
    assert prefs["PROJECT_ALLOCATED"] is True


def test_update_email_preferences_validation(client, make_user, auth_headers):
    user = make_user()
    headers = auth_headers(user)
    url = f"/api/users/{user.id}/email-preferences"
    assert client.put(url, headers=headers, json={"NEWSLETTER": False}).status_code == 400
    assert client.put(url, headers=headers, json={"DEFECT_ASSIGNED": "off"}).status_code == 400


def test_other_users_preferences_forbidden(client, seeded, make_user, auth_headers):
    me = make_user()
    other = make_user()
    res = client.get(f"/api/users/{other.id}/email-preferences", headers=auth_headers(me))
    assert res.status_code == 403
