"""
Privilege grant API tests: grant / revoke of user, project-user and group
privileges, and their effect on the resolver.
"""

from datetime import datetime, timedelta, timezone

import pytest

from defect_tracker.models import db as _db
from defect_tracker.models.auth import UserPrivilege
from defect_tracker.services.authorization import authorize


@pytest.fixture()
def target(make_user):
    return make_user("Tom", "Target")


def test_grant_requires_users_manage(client, seeded, target, make_user, grant, auth_headers):
    reader = make_user()
    grant(reader, "users", "READ")
    res = client.post("/api/user-privileges", headers=auth_headers(reader),
                      json={"user_id": target.id,
                            "privilege_id": seeded.privilege("users", "READ").id})
    assert res.status_code == 403


def test_grant_and_revoke_user_privilege(client, seeded, admin, target, auth_headers):
    headers = auth_headers(admin)
    privilege = seeded.privilege("releases", "CREATE")

    res = client.post("/api/user-privileges", headers=headers,
                      json={"user_id": target.id, "privilege_id": privilege.id})
    assert res.status_code == 201
    grant = res.get_json()["data"]
    assert grant["granted_by"] == admin.id
    assert grant["project_id"] is None
    assert authorize(target.id, "releases", "CREATE") is True

    dup = client.post("/api/user-privileges", headers=headers,
                      json={"user_id": target.id, "privilege_id": privilege.id})
    assert dup.status_code == 409

    revoked = client.delete(f"/api/user-privileges/{grant['id']}", headers=headers)
    assert revoked.status_code == 200
    assert revoked.get_json()["data"]["is_active"] is False
    assert authorize(target.id, "releases", "CREATE") is False

    again = client.delete(f"/api/user-privileges/{grant['id']}", headers=headers)
    assert again.status_code == 404


def test_scoped_and_unscoped_grants_are_distinct(client, seeded, admin, target, make_project,
                                                 auth_headers):
    headers = auth_headers(admin)
    project = make_project(admin)
    privilege_id = seeded.privilege("defects", "DELETE").id

    scoped = client.post("/api/user-privileges", headers=headers,
                         json={"user_id": target.id, "privilege_id": privilege_id,
                               "project_id": project.id})
    unscoped = client.post("/api/user-privileges", headers=headers,
                           json={"user_id": target.id, "privilege_id": privilege_id})
    assert scoped.status_code == 201
    assert unscoped.status_code == 201

    listed = client.get(f"/api/user-privileges?userId={target.id}&projectId={project.id}",
                        headers=headers).get_json()["data"]
    assert [row["project_id"] for row in listed] == [project.id]


def test_grant_with_past_expiry_rejected(client, seeded, admin, target, auth_headers):
    past = (datetime.now(timezone.utc) - timedelta(days=1)).isoformat()
    res = client.post("/api/user-privileges", headers=auth_headers(admin),
                      json={"user_id": target.id,
                            "privilege_id": seeded.privilege("users", "READ").id,
                            "expires_at": past})
    assert res.status_code == 400


def test_grant_with_future_expiry(client, seeded, admin, target, auth_headers):
    future = (datetime.now(timezone.utc) + timedelta(days=7)).isoformat()
    res = client.post("/api/user-privileges", headers=auth_headers(admin),
                      json={"user_id": target.id,
                            "privilege_id": seeded.privilege("users", "READ").id,
                            "expires_at": future})
    assert res.status_code == 201
    assert res.get_json()["data"]["expires_at"] is not None


def test_grant_to_unknown_project_is_404(client, seeded, admin, target, auth_headers):
    res = client.post("/api/user-privileges", headers=auth_headers(admin),
                      json={"user_id": target.id,
                            "privilege_id": seeded.privilege("users", "READ").id,
                            "project_id": 4040})
    assert res.status_code == 404


def test_grant_to_inactive_user_rejected(client, seeded, admin, make_user, auth_headers):
    gone = make_user(is_active=False)
    res = client.post("/api/user-privileges", headers=auth_headers(admin),
                      json={"user_id": gone.id,
                            "privilege_id": seeded.privilege("users", "READ").id})
    assert res.status_code == 400


def test_project_user_privilege_lifecycle(client, seeded, admin, target, make_project, auth_headers):
    headers = auth_headers(admin)
    project = make_project(admin)
    body = {"user_id": target.id, "project_id": project.id,
            "privilege_id": seeded.privilege("releases", "UPDATE").id}

    res = client.post("/api/project-user-privileges", headers=headers, json=body)
    assert res.status_code == 201
    grant_id = res.get_json()["data"]["id"]
    assert authorize(target.id, "releases", "UPDATE", project.id) is True
    assert client.post("/api/project-user-privileges", headers=headers, json=body).status_code == 409

    listed = client.get(f"/api/project-user-privileges?projectId={project.id}",
                        headers=headers).get_json()["data"]
    assert [row["id"] for row in listed] == [grant_id]

    assert client.delete(f"/api/project-user-privileges/{grant_id}", headers=headers).status_code == 200
    assert authorize(target.id, "releases", "UPDATE", project.id) is False


def test_project_user_privilege_requires_project(client, seeded, admin, target, auth_headers):
    res = client.post("/api/project-user-privileges", headers=auth_headers(admin),
                      json={"user_id": target.id,
                            "privilege_id": seeded.privilege("releases", "UPDATE").id})
    assert res.status_code == 400


def test_group_privilege_lifecycle(client, seeded, admin, target, make_project, allocate, auth_headers):
    headers = auth_headers(admin)
    project = make_project(admin)
    developer = seeded.role("Developer")
    allocate(target, project, developer)
    privilege_id = seeded.privilege("defects", "DELETE").id

    assert authorize(target.id, "defects", "DELETE", project.id) is False

    res = client.post("/api/group-privileges", headers=headers,
                      json={"role_id": developer.id, "privilege_id": privilege_id})
    assert res.status_code == 201
    grant_id = res.get_json()["data"]["id"]
    assert authorize(target.id, "defects", "DELETE", project.id) is True

    dup = client.post("/api/group-privileges", headers=headers,
                      json={"role_id": developer.id, "privilege_id": privilege_id})
    assert dup.status_code == 409

    listed = client.get(f"/api/group-privileges?roleId={developer.id}", headers=headers).get_json()["data"]
    assert grant_id in [row["id"] for row in listed]

    assert client.delete(f"/api/group-privileges/{grant_id}", headers=headers).status_code == 200
    assert authorize(target.id, "defects", "DELETE", project.id) is False


def test_lookups_are_readable_by_any_user(client, seeded, make_user, auth_headers):
    headers = auth_headers(make_user())
    severities = client.get("/api/severities", headers=headers).get_json()["data"]
    assert {s["name"] for s in severities} == {"High", "Medium", "Low"}

    roles = client.get("/api/roles?search=dev", headers=headers).get_json()["data"]
    assert [r["name"] for r in roles] == ["Developer"]


def test_regrant_after_expiry_retires_lapsed_row(client, seeded, admin, target, grant, auth_headers):
    privilege = seeded.privilege("users", "READ")
    lapsed = grant(target, "users", "READ",
                   expires_at=datetime.now(timezone.utc) - timedelta(hours=1))
    assert authorize(target.id, "users", "READ") is False

    res = client.post("/api/user-privileges", headers=auth_headers(admin),
                      json={"user_id": target.id, "privilege_id": privilege.id})
    assert res.status_code == 201
    assert authorize(target.id, "users", "READ") is True

    _db.session.expire_all()
    assert _db.session.get(UserPrivilege, lapsed.id).is_active is False
    active = UserPrivilege.query.filter_by(user_id=target.id, privilege_id=privilege.id,
                                           is_active=True).count()
    assert active == 1


def test_unknown_privilege_or_role_is_validation_error(client, seeded, admin, target, auth_headers):
    headers = auth_headers(admin)
    res = client.post("/api/user-privileges", headers=headers,
                      json={"user_id": target.id, "privilege_id": 9999})
    assert res.status_code == 400
    assert res.get_json()["details"] == {"privilege_id": "not found"}

    res = client.post("/api/group-privileges", headers=headers,
                      json={"role_id": 9999, "privilege_id": seeded.privilege("users", "READ").id})
    assert res.status_code == 400
    assert res.get_json()["details"] == {"role_id": "not found"}
