"""Tests for registration, user management and departments."""

import io

import pytest

from public_pulse.models import db
from public_pulse.models.comment import Comment
from public_pulse.models.issue import Image, Issue, IssueStatusHistory
from public_pulse.models.notification import Notification
from public_pulse.models.user import ROLE_ADMIN, Department, User
from public_pulse.models.vote import Vote


def _register(client, auth_header, path, subject, **body):
    body.setdefault("name", "New Person")
    body.setdefault("email", f"{subject}@example.org")
    return client.post(f"/api/v1/{path}/auth/register", json=body, headers=auth_header(subject))


# ═════════════════════════════════════════════════════════════════════════════
# Registration
# ═════════════════════════════════════════════════════════════════════════════


class TestRegistration:
    def test_citizen(self, client, auth_header):
        res = _register(client, auth_header, "citizen", "sub-new", email="New@Example.org")
        assert res.status_code == 201
        user = res.get_json()["user"]
        assert (user["role"], user["external_id"]) == ("CITIZEN", "sub-new")
        assert user["email"] == "New@example.org"

    def test_citizen_department_ignored(self, client, auth_header, departments):
        res = _register(client, auth_header, "citizen", "sub-c", department_id=departments[0].id)
        assert res.get_json()["user"]["department_id"] is None

    def test_government_with_department(self, client, auth_header, departments):
        water, _ = departments
        res = _register(client, auth_header, "government", "sub-g", department_id=water.id)
        user = res.get_json()["user"]
        assert user["role"] == "GOVERNMENT"
        assert user["department"]["name"] == "Water Works"

    def test_government_unknown_department(self, client, auth_header):
        res = _register(client, auth_header, "government", "sub-g", department_id="nope")
        assert res.status_code == 404

    def test_already_registered(self, client, auth_header, citizen):
        res = _register(client, auth_header, "citizen", citizen.external_id,
                        email="fresh@example.org")
        assert res.status_code == 400
        assert res.get_json()["error"] == "User already registered"

    def test_duplicate_email(self, client, auth_header, citizen):
        res = _register(client, auth_header, "citizen", "sub-x", email=citizen.email.upper())
        assert res.status_code == 409

    def test_invalid_email(self, client, auth_header):
        res = _register(client, auth_header, "citizen", "sub-x", email="not-an-email")
        assert res.status_code == 400

    def test_missing_name(self, client, auth_header):
        res = _register(client, auth_header, "citizen", "sub-x", name="")
        assert res.status_code == 400

    def test_requires_token(self, client):
        res = client.post("/api/v1/citizen/auth/register",
                          json={"name": "x", "email": "x@example.org"})
        assert res.status_code == 401

    def test_me(self, client, auth_header, citizen):
        res = client.get("/api/v1/auth/me", headers=auth_header(citizen))
        assert res.get_json()["user"]["id"] == citizen.id
        assert client.get("/api/v1/auth/me", headers=auth_header("ghost")).status_code == 404


class TestAdminRegistration:
    def test_first_admin_bootstraps_from_caller(self, client, auth_header):
        res = _register(client, auth_header, "admin", "sub-root")
        assert res.status_code == 201
        assert res.get_json()["user"]["role"] == ROLE_ADMIN
        assert res.get_json()["user"]["external_id"] == "sub-root"

    def test_later_admins_need_an_admin(self, client, auth_header, admin_user):
        res = _register(client, auth_header, "admin", "sub-wannabe")
        assert res.status_code == 403

    def test_admin_registers_named_subject(self, client, auth_header, admin_user):
        res = client.post("/api/v1/admin/auth/register",
                          json={"name": "Second", "email": "second@example.org",
                                "external_id": "sub-second"},
                          headers=auth_header(admin_user))
        assert res.status_code == 201
        assert res.get_json()["user"]["external_id"] == "sub-second"

    def test_admin_must_name_subject(self, client, auth_header, admin_user):
        res = client.post("/api/v1/admin/auth/register",
                          json={"name": "Second", "email": "second@example.org"},
                          headers=auth_header(admin_user))
        assert res.status_code == 400


# ═════════════════════════════════════════════════════════════════════════════
# User management
# ═════════════════════════════════════════════════════════════════════════════


class TestUserManagement:
    def test_list_admin_only(self, client, auth_header, citizen, admin_user):
        assert client.get("/api/v1/users", headers=auth_header(citizen)).status_code == 403
        body = client.get("/api/v1/users?role=CITIZEN", headers=auth_header(admin_user)).get_json()
        assert [u["id"] for u in body["users"]] == [citizen.id]
        assert body["pagination"]["total"] == 1

    def test_list_search(self, client, auth_header, citizen, other_citizen, admin_user):
        body = client.get("/api/v1/users?search=ada%20cit", headers=auth_header(admin_user)).get_json()
        assert [u["name"] for u in body["users"]] == ["Ada Citizen"]

    def test_admin_creates_user(self, client, auth_header, admin_user):
        res = client.post("/api/v1/users",
                          json={"name": "Manual", "email": "manual@example.org",
                                "external_id": "sub-manual", "role": "GOVERNMENT"},
                          headers=auth_header(admin_user))
        assert res.status_code == 201
        assert res.get_json()["user"]["role"] == "GOVERNMENT"

    def test_create_invalid_role(self, client, auth_header, admin_user):
        res = client.post("/api/v1/users",
                          json={"name": "M", "email": "m@example.org",
                                "external_id": "sub-m", "role": "MAYOR"},
                          headers=auth_header(admin_user))
        assert res.status_code == 400

    def test_detail_self_or_admin(self, client, auth_header, citizen, other_citizen, admin_user):
        res = client.get(f"/api/v1/users/{citizen.id}", headers=auth_header(citizen))
        assert res.get_json()["user"]["counts"] == {
            "issues": 0, "comments": 0, "votes": 0, "unread_notifications": 0,
        }
        assert client.get(f"/api/v1/users/{citizen.id}",
                          headers=auth_header(other_citizen)).status_code == 403
        assert client.get(f"/api/v1/users/{citizen.id}",
                          headers=auth_header(admin_user)).status_code == 200

    def test_self_update_profile(self, client, auth_header, citizen):
        res = client.put(f"/api/v1/users/{citizen.id}", json={"name": "Ada L."},
                         headers=auth_header(citizen))
        assert res.get_json()["user"]["name"] == "Ada L."

    def test_self_cannot_change_role(self, client, auth_header, citizen):
        res = client.put(f"/api/v1/users/{citizen.id}", json={"role": "ADMIN"},
                         headers=auth_header(citizen))
        assert res.status_code == 403

    def test_admin_changes_role(self, client, auth_header, citizen, admin_user, departments):
        res = client.put(f"/api/v1/users/{citizen.id}",
                         json={"role": "GOVERNMENT", "department_id": departments[0].id},
                         headers=auth_header(admin_user))
        user = res.get_json()["user"]
        assert (user["role"], user["department_id"]) == ("GOVERNMENT", departments[0].id)

    def test_last_admin_cannot_be_demoted(self, client, auth_header, admin_user):
        res = client.put(f"/api/v1/users/{admin_user.id}", json={"role": "CITIZEN"},
                         headers=auth_header(admin_user))
        assert res.status_code == 400

    def test_last_admin_cannot_be_deleted(self, client, auth_header, admin_user):
        res = client.delete(f"/api/v1/users/{admin_user.id}", headers=auth_header(admin_user))
        assert res.status_code == 400

    def test_user_issues_public(self, client, citizen):
        db.session.add(Issue(title="Mine", description="d", latitude=1, longitude=1,
                             severity=5, author_id=citizen.id))
        db.session.commit()
        body = client.get(f"/api/v1/users/{citizen.id}/issues").get_json()
        assert [i["title"] for i in body["issues"]] == ["Mine"]
        assert client.get("/api/v1/users/nobody/issues").status_code == 404


class TestAssignedIssues:
    def test_issues_of_callers_department(self, client, auth_header, citizen, gov_user,
                                          departments):
        water, roads = departments
        for title, dept in (("Road", roads), ("Pipe", water)):
            db.session.add(Issue(title=title, description="d", latitude=1, longitude=1,
                                 severity=5, author_id=citizen.id, department_id=dept.id))
        db.session.commit()
        body = client.get("/api/v1/users/government/assigned-issues",
                          headers=auth_header(gov_user)).get_json()
        assert [i["title"] for i in body["issues"]] == ["Road"]

    def test_without_department(self, client, auth_header):
        staff = User(external_id="sub-floating", name="Floating Staff",
                     email="floating@example.org", role="GOVERNMENT")
        db.session.add(staff)
        db.session.commit()
        res = client.get("/api/v1/users/government/assigned-issues", headers=auth_header(staff))
        assert res.status_code == 400

    def test_citizen_forbidden(self, client, auth_header, citizen):
        res = client.get("/api/v1/users/government/assigned-issues", headers=auth_header(citizen))
        assert res.status_code == 403


class TestDeleteUser:
    def test_cascade(self, client, auth_header, citizen, other_citizen, gov_user, admin_user,
                     storage):
        res = client.post(
            "/api/v1/issues",
            data={"title": "Pothole", "description": "d", "latitude": "1", "longitude": "1",
                  "images": [(io.BytesIO(b"img"), "a.jpg", "image/jpeg")]},
            headers=auth_header(citizen), content_type="multipart/form-data",
        )
        own_issue = res.get_json()["issue"]["id"]
        key = db.session.query(Image).one().url

        other_issue = Issue(title="Other", description="d", latitude=1, longitude=1,
                            severity=5, author_id=other_citizen.id)
        db.session.add(other_issue)
        db.session.commit()
        other_issue_id = other_issue.id

        # Citizen's activity on someone else's issue
        client.post("/api/v1/comments", json={"content": "me too", "issue_id": other_issue_id},
                    headers=auth_header(citizen))
        client.post(f"/api/v1/votes/issue/{other_issue_id}", json={"type": "UPVOTE"},
                    headers=auth_header(citizen))
        client.patch(f"/api/v1/issues/{own_issue}/status", json={"status": "ONGOING"},
                     headers=auth_header(gov_user))

        res = client.delete(f"/api/v1/users/{citizen.id}", headers=auth_header(admin_user))
        assert res.status_code == 200

        db.session.expire_all()
        assert db.session.get(User, citizen.id) is None
        assert db.session.get(Issue, own_issue) is None
        assert db.session.get(Issue, other_issue_id) is not None
        assert db.session.query(Comment).count() == 0
        assert db.session.query(Vote).count() == 0
        assert db.session.query(Image).count() == 0
        assert db.session.query(Notification).filter_by(user_id=citizen.id).count() == 0
        assert not storage.exists(key)

    def test_actor_history_kept(self, client, auth_header, citizen, gov_user, admin_user):
        issue = Issue(title="P", description="d", latitude=1, longitude=1, severity=5,
                      author_id=citizen.id)
        db.session.add(issue)
        db.session.commit()
        issue_id, gov_id = issue.id, gov_user.id
        client.patch(f"/api/v1/issues/{issue_id}/status", json={"status": "CLOSED"},
                     headers=auth_header(gov_user))

        res = client.delete(f"/api/v1/users/{gov_id}", headers=auth_header(admin_user))
        assert res.status_code == 200
        db.session.expire_all()
        history = db.session.query(IssueStatusHistory).one()
        assert history.changed_by_id is None
        assert history.issue_id == issue_id

    def test_non_admin_forbidden(self, client, auth_header, citizen, other_citizen):
        res = client.delete(f"/api/v1/users/{other_citizen.id}", headers=auth_header(citizen))
        assert res.status_code == 403


# ═════════════════════════════════════════════════════════════════════════════
# Departments
# ═════════════════════════════════════════════════════════════════════════════


class TestDepartments:
    def test_create_and_list(self, client, auth_header, admin_user):
        for name in ("Parks", "Lighting"):
            res = client.post("/api/v1/departments", json={"name": name},
                              headers=auth_header(admin_user))
            assert res.status_code == 201
        body = client.get("/api/v1/departments").get_json()
        assert [d["name"] for d in body["departments"]] == ["Lighting", "Parks"]
        assert body["departments"][0]["user_count"] == 0

    def test_duplicate_name_case_insensitive(self, client, auth_header, admin_user, departments):
        res = client.post("/api/v1/departments", json={"name": "roads"},
                          headers=auth_header(admin_user))
        assert res.status_code == 409

    def test_create_requires_admin(self, client, auth_header, gov_user):
        res = client.post("/api/v1/departments", json={"name": "Parks"},
                          headers=auth_header(gov_user))
        assert res.status_code == 403

    def test_rename(self, client, auth_header, admin_user, departments):
        water, _ = departments
        res = client.put(f"/api/v1/departments/{water.id}", json={"name": "Water"},
                         headers=auth_header(admin_user))
        assert res.get_json()["department"]["name"] == "Water"
        res = client.put(f"/api/v1/departments/{water.id}", json={"name": "ROADS"},
                         headers=auth_header(admin_user))
        assert res.status_code == 409

    def test_detail(self, client, gov_user, citizen, departments):
        _, roads = departments
        db.session.add(Issue(title="Crack", description="d", latitude=1, longitude=1,
                             severity=5, author_id=citizen.id, department_id=roads.id))
        db.session.commit()
        dept = client.get(f"/api/v1/departments/{roads.id}").get_json()["department"]
        assert [u["id"] for u in dept["users"]] == [gov_user.id]
        assert [i["title"] for i in dept["issues"]] == ["Crack"]
        assert (dept["user_count"], dept["issue_count"]) == (1, 1)

    def test_delete_refused_while_referenced(self, client, auth_header, admin_user, gov_user,
                                             departments):
        _, roads = departments
        res = client.delete(f"/api/v1/departments/{roads.id}", headers=auth_header(admin_user))
        assert res.status_code == 400
        assert res.get_json()["details"] == {"user_count": 1, "issue_count": 0}

    def test_delete_unreferenced(self, client, auth_header, admin_user, departments):
        water, _ = departments
        res = client.delete(f"/api/v1/departments/{water.id}", headers=auth_header(admin_user))
        assert res.status_code == 200
        assert db.session.get(Department, water.id) is None

    def test_assign_user(self, client, auth_header, admin_user, citizen, departments):
        water, _ = departments
        res = client.post("/api/v1/departments/assign-user",
                          json={"user_id": citizen.id, "department_id": water.id},
                          headers=auth_header(admin_user))
        assert res.get_json()["user"]["department_id"] == water.id
        res = client.post("/api/v1/departments/assign-user",
                          json={"user_id": citizen.id, "department_id": None},
                          headers=auth_header(admin_user))
        assert res.get_json()["user"]["department_id"] is None

    @pytest.mark.parametrize("body, status", [
        ({"department_id": "x"}, 400),
        ({"user_id": "nobody"}, 404),
    ])
    def test_assign_user_errors(self, client, auth_header, admin_user, body, status):
        res = client.post("/api/v1/departments/assign-user", json=body,
                          headers=auth_header(admin_user))
        assert res.status_code == status
