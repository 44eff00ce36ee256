"""Tests for the issue intake pipeline and issue lifecycle API.

Coverage:
  1. Intake: multipart images → signed URLs, JSON body, validation, roles
  2. Classification fallback: gateway down → severity 5, no department
  3. Compensation: failed upload / failed transaction leave no objects or rows
  4. Status change → history + notification in one transaction
  5. Nearby search (Haversine, strict radius, nearest first)
  6. Delete cascade removes every dependent row and the stored objects
"""

import io
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.exc import IntegrityError

from public_pulse.ai.issue_analysis import IssueAnalysis
from public_pulse.core.auth_context import AuthContext
from public_pulse.core.exceptions import StorageError
from public_pulse.integrations.object_storage import MEDIA_URL_PREFIX, LocalStorageBackend
from public_pulse.models import db
from public_pulse.models.comment import Comment
from public_pulse.models.issue import Image, Issue, IssueStatusHistory
from public_pulse.models.notification import Notification
from public_pulse.models.vote import Vote
from public_pulse.services import issue_service
from public_pulse.services.issue_service import ImageUpload

KM_PER_DEGREE_LAT = 111.19492664455873
BASE = (41.0, 29.0)


def _issue_payload(**overrides):
    payload = {
        "title": "Pothole",
        "description": "deep crack",
        "latitude": BASE[0],
        "longitude": BASE[1],
    }
    payload.update(overrides)
    return payload


def _create(client, headers, **overrides):
    res = client.post("/api/v1/issues", json=_issue_payload(**overrides), headers=headers)
    assert res.status_code == 201, res.get_json()
    return res.get_json()["issue"]


def _seed_issue(author, lat=BASE[0], lon=BASE[1], title="Seeded"):
    issue = Issue(title=title, description="d", latitude=lat, longitude=lon,
                  severity=5, author_id=author.id)
    db.session.add(issue)
    db.session.commit()
    return issue


# ═════════════════════════════════════════════════════════════════════════════
# Intake
# ═════════════════════════════════════════════════════════════════════════════


class TestIssueIntake:
    def test_multipart_images_get_signed_urls(self, client, citizen, auth_header, storage):
        res = client.post(
            "/api/v1/issues",
            data={
                "title": "Pothole",
                "description": "deep crack",
                "latitude": "41.0",
                "longitude": "29.0",
                "images": [
                    (io.BytesIO(b"first-image"), "one.jpg", "image/jpeg"),
                    (io.BytesIO(b"second-image"), "two.png", "image/png"),
                ],
            },
            headers=auth_header(citizen),
            content_type="multipart/form-data",
        )
        assert res.status_code == 201, res.get_json()
        issue = res.get_json()["issue"]
        assert issue["status"] == "PENDING"
        assert issue["author"]["id"] == citizen.id
        assert len(issue["images"]) == 2

        urls = [img["url"] for img in issue["images"]]
        assert all(u.startswith(MEDIA_URL_PREFIX) for u in urls)
        bodies = {client.get(u).data for u in urls}
        assert bodies == {b"first-image", b"second-image"}

        # Only the storage key is persisted
        stored = db.session.query(Image).all()
        assert all(img.url.startswith("uploads/") for img in stored)

    def test_json_without_images(self, client, citizen, auth_header):
        issue = _create(client, auth_header(citizen))
        assert issue["images"] == []
        assert issue["latitude"] == BASE[0]
        assert issue["severity"] == 4  # local stub, no urgent words

    def test_classified_department(self, client, citizen, auth_header, departments):
        water, roads = departments
        issue = _create(client, auth_header(citizen),
                        title="Broken road", description="the roads are cracked")
        assert issue["department_id"] == roads.id
        assert issue["department"]["name"] == "Roads"

    def test_no_notification_on_create(self, client, citizen, auth_header):
        _create(client, auth_header(citizen))
        assert db.session.query(Notification).count() == 0

    @pytest.mark.parametrize("missing", ["title", "description", "latitude", "longitude"])
    def test_missing_field_rejected(self, client, citizen, auth_header, missing):
        payload = _issue_payload()
        payload.pop(missing)
        res = client.post("/api/v1/issues", json=payload, headers=auth_header(citizen))
        assert res.status_code == 400
        assert missing in res.get_json()["details"]
        assert db.session.query(Issue).count() == 0

    def test_bad_coordinates_rejected(self, client, citizen, auth_header):
        res = client.post("/api/v1/issues", json=_issue_payload(latitude=123),
                          headers=auth_header(citizen))
        assert res.status_code == 400

    def test_non_image_upload_rejected(self, client, citizen, auth_header):
        res = client.post(
            "/api/v1/issues",
            data={**_issue_payload(), "images": [(io.BytesIO(b"x"), "notes.txt", "text/plain")]},
            headers=auth_header(citizen),
            content_type="multipart/form-data",
        )
        assert res.status_code == 400

    def test_requires_token(self, client):
        res = client.post("/api/v1/issues", json=_issue_payload())
        assert res.status_code == 401

    def test_unregistered_subject(self, client, auth_header):
        res = client.post("/api/v1/issues", json=_issue_payload(),
                          headers=auth_header("never-registered"))
        assert res.status_code == 404
        assert res.get_json()["error"] == "User not found"

    def test_government_cannot_report(self, client, gov_user, auth_header):
        res = client.post("/api/v1/issues", json=_issue_payload(), headers=auth_header(gov_user))
        assert res.status_code == 403

    def test_admin_passes_citizen_check(self, client, admin_user, auth_header):
        _create(client, auth_header(admin_user))


class TestClassificationFallback:
    def test_gateway_down_uses_defaults(self, app, client, citizen, auth_header, departments):
        gateway = app.extensions["llm_gateway"]
        with patch.object(gateway, "chat", side_effect=RuntimeError("LLM outage")):
            issue = _create(client, auth_header(citizen),
                            title="Pothole", description="deep crack")
        assert issue["severity"] == 5
        assert issue["department_id"] is None
        row = db.session.get(Issue, issue["id"])
        assert (row.status, row.severity, row.department_id) == ("PENDING", 5, None)

    def test_analysis_disabled(self, app, client, citizen, auth_header):
        app.config["ISSUE_ANALYSIS_ENABLED"] = False
        try:
            issue = _create(client, auth_header(citizen), description="sewage everywhere")
        finally:
            app.config["ISSUE_ANALYSIS_ENABLED"] = True
        assert issue["severity"] == 5


class TestIntakeCompensation:
    def test_failed_upload_removes_stored_objects(self, tmp_path, citizen):
        class FlakyStorage(LocalStorageBackend):
            def upload(self, data, *, filename=None, content_type=None):
                if filename == "bad.jpg":
                    raise StorageError("bucket unavailable")
                return super().upload(data, filename=filename, content_type=content_type)

        flaky = FlakyStorage(str(tmp_path), "secret")
        analyzer = MagicMock()
        with pytest.raises(StorageError):
            issue_service.create_issue(
                AuthContext.for_user(citizen), _issue_payload(),
                [ImageUpload(b"ok", "good.jpg", "image/jpeg"),
                 ImageUpload(b"no", "bad.jpg", "image/jpeg")],
                storage=flaky, analyzer=analyzer,
            )
        assert not any(p.is_file() for p in tmp_path.rglob("*"))
        assert db.session.query(Issue).count() == 0
        analyzer.analyze.assert_not_called()

    def test_upload_failure_returns_500(self, app, client, citizen, auth_header, storage):
        with patch.object(storage, "upload", side_effect=StorageError("down")):
            res = client.post(
                "/api/v1/issues",
                data={**_issue_payload(), "images": [(io.BytesIO(b"x"), "a.jpg", "image/jpeg")]},
                headers=auth_header(citizen),
                content_type="multipart/form-data",
            )
        assert res.status_code == 500
        assert res.get_json()["code"] == "ERR_STORAGE"
        assert db.session.query(Issue).count() == 0

    def test_failed_transaction_removes_uploads(self, storage, citizen):
        spy = MagicMock(wraps=storage)
        analyzer = MagicMock()
        analyzer.analyze.return_value = IssueAnalysis(severity=5, department_id="no-such-dept")
        with pytest.raises(IntegrityError):
            issue_service.create_issue(
                AuthContext.for_user(citizen), _issue_payload(),
                [ImageUpload(b"img", "a.jpg", "image/jpeg")],
                storage=spy, analyzer=analyzer,
            )
        keys = spy.delete_many.call_args.args[0]
        assert len(keys) == 1
        assert not storage.exists(keys[0])
        assert db.session.query(Issue).count() == 0
        assert db.session.query(Image).count() == 0


# ═════════════════════════════════════════════════════════════════════════════
# Reads
# ═════════════════════════════════════════════════════════════════════════════


class TestIssueReads:
    def test_list_paginated_newest_first(self, client, citizen, auth_header):
        for n in range(3):
            _create(client, auth_header(citizen), title=f"Issue {n}")
        res = client.get("/api/v1/issues?limit=2")
        body = res.get_json()
        assert [i["title"] for i in body["issues"]] == ["Issue 2", "Issue 1"]
        assert body["pagination"] == {"total": 3, "page": 1, "limit": 2, "totalPages": 2}

    def test_list_filters(self, client, citizen, auth_header):
        _create(client, auth_header(citizen), title="Streetlight out")
        _create(client, auth_header(citizen), title="Pothole")
        res = client.get("/api/v1/issues?search=STREET")
        assert [i["title"] for i in res.get_json()["issues"]] == ["Streetlight out"]
        assert client.get("/api/v1/issues?status=BOGUS").status_code == 400

    def test_list_includes_caller_vote(self, client, citizen, auth_header):
        issue = _create(client, auth_header(citizen))
        client.post(f"/api/v1/votes/issue/{issue['id']}", json={"type": "UPVOTE"},
                    headers=auth_header(citizen))
        anon = client.get("/api/v1/issues").get_json()["issues"][0]
        mine = client.get("/api/v1/issues", headers=auth_header(citizen)).get_json()["issues"][0]
        assert anon["votes"] == {"upvotes": 1, "downvotes": 0, "user_vote": None}
        assert mine["votes"]["user_vote"] == "UPVOTE"

    def test_detail(self, client, citizen, gov_user, auth_header):
        issue = _create(client, auth_header(citizen))
        client.post("/api/v1/comments", json={"content": "Seen it", "issue_id": issue["id"]},
                    headers=auth_header(gov_user))
        client.patch(f"/api/v1/issues/{issue['id']}/status", json={"status": "ONGOING"},
                     headers=auth_header(gov_user))
        detail = client.get(f"/api/v1/issues/{issue['id']}").get_json()["issue"]
        assert [c["content"] for c in detail["comments"]] == ["Seen it"]
        assert [h["status"] for h in detail["status_history"]] == ["ONGOING"]
        assert detail["votes"]["upvotes"] == 0

    def test_unknown_issue(self, client):
        res = client.get("/api/v1/issues/does-not-exist")
        assert res.status_code == 404
        assert res.get_json()["error"] == "Issue not found"


class TestNearbyIssues:
    def _north(self, km):
        return BASE[0] + km / KM_PER_DEGREE_LAT

    def test_default_radius_is_strict_5km(self, client, citizen):
        near = _seed_issue(citizen, lat=self._north(3), title="3km")
        _seed_issue(citizen, lat=self._north(10), title="10km")
        res = client.get(f"/api/v1/issues/nearby?latitude={BASE[0]}&longitude={BASE[1]}")
        issues = res.get_json()["issues"]
        assert [i["id"] for i in issues] == [near.id]
        assert issues[0]["distance"] == pytest.approx(3.0, abs=0.01)

    def test_radius_edge_is_exclusive(self, client, citizen):
        inside = _seed_issue(citizen, lat=self._north(4.999), title="inside")
        _seed_issue(citizen, lat=self._north(5.001), title="outside")
        res = client.get(f"/api/v1/issues/nearby?latitude={BASE[0]}&longitude={BASE[1]}")
        assert [i["id"] for i in res.get_json()["issues"]] == [inside.id]

    def test_high_latitude_keeps_issues_near_box_corner(self, citizen):
        # 993 km away, beyond the naive r / (R cos lat) longitude span
        far_east = _seed_issue(citizen, lat=72.0, lon=27.0, title="far east")
        issues = issue_service.nearby_issues(70.0, 0.0, 1000)
        assert [i["id"] for i in issues] == [far_east.id]
        assert issues[0]["distance"] == pytest.approx(993.3, abs=0.5)

    def test_circle_over_pole_keeps_every_longitude(self, citizen):
        across = _seed_issue(citizen, lat=89.5, lon=-170.0, title="across the pole")
        issues = issue_service.nearby_issues(89.5, 10.0, 200)
        assert [i["id"] for i in issues] == [across.id]

    def test_wider_radius_sorted_nearest_first(self, client, citizen):
        _seed_issue(citizen, lat=self._north(10), title="10km")
        _seed_issue(citizen, lat=self._north(3), title="3km")
        _seed_issue(citizen, lat=self._north(-1), title="1km south")
        res = client.get(
            f"/api/v1/issues/nearby?latitude={BASE[0]}&longitude={BASE[1]}&radius=15")
        assert [i["title"] for i in res.get_json()["issues"]] == ["1km south", "3km", "10km"]

    def test_requires_coordinates(self, client):
        assert client.get("/api/v1/issues/nearby?latitude=41").status_code == 400

    def test_radius_must_be_positive(self, client):
        res = client.get("/api/v1/issues/nearby?latitude=41&longitude=29&radius=-1")
        assert res.status_code == 400


# ═════════════════════════════════════════════════════════════════════════════
# Mutations
# ═════════════════════════════════════════════════════════════════════════════


class TestIssueStatus:
    def test_status_change_writes_history_and_notification(self, client, citizen, gov_user,
                                                            auth_header):
        issue = _create(client, auth_header(citizen))
        res = client.patch(f"/api/v1/issues/{issue['id']}/status", json={"status": "CLOSED"},
                           headers=auth_header(gov_user))
        assert res.status_code == 200
        assert res.get_json()["issue"]["status"] == "CLOSED"

        history = db.session.query(IssueStatusHistory).one()
        assert (history.status, history.changed_by_id) == ("CLOSED", gov_user.id)
        notif = db.session.query(Notification).one()
        assert notif.user_id == citizen.id
        assert notif.message == 'Your issue "Pothole" status has been updated to CLOSED'

    def test_any_transition_allowed(self, client, citizen, admin_user, auth_header):
        issue = _create(client, auth_header(citizen))
        for status in ("CLOSED", "PENDING", "PAUSED"):
            res = client.patch(f"/api/v1/issues/{issue['id']}/status", json={"status": status},
                               headers=auth_header(admin_user))
            assert res.status_code == 200
        assert db.session.query(IssueStatusHistory).count() == 3

    def test_unknown_status_rejected(self, client, citizen, gov_user, auth_header):
        issue = _create(client, auth_header(citizen))
        res = client.patch(f"/api/v1/issues/{issue['id']}/status", json={"status": "DONE"},
                           headers=auth_header(gov_user))
        assert res.status_code == 400
        assert db.session.query(IssueStatusHistory).count() == 0

    def test_citizen_cannot_change_status(self, client, citizen, auth_header):
        issue = _create(client, auth_header(citizen))
        res = client.patch(f"/api/v1/issues/{issue['id']}/status", json={"status": "CLOSED"},
                           headers=auth_header(citizen))
        assert res.status_code == 403

    def test_failed_notification_rolls_back_status(self, client, citizen, gov_user, auth_header):
        issue = _create(client, auth_header(citizen))
        with patch("public_pulse.services.issue_service.NotificationService.notify_status_change",
                   side_effect=RuntimeError("boom")):
            with pytest.raises(RuntimeError):
                client.patch(f"/api/v1/issues/{issue['id']}/status", json={"status": "CLOSED"},
                             headers=auth_header(gov_user))
        db.session.expire_all()
        assert db.session.get(Issue, issue["id"]).status == "PENDING"
        assert db.session.query(IssueStatusHistory).count() == 0


class TestIssueDepartmentAndUpdate:
    def test_assign_department_notifies_author(self, client, citizen, gov_user, auth_header,
                                               departments):
        water, _ = departments
        issue = _create(client, auth_header(citizen), description="nothing matching")
        res = client.patch(f"/api/v1/issues/{issue['id']}/department",
                           json={"department_id": water.id}, headers=auth_header(gov_user))
        assert res.get_json()["issue"]["department_id"] == water.id
        notif = db.session.query(Notification).one()
        assert notif.message == 'Your issue "Pothole" has been assigned to a department'

    def test_clear_department(self, client, citizen, gov_user, auth_header, departments):
        issue = _create(client, auth_header(citizen))
        res = client.patch(f"/api/v1/issues/{issue['id']}/department",
                           json={"department_id": None}, headers=auth_header(gov_user))
        assert res.get_json()["issue"]["department_id"] is None

    def test_unknown_department(self, client, citizen, gov_user, auth_header):
        issue = _create(client, auth_header(citizen))
        res = client.patch(f"/api/v1/issues/{issue['id']}/department",
                           json={"department_id": "nope"}, headers=auth_header(gov_user))
        assert res.status_code == 404

    def test_author_updates_fields(self, client, citizen, auth_header):
        issue = _create(client, auth_header(citizen))
        res = client.put(f"/api/v1/issues/{issue['id']}", json={"title": "Bigger pothole",
                                                                 "severity": 9},
                         headers=auth_header(citizen))
        body = res.get_json()["issue"]
        assert (body["title"], body["severity"]) == ("Bigger pothole", 9)

    def test_severity_out_of_range(self, client, citizen, auth_header):
        issue = _create(client, auth_header(citizen))
        res = client.put(f"/api/v1/issues/{issue['id']}", json={"severity": 11},
                         headers=auth_header(citizen))
        assert res.status_code == 400

    def test_other_citizen_cannot_update(self, client, citizen, other_citizen, auth_header):
        issue = _create(client, auth_header(citizen))
        res = client.put(f"/api/v1/issues/{issue['id']}", json={"title": "mine now"},
                         headers=auth_header(other_citizen))
        assert res.status_code == 403

    def test_replace_images(self, client, citizen, auth_header, storage):
        res = client.post(
            "/api/v1/issues",
            data={**_issue_payload(), "images": [(io.BytesIO(b"old"), "old.jpg", "image/jpeg")]},
            headers=auth_header(citizen), content_type="multipart/form-data",
        )
        issue = res.get_json()["issue"]
        old_key = db.session.query(Image).one().url

        res = client.put(
            f"/api/v1/issues/{issue['id']}",
            data={"replace_images": "true",
                  "images": [(io.BytesIO(b"new"), "new.jpg", "image/jpeg")]},
            headers=auth_header(citizen), content_type="multipart/form-data",
        )
        images = res.get_json()["issue"]["images"]
        assert len(images) == 1
        assert client.get(images[0]["url"]).data == b"new"
        assert not storage.exists(old_key)

    def test_reanalyze(self, client, citizen, gov_user, auth_header, departments):
        issue = _create(client, auth_header(citizen), description="nothing matching")
        db.session.get(Issue, issue["id"]).severity = 2
        db.session.commit()
        res = client.post(f"/api/v1/issues/{issue['id']}/reanalyze",
                          headers=auth_header(gov_user))
        body = res.get_json()
        assert body["issue"]["severity"] == 4
        assert body["analysis"]["classified"] is True


class TestIssueDelete:
    def test_cascade(self, client, citizen, other_citizen, gov_user, auth_header, storage):
        res = client.post(
            "/api/v1/issues",
            data={**_issue_payload(), "images": [(io.BytesIO(b"x"), "a.jpg", "image/jpeg")]},
            headers=auth_header(citizen), content_type="multipart/form-data",
        )
        issue_id = res.get_json()["issue"]["id"]
        key = db.session.query(Image).one().url

        comment = client.post("/api/v1/comments", json={"content": "c", "issue_id": issue_id},
                              headers=auth_header(other_citizen)).get_json()["comment"]
        client.post("/api/v1/comments", json={"content": "r", "parent_id": comment["id"]},
                    headers=auth_header(citizen))
        client.post(f"/api/v1/votes/comment/{comment['id']}", json={"type": "UPVOTE"},
                    headers=auth_header(citizen))
        client.post(f"/api/v1/votes/issue/{issue_id}", json={"type": "DOWNVOTE"},
                    headers=auth_header(other_citizen))
        client.patch(f"/api/v1/issues/{issue_id}/status", json={"status": "ONGOING"},
                     headers=auth_header(gov_user))

        res = client.delete(f"/api/v1/issues/{issue_id}", headers=auth_header(citizen))
        assert res.status_code == 200

        db.session.expire_all()
        for model in (Issue, Image, Comment, Vote, IssueStatusHistory, Notification):
            assert db.session.query(model).count() == 0, model.__name__
        assert not storage.exists(key)
        assert client.get(f"/api/v1/issues/{issue_id}").status_code == 404
        assert client.get(f"/api/v1/comments/issue/{issue_id}").status_code == 404

    def test_only_author_or_admin(self, client, citizen, gov_user, admin_user, auth_header):
        issue = _create(client, auth_header(citizen))
        res = client.delete(f"/api/v1/issues/{issue['id']}", headers=auth_header(gov_user))
        assert res.status_code == 403
        res = client.delete(f"/api/v1/issues/{issue['id']}", headers=auth_header(admin_user))
        assert res.status_code == 200
