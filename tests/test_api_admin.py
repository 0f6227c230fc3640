"""API tests for the admin, directory, notification and health blueprints."""

from loan_portal.models.auth import ROLE_APPROVER, ROLE_BRANCH_USER
from loan_portal.services.notification import NotificationService


def _h(user):
    return {"X-User-Id": str(user.id)}


class TestDirectoryApi:
    def test_admin_creates_district_branch_product(self, client, admin):
        res = client.post("/api/v1/districts", headers=_h(admin), json={"name": "Northern"})
        assert res.status_code == 201
        district_id = res.get_json()["id"]

        res = client.post("/api/v1/branches", headers=_h(admin), json={
            "district_id": district_id, "name": "Hilltop", "phone": "0700",
        })
        assert res.status_code == 201
        assert res.get_json()["district"]["name"] == "Northern"

        res = client.post("/api/v1/products", headers=_h(admin), json={"name": "Gold Financing"})
        assert res.status_code == 201

    def test_branch_user_cannot_write(self, client, branch_user):
        res = client.post("/api/v1/districts", headers=_h(branch_user), json={"name": "Rogue"})
        assert res.status_code == 403

    def test_reads_open_to_signed_in_users(self, client, branch_user, product, other_product):
        client_res = client.get("/api/v1/products?active=true", headers=_h(branch_user))
        assert client_res.status_code == 200
        assert client_res.get_json()["total"] == 2

    def test_duplicate_is_409(self, client, admin, district):
        res = client.post("/api/v1/districts", headers=_h(admin), json={"name": "Central"})
        assert res.status_code == 409
        assert res.get_json()["code"] == "ERR_CONFLICT_DUPLICATE"

    def test_product_delete_is_soft(self, client, admin, product):
        res = client.delete(f"/api/v1/products/{product.id}", headers=_h(admin))
        assert res.status_code == 200
        assert res.get_json()["is_active"] is False
        listing = client.get("/api/v1/products", headers=_h(admin)).get_json()
        assert listing["total"] == 1

    def test_branch_with_history_is_409_in_use(self, client, admin, make_user, branch):
        make_user(ROLE_BRANCH_USER, branch=branch, is_active=False)
        res = client.delete(f"/api/v1/branches/{branch.id}", headers=_h(admin))
        assert res.status_code == 409
        body = res.get_json()
        assert body["code"] == "ERR_CONFLICT_IN_USE"
        assert body["details"]["field"] == "references"


class TestAdminApi:
    def test_create_user_and_assignment(self, client, admin, district):
        res = client.post("/api/v1/admin/users", headers=_h(admin), json={
            "email": "new.approver@bank.test", "full_name": "New Approver", "role": ROLE_APPROVER,
        })
        assert res.status_code == 201
        approver_id = res.get_json()["id"]

        res = client.post("/api/v1/admin/assignments", headers=_h(admin), json={
            "approver_id": approver_id, "district_ids": [district.id],
        })
        assert res.status_code == 201
        assert res.get_json()["created"] == 1

        grouped = client.get("/api/v1/admin/assignments/grouped", headers=_h(admin)).get_json()
        assert grouped["items"][0]["districts"][0]["id"] == district.id

    def test_branch_user_without_branch_is_422(self, client, admin):
        res = client.post("/api/v1/admin/users", headers=_h(admin), json={
            "email": "teller@bank.test", "full_name": "Teller", "role": ROLE_BRANCH_USER,
        })
        assert res.status_code == 422

    def test_non_admin_forbidden(self, client, approver):
        assert client.get("/api/v1/admin/users", headers=_h(approver)).status_code == 403

    def test_deactivate_user(self, client, admin, approver):
        res = client.post(f"/api/v1/admin/users/{approver.id}/deactivate", headers=_h(admin))
        assert res.status_code == 200
        assert res.get_json()["is_active"] is False
        # Deactivated users lose every role-gated endpoint
        assert client.get("/api/v1/dashboard", headers=_h(approver)).status_code == 403

    def test_assignment_requires_approver_id(self, client, admin):
        res = client.post("/api/v1/admin/assignments", headers=_h(admin), json={})
        assert res.status_code == 400


class TestNotificationApi:
    def test_unread_count_and_mark_read(self, client, branch_user, approver):
        mine = NotificationService.enqueue(branch_user.id, "One", "", "status_changed")
        NotificationService.enqueue(branch_user.id, "Two", "", "returned")
        theirs = NotificationService.enqueue(approver.id, "Other", "", "application_submitted")

        res = client.get("/api/v1/notifications/unread-count", headers=_h(branch_user))
        assert res.get_json()["unread_count"] == 2

        res = client.post(f"/api/v1/notifications/{mine.id}/read", headers=_h(branch_user))
        assert res.status_code == 200
        assert res.get_json()["is_read"] is True

        res = client.post(f"/api/v1/notifications/{theirs.id}/read", headers=_h(branch_user))
        assert res.status_code == 404

        res = client.post("/api/v1/notifications/read-all", headers=_h(branch_user))
        assert res.get_json()["marked_read"] == 1
        res = client.get("/api/v1/notifications?unread_only=true", headers=_h(branch_user))
        assert res.get_json()["total"] == 0


class TestHealthAndErrors:
    def test_health(self, client):
        assert client.get("/api/v1/health/ready").status_code == 200
        res = client.get("/api/v1/health/live")
        assert res.status_code == 200
        assert res.get_json()["checks"]["database"]["status"] == "ok"

    def test_request_id_header(self, client):
        res = client.get("/api/v1/health/ready", headers={"X-Request-ID": "abc123"})
        assert res.headers["X-Request-ID"] == "abc123"
        assert "X-Request-Duration-Ms" in res.headers

    def test_unknown_route_is_json_404(self, client):
        res = client.get("/api/v1/nope")
        assert res.status_code == 404
        assert res.get_json()["error"] == "Not found"
