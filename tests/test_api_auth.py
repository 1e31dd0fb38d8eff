from flashdeck.core.config import Settings
from flashdeck.core.security import create_access_token, decode_access_token


class TestLogin:
    def test_bootstrap_admin_can_log_in(self, client):
        resp = client.post(
            "/api/v1/auth/login",
            json={"first_name": "root", "last_name": " ADMIN ", "password": "admin-pass"},
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["token_type"] == "bearer"
        assert body["user"]["role"] == "admin"
        assert "password" not in body["user"]

    def test_wrong_password(self, client):
        resp = client.post(
            "/api/v1/auth/login",
            json={"first_name": "Root", "last_name": "Admin", "password": "nope"},
        )
        assert resp.status_code == 401

    def test_oauth2_form_login(self, client):
        resp = client.post(
            "/api/v1/auth/token",
            data={"username": "Root Admin", "password": "admin-pass"},
        )
        assert resp.status_code == 200
        token = resp.json()["access_token"]

        me = client.get("/api/v1/users/me", headers={"Authorization": f"Bearer {token}"})
        assert me.status_code == 200
        assert me.json()["first_name"] == "Root"

    def test_garbage_token_rejected(self, client):
        resp = client.get("/api/v1/users/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert resp.status_code == 401

    def test_me_requires_token(self, client):
        assert client.get("/api/v1/users/me").status_code == 401

    def test_tokens_signed_with_the_app_secret(self, client, api_settings):
        resp = client.post(
            "/api/v1/auth/login",
            json={"first_name": "Root", "last_name": "Admin", "password": "admin-pass"},
        )
        token = resp.json()["access_token"]
        assert decode_access_token(token, api_settings) is not None
        assert decode_access_token(token, Settings(SECRET_KEY="another-secret")) is None

    def test_token_from_another_secret_rejected(self, client, admin):
        foreign = create_access_token(
            data={"sub": admin.id}, app_settings=Settings(SECRET_KEY="another-secret")
        )
        resp = client.get("/api/v1/users/me", headers={"Authorization": f"Bearer {foreign}"})
        assert resp.status_code == 401


class TestSignupFlow:
    def test_signup_then_approve(self, client, admin, auth_headers, memory_storage):
        resp = client.post(
            "/api/v1/auth/signup",
            json={
                "first_name": "Nina",
                "last_name": "Simone",
                "password": "secret123",
                "requested_role": "teacher",
            },
        )
        assert resp.status_code == 201
        request_id = resp.json()["id"]
        assert "password" not in resp.json()
        # stored hashed
        assert memory_storage.get_account_request(request_id).password != "secret123"

        listed = client.get("/api/v1/account-requests/", headers=auth_headers(admin))
        assert [r["id"] for r in listed.json()] == [request_id]

        approved = client.post(
            f"/api/v1/account-requests/{request_id}/approve",
            json={"subject": "Maths"},
            headers=auth_headers(admin),
        )
        assert approved.status_code == 200
        assert approved.json()["role"] == "teacher"
        assert approved.json()["subject"] == "Maths"

        login = client.post(
            "/api/v1/auth/login",
            json={"first_name": "Nina", "last_name": "Simone", "password": "secret123"},
        )
        assert login.status_code == 200

    def test_teacher_approval_needs_subject(self, client, admin, auth_headers, memory_storage):
        resp = client.post(
            "/api/v1/auth/signup",
            json={
                "first_name": "Ada",
                "last_name": "Teacher",
                "password": "secret123",
                "requested_role": "teacher",
            },
        )
        request_id = resp.json()["id"]

        refused = client.post(
            f"/api/v1/account-requests/{request_id}/approve", headers=auth_headers(admin)
        )
        assert refused.status_code == 400
        assert memory_storage.get_account_request(request_id) is not None
        assert memory_storage.get_user_by_name("Ada", "Teacher") is None

        # overriding the role to student needs no subject
        approved = client.post(
            f"/api/v1/account-requests/{request_id}/approve",
            json={"role": "student"},
            headers=auth_headers(admin),
        )
        assert approved.status_code == 200
        assert approved.json()["subject"] is None

    def test_approve_missing_request(self, client, admin, auth_headers):
        resp = client.post("/api/v1/account-requests/nope/approve", headers=auth_headers(admin))
        assert resp.status_code == 404

    def test_signup_with_taken_name(self, client):
        resp = client.post(
            "/api/v1/auth/signup",
            json={"first_name": "Root", "last_name": "Admin", "password": "secret123"},
        )
        assert resp.status_code == 409

    def test_reject(self, client, admin, auth_headers, memory_storage):
        resp = client.post(
            "/api/v1/auth/signup",
            json={"first_name": "Al", "last_name": "Bert", "password": "secret123"},
        )
        request_id = resp.json()["id"]

        rejected = client.post(
            f"/api/v1/account-requests/{request_id}/reject", headers=auth_headers(admin)
        )
        assert rejected.status_code == 204
        assert memory_storage.get_account_requests() == []

    def test_requests_are_admin_only(self, client, student, auth_headers):
        resp = client.get("/api/v1/account-requests/", headers=auth_headers(student))
        assert resp.status_code == 403


class TestUsers:
    def test_admin_lists_users(self, client, admin, student, auth_headers):
        resp = client.get("/api/v1/users/", headers=auth_headers(admin))
        assert resp.status_code == 200
        assert {u["id"] for u in resp.json()} == {admin.id, student.id}
        assert all("password" not in u for u in resp.json())

    def test_admin_promotes_user(self, client, admin, student, auth_headers):
        resp = client.patch(
            f"/api/v1/users/{student.id}",
            json={"role": "teacher", "subject": "SVT"},
            headers=auth_headers(admin),
        )
        assert resp.status_code == 200
        assert resp.json()["role"] == "teacher"
        assert resp.json()["first_name"] == "Leo"

    def test_unknown_subject_rejected(self, client, admin, student, auth_headers):
        resp = client.patch(
            f"/api/v1/users/{student.id}",
            json={"subject": "Astrology"},
            headers=auth_headers(admin),
        )
        assert resp.status_code == 400

    def test_rename_to_taken_name_conflicts(self, client, admin, student, auth_headers):
        resp = client.patch(
            f"/api/v1/users/{student.id}",
            json={"first_name": "Root", "last_name": "Admin"},
            headers=auth_headers(admin),
        )
        assert resp.status_code == 409

    def test_admin_cannot_delete_self(self, client, admin, auth_headers):
        resp = client.delete(f"/api/v1/users/{admin.id}", headers=auth_headers(admin))
        assert resp.status_code == 400

    def test_delete_user(self, client, admin, student, auth_headers, memory_storage):
        resp = client.delete(f"/api/v1/users/{student.id}", headers=auth_headers(admin))
        assert resp.status_code == 204
        assert memory_storage.get_user(student.id) is None
        # token of a deleted user no longer works
        assert client.get("/api/v1/users/me", headers=auth_headers(student)).status_code == 401

    def test_student_cannot_manage_users(self, client, student, auth_headers):
        assert client.get("/api/v1/users/", headers=auth_headers(student)).status_code == 403


class TestHealth:
    def test_live_and_ping(self, client):
        assert client.get("/api/v1/health/live").json() == {"status": "ok"}
        assert client.get("/ping").status_code == 200

    def test_storage(self, client):
        body = client.get("/api/v1/health/storage").json()
        assert body["backend"] == "memory"
        assert body["users"] == 1
