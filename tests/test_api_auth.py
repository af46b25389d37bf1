"""HTTP-level tests: status codes, error envelope and the per-action access policy."""

import unittest

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.deps import client_origin, enforce_action_policy
from app.api.errors import auth_http_exception_handler
from app.core.config import get_settings, settings
from app.core.database import get_db
from app.core.security import PasswordHasher
from app.main import app
from auth_testing import TEST_ITERATIONS, add_user, make_engine, make_settings

PREFIX = settings.API_V1_PREFIX
SHARED_TOKEN = "club-service-token"


class ApiTestCase(unittest.TestCase):
    def setUp(self) -> None:
        engine = make_engine()
        self.SessionTesting = sessionmaker(bind=engine, autocommit=False, autoflush=False)
        self.session = self.SessionTesting()

        def override_get_db():
            db = self.SessionTesting()
            try:
                yield db
            finally:
                db.close()

        app.dependency_overrides[get_db] = override_get_db
        app.dependency_overrides[get_settings] = lambda: make_settings(SHARED_TOKEN=SHARED_TOKEN)
        self.client = TestClient(app)

        hasher = PasswordHasher(TEST_ITERATIONS)
        self.coach = add_user(self.session, password_hash=hasher.hash("coach-pw"))
        self.admin = add_user(
            self.session,
            display_name="Admin",
            email="admin@example.com",
            role="admin",
            password_hash=hasher.hash("admin-pw"),
        )

    def tearDown(self) -> None:
        app.dependency_overrides.clear()
        self.session.close()

    def login(self, identifier: str = "coach@example.com", password: str = "coach-pw"):
        return self.client.post(
            f"{PREFIX}/auth/login", json={"identifier": identifier, "password": password}
        )

    def bearer(self, token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}"}


class TestLoginEndpoint(ApiTestCase):
    def test_success(self) -> None:
        response = self.login()
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertTrue(body["ok"])
        self.assertEqual(body["data"]["user"]["email"], "coach@example.com")
        self.assertEqual(body["data"]["user"]["role"], "coach")
        self.assertIn("access_token", body["data"])
        self.assertIn("refresh_token", body["data"])

    def test_wrong_password_envelope(self) -> None:
        response = self.login(password="nope")
        self.assertEqual(response.status_code, 401)
        self.assertEqual(
            response.json(),
            {"ok": False, "error": "Invalid credentials", "code": "invalid_credentials"},
        )
        self.assertEqual(response.headers.get("WWW-Authenticate"), "Bearer")

    def test_missing_fields(self) -> None:
        response = self.client.post(f"{PREFIX}/auth/login", json={"identifier": "coach@example.com"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "missing_param")

    def test_unknown_account(self) -> None:
        response = self.login(identifier="ghost@example.com")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["code"], "account_not_found")

    def test_rate_limited_after_five_failures(self) -> None:
        codes = [self.login(password="nope").status_code for _ in range(5)]
        self.assertEqual(codes, [401, 401, 401, 401, 429])
        response = self.login()
        self.assertEqual(response.status_code, 429)
        self.assertEqual(response.json()["code"], "rate_limited")

    def test_forwarded_ip_keys_the_throttle(self) -> None:
        for _ in range(5):
            self.client.post(
                f"{PREFIX}/auth/login",
                json={"identifier": "coach@example.com", "password": "nope"},
                headers={"X-Forwarded-For": "203.0.113.9, 10.0.0.1"},
            )
        self.assertEqual(self.login().status_code, 200)

    def test_unparseable_forwarded_header_still_throttles(self) -> None:
        headers = {"X-Forwarded-For": "x" * 200}
        codes = [
            self.client.post(
                f"{PREFIX}/auth/login",
                json={"identifier": "coach@example.com", "password": "nope"},
                headers=headers,
            ).status_code
            for _ in range(5)
        ]
        self.assertEqual(codes, [401, 401, 401, 401, 429])
        self.assertEqual(self.login().status_code, 429)

    def test_precheck(self) -> None:
        response = self.client.post(
            f"{PREFIX}/auth/login/precheck", json={"identifier": "Coach@Example.com"}
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            response.json()["data"], {"account_exists": True, "requires_password": True}
        )


class TestTokenEndpoints(ApiTestCase):
    def test_me(self) -> None:
        access = self.login().json()["data"]["access_token"]
        response = self.client.get(f"{PREFIX}/auth/me", headers=self.bearer(access))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"]["user"]["id"], self.coach.id)

    def test_me_requires_token(self) -> None:
        response = self.client.get(f"{PREFIX}/auth/me")
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["code"], "unauthorized")

    def test_refresh_rotation(self) -> None:
        refresh = self.login().json()["data"]["refresh_token"]
        response = self.client.post(f"{PREFIX}/auth/refresh", json={"refresh_token": refresh})
        self.assertEqual(response.status_code, 200)
        new_refresh = response.json()["data"]["refresh_token"]

        reused = self.client.post(f"{PREFIX}/auth/refresh", json={"refresh_token": refresh})
        self.assertEqual(reused.status_code, 401)
        self.assertEqual(reused.json()["code"], "invalid_token")

        via_header = self.client.post(f"{PREFIX}/auth/refresh", headers=self.bearer(new_refresh))
        self.assertEqual(via_header.status_code, 200)

    def test_refresh_missing_token(self) -> None:
        response = self.client.post(f"{PREFIX}/auth/refresh")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "missing_param")

    def test_logout(self) -> None:
        refresh = self.login().json()["data"]["refresh_token"]
        response = self.client.post(f"{PREFIX}/auth/logout", json={"refresh_token": refresh})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"ok": True, "data": {"status": "ok"}})
        again = self.client.post(f"{PREFIX}/auth/refresh", json={"refresh_token": refresh})
        self.assertEqual(again.status_code, 401)

    def test_password_update(self) -> None:
        access = self.login().json()["data"]["access_token"]
        response = self.client.post(
            f"{PREFIX}/auth/password", json={"password": "fresh-pw"}, headers=self.bearer(access)
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"]["status"], "updated")
        self.assertEqual(self.login(password="fresh-pw").status_code, 200)

        other = self.client.post(
            f"{PREFIX}/auth/password",
            json={"password": "x-pw", "user_id": self.admin.id},
            headers=self.bearer(access),
        )
        self.assertEqual(other.status_code, 403)
        self.assertEqual(other.json()["code"], "forbidden")

        bad_id = self.client.post(
            f"{PREFIX}/auth/password",
            json={"password": "x-pw", "user_id": "not-a-number"},
            headers=self.bearer(access),
        )
        self.assertEqual(bad_id.status_code, 400)
        self.assertEqual(bad_id.json()["code"], "invalid_param")


class TestActionPolicy(ApiTestCase):
    def test_users_list_requires_jwt(self) -> None:
        response = self.client.get(f"{PREFIX}/auth/users")
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["code"], "unauthorized")

        shared = self.client.get(f"{PREFIX}/auth/users", headers=self.bearer(SHARED_TOKEN))
        self.assertEqual(shared.status_code, 401)

    def test_users_list_requires_admin(self) -> None:
        coach_access = self.login().json()["data"]["access_token"]
        forbidden = self.client.get(f"{PREFIX}/auth/users", headers=self.bearer(coach_access))
        self.assertEqual(forbidden.status_code, 403)

        admin_access = self.login("admin@example.com", "admin-pw").json()["data"]["access_token"]
        response = self.client.get(f"{PREFIX}/auth/users", headers=self.bearer(admin_access))
        self.assertEqual(response.status_code, 200)
        emails = [u["email"] for u in response.json()["data"]["users"]]
        self.assertEqual(emails, ["coach@example.com", "admin@example.com"])

    def test_health_is_public(self) -> None:
        response = self.client.get(f"{PREFIX}/health/")
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["status"], "ok")
        self.assertEqual(body["database"], "connected")
        self.assertTrue(body["auth_configured"])

    def test_action_parameter_does_not_change_policy(self) -> None:
        health = self.client.get(f"{PREFIX}/health/", params={"action": "assignments_list"})
        self.assertEqual(health.status_code, 200)

        users = self.client.get(f"{PREFIX}/auth/users", params={"action": "health"})
        self.assertEqual(users.status_code, 401)
        self.assertEqual(users.json()["code"], "unauthorized")


class TestSharedTokenRoute(ApiTestCase):
    """A shared-token action mounted behind the same router-level gate."""

    def setUp(self) -> None:
        super().setUp()
        gated = APIRouter(dependencies=[Depends(enforce_action_policy)])

        @gated.post("/exercises")
        def exercises_update() -> dict[str, bool]:
            return {"ok": True}

        self.gated_app = FastAPI()
        self.gated_app.add_exception_handler(StarletteHTTPException, auth_http_exception_handler)
        self.gated_app.include_router(gated)
        self.gated_app.dependency_overrides = dict(app.dependency_overrides)
        self.gated_client = TestClient(self.gated_app)

    def test_requires_shared_token(self) -> None:
        response = self.gated_client.post("/exercises")
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["code"], "unauthorized")

    def test_action_parameter_cannot_loosen_gate(self) -> None:
        for action in ("auth_login", "health", ""):
            response = self.gated_client.post("/exercises", params={"action": action})
            self.assertEqual(response.status_code, 401, action)

    def test_query_token(self) -> None:
        response = self.gated_client.post("/exercises", params={"token": SHARED_TOKEN})
        self.assertEqual(response.status_code, 200)

    def test_bearer_token(self) -> None:
        response = self.gated_client.post("/exercises", headers=self.bearer(SHARED_TOKEN))
        self.assertEqual(response.status_code, 200)


class TestClientOrigin(unittest.TestCase):
    def make_request(self, headers: list[tuple[bytes, bytes]], client=("10.1.2.3", 5000)) -> Request:
        return Request({"type": "http", "method": "POST", "path": "/", "headers": headers, "client": client})

    def test_valid_forwarded_ip(self) -> None:
        request = self.make_request([(b"x-forwarded-for", b"203.0.113.9, 10.0.0.1")])
        self.assertEqual(client_origin(request), "203.0.113.9")

    def test_cf_header_wins(self) -> None:
        request = self.make_request(
            [(b"cf-connecting-ip", b"2001:db8::1"), (b"x-forwarded-for", b"203.0.113.9")]
        )
        self.assertEqual(client_origin(request), "2001:db8::1")

    def test_invalid_cf_header_falls_through_to_forwarded(self) -> None:
        request = self.make_request(
            [(b"cf-connecting-ip", b"not-an-ip"), (b"x-forwarded-for", b"203.0.113.9")]
        )
        self.assertEqual(client_origin(request), "203.0.113.9")

    def test_overlong_header_falls_back_to_peer(self) -> None:
        request = self.make_request([(b"x-forwarded-for", b"a" * 100)])
        self.assertEqual(client_origin(request), "10.1.2.3")

    def test_no_peer(self) -> None:
        request = self.make_request([(b"x-forwarded-for", b"garbage")], client=None)
        self.assertEqual(client_origin(request), "unknown")


if __name__ == "__main__":
    unittest.main()
