"""HTTP-level tests for the auth, roles, users and health routers (FastAPI TestClient)."""

import unittest
from collections.abc import Generator
from unittest.mock import MagicMock

from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials
from fastapi.testclient import TestClient
from sqlalchemy import select
from sqlalchemy.orm import Session

from db_helpers import SQLiteTestCase, make_settings

from flashpoint_web.api.v1.auth import get_current_user_or_guest, get_settings_provider
from flashpoint_web.core.config import get_settings
from flashpoint_web.core.database import get_db
from flashpoint_web.core.exceptions import AuthenticationError, TokenInvalidError
from flashpoint_web.main import app
from flashpoint_web.models import Permission
from flashpoint_web.schemas.auth import AuthUser
from flashpoint_web.services.settings_provider import EnvSettingsProvider

PREFIX = "/api/v1"


class ApiTestCase(SQLiteTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.settings = make_settings()

        def override_get_db() -> Generator[Session, None, None]:
            db = self.new_session()
            try:
                yield db
            finally:
                db.close()

        app.dependency_overrides[get_db] = override_get_db
        app.dependency_overrides[get_settings] = lambda: self.settings
        app.dependency_overrides[get_settings_provider] = lambda: EnvSettingsProvider(self.settings)
        self.client = TestClient(app)
        self.client.__enter__()

    def tearDown(self) -> None:
        self.client.__exit__(None, None, None)
        app.dependency_overrides.clear()
        super().tearDown()

    def register(self, username: str, password: str = "password1") -> dict:
        response = self.client.post(
            f"{PREFIX}/auth/register",
            json={"username": username, "email": f"{username}@example.com", "password": password},
        )
        self.assertEqual(response.status_code, 201, response.text)
        return response.json()

    @staticmethod
    def bearer(body: dict) -> dict[str, str]:
        return {"Authorization": f"Bearer {body['tokens']['access_token']}"}

    def permission_id(self, name: str) -> int:
        return self.db.execute(select(Permission.id).where(Permission.name == name)).scalar_one()


class TestAuthRoutes(ApiTestCase):
    def test_register_login_me(self) -> None:
        admin = self.register("admin")
        self.assertEqual(admin["user"]["role"], "admin")
        response = self.client.post(
            f"{PREFIX}/auth/login", json={"username": "admin", "password": "password1"}
        )
        self.assertEqual(response.status_code, 200)
        me = self.client.get(f"{PREFIX}/auth/me", headers=self.bearer(response.json()))
        self.assertEqual(me.status_code, 200)
        self.assertEqual(me.json()["username"], "admin")
        self.assertIn("roles.update", me.json()["permissions"])

    def test_bad_credentials_401(self) -> None:
        self.register("admin")
        response = self.client.post(
            f"{PREFIX}/auth/login", json={"username": "admin", "password": "wrong-pass"}
        )
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["detail"], "Invalid username or password")

    def test_lockout_429(self) -> None:
        self.register("admin")
        for _ in range(self.settings.AUTH_MAX_LOGIN_ATTEMPTS):
            self.client.post(
                f"{PREFIX}/auth/login", json={"username": "admin", "password": "wrong-pass"}
            )
        response = self.client.post(
            f"{PREFIX}/auth/login", json={"username": "admin", "password": "password1"}
        )
        self.assertEqual(response.status_code, 429)

    def test_me_requires_token(self) -> None:
        self.assertEqual(self.client.get(f"{PREFIX}/auth/me").status_code, 401)
        response = self.client.get(
            f"{PREFIX}/auth/me", headers={"Authorization": "Bearer not-a-token"}
        )
        self.assertEqual(response.status_code, 401)

    def test_session_falls_back_to_guest(self) -> None:
        anonymous = self.client.get(f"{PREFIX}/auth/session")
        self.assertEqual(anonymous.status_code, 200)
        self.assertEqual(anonymous.json()["id"], 0)
        self.assertEqual(anonymous.json()["role"], "guest")
        self.assertEqual(sorted(anonymous.json()["permissions"]), ["games.read", "playlists.read"])

        admin = self.register("admin")
        signed_in = self.client.get(f"{PREFIX}/auth/session", headers=self.bearer(admin))
        self.assertEqual(signed_in.json()["username"], "admin")

        bad_token = self.client.get(
            f"{PREFIX}/auth/session", headers={"Authorization": "Bearer not-a-token"}
        )
        self.assertEqual(bad_token.status_code, 401)

    def test_session_without_guest_access_is_401(self) -> None:
        self.settings = make_settings(AUTH_GUEST_ACCESS_ENABLED=False)
        response = self.client.get(f"{PREFIX}/auth/session")
        self.assertEqual(response.status_code, 401)

    def test_refresh_is_single_use_and_logout_revokes(self) -> None:
        body = self.register("admin")
        old = body["tokens"]["refresh_token"]
        first = self.client.post(f"{PREFIX}/auth/refresh", json={"refresh_token": old})
        self.assertEqual(first.status_code, 200)
        again = self.client.post(f"{PREFIX}/auth/refresh", json={"refresh_token": old})
        self.assertEqual(again.status_code, 401)

        new = first.json()["tokens"]["refresh_token"]
        logout = self.client.post(f"{PREFIX}/auth/logout", json={"refresh_token": new})
        self.assertEqual(logout.status_code, 200)
        self.assertTrue(logout.json()["success"])
        after = self.client.post(f"{PREFIX}/auth/refresh", json={"refresh_token": new})
        self.assertEqual(after.status_code, 401)

    def test_logout_all_revokes_every_session(self) -> None:
        body = self.register("admin")
        second = self.client.post(
            f"{PREFIX}/auth/login", json={"username": "admin", "password": "password1"}
        ).json()
        response = self.client.post(f"{PREFIX}/auth/logout-all", headers=self.bearer(body))
        self.assertEqual(response.status_code, 200)
        for tokens in (body["tokens"], second["tokens"]):
            refresh = self.client.post(
                f"{PREFIX}/auth/refresh", json={"refresh_token": tokens["refresh_token"]}
            )
            self.assertEqual(refresh.status_code, 401)

    def test_validation_errors_422(self) -> None:
        response = self.client.post(
            f"{PREFIX}/auth/register",
            json={"username": "ab", "email": "not-an-email", "password": "x"},
        )
        self.assertEqual(response.status_code, 422)


class TestRoleRoutes(ApiTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.admin = self.register("admin")
        self.user = self.register("alice")

    def test_user_without_roles_read_is_forbidden(self) -> None:
        response = self.client.get(f"{PREFIX}/roles", headers=self.bearer(self.user))
        self.assertEqual(response.status_code, 403)

    def test_admin_role_crud(self) -> None:
        headers = self.bearer(self.admin)
        created = self.client.post(
            f"{PREFIX}/roles",
            headers=headers,
            json={"name": "editor", "permission_ids": [self.permission_id("games.read")]},
        )
        self.assertEqual(created.status_code, 201, created.text)
        role_id = created.json()["id"]
        self.assertEqual([p["name"] for p in created.json()["permissions"]], ["games.read"])

        duplicate = self.client.post(f"{PREFIX}/roles", headers=headers, json={"name": "EDITOR"})
        self.assertEqual(duplicate.status_code, 409)

        replaced = self.client.put(
            f"{PREFIX}/roles/{role_id}/permissions",
            headers=headers,
            json={"permission_ids": [self.permission_id("playlists.read")]},
        )
        self.assertEqual([p["name"] for p in replaced.json()["permissions"]], ["playlists.read"])

        patched = self.client.patch(
            f"{PREFIX}/roles/{role_id}", headers=headers, json={"priority": 7}
        )
        self.assertEqual(patched.json()["priority"], 7)

        deleted = self.client.delete(f"{PREFIX}/roles/{role_id}", headers=headers)
        self.assertEqual(deleted.status_code, 200)
        missing = self.client.get(f"{PREFIX}/roles/{role_id}", headers=headers)
        self.assertEqual(missing.status_code, 404)

    def test_system_roles_are_read_only(self) -> None:
        headers = self.bearer(self.admin)
        response = self.client.delete(f"{PREFIX}/roles/2", headers=headers)
        self.assertEqual(response.status_code, 403)
        response = self.client.patch(f"{PREFIX}/roles/1", headers=headers, json={"name": "boss"})
        self.assertEqual(response.status_code, 403)

    def test_list_permissions(self) -> None:
        response = self.client.get(f"{PREFIX}/roles/permissions", headers=self.bearer(self.admin))
        self.assertEqual(response.status_code, 200)
        self.assertIn("games.read", [p["name"] for p in response.json()])


class TestUserRoutes(ApiTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.admin = self.register("admin")
        self.user = self.register("alice")
        self.user_id = self.user["user"]["id"]

    def test_promotion_takes_effect_on_next_request(self) -> None:
        user_headers = self.bearer(self.user)
        self.assertEqual(
            self.client.get(f"{PREFIX}/roles", headers=user_headers).status_code, 403
        )
        response = self.client.patch(
            f"{PREFIX}/users/{self.user_id}",
            headers=self.bearer(self.admin),
            json={"role_id": 1},
        )
        self.assertEqual(response.status_code, 200, response.text)
        self.assertEqual(response.json()["role_name"], "admin")
        self.assertEqual(
            self.client.get(f"{PREFIX}/roles", headers=user_headers).status_code, 200
        )

    def test_deactivated_user_token_stops_working(self) -> None:
        self.client.patch(
            f"{PREFIX}/users/{self.user_id}",
            headers=self.bearer(self.admin),
            json={"is_active": False},
        )
        response = self.client.get(f"{PREFIX}/auth/me", headers=self.bearer(self.user))
        self.assertEqual(response.status_code, 401)

    def test_change_own_password(self) -> None:
        response = self.client.post(
            f"{PREFIX}/users/me/password",
            headers=self.bearer(self.user),
            json={"current_password": "password1", "new_password": "password2"},
        )
        self.assertEqual(response.status_code, 200)
        login = self.client.post(
            f"{PREFIX}/auth/login", json={"username": "alice", "password": "password2"}
        )
        self.assertEqual(login.status_code, 200)

    def test_admin_reset_password_revokes_refresh(self) -> None:
        response = self.client.post(
            f"{PREFIX}/users/{self.user_id}/password",
            headers=self.bearer(self.admin),
            json={"new_password": "password3"},
        )
        self.assertEqual(response.status_code, 200)
        refresh = self.client.post(
            f"{PREFIX}/auth/refresh", json={"refresh_token": self.user["tokens"]["refresh_token"]}
        )
        self.assertEqual(refresh.status_code, 401)

    def test_list_and_delete(self) -> None:
        headers = self.bearer(self.admin)
        listed = self.client.get(f"{PREFIX}/users", headers=headers)
        self.assertEqual([u["username"] for u in listed.json()], ["admin", "alice"])
        self.assertEqual(
            self.client.delete(f"{PREFIX}/users/{self.user_id}", headers=headers).status_code, 200
        )
        self.assertEqual(
            self.client.get(f"{PREFIX}/users/{self.user_id}", headers=headers).status_code, 404
        )


class TestHealth(ApiTestCase):
    def test_health_reports_cache_sizes(self) -> None:
        response = self.client.get(f"{PREFIX}/health/")
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["status"], "ok")
        self.assertEqual(body["database"], "connected")
        self.assertEqual(
            set(body["permission_cache"]), {"user_cache_size", "role_cache_size", "total_size"}
        )


class TestGuestDependency(unittest.TestCase):
    """get_current_user_or_guest: anonymous requests fall back to the guest identity."""

    def test_no_token_gives_guest(self) -> None:
        guest = AuthUser(id=0, username="guest", role="guest", permissions=["games.read"])
        service = MagicMock()
        service.guest_user.return_value = guest
        self.assertIs(get_current_user_or_guest(None, service), guest)
        service.verify.assert_not_called()

    def test_guest_disabled_is_401(self) -> None:
        service = MagicMock()
        service.guest_user.side_effect = AuthenticationError("Authentication required")
        with self.assertRaises(HTTPException) as ctx:
            get_current_user_or_guest(None, service)
        self.assertEqual(ctx.exception.status_code, 401)

    def test_bad_token_is_not_downgraded_to_guest(self) -> None:
        service = MagicMock()
        service.verify.side_effect = TokenInvalidError()
        credentials = HTTPAuthorizationCredentials(scheme="Bearer", credentials="junk")
        with self.assertRaises(HTTPException) as ctx:
            get_current_user_or_guest(credentials, service)
        self.assertEqual(ctx.exception.status_code, 401)
        service.guest_user.assert_not_called()
