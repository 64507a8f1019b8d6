"""Tests for flashpoint_web.services.roles: system role guard, escalation, uniqueness and cache ordering."""

import threading
from unittest.mock import MagicMock

from sqlalchemy import select

from db_helpers import SQLiteTestCase, make_settings

from flashpoint_web.core.exceptions import ConflictError, NotFoundError, PermissionDeniedError
from flashpoint_web.core.roles import PERMISSION_CATALOG, SystemRole, default_grants
from flashpoint_web.models import Permission, Role, RolePermission
from flashpoint_web.services.credentials import CredentialStore
from flashpoint_web.services.permission_cache import PermissionCache
from flashpoint_web.services.roles import RoleManager


class RoleTestCase(SQLiteTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.cache = PermissionCache()
        self.manager = RoleManager(self.db, self.cache)
        self.ids = {
            row.name: row.id for row in self.db.execute(select(Permission.id, Permission.name))
        }
        self.admin_permissions = {name for name, _ in PERMISSION_CATALOG}


class TestCatalog(RoleTestCase):
    def test_seeded_roles_in_priority_order(self) -> None:
        self.assertEqual([r.name for r in self.manager.get_roles()], ["admin", "user", "guest"])

    def test_seeded_grants(self) -> None:
        self.assertEqual(len(self.manager.get_permissions()), len(PERMISSION_CATALOG))
        guest = self.manager.get_role(SystemRole.GUEST)
        self.assertEqual(
            sorted(p.name for p in guest.permissions), sorted(default_grants(SystemRole.GUEST))
        )

    def test_get_role_unknown(self) -> None:
        with self.assertRaises(NotFoundError):
            self.manager.get_role(999)

    def test_role_permission_names_go_through_role_tier(self) -> None:
        names = self.manager.get_role_permission_names(SystemRole.GUEST)
        self.assertEqual(names, frozenset(default_grants(SystemRole.GUEST)))
        self.assertEqual(self.cache.get_role_permissions(SystemRole.GUEST), names)


class TestSystemRolesAreImmutable(RoleTestCase):
    def test_every_mutation_is_rejected(self) -> None:
        for role_id in (1, 2, 3):
            with self.subTest(role_id=role_id):
                with self.assertRaises(PermissionDeniedError) as ctx:
                    self.manager.update_role(role_id, name="renamed")
                self.assertEqual(ctx.exception.code, "SYSTEM_ROLE_IMMUTABLE")
                with self.assertRaises(PermissionDeniedError):
                    self.manager.update_role_permissions(role_id, [])
                with self.assertRaises(PermissionDeniedError):
                    self.manager.delete_role(role_id)
        self.assertEqual(len(self.manager.get_roles()), 3)
        self.assertEqual(
            len(self.manager.get_role(SystemRole.ADMIN).permissions), len(PERMISSION_CATALOG)
        )

    def test_guard_runs_before_existence_check(self) -> None:
        # Even with a full permission set the guard is not bypassed.
        with self.assertRaises(PermissionDeniedError):
            self.manager.update_role_permissions(
                SystemRole.USER, [self.ids["users.delete"]], self.admin_permissions
            )


class TestCreateRole(RoleTestCase):
    def test_create_with_permissions(self) -> None:
        role = self.manager.create_role(
            "editor",
            description="Curates playlists",
            priority=10,
            permission_ids=[self.ids["playlists.update"], self.ids["games.read"]],
        )
        self.assertEqual(role.name, "editor")
        self.assertEqual(
            [p.name for p in role.permissions], ["games.read", "playlists.update"]
        )

    def test_duplicate_name_is_case_insensitive(self) -> None:
        self.manager.create_role("editor")
        with self.assertRaises(ConflictError):
            self.manager.create_role("Editor")

    def test_unknown_permission_id_rolls_back(self) -> None:
        with self.assertRaises(NotFoundError):
            self.manager.create_role("editor", permission_ids=[self.ids["games.read"], 9999])
        self.assertEqual(len(self.manager.get_roles()), 3)

    def test_concurrent_creates_yield_one_conflict(self) -> None:
        barrier = threading.Barrier(2)
        outcomes: list[str] = []
        lock = threading.Lock()

        def worker() -> None:
            session = self.new_session()
            try:
                manager = RoleManager(session, self.cache)
                barrier.wait()
                try:
                    manager.create_role("editor", permission_ids=[self.ids["games.read"]])
                    outcome = "created"
                except ConflictError:
                    outcome = "conflict"
                with lock:
                    outcomes.append(outcome)
            finally:
                session.close()

        threads = [threading.Thread(target=worker) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)
        self.assertEqual(sorted(outcomes), ["conflict", "created"])
        names = [r.name for r in self.manager.get_roles()]
        self.assertEqual(names.count("editor"), 1)


class TestEscalation(RoleTestCase):
    def test_cannot_grant_what_you_do_not_hold(self) -> None:
        acting = {"roles.read", "roles.update", "roles.create", "games.read"}
        with self.assertRaises(PermissionDeniedError) as ctx:
            self.manager.create_role(
                "deleter",
                permission_ids=[self.ids["games.read"], self.ids["users.delete"]],
                acting_permissions=acting,
            )
        self.assertEqual(ctx.exception.code, "PERMISSION_ESCALATION")
        self.assertIn("users.delete", ctx.exception.message)
        self.assertNotIn("games.read", ctx.exception.message)

    def test_subset_passes(self) -> None:
        role = self.manager.create_role(
            "reader",
            permission_ids=[self.ids["games.read"]],
            acting_permissions={"games.read", "roles.create"},
        )
        self.assertEqual([p.name for p in role.permissions], ["games.read"])

    def test_empty_request_passes(self) -> None:
        self.manager.validate_permission_escalation([], set())

    def test_unknown_id_counts_as_escalation(self) -> None:
        with self.assertRaises(PermissionDeniedError) as ctx:
            self.manager.validate_permission_escalation([4242], self.admin_permissions)
        self.assertIn("#4242", ctx.exception.message)

    def test_replace_permissions_checks_escalation(self) -> None:
        role = self.manager.create_role("editor")
        with self.assertRaises(PermissionDeniedError):
            self.manager.update_role_permissions(
                role.id, [self.ids["settings.update"]], acting_permissions={"roles.update"}
            )


class TestUpdateAndDelete(RoleTestCase):
    def test_update_metadata(self) -> None:
        role = self.manager.create_role("editor")
        updated = self.manager.update_role(role.id, name="curator", priority=20)
        self.assertEqual((updated.name, updated.priority), ("curator", 20))

    def test_rename_into_existing_name_conflicts(self) -> None:
        self.manager.create_role("editor")
        other = self.manager.create_role("curator")
        with self.assertRaises(ConflictError):
            self.manager.update_role(other.id, name="EDITOR")

    def test_replace_all_permissions(self) -> None:
        role = self.manager.create_role(
            "editor", permission_ids=[self.ids["games.read"], self.ids["games.play"]]
        )
        updated = self.manager.update_role_permissions(role.id, [self.ids["playlists.read"]])
        self.assertEqual([p.name for p in updated.permissions], ["playlists.read"])
        cleared = self.manager.update_role_permissions(role.id, [])
        self.assertEqual(cleared.permissions, [])

    def test_update_permissions_invalidates_users_after_commit(self) -> None:
        role = self.manager.create_role("editor")
        self.cache.set_user_permissions(42, ["games.read"])
        self.manager.update_role_permissions(role.id, [self.ids["games.read"]])
        self.assertIsNone(self.cache.get_user_permissions(42))

    def test_failed_update_leaves_cache_alone(self) -> None:
        role = self.manager.create_role("editor")
        self.cache.set_user_permissions(42, ["games.read"])
        with self.assertRaises(NotFoundError):
            self.manager.update_role_permissions(role.id, [9999])
        self.assertIsNotNone(self.cache.get_user_permissions(42))

    def test_delete_role_in_use(self) -> None:
        role = self.manager.create_role("editor")
        CredentialStore(self.db, make_settings().BCRYPT_ROUNDS).create_user(
            "bob", "bob@example.com", "password1", role.id
        )
        with self.assertRaises(ConflictError) as ctx:
            self.manager.delete_role(role.id)
        self.assertEqual(ctx.exception.code, "ROLE_IN_USE")

    def test_delete_role_removes_links_and_invalidates(self) -> None:
        role = self.manager.create_role("editor", permission_ids=[self.ids["games.read"]])
        role_id = role.id
        self.cache.set_user_permissions(42, ["games.read"])
        self.manager.delete_role(role_id)
        self.assertIsNone(self.db.get(Role, role_id))
        links = self.db.query(RolePermission).filter(RolePermission.role_id == role_id).count()
        self.assertEqual(links, 0)
        self.assertIsNone(self.cache.get_user_permissions(42))

    def test_invalidation_happens_after_commit(self) -> None:
        role = self.manager.create_role("editor")
        cache = MagicMock(spec=PermissionCache)
        db = MagicMock(wraps=self.db)
        calls: list[str] = []
        db.commit.side_effect = lambda: (calls.append("commit"), self.db.commit())
        cache.invalidate_role.side_effect = lambda _rid: calls.append("invalidate")
        RoleManager(db, cache).delete_role(role.id)
        self.assertEqual(calls, ["commit", "invalidate"])
