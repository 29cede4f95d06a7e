"""
Tests for the session controller.

Covers the login gate, registration, impersonation, logout and
serialization of overlapping operations, in both backend modes.
"""

import asyncio

import pytest

from lifeledger.auth import SessionController
from lifeledger.auth.controller import (
    MSG_ALREADY_EXISTS,
    MSG_DEACTIVATED,
    MSG_IMPERSONATE_FAILED,
    MSG_IMPERSONATE_SELF,
    MSG_INVALID_CREDENTIALS,
    MSG_LOGIN_FAILED,
    MSG_LOGOUT_FAILED,
    MSG_PENDING_APPROVAL,
)
from lifeledger.models.audit import AuditEventType
from lifeledger.models.user import (
    AuthFailure,
    AuthState,
    BackendMode,
    NoticeLevel,
    User,
    UserRole,
)
from lifeledger.services.storage.local_store import (
    AUDIT_LOG_KEY,
    CURRENT_USER_KEY,
    SEED_ADMIN_ID,
    USERS_KEY,
)

from .helpers.fakes import FailingAuthBackend, SlowAuthBackend


def messages(controller: SessionController) -> list[str]:
    return [n.message for n in controller.pop_notices()]


def audit_types(audit_storage) -> list[AuditEventType]:
    return [e.event_type for e in asyncio.run(audit_storage.get_recent_events())]


class TestCheckSession:
    """Tests for restoring a session on page load."""

    def test_starts_loading_and_unauthenticated(self, controller):
        assert controller.loading is True
        assert controller.user is None
        assert controller.state == AuthState.UNAUTHENTICATED
        assert controller.is_demo_mode is True

    def test_no_saved_session(self, controller):
        assert asyncio.run(controller.check_session()) is None
        assert controller.loading is False
        assert controller.user is None

    def test_restores_saved_session(self, controller, local_backend):
        asyncio.run(controller.login("admin", "admin"))

        restarted = SessionController(local_backend)
        user = asyncio.run(restarted.check_session())

        assert user.id == SEED_ADMIN_ID
        assert restarted.state == AuthState.AUTHENTICATED
        assert restarted.loading is False

    def test_failure_still_clears_loading(self, store, audit_logger, audit_storage):
        """Test that a broken store never leaves the app stuck loading."""
        backend = FailingAuthBackend(
            store, seed_admin_password="admin", bcrypt_rounds=4, fail=("restore_session",)
        )
        controller = SessionController(backend, audit_logger)

        assert asyncio.run(controller.check_session()) is None
        assert controller.loading is False
        assert controller.user is None
        assert AuditEventType.SYSTEM_ERROR in audit_types(audit_storage)


class TestLogin:
    """Tests for the login gate."""

    def test_admin_login(self, controller, store, audit_storage):
        assert asyncio.run(controller.login("admin", "admin")) is True

        assert controller.user.id == SEED_ADMIN_ID
        assert controller.user.last_login is not None
        assert controller.state == AuthState.AUTHENTICATED
        assert controller.last_failure is None
        assert messages(controller) == ["Login successful (Demo Mode)"]
        assert store.get(CURRENT_USER_KEY)["id"] == SEED_ADMIN_ID
        assert AuditEventType.LOGIN_SUCCEEDED in audit_types(audit_storage)

    def test_unknown_username_gets_generic_message(self, controller, store):
        """Test that a missing user is indistinguishable from a bad password."""
        assert asyncio.run(controller.login("nobody", "whatever")) is False

        assert controller.last_failure == AuthFailure.INVALID_CREDENTIALS
        assert messages(controller) == [MSG_INVALID_CREDENTIALS]
        assert controller.user is None
        assert store.get(CURRENT_USER_KEY) is None

    def test_wrong_password(self, controller, make_user):
        make_user("bob", secret="right-password")
        assert asyncio.run(controller.login("bob", "wrong-password")) is False
        assert messages(controller) == [MSG_INVALID_CREDENTIALS]

    @pytest.mark.parametrize(
        "approved, active, failure, message",
        [
            (False, True, AuthFailure.PENDING_APPROVAL, MSG_PENDING_APPROVAL),
            (True, False, AuthFailure.DEACTIVATED, MSG_DEACTIVATED),
        ],
    )
    def test_gate_blocks_login(
        self, controller, make_user, store, approved, active, failure, message
    ):
        """Test that each violated flag alone blocks login."""
        make_user("bob", approved=approved, active=active)

        assert asyncio.run(controller.login("bob", "secret123")) is False
        assert controller.last_failure == failure
        assert messages(controller) == [message]
        assert controller.user is None
        assert store.get(CURRENT_USER_KEY) is None

    def test_backend_failure_creates_no_session(self, store, audit_logger):
        backend = FailingAuthBackend(
            store, seed_admin_password="admin", bcrypt_rounds=4, fail=("update_user",)
        )
        controller = SessionController(backend, audit_logger)

        assert asyncio.run(controller.login("admin", "admin")) is False
        assert controller.last_failure == AuthFailure.FAILED
        assert messages(controller) == [MSG_LOGIN_FAILED]
        assert controller.user is None
        assert store.get(CURRENT_USER_KEY) is None

    def test_failed_rollback_still_reports_login_failed(self, store, audit_logger):
        """Test that a sign-out error during rollback does not escape."""
        backend = FailingAuthBackend(
            store,
            seed_admin_password="admin",
            bcrypt_rounds=4,
            fail=("persist_session", "end_session"),
        )
        controller = SessionController(backend, audit_logger)

        assert asyncio.run(controller.login("admin", "admin")) is False
        assert messages(controller) == [MSG_LOGIN_FAILED]
        assert controller.user is None
        assert controller.state == AuthState.UNAUTHENTICATED

    def test_secret_never_reaches_audit_log(self, controller, store):
        asyncio.run(controller.login("admin", "not-the-password"))
        asyncio.run(controller.login("admin", "admin"))

        audit_text = (store.data_dir / f"{AUDIT_LOG_KEY}.json").read_text()
        assert "not-the-password" not in audit_text


class TestRegistration:
    """Tests for self-registration and the approval workflow."""

    def test_new_user_waits_for_approval(self, controller, local_backend, store):
        """Register alice, then try to log in straight away."""
        assert asyncio.run(controller.register("alice", "alice@x.com", "pw123456")) is True
        assert messages(controller) == [
            "Registration successful! Please wait for admin approval. (Demo Mode)"
        ]
        assert controller.user is None

        alice = asyncio.run(local_backend.get_user(username="alice"))
        assert alice.is_approved is False

        assert asyncio.run(controller.login("alice", "pw123456")) is False
        assert controller.last_failure == AuthFailure.PENDING_APPROVAL
        assert messages(controller) == [MSG_PENDING_APPROVAL]
        assert store.get(CURRENT_USER_KEY) is None

    def test_login_after_approval(self, controller, local_backend):
        asyncio.run(controller.register("alice", "alice@x.com", "pw123456"))
        alice = asyncio.run(local_backend.get_user(username="alice"))
        asyncio.run(local_backend.update_user(alice.id, is_approved=True))

        assert asyncio.run(controller.login("alice", "pw123456")) is True
        assert controller.user.username == "alice"

    @pytest.mark.parametrize(
        "username, email",
        [("alice", "fresh@x.com"), ("fresh", "alice@x.com")],
    )
    def test_duplicate_leaves_store_unchanged(self, controller, store, username, email):
        asyncio.run(controller.register("alice", "alice@x.com", "pw123456"))
        controller.pop_notices()
        before = store.get(USERS_KEY)

        assert asyncio.run(controller.register(username, email, "pw123456")) is False
        assert controller.last_failure == AuthFailure.ALREADY_EXISTS
        assert messages(controller) == [MSG_ALREADY_EXISTS]
        assert store.get(USERS_KEY) == before

    def test_provider_error_message_is_shown(self, controller):
        assert asyncio.run(controller.register("alice", "alice@x.com", "x" * 100)) is False
        assert controller.last_failure == AuthFailure.FAILED
        assert "too long" in messages(controller)[0]


class TestImpersonation:
    """Tests for admin impersonation."""

    @pytest.fixture
    def target(self, local_backend) -> User:
        user = User(
            id="u-42",
            username="target",
            email="target@x.com",
            is_approved=True,
        )
        return asyncio.run(local_backend.upsert_user(user))

    def test_impersonate_and_return(self, controller, target, audit_storage):
        """admin-1 views as u-42 and comes back unchanged."""
        asyncio.run(controller.login("admin", "admin"))
        admin_before = controller.user.model_dump()

        assert asyncio.run(controller.impersonate_user("u-42")) is True
        assert controller.user.id == "u-42"
        assert controller.is_impersonating is True
        assert controller.state == AuthState.IMPERSONATING
        assert controller.original_admin_user.id == SEED_ADMIN_ID
        assert controller.acting_user.id == SEED_ADMIN_ID

        assert asyncio.run(controller.return_to_admin()) is True
        assert controller.user.model_dump() == admin_before
        assert controller.is_impersonating is False
        assert controller.original_admin_user is None
        assert controller.state == AuthState.AUTHENTICATED

        types = audit_types(audit_storage)
        assert AuditEventType.IMPERSONATION_STARTED in types
        assert AuditEventType.IMPERSONATION_ENDED in types

    def test_non_admin_cannot_impersonate(self, controller, make_user, target):
        make_user("bob")
        asyncio.run(controller.login("bob", "secret123"))
        bob = controller.user

        assert asyncio.run(controller.impersonate_user("u-42")) is False
        assert controller.user == bob
        assert controller.is_impersonating is False

    def test_cannot_impersonate_self(self, controller):
        asyncio.run(controller.login("admin", "admin"))
        controller.pop_notices()

        assert asyncio.run(controller.impersonate_user(SEED_ADMIN_ID)) is False
        assert controller.is_impersonating is False
        assert messages(controller) == [MSG_IMPERSONATE_SELF]

    def test_unknown_target(self, controller):
        asyncio.run(controller.login("admin", "admin"))
        controller.pop_notices()

        assert asyncio.run(controller.impersonate_user("missing")) is False
        assert controller.user.id == SEED_ADMIN_ID
        assert messages(controller) == [MSG_IMPERSONATE_FAILED]

    def test_no_nested_impersonation(self, controller, target, local_backend):
        other = User(id="u-43", username="other", email="other@x.com", is_approved=True)
        asyncio.run(local_backend.upsert_user(other))
        asyncio.run(controller.login("admin", "admin"))
        asyncio.run(controller.impersonate_user("u-42"))

        assert asyncio.run(controller.impersonate_user("u-43")) is False
        assert controller.user.id == "u-42"
        assert controller.original_admin_user.id == SEED_ADMIN_ID

    def test_return_without_impersonation_is_noop(self, controller):
        asyncio.run(controller.login("admin", "admin"))
        assert asyncio.run(controller.return_to_admin()) is False
        assert controller.user.id == SEED_ADMIN_ID

    def test_impersonation_is_not_persisted(self, controller, target, local_backend):
        """Test that a restart brings back the admin, not the stand-in."""
        asyncio.run(controller.login("admin", "admin"))
        asyncio.run(controller.impersonate_user("u-42"))

        restarted = SessionController(local_backend)
        assert asyncio.run(restarted.check_session()).id == SEED_ADMIN_ID
        assert restarted.is_impersonating is False


class TestLogout:
    """Tests for ending a session."""

    def test_logout(self, controller, store):
        asyncio.run(controller.login("admin", "admin"))
        controller.pop_notices()

        asyncio.run(controller.logout())

        assert controller.user is None
        assert controller.state == AuthState.UNAUTHENTICATED
        assert messages(controller) == ["Logged out successfully"]
        assert store.get(CURRENT_USER_KEY) is None

    def test_logout_mid_impersonation(self, controller, local_backend):
        asyncio.run(local_backend.upsert_user(
            User(id="u-42", username="target", email="t@x.com", is_approved=True)
        ))
        asyncio.run(controller.login("admin", "admin"))
        asyncio.run(controller.impersonate_user("u-42"))

        asyncio.run(controller.logout())

        assert controller.user is None
        assert controller.is_impersonating is False
        assert controller.original_admin_user is None

    def test_logout_when_signed_out(self, controller):
        asyncio.run(controller.logout())
        assert controller.user is None

    def test_failed_logout_still_clears_state(self, store, audit_logger):
        backend = FailingAuthBackend(
            store, seed_admin_password="admin", bcrypt_rounds=4, fail=("end_session",)
        )
        controller = SessionController(backend, audit_logger)
        asyncio.run(controller.login("admin", "admin"))
        controller.pop_notices()

        asyncio.run(controller.logout())

        assert controller.user is None
        assert controller.state == AuthState.UNAUTHENTICATED
        assert [n.level for n in controller.pop_notices()] == [NoticeLevel.ERROR]


class TestSerialization:
    """Tests that overlapping operations never interleave."""

    def test_concurrent_logins_run_one_at_a_time(self, store):
        backend = SlowAuthBackend(store, seed_admin_password="admin", bcrypt_rounds=4)
        controller = SessionController(backend)

        async def overlap():
            return await asyncio.gather(
                controller.login("admin", "admin"),
                controller.login("admin", "admin"),
            )

        assert asyncio.run(overlap()) == [True, True]
        assert backend.trace == ["enter", "exit", "enter", "exit"]

    def test_check_session_waits_for_login(self, store):
        backend = SlowAuthBackend(store, seed_admin_password="admin", bcrypt_rounds=4)
        controller = SessionController(backend)

        async def overlap():
            login = asyncio.create_task(controller.login("admin", "admin"))
            await asyncio.sleep(0)
            restored = await controller.check_session()
            await login
            return restored

        restored = asyncio.run(overlap())
        assert restored.id == SEED_ADMIN_ID
        assert controller.loading is False


class TestRemoteMode:
    """Tests for the controller against the Supabase backend."""

    def test_login(self, remote_controller, fake_supabase):
        fake_supabase.add_user("admin-1", "admin", "admin@x.com", "pw", role="admin")

        assert asyncio.run(remote_controller.login("admin", "pw")) is True
        assert remote_controller.mode == BackendMode.REMOTE
        assert remote_controller.user.role == UserRole.ADMIN
        assert messages(remote_controller) == ["Login successful"]
        assert fake_supabase.tables["users"][0]["last_login"] is not None

    def test_unapproved_never_reaches_provider(self, remote_controller, fake_supabase):
        fake_supabase.add_user("u-1", "alice", "alice@x.com", "pw", is_approved=False)

        assert asyncio.run(remote_controller.login("alice", "pw")) is False
        assert remote_controller.last_failure == AuthFailure.PENDING_APPROVAL
        assert fake_supabase.auth.session is None

    def test_mismatched_profile_rolls_back(self, remote_controller, fake_supabase):
        fake_supabase.add_user("u-1", "alice", "alice@x.com", "pw")
        fake_supabase.auth.accounts["alice@x.com"]["id"] = "someone-else"

        assert asyncio.run(remote_controller.login("alice", "pw")) is False
        assert remote_controller.last_failure == AuthFailure.FAILED
        assert remote_controller.user is None
        assert fake_supabase.auth.session is None

    def test_failure_after_verification_signs_out(self, remote_controller, fake_supabase):
        """Test that a login failing after sign-in leaves no provider session."""
        fake_supabase.add_user("u-1", "bob", "bob@x.com", "pw")
        fake_supabase.fail_ops.add(("users", "update"))

        assert asyncio.run(remote_controller.login("bob", "pw")) is False
        assert remote_controller.last_failure == AuthFailure.FAILED
        assert remote_controller.user is None
        assert fake_supabase.auth.session is None

        fake_supabase.fail_ops.clear()
        assert asyncio.run(remote_controller.check_session()) is None

    def test_register_grants_no_session(self, remote_controller, fake_supabase):
        assert asyncio.run(
            remote_controller.register("alice", "alice@x.com", "pw123456")
        ) is True
        assert messages(remote_controller) == [
            "Registration successful! Please wait for admin approval."
        ]
        assert remote_controller.user is None
        assert fake_supabase.auth.session is None

    def test_restore_after_provider_session(self, remote_controller, fake_supabase):
        fake_supabase.add_user("u-1", "alice", "alice@x.com", "pw")
        fake_supabase.auth.sign_in_with_password({"email": "alice@x.com", "password": "pw"})

        assert asyncio.run(remote_controller.check_session()).id == "u-1"

    def test_restore_without_profile_row(self, remote_controller, fake_supabase):
        fake_supabase.auth.add_account("ghost@x.com", "pw", user_id="ghost")
        fake_supabase.auth.sign_in_with_password({"email": "ghost@x.com", "password": "pw"})

        assert asyncio.run(remote_controller.check_session()) is None
        assert remote_controller.loading is False
        assert fake_supabase.auth.session is None

    def test_logout(self, remote_controller, fake_supabase):
        fake_supabase.add_user("u-1", "alice", "alice@x.com", "pw")
        asyncio.run(remote_controller.login("alice", "pw"))

        asyncio.run(remote_controller.logout())

        assert remote_controller.user is None
        assert fake_supabase.auth.session is None

    def test_logout_failure(self, remote_controller, fake_supabase):
        fake_supabase.add_user("u-1", "alice", "alice@x.com", "pw")
        asyncio.run(remote_controller.login("alice", "pw"))
        remote_controller.pop_notices()
        fake_supabase.auth.fail_sign_out = True

        asyncio.run(remote_controller.logout())

        assert remote_controller.user is None
        assert messages(remote_controller) == [MSG_LOGOUT_FAILED]
