"""
Shared fixtures.

Every test runs in its own temporary working directory with the
Supabase variables removed, so a developer's .env never switches the
suite into remote mode.
"""

import asyncio
import os
import socket
from typing import Any

import pytest

from lifeledger.audit import AuditLogger
from lifeledger.auth import AdminService, SessionController
from lifeledger.config import get_settings
from lifeledger.config.settings import SupabaseSettings
from lifeledger.models.user import User, UserRole
from lifeledger.services.storage import (
    JsonDocumentStore,
    LocalAuditStorage,
    LocalAuthBackend,
    LocalRecordStorage,
    SupabaseAuditStorage,
    SupabaseAuthBackend,
    SupabaseClient,
    SupabaseRecordStorage,
)

from .helpers.fakes import FakeSupabase


# Lowest cost bcrypt accepts; keeps hashing fast in tests
TEST_BCRYPT_ROUNDS = 4

ISOLATED_ENV_VARS = (
    "SUPABASE_URL",
    "SUPABASE_ANON_KEY",
    "LOCAL_STORE_DATA_DIR",
    "LOCAL_STORE_SEED_ADMIN_PASSWORD",
    "LOCAL_STORE_BCRYPT_ROUNDS",
    "LOG_LEVEL",
    "DASHBOARD_WINDOW_DAYS",
)


class NetworkBlockedError(RuntimeError):
    pass


def _blocked(*_args: Any, **_kwargs: Any) -> Any:
    raise NetworkBlockedError("Network access is disabled during tests.")


@pytest.fixture(autouse=True)
def _disable_network(monkeypatch: pytest.MonkeyPatch) -> None:
    """Prevent accidental outbound calls to a real Supabase project."""
    if os.getenv("ALLOW_NETWORK") == "1":
        return
    monkeypatch.setattr(socket, "create_connection", _blocked)
    monkeypatch.setattr(socket, "getaddrinfo", _blocked)


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch: pytest.MonkeyPatch, tmp_path):
    """Fresh settings from a clean environment for every test."""
    monkeypatch.chdir(tmp_path)
    for name in ISOLATED_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


# =============================================================================
# LOCAL MODE
# =============================================================================

@pytest.fixture
def store(tmp_path) -> JsonDocumentStore:
    return JsonDocumentStore(tmp_path / "data")


@pytest.fixture
def local_backend(store) -> LocalAuthBackend:
    return LocalAuthBackend(
        store,
        seed_admin_password="admin",
        bcrypt_rounds=TEST_BCRYPT_ROUNDS,
    )


@pytest.fixture
def record_storage(store) -> LocalRecordStorage:
    return LocalRecordStorage(store)


@pytest.fixture
def audit_storage(store) -> LocalAuditStorage:
    return LocalAuditStorage(store)


@pytest.fixture
def audit_logger(audit_storage) -> AuditLogger:
    return AuditLogger(audit_storage)


@pytest.fixture
def controller(local_backend, audit_logger) -> SessionController:
    return SessionController(local_backend, audit_logger)


@pytest.fixture
def admin_service(controller, local_backend, audit_logger) -> AdminService:
    return AdminService(controller, local_backend, audit_logger)


@pytest.fixture
def make_user(local_backend):
    """Register a local user and set its gate flags directly."""

    def _make(
        username: str,
        secret: str = "secret123",
        approved: bool = True,
        active: bool = True,
        role: UserRole = UserRole.USER,
    ) -> User:
        async def _add() -> User:
            user = await local_backend.create_account(username, f"{username}@x.com", secret)
            return await local_backend.update_user(
                user.id, is_approved=approved, is_active=active, role=role
            )

        return asyncio.run(_add())

    return _make


# =============================================================================
# REMOTE MODE
# =============================================================================

@pytest.fixture
def fake_supabase() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture
def supabase_client(fake_supabase) -> SupabaseClient:
    settings = SupabaseSettings(url="https://test.supabase.co", anon_key="test-key")
    return SupabaseClient(settings, client=fake_supabase)


@pytest.fixture
def remote_backend(supabase_client) -> SupabaseAuthBackend:
    return SupabaseAuthBackend(supabase_client)


@pytest.fixture
def remote_records(supabase_client) -> SupabaseRecordStorage:
    return SupabaseRecordStorage(supabase_client)


@pytest.fixture
def remote_audit(supabase_client) -> SupabaseAuditStorage:
    return SupabaseAuditStorage(supabase_client)


@pytest.fixture
def remote_controller(remote_backend, remote_audit) -> SessionController:
    return SessionController(remote_backend, AuditLogger(remote_audit))
