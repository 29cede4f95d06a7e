"""
Main Orchestrator for Life Ledger

This module ties the components together:
1. Decide the backend mode, once per process
2. Build the backend, record store and audit store for that mode
3. Inject them into the session controller, admin service and dashboard

DESIGN DECISION: The mode decision lives here and nowhere else.
Everything downstream receives an already-chosen backend, so no
business logic ever asks "are we in demo mode?" to decide what to do.
"""

from typing import Optional

import structlog

from lifeledger.audit import AuditLogger, configure_logging
from lifeledger.auth import AdminService, SessionController
from lifeledger.config import get_settings
from lifeledger.config.settings import Settings
from lifeledger.models.user import BackendMode
from lifeledger.queries import DashboardQuery
from lifeledger.services.storage import (
    AuditStorageInterface,
    AuthBackendInterface,
    JsonDocumentStore,
    LocalAuditStorage,
    LocalAuthBackend,
    LocalRecordStorage,
    RecordStorageInterface,
    SupabaseAuditStorage,
    SupabaseAuthBackend,
    SupabaseClient,
    SupabaseRecordStorage,
)


logger = structlog.get_logger(__name__)


def select_backend_mode(settings: Optional[Settings] = None) -> BackendMode:
    """Remote when Supabase is configured, local (demo) otherwise."""
    settings = settings or get_settings()
    return BackendMode.LOCAL if settings.is_demo_mode else BackendMode.REMOTE


def create_backends(
    mode: BackendMode,
    settings: Optional[Settings] = None,
    supabase_client: Optional[SupabaseClient] = None,
) -> tuple[AuthBackendInterface, RecordStorageInterface, AuditStorageInterface]:
    """
    Build the three storage capabilities for a mode.

    Returns:
        (auth_backend, record_storage, audit_storage)
    """
    settings = settings or get_settings()

    if mode == BackendMode.LOCAL:
        local = settings.local_store
        store = JsonDocumentStore(local.data_dir)
        return (
            LocalAuthBackend(
                store,
                seed_admin_password=local.seed_admin_password,
                bcrypt_rounds=local.bcrypt_rounds,
            ),
            LocalRecordStorage(store),
            LocalAuditStorage(store),
        )

    client = supabase_client or SupabaseClient(settings.supabase)
    return (
        SupabaseAuthBackend(client),
        SupabaseRecordStorage(client),
        SupabaseAuditStorage(client),
    )


def create_app_components(
    settings: Optional[Settings] = None,
    mode: Optional[BackendMode] = None,
) -> tuple[SessionController, AdminService, RecordStorageInterface, DashboardQuery]:
    """
    Factory function to create all application components.

    Args:
        settings: Settings to use (defaults to the cached settings)
        mode: Force a backend mode instead of deriving it from settings

    Returns:
        (session_controller, admin_service, record_storage, dashboard_query)
    """
    settings = settings or get_settings()
    configure_logging(settings.app.log_level)

    mode = mode or select_backend_mode(settings)
    logger.info("backend_mode_selected", mode=mode.value)

    auth_backend, record_storage, audit_storage = create_backends(
        mode,
        settings=settings,
    )
    audit_logger = AuditLogger(audit_storage)

    controller = SessionController(auth_backend, audit_logger)
    admin_service = AdminService(controller, auth_backend, audit_logger)
    dashboard_query = DashboardQuery(
        record_storage,
        window_days=settings.app.dashboard_window_days,
    )

    return controller, admin_service, record_storage, dashboard_query
