"""
Dependencies for the content access routes.

Tests override get_session_factory / get_db_session / get_entitlement_cache
via app.dependency_overrides.
"""

from typing import Iterator, Optional

from fastapi import Depends, Header
from sqlalchemy.orm import Session, sessionmaker

from fan_entitlements.cache import EntitlementCache
from fan_entitlements.catalog import SqlContentCatalog
from fan_entitlements.db.session import create_session_factory
from fan_entitlements.ledger import SqlSubscriptionLedger
from fan_entitlements.models import Viewer
from fan_entitlements.service import ContentAccessService

_session_factory: Optional[sessionmaker] = None
_cache: Optional[EntitlementCache] = None


def get_session_factory() -> sessionmaker:
    global _session_factory
    if _session_factory is None:
        _session_factory = create_session_factory()
    return _session_factory


def get_db_session(session_factory: sessionmaker = Depends(get_session_factory)) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


def get_entitlement_cache() -> Optional[EntitlementCache]:
    global _cache
    if _cache is None:
        _cache = EntitlementCache()
    return _cache


def get_viewer(x_viewer_id: Optional[str] = Header(None)) -> Viewer:
    """Viewer identity resolved by the auth proxy; absent header means anonymous."""
    return Viewer(x_viewer_id)


def get_access_service(
    db_session: Session = Depends(get_db_session),
    session_factory: sessionmaker = Depends(get_session_factory),
    cache: Optional[EntitlementCache] = Depends(get_entitlement_cache),
) -> ContentAccessService:
    # Ledger reads may run on the timeout pool, so they open their own sessions
    return ContentAccessService(
        catalog=SqlContentCatalog(db_session),
        lookup=SqlSubscriptionLedger(session_factory),
        cache=cache,
    )
