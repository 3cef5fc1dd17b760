"""
Content access endpoints.

Denied and preview decisions are regular 200 responses; the UI renders a
locked state with a call-to-action for both. Only unknown ids are errors.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from fan_entitlements.api.dependencies import get_access_service, get_viewer
from fan_entitlements.api.schemas import AccessDecisionResponse, LedgerEventRequest, LedgerEventResponse
from fan_entitlements.errors import ContentNotFound
from fan_entitlements.models import Viewer
from fan_entitlements.service import AccessResult, ContentAccessService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/access", tags=["access"])


def _to_response(result: AccessResult) -> AccessDecisionResponse:
    decision = result.decision
    # Placeholder metadata only; post bodies never leave the service layer
    item = result.item
    return AccessDecisionResponse(
        item_id=result.item_id,
        kind=result.kind,
        outcome=decision.outcome.value,
        access_level=decision.access_level,
        transform=decision.transform.value,
        preview_seconds=decision.preview_seconds,
        asset_url=result.asset_url,
        reason=decision.reason,
        error_code=decision.error_code,
        author_id=item.author_id if item is not None else None,
        created_at=item.created_at if item is not None else None,
    )


@router.get("/tracks/{track_id}", response_model=AccessDecisionResponse)
def get_track_access(
    track_id: str,
    viewer: Viewer = Depends(get_viewer),
    service: ContentAccessService = Depends(get_access_service),
) -> AccessDecisionResponse:
    try:
        result = service.resolve_track(viewer, track_id)
    except ContentNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.to_dict()) from e
    return _to_response(result)


@router.get("/posts/{post_id}", response_model=AccessDecisionResponse)
def get_post_access(
    post_id: str,
    viewer: Viewer = Depends(get_viewer),
    service: ContentAccessService = Depends(get_access_service),
) -> AccessDecisionResponse:
    try:
        result = service.resolve_post(viewer, post_id)
    except ContentNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.to_dict()) from e
    return _to_response(result)


@router.post(
    "/ledger-events",
    response_model=LedgerEventResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
def post_ledger_event(
    event: LedgerEventRequest,
    service: ContentAccessService = Depends(get_access_service),
) -> LedgerEventResponse:
    """Invalidate the cached entitlement after a ledger change."""
    try:
        service.handle_ledger_update(event.fan_id, event.artist_id)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)) from e
    logger.info(
        "Ledger event processed",
        extra={"fan_id": event.fan_id, "artist_id": event.artist_id},
    )
    return LedgerEventResponse(invalidated=service.cache is not None)
