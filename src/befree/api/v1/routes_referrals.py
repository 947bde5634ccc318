from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, WebSocket, status
from pydantic import BaseModel

from src.befree.api.v1.responses import raise_for_result
from src.befree.config import settings
from src.befree.domain.models.referral import Referral
from src.befree.domain.models.results import OperationResult, ReferralResult
from src.befree.domain.models.screening import ScreeningRecord
from src.befree.domain.models.user import User
from src.befree.security import ensure_is_admin, get_api_key, get_current_user, require_admin, resolve_user
from src.befree.services.referrals.consent import ConsentRequest, referral_consent_service
from src.befree.services.referrals.lifecycle import referral_lifecycle_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/referrals", tags=["referrals"])


class StatusUpdateRequest(BaseModel):
    # Kept as a plain string so an unknown status is reported like any other
    # field error instead of as a request schema failure.
    status: str
    notes: Optional[str] = None
    services: Optional[List[str]] = None


class AppointmentRequest(BaseModel):
    appointment_date_time: datetime


async def _stop_sender(pump: "asyncio.Task[None]", user_id: str) -> None:
    pump.cancel()
    try:
        await pump
    except asyncio.CancelledError:
        pass
    except Exception:
        # The client is usually already gone when a send fails.
        logger.warning("Referral stream for %s stopped sending", user_id, exc_info=True)


@router.websocket("/stream")
async def stream_routed_referrals(websocket: WebSocket) -> None:
    """Live list of routed referrals for staff dashboards.

    Sends ``{"referrals": [...]}`` with the full list on connect and again
    after every change. A slow client only ever sees the most recent
    snapshots; older ones are dropped once its queue is full.
    """

    try:
        api_key = await get_api_key(websocket.headers.get("x-api-key") or websocket.query_params.get("api_key"))
        user = resolve_user(api_key, websocket.headers.get("x-user-id"), websocket.headers.get("x-role"))
        ensure_is_admin(user)
    except HTTPException as exc:
        logger.info("Rejected referral stream connection: %s", exc.detail)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    loop = asyncio.get_running_loop()
    queue: "asyncio.Queue[List[Dict[str, Any]]]" = asyncio.Queue(maxsize=max(settings.subscription_queue_size, 1))

    def _enqueue(payload: List[Dict[str, Any]]) -> None:
        if queue.full():
            queue.get_nowait()
        queue.put_nowait(payload)

    def _on_snapshot(referrals: List[Referral]) -> None:
        # Writes may publish from any thread; hand the snapshot to the loop.
        payload = [referral.model_dump(mode="json") for referral in referrals]
        loop.call_soon_threadsafe(_enqueue, payload)

    async def _pump() -> None:
        while True:
            payload = await queue.get()
            await websocket.send_json({"referrals": payload})

    subscription = referral_lifecycle_service.subscribe_routed_referrals(_on_snapshot)
    pump = asyncio.create_task(_pump())
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
    finally:
        subscription.unsubscribe()
        await _stop_sender(pump, user.id)
        logger.info("Referral stream closed for %s", user.id)


# Subject-facing endpoints. A subject only ever reaches their own referrals.


@router.get("/{referral_id}/pending", response_model=ReferralResult, dependencies=[Depends(get_api_key)])
async def get_pending_referral(
    referral_id: str,
    current_user: User = Depends(get_current_user),
) -> ReferralResult:
    result = referral_consent_service.get_pending_referral(referral_id, user_id=current_user.id)
    raise_for_result(result)
    return result


@router.post("/{referral_id}/consent", response_model=ReferralResult, dependencies=[Depends(get_api_key)])
async def record_consent(
    referral_id: str,
    payload: ConsentRequest,
    current_user: User = Depends(get_current_user),
) -> ReferralResult:
    """Agree to a referral and choose where and how to be contacted."""

    result = referral_consent_service.record_consent(referral_id, payload, user_id=current_user.id)
    raise_for_result(result)
    return result


@router.post("/{referral_id}/decline", response_model=OperationResult, dependencies=[Depends(get_api_key)])
async def decline_consent(
    referral_id: str,
    current_user: User = Depends(get_current_user),
) -> OperationResult:
    result = referral_consent_service.decline_consent(referral_id, user_id=current_user.id)
    raise_for_result(result)
    return result


# Staff endpoints.


@router.get("", response_model=List[Referral], dependencies=[Depends(get_api_key)])
async def list_routed_referrals(current_user: User = Depends(require_admin)) -> List[Referral]:
    """Referrals with consent agreed, newest first."""

    return referral_lifecycle_service.list_routed_referrals()


@router.get("/{referral_id}", response_model=Referral, dependencies=[Depends(get_api_key)])
async def get_referral(referral_id: str, current_user: User = Depends(require_admin)) -> Referral:
    referral = referral_lifecycle_service.get_referral(referral_id)
    if referral is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Referral not found")
    return referral


@router.get("/{referral_id}/screening", response_model=ScreeningRecord, dependencies=[Depends(get_api_key)])
async def get_screening_for_referral(
    referral_id: str,
    current_user: User = Depends(require_admin),
) -> ScreeningRecord:
    record = referral_lifecycle_service.get_screening_for_referral(referral_id)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Screening not found")
    return record


@router.patch("/{referral_id}/status", response_model=ReferralResult, dependencies=[Depends(get_api_key)])
async def update_referral_status(
    referral_id: str,
    payload: StatusUpdateRequest,
    current_user: User = Depends(require_admin),
) -> ReferralResult:
    result = referral_lifecycle_service.update_status(
        referral_id,
        payload.status,
        payload.notes,
        payload.services,
        actor_id=current_user.id,
    )
    raise_for_result(result)
    return result


@router.put("/{referral_id}/appointment", response_model=ReferralResult, dependencies=[Depends(get_api_key)])
async def schedule_appointment(
    referral_id: str,
    payload: AppointmentRequest,
    current_user: User = Depends(require_admin),
) -> ReferralResult:
    result = referral_lifecycle_service.schedule_appointment(
        referral_id,
        payload.appointment_date_time,
        actor_id=current_user.id,
    )
    raise_for_result(result)
    return result


@router.delete("/{referral_id}", response_model=OperationResult, dependencies=[Depends(get_api_key)])
async def delete_referral(referral_id: str, current_user: User = Depends(require_admin)) -> OperationResult:
    result = referral_lifecycle_service.delete_referral(referral_id, actor_id=current_user.id)
    raise_for_result(result)
    return result
