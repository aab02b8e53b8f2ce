"""Hold router: reserve capacity ahead of a booking, then confirm, release or expire."""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import CallerContext, DatabaseSession, RequiredCaller
from ..schemas.common import HOLD_RESPONSES
from ..schemas.hold import (
    ConfirmHoldRequest,
    ConfirmHoldResult,
    CreateHoldRequest,
    ExpireHoldsResult,
    GetHoldRequest,
    HoldResult,
    ReleaseHoldRequest,
)
from ..services.hold_service import HoldService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/hold", tags=["hold"], responses=HOLD_RESPONSES)


@router.post("/create", response_model=HoldResult)
async def create_hold(
    request: CreateHoldRequest,
    caller: CallerContext = RequiredCaller,
    db: AsyncSession = DatabaseSession
) -> JSONResponse:
    """
    Hold capacity for every item of a request.

    Suppliers are selected exactly as for a booking; the units count as held
    until the hold is confirmed, released or expired.
    """
    hold_service = HoldService(db)
    hold = await hold_service.create_hold(caller.org_id, request, actor=caller.user_id)

    return JSONResponse(
        status_code=200,
        content=HoldResult.model_validate(hold).model_dump(mode="json")
    )


@router.post("/confirm", response_model=ConfirmHoldResult)
async def confirm_hold(
    request: ConfirmHoldRequest,
    caller: CallerContext = RequiredCaller,
    db: AsyncSession = DatabaseSession
) -> JSONResponse:
    """Turn an active hold into a booking at the prices fixed when it was placed."""
    hold_service = HoldService(db)
    hold, booking = await hold_service.confirm_hold(caller.org_id, request, actor=caller.user_id)

    logger.info(
        "Hold confirmed into booking",
        extra={
            "hold_id": str(hold.id),
            "booking_id": str(booking.booking_id),
            "user_id": caller.user_id
        }
    )

    result = ConfirmHoldResult(hold=HoldResult.model_validate(hold), booking=booking)
    return JSONResponse(
        status_code=200,
        content=result.model_dump(mode="json")
    )


@router.post("/release", response_model=HoldResult)
async def release_hold(
    request: ReleaseHoldRequest,
    caller: CallerContext = RequiredCaller,
    db: AsyncSession = DatabaseSession
) -> JSONResponse:
    """Release an active hold and give its units back."""
    hold_service = HoldService(db)
    hold = await hold_service.release_hold(caller.org_id, request.hold_id, actor=caller.user_id)

    return JSONResponse(
        status_code=200,
        content=HoldResult.model_validate(hold).model_dump(mode="json")
    )


@router.post("/get", response_model=HoldResult)
async def get_hold(
    request: GetHoldRequest,
    caller: CallerContext = RequiredCaller,
    db: AsyncSession = DatabaseSession
) -> JSONResponse:
    """Get a hold with its per-night allocations."""
    hold_service = HoldService(db)
    hold = await hold_service.get_hold(caller.org_id, request.hold_id)

    return JSONResponse(
        status_code=200,
        content=HoldResult.model_validate(hold).model_dump(mode="json")
    )


@router.post("/expire", response_model=ExpireHoldsResult)
async def expire_holds(
    caller: CallerContext = RequiredCaller,
    db: AsyncSession = DatabaseSession
) -> JSONResponse:
    """Expire the caller's organization's overdue holds and release their units."""
    hold_service = HoldService(db)
    expired = await hold_service.expire_holds(caller.org_id, actor=caller.user_id)

    return JSONResponse(
        status_code=200,
        content=ExpireHoldsResult(expired=expired).model_dump(mode="json")
    )
