"""Availability router for calendar, summary, selection and rate lookups."""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import CallerContext, DatabaseSession, RequiredCaller
from ..schemas.availability import (
    AvailabilityRangeRequest,
    AvailabilitySummary,
    CalendarEntry,
    RatesRequest,
    RatesResponse,
    SelectSupplierRequest,
    SupplierSelection,
)
from ..schemas.common import AVAILABILITY_RESPONSES
from ..services.availability_service import AvailabilityService
from ..services.rate_service import RateService
from ..services.supplier_selector import SupplierSelector

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/availability", tags=["availability"], responses=AVAILABILITY_RESPONSES)


@router.post("/calendar", response_model=list[CalendarEntry])
async def get_calendar(
    request: AvailabilityRangeRequest,
    caller: CallerContext = RequiredCaller,
    db: AsyncSession = DatabaseSession
) -> JSONResponse:
    """Per-day availability with selling price, status and supplier breakdown."""
    availability_service = AvailabilityService(db)
    calendar = await availability_service.get_calendar(
        caller.org_id, request.product_variant_id, request.start_date, request.end_date
    )

    return JSONResponse(
        status_code=200,
        content=[entry.model_dump(mode="json") for entry in calendar]
    )


@router.post("/summary", response_model=AvailabilitySummary)
async def get_summary(
    request: AvailabilityRangeRequest,
    caller: CallerContext = RequiredCaller,
    db: AsyncSession = DatabaseSession
) -> JSONResponse:
    """Day counts, totals and average margin over a date range."""
    availability_service = AvailabilityService(db)
    summary = await availability_service.get_summary(
        caller.org_id, request.product_variant_id, request.start_date, request.end_date
    )

    return JSONResponse(
        status_code=200,
        content=summary.model_dump(mode="json")
    )


@router.post("/select", response_model=SupplierSelection)
async def select_supplier(
    request: SelectSupplierRequest,
    caller: CallerContext = RequiredCaller,
    db: AsyncSession = DatabaseSession
) -> JSONResponse:
    """Return the supplier that would fulfil the request right now."""
    selector = SupplierSelector(db)
    selection = await selector.select_best_supplier(
        caller.org_id, request.product_variant_id, request.service_date, request.quantity
    )

    return JSONResponse(
        status_code=200,
        content=selection.model_dump(mode="json")
    )


@router.post("/rates", response_model=RatesResponse)
async def get_rates(
    request: RatesRequest,
    caller: CallerContext = RequiredCaller,
    db: AsyncSession = DatabaseSession
) -> JSONResponse:
    """Master rate (if any) and competing supplier rates for a date."""
    rate_service = RateService(db)
    response_data = RatesResponse(
        master_rate=await rate_service.get_master_rate(
            caller.org_id, request.product_variant_id, request.service_date
        ),
        supplier_rates=await rate_service.resolve_supplier_rates(
            caller.org_id, request.product_variant_id, request.service_date
        ),
    )

    return JSONResponse(
        status_code=200,
        content=response_data.model_dump(mode="json")
    )
