"""Availability index: per-supplier capacity, calendar and summary roll-ups."""

import logging
from collections import defaultdict
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..models.allocation import AllocationRecord, InventoryPool, remaining_units
from ..models.rate_plan import RatePlan
from ..models.supplier import Supplier
from ..schemas.availability import (
    AvailabilitySummary,
    CalendarEntry,
    CalendarStatus,
    MasterRate,
    RecommendedSupplier,
    SupplierAvailability,
)
from .rate_service import RateService

logger = logging.getLogger(__name__)


def ranking_key(row: SupplierAvailability) -> tuple:
    """Sort key ranking candidates: priority desc, cost asc, then stable IDs."""
    return (-row.priority, row.unit_cost, row.supplier_id, row.allocation_record_id)


def day_status(rows: list[SupplierAvailability], total_available: int) -> CalendarStatus:
    """Classify a day; flags on any record take precedence over stock levels."""
    if any(row.stop_sell for row in rows):
        return CalendarStatus.STOP_SELL
    if any(row.blackout for row in rows):
        return CalendarStatus.BLACKOUT
    if total_available <= 0:
        return CalendarStatus.SOLD_OUT
    if total_available < settings.low_inventory_threshold:
        return CalendarStatus.LOW_INVENTORY
    return CalendarStatus.AVAILABLE


def day_total_available(rows: list[SupplierAvailability]) -> int:
    """
    Units sellable on one day across all records.

    Records sharing a pool contribute at most what the pool has left, however
    many of them there are.
    """
    unbounded = settings.unbounded_availability
    total = 0
    pooled: dict[UUID, list[SupplierAvailability]] = defaultdict(list)
    for row in rows:
        if row.inventory_pool_id is None or row.pool_available is None:
            total += max(row.available, 0)
        else:
            pooled[row.inventory_pool_id].append(row)

    for pool_rows in pooled.values():
        own = sum(max(remaining_units(row.quantity, row.booked, row.held, unbounded), 0) for row in pool_rows)
        total += max(min(pool_rows[0].pool_available, own), 0)
    return total


class AvailabilityService:
    """Read-only views over allocation records."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.rate_service = RateService(db)

    async def load_supplier_inventory(
        self,
        org_id: UUID,
        product_variant_id: UUID,
        start_date: date,
        end_date: date,
        sellable_only: bool = False
    ) -> list[SupplierAvailability]:
        """
        Load allocation records for a variant over a date range.

        Each record is joined with its supplier, its pool (if any) and the
        supplier rate plan valid on the record's date. When several plans are
        valid the highest priority one supplies the record's priority and
        auto-select flag. Records without a plan get the default priority.

        Rows are always re-read from the database so counters changed earlier
        in the same session are never served stale.

        Returns:
            Rows ordered by date, priority desc, unit cost, supplier and record ID
        """
        plan_join = and_(
            RatePlan.org_id == AllocationRecord.org_id,
            RatePlan.product_variant_id == AllocationRecord.product_variant_id,
            RatePlan.supplier_id == AllocationRecord.supplier_id,
            RatePlan.valid_from <= AllocationRecord.service_date,
            RatePlan.valid_to >= AllocationRecord.service_date,
        )

        stmt = (
            select(AllocationRecord, Supplier.name, InventoryPool, RatePlan)
            .join(Supplier, Supplier.id == AllocationRecord.supplier_id)
            .outerjoin(InventoryPool, InventoryPool.id == AllocationRecord.inventory_pool_id)
            .outerjoin(RatePlan, plan_join)
            .where(
                AllocationRecord.org_id == org_id,
                AllocationRecord.product_variant_id == product_variant_id,
                AllocationRecord.service_date >= start_date,
                AllocationRecord.service_date <= end_date,
            )
            .execution_options(populate_existing=True)
        )

        if sellable_only:
            stmt = stmt.where(
                AllocationRecord.stop_sell.is_(False),
                AllocationRecord.blackout.is_(False),
            )

        result = await self.db.execute(stmt)

        # Keep one row per record: the one carrying the best rate plan
        best: dict[UUID, tuple] = {}
        for record, supplier_name, pool, plan in result.all():
            current = best.get(record.id)
            if current is None or self._plan_outranks(plan, current[3]):
                best[record.id] = (record, supplier_name, pool, plan)

        rows = [self._to_availability(*entry) for entry in best.values()]
        rows.sort(key=lambda row: (row.service_date, *ranking_key(row)))

        logger.debug(
            "Loaded supplier inventory",
            extra={
                "org_id": str(org_id),
                "product_variant_id": str(product_variant_id),
                "start_date": start_date.isoformat(),
                "end_date": end_date.isoformat(),
                "rows": len(rows)
            }
        )

        return rows

    @staticmethod
    def _plan_outranks(candidate: RatePlan | None, current: RatePlan | None) -> bool:
        if candidate is None:
            return False
        if current is None:
            return True
        return (-candidate.priority, candidate.base_amount, candidate.id) < (
            -current.priority, current.base_amount, current.id
        )

    @staticmethod
    def _to_availability(
        record: AllocationRecord,
        supplier_name: str,
        pool: InventoryPool | None,
        plan: RatePlan | None
    ) -> SupplierAvailability:
        unbounded = settings.unbounded_availability
        available = record.available_units(unbounded)
        pool_available = None
        if pool is not None:
            pool_available = remaining_units(pool.quantity, pool.booked, pool.held, unbounded)
            available = min(available, pool_available)

        return SupplierAvailability(
            allocation_record_id=record.id,
            supplier_id=record.supplier_id,
            supplier_name=supplier_name,
            service_date=record.service_date,
            allocation_type=record.allocation_type,
            quantity=record.quantity,
            booked=record.booked,
            held=record.held,
            available=available,
            unit_cost=record.unit_cost,
            currency=record.currency,
            stop_sell=record.stop_sell,
            blackout=record.blackout,
            priority=plan.priority if plan is not None else settings.default_supplier_priority,
            auto_select=plan.auto_select if plan is not None else None,
            rate_plan_id=plan.id if plan is not None else None,
            inventory_pool_id=record.inventory_pool_id,
            pool_available=pool_available,
        )

    async def get_calendar(
        self,
        org_id: UUID,
        product_variant_id: UUID,
        start_date: date,
        end_date: date
    ) -> list[CalendarEntry]:
        """Return one entry per date in the range that has allocation records."""
        rows = await self.load_supplier_inventory(org_id, product_variant_id, start_date, end_date)

        by_date: dict[date, list[SupplierAvailability]] = defaultdict(list)
        for row in rows:
            by_date[row.service_date].append(row)

        calendar = []
        for service_date in sorted(by_date):
            day_rows = by_date[service_date]
            master_rate = await self.rate_service.get_master_rate(org_id, product_variant_id, service_date)
            calendar.append(self._build_entry(service_date, day_rows, master_rate))

        logger.info(
            "Availability calendar built",
            extra={
                "org_id": str(org_id),
                "product_variant_id": str(product_variant_id),
                "days": len(calendar)
            }
        )

        return calendar

    def _build_entry(
        self,
        service_date: date,
        rows: list[SupplierAvailability],
        master_rate: MasterRate | None
    ) -> CalendarEntry:
        unbounded = settings.unbounded_availability
        total_available = day_total_available(rows)
        total_quantity = sum(row.quantity if row.quantity is not None else unbounded for row in rows)
        total_booked = sum(row.booked for row in rows)

        recommended = None
        sellable = [row for row in rows if row.is_sellable and row.available > 0]
        if sellable:
            best = min(sellable, key=ranking_key)
            recommended = RecommendedSupplier(
                supplier_id=best.supplier_id,
                supplier_name=best.supplier_name,
                allocation_record_id=best.allocation_record_id,
                unit_cost=best.unit_cost,
                available=best.available,
                priority=best.priority,
                margin=master_rate.selling_price - best.unit_cost if master_rate else None,
            )

        return CalendarEntry(
            service_date=service_date,
            selling_price=master_rate.selling_price if master_rate else None,
            currency=master_rate.currency if master_rate else None,
            total_available=total_available,
            total_quantity=total_quantity,
            total_booked=total_booked,
            status=day_status(rows, total_available),
            recommended_supplier=recommended,
            suppliers=rows,
        )

    async def get_summary(
        self,
        org_id: UUID,
        product_variant_id: UUID,
        start_date: date,
        end_date: date
    ) -> AvailabilitySummary:
        """Roll a calendar range up into day counts, totals and average margin."""
        calendar = await self.get_calendar(org_id, product_variant_id, start_date, end_date)

        day_margins: list[Decimal] = []
        for entry in calendar:
            if entry.selling_price is None or not entry.suppliers:
                continue
            mean_cost = sum(row.unit_cost for row in entry.suppliers) / len(entry.suppliers)
            day_margins.append(entry.selling_price - mean_cost)

        average_margin = None
        if day_margins:
            average_margin = (sum(day_margins) / len(day_margins)).quantize(Decimal("0.01"))

        return AvailabilitySummary(
            product_variant_id=product_variant_id,
            start_date=start_date,
            end_date=end_date,
            total_days=len(calendar),
            available_days=sum(1 for entry in calendar if entry.total_available > 0),
            sold_out_days=sum(1 for entry in calendar if entry.total_available <= 0),
            low_inventory_days=sum(
                1 for entry in calendar
                if 0 < entry.total_available < settings.low_inventory_threshold
            ),
            stop_sell_days=sum(1 for entry in calendar if entry.status == CalendarStatus.STOP_SELL),
            blackout_days=sum(1 for entry in calendar if entry.status == CalendarStatus.BLACKOUT),
            total_available=sum(entry.total_available for entry in calendar),
            total_booked=sum(entry.total_booked for entry in calendar),
            average_margin=average_margin,
        )
