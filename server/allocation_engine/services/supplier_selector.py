"""Supplier selection: pick exactly one supplier for a variant, stay and quantity."""

import logging
from collections import defaultdict
from datetime import date, timedelta
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import NoMasterRateError, NoSupplierAvailableError
from ..core.observability import metrics_collector
from ..schemas.availability import MasterRate, NightAllocation, SupplierAvailability, SupplierSelection
from .availability_service import AvailabilityService
from .rate_service import RateService

logger = logging.getLogger(__name__)


def stay_nights(service_start: date, service_end: date) -> list[date]:
    """Every service day from start to end, both inclusive."""
    return [service_start + timedelta(days=offset) for offset in range((service_end - service_start).days + 1)]


class SupplierSelector:
    """
    Ranks sellable suppliers and returns the best one.

    Candidates are filtered on stop-sell, blackout, remaining capacity and the
    supplier plan's auto-select opt-out, then ordered by priority (highest
    first), unit cost (cheapest first), supplier ID and record ID. A stay of
    several days is served by a single supplier that passes the filters on
    every night. Selection never mutates capacity counters.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.rate_service = RateService(db)
        self.availability_service = AvailabilityService(db)

    async def select_best_supplier(
        self,
        org_id: UUID,
        product_variant_id: UUID,
        on_date: date,
        quantity: int,
        already_requested: dict[UUID, int] | None = None
    ) -> SupplierSelection:
        """
        Select the supplier that should fulfil a requested quantity.

        Args:
            org_id: Organization scope
            product_variant_id: Variant being booked
            on_date: Service date
            quantity: Units requested
            already_requested: Units claimed earlier in the same request, keyed
                by allocation record ID or pool ID

        Returns:
            The winning supplier with cost, selling price and margin

        Raises:
            NoMasterRateError: If the variant has no selling price on the date
            NoSupplierAvailableError: If no candidate passes the filters
        """
        return await self.select_supplier_for_stay(
            org_id, product_variant_id, on_date, on_date, quantity, already_requested
        )

    async def select_supplier_for_stay(
        self,
        org_id: UUID,
        product_variant_id: UUID,
        service_start: date,
        service_end: date,
        quantity: int,
        already_requested: dict[UUID, int] | None = None
    ) -> SupplierSelection:
        """
        Select one supplier able to serve every night of a stay.

        A supplier qualifies only when it has a sellable record with enough
        units on each night from ``service_start`` to ``service_end``. Pooled
        nights draw on the pool once per night. Qualifying suppliers are ranked
        by their first night's priority, then by total cost over the stay.

        Raises:
            NoMasterRateError: If any night has no selling price
            NoSupplierAvailableError: If no supplier covers the whole stay; the
                error names the first night no supplier could serve
        """
        nights = stay_nights(service_start, service_end)

        master_rates: dict[date, MasterRate] = {}
        try:
            for night in nights:
                master_rates[night] = await self.rate_service.resolve_master_rate(org_id, product_variant_id, night)
        except NoMasterRateError:
            metrics_collector.record_supplier_selection("no_master_rate")
            raise

        rows = await self.availability_service.load_supplier_inventory(
            org_id, product_variant_id, service_start, service_end, sellable_only=True
        )

        by_supplier: dict[UUID, dict[date, SupplierAvailability]] = defaultdict(dict)
        for row in rows:
            if not row.is_sellable or row.auto_select is False:
                continue
            by_supplier[row.supplier_id].setdefault(row.service_date, row)

        claimed = already_requested or {}
        best_available = 0
        candidates: list[tuple[tuple, list[tuple[SupplierAvailability, int]]]] = []

        for by_date in by_supplier.values():
            stay = self._walk_stay(by_date, nights, quantity, claimed)
            stay_available = min(available for _, available in stay) if len(stay) == len(nights) else 0
            best_available = max(best_available, stay_available)
            if len(stay) == len(nights) and stay_available >= quantity:
                first = stay[0][0]
                total_cost = sum(row.unit_cost for row, _ in stay)
                key = (-first.priority, total_cost, first.supplier_id, first.allocation_record_id)
                candidates.append((key, stay))

        if not candidates:
            short_night = self._first_unserved_night(by_supplier, nights, quantity, claimed)
            metrics_collector.record_supplier_selection("no_supplier")
            logger.warning(
                "No supplier available",
                extra={
                    "org_id": str(org_id),
                    "product_variant_id": str(product_variant_id),
                    "service_start": service_start.isoformat(),
                    "service_end": service_end.isoformat(),
                    "service_date": short_night.isoformat(),
                    "requested_quantity": quantity,
                    "best_available": best_available,
                    "candidates_seen": len(rows)
                }
            )
            raise NoSupplierAvailableError(
                product_variant_id=str(product_variant_id),
                service_date=short_night,
                requested_quantity=quantity,
                best_available=best_available,
            )

        _, stay = min(candidates, key=lambda candidate: candidate[0])
        metrics_collector.record_supplier_selection("selected")

        selection = self._to_selection(product_variant_id, service_start, service_end, quantity, stay, master_rates)

        logger.info(
            "Supplier selected",
            extra={
                "org_id": str(org_id),
                "product_variant_id": str(product_variant_id),
                "service_start": service_start.isoformat(),
                "service_end": service_end.isoformat(),
                "quantity": quantity,
                "supplier_id": str(selection.supplier_id),
                "allocation_record_id": str(selection.allocation_record_id),
                "nights": len(selection.nights),
                "unit_cost": str(selection.unit_cost),
                "margin": str(selection.margin)
            }
        )

        return selection

    @classmethod
    def _walk_stay(
        cls,
        by_date: dict[date, SupplierAvailability],
        nights: list[date],
        quantity: int,
        claimed: dict[UUID, int]
    ) -> list[tuple[SupplierAvailability, int]]:
        """
        Pair each night with the supplier's record and its effective availability.

        Stops at the first night the supplier has no record for. Units taken on
        earlier nights are claimed on a scratch copy, so a pool shared across
        nights is drawn down once per night.
        """
        trial = dict(claimed)
        stay = []
        for night in nights:
            row = by_date.get(night)
            if row is None:
                break
            stay.append((row, cls._effective_available(row, trial)))
            _add_claim(trial, row.allocation_record_id, quantity)
            _add_claim(trial, row.inventory_pool_id, quantity)
        return stay

    @classmethod
    def _first_unserved_night(
        cls,
        by_supplier: dict[UUID, dict[date, SupplierAvailability]],
        nights: list[date],
        quantity: int,
        claimed: dict[UUID, int]
    ) -> date:
        for night in nights:
            served = False
            for by_date in by_supplier.values():
                row = by_date.get(night)
                if row is not None and cls._effective_available(row, claimed) >= quantity:
                    served = True
                    break
            if not served:
                return night
        return nights[0]

    @staticmethod
    def _to_selection(
        product_variant_id: UUID,
        service_start: date,
        service_end: date,
        quantity: int,
        stay: list[tuple[SupplierAvailability, int]],
        master_rates: dict[date, MasterRate]
    ) -> SupplierSelection:
        first = stay[0][0]
        nights = [
            NightAllocation(
                service_date=row.service_date,
                allocation_record_id=row.allocation_record_id,
                inventory_pool_id=row.inventory_pool_id,
                unit_cost=row.unit_cost,
                selling_price=master_rates[row.service_date].selling_price,
                available=available,
            )
            for row, available in stay
        ]
        unit_cost = sum(night.unit_cost for night in nights)
        selling_price = sum(night.selling_price for night in nights)

        return SupplierSelection(
            product_variant_id=product_variant_id,
            service_date=service_start,
            service_end=service_end,
            quantity=quantity,
            supplier_id=first.supplier_id,
            supplier_name=first.supplier_name,
            allocation_record_id=first.allocation_record_id,
            inventory_pool_id=first.inventory_pool_id,
            unit_cost=unit_cost,
            selling_price=selling_price,
            currency=master_rates[service_start].currency,
            margin=selling_price - unit_cost,
            available=min(night.available for night in nights),
            priority=first.priority,
            nights=nights,
        )

    @staticmethod
    def _effective_available(row: SupplierAvailability, claimed: dict[UUID, int]) -> int:
        """Availability after subtracting units already claimed in this request."""
        available = row.available - claimed.get(row.allocation_record_id, 0)
        if row.inventory_pool_id is not None and row.pool_available is not None:
            pool_left = row.pool_available - claimed.get(row.inventory_pool_id, 0)
            available = min(available, pool_left)
        return max(available, 0)


def _add_claim(claims: dict[UUID, int], key: UUID | None, quantity: int) -> None:
    if key is not None:
        claims[key] = claims.get(key, 0) + quantity


def claim(already_requested: dict[UUID, int], selection: SupplierSelection) -> None:
    """Add a selection's units to the running per-record and per-pool claims, night by night."""
    for night in selection.nights:
        _add_claim(already_requested, night.allocation_record_id, selection.quantity)
        _add_claim(already_requested, night.inventory_pool_id, selection.quantity)
