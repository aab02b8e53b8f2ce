"""Capacity counters: conditional increments and floored releases on records and pools."""

import logging
from typing import Iterable, Protocol
from uuid import UUID

from sqlalchemy import case, or_, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import CapacityExceededError
from ..core.observability import metrics_collector
from ..models.allocation import AllocationRecord, InventoryPool
from ..schemas.availability import SupplierSelection

logger = logging.getLogger(__name__)

BOOKED = "booked"
HELD = "held"


class NightTarget(Protocol):
    """Anything naming the record and optional pool consumed on one night."""

    allocation_record_id: UUID
    inventory_pool_id: UUID | None


class CapacityService:
    """
    Writes capacity counters for allocation records and inventory pools.

    Every increment is a conditional UPDATE whose WHERE clause carries the
    capacity check, so two transactions can never both take the last unit.
    Zero affected rows means capacity ran out after selection. Releases are
    floored at zero and never fail.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def reserve(
        self,
        org_id: UUID,
        index: int,
        selection: SupplierSelection,
        counter: str = BOOKED
    ) -> None:
        """
        Take a selection's units on every night of its stay.

        Args:
            org_id: Organization scope
            index: Position of the item in its request, reported on failure
            selection: Chosen supplier with one record per night
            counter: ``booked`` for bookings, ``held`` for holds

        Raises:
            CapacityExceededError: If any night's record or pool is out of units
        """
        for night in selection.nights:
            if not await self._take(AllocationRecord, night.allocation_record_id, org_id, selection.quantity, counter):
                self._exceeded("allocation_record", index, night, selection.quantity)
            if night.inventory_pool_id is None:
                continue
            if not await self._take(InventoryPool, night.inventory_pool_id, org_id, selection.quantity, counter):
                self._exceeded("inventory_pool", index, night, selection.quantity)

    async def release(
        self,
        org_id: UUID,
        nights: Iterable[NightTarget],
        quantity: int,
        counter: str = BOOKED
    ) -> None:
        """Give units back to each night's record and pool, never going below zero."""
        for night in nights:
            await self._give_back(AllocationRecord, night.allocation_record_id, org_id, quantity, counter)
            if night.inventory_pool_id is not None:
                await self._give_back(InventoryPool, night.inventory_pool_id, org_id, quantity, counter)

    async def settle_held(self, org_id: UUID, index: int, nights: Iterable[NightTarget], quantity: int) -> None:
        """
        Turn held units into booked units on every night.

        Raises:
            CapacityExceededError: If a record or pool no longer holds the units
        """
        for night in nights:
            if not await self._settle(AllocationRecord, night.allocation_record_id, org_id, quantity):
                self._exceeded("allocation_record", index, night, quantity)
            if night.inventory_pool_id is None:
                continue
            if not await self._settle(InventoryPool, night.inventory_pool_id, org_id, quantity):
                self._exceeded("inventory_pool", index, night, quantity)

    async def _take(self, model, target_id: UUID, org_id: UUID, quantity: int, counter: str) -> bool:
        column = getattr(model, counter)
        stmt = (
            update(model)
            .where(
                model.id == target_id,
                model.org_id == org_id,
                or_(
                    model.quantity.is_(None),
                    model.booked + model.held + quantity <= model.quantity,
                ),
            )
            .values({counter: column + quantity})
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount > 0

    async def _give_back(self, model, target_id: UUID, org_id: UUID, quantity: int, counter: str) -> None:
        column = getattr(model, counter)
        await self.db.execute(
            update(model)
            .where(model.id == target_id, model.org_id == org_id)
            .values({counter: case((column >= quantity, column - quantity), else_=0)})
            .execution_options(synchronize_session=False)
        )

    async def _settle(self, model, target_id: UUID, org_id: UUID, quantity: int) -> bool:
        stmt = (
            update(model)
            .where(model.id == target_id, model.org_id == org_id, model.held >= quantity)
            .values(booked=model.booked + quantity, held=model.held - quantity)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount > 0

    @staticmethod
    def _exceeded(target: str, index: int, night: NightTarget, quantity: int) -> None:
        metrics_collector.record_capacity_conflict(target)
        logger.warning(
            "Capacity exhausted at commit time",
            extra={
                "target": target,
                "item_index": index,
                "allocation_record_id": str(night.allocation_record_id),
                "inventory_pool_id": str(night.inventory_pool_id) if night.inventory_pool_id else None,
                "requested_quantity": quantity
            }
        )
        raise CapacityExceededError(
            allocation_record_id=str(night.allocation_record_id),
            requested_quantity=quantity,
            inventory_pool_id=str(night.inventory_pool_id) if target == "inventory_pool" else None,
            item_index=index,
        )
