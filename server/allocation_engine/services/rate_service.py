"""Rate resolution: master selling prices and competing supplier cost rates."""

import logging
from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import NoMasterRateError
from ..models.rate_plan import RatePlan
from ..models.supplier import Supplier
from ..schemas.availability import MasterRate, SupplierRate

logger = logging.getLogger(__name__)


class RateService:
    """Read-only lookups over rate plans."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_master_rate(self, org_id: UUID, product_variant_id: UUID, on_date: date) -> MasterRate | None:
        """
        Return the master rate valid on a date, or None.

        Only preferred plans without a supplier are considered. Ties are broken
        by priority (highest first), then the most recent validity start, then
        the plan ID, so the same inputs always resolve to the same plan.
        """
        stmt = (
            select(RatePlan)
            .where(
                RatePlan.org_id == org_id,
                RatePlan.product_variant_id == product_variant_id,
                RatePlan.supplier_id.is_(None),
                RatePlan.preferred.is_(True),
                RatePlan.valid_from <= on_date,
                RatePlan.valid_to >= on_date,
            )
            .order_by(RatePlan.priority.desc(), RatePlan.valid_from.desc(), RatePlan.id.asc())
            .limit(1)
        )
        result = await self.db.execute(stmt)
        plan = result.scalar_one_or_none()

        if plan is None:
            return None

        return MasterRate(
            rate_plan_id=plan.id,
            product_variant_id=plan.product_variant_id,
            selling_price=plan.base_amount,
            currency=plan.currency,
            priority=plan.priority,
            valid_from=plan.valid_from,
            valid_to=plan.valid_to,
        )

    async def resolve_master_rate(self, org_id: UUID, product_variant_id: UUID, on_date: date) -> MasterRate:
        """
        Return the master rate valid on a date.

        Raises:
            NoMasterRateError: If no preferred master plan covers the date
        """
        master_rate = await self.get_master_rate(org_id, product_variant_id, on_date)
        if master_rate is None:
            logger.warning(
                "No master rate for variant",
                extra={
                    "org_id": str(org_id),
                    "product_variant_id": str(product_variant_id),
                    "service_date": on_date.isoformat()
                }
            )
            raise NoMasterRateError(str(product_variant_id), on_date)

        return master_rate

    async def resolve_supplier_rates(
        self,
        org_id: UUID,
        product_variant_id: UUID,
        on_date: date
    ) -> list[SupplierRate]:
        """List supplier cost rates valid on a date, best first."""
        stmt = (
            select(RatePlan, Supplier.name)
            .join(Supplier, Supplier.id == RatePlan.supplier_id)
            .where(
                RatePlan.org_id == org_id,
                RatePlan.product_variant_id == product_variant_id,
                RatePlan.supplier_id.is_not(None),
                RatePlan.valid_from <= on_date,
                RatePlan.valid_to >= on_date,
            )
            .order_by(
                RatePlan.priority.desc(),
                RatePlan.base_amount.asc(),
                RatePlan.supplier_id.asc(),
                RatePlan.id.asc(),
            )
        )
        result = await self.db.execute(stmt)

        return [
            SupplierRate(
                rate_plan_id=plan.id,
                supplier_id=plan.supplier_id,
                supplier_name=supplier_name,
                unit_cost=plan.base_amount,
                currency=plan.currency,
                priority=plan.priority,
                inventory_model=plan.inventory_model,
                auto_select=plan.auto_select,
                valid_from=plan.valid_from,
                valid_to=plan.valid_to,
            )
            for plan, supplier_name in result.all()
        ]
