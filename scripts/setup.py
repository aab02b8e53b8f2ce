#!/usr/bin/env python3
"""Setup script for the allocation engine: migrate the schema and seed sample inventory."""

import asyncio
import logging
import sys
from datetime import date, timedelta
from decimal import Decimal
from pathlib import Path
from uuid import UUID, uuid4

# Add the server directory to the Python path
server_dir = Path(__file__).parent.parent / "server"
sys.path.insert(0, str(server_dir))

from alembic import command
from alembic.config import Config
from sqlalchemy import func, select

from allocation_engine.core.database import async_session_factory, close_db
from allocation_engine.models import (
    AllocationRecord,
    AllocationType,
    InventoryPool,
    ProductVariant,
    RatePlan,
    Supplier,
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Organization the sample data belongs to; put it in the org_id claim of dev tokens
SAMPLE_ORG_ID = UUID("00000000-0000-4000-8000-000000000001")
SEASON_DAYS = 60


def setup_database():
    """Bring the schema up to date with Alembic."""
    logger.info("Running database migrations...")
    alembic_cfg = Config(str(server_dir / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(server_dir / "db" / "alembic"))
    command.upgrade(alembic_cfg, "head")
    logger.info("Database migrations completed")


async def create_sample_data():
    """Create a priced variant with three competing suppliers, one of them pooled."""
    logger.info("Creating sample data...")

    async with async_session_factory() as db:
        try:
            existing = await db.execute(
                select(func.count()).select_from(Supplier).where(Supplier.org_id == SAMPLE_ORG_ID)
            )
            if existing.scalar() > 0:
                logger.info("Sample data already exists, skipping...")
                return

            season_start = date.today() + timedelta(days=30)
            season_end = season_start + timedelta(days=SEASON_DAYS - 1)

            variant = ProductVariant(
                id=uuid4(),
                org_id=SAMPLE_ORG_ID,
                name="Reykjavik Harbour Hotel - Standard Double",
                product_type="accommodation",
            )
            db.add(variant)

            # Selling price
            db.add(RatePlan(
                id=uuid4(),
                org_id=SAMPLE_ORG_ID,
                product_variant_id=variant.id,
                name="Public rate",
                valid_from=season_start,
                valid_to=season_end,
                priority=100,
                preferred=True,
                currency="GBP",
                base_amount=Decimal("150.00"),
            ))

            pool = InventoryPool(
                id=uuid4(),
                org_id=SAMPLE_ORG_ID,
                name="Harbour group block",
                quantity=20,
                booked=0,
                held=0,
            )
            db.add(pool)

            # (name, priority, unit cost, daily rooms, pooled)
            contracts = [
                ("Harbour Hotel Direct", 50, "95.00", 6, False),
                ("Nordic Bedbank", 10, "88.00", 12, True),
                ("Last Minute Rooms", 10, "140.00", None, False),
            ]

            for name, priority, cost, rooms, pooled in contracts:
                supplier = Supplier(id=uuid4(), org_id=SAMPLE_ORG_ID, name=name)
                db.add(supplier)
                db.add(RatePlan(
                    id=uuid4(),
                    org_id=SAMPLE_ORG_ID,
                    product_variant_id=variant.id,
                    supplier_id=supplier.id,
                    name=f"{name} contract",
                    valid_from=season_start,
                    valid_to=season_end,
                    priority=priority,
                    preferred=False,
                    currency="GBP",
                    base_amount=Decimal(cost),
                ))

                for offset in range(SEASON_DAYS):
                    db.add(AllocationRecord(
                        id=uuid4(),
                        org_id=SAMPLE_ORG_ID,
                        product_variant_id=variant.id,
                        supplier_id=supplier.id,
                        inventory_pool_id=pool.id if pooled else None,
                        service_date=season_start + timedelta(days=offset),
                        allocation_type=AllocationType.FREESALE if rooms is None else AllocationType.COMMITTED,
                        quantity=rooms,
                        booked=0,
                        held=0,
                        unit_cost=Decimal(cost),
                        currency="GBP",
                        stop_sell=False,
                        blackout=False,
                    ))

            await db.commit()
            logger.info(
                f"Sample data created for org {SAMPLE_ORG_ID}: variant {variant.id}, "
                f"{season_start.isoformat()} to {season_end.isoformat()}"
            )

        except Exception as e:
            await db.rollback()
            logger.error(f"Failed to create sample data: {e}")
            raise

    await close_db()


def main():
    """Main setup function."""
    logger.info("Starting allocation engine setup...")

    # Alembic's env runs its own event loop, so migrate before entering ours
    setup_database()

    asyncio.run(create_sample_data())

    logger.info("Setup completed successfully!")
    logger.info("You can now start the API server with: cd server && uvicorn allocation_engine.main:app --reload")


if __name__ == "__main__":
    main()
