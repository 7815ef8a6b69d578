# scripts/seed_initial_data.py

import asyncio
import json
import logging
import sys
from decimal import Decimal
from pathlib import Path
from typing import Type, List, Optional

from pydantic import BaseModel, Field, ValidationError
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession

from assocpay.core.config import settings
from assocpay.models import Association, PricingPlan, BillingCycle, MembershipTier

# --- Setup Logging ---
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

SEED_DATA_DIR = Path(__file__).resolve().parent.parent / "seed_data"

# --- Seed file schemas ---

class PricingPlanSeed(BaseModel):
    name: str
    display_name: str
    description: Optional[str] = None
    price: Decimal
    currency: str = "HKD"
    billing_cycle: BillingCycle = BillingCycle.YEARLY
    membership_tier: MembershipTier
    gateway_product_id: Optional[str] = None
    gateway_price_id: Optional[str] = None

class AssociationSeed(BaseModel):
    name: str
    slug: str
    pricing_plans: List[PricingPlanSeed] = Field(default_factory=list)

def _load_and_validate_data(file_name: str, schema: Type[BaseModel]) -> List[BaseModel]:
    """
    Helper to load, parse, and robustly validate data from a JSON file.
    """
    path = SEED_DATA_DIR / file_name
    if not path.exists():
        logger.error(f"Seed data file not found: {path}")
        raise FileNotFoundError(f"Seed data file not found: {path}")

    logger.info(f"  - Loading and validating {file_name}...")
    data = json.loads(path.read_text())
    try:
        return [schema.model_validate(item) for item in data]
    except ValidationError as e:
        logger.critical(f"FATAL: Validation failed for {file_name}. See details below.")
        for error in e.errors():
            logger.critical(f"  - Location: {error['loc']} | Error: {error['msg']}")
        raise

# --- Seeding ---

async def _seed_associations(db: AsyncSession):
    for item in _load_and_validate_data("associations.json", AssociationSeed):
        association = Association(name=item.name, slug=item.slug)
        db.add(association)
        await db.flush()
        for plan in item.pricing_plans:
            db.add(PricingPlan(association_id=association.id, is_active=True, **plan.model_dump()))
        logger.info(f"  - {item.slug}: {len(item.pricing_plans)} pricing plan(s)")

async def seed_all_data(db: AsyncSession):
    # 幂等检查：已有协会数据则跳过
    if await db.scalar(select(func.count(Association.id))) > 0:
        logger.warning("Data appears to be already seeded. Skipping.")
        return

    logger.info("Starting database seeding process...")
    await _seed_associations(db)
    logger.info("Database seeding process completed successfully.")

async def main():
    """Runs the seeding within a single transaction."""
    engine = create_async_engine(settings.DATABASE_URL, echo=False)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    try:
        async with session_factory() as db:
            async with db.begin():
                await seed_all_data(db)
    except Exception:
        logger.critical("FATAL ERROR during seeding: the transaction has been rolled back.", exc_info=True)
        sys.exit(1)
    finally:
        await engine.dispose()

if __name__ == "__main__":
    asyncio.run(main())
