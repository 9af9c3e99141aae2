# acadlib/db/database.py
from typing import Tuple

import motor.motor_asyncio
from beanie import init_beanie
from loguru import logger

from acadlib.core.config import MONGODB_URL, DATABASE_NAME, MONGODB_TRANSACTIONS
from acadlib.db.repositories import detect_transaction_support
from acadlib.models.booking import Booking
from acadlib.models.material import Material
from acadlib.models.request import MaterialRequest
from acadlib.models.user import User


async def init_db() -> Tuple[motor.motor_asyncio.AsyncIOMotorClient, bool]:
    """Connects to MongoDB, initializes Beanie and decides whether borrow/return use transactions."""
    logger.info("Connecting to MongoDB...")
    client = motor.motor_asyncio.AsyncIOMotorClient(MONGODB_URL, tz_aware=True)

    database = client[DATABASE_NAME]
    logger.info(f"Using database: {DATABASE_NAME}")

    await init_beanie(
        database=database,
        document_models=[User, Material, Booking, MaterialRequest],
    )
    logger.info("Beanie initialization complete for all models.")

    if MONGODB_TRANSACTIONS == "auto":
        supports_transactions = await detect_transaction_support(client)
    else:
        supports_transactions = MONGODB_TRANSACTIONS == "true"
    if supports_transactions:
        logger.info("Multi-document transactions enabled for borrow/return.")
    else:
        logger.warning("MongoDB transactions unavailable; borrow/return use compensating updates.")
    return client, supports_transactions
