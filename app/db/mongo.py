import logging
from contextlib import asynccontextmanager

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from app.core.config import settings

logger = logging.getLogger(__name__)


class MongoDatabase:
    """MongoDB connection manager."""

    client: AsyncIOMotorClient = None
    db: AsyncIOMotorDatabase = None

mongodb = MongoDatabase()

async def connect_to_mongo():
    """Connect to MongoDB."""
    mongodb.client = AsyncIOMotorClient(settings.MONGODB_URL, tz_aware=True)
    mongodb.db = mongodb.client[settings.DATABASE_NAME]

    # Create indexes
    await create_indexes()
    logger.info("Connected to MongoDB", extra={"database": settings.DATABASE_NAME})

async def close_mongo_connection():
    """Disconnect from MongoDB."""
    mongodb.client.close()
    logger.info("Disconnected from MongoDB")

async def create_indexes():
    """Create database indexes."""
    # Journal number is unique per tenant
    await mongodb.db["manual_journals"].create_index(
        [("tenant_id", 1), ("journal_number", 1)], unique=True
    )
    await mongodb.db["manual_journals"].create_index([("tenant_id", 1), ("date", -1)])

    await mongodb.db["manual_journal_entries"].create_index(
        [("tenant_id", 1), ("manual_journal_id", 1), ("index", 1)]
    )

    # Chart of accounts and contacts
    await mongodb.db["accounts"].create_index([("tenant_id", 1), ("slug", 1)])
    await mongodb.db["contacts"].create_index([("tenant_id", 1), ("contact_service", 1)])

    # Ledger
    await mongodb.db["account_transactions"].create_index(
        [("tenant_id", 1), ("reference_type", 1), ("reference_id", 1)]
    )
    await mongodb.db["account_balances"].create_index(
        [("tenant_id", 1), ("account_id", 1)], unique=True
    )

    await mongodb.db["sequences"].create_index(
        [("tenant_id", 1), ("group", 1)], unique=True
    )

@asynccontextmanager
async def start_transaction(db: AsyncIOMotorDatabase):
    """Yield a session whose transaction commits on exit and aborts on error."""
    async with await db.client.start_session() as session:
        async with session.start_transaction():
            yield session

def get_db() -> AsyncIOMotorDatabase:
    """Get database instance."""
    return mongodb.db
