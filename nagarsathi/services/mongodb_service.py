import asyncio
import logging
from typing import Optional

import motor.motor_asyncio
from pymongo import ASCENDING, DESCENDING, GEOSPHERE, IndexModel
from pymongo.errors import OperationFailure

from nagarsathi.core import config

logger = logging.getLogger(__name__)

client: Optional[motor.motor_asyncio.AsyncIOMotorClient] = None
db: Optional[motor.motor_asyncio.AsyncIOMotorDatabase] = None
fs: Optional[motor.motor_asyncio.AsyncIOMotorGridFSBucket] = None

INDEX_DEFINITIONS = {
    "issues": [
        IndexModel([("location", GEOSPHERE)], name="location_2dsphere"),
        IndexModel([("status", ASCENDING), ("createdAt", DESCENDING)], name="status_created"),
        IndexModel([("category", ASCENDING)], name="category"),
        IndexModel([("state", ASCENDING)], name="state"),
        IndexModel([("district", ASCENDING)], name="district"),
        IndexModel([("createdBy", ASCENDING)], name="created_by"),
        IndexModel([("upvotesCount", DESCENDING)], name="upvotes_desc"),
        IndexModel([("createdAt", DESCENDING)], name="created_desc"),
    ],
    "users": [
        IndexModel([("clerkUserId", ASCENDING)], unique=True, name="clerk_user_id"),
        IndexModel([("createdAt", DESCENDING)], name="created_desc"),
    ],
    "comments": [
        IndexModel([("issue", ASCENDING), ("createdAt", DESCENDING)], name="issue_created"),
    ],
    "upvotes": [
        IndexModel([("issue", ASCENDING), ("user", ASCENDING)], unique=True, name="issue_user"),
    ],
}


async def init_db() -> bool:
    """Connect to MongoDB, set up GridFS and make sure indexes exist.

    Returns False instead of raising so the API can still boot (health
    checks keep answering) while the database is unreachable.
    """
    global client, db, fs

    if config.MONGO_URI == "mongodb://localhost:27017":
        logger.warning("⚠️ Using localhost MongoDB - set MONGO_URI for deployments")

    try:
        logger.info("🔄 Connecting to MongoDB...")
        logger.info(f"🔧 URI Type: {'Atlas Cloud' if 'mongodb+srv' in config.MONGO_URI else 'Local/Self-hosted'}")

        client = motor.motor_asyncio.AsyncIOMotorClient(
            config.MONGO_URI,
            serverSelectionTimeoutMS=30000,
            connectTimeoutMS=30000,
            socketTimeoutMS=30000,
            maxPoolSize=config.MONGO_POOL_MAXSIZE,
            minPoolSize=0,
            retryWrites=True,
            tz_aware=True,
        )
        await asyncio.wait_for(client.admin.command("ping"), timeout=10.0)

        db = client[config.DB_NAME]
        fs = motor.motor_asyncio.AsyncIOMotorGridFSBucket(db)
        logger.info(f"✅ Connected to MongoDB database: {config.DB_NAME}")

        try:
            await create_indexes(db)
            logger.info("📇 Database indexes created/verified")
        except OperationFailure as e:
            logger.warning(f"⚠️ Index creation failed: {e}")

        return True
    except Exception as e:
        logger.error(f"❌ Failed to connect to MongoDB: {e}")
        if "authentication failed" in str(e).lower():
            logger.error("💡 Check the MongoDB username and password in MONGO_URI")
        elif "timeout" in str(e).lower() or isinstance(e, asyncio.TimeoutError):
            logger.error("💡 Check network connectivity and the Atlas IP allow-list")
        logger.warning("⚠️ Application starting without MongoDB connection")
        return False


async def create_indexes(database) -> None:
    for collection_name, indexes in INDEX_DEFINITIONS.items():
        await database[collection_name].create_indexes(indexes)
        logger.debug(f"Indexes ensured for {collection_name}")


async def close_db():
    global client, db, fs
    if client is not None:
        client.close()
        logger.info("✅ MongoDB connection closed")
    client = None
    db = None
    fs = None


async def get_db():
    return db


async def get_fs():
    return fs
