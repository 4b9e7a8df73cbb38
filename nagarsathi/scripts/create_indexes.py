#!/usr/bin/env python3
"""
Database Index Creation Script for NagarSathi

Creates the indexes the API relies on: the 2dsphere index behind the
"near me" filter, the unique (issue, user) pair on upvotes and the unique
clerkUserId on users, plus the sort/filter indexes for issue listings.
Creating an index that already exists with the same definition is a no-op.
"""

import asyncio
import logging

from motor.motor_asyncio import AsyncIOMotorClient

from nagarsathi.core import config
from nagarsathi.services.mongodb_service import INDEX_DEFINITIONS, create_indexes

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


async def create_database_indexes():
    client = AsyncIOMotorClient(config.MONGO_URI)
    try:
        db = client[config.DB_NAME]
        logger.info("🚀 Starting database index creation...")
        await create_indexes(db)

        for collection_name in INDEX_DEFINITIONS:
            indexes = await db[collection_name].list_indexes().to_list(length=None)
            names = sorted(idx.get("name") for idx in indexes)
            logger.info(f"📋 {collection_name}: {names}")

        logger.info("✅ Database indexes created/verified")
    finally:
        client.close()


if __name__ == "__main__":
    asyncio.run(create_database_indexes())
