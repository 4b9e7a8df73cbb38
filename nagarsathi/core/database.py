# 🗄️ Database dependencies
# FastAPI dependency wrappers over the MongoDB service

import logging

from fastapi import HTTPException

from nagarsathi.services.mongodb_service import get_db, get_fs

logger = logging.getLogger(__name__)


async def get_db_dependency():
    """FastAPI dependency for the MongoDB database handle"""
    database = await get_db()
    if database is None:
        logger.error("❌ Database requested but MongoDB is not connected")
        raise HTTPException(status_code=503, detail="Database unavailable")
    return database


async def get_fs_dependency():
    """FastAPI dependency for the GridFS bucket"""
    bucket = await get_fs()
    if bucket is None:
        logger.error("❌ Image storage requested but MongoDB is not connected")
        raise HTTPException(status_code=503, detail="Image storage unavailable")
    return bucket
