# FastAPI dependencies (Mongo client lifecycle, get_db, services)
# mflix/api/deps.py

import logging
from typing import AsyncGenerator, Optional

from fastapi import Depends, HTTPException, status
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import ConnectionFailure

from mflix.core.config import settings
from mflix.services.movie_service import MovieService

logger = logging.getLogger(__name__)

# --- Global Client (initialized in the application lifespan) ---
mongo_client: Optional[AsyncIOMotorClient] = None
db_instance: Optional[AsyncIOMotorDatabase] = None


async def initialize_connections():
    """
    Initializes the MongoDB connection.
    Call this during FastAPI startup using lifespan events.
    """
    global mongo_client, db_instance
    logger.info("Initializing external connections...")

    try:
        logger.info(f"Attempting to connect to MongoDB: {settings.MONGODB_URI.get_secret_value()[:15]}...")
        mongo_client = AsyncIOMotorClient(
            settings.MONGODB_URI.get_secret_value(),
            serverSelectionTimeoutMS=settings.MONGODB_TIMEOUT_MS,
        )
        # Ping the server to verify connection early
        await mongo_client.admin.command('ping')
        db_instance = mongo_client[settings.MONGODB_DB_NAME]
        logger.info(f"MongoDB client initialized successfully. Using database: '{settings.MONGODB_DB_NAME}'")

    except ConnectionFailure as e:
        logger.error(f"MongoDB connection failed during initialization: {e}", exc_info=True)
        mongo_client = None
        db_instance = None
    except Exception as e:
        logger.error(f"Unexpected error initializing MongoDB client: {e}", exc_info=True)
        mongo_client = None
        db_instance = None


async def close_connections():
    """
    Closes the MongoDB connection.
    Call this during FastAPI shutdown using lifespan events.
    """
    global mongo_client, db_instance
    logger.info("Closing external connections...")
    if mongo_client:
        mongo_client.close()
        logger.info("MongoDB client closed.")
    mongo_client = None
    db_instance = None


# --- Database Dependency ---

async def get_db() -> AsyncGenerator[AsyncIOMotorDatabase, None]:
    """
    FastAPI dependency that yields the application's MongoDB database instance.

    Raises:
        HTTPException 503: If the database instance is not available.
    """
    if db_instance is None:
        logger.critical("MongoDB database instance is not available. Check initialization.")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database service not available.",
        )
    # Motor manages connection pooling internally. Yielding the db instance is sufficient.
    yield db_instance


# --- Service Dependencies ---

def get_movie_service(db: AsyncIOMotorDatabase = Depends(get_db)) -> MovieService:
    return MovieService(db=db)
