# MongoDB repository logic
# mflix/data_access/mongo_client.py

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from mflix.data_access.stages import Equals, Pipeline, build_lookup, build_match

logger = logging.getLogger(__name__)

SortSpec = Sequence[Tuple[str, Any]]


# --- Base Repository ---
class BaseRepository:
    """Common repository logic: collection handle, DB availability and ObjectId checks."""
    def __init__(self, db: AsyncIOMotorDatabase, collection_name: str):
        self.db = db
        self.collection: AsyncIOMotorCollection = db[collection_name]
        logger.debug(f"Initialized repository for collection: {collection_name}")

    def _check_db(self):
        """Helper to check if DB instance is available."""
        if self.db is None or self.collection is None:
            logger.critical("Database not available for repository")
            raise ConnectionError("Database connection not available")

    def _validate_object_id(self, id_str: str) -> Optional[ObjectId]:
        """Validates a string as a MongoDB ObjectId."""
        if ObjectId.is_valid(id_str):
            return ObjectId(id_str)
        logger.warning(f"Invalid ObjectId format: {id_str}")
        return None

    async def find(
        self,
        query: Dict[str, Any],
        projection: Optional[Dict[str, Any]] = None,
        sort: Optional[SortSpec] = None,
        skip: int = 0,
        limit: int = 0,
    ) -> List[Dict[str, Any]]:
        """
        Runs a find with optional projection, sort and pagination.

        A ``limit`` of 0 means no limit, as with ``Cursor.limit``.
        Returns raw documents; the service layer maps them to Pydantic models.
        """
        self._check_db()
        try:
            cursor = self.collection.find(query, projection)
            if sort:
                cursor = cursor.sort(list(sort))
            if skip:
                cursor = cursor.skip(skip)
            if limit:
                cursor = cursor.limit(limit)
            return await cursor.to_list(length=limit or None)
        except PyMongoError as e:
            logger.error(f"DB error finding documents in {self.collection.name} with {query}: {e}", exc_info=True)
            raise

    async def aggregate(self, pipeline: Pipeline) -> List[Dict[str, Any]]:
        """Runs an aggregation pipeline and returns every output document."""
        self._check_db()
        stages = pipeline.to_mongo()
        try:
            cursor = self.collection.aggregate(stages)
            return await cursor.to_list(length=None)
        except PyMongoError as e:
            logger.error(f"DB error running pipeline on {self.collection.name}: {stages}: {e}", exc_info=True)
            raise

    async def aggregate_one(self, pipeline: Pipeline) -> Optional[Dict[str, Any]]:
        """Runs an aggregation pipeline and returns its first document, or None."""
        docs = await self.aggregate(pipeline)
        return docs[0] if docs else None

    async def count_all(self) -> int:
        """Counts every document in the collection."""
        self._check_db()
        try:
            return await self.collection.count_documents({})
        except PyMongoError as e:
            logger.error(f"DB error counting {self.collection.name}: {e}", exc_info=True)
            raise


# --- Movie Repository ---
class MovieRepository(BaseRepository):
    def __init__(self, db: AsyncIOMotorDatabase):
        super().__init__(db, collection_name="movies")

    async def get_by_id_with_comments(self, movie_id: str) -> Optional[Dict[str, Any]]:
        """Fetches one movie with its ``comments`` joined in. None for an invalid or unknown ID."""
        obj_id = self._validate_object_id(movie_id)
        if not obj_id:
            return None
        pipeline = Pipeline(stages=(
            build_match("_id", Equals(value=obj_id)),
            build_lookup("comments", "_id", "movie_id", "comments"),
        ))
        return await self.aggregate_one(pipeline)
