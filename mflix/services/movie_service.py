# mflix/services/movie_service.py

import asyncio
import logging
from typing import List, Optional, Sequence

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import DESCENDING
from pymongo.errors import PyMongoError

from mflix.core.config import settings
from mflix.core.errors import ConfigurationError
from mflix.data_access.mongo_client import MovieRepository
from mflix.data_access.stages import (
    TEXT_FIELD,
    TEXT_SCORE,
    InSet,
    TextSearch,
    build_limit,
    build_match,
    build_sort,
)
from mflix.models.movie import Movie, MovieByCountry, MovieByText, MoviesByCastFacets
from mflix.services.facets import (
    CastFacetQuery,
    FacetConfig,
    build_count_pipeline,
    build_faceted_pipeline,
    reconcile_count,
)
from mflix.utils.helpers import calculate_skip, clean_terms

logger = logging.getLogger(__name__)


class MovieService:
    """
    Read-only catalog queries over the ``movies`` collection.

    Every method is a coroutine that may be cancelled while it awaits MongoDB;
    the resulting ``asyncio.CancelledError`` is never caught here. Store
    failures (``PyMongoError``) are logged and re-raised unchanged. No retries.
    """

    def __init__(self, db: AsyncIOMotorDatabase, facet_config: Optional[FacetConfig] = None):
        """
        Initializes the Movie Service.

        Args:
            db: An instance of AsyncIOMotorDatabase (Motor client).
            facet_config: Boundary tables for the faceted search. Defaults to the configured ones.
        """
        self.movies = MovieRepository(db)
        self.facet_config = facet_config or FacetConfig.from_settings()
        self.movies_per_page = settings.DEFAULT_MOVIES_PER_PAGE
        self.sort_key = settings.DEFAULT_SORT_KEY

    def _page_size(self, requested: Optional[int]) -> int:
        """The requested page size, or the configured default when None. Zero and negatives raise."""
        return build_limit(self.movies_per_page if requested is None else requested).n

    @staticmethod
    def _filter_values(field: str, values: Sequence[str]) -> InSet:
        # Values that all clean away would otherwise become the match-all empty filter
        terms = clean_terms(values)
        if not terms:
            raise ConfigurationError(f"Filtering on '{field}' needs at least one non-blank value.")
        return InSet(values=tuple(terms))

    async def get_movies(
        self,
        movies_per_page: Optional[int] = None,
        page: int = 0,
        sort: Optional[str] = None,
        sort_direction: int = DESCENDING,
    ) -> List[Movie]:
        """
        Retrieves one page of movies from the whole catalog.

        Args:
            movies_per_page: Page size (defaults to 20).
            page: Page number (0-based). Pages past the end come back empty.
            sort: Field to sort on (defaults to the viewer review count).
            sort_direction: 1 for ascending, -1 for descending.

        Returns:
            A list of Movie objects.

        Raises:
            ConfigurationError: If the sort field, direction or page size is invalid.
            PyMongoError: If a database error occurs.
        """
        limit = self._page_size(movies_per_page)
        sort_stage = build_sort(sort or self.sort_key, sort_direction)
        skip = calculate_skip(page, limit)

        docs = await self.movies.find({}, sort=sort_stage.to_sort_spec(), skip=skip, limit=limit)
        movies = [Movie.model_validate(doc) for doc in docs]
        logger.info(f"Fetched {len(movies)} movies (page {page}, {limit} per page) sorted by {sort_stage.field}")
        return movies

    async def get_movies_count(self) -> int:
        """Returns the total number of movies in the catalog."""
        return await self.movies.count_all()

    async def get_movie(self, movie_id: str) -> Optional[Movie]:
        """
        Retrieves a single movie with its comments attached.

        Args:
            movie_id: The MongoDB ObjectId string of the movie.

        Returns:
            The Movie, or None if the ID is not a valid ObjectId or no movie has it.

        Raises:
            PyMongoError: If a database error occurs.
        """
        doc = await self.movies.get_by_id_with_comments(movie_id)
        if doc is None:
            logger.warning(f"Movie with ID {movie_id} not found in database.")
            return None

        movie = Movie.model_validate(doc)
        logger.debug(f"Found movie with ID: {movie_id} ({len(movie.comments)} comments)")
        return movie

    async def get_movies_by_text(
        self, keywords: Sequence[str], page: int = 0, limit: Optional[int] = None
    ) -> List[MovieByText]:
        """
        Full-text search over the collection's text index, best matches first.

        Raises:
            ConfigurationError: If no non-blank keyword is given.
            PyMongoError: If a database error occurs.
        """
        terms = clean_terms(keywords)
        if not terms:
            raise ConfigurationError("Text search needs at least one keyword.")
        limit = self._page_size(limit)

        match = build_match(TEXT_FIELD, TextSearch(search=" ".join(terms)))
        sort_stage = build_sort("score", TEXT_SCORE)
        docs = await self.movies.find(
            match.to_filter(),
            projection={"score": {"$meta": TEXT_SCORE}},
            sort=sort_stage.to_sort_spec(),
            skip=calculate_skip(page, limit),
            limit=limit,
        )
        logger.info(f"Text search for {terms} returned {len(docs)} movies (page {page})")
        return [MovieByText.model_validate(doc) for doc in docs]

    async def get_movies_by_field(
        self,
        field: str,
        values: Sequence[str],
        sort_key: Optional[str] = None,
        page: int = 0,
        limit: Optional[int] = None,
    ) -> List[Movie]:
        """
        Finds movies whose ``field`` contains any of ``values``, sorted descending by ``sort_key``.

        Raises:
            ConfigurationError: If ``values`` holds no non-blank value, or ``limit`` is below 1.
            PyMongoError: If a database error occurs.
        """
        limit = self._page_size(limit)
        match = build_match(field, self._filter_values(field, values))
        sort_stage = build_sort(sort_key or self.sort_key, DESCENDING)

        docs = await self.movies.find(
            match.to_filter(),
            sort=sort_stage.to_sort_spec(),
            skip=calculate_skip(page, limit),
            limit=limit,
        )
        logger.info(f"Fetched {len(docs)} movies where {field} in {list(values)} (page {page})")
        return [Movie.model_validate(doc) for doc in docs]

    async def get_movies_by_cast(self, cast: Sequence[str], **kwargs) -> List[Movie]:
        return await self.get_movies_by_field("cast", cast, **kwargs)

    async def get_movies_by_genre(self, genres: Sequence[str], **kwargs) -> List[Movie]:
        return await self.get_movies_by_field("genres", genres, **kwargs)

    async def get_movies_by_country(self, *countries: str) -> List[MovieByCountry]:
        """Movies made in any of ``countries``: id and title only, title descending, unpaginated."""
        match = build_match("countries", self._filter_values("countries", countries))
        docs = await self.movies.find(
            match.to_filter(),
            projection={"title": 1},
            sort=build_sort("title", DESCENDING).to_sort_spec(),
        )
        logger.info(f"Fetched {len(docs)} movies for countries {list(countries)}")
        return [MovieByCountry.model_validate(doc) for doc in docs]

    async def get_movies_cast_faceted(self, cast: str, page: int = 0) -> MoviesByCastFacets:
        """
        Faceted search for one cast member.

        Runs the facet pipeline (runtime and rating histograms plus the page of
        movies) and the count pipeline as two independent round trips, then
        merges the count in. The histograms describe only the returned page;
        ``count`` covers every movie featuring ``cast``.

        Raises:
            ConfigurationError: If the boundary tables are malformed (before any I/O).
            PyMongoError: If either pipeline fails.
        """
        query = CastFacetQuery.for_cast(cast, page, self.movies_per_page, self.sort_key)
        facet_pipeline = build_faceted_pipeline(query, self.facet_config)
        count_pipeline = build_count_pipeline(query)

        try:
            facet_doc, count_doc = await asyncio.gather(
                self.movies.aggregate_one(facet_pipeline),
                self.movies.aggregate_one(count_pipeline),
            )
        except PyMongoError as e:
            logger.error(f"Database error during faceted search for cast '{cast}': {e}", exc_info=True)
            raise

        result = reconcile_count(facet_doc, count_doc)
        logger.info(
            f"Faceted search for '{cast}' page {page}: {len(result.movies)} movies, {result.count} total"
        )
        return result
