# mflix/api/endpoints/movies.py

import logging
from typing import List, Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Query, status

from mflix.api.deps import get_movie_service
from mflix.core.errors import MovieNotFoundError
from mflix.models.movie import (
    Movie,
    MovieByCountry,
    MovieByText,
    MovieListResponse,
    MoviesByCastFacets,
)
from mflix.services.movie_service import MovieService
from mflix.utils.helpers import calculate_total_pages

logger = logging.getLogger(__name__)
router = APIRouter()


def _bad_request(e: ValueError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


def _server_error(action: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"An error occurred while {action}."
    )


@router.get(
    "",  # GET /api/v1/movies
    response_model=MovieListResponse,
    summary="List Movies",
    description="Retrieve one page of the catalog, sorted by the given field.",
)
async def list_movies(
    page: int = Query(0, ge=0, description="Page number (0-based)."),
    movies_per_page: int = Query(20, ge=1, le=100, description="Number of movies per page."),
    sort: Optional[str] = Query(None, description="Field to sort on."),
    sort_direction: int = Query(-1, description="1 for ascending, -1 for descending."),
    movie_service: MovieService = Depends(get_movie_service),
):
    try:
        movies = await movie_service.get_movies(
            movies_per_page=movies_per_page, page=page, sort=sort, sort_direction=sort_direction
        )
        total = await movie_service.get_movies_count()
        return MovieListResponse(
            movies=movies,
            page=page,
            entries_per_page=movies_per_page,
            total_results=total,
            total_pages=calculate_total_pages(total, movies_per_page),
        )
    except ValueError as e:
        raise _bad_request(e)
    except Exception as e:
        logger.error(f"Error listing movies: {e}", exc_info=True)
        raise _server_error("retrieving movies")


@router.get(
    "/search",  # GET /api/v1/movies/search
    response_model=Union[List[MovieByText], List[Movie]],
    summary="Search Movies",
    description="Full-text search, or filter by cast members or genres. Exactly one filter is used; text wins.",
)
async def search_movies(
    text: Optional[str] = Query(None, description="Keywords for full-text search."),
    cast: Optional[List[str]] = Query(None, description="Cast member(s) to filter by."),
    genre: Optional[List[str]] = Query(None, description="Genre(s) to filter by."),
    page: int = Query(0, ge=0, description="Page number (0-based)."),
    limit: int = Query(20, ge=1, le=100, description="Number of movies per page."),
    movie_service: MovieService = Depends(get_movie_service),
):
    try:
        if text:
            return await movie_service.get_movies_by_text(text.split(), page=page, limit=limit)
        if cast:
            return await movie_service.get_movies_by_cast(cast, page=page, limit=limit)
        if genre:
            return await movie_service.get_movies_by_genre(genre, page=page, limit=limit)
    except ValueError as e:
        raise _bad_request(e)
    except Exception as e:
        logger.error(f"Error searching movies: {e}", exc_info=True)
        raise _server_error("searching movies")

    raise HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail="One of 'text', 'cast' or 'genre' is required."
    )


@router.get(
    "/countries",  # GET /api/v1/movies/countries
    response_model=List[MovieByCountry],
    summary="Movies by Country",
    description="Identifier and title of every movie made in any of the given countries.",
)
async def movies_by_country(
    countries: List[str] = Query(..., description="Countries to match."),
    movie_service: MovieService = Depends(get_movie_service),
):
    try:
        return await movie_service.get_movies_by_country(*countries)
    except ValueError as e:
        raise _bad_request(e)
    except Exception as e:
        logger.error(f"Error fetching movies for countries {countries}: {e}", exc_info=True)
        raise _server_error("retrieving movies by country")


@router.get(
    "/facet-search",  # GET /api/v1/movies/facet-search
    response_model=MoviesByCastFacets,
    summary="Faceted Search by Cast",
    description=(
        "Runtime and rating histograms plus one page of movies for a cast member. "
        "Histograms cover the returned page only; 'count' covers every matching movie."
    ),
)
async def facet_search(
    cast: str = Query(..., min_length=1, description="Cast member to match."),
    page: int = Query(0, ge=0, description="Page number (0-based)."),
    movie_service: MovieService = Depends(get_movie_service),
):
    try:
        return await movie_service.get_movies_cast_faceted(cast, page=page)
    except ValueError as e:
        raise _bad_request(e)
    except Exception as e:
        logger.error(f"Error running faceted search for '{cast}': {e}", exc_info=True)
        raise _server_error("running the faceted search")


@router.get(
    "/id/{movie_id}",  # GET /api/v1/movies/id/{movie_id}
    response_model=Movie,
    summary="Get Movie Details",
    description="Retrieve a movie and its comments by ID.",
    responses={
        404: {"description": "Movie not found"},
    }
)
async def get_movie(
    movie_id: str,
    movie_service: MovieService = Depends(get_movie_service),
):
    try:
        movie = await movie_service.get_movie(movie_id)
        if movie is None:
            raise MovieNotFoundError(f"Movie with ID '{movie_id}' not found.")
        return movie
    except MovieNotFoundError:
        logger.warning(f"Movie not found attempt: ID {movie_id}")
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Movie with ID '{movie_id}' not found."
        )
    except Exception as e:
        logger.error(f"Error getting movie {movie_id}: {e}", exc_info=True)
        raise _server_error("retrieving the movie details")
