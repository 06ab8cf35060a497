# mflix/models/movie.py

from datetime import datetime
from typing import Annotated, List, Optional, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field

# MongoDB ObjectId values are exposed as their 24-hex string form
ObjectIdStr = Annotated[str, BeforeValidator(str)]


class DocumentModel(BaseModel):
    """Base for models read straight from MongoDB documents (``_id`` populated by alias)."""
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


# --- Nested rating structures ---
class ImdbRating(BaseModel):
    rating: Optional[Union[float, str]] = None
    votes: Optional[Union[int, str]] = None
    id: Optional[int] = None


class TomatoesScore(BaseModel):
    """Viewer or critic score block inside ``tomatoes``."""
    model_config = ConfigDict(populate_by_name=True)

    rating: Optional[float] = None
    num_reviews: Optional[int] = Field(None, alias="numReviews")
    meter: Optional[int] = None


class Tomatoes(BaseModel):
    viewer: Optional[TomatoesScore] = None
    critic: Optional[TomatoesScore] = None


# --- Comments ---
class Comment(DocumentModel):
    """A viewer comment; references its movie through ``movie_id``."""
    id: ObjectIdStr = Field(..., alias="_id")
    name: Optional[str] = None
    email: Optional[str] = None
    movie_id: ObjectIdStr = Field(..., description="ObjectId of the commented movie.")
    text: Optional[str] = None
    date: Optional[datetime] = None


# --- Movies ---
class Movie(DocumentModel):
    """A movie document from the ``movies`` collection."""
    id: ObjectIdStr = Field(..., alias="_id", description="MongoDB ObjectId as string.")
    title: Optional[str] = None
    year: Optional[Union[int, str]] = None
    plot: Optional[str] = None
    fullplot: Optional[str] = None
    poster: Optional[str] = None
    rated: Optional[str] = None
    countries: List[str] = Field(default_factory=list)
    cast: List[str] = Field(default_factory=list)
    genres: List[str] = Field(default_factory=list)
    directors: List[str] = Field(default_factory=list)
    runtime: Optional[int] = Field(None, description="Runtime in minutes.")
    metacritic: Optional[int] = None
    imdb: Optional[ImdbRating] = None
    tomatoes: Optional[Tomatoes] = None
    # Only populated by the single-movie lookup
    comments: List[Comment] = Field(default_factory=list)


class MovieByCountry(DocumentModel):
    """Projection returned by the country filter: identifier and title only."""
    id: ObjectIdStr = Field(..., alias="_id")
    title: Optional[str] = None


class MovieByText(Movie):
    """A movie matched by full-text search, with its relevance score."""
    score: float = 0.0


# --- Facets ---
class Bucket(BaseModel):
    """One histogram bin: the lower boundary (or the default key) and its document count."""
    model_config = ConfigDict(populate_by_name=True)

    id: Union[int, str] = Field(..., alias="_id")
    count: int = 0


class MoviesByCastFacets(BaseModel):
    """Merged result of the faceted cast search."""
    runtime: List[Bucket] = Field(default_factory=list)
    rating: List[Bucket] = Field(default_factory=list)
    movies: List[Movie] = Field(default_factory=list)
    # Filled from the separate count pipeline, independent of the page window
    count: int = 0


# --- Model for Paginated API Responses ---
class MovieListResponse(BaseModel):
    """Response structure for paginated movie lists."""
    movies: List[Movie]
    page: int
    entries_per_page: int
    total_results: int
    total_pages: int
