# Faceted cast search: pipeline composition and count reconciliation
# mflix/services/facets.py

"""
Builds the two pipelines behind the faceted cast search and merges their results.

The facet pipeline runs ``match -> sort -> skip -> limit -> facet``. Because
pagination happens before ``$facet``, the ``runtime`` and ``rating``
histograms only describe the movies in the current page window, while
``count`` (from the separate ``match -> sort -> count`` pipeline) describes
every matching movie. That asymmetry is kept on purpose and is covered by
the tests.

The two pipelines are separate round trips with no shared snapshot, so
under concurrent writes ``count`` and the histogram totals can disagree.
"""

import logging
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict
from pymongo import DESCENDING

from mflix.core.config import settings
from mflix.data_access.stages import (
    FacetStage,
    InSet,
    LimitStage,
    MatchStage,
    Pipeline,
    SkipStage,
    SortStage,
    build_add_fields,
    build_bucket,
    build_count,
    build_facet,
    build_limit,
    build_match,
    build_skip,
    build_sort,
)
from mflix.models.movie import MoviesByCastFacets

logger = logging.getLogger(__name__)

COUNT_FIELD = "count"


class FacetConfig(BaseModel):
    """Bucket boundary tables and group-by fields for the faceted search. Immutable."""
    model_config = ConfigDict(frozen=True)

    runtime_boundaries: Tuple[int, ...] = (0, 60, 90, 120, 180)
    rating_boundaries: Tuple[int, ...] = (0, 50, 70, 90, 100)
    runtime_field: str = "runtime"
    rating_field: str = "metacritic"
    """Groups by the top-level ``metacritic`` score (0-100), not a nested review score such as ``tomatoes.critic.meter``."""
    default_bucket: str = "other"

    @classmethod
    def from_settings(cls) -> "FacetConfig":
        return cls(
            runtime_boundaries=settings.RUNTIME_BOUNDARIES,
            rating_boundaries=settings.RATING_BOUNDARIES,
            rating_field=settings.RATING_FACET_FIELD,
        )


class CastFacetQuery(BaseModel):
    """
    The predicate and page window shared by the facet and count pipelines.

    Both pipelines are built from the same ``match`` and ``sort`` stage objects,
    so they always describe the same filtered, ordered set.
    """
    model_config = ConfigDict(frozen=True)

    match: MatchStage
    sort: SortStage
    skip: SkipStage
    limit: LimitStage

    @classmethod
    def for_cast(
        cls,
        cast: str,
        page: int = 0,
        movies_per_page: int = 20,
        sort_key: str = "tomatoes.viewer.numReviews",
    ) -> "CastFacetQuery":
        return cls(
            match=build_match("cast", InSet(values=(cast,))),
            sort=build_sort(sort_key, DESCENDING),
            skip=build_skip(movies_per_page * page),
            limit=build_limit(movies_per_page),
        )


def build_facet_stage(config: FacetConfig) -> FacetStage:
    """The ``$facet`` stage: runtime histogram, rating histogram and the movies window."""
    return build_facet({
        "runtime": [
            build_bucket(config.runtime_field, config.runtime_boundaries, config.default_bucket),
        ],
        "rating": [
            build_bucket(config.rating_field, config.rating_boundaries, config.default_bucket),
        ],
        "movies": [
            build_add_fields({"title": "$title"}),
        ],
    })


def build_faceted_pipeline(query: CastFacetQuery, config: FacetConfig) -> Pipeline:
    # Order matters: paginate before $facet so "movies" is exactly the page
    return Pipeline(stages=(
        query.match,
        query.sort,
        query.skip,
        query.limit,
        build_facet_stage(config),
    ))


def build_count_pipeline(query: CastFacetQuery) -> Pipeline:
    # The sort does not change the count; it is kept so this pipeline sees the same set as the facet one
    return Pipeline(stages=(
        query.match,
        query.sort,
        build_count(COUNT_FIELD),
    ))


def reconcile_count(
    facet_doc: Optional[Dict[str, Any]], count_doc: Optional[Dict[str, Any]]
) -> MoviesByCastFacets:
    """
    Merges the count pipeline's scalar into the facet pipeline's document.

    Args:
        facet_doc: The single document produced by the facet pipeline, or None.
        count_doc: The ``{"count": n}`` document, or None when nothing matched.

    Returns:
        A MoviesByCastFacets with ``count`` set to the store-wide match count.
    """
    merged: Dict[str, Any] = dict(facet_doc or {})
    merged[COUNT_FIELD] = int(count_doc.get(COUNT_FIELD, 0)) if count_doc else 0
    result = MoviesByCastFacets.model_validate(merged)
    logger.debug(
        f"Reconciled facet result: {len(result.movies)} movies in window, count={result.count}"
    )
    return result
