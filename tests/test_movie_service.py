import asyncio

import pytest
from bson import ObjectId
from pymongo.errors import OperationFailure, ServerSelectionTimeoutError

from conftest import HANKS_MOVIES, OTHER_MOVIES
from mflix.core.errors import CancellationError, ConfigurationError, StoreError
from mflix.data_access.mongo_client import MovieRepository
from mflix.models.movie import MovieByText


def _by_reviews(docs):
    return sorted(docs, key=lambda d: d["tomatoes"]["viewer"]["numReviews"], reverse=True)


def test_service_holds_only_the_repository_and_settings(movie_service):
    # Stateless per request: nothing mutable beyond the collection handle
    assert set(vars(movie_service)) == {"movies", "facet_config", "movies_per_page", "sort_key"}
    assert movie_service.movies.collection.name == "movies"


# --- get_movies ---

async def test_get_movies_default_page(movie_service, movie_docs):
    movies = await movie_service.get_movies()

    expected = [str(d["_id"]) for d in _by_reviews(movie_docs)[:20]]
    assert [m.id for m in movies] == expected


async def test_get_movies_second_page_is_next_window(movie_service, movie_docs):
    movies = await movie_service.get_movies(movies_per_page=20, page=1)

    expected = [str(d["_id"]) for d in _by_reviews(movie_docs)[20:40]]
    assert [m.id for m in movies] == expected
    assert len(movies) == HANKS_MOVIES + OTHER_MOVIES - 20


async def test_get_movies_past_the_end_is_empty(movie_service):
    assert await movie_service.get_movies(movies_per_page=20, page=5) == []


async def test_get_movies_custom_sort(movie_service):
    movies = await movie_service.get_movies(movies_per_page=3, sort="title", sort_direction=1)
    assert [m.title for m in movies] == ["Hanks Picture 00", "Hanks Picture 01", "Hanks Picture 02"]


async def test_get_movies_rejects_bad_arguments(movie_service, fake_db):
    with pytest.raises(ConfigurationError):
        await movie_service.get_movies(sort_direction=0)
    with pytest.raises(ValueError):
        await movie_service.get_movies(page=-1)
    assert fake_db["movies"].find_calls == []


async def test_get_movies_count(movie_service):
    assert await movie_service.get_movies_count() == HANKS_MOVIES + OTHER_MOVIES


# --- get_movie ---

async def test_get_movie_attaches_comments(movie_service, movie_docs):
    movie_id = str(movie_docs[0]["_id"])

    movie = await movie_service.get_movie(movie_id)

    assert movie.id == movie_id
    assert movie.title == "Hanks Picture 00"
    assert sorted(c.name for c in movie.comments) == ["Arya Stark", "Ned Stark"]
    assert all(c.movie_id == movie_id for c in movie.comments)


async def test_get_movie_pipeline_is_match_then_lookup(movie_service, fake_db, movie_docs):
    await movie_service.get_movie(str(movie_docs[1]["_id"]))

    (pipeline,) = fake_db["movies"].aggregate_calls
    assert pipeline == [
        {"$match": {"_id": movie_docs[1]["_id"]}},
        {"$lookup": {"from": "comments", "localField": "_id", "foreignField": "movie_id", "as": "comments"}},
    ]


async def test_get_movie_without_comments(movie_service, movie_docs):
    movie = await movie_service.get_movie(str(movie_docs[3]["_id"]))
    assert movie.comments == []


async def test_get_movie_invalid_id_returns_none(movie_service, fake_db):
    assert await movie_service.get_movie("not-a-valid-id") is None
    assert fake_db["movies"].aggregate_calls == []


async def test_get_movie_unknown_id_returns_none(movie_service):
    assert await movie_service.get_movie(str(ObjectId())) is None


async def test_repository_checks_the_id_before_querying(fake_db, movie_docs):
    repository = MovieRepository(fake_db)

    assert await repository.get_by_id_with_comments("5a9427648b0beebeb69579") is None
    assert fake_db["movies"].aggregate_calls == []

    doc = await repository.get_by_id_with_comments(str(movie_docs[0]["_id"]))
    assert doc["_id"] == movie_docs[0]["_id"]
    assert len(doc["comments"]) == 2


async def test_get_movie_store_errors_propagate(movie_service, fake_db, movie_docs):
    fake_db["movies"].error = ServerSelectionTimeoutError("no servers")

    with pytest.raises(ServerSelectionTimeoutError):
        await movie_service.get_movie(str(movie_docs[0]["_id"]))


# --- text search ---

async def test_text_search_orders_by_score(movie_service):
    results = await movie_service.get_movies_by_text(["ocean", "haunted"])

    assert all(isinstance(m, MovieByText) for m in results)
    assert results[0].title == "Other Feature 00"
    scores = [m.score for m in results]
    assert scores == sorted(scores, reverse=True)
    assert len(results) == 20


async def test_text_search_query_shape(movie_service, fake_db):
    await movie_service.get_movies_by_text(["  ocean ", "", "haunted"], page=1, limit=5)

    (call,) = fake_db["movies"].find_calls
    assert call["query"] == {"$text": {"$search": "ocean haunted"}}
    assert call["projection"] == {"score": {"$meta": "textScore"}}


async def test_text_search_requires_keywords(movie_service):
    with pytest.raises(ConfigurationError):
        await movie_service.get_movies_by_text([])
    with pytest.raises(ConfigurationError):
        await movie_service.get_movies_by_text(["  "])


async def test_cancelled_text_search_reports_cancellation(movie_service, fake_db):
    collection = fake_db["movies"]
    collection.gate = asyncio.Event()
    collection.error = OperationFailure("should never be reached")

    task = asyncio.create_task(movie_service.get_movies_by_text(["ocean"]))
    await collection.started.wait()
    task.cancel()

    with pytest.raises(CancellationError):
        await task
    assert task.cancelled()


# --- set-membership filters ---

async def test_filter_by_cast_paginates_and_sorts(movie_service, movie_docs):
    first = await movie_service.get_movies_by_cast(["Tom Hanks"], limit=10)
    third = await movie_service.get_movies_by_cast(["Tom Hanks"], page=2, limit=10)

    hanks = _by_reviews([d for d in movie_docs if "Tom Hanks" in d["cast"]])
    assert [m.id for m in first] == [str(d["_id"]) for d in hanks[:10]]
    assert [m.id for m in third] == [str(d["_id"]) for d in hanks[20:]]


async def test_filter_by_genre_matches_any_value(movie_service):
    movies = await movie_service.get_movies_by_genre(["Horror", "Drama"], limit=100)
    assert len(movies) == HANKS_MOVIES + OTHER_MOVIES // 2


async def test_filter_by_field_with_custom_sort_key(movie_service):
    movies = await movie_service.get_movies_by_field("genres", ["Comedy"], sort_key="title", limit=3)
    assert [m.title for m in movies] == ["Other Feature 09", "Other Feature 08", "Other Feature 07"]


async def test_get_movies_by_country_projects_id_and_title(movie_service, fake_db):
    movies = await movie_service.get_movies_by_country("Philippines", "Korea")

    assert [m.title for m in movies] == ["Other Feature 02", "Other Feature 01", "Other Feature 00"]
    (call,) = fake_db["movies"].find_calls
    assert call["query"] == {"countries": {"$in": ["Philippines", "Korea"]}}
    assert call["projection"] == {"title": 1}


@pytest.mark.parametrize("countries", [(), (" ",), ("", "  ")])
async def test_get_movies_by_country_needs_a_country(movie_service, fake_db, countries):
    with pytest.raises(ConfigurationError):
        await movie_service.get_movies_by_country(*countries)
    assert fake_db["movies"].find_calls == []


@pytest.mark.parametrize("values", [[], [""], [" ", None]])
async def test_filter_by_field_needs_a_value(movie_service, fake_db, values):
    with pytest.raises(ConfigurationError):
        await movie_service.get_movies_by_cast(values, limit=100)
    with pytest.raises(ConfigurationError):
        await movie_service.get_movies_by_field("genres", values)
    assert fake_db["movies"].find_calls == []


async def test_filter_by_field_drops_blank_values(movie_service, fake_db):
    movies = await movie_service.get_movies_by_cast(["", " Tom Hanks "], limit=100)

    assert len(movies) == HANKS_MOVIES
    (call,) = fake_db["movies"].find_calls
    assert call["query"] == {"cast": {"$in": ["Tom Hanks"]}}


# --- page size ---

async def test_zero_page_size_is_rejected(movie_service, fake_db):
    with pytest.raises(ConfigurationError):
        await movie_service.get_movies(movies_per_page=0)
    with pytest.raises(ConfigurationError):
        await movie_service.get_movies_by_text(["ocean"], limit=0)
    with pytest.raises(ConfigurationError):
        await movie_service.get_movies_by_cast(["Tom Hanks"], limit=-3)
    assert fake_db["movies"].find_calls == []


async def test_omitted_page_size_uses_the_default(movie_service):
    assert len(await movie_service.get_movies_by_cast(["Tom Hanks"])) == 20


# --- faceted search ---

async def test_faceted_search_histograms_cover_the_page_window(movie_service):
    result = await movie_service.get_movies_cast_faceted("Tom Hanks", page=0)

    assert len(result.movies) == 20
    assert sum(b.count for b in result.runtime) == len(result.movies)
    assert sum(b.count for b in result.rating) == len(result.movies)
    assert result.count == HANKS_MOVIES


async def test_faceted_search_count_is_independent_of_page(movie_service):
    last_page = await movie_service.get_movies_cast_faceted("Tom Hanks", page=1)

    assert len(last_page.movies) == HANKS_MOVIES - 20
    assert sum(b.count for b in last_page.runtime) == HANKS_MOVIES - 20
    assert last_page.count == HANKS_MOVIES


async def test_faceted_search_bucket_order(movie_service):
    result = await movie_service.get_movies_cast_faceted("Tom Hanks")

    assert [b.id for b in result.runtime] == [0, 60, 90, 120, "other"]
    assert [b.id for b in result.rating] == [0, 50, 70, 90, "other"]


async def test_faceted_search_movies_follow_sort(movie_service, movie_docs):
    result = await movie_service.get_movies_cast_faceted("Tom Hanks")

    hanks = _by_reviews([d for d in movie_docs if "Tom Hanks" in d["cast"]])
    assert [m.id for m in result.movies] == [str(d["_id"]) for d in hanks[:20]]


async def test_faceted_search_no_matches(movie_service):
    result = await movie_service.get_movies_cast_faceted("Nobody At All")

    assert result.runtime == []
    assert result.rating == []
    assert result.movies == []
    assert result.count == 0


async def test_faceted_search_runs_two_pipelines(movie_service, fake_db):
    await movie_service.get_movies_cast_faceted("Tom Hanks", page=1)

    facet_pipeline, count_pipeline = fake_db["movies"].aggregate_calls
    assert [next(iter(s)) for s in facet_pipeline] == ["$match", "$sort", "$skip", "$limit", "$facet"]
    assert [next(iter(s)) for s in count_pipeline] == ["$match", "$sort", "$count"]
    assert facet_pipeline[:2] == count_pipeline[:2]


async def test_faceted_search_store_error_propagates(movie_service, fake_db):
    fake_db["movies"].error = OperationFailure("$facet failed", code=2)

    with pytest.raises(StoreError) as exc_info:
        await movie_service.get_movies_cast_faceted("Tom Hanks")
    assert isinstance(exc_info.value, OperationFailure)
    assert "$facet failed" in str(exc_info.value)


async def test_faceted_search_count_reflects_store_between_round_trips(movie_service, fake_db, movie_docs):
    # The two pipelines are separate reads: a write landing between them shows up in count only
    collection = fake_db["movies"]
    original_aggregate = collection.aggregate

    def aggregate_after_write(pipeline):
        if collection.aggregate_calls:
            collection.docs = collection.docs + [dict(movie_docs[0], _id=ObjectId())]
        return original_aggregate(pipeline)

    collection.aggregate = aggregate_after_write
    result = await movie_service.get_movies_cast_faceted("Tom Hanks", page=1)

    assert sum(b.count for b in result.runtime) == HANKS_MOVIES - 20
    assert result.count == HANKS_MOVIES + 1
