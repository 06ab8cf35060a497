from datetime import datetime, timezone

import pytest
from bson import ObjectId

from fakes import FakeDatabase
from mflix.services.facets import FacetConfig
from mflix.services.movie_service import MovieService

RUNTIMES = [45, 75, 95, 130, 200, None]
METACRITIC = [30, 55, 75, 95, None, 100]

HANKS_MOVIES = 25
OTHER_MOVIES = 10


def _movie(i, title, cast, genres, countries, plot=""):
    doc = {
        "_id": ObjectId(),
        "title": title,
        "year": 1980 + i,
        "plot": plot,
        "cast": cast,
        "genres": genres,
        "countries": countries,
        "tomatoes": {"viewer": {"rating": 3.5, "numReviews": 10_000 - i * 10, "meter": 70}},
        "imdb": {"rating": 7.1, "votes": 1000 + i},
    }
    runtime = RUNTIMES[i % len(RUNTIMES)]
    if runtime is not None:
        doc["runtime"] = runtime
    metacritic = METACRITIC[i % len(METACRITIC)]
    if metacritic is not None:
        doc["metacritic"] = metacritic
    return doc


@pytest.fixture
def movie_docs():
    docs = []
    for i in range(HANKS_MOVIES):
        docs.append(_movie(
            i, f"Hanks Picture {i:02d}", ["Tom Hanks", f"Co Star {i}"], ["Drama"], ["USA"],
            plot="A man travels across the ocean.",
        ))
    for j in range(OTHER_MOVIES):
        i = HANKS_MOVIES + j
        docs.append(_movie(
            i, f"Other Feature {j:02d}", [f"Actor {j}"],
            ["Comedy"] if j % 2 else ["Horror", "Comedy"],
            ["Philippines"] if j < 3 else ["France", "Germany"],
            plot="A haunted house on the ocean shore. Ocean waves." if j == 0 else "Nothing much happens.",
        ))
    return docs


@pytest.fixture
def fake_db(movie_docs):
    db = FakeDatabase()
    db["movies"].docs = movie_docs
    first = movie_docs[0]["_id"]
    db["comments"].docs = [
        {"_id": ObjectId(), "name": "Ned Stark", "email": "ned@example.com", "movie_id": first,
         "text": "Great film.", "date": datetime(2001, 5, 4, tzinfo=timezone.utc)},
        {"_id": ObjectId(), "name": "Arya Stark", "email": "arya@example.com", "movie_id": first,
         "text": "Not bad.", "date": datetime(2003, 1, 2, tzinfo=timezone.utc)},
        {"_id": ObjectId(), "name": "Bran Stark", "email": "bran@example.com", "movie_id": ObjectId(),
         "text": "Wrong movie.", "date": datetime(2004, 1, 2, tzinfo=timezone.utc)},
    ]
    return db


@pytest.fixture
def movie_service(fake_db):
    return MovieService(db=fake_db, facet_config=FacetConfig())
