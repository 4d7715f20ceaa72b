"""
Pytest configuration and shared fakes for the movie search tests.
"""

import asyncio
import json
import uuid
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from movie_trends.config import Settings
from movie_trends.errors import CatalogUnavailable, NoMatch, StoreUnavailable
from movie_trends.models import MovieSummary
from movie_trends.store import InMemoryCounterStore

IMAGE_BASE = "https://image.tmdb.org/t/p/w500"


def movie(movie_id, title, poster_path="/poster.jpg", **extra):
    return {
        "id": movie_id,
        "title": title,
        "poster_path": poster_path,
        "original_language": "en",
        "release_date": "2010-07-15",
        "popularity": 80.5,
        "vote_average": 8.4,
        **extra,
    }


INCEPTION_RESULTS = [
    movie(27205, "Inception", "/inception.jpg"),
    movie(64956, "Inception: The Cobol Job", "/cobol.jpg"),
    movie(613092, "The Dark Side of Inception", None),
]
BATMAN_RESULTS = [
    movie(272, "Batman Begins", "/begins.jpg"),
    movie(268, "Batman", "/batman.jpg"),
]
POPULAR_RESULTS = [
    movie(1, "Popular One", "/one.jpg"),
    movie(2, "Popular Two", "/two.jpg"),
]


class FakeCatalog:
    """In-process stand-in for CatalogClient with scripted answers."""

    def __init__(self, results=None, popular=None, details=None, failing=(), delays=None):
        self.results = {"inception": INCEPTION_RESULTS, "batman": BATMAN_RESULTS} if results is None else results
        self.popular = POPULAR_RESULTS if popular is None else popular
        # Detail lookups default to the search results
        self.details = details or {}
        self.failing = set(failing)
        self.delays = delays or {}
        self.calls = []

    def _lookup(self, term):
        return self.results.get(term.strip().lower(), [])

    async def search(self, term):
        self.calls.append(("search", term))
        await asyncio.sleep(self.delays.get(term, 0))
        if term in self.failing:
            raise CatalogUnavailable("Network response was not ok: 503")
        return [MovieSummary.model_validate(item) for item in self._lookup(term)]

    async def discover(self):
        self.calls.append(("discover", None))
        if "" in self.failing:
            raise CatalogUnavailable("Network response was not ok: 503")
        return [MovieSummary.model_validate(item) for item in self.popular]

    async def fetch_detail(self, term):
        self.calls.append(("fetch_detail", term))
        found = self.details.get(term, self._lookup(term))
        if not found:
            raise NoMatch(f"No movie details found for '{term}'")
        return MovieSummary.model_validate(found[0])

    async def aclose(self):
        return None


class BrokenStore(InMemoryCounterStore):
    """Record store whose every call fails like an outage."""

    def __init__(self, records=None, broken=True):
        super().__init__(records)
        self.broken = broken

    def _check(self):
        if self.broken:
            raise StoreUnavailable("Record store request failed: ConnectError()")

    async def find_by_term(self, term):
        self._check()
        return await super().find_by_term(term)

    async def create(self, record):
        self._check()
        return await super().create(record)

    async def increment(self, record_id, new_count, poster_url):
        self._check()
        return await super().increment(record_id, new_count, poster_url)

    async def list_all(self):
        self._check()
        return await super().list_all()


class FakeAppwrite:
    """Minimal Appwrite documents API served through httpx.MockTransport."""

    def __init__(self, documents=None):
        self.documents = list(documents or [])
        self.requests = []
        self.status_override = None
        # Appwrite stops counting "total" at a cap
        self.total_cap = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status_override is not None:
            return httpx.Response(self.status_override, json={"message": "unavailable"})

        prefix = "/v1/databases/movies-db/collections/metrics/documents"
        path = request.url.path
        if request.method == "GET" and path == prefix:
            return self._list(request)
        if request.method == "POST" and path == prefix:
            body = json.loads(request.content)
            now = datetime.now(timezone.utc).isoformat()
            document = {"$id": uuid.uuid4().hex, "$createdAt": now, "$updatedAt": now, **body["data"]}
            self.documents.append(document)
            return httpx.Response(201, json=document)
        if request.method == "PATCH" and path.startswith(prefix + "/"):
            document_id = path.rsplit("/", 1)[-1]
            for document in self.documents:
                if document["$id"] == document_id:
                    document.update(json.loads(request.content)["data"])
                    document["$updatedAt"] = datetime.now(timezone.utc).isoformat()
                    return httpx.Response(200, json=document)
            return httpx.Response(404, json={"message": "Document not found"})
        return httpx.Response(404, json={"message": "Route not found"})

    def _list(self, request):
        queries = [json.loads(raw) for raw in request.url.params.get_list("queries[]")]
        matches = self.documents
        limit, offset = 25, 0
        order = []
        for query in queries:
            if query["method"] == "equal":
                matches = [doc for doc in matches if doc.get(query["attribute"]) in query["values"]]
            elif query["method"] == "limit":
                limit = query["values"][0]
            elif query["method"] == "offset":
                offset = query["values"][0]
            elif query["method"] == "orderDesc":
                order.append(query["attribute"])
        for attribute in reversed(order):
            matches = sorted(matches, key=lambda doc: doc[attribute], reverse=True)
        total = len(matches) if self.total_cap is None else min(len(matches), self.total_cap)
        return httpx.Response(200, json={"total": total, "documents": matches[offset:offset + limit]})


def appwrite_document(term, count, minutes_ago=0, **extra):
    stamp = (datetime(2024, 1, 1, tzinfo=timezone.utc) - timedelta(minutes=minutes_ago)).isoformat()
    return {
        "$id": uuid.uuid4().hex,
        "$updatedAt": stamp,
        "searchTerm": term,
        "count": count,
        "poster_url": f"{IMAGE_BASE}/{term}.jpg",
        "movie_id": 1,
        "title": term.title(),
        **extra,
    }


@pytest.fixture
def settings() -> Settings:
    return Settings(
        tmdb_access_token="test-token",
        appwrite_endpoint="https://appwrite.test/v1",
        appwrite_project_id="project",
        appwrite_api_key="secret",
        appwrite_database_id="movies-db",
        appwrite_collection_id="metrics",
        debounce_ms=50,
    )


@pytest.fixture
def catalog() -> FakeCatalog:
    return FakeCatalog()


@pytest.fixture
def store() -> InMemoryCounterStore:
    return InMemoryCounterStore()
