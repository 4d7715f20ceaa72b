"""
Counter storage for search-term popularity.

Two backends share one contract: ``AppwriteCounterStore`` talks to an Appwrite
collection over its REST API, ``InMemoryCounterStore`` keeps records in a dict
for local runs and tests. Neither enforces unique search terms; callers look
a term up before creating it.

Appwrite queries are sent as JSON strings, the format used by Appwrite 1.5
and later.
"""

import json
import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import List, Optional

import httpx
import pandas as pd
from pydantic import ValidationError

from .config import Settings
from .errors import NotFound, StoreUnavailable
from .models import CounterRecord

logger = logging.getLogger(__name__)

PAGE_SIZE = 100


def rank_counters(records: List[CounterRecord], n: int) -> List[CounterRecord]:
    """
    Top ``n`` records by count.

    Equal counts are ordered most-recently-updated first, then by the order
    the store returned them.
    """
    if not records or n <= 0:
        return []
    frame = pd.DataFrame(
        {
            "position": range(len(records)),
            "count": [record.count for record in records],
            "updated": [record.updated_at.timestamp() if record.updated_at else 0.0 for record in records],
        }
    )
    ranked = frame.sort_values(
        by=["count", "updated", "position"],
        ascending=[False, False, True],
        kind="mergesort",
    ).head(n)
    return [records[i] for i in ranked["position"]]


class CounterStore(ABC):
    @abstractmethod
    async def find_by_term(self, term: str) -> Optional[CounterRecord]:
        """Return the record keyed by ``term`` (exact match) or None."""

    @abstractmethod
    async def create(self, record: CounterRecord) -> CounterRecord:
        """Insert ``record`` under a store-generated id."""

    @abstractmethod
    async def increment(self, record_id: str, new_count: int, poster_url: Optional[str]) -> CounterRecord:
        """Overwrite count and poster of an existing record."""

    @abstractmethod
    async def list_all(self) -> List[CounterRecord]:
        """Every record, in store order."""

    async def top_n(self, n: int) -> List[CounterRecord]:
        return rank_counters(await self.list_all(), n)

    async def aclose(self) -> None:
        return None

    @staticmethod
    def _first(term: str, matches: List[CounterRecord]) -> Optional[CounterRecord]:
        if not matches:
            return None
        if len(matches) > 1:
            logger.warning("Found %d counters for '%s', using the first one", len(matches), term)
        return matches[0]


class InMemoryCounterStore(CounterStore):
    def __init__(self, records: Optional[List[CounterRecord]] = None):
        self._records = {}
        for record in records or []:
            record_id = record.id or uuid.uuid4().hex
            self._records[record_id] = record.model_copy(update={"id": record_id})

    async def find_by_term(self, term):
        matches = [record for record in self._records.values() if record.search_term == term]
        return self._first(term, [record.model_copy() for record in matches])

    async def create(self, record):
        record_id = uuid.uuid4().hex
        stored = record.model_copy(update={"id": record_id, "updated_at": datetime.now(timezone.utc)})
        self._records[record_id] = stored
        return stored.model_copy()

    async def increment(self, record_id, new_count, poster_url):
        if record_id not in self._records:
            raise NotFound(f"Counter {record_id} does not exist")
        stored = self._records[record_id].model_copy(
            update={"count": new_count, "poster_url": poster_url, "updated_at": datetime.now(timezone.utc)}
        )
        self._records[record_id] = stored
        return stored.model_copy()

    async def list_all(self):
        return [record.model_copy() for record in self._records.values()]


class AppwriteCounterStore(CounterStore):
    """Counters kept as documents in an Appwrite database collection."""

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self._owns_client = client is None
        if client is None:
            transport = httpx.AsyncHTTPTransport(retries=settings.http_retries)
            client = httpx.AsyncClient(transport=transport, timeout=settings.http_timeout)
        self.client = client
        self.documents_url = (
            f"{settings.appwrite_endpoint.rstrip('/')}/databases/{settings.appwrite_database_id}"
            f"/collections/{settings.appwrite_collection_id}/documents"
        )

    @property
    def headers(self):
        headers = {
            "Content-Type": "application/json",
            "X-Appwrite-Project": self.settings.appwrite_project_id,
        }
        if self.settings.appwrite_api_key:
            headers["X-Appwrite-Key"] = self.settings.appwrite_api_key
        return headers

    async def _request(self, method: str, url: str, **kwargs) -> dict:
        try:
            res = await self.client.request(method, url, headers=self.headers, **kwargs)
            if res.status_code == 404:
                raise NotFound(f"{method} {url} returned 404")
            res.raise_for_status()
            return res.json()
        except httpx.HTTPStatusError as exc:
            raise StoreUnavailable(f"Record store answered {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise StoreUnavailable(f"Record store request failed: {exc!r}") from exc
        except ValueError as exc:
            raise StoreUnavailable("Record store returned a body that is not JSON") from exc

    @staticmethod
    def _parse(document: dict) -> CounterRecord:
        try:
            return CounterRecord.model_validate(document)
        except ValidationError as exc:
            raise StoreUnavailable(f"Record store returned a malformed document: {exc}") from exc

    async def _list(self, queries: List[dict]) -> dict:
        params = {"queries[]": [json.dumps(query) for query in queries]}
        return await self._request("GET", self.documents_url, params=params)

    async def find_by_term(self, term):
        data = await self._list([{"method": "equal", "attribute": "searchTerm", "values": [term]}])
        matches = [self._parse(document) for document in data.get("documents", [])]
        return self._first(term, matches)

    async def create(self, record):
        payload = {"documentId": "unique()", "data": record.to_document()}
        document = await self._request("POST", self.documents_url, json=payload)
        created = self._parse(document)
        logger.info("Created counter %s for '%s'", created.id, created.search_term)
        return created

    async def increment(self, record_id, new_count, poster_url):
        payload = {"data": {"count": new_count, "poster_url": poster_url}}
        document = await self._request("PATCH", f"{self.documents_url}/{record_id}", json=payload)
        updated = self._parse(document)
        logger.info("Updated counter %s to %d", record_id, updated.count)
        return updated

    async def list_all(self):
        records: List[CounterRecord] = []
        offset = 0
        while True:
            data = await self._list(
                [
                    {"method": "limit", "values": [PAGE_SIZE]},
                    {"method": "offset", "values": [offset]},
                ]
            )
            page = [self._parse(document) for document in data.get("documents", [])]
            records.extend(page)
            offset += len(page)
            # "total" is capped server side, only a short page marks the end
            if len(page) < PAGE_SIZE:
                return records

    async def top_n(self, n):
        if n <= 0:
            return []
        # Ranked by the server in one request; needs an index on count
        data = await self._list(
            [
                {"method": "orderDesc", "attribute": "count"},
                {"method": "orderDesc", "attribute": "$updatedAt"},
                {"method": "limit", "values": [n]},
            ]
        )
        return rank_counters([self._parse(document) for document in data.get("documents", [])], n)

    async def aclose(self):
        if self._owns_client:
            await self.client.aclose()
