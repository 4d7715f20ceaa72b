import logging
from typing import List, Optional

import httpx
from pydantic import ValidationError

from .config import Settings
from .errors import CatalogUnavailable, NoMatch
from .models import MovieSummary

logger = logging.getLogger(__name__)


class CatalogClient:
    """Read-only TMDB client: text search, popular listing and detail lookup."""

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self._owns_client = client is None
        if client is None:
            # Retry connection glitches, the same way a mounted retry adapter would
            transport = httpx.AsyncHTTPTransport(retries=settings.http_retries)
            client = httpx.AsyncClient(transport=transport, timeout=settings.http_timeout)
        self.client = client

    def _auth(self):
        headers = {"accept": "application/json"}
        params = {}
        if self.settings.tmdb_access_token:
            headers["Authorization"] = f"Bearer {self.settings.tmdb_access_token}"
        elif self.settings.tmdb_api_key:
            params["api_key"] = self.settings.tmdb_api_key
        return headers, params

    async def _get_results(self, path: str, params: dict) -> List[MovieSummary]:
        headers, auth_params = self._auth()
        url = f"{self.settings.tmdb_base_url.rstrip('/')}{path}"
        logger.debug("Fetching from endpoint: %s %s", url, params)
        try:
            res = await self.client.get(url, params={**params, **auth_params}, headers=headers)
            res.raise_for_status()
            data = res.json()
        except httpx.HTTPStatusError as exc:
            raise CatalogUnavailable(
                f"Network response was not ok: {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise CatalogUnavailable(f"Catalog request failed: {exc!r}") from exc
        except ValueError as exc:
            raise CatalogUnavailable("Catalog returned a body that is not JSON") from exc

        if not isinstance(data, dict):
            raise CatalogUnavailable("Catalog returned an unexpected payload")
        try:
            return [MovieSummary.model_validate(item) for item in data.get("results") or []]
        except ValidationError as exc:
            raise CatalogUnavailable(f"Catalog returned malformed movies: {exc}") from exc

    async def search(self, term: str) -> List[MovieSummary]:
        # A blank query means "show me something": the popular listing
        if not term or not term.strip():
            return await self.discover()
        return await self._get_results("/search/movie", {"query": term})

    async def discover(self) -> List[MovieSummary]:
        return await self._get_results("/discover/movie", {"sort_by": "popularity.desc"})

    async def fetch_detail(self, term: str) -> MovieSummary:
        """Return the best match for ``term``; raises NoMatch when there is none."""
        if not term or not term.strip():
            raise NoMatch("No movie details found for an empty search term")
        results = await self._get_results("/search/movie", {"query": term})
        if not results:
            raise NoMatch(f"No movie details found for '{term}'")
        return results[0]

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()
