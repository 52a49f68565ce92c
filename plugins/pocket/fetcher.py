"""pocket.fetcher – retrieves the saved-item list from the Pocket v3 API.

Every failure here is fatal for the run: transport errors, a non-200
status, an undecodable body or a body that does not look like a retrieve
envelope all surface as :class:`~core.errors.SourceError`.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Dict, Optional

import aiohttp
from pydantic import ValidationError
from yarl import URL

from core.config import Settings
from core.errors import SourceError
from core.infra.http import HttpClient
from core.interfaces import Fetcher
from core.models import RawItem, RetrieveResult

logger = logging.getLogger(__name__)

__all__ = ["PocketFetcher"]

_SECRET_PARAMS = ("consumer_key", "access_token")


def redact(url: str, params: Dict[str, str]) -> str:
    """Render the request URL for logs with credentials masked."""
    shown = {k: ("***" if k in _SECRET_PARAMS else v) for k, v in params.items()}
    return str(URL(url).with_query(shown))


class PocketFetcher(Fetcher):
    """Transform stage 1 / 3 – yields one :class:`~core.models.RawItem` per saved entry."""

    name = "PocketFetcher"

    def __init__(
        self,
        *,
        settings: Settings,
        state: Optional[str] = None,
        sort: Optional[str] = None,
        detail_type: Optional[str] = None,
        http: Optional[HttpClient] = None,
    ) -> None:
        self._settings = settings
        self._state = state or settings.state
        self._sort = sort or settings.sort
        self._detail_type = detail_type or settings.detail_type
        self._http = http or HttpClient(
            timeout=settings.http_timeout,
            max_retries=settings.source_max_retries,
        )

    # ------------------------------------------------------------------- #
    async def __aenter__(self) -> "PocketFetcher":
        return self

    async def __aexit__(self, *_) -> None:
        await self._http.close()

    # ------------------------------------------------------------------- #
    def _params(self) -> Dict[str, str]:
        return {
            "consumer_key": self._settings.consumer_key,
            "access_token": self._settings.access_token,
            "detailType": self._detail_type,
            "state": self._state,
            "sort": self._sort,
        }

    async def retrieve(self) -> RetrieveResult:
        """Perform the retrieve call and validate the envelope."""
        self._settings.require_credentials()

        url = self._settings.retrieve_url
        params = self._params()
        logger.info("Retrieving %s", redact(url, params))

        try:
            payload: Any = await self._http.get_json(url, params=params)
        except aiohttp.ClientResponseError as e:
            raise SourceError(
                f"Did not get 200 for request {url} (got {e.status})", url=url, status=e.status
            ) from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise SourceError(f"Error getting request {url}: {str(e) or type(e).__name__}", url=url) from e
        except ValueError as e:
            raise SourceError(f"Error decoding body of {url}: {e}", url=url) from e

        if not isinstance(payload, dict):
            raise SourceError(
                f"Malformed payload from {url}: expected an object, got {type(payload).__name__}",
                url=url,
            )
        if payload.get("error"):
            raise SourceError(f"Source reported an error: {payload['error']}", url=url)
        if "list" not in payload:
            raise SourceError(f"Malformed payload from {url}: no item list", url=url)

        try:
            result = RetrieveResult.model_validate(payload)
        except ValidationError as e:
            raise SourceError(f"Malformed payload from {url}: {e}", url=url) from e

        logger.info(
            "Retrieved %d item(s) (status=%s, complete=%s, since=%s)",
            len(result.items),
            result.status,
            result.complete,
            result.since,
        )
        return result

    async def fetch(self) -> AsyncIterator[RawItem]:
        result = await self.retrieve()
        for item in result.items.values():
            yield item
