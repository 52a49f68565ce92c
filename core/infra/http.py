"""
http.py – Async HTTP client built on *aiohttp* with bounded retries,
          transparent 429 / 5xx back-off and streamed file downloads.
"""

from __future__ import annotations

import asyncio
import logging
import os
import random
import time
from email.utils import parsedate_to_datetime
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import aiohttp

from core.errors import ImageStatusError, ImageTransportError, ImageWriteError
from core.infra.storage import discard, open_temp_beside

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)
CHUNK_SIZE = 64 * 1024


class HttpClient:
    """
    Thin wrapper over *aiohttp.ClientSession* adding:

    * per-instance default headers (keeps user-agent in one place)
    * exponential back-off **with jitter** for 429 / 5xx / network errors
    * transparent parsing of *Retry-After* header
    * streamed, atomic downloads to disk
    * async context-manager support

    ``max_retries`` counts attempts, so ``max_retries=1`` never retries.
    """

    def __init__(
        self,
        *,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 30.0,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        default_headers: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._external_session = session
        self._timeout = timeout
        self._max_retries = max(1, max_retries)
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._own_session: Optional[aiohttp.ClientSession] = None
        self._default_headers: Dict[str, str] = {"User-Agent": DEFAULT_USER_AGENT}
        self._default_headers.update(default_headers or {})

    # ---------------------------------------------- #
    # Async context-manager
    async def __aenter__(self) -> "HttpClient":  # noqa: D401
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # noqa: D401
        await self.close()

    # ---------------------------------------------- #
    # Session management
    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._external_session:
            return self._external_session
        if self._own_session is None or self._own_session.closed:
            timeout = aiohttp.ClientTimeout(total=self._timeout)
            self._own_session = aiohttp.ClientSession(timeout=timeout)
        return self._own_session

    async def close(self) -> None:
        if self._own_session and not self._own_session.closed:
            await self._own_session.close()
            self._own_session = None

    # ---------------------------------------------- #
    # Internal helpers
    @staticmethod
    def _parse_retry_after(header_val: Optional[str]) -> Optional[float]:
        """Return seconds given a Retry-After header value."""
        if not header_val:
            return None
        header_val = header_val.strip()
        if header_val.isdigit():
            return float(header_val)
        try:
            retry_at = parsedate_to_datetime(header_val).timestamp()
        except (TypeError, ValueError):
            return None
        return max(0.0, retry_at - time.time())

    def _merge_headers(self, extra: Optional[Mapping[str, str]]) -> Dict[str, str]:
        merged: Dict[str, str] = {**self._default_headers}
        if extra:
            merged.update(extra)
        return merged

    def _backoff(self, attempt: int, retry_after: Optional[float]) -> float:
        if retry_after is not None:
            return min(retry_after, self._max_delay)
        exponential = min(self._base_delay * 2 ** (attempt - 1), self._max_delay)
        return exponential + random.uniform(0, self._base_delay)

    async def _request(
        self,
        method: str,
        url: str,
        *,
        retry_for_status: tuple[int, ...] = (429, 500, 502, 503, 504),
        **kwargs,
    ) -> aiohttp.ClientResponse:
        """Perform a request with retries; returns *aiohttp.ClientResponse*.

        Non-retryable statuses are returned to the caller untouched; a
        retryable status on the last attempt raises ``ClientResponseError``.
        """
        session = await self._ensure_session()
        kwargs["headers"] = self._merge_headers(kwargs.pop("headers", None))

        for attempt in range(1, self._max_retries + 1):
            try:
                resp = await session.request(method, url, **kwargs)
                if resp.status not in retry_for_status:
                    return resp

                retry_after = self._parse_retry_after(resp.headers.get("Retry-After"))
                resp.release()
                raise aiohttp.ClientResponseError(
                    resp.request_info,
                    resp.history,
                    status=resp.status,
                    message=f"retryable status {resp.status}",
                    headers=resp.headers,
                )
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                if attempt == self._max_retries:
                    logger.debug("HTTP %s %s failed after %d attempt(s): %s", method, url, attempt, e)
                    raise

                retry_after_hdr = (
                    e.headers.get("Retry-After")
                    if isinstance(e, aiohttp.ClientResponseError) and e.headers
                    else None
                )
                sleep_seconds = self._backoff(attempt, self._parse_retry_after(retry_after_hdr))
                logger.warning(
                    "HTTP %s %s failed (attempt %d/%d – will retry in %.1fs): %s",
                    method,
                    url,
                    attempt,
                    self._max_retries,
                    sleep_seconds,
                    str(e).splitlines()[0] if str(e) else type(e).__name__,
                )
                await asyncio.sleep(sleep_seconds)

        raise RuntimeError("Unreachable retry loop")

    # ---------------------------------------------- #
    # Public helpers
    async def get_json(self, url: str, **kwargs) -> Any:
        """GET *url* and decode a JSON body; anything but 200 raises ``ClientResponseError``."""
        async with await self._request("GET", url, **kwargs) as resp:
            if resp.status != 200:
                raise aiohttp.ClientResponseError(
                    resp.request_info,
                    resp.history,
                    status=resp.status,
                    message=resp.reason or "unexpected status",
                    headers=resp.headers,
                )
            return await resp.json(content_type=None)

    async def download(self, url: str, target: Path, **kwargs) -> int:
        """Stream *url* into *target*, returning the number of bytes written.

        The body lands in a sibling temporary file first and is renamed into
        place, so *target* only ever holds a complete download.
        """
        try:
            resp = await self._request("GET", url, **kwargs)
        except aiohttp.ClientResponseError as e:
            raise ImageStatusError(
                f"Did not get 200 status for {url} (got {e.status})", target=url, status=e.status
            ) from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ImageTransportError(f"Request failed for {url}: {e}", target=url) from e

        async with resp:
            if resp.status != 200:
                raise ImageStatusError(
                    f"Did not get 200 status for {url} (got {resp.status})",
                    target=url,
                    status=resp.status,
                )
            target = Path(target)
            try:
                fh, tmp_name = open_temp_beside(target)
            except OSError as e:
                raise ImageWriteError(f"Could not create file {target}: {e}", target=str(target)) from e

            written = 0
            try:
                with fh:
                    async for chunk in resp.content.iter_chunked(CHUNK_SIZE):
                        fh.write(chunk)
                        written += len(chunk)
                os.replace(tmp_name, target)
            except OSError as e:
                discard(tmp_name)
                raise ImageWriteError(f"Could not write file {target}: {e}", target=str(target)) from e
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                discard(tmp_name)
                raise ImageTransportError(f"Download interrupted for {url}: {e}", target=url) from e
            except BaseException:
                discard(tmp_name)
                raise
        return written

