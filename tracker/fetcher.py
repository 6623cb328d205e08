"""
fetcher.py - Source fetcher.

Retrieves one participant's raw snapshot from ``{api_url}/users/{address}``.
When ``api_url`` is not an HTTP URL it is treated as a local directory that an
external writer (ckpool) keeps refreshing, and the file is read from
``{api_url}/users/{address}`` with a short retry loop tolerant of files that are
missing or half-written for a moment.
"""

import asyncio
import json
import logging
import os
import re
from typing import Any, Awaitable, Callable, Optional

import httpx
from pydantic import ValidationError

from tracker.errors import (
    AddressValidationError,
    SnapshotFileNotFoundError,
    TransientFetchError,
)
from tracker.models import RawSnapshot

logger = logging.getLogger("fetcher")

MAX_RETRIES = 3
RETRY_DELAY_SEC = 1.0
LOCAL_READ_RETRIES = 5
LOCAL_READ_BACKOFF_SEC = 0.05

_ADDRESS_RE = re.compile(r"^[A-Za-z0-9]+$")

SleepFn = Callable[[float], Awaitable[Any]]


def validate_address(address: str) -> str:
    if not address or not _ADDRESS_RE.match(address):
        raise AddressValidationError("Address contains invalid characters")
    return address


def validate_and_resolve_user_path(address: str, base_path: str) -> str:
    """Resolve ``{base_path}/users/{address}``, refusing anything outside the root."""
    validate_address(address)
    root = os.path.realpath(os.path.abspath(base_path))
    resolved = os.path.realpath(os.path.join(root, "users", address))
    if not resolved.startswith(root + os.sep):
        raise AddressValidationError("Invalid path for user data")
    return resolved


def _read_text(path: str) -> str:
    with open(path, "r", encoding="utf-8") as fh:
        return fh.read()


async def read_json_stable(
    path: str,
    retries: int = LOCAL_READ_RETRIES,
    backoff: float = LOCAL_READ_BACKOFF_SEC,
    sleep: SleepFn = asyncio.sleep,
) -> Any:
    """Read and parse a JSON file that may be mid-replacement.

    Missing files and parse failures are retried with exponential backoff; the
    final attempt lets its error propagate.
    """
    for attempt in range(max(retries, 1) - 1):
        try:
            text = await asyncio.to_thread(_read_text, path)
            return json.loads(text)
        except FileNotFoundError:
            await sleep(backoff * (2 ** attempt))
            continue
        except (UnicodeDecodeError, json.JSONDecodeError):
            # A writer cut off mid multi-byte sequence fails in the decoder
            logger.debug("Partial JSON in %s (attempt %d), retrying", path, attempt + 1)
            await sleep(backoff * (2 ** attempt))
            continue
    text = await asyncio.to_thread(_read_text, path)
    return json.loads(text)


class SnapshotFetcher:
    """Fetches raw snapshots with retry and linear backoff."""

    def __init__(
        self,
        api_url: str,
        client: Optional[httpx.AsyncClient] = None,
        max_retries: int = MAX_RETRIES,
        retry_delay: float = RETRY_DELAY_SEC,
        local_retries: int = LOCAL_READ_RETRIES,
        local_backoff: float = LOCAL_READ_BACKOFF_SEC,
        timeout: float = 10.0,
        sleep: SleepFn = asyncio.sleep,
    ):
        self.api_url = api_url.rstrip("/") or api_url
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self.local_retries = local_retries
        self.local_backoff = local_backoff
        self._timeout = timeout
        self._client = client
        self._owns_client = client is None
        self._sleep = sleep

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def aclose(self):
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def fetch(self, address: str) -> RawSnapshot:
        """Return the parsed snapshot for ``address``.

        Raises AddressValidationError, TransientFetchError (after
        ``max_retries`` attempts) or SnapshotFileNotFoundError.
        """
        validate_address(address)
        url = f"{self.api_url}/users/{address}"
        last_error: Optional[TransientFetchError] = None

        for attempt in range(1, self.max_retries + 1):
            try:
                response = await self._get_client().get(url)
            except (httpx.UnsupportedProtocol, httpx.InvalidURL):
                # api_url is a filesystem root, not an HTTP endpoint
                return await self._fetch_local(address)
            except httpx.HTTPError as exc:
                last_error = TransientFetchError(f"Request for {address} failed: {exc}")
                last_error.__cause__ = exc
            else:
                if response.is_success:
                    try:
                        return self._parse(address, response.json())
                    except (ValueError, TransientFetchError) as exc:
                        last_error = (
                            exc if isinstance(exc, TransientFetchError)
                            else TransientFetchError(f"Invalid JSON for {address}: {exc}")
                        )
                else:
                    last_error = TransientFetchError(
                        f"HTTP error! status: {response.status_code}"
                    )

            if attempt < self.max_retries:
                logger.warning(
                    "Fetch attempt %d/%d for %s failed: %s",
                    attempt, self.max_retries, address, last_error,
                )
                await self._sleep(self.retry_delay * attempt)

        logger.error("Giving up on %s after %d attempts", address, self.max_retries)
        raise last_error

    async def _fetch_local(self, address: str) -> RawSnapshot:
        path = validate_and_resolve_user_path(address, self.api_url)
        try:
            data = await read_json_stable(
                path, retries=self.local_retries, backoff=self.local_backoff,
                sleep=self._sleep,
            )
        except FileNotFoundError as exc:
            raise SnapshotFileNotFoundError(f"User file not found: {address}") from exc
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise TransientFetchError(f"Malformed user file for {address}: {exc}") from exc
        except OSError as exc:
            raise TransientFetchError(f"Cannot read user file for {address}: {exc}") from exc
        return self._parse(address, data)

    @staticmethod
    def _parse(address: str, data: Any) -> RawSnapshot:
        try:
            return RawSnapshot.model_validate(data)
        except ValidationError as exc:
            raise TransientFetchError(
                f"Malformed snapshot for {address}: {exc.error_count()} field error(s)"
            ) from exc
