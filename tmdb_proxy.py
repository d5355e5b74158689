import asyncio
import json
import logging
import re
import time
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

import aiohttp

import config
from errors import (
    ApiKeyMissing,
    InvalidEndpoint,
    MissingEndpoint,
    UpstreamError,
    UpstreamRequestFailed,
)

logger = logging.getLogger(__name__)

_ITEM_SUBRESOURCES = (
    "credits|videos|similar|recommendations|watch/providers|release_dates"
    "|external_ids|images|keywords|reviews"
)

ALLOWED_ENDPOINT_PATTERNS = [
    re.compile(r"^configuration$"),
    re.compile(r"^search/(movie|tv|multi|person)$"),
    re.compile(r"^discover/(movie|tv)$"),
    re.compile(r"^trending/(all|movie|tv|person)/(day|week)$"),
    re.compile(r"^genre/(movie|tv)/list$"),
    re.compile(r"^movie/(popular|top_rated|now_playing|upcoming)$"),
    re.compile(r"^tv/(popular|top_rated|on_the_air|airing_today)$"),
    re.compile(r"^(movie|tv)/[0-9]+$"),
    re.compile(rf"^(movie|tv)/[0-9]+/({_ITEM_SUBRESOURCES})$"),
]

ALLOWED_PARAMS = frozenset({
    "query",
    "page",
    "language",
    "region",
    "include_adult",
    "year",
    "primary_release_year",
    "first_air_date_year",
    "sort_by",
    "with_genres",
    "without_genres",
    "vote_average.gte",
    "vote_count.gte",
    "primary_release_date.gte",
    "primary_release_date.lte",
    "first_air_date.gte",
    "first_air_date.lte",
    "with_original_language",
    "with_watch_providers",
    "watch_region",
    "watch_monetization_types",
    "with_runtime.gte",
    "with_runtime.lte",
    "append_to_response",
    "with_keywords",
})

MAX_PARAM_LENGTH = 300
MIN_PAGE = 1
MAX_PAGE = 10

_FORBIDDEN_ENDPOINT_MARKERS = ("..", "://", "?", "#", "&", "\\")


def sanitize_endpoint(endpoint: Optional[str]) -> str:
    """Normalize an endpoint path and reject anything outside the allow-list."""
    if endpoint is None:
        raise MissingEndpoint()
    cleaned = endpoint.strip().strip("/")
    if not cleaned:
        raise MissingEndpoint()
    if not cleaned.isprintable() or any(marker in cleaned for marker in _FORBIDDEN_ENDPOINT_MARKERS):
        logger.warning(f"Rejected suspicious endpoint: {endpoint!r}")
        raise InvalidEndpoint()
    if not any(pattern.fullmatch(cleaned) for pattern in ALLOWED_ENDPOINT_PATTERNS):
        logger.warning(f"Rejected endpoint outside allow-list: {cleaned}")
        raise InvalidEndpoint()
    return cleaned


def _valid_page(value: str) -> bool:
    # ASCII digits only
    if not (value.isascii() and value.isdigit()):
        return False
    return MIN_PAGE <= int(value) <= MAX_PAGE


def sanitize_params(params: Mapping[str, Any]) -> Dict[str, str]:
    """Keep allow-listed params only; bad values are dropped, never clamped."""
    forwarded = {}
    for key, value in params.items():
        if key not in ALLOWED_PARAMS or value is None:
            continue
        value = str(value)
        if len(value) > MAX_PARAM_LENGTH:
            continue
        if key == "page" and not _valid_page(value):
            continue
        forwarded[key] = value
    return forwarded


def cache_ttl_for(endpoint: str) -> int:
    if endpoint.startswith("search/"):
        return config.SEARCH_CACHE_TTL
    return config.DEFAULT_CACHE_TTL


class ResponseCache:
    """In-memory TTL cache for successful upstream payloads."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._entries: Dict[Tuple, Tuple[float, Any]] = {}

    @staticmethod
    def make_key(endpoint: str, params: Mapping[str, str]) -> Tuple:
        return (endpoint, tuple(sorted(params.items())))

    def get(self, key: Tuple) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, data = entry
        if expires_at <= self._clock():
            del self._entries[key]
            return None
        return data

    def set(self, key: Tuple, data: Any, ttl: float) -> None:
        self._entries[key] = (self._clock() + ttl, data)

    def clear(self) -> None:
        self._entries.clear()


class TmdbProxy:
    """Forwards sanitized requests to TMDB through a shared aiohttp session."""

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession],
        api_key: Optional[str] = None,
        base_url: str = config.TMDB_BASE_URL,
        cache: Optional[ResponseCache] = None,
    ):
        self.session = session
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.cache = cache if cache is not None else ResponseCache()

    async def get(self, endpoint: Optional[str], params: Optional[Mapping[str, Any]] = None) -> Any:
        if not self.api_key:
            logger.error("TMDB API key not configured")
            raise ApiKeyMissing()

        path = sanitize_endpoint(endpoint)
        forwarded = sanitize_params(params or {})

        cache_key = ResponseCache.make_key(path, forwarded)
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        status, data = await self._request(path, forwarded)

        if status < 200 or status >= 300:
            status_message = data.get("status_message") if isinstance(data, dict) else None
            logger.error(
                f"TMDB upstream error endpoint={path} status={status} "
                f"status_message={status_message}"
            )
            raise UpstreamError(status, status_message)

        self.cache.set(cache_key, data, cache_ttl_for(path))
        return data

    async def _request(self, path: str, params: Dict[str, str]) -> Tuple[int, Any]:
        if not self.session:
            logger.error("TMDB request attempted before the HTTP session was created")
            raise UpstreamRequestFailed()

        url = f"{self.base_url}/{path}"
        query = dict(params, api_key=self.api_key)
        try:
            async with self.session.get(url, params=query, headers={"Accept": "application/json"}) as response:
                try:
                    data = await response.json(content_type=None)
                except (aiohttp.ContentTypeError, json.JSONDecodeError):
                    data = None
                return response.status, data
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"TMDB API error for {path}: {str(e)}")
            raise UpstreamRequestFailed()
