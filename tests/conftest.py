import json
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient


class FakeResponse:
    def __init__(self, status: int, payload: Any, invalid_json: bool = False):
        self.status = status
        self._payload = payload
        self._invalid_json = invalid_json

    async def json(self, content_type=None):
        if self._invalid_json:
            raise json.JSONDecodeError("Expecting value", "", 0)
        return self._payload

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeSession:
    """Stands in for aiohttp.ClientSession; records every GET."""

    def __init__(self, status: int = 200, payload: Any = None, error: Optional[Exception] = None,
                 invalid_json: bool = False):
        self.status = status
        self.payload = payload if payload is not None else {"results": []}
        self.error = error
        self.invalid_json = invalid_json
        self.calls: List[Dict[str, Any]] = []

    def get(self, url, params=None, headers=None):
        self.calls.append({"url": url, "params": dict(params or {})})
        if self.error:
            raise self.error
        return FakeResponse(self.status, self.payload, self.invalid_json)


class FakeProxy:
    """Duck-typed TmdbProxy returning canned discover pages and movie details."""

    def __init__(self, discover=None, details=None):
        self.discover = list(discover or [])
        self.details = details or {}
        self.calls: List[tuple] = []

    async def get(self, endpoint, params=None):
        self.calls.append((endpoint, dict(params or {})))
        if endpoint == "discover/movie":
            result = self.discover.pop(0)
        else:
            movie_id = int(endpoint.split("/")[1])
            result = self.details.get(movie_id, {"id": movie_id})
        if isinstance(result, Exception):
            raise result
        return result

    @property
    def discover_calls(self):
        return [params for endpoint, params in self.calls if endpoint == "discover/movie"]

    @property
    def detail_calls(self):
        return [endpoint for endpoint, _ in self.calls if endpoint != "discover/movie"]


class FakeCompletions:
    def __init__(self, content: Optional[str] = None, error: Optional[Exception] = None):
        self.content = content
        self.error = error
        self.kwargs: Optional[Dict[str, Any]] = None

    async def create(self, **kwargs):
        self.kwargs = kwargs
        if self.error:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


class FakeOpenAI:
    def __init__(self, completions: FakeCompletions):
        self.chat = SimpleNamespace(completions=completions)


class FakeClock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def movie(movie_id, **fields):
    data = {
        "id": movie_id,
        "title": f"Movie {movie_id}",
        "poster_path": f"/poster{movie_id}.jpg",
        "vote_average": 7.0,
        "popularity": 10.0,
        "release_date": "2010-01-01",
        "genre_ids": [18],
    }
    data.update(fields)
    return data


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def test_client():
    import main

    main.proxy_limiter.reset()
    main.analyze_limiter.reset()
    try:
        yield TestClient(main.app)
    finally:
        main.app.dependency_overrides.clear()
        main.proxy_limiter.reset()
        main.analyze_limiter.reset()
