import json
from types import SimpleNamespace

import requests

import config
import main
from analyzer import ContentAnalyzer
from errors import UpstreamRequestFailed
from rate_limit import FixedWindowRateLimiter
from tmdb_proxy import ResponseCache, TmdbProxy

from conftest import FakeCompletions, FakeOpenAI, FakeProxy, FakeSession, movie

ANALYSIS = {
    "mood": ["uplifting"],
    "themes": ["friendship"],
    "similarContent": ["Paddington 2"],
    "viewingContext": ["family movie night"],
    "contentWarnings": [],
    "analysis": "Warm and funny.",
}

ANALYZE_BODY = {"movieId": 346648, "title": "Paddington", "overview": "A bear comes to London.", "genres": ["Comedy"]}


def use_proxy(proxy):
    main.app.dependency_overrides[main.get_proxy] = lambda: proxy


def use_analyzer(analyzer):
    main.app.dependency_overrides[main.get_analyzer] = lambda: analyzer


def tmdb_proxy(session, api_key="test-key"):
    return TmdbProxy(session, api_key, "https://tmdb.example/3", ResponseCache())


def test_tmdb_proxy_forwards_sanitized_request(test_client):
    session = FakeSession(payload={"page": 1, "results": [movie(1)]})
    use_proxy(tmdb_proxy(session))

    response = test_client.get(
        "/api/tmdb",
        params={"endpoint": "discover/movie", "page": "11", "with_genres": "18", "api_key": "evil"},
    )

    assert response.status_code == 200
    assert response.json()["results"][0]["id"] == 1
    call = session.calls[0]
    assert call["url"] == "https://tmdb.example/3/discover/movie"
    assert call["params"] == {"with_genres": "18", "api_key": "test-key"}


def test_tmdb_proxy_rejects_traversal(test_client):
    session = FakeSession()
    use_proxy(tmdb_proxy(session))

    response = test_client.get("/api/tmdb", params={"endpoint": "../secret"})

    assert response.status_code == 400
    assert response.json()["error"] == "INVALID_ENDPOINT"
    assert session.calls == []


def test_tmdb_proxy_requires_endpoint(test_client):
    use_proxy(tmdb_proxy(FakeSession()))
    response = test_client.get("/api/tmdb")
    assert response.status_code == 400
    assert response.json()["error"] == "MISSING_ENDPOINT"


def test_tmdb_proxy_without_api_key(test_client):
    use_proxy(tmdb_proxy(FakeSession(), api_key=None))
    response = test_client.get("/api/tmdb", params={"endpoint": "movie/550"})
    assert response.status_code == 500
    assert response.json()["error"] == "TMDB_API_KEY_MISSING"


def test_tmdb_proxy_passes_upstream_status_through(test_client):
    session = FakeSession(status=401, payload={"status_message": "Invalid API key: You must be granted a valid key."})
    use_proxy(tmdb_proxy(session))

    response = test_client.get("/api/tmdb", params={"endpoint": "movie/550"})

    assert response.status_code == 401
    assert response.json() == {
        "error": "TMDB_UPSTREAM_ERROR",
        "status_message": "Invalid API key: You must be granted a valid key.",
        "upstream_status": 401,
    }


def test_tmdb_proxy_rate_limit(test_client, monkeypatch):
    monkeypatch.setattr(main, "proxy_limiter", FixedWindowRateLimiter(2, 60))
    use_proxy(tmdb_proxy(FakeSession(payload={"id": 550})))

    statuses = [test_client.get("/api/tmdb", params={"endpoint": "movie/550"}).status_code for _ in range(2)]
    blocked = test_client.get("/api/tmdb", params={"endpoint": "movie/550"})

    assert statuses == [200, 200]
    assert blocked.status_code == 429
    assert blocked.json()["error"] == "RATE_LIMITED"
    assert 1 <= int(blocked.headers["Retry-After"]) <= 60


def test_rate_limit_is_per_client_ip(test_client, monkeypatch):
    monkeypatch.setattr(main, "proxy_limiter", FixedWindowRateLimiter(1, 60))
    use_proxy(tmdb_proxy(FakeSession(payload={"id": 550})))
    params = {"endpoint": "movie/550"}

    assert test_client.get("/api/tmdb", params=params, headers={"X-Forwarded-For": "198.51.100.1"}).status_code == 200
    assert test_client.get("/api/tmdb", params=params, headers={"X-Forwarded-For": "198.51.100.2"}).status_code == 200
    assert test_client.get("/api/tmdb", params=params, headers={"X-Forwarded-For": "198.51.100.1"}).status_code == 429


def test_analyze_content(test_client):
    completions = FakeCompletions(content=json.dumps(ANALYSIS))
    use_analyzer(ContentAnalyzer(client=FakeOpenAI(completions)))

    response = test_client.post("/api/analyze-content", json=ANALYZE_BODY)

    assert response.status_code == 200
    assert response.json() == {"movieId": 346648, "title": "Paddington", "analysis": ANALYSIS}


def test_analyze_content_validation_error(test_client):
    use_analyzer(ContentAnalyzer(client=FakeOpenAI(FakeCompletions(content="{}"))))

    response = test_client.post("/api/analyze-content", json={"title": "", "overview": "x"})

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "INVALID_REQUEST"
    assert {tuple(detail["loc"]) for detail in body["details"]} == {("title",)}


def test_analyze_content_invalid_json(test_client):
    use_analyzer(ContentAnalyzer(client=FakeOpenAI(FakeCompletions(content="{}"))))
    response = test_client.post(
        "/api/analyze-content",
        content=b"{not json",
        headers={"Content-Type": "application/json"},
    )
    assert response.status_code == 400
    assert response.json()["error"] == "INVALID_REQUEST"


def test_analyze_content_not_configured(test_client):
    use_analyzer(ContentAnalyzer(api_key=None))
    response = test_client.post("/api/analyze-content", json=ANALYZE_BODY)
    assert response.status_code == 503
    assert response.json()["error"] == "OPENAI_API_KEY_MISSING"


def test_analyze_content_model_failure(test_client):
    use_analyzer(ContentAnalyzer(client=FakeOpenAI(FakeCompletions(content="not json"))))
    response = test_client.post("/api/analyze-content", json=ANALYZE_BODY)
    assert response.status_code == 500
    assert response.json()["error"] == "ANALYSIS_FAILED"


def test_analyze_content_rate_limit(test_client):
    completions = FakeCompletions(content=json.dumps(ANALYSIS))
    use_analyzer(ContentAnalyzer(client=FakeOpenAI(completions)))

    for _ in range(main.analyze_limiter.limit):
        assert test_client.post("/api/analyze-content", json=ANALYZE_BODY).status_code == 200
    blocked = test_client.post("/api/analyze-content", json=ANALYZE_BODY)

    assert blocked.status_code == 429
    assert blocked.json()["status_message"] == "Too many analysis requests. Please try again in a minute."
    assert "Retry-After" in blocked.headers


def test_recommendations(test_client):
    pool = [movie(1, genre_ids=[35]), movie(2, genre_ids=[35, 10751])]
    proxy = FakeProxy(
        discover=[{"results": pool}],
        details={1: {"id": 1, "runtime": 90}, 2: {"id": 2, "runtime": 200}},
    )
    use_proxy(proxy)

    response = test_client.get(
        "/api/recommendations",
        params={"mood": "happy", "genres": "35", "runtime": "120", "service": "disney-plus", "country": "fr"},
    )

    assert response.status_code == 200
    body = response.json()
    assert [m["id"] for m in body["results"]] == [1]
    assert body["results"][0]["match_score"] == 89
    assert body["tier"] == "primary"
    assert body["service"] == {"key": "disney-plus", "label": "Disney+", "provider_id": 337}
    assert body["country"] == "fr"
    assert body["selection"]["mood"] == "happy"
    assert body["vibe_link"].startswith("http://testserver/api/recommendations?")
    assert "mood=happy" in body["vibe_link"]
    assert proxy.discover_calls[0]["watch_region"] == "FR"


def test_recommendations_ignore_unusable_genres(test_client):
    proxy = FakeProxy(discover=[{"results": []}, {"results": []}])
    use_proxy(proxy)

    response = test_client.get("/api/recommendations", params={"mood": "happy", "genres": "\u00b2"})

    assert response.status_code == 200
    assert response.json()["selection"]["genres"] == []
    assert "with_genres" not in proxy.discover_calls[0]


def test_recommendations_require_mood(test_client):
    use_proxy(FakeProxy())
    response = test_client.get("/api/recommendations")
    assert response.status_code == 400
    assert response.json()["error"] == "MOOD_REQUIRED"


def test_recommendations_upstream_failure_is_retryable(test_client):
    use_proxy(FakeProxy(discover=[UpstreamRequestFailed()]))
    response = test_client.get("/api/recommendations", params={"mood": "sad"})
    assert response.status_code == 502
    assert response.json()["retryable"] is True


def test_streaming_options(test_client):
    body = test_client.get("/api/streaming-options").json()
    assert body["default_service"] == "netflix"
    assert body["default_country"] == "us"
    assert len(body["countries"]) == 30
    hulu = next(s for s in body["services"] if s["key"] == "hulu")
    assert hulu == {"key": "hulu", "label": "Hulu", "provider_id": 15, "countries": ["us"]}


def test_unknown_route_uses_error_envelope(test_client):
    response = test_client.get("/api/nope")
    assert response.status_code == 404
    assert response.json()["error"] == "NOT_FOUND"


def test_health_without_api_key(test_client, monkeypatch):
    monkeypatch.setattr(config, "TMDB_API_KEY", None)
    response = test_client.get("/health")
    assert response.status_code == 503
    assert response.json()["error"] == "TMDB_API_KEY_MISSING"


def test_health_checks_tmdb(test_client, monkeypatch):
    calls = []

    def fake_get(url, params=None, timeout=None):
        calls.append(url)
        return SimpleNamespace(raise_for_status=lambda: None)

    monkeypatch.setattr(config, "TMDB_API_KEY", "test-key")
    monkeypatch.setattr(requests, "get", fake_get)

    response = test_client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert calls == [f"{config.TMDB_BASE_URL}/configuration"]


def test_health_reports_unreachable_tmdb(test_client, monkeypatch):
    def fake_get(url, params=None, timeout=None):
        raise requests.ConnectionError("connection refused")

    monkeypatch.setattr(config, "TMDB_API_KEY", "test-key")
    monkeypatch.setattr(requests, "get", fake_get)

    response = test_client.get("/health")

    assert response.status_code == 503
    assert response.json()["status"] == "unhealthy"
