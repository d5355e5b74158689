import logging
import time

import aiohttp
import requests
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

import config
from analyzer import ContentAnalysisRequest, ContentAnalyzer
from errors import AnalyzerNotConfigured, ApiError, InvalidRequest, RateLimited
from preferences import PreferenceSelection, build_vibe_link
from rate_limit import FixedWindowRateLimiter, analyze_limiter, get_request_ip, proxy_limiter
from recommender import recommend
from streaming_options import COUNTRIES, DEFAULT_COUNTRY, DEFAULT_SERVICE_KEY, STREAMING_SERVICES
from tmdb_proxy import ResponseCache, TmdbProxy

logger = logging.getLogger(__name__)

app = FastAPI(title="MovieMood")

# Add CORS middleware to allow cross-origin requests
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Create a session for better connection pooling
session = None

# Shared by every request for the lifetime of the process
response_cache = ResponseCache()


@app.on_event("startup")
async def startup_event():
    global session
    try:
        session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=config.TMDB_TIMEOUT_SECONDS))
        logger.info("Successfully created aiohttp session")
    except Exception as e:
        logger.error(f"Failed to create aiohttp session: {str(e)}")
        raise
    if not config.TMDB_API_KEY:
        logger.warning("TMDB_API_KEY environment variable is not set")


@app.on_event("shutdown")
async def shutdown_event():
    global session
    if session:
        try:
            await session.close()
            logger.info("Successfully closed aiohttp session")
        except Exception as e:
            logger.error(f"Error closing aiohttp session: {str(e)}")
        session = None


def get_proxy() -> TmdbProxy:
    return TmdbProxy(session, config.TMDB_API_KEY, config.TMDB_BASE_URL, response_cache)


_analyzer = ContentAnalyzer(config.OPENAI_API_KEY, config.OPENAI_MODEL)


def get_analyzer() -> ContentAnalyzer:
    return _analyzer


def enforce_rate_limit(request: Request, limiter: FixedWindowRateLimiter, scope: str, message=None) -> None:
    peer = request.client.host if request.client else None
    key = f"{scope}:{get_request_ip(request.headers, peer)}"
    result = limiter.check(key)
    if not result.allowed:
        raise RateLimited(result.retry_after_seconds, message)


# Custom exception handlers
@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError):
    return JSONResponse(status_code=exc.status, content=exc.to_dict(), headers=exc.headers or None)


@app.exception_handler(404)
async def custom_404_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=404,
        content={
            "error": "NOT_FOUND",
            "status_message": str(exc.detail),
            "path": request.url.path
        }
    )


@app.exception_handler(Exception)
async def custom_500_handler(request: Request, exc: Exception):
    logger.error(f"Internal server error: {str(exc)}")
    return JSONResponse(
        status_code=500,
        content={
            "error": "INTERNAL_ERROR",
            "status_message": "An unexpected error occurred. Please try again later.",
            "path": request.url.path
        }
    )


# Add request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()
    response = await call_next(request)
    duration = time.time() - start_time

    logger.info(
        f"Method: {request.method} Path: {request.url.path} "
        f"Status: {response.status_code} Duration: {duration:.2f}s"
    )

    return response


# Health check endpoint
@app.get("/health")
async def health_check():
    if not config.TMDB_API_KEY:
        return JSONResponse(
            status_code=503,
            content={
                "status": "unhealthy",
                "error": "TMDB_API_KEY_MISSING",
                "message": "TMDB API key is not configured"
            }
        )
    try:
        # Test TMDB API connection
        test_url = f"{config.TMDB_BASE_URL}/configuration"
        response = requests.get(test_url, params={"api_key": config.TMDB_API_KEY}, timeout=5)
        response.raise_for_status()

        return {
            "status": "healthy",
            "tmdb_api": "connected",
            "openai": "configured" if config.OPENAI_API_KEY else "not configured",
            "timestamp": time.time()
        }
    except requests.RequestException as e:
        logger.error(f"Health check failed: {str(e)}")
        return JSONResponse(
            status_code=503,
            content={
                "status": "unhealthy",
                "error": "Service dependencies unavailable",
                "message": str(e)
            }
        )


@app.get("/api/tmdb")
async def tmdb_proxy(request: Request, proxy: TmdbProxy = Depends(get_proxy)):
    enforce_rate_limit(request, proxy_limiter, "tmdb")

    params = dict(request.query_params)
    endpoint = params.pop("endpoint", None)
    data = await proxy.get(endpoint, params)
    return JSONResponse(data)


@app.post("/api/analyze-content")
async def analyze_content(request: Request, analyzer: ContentAnalyzer = Depends(get_analyzer)):
    enforce_rate_limit(
        request,
        analyze_limiter,
        "analyze",
        "Too many analysis requests. Please try again in a minute.",
    )

    if not analyzer.configured:
        raise AnalyzerNotConfigured()

    try:
        body = await request.json()
    except ValueError:
        raise InvalidRequest("Request body must be valid JSON")

    try:
        payload = ContentAnalysisRequest.model_validate(body)
    except ValidationError as e:
        raise InvalidRequest(
            extra={"details": e.errors(include_url=False, include_context=False, include_input=False)}
        )

    logger.info(f"Analyzing content: {payload.title}")
    analysis = await analyzer.analyze(payload)

    return {
        "movieId": payload.movie_id,
        "title": payload.title,
        "analysis": analysis.model_dump(by_alias=True),
    }


@app.get("/api/recommendations")
async def get_recommendations(request: Request, proxy: TmdbProxy = Depends(get_proxy)):
    enforce_rate_limit(request, proxy_limiter, "recommendations")

    selection = PreferenceSelection.from_query(request.query_params)
    recommendations = await recommend(proxy, selection)

    return {
        "results": recommendations.results,
        "tier": recommendations.tier,
        "service": {
            "key": recommendations.service.key,
            "label": recommendations.service.label,
            "provider_id": recommendations.service.provider_id,
        },
        "country": recommendations.country,
        "selection": selection.model_dump(),
        "vibe_link": build_vibe_link(str(request.url_for("get_recommendations")), selection),
    }


@app.get("/api/streaming-options")
async def streaming_options():
    return {
        "default_service": DEFAULT_SERVICE_KEY,
        "default_country": DEFAULT_COUNTRY,
        "countries": [{"value": c.value, "label": c.label} for c in COUNTRIES],
        "services": [
            {
                "key": s.key,
                "label": s.label,
                "provider_id": s.provider_id,
                "countries": list(s.countries),
            }
            for s in STREAMING_SERVICES
        ],
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000)
