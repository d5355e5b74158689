import asyncio
import datetime
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from errors import ApiError, MoodRequired, RecommendationError
from preferences import PreferenceSelection
from query_builder import build_discover_params, build_relaxed_params
from scoring import calculate_match_score, filter_by_runtime, sort_client_side
from streaming_options import StreamingService, get_service_by_key, get_valid_country_for_service
from tmdb_proxy import TmdbProxy

logger = logging.getLogger(__name__)

DISCOVER_ENDPOINT = "discover/movie"

PRIMARY_TIER = "primary"
RELAXED_TIER = "relaxed"

ENRICH_LIMIT = 12
RESULT_LIMIT = 6


@dataclass
class ResolvedPool:
    results: List[dict]
    tier: str


@dataclass
class Recommendations:
    results: List[dict]
    tier: str
    service: StreamingService
    country: str
    selection: PreferenceSelection
    params: Dict[str, str] = field(default_factory=dict)


def _results_of(data: Any) -> List[dict]:
    if not isinstance(data, dict):
        return []
    return data.get("results") or []


async def resolve_candidate_pool(proxy: TmdbProxy, params: Dict[str, str]) -> ResolvedPool:
    """
    Run the primary discover query and, if it comes back empty, one
    provider-relaxed retry.

    A failure of the primary request is surfaced as a retryable error. The
    relaxed request is best-effort: a failure there counts as no results.
    """
    try:
        data = await proxy.get(DISCOVER_ENDPOINT, params)
    except ApiError as e:
        logger.error(f"Primary discover query failed: {e.status_message}")
        raise RecommendationError(e.status_message) from e

    if isinstance(data, dict) and data.get("error"):
        raise RecommendationError(data.get("status_message") or data["error"])

    pool = _results_of(data)
    if pool:
        return ResolvedPool(pool, PRIMARY_TIER)

    logger.info("Primary discover query returned nothing, dropping provider filters")
    try:
        data = await proxy.get(DISCOVER_ENDPOINT, build_relaxed_params(params))
    except ApiError as e:
        logger.warning(f"Relaxed discover query failed: {e.status_message}")
        return ResolvedPool([], RELAXED_TIER)

    return ResolvedPool(_results_of(data), RELAXED_TIER)


async def _enrich_one(proxy: TmdbProxy, movie: dict) -> dict:
    try:
        details = await proxy.get(f"movie/{movie.get('id')}")
    except ApiError as e:
        logger.warning(f"Could not fetch details for movie {movie.get('id')}: {e.status_message}")
        return movie
    if not isinstance(details, dict):
        return movie
    return {**movie, "runtime": details.get("runtime"), "imdb_id": details.get("imdb_id")}


async def enrich_candidates(proxy: TmdbProxy, pool: List[dict], limit: int = ENRICH_LIMIT) -> List[dict]:
    """Fetch runtime and IMDb id for the first `limit` candidates in parallel."""
    return list(await asyncio.gather(*[_enrich_one(proxy, movie) for movie in pool[:limit]]))


async def recommend(
    proxy: TmdbProxy,
    selection: PreferenceSelection,
    today: Optional[datetime.date] = None,
) -> Recommendations:
    if not selection.mood:
        raise MoodRequired()

    service = get_service_by_key(selection.service)
    country = get_valid_country_for_service(service.key, selection.country)
    params = build_discover_params(selection, service.provider_id, country, today)

    logger.info(
        f"Resolving recommendations mood={selection.mood} service={service.key} "
        f"country={country} sort={selection.sort_by}"
    )

    pool = await resolve_candidate_pool(proxy, params)
    if not pool.results:
        return Recommendations([], pool.tier, service, country, selection, params)

    enriched = await enrich_candidates(proxy, pool.results)
    filtered = filter_by_runtime(enriched, selection.max_runtime)
    results = sort_client_side(filtered, selection.sort_by)[:RESULT_LIMIT]

    scored = [
        {**movie, "match_score": calculate_match_score(movie.get("genre_ids"), selection.mood, selection.genres)}
        for movie in results
    ]
    return Recommendations(scored, pool.tier, service, country, selection, params)
