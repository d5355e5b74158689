import datetime
from typing import Dict, Optional

from preferences import PreferenceSelection

# Explicit sort choices always win over the mood heuristic
EXPLICIT_SORT_KEYS = {
    "rating_desc": "vote_average.desc",
    "popularity_desc": "popularity.desc",
    "newest_desc": "primary_release_date.desc",
    "oldest_asc": "primary_release_date.asc",
}

MOOD_SORT_KEYS = {
    "happy": "popularity.desc",
    "excited": "popularity.desc",
    "sad": "vote_average.desc",
    "thoughtful": "vote_average.desc",
}
DEFAULT_MOOD_SORT_KEY = "vote_count.desc"

CLASSICS_CUTOFF = "2000-12-31"

# Params that pin results to a single provider's subscription catalogue
PROVIDER_PARAMS = ("with_watch_providers", "watch_monetization_types", "watch_region")


def resolve_sort_by(mood: Optional[str], sort_by: Optional[str]) -> str:
    if sort_by in EXPLICIT_SORT_KEYS:
        return EXPLICIT_SORT_KEYS[sort_by]
    return MOOD_SORT_KEYS.get(mood, DEFAULT_MOOD_SORT_KEY)


def _years_before(day: datetime.date, years: int) -> datetime.date:
    try:
        return day.replace(year=day.year - years)
    except ValueError:
        # Feb 29 in a year without one
        return day.replace(year=day.year - years, day=28)


def release_date_range(release_window: str, today: Optional[datetime.date] = None) -> Dict[str, str]:
    """Return at most one of `gte`/`lte` for the release window."""
    today = today or datetime.date.today()
    if release_window == "last_3_years":
        return {"gte": _years_before(today, 3).isoformat()}
    if release_window == "last_10_years":
        return {"gte": _years_before(today, 10).isoformat()}
    if release_window == "classics":
        return {"lte": CLASSICS_CUTOFF}
    return {}


def _format_number(value) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def build_discover_params(
    selection: PreferenceSelection,
    provider_id: int,
    country: Optional[str] = None,
    today: Optional[datetime.date] = None,
) -> Dict[str, str]:
    region = (country or selection.country).upper()
    params = {}

    if selection.genres:
        params["with_genres"] = ",".join(str(genre_id) for genre_id in selection.genres)
    params["sort_by"] = resolve_sort_by(selection.mood, selection.sort_by)
    if selection.min_rating > 0:
        params["vote_average.gte"] = _format_number(selection.min_rating)
    if selection.min_votes > 0:
        params["vote_count.gte"] = str(selection.min_votes)

    date_range = release_date_range(selection.release_window, today)
    if "gte" in date_range:
        params["primary_release_date.gte"] = date_range["gte"]
    if "lte" in date_range:
        params["primary_release_date.lte"] = date_range["lte"]

    if selection.language != "any":
        params["with_original_language"] = selection.language

    params["region"] = region
    params["with_watch_providers"] = str(provider_id)
    params["watch_monetization_types"] = "flatrate"
    params["watch_region"] = region
    return params


def build_relaxed_params(params: Dict[str, str]) -> Dict[str, str]:
    """Drop the provider constraints but keep genre, date, rating and region filters."""
    return {key: value for key, value in params.items() if key not in PROVIDER_PARAMS}
