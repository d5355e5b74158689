import math
from typing import Dict, Iterable, List, Optional

# Mood -> preferred TMDB genre ids
MOOD_GENRES: Dict[str, List[int]] = {
    "happy": [35, 10749, 16, 10751, 12, 10402],
    "sad": [18, 10749, 10402, 36, 9648],
    "excited": [28, 12, 878, 53, 80],
    "relaxed": [35, 99, 16, 10749, 10402],
    "thoughtful": [18, 99, 36, 9648, 878],
    "energetic": [28, 12, 80, 53, 878, 27],
}

GENRE_WEIGHT = 0.6
MOOD_WEIGHT = 0.4
# Scores always fall within 62..99
MIN_SCORE = 62
SCORE_SPAN = 37

# Missing release dates sort last in both directions
_NEWEST_FALLBACK_DATE = "1900-01-01"
_OLDEST_FALLBACK_DATE = "2100-01-01"


def genre_score(genre_ids: Iterable[int], selected_genres: Iterable) -> float:
    selected = [int(genre_id) for genre_id in selected_genres]
    if not selected:
        return 1.0
    overlap = len([genre_id for genre_id in genre_ids if genre_id in selected])
    return min(overlap / len(selected), 1.0)


def mood_score(genre_ids: Iterable[int], mood: Optional[str]) -> float:
    preferred = MOOD_GENRES.get(mood) or []
    if not preferred:
        return 0.5
    overlap = len([genre_id for genre_id in genre_ids if genre_id in preferred])
    return min(overlap / min(len(preferred), 3), 1.0)


def calculate_match_score(genre_ids: Iterable[int], mood: Optional[str], selected_genres: Iterable) -> int:
    genre_ids = list(genre_ids or [])
    raw = genre_score(genre_ids, selected_genres) * GENRE_WEIGHT + mood_score(genre_ids, mood) * MOOD_WEIGHT
    # Half-up rounding; round() would send 80.5 to 80
    return int(math.floor(MIN_SCORE + raw * SCORE_SPAN + 0.5))


def filter_by_runtime(candidates: List[dict], max_runtime: int) -> List[dict]:
    """Drop titles longer than `max_runtime`; an unknown runtime is kept."""
    return [movie for movie in candidates if not movie.get("runtime") or movie["runtime"] <= max_runtime]


def _release_date(movie: dict, fallback: str) -> str:
    return movie.get("release_date") or fallback


def sort_client_side(candidates: List[dict], sort_by: str) -> List[dict]:
    results = list(candidates)
    if sort_by == "rating_desc":
        results.sort(key=lambda movie: movie.get("vote_average") or 0, reverse=True)
    elif sort_by == "popularity_desc":
        results.sort(key=lambda movie: movie.get("popularity") or 0, reverse=True)
    elif sort_by == "newest_desc":
        results.sort(key=lambda movie: _release_date(movie, _NEWEST_FALLBACK_DATE), reverse=True)
    elif sort_by == "oldest_asc":
        results.sort(key=lambda movie: _release_date(movie, _OLDEST_FALLBACK_DATE))
    return results
