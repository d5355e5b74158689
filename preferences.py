import logging
from dataclasses import dataclass
from typing import Callable, List, Mapping, Optional
from urllib.parse import urlencode

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from streaming_options import COUNTRIES, DEFAULT_COUNTRY, DEFAULT_SERVICE_KEY, STREAMING_SERVICES

logger = logging.getLogger(__name__)

MOODS = ("happy", "sad", "excited", "relaxed", "thoughtful", "energetic")

SORT_OPTIONS = ("best_match", "rating_desc", "popularity_desc", "newest_desc", "oldest_asc")

RELEASE_WINDOWS = ("any", "last_3_years", "last_10_years", "classics")

LANGUAGES = ("any", "en", "es", "fr", "de", "ja", "ko", "hi")

WATCH_WITH = ("solo", "partner", "friends", "family")

DEFAULT_RUNTIME = 120
DEFAULT_MIN_RATING = 6.5
DEFAULT_MIN_VOTES = 300


class PreferenceSelection(BaseModel):
    """Everything a single search is resolved from; immutable once built."""

    model_config = ConfigDict(frozen=True)

    mood: Optional[str] = None
    genres: List[int] = Field(default_factory=list)
    max_runtime: int = Field(default=DEFAULT_RUNTIME, gt=0)
    min_rating: float = Field(default=DEFAULT_MIN_RATING, ge=0, le=10)
    min_votes: int = Field(default=DEFAULT_MIN_VOTES, ge=0)
    release_window: str = "any"
    language: str = "any"
    watch_with: str = "solo"
    sort_by: str = "best_match"
    service: str = DEFAULT_SERVICE_KEY
    country: str = DEFAULT_COUNTRY
    auto: bool = False

    @field_validator('mood')
    @classmethod
    def validate_mood(cls, v):
        if v is None:
            return v
        v = v.lower().strip()
        if v not in MOODS:
            raise ValueError(f"Mood must be one of: {', '.join(MOODS)}")
        return v

    @field_validator('release_window')
    @classmethod
    def validate_release_window(cls, v):
        if v not in RELEASE_WINDOWS:
            raise ValueError(f"Release window must be one of: {', '.join(RELEASE_WINDOWS)}")
        return v

    @field_validator('language')
    @classmethod
    def validate_language(cls, v):
        if v not in LANGUAGES:
            raise ValueError(f"Language must be one of: {', '.join(LANGUAGES)}")
        return v

    @field_validator('watch_with')
    @classmethod
    def validate_watch_with(cls, v):
        if v not in WATCH_WITH:
            raise ValueError(f"Watch-with must be one of: {', '.join(WATCH_WITH)}")
        return v

    @field_validator('sort_by')
    @classmethod
    def validate_sort_by(cls, v):
        if v not in SORT_OPTIONS:
            raise ValueError(f"Sort must be one of: {', '.join(SORT_OPTIONS)}")
        return v

    @field_validator('auto')
    @classmethod
    def validate_auto(cls, v, info: ValidationInfo):
        # Auto-search only makes sense once a mood is chosen
        return bool(v and info.data.get("mood"))

    @classmethod
    def from_query(cls, params: Mapping[str, str]) -> "PreferenceSelection":
        """Rebuild a selection from vibe-link query params, defaulting anything unusable."""
        mood = (params.get("mood") or "").lower().strip()
        service = params.get("service") or DEFAULT_SERVICE_KEY
        country = (params.get("country") or DEFAULT_COUNTRY).lower()

        return cls(
            mood=mood if mood in MOODS else None,
            genres=_parse_genres(params.get("genres")),
            max_runtime=_parse_number(params.get("runtime"), int, DEFAULT_RUNTIME, minimum=1),
            min_rating=_parse_number(params.get("rating"), float, DEFAULT_MIN_RATING, minimum=0, maximum=10),
            min_votes=_parse_number(params.get("votes"), int, DEFAULT_MIN_VOTES, minimum=0),
            release_window=_pick(params.get("window"), RELEASE_WINDOWS, "any"),
            language=_pick(params.get("lang"), LANGUAGES, "any"),
            watch_with=_pick(params.get("with"), WATCH_WITH, "solo"),
            sort_by=_pick(params.get("sort"), SORT_OPTIONS, "best_match"),
            service=_pick(service, [s.key for s in STREAMING_SERVICES], DEFAULT_SERVICE_KEY),
            country=_pick(country, [c.value for c in COUNTRIES], DEFAULT_COUNTRY),
            auto=params.get("auto") == "1",
        )

    def to_query(self) -> dict:
        query = {}
        if self.mood:
            query["mood"] = self.mood
        if self.genres:
            query["genres"] = ",".join(str(genre_id) for genre_id in self.genres)
        query["runtime"] = str(self.max_runtime)
        query["rating"] = str(self.min_rating)
        query["votes"] = str(self.min_votes)
        query["sort"] = self.sort_by
        query["window"] = self.release_window
        query["lang"] = self.language
        query["with"] = self.watch_with
        query["service"] = self.service
        query["country"] = self.country
        if self.auto:
            query["auto"] = "1"
        return query


def build_vibe_link(base_url: str, selection: PreferenceSelection) -> str:
    """Shareable URL that reconstructs `selection` when opened."""
    return f"{base_url.rstrip('?')}?{urlencode(selection.to_query())}"


def _pick(value, allowed, default):
    return value if value in allowed else default


def _parse_genres(raw: Optional[str]) -> List[int]:
    if not raw:
        return []
    genres = []
    for part in raw.split(","):
        part = part.strip()
        if part.isascii() and part.isdigit() and int(part) not in genres:
            genres.append(int(part))
    return genres


def _parse_number(raw, cast, default, minimum=None, maximum=None):
    if raw is None or raw == "":
        return default
    try:
        value = cast(float(raw)) if cast is int else cast(raw)
    except (TypeError, ValueError, OverflowError):
        return default
    if value != value:  # NaN
        return default
    if minimum is not None and value < minimum:
        return default
    if maximum is not None and value > maximum:
        return default
    return value


@dataclass(frozen=True)
class PreferenceChanged:
    """Published when the mood, streaming service or country changes."""

    mood: Optional[str] = None
    service_key: Optional[str] = None
    country: Optional[str] = None


Subscriber = Callable[[PreferenceChanged], None]


class PreferenceChannel:
    """Typed publish/subscribe channel for preference changes."""

    def __init__(self):
        self._subscribers: List[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, event: PreferenceChanged) -> None:
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                logger.exception(f"Preference subscriber failed for {event}")


class SearchState:
    """Holds the current selection and follows changes published on a channel."""

    def __init__(self, channel: PreferenceChannel, selection: Optional[PreferenceSelection] = None):
        self.selection = selection or PreferenceSelection()
        self._unsubscribe = channel.subscribe(self._on_change)

    def _on_change(self, event: PreferenceChanged) -> None:
        update = {}
        if event.mood is not None:
            update["mood"] = event.mood
        if event.service_key is not None:
            update["service"] = event.service_key
        if event.country is not None:
            update["country"] = event.country
        if update:
            # model_copy would skip validation
            self.selection = PreferenceSelection(**{**self.selection.model_dump(), **update})

    def close(self) -> None:
        self._unsubscribe()
