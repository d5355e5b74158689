import datetime
import json
import logging
import pathlib
import re
from typing import Dict, List, Optional, Protocol

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

WATCHLIST_KEY = "movie_mood_watchlist"
LIKED_KEY = "movie_mood_liked"


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[bytes]: ...

    def set(self, key: str, value: bytes) -> None: ...


class MemoryStore:
    def __init__(self, data: Optional[Dict[str, bytes]] = None):
        self.data = dict(data or {})

    def get(self, key: str) -> Optional[bytes]:
        return self.data.get(key)

    def set(self, key: str, value: bytes) -> None:
        self.data[key] = value


class JsonFileStore:
    """One `<key>.json` file per key under `directory`."""

    def __init__(self, directory):
        self.directory = pathlib.Path(directory)

    def _path(self, key: str) -> pathlib.Path:
        if not re.fullmatch(r"[A-Za-z0-9_.-]+", key):
            raise ValueError(f"Invalid storage key: {key!r}")
        return self.directory / f"{key}.json"

    def get(self, key: str) -> Optional[bytes]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_bytes()

    def set(self, key: str, value: bytes) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        tmp_path = path.with_suffix(".tmp")
        tmp_path.write_bytes(value)
        tmp_path.replace(path)


class WatchlistItem(BaseModel):
    id: int
    title: str
    poster_path: Optional[str] = None
    media_type: str = Field(default="movie", pattern="^(movie|tv)$")
    vote_average: float = 0
    release_date: Optional[str] = None
    genre_ids: List[int] = Field(default_factory=list)
    added_at: Optional[str] = None


def _now() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat(timespec="seconds")


class WatchlistStore:
    def __init__(self, store: KeyValueStore):
        self._store = store
        self._watchlist: List[WatchlistItem] = self._load_watchlist()
        self._watchlist_ids = {item.id for item in self._watchlist}
        self._liked: List[int] = self._load_liked()
        self._liked_ids = set(self._liked)

    @property
    def watchlist(self) -> List[WatchlistItem]:
        return list(self._watchlist)

    @property
    def liked(self) -> List[int]:
        return list(self._liked)

    @property
    def count(self) -> int:
        return len(self._watchlist)

    def add(self, item: WatchlistItem) -> bool:
        """Prepend `item` stamped with the current time; False if already saved."""
        if item.id in self._watchlist_ids:
            return False
        saved = item.model_copy(update={"added_at": _now()})
        self._watchlist.insert(0, saved)
        self._watchlist_ids.add(saved.id)
        self._persist_watchlist()
        return True

    def remove(self, item_id: int) -> bool:
        if item_id not in self._watchlist_ids:
            return False
        self._watchlist = [item for item in self._watchlist if item.id != item_id]
        self._watchlist_ids.discard(item_id)
        self._persist_watchlist()
        return True

    def is_in_watchlist(self, item_id: int) -> bool:
        return item_id in self._watchlist_ids

    def toggle_like(self, item_id: int) -> bool:
        """Flip the liked state of `item_id` and return the new state."""
        if item_id in self._liked_ids:
            self._liked = [liked_id for liked_id in self._liked if liked_id != item_id]
            self._liked_ids.discard(item_id)
            liked = False
        else:
            self._liked.append(item_id)
            self._liked_ids.add(item_id)
            liked = True
        self._save(LIKED_KEY, self._liked)
        return liked

    def is_liked(self, item_id: int) -> bool:
        return item_id in self._liked_ids

    def clear(self) -> None:
        self._watchlist = []
        self._watchlist_ids = set()
        self._persist_watchlist()

    def _persist_watchlist(self) -> None:
        self._save(WATCHLIST_KEY, [item.model_dump() for item in self._watchlist])

    def _load_watchlist(self) -> List[WatchlistItem]:
        items = []
        seen = set()
        for raw in self._read(WATCHLIST_KEY):
            try:
                item = WatchlistItem.model_validate(raw)
            except ValueError:
                logger.warning(f"Skipping invalid watchlist entry: {raw!r}")
                continue
            if item.id in seen:
                continue
            seen.add(item.id)
            items.append(item)
        return items

    def _load_liked(self) -> List[int]:
        liked = []
        for raw in self._read(LIKED_KEY):
            if isinstance(raw, int) and not isinstance(raw, bool) and raw not in liked:
                liked.append(raw)
        return liked

    def _read(self, key: str) -> list:
        try:
            blob = self._store.get(key)
            if not blob:
                return []
            data = json.loads(blob)
        except (OSError, ValueError) as e:
            logger.warning(f"Could not load {key}: {str(e)}")
            return []
        return data if isinstance(data, list) else []

    def _save(self, key: str, value) -> None:
        try:
            self._store.set(key, json.dumps(value).encode("utf-8"))
        except (OSError, TypeError, ValueError) as e:
            logger.warning(f"Could not persist {key}: {str(e)}")
