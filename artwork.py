"""Album artwork lookup with a process-lifetime cache.

Artwork URLs come from the iTunes Search API. A single ``ArtworkService`` is
created at startup and handed to every collaborator that needs artwork.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from interfaces import ArtworkLookup

try:
    import requests
except Exception:  # pragma: no cover
    requests = None  # type: ignore

logger = logging.getLogger(__name__)

ITUNES_SEARCH_URL = "https://itunes.apple.com/search"

ArtworkCallback = Callable[[Optional[str]], None]


def make_key(track: str, artist: str) -> str:
    return f"{artist}|{track}"


class ArtworkCache:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._entries.get(key)

    def put(self, key: str, url: str) -> str:
        """Store ``url`` unless the key is already populated; return the stored value."""
        with self._lock:
            return self._entries.setdefault(key, url)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class ItunesArtworkLookup:
    def __init__(self, request_timeout_s: float = 10.0, size: int = 512) -> None:
        self._request_timeout_s = request_timeout_s
        self._size = size

    def __call__(self, track: str, artist: str) -> Optional[str]:
        if requests is None:
            logger.debug("requests is not installed, skipping artwork lookup")
            return None
        try:
            response = requests.get(
                ITUNES_SEARCH_URL,
                params={
                    "media": "music",
                    "entity": "song",
                    "limit": 1,
                    "term": f"{track} {artist}",
                },
                timeout=self._request_timeout_s,
            )
            response.raise_for_status()
            data = response.json()
        except (requests.exceptions.RequestException, ValueError) as exc:
            logger.debug('iTunes lookup failed for "%s" by %s: %s', track, artist, exc)
            return None
        return self._extract_url(data)

    def _extract_url(self, data: object) -> Optional[str]:
        if not isinstance(data, dict):
            return None
        results = data.get("results") or []
        if not results or not isinstance(results[0], dict):
            return None
        url = results[0].get("artworkUrl100")
        if not isinstance(url, str) or not url:
            return None
        # Upscale the thumbnail for the presence card
        return url.replace("100x100", f"{self._size}x{self._size}")


class ArtworkService:
    def __init__(
        self,
        cache: Optional[ArtworkCache] = None,
        lookup: Optional[ArtworkLookup] = None,
    ) -> None:
        self._cache = cache or ArtworkCache()
        self._lookup = lookup or ItunesArtworkLookup()

    @property
    def cache(self) -> ArtworkCache:
        return self._cache

    def cached_artwork_url(self, track: str, artist: str) -> Optional[str]:
        return self._cache.get(make_key(track, artist))

    def fetch_artwork_url(self, track: str, artist: str, completion: ArtworkCallback) -> None:
        """Resolve artwork for a track.

        On a cache hit ``completion`` runs synchronously on the calling thread.
        On a miss one lookup runs on a background thread and ``completion`` is
        called from there, with ``None`` if nothing was found.
        """
        key = make_key(track, artist)
        cached = self._cache.get(key)
        if cached is not None:
            completion(cached)
            return
        threading.Thread(
            target=self._resolve,
            args=(key, track, artist, completion),
            daemon=True,
        ).start()

    def _resolve(self, key: str, track: str, artist: str, completion: ArtworkCallback) -> None:
        try:
            url = self._lookup(track, artist)
        except Exception as exc:
            logger.debug('Artwork lookup raised for "%s" by %s: %s', track, artist, exc)
            url = None
        if url is not None:
            url = self._cache.put(key, url)
            logger.debug('Found artwork for "%s"', track)
        completion(url)
