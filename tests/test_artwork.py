"""Tests for the artwork cache and iTunes lookup."""

from __future__ import annotations

import threading
from typing import Optional
from unittest.mock import MagicMock, patch

import requests

from artwork import ArtworkCache, ArtworkService, ItunesArtworkLookup, make_key


class FakeLookup:
    def __init__(self, url: Optional[str] = "https://img.example/art-512x512.jpg") -> None:
        self.url = url
        self.calls: list[tuple[str, str]] = []

    def __call__(self, track: str, artist: str) -> Optional[str]:
        self.calls.append((track, artist))
        return self.url


def _fetch_and_wait(service: ArtworkService, track: str, artist: str) -> Optional[str]:
    done = threading.Event()
    result: list[Optional[str]] = []

    def completion(url: Optional[str]) -> None:
        result.append(url)
        done.set()

    service.fetch_artwork_url(track, artist, completion)
    assert done.wait(timeout=2.0)
    return result[0]


# ---------------------------------------------------------------
# Cache
# ---------------------------------------------------------------

def test_cache_first_write_wins() -> None:
    cache = ArtworkCache()
    assert cache.put("a|b", "first") == "first"
    assert cache.put("a|b", "second") == "first"
    assert cache.get("a|b") == "first"
    assert len(cache) == 1


def test_make_key_is_artist_then_track() -> None:
    assert make_key("Song", "Artist") == "Artist|Song"


# ---------------------------------------------------------------
# Service
# ---------------------------------------------------------------

def test_cache_hit_avoids_second_lookup() -> None:
    lookup = FakeLookup()
    service = ArtworkService(lookup=lookup)

    assert _fetch_and_wait(service, "Song", "Artist") == lookup.url

    results: list[Optional[str]] = []
    service.fetch_artwork_url("Song", "Artist", results.append)

    # Served synchronously from the cache
    assert results == [lookup.url]
    assert lookup.calls == [("Song", "Artist")]
    assert service.cached_artwork_url("Song", "Artist") == lookup.url


def test_failed_lookup_is_not_cached() -> None:
    lookup = FakeLookup(url=None)
    service = ArtworkService(lookup=lookup)

    assert _fetch_and_wait(service, "Song", "Artist") is None
    assert service.cached_artwork_url("Song", "Artist") is None
    assert len(service.cache) == 0


def test_lookup_exception_reports_none() -> None:
    def broken(track: str, artist: str) -> Optional[str]:
        raise RuntimeError("boom")

    service = ArtworkService(lookup=broken)
    assert _fetch_and_wait(service, "Song", "Artist") is None


def test_shared_cache_is_visible_to_every_service() -> None:
    cache = ArtworkCache()
    cache.put(make_key("Song", "Artist"), "https://img.example/cached.jpg")
    lookup = FakeLookup()

    service = ArtworkService(cache=cache, lookup=lookup)

    assert service.cached_artwork_url("Song", "Artist") == "https://img.example/cached.jpg"
    assert lookup.calls == []


# ---------------------------------------------------------------
# iTunes lookup
# ---------------------------------------------------------------

@patch("artwork.requests.get")
def test_itunes_lookup_upscales_artwork(mock_get: MagicMock) -> None:
    response = MagicMock()
    response.json.return_value = {
        "resultCount": 1,
        "results": [{"artworkUrl100": "https://is1.mzstatic.com/a/100x100bb.jpg"}],
    }
    mock_get.return_value = response

    url = ItunesArtworkLookup()("Song", "Artist")

    assert url == "https://is1.mzstatic.com/a/512x512bb.jpg"
    params = mock_get.call_args.kwargs["params"]
    assert params["term"] == "Song Artist"
    assert params["limit"] == 1


@patch("artwork.requests.get")
def test_itunes_lookup_no_results(mock_get: MagicMock) -> None:
    response = MagicMock()
    response.json.return_value = {"resultCount": 0, "results": []}
    mock_get.return_value = response

    assert ItunesArtworkLookup()("Song", "Artist") is None


@patch("artwork.requests.get")
def test_itunes_lookup_network_error(mock_get: MagicMock) -> None:
    mock_get.side_effect = requests.exceptions.ConnectionError("offline")

    assert ItunesArtworkLookup()("Song", "Artist") is None
