"""Protocol interfaces used by the presence service and the tray app."""

from __future__ import annotations

from typing import Callable, Optional, Protocol

TrackCallback = Callable[[str, str, str, float, float], None]
StoppedCallback = Callable[[], None]


class PlaybackSource(Protocol):
    def start(self, on_track: TrackCallback, on_stopped: StoppedCallback) -> None: ...

    def stop(self) -> None: ...


class ArtworkLookup(Protocol):
    def __call__(self, track: str, artist: str) -> Optional[str]: ...


class ConfigStore(Protocol):
    def get_client_id(self) -> str: ...

    def set_client_id(self, client_id: str) -> None: ...

    def get_presence_enabled(self) -> bool: ...

    def set_presence_enabled(self, enabled: bool) -> None: ...
