"""Media player source based on ``playerctl`` (MPRIS)."""

from __future__ import annotations

import logging
import shutil
import subprocess
import threading
from dataclasses import dataclass
from typing import Optional

from interfaces import StoppedCallback, TrackCallback

logger = logging.getLogger(__name__)

METADATA_FORMAT = "{{status}}||{{title}}||{{artist}}||{{album}}||{{mpris:length}}||{{position}}"


@dataclass
class PlaybackSnapshot:
    playing: bool
    track: str = ""
    artist: str = ""
    album: str = ""
    duration_s: float = 0.0
    elapsed_s: float = 0.0

    @property
    def key(self) -> str:
        return f"{self.artist}|{self.track}"


def _micros_to_seconds(value: str) -> float:
    try:
        return max(int(value.strip() or 0), 0) / 1_000_000
    except ValueError:
        return 0.0


def parse_metadata(output: str) -> PlaybackSnapshot:
    parts = output.strip().split("||")
    if len(parts) < 6:
        return PlaybackSnapshot(playing=False)
    status, title, artist, album, length, position = (p.strip() for p in parts[:6])
    if status.lower() != "playing" or not title:
        return PlaybackSnapshot(playing=False)
    return PlaybackSnapshot(
        playing=True,
        track=title,
        artist=artist,
        album=album,
        duration_s=_micros_to_seconds(length),
        elapsed_s=_micros_to_seconds(position),
    )


class PlayerctlPlaybackMonitor:
    def __init__(self, poll_interval_s: float = 2.0, player: Optional[str] = None) -> None:
        self._poll_interval_s = poll_interval_s
        self._player = player
        self._playerctl = shutil.which("playerctl")
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._on_track: Optional[TrackCallback] = None
        self._on_stopped: Optional[StoppedCallback] = None
        self._last_key: Optional[str] = None

    def start(self, on_track: TrackCallback, on_stopped: StoppedCallback) -> None:
        if self._thread and self._thread.is_alive():
            return
        if self._playerctl is None:
            raise RuntimeError("playerctl is not installed")
        self._on_track = on_track
        self._on_stopped = on_stopped
        self._last_key = None
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._worker, name="playback-monitor", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=0.5)

    def poll_once(self) -> None:
        snapshot = self._snapshot()
        if not snapshot.playing:
            if self._last_key is not None:
                self._last_key = None
                if self._on_stopped:
                    self._on_stopped()
            return
        if snapshot.key == self._last_key:
            return
        self._last_key = snapshot.key
        logger.debug('Now playing "%s" by %s', snapshot.track, snapshot.artist)
        if self._on_track:
            self._on_track(
                snapshot.track,
                snapshot.artist,
                snapshot.album,
                snapshot.duration_s,
                snapshot.elapsed_s,
            )

    def _worker(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.poll_once()
            except Exception:
                logger.exception("Playback poll failed")
            self._stop_event.wait(self._poll_interval_s)

    def _snapshot(self) -> PlaybackSnapshot:
        if self._playerctl is None:
            return PlaybackSnapshot(playing=False)
        args = [self._playerctl]
        if self._player:
            args += ["--player", self._player]
        args += ["metadata", "--format", METADATA_FORMAT]
        try:
            result = subprocess.run(
                args,
                capture_output=True,
                text=True,
                check=False,
                timeout=5,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            logger.debug("playerctl failed: %s", exc)
            return PlaybackSnapshot(playing=False)
        if result.returncode != 0:
            return PlaybackSnapshot(playing=False)
        return parse_metadata(result.stdout)
