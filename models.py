"""Core data models for the app."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum, IntEnum

SOCKET_PREFIX = "discord-ipc-"
SOCKET_SLOTS = 10


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class Opcode(IntEnum):
    HANDSHAKE = 0
    FRAME = 1
    CLOSE = 2
    PING = 3
    PONG = 4


@dataclass(frozen=True)
class SocketCandidate:
    directory: str
    slot: int

    @property
    def path(self) -> str:
        return os.path.join(self.directory, f"{SOCKET_PREFIX}{self.slot}")


@dataclass(frozen=True)
class TrackInfo:
    track: str
    artist: str
    album: str
    duration_s: float = 0.0
    elapsed_s: float = 0.0

    @property
    def cache_key(self) -> str:
        return f"{self.artist}|{self.track}"


@dataclass
class ReconnectPolicy:
    """Exponential backoff between connect loops.

    ``record_failure`` returns the delay to wait before the next attempt and
    doubles the following one, clamped to ``max_delay_s``.
    """

    base_delay_s: float = 5.0
    max_delay_s: float = 60.0
    current_delay_s: float = field(default=-1.0)

    def __post_init__(self) -> None:
        if self.current_delay_s < 0:
            self.current_delay_s = self.base_delay_s

    def record_failure(self) -> float:
        delay = self.current_delay_s
        self.current_delay_s = min(self.current_delay_s * 2, self.max_delay_s)
        return delay

    def reset(self) -> None:
        self.current_delay_s = self.base_delay_s
