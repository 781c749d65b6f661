"""Discord Rich Presence over the local IPC socket.

Connects to Discord's Unix domain socket (``<tempdir>/discord-ipc-<0..9>``),
performs the RPC handshake and sends SET_ACTIVITY commands showing the track
currently playing. Only a Discord application (client) ID is required.

Threading:
    All socket I/O, handshakes, state transitions and timer callbacks run on
    one dedicated worker thread. Public methods hand their work to that thread
    and return immediately. State-change callbacks are delivered on a separate
    notifier thread so observers never run on the worker.

Reconnection:
    A failed connect loop or a lost connection schedules a retry with
    exponential backoff. While enabled, an availability poll also retries at a
    fixed interval so a restarted Discord is picked up quickly.
"""

from __future__ import annotations

import logging
import os
import select
import socket
import threading
import time
from typing import Callable, Optional

from artwork import ArtworkService
from errors import (
    CONNECTED_OK,
    DIAGNOSTIC_MESSAGES,
    DISCORD_UNAVAILABLE,
    HANDSHAKE_FAILED,
    NOT_CONFIGURED,
    DiscordIPCError,
    EncodingError,
)
from frame_codec import decode_frame, encode_frame, socket_reader
from models import ConnectionState, Opcode, ReconnectPolicy, SocketCandidate, TrackInfo
from presence import build_activity, build_clear_activity, build_set_activity
from reconnect import DEFAULT_POLL_INTERVAL_S, ReconnectSupervisor
from serial_worker import SerialWorker
from socket_locator import socket_candidates

logger = logging.getLogger(__name__)

RPC_VERSION = 1

StateCallback = Callable[[ConnectionState], None]
TestCallback = Callable[[bool, str], None]
Locator = Callable[[], list]
SocketFactory = Callable[[], socket.socket]


def _unix_socket() -> socket.socket:
    return socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)


class DiscordRPCService:
    def __init__(
        self,
        client_id: str,
        artwork: Optional[ArtworkService] = None,
        locator: Locator = socket_candidates,
        policy: Optional[ReconnectPolicy] = None,
        poll_interval_s: float = DEFAULT_POLL_INTERVAL_S,
        io_timeout_s: float = 5.0,
        on_state_change: Optional[StateCallback] = None,
        socket_factory: SocketFactory = _unix_socket,
        pid: Optional[int] = None,
    ) -> None:
        self._client_id = client_id or ""
        self._artwork = artwork
        self._locator = locator
        self._io_timeout_s = io_timeout_s
        self._socket_factory = socket_factory
        self._pid = pid if pid is not None else os.getpid()
        self.on_state_change = on_state_change

        self._worker = SerialWorker("discord-ipc")
        self._notifier = SerialWorker("discord-ipc-notify")
        self._supervisor = ReconnectSupervisor(
            self._worker,
            on_retry=self._on_retry,
            on_poll=self._on_poll,
            policy=policy,
            poll_interval_s=poll_interval_s,
        )

        # Guards the only fields read outside the worker thread
        self._lock = threading.Lock()
        self._enabled = False
        self._state = ConnectionState.DISCONNECTED

        # Worker-thread only
        self._sock: Optional[socket.socket] = None
        self._current: Optional[TrackInfo] = None
        self._published_at = 0.0

    @property
    def state(self) -> ConnectionState:
        with self._lock:
            return self._state

    @property
    def is_enabled(self) -> bool:
        with self._lock:
            return self._enabled

    @property
    def client_id(self) -> str:
        return self._client_id

    @property
    def policy(self) -> ReconnectPolicy:
        return self._supervisor.policy

    # ------------------------------------------------------------------
    # Public API (any thread, non-blocking)
    # ------------------------------------------------------------------

    def set_enabled(self, enabled: bool) -> None:
        with self._lock:
            self._enabled = enabled
        if enabled:
            self._worker.submit(self._start)
        else:
            self._worker.submit(self._stop)

    def enable(self) -> None:
        self.set_enabled(True)

    def disable(self) -> None:
        self.set_enabled(False)

    def update_presence(
        self,
        track: str,
        artist: str,
        album: str,
        duration_s: float = 0.0,
        elapsed_s: float = 0.0,
    ) -> None:
        info = TrackInfo(track, artist, album, float(duration_s or 0), float(elapsed_s or 0))
        self._worker.submit(lambda: self._publish(info))

    def clear_presence(self) -> None:
        self._worker.submit(self._clear)

    def test_connection(self, completion: TestCallback) -> None:
        """Run one connect + handshake + close cycle and report the outcome.

        The session itself is left untouched. ``completion(success, message)``
        is called on the notifier thread.
        """
        self._worker.submit(lambda: self._run_test(completion))

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Wait until queued work and pending notifications have run."""
        return self._worker.flush(timeout) and self._notifier.flush(timeout)

    def shutdown(self, timeout: float = 2.0) -> None:
        with self._lock:
            self._enabled = False
        self._worker.submit(self._stop)
        self._worker.flush(timeout)
        self._worker.stop(timeout)
        self._notifier.flush(timeout)
        self._notifier.stop(timeout)

    # ------------------------------------------------------------------
    # Enable / disable (worker thread)
    # ------------------------------------------------------------------

    def _start(self) -> None:
        if not self.is_enabled:
            return
        if not self._client_id:
            logger.warning("No Discord client ID configured, presence stays offline")
            return
        self._connect_if_needed()
        if self.is_enabled and not self._supervisor.polling:
            self._supervisor.start_polling()

    def _stop(self) -> None:
        if self.is_enabled:
            return
        self._supervisor.cancel()
        self._clear()
        self._disconnect()

    def _on_retry(self) -> None:
        if self.is_enabled and self.state == ConnectionState.DISCONNECTED:
            self._connect_if_needed()

    def _on_poll(self) -> None:
        if not self.is_enabled:
            return
        state = self.state
        if state == ConnectionState.DISCONNECTED:
            self._connect_if_needed()
        elif state == ConnectionState.CONNECTED:
            self._drain_inbound()

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    def _connect_if_needed(self) -> None:
        if self.state != ConnectionState.DISCONNECTED:
            return
        if not self._client_id:
            return

        self._set_state(ConnectionState.CONNECTING)
        sock = self._open_session_socket()

        if sock is None:
            self._set_state(ConnectionState.DISCONNECTED)
            if self.is_enabled:
                self._supervisor.schedule_retry()
            return

        if not self.is_enabled:
            # disable() arrived while the handshake was in flight
            self._close_socket(sock)
            self._set_state(ConnectionState.DISCONNECTED)
            return

        self._sock = sock
        self._supervisor.reset()
        self._set_state(ConnectionState.CONNECTED)

    def _open_session_socket(self) -> Optional[socket.socket]:
        candidates = self._locate()
        if not candidates:
            logger.debug("Cannot determine any temp directory for the Discord socket")
            return None
        for candidate in candidates:
            if not self.is_enabled:
                return None
            sock, _ = self._try_candidate(candidate)
            if sock is not None:
                return sock
        logger.debug("No active IPC socket found in any candidate directory")
        return None

    def _locate(self) -> list[SocketCandidate]:
        try:
            return list(self._locator())
        except Exception as exc:
            logger.debug("Socket discovery failed: %s", exc)
            return []

    def _try_candidate(self, candidate: SocketCandidate) -> tuple[Optional[socket.socket], bool]:
        """Connect and handshake on one socket path.

        Returns the ready socket (or ``None``) and whether the connect itself
        succeeded.
        """
        path = candidate.path
        try:
            sock = self._socket_factory()
        except OSError as exc:
            logger.debug("Cannot create socket: %s", exc)
            return None, False

        try:
            sock.connect(path)
        except OSError as exc:
            logger.debug("connect() failed on %s: %s", path, exc)
            self._close_socket(sock)
            return None, False

        if self._handshake(sock):
            logger.info("Connected to Discord IPC at %s", path)
            return sock, True

        logger.warning("Handshake failed on slot %s", candidate.slot)
        self._close_socket(sock)
        return None, True

    def _handshake(self, sock: socket.socket) -> bool:
        # Any reply other than CLOSE counts as READY; the body is not validated.
        try:
            sock.settimeout(self._io_timeout_s)
            sock.sendall(encode_frame(Opcode.HANDSHAKE, {"v": RPC_VERSION, "client_id": self._client_id}))
            opcode, _ = decode_frame(socket_reader(sock))
        except (OSError, DiscordIPCError) as exc:
            logger.warning("No handshake response: %s", exc)
            return False
        if opcode == Opcode.CLOSE:
            logger.warning("Received CLOSE during handshake")
            return False
        return True

    def _disconnect(self) -> None:
        sock, self._sock = self._sock, None
        if sock is not None:
            self._close_socket(sock)
        self._current = None
        self._set_state(ConnectionState.DISCONNECTED)

    def _handle_connection_lost(self) -> None:
        self._disconnect()
        if self.is_enabled:
            self._supervisor.schedule_retry()

    @staticmethod
    def _close_socket(sock: socket.socket) -> None:
        try:
            sock.close()
        except OSError:
            pass

    # ------------------------------------------------------------------
    # Frame I/O
    # ------------------------------------------------------------------

    def _send_frame(self, opcode: Opcode, body: dict) -> bool:
        sock = self._sock
        if sock is None:
            return False
        try:
            data = encode_frame(opcode, body)
        except EncodingError as exc:
            logger.error("Failed to serialize payload: %s", exc)
            return False
        try:
            sock.sendall(data)
        except OSError as exc:
            logger.error("Write failed: %s", exc)
            self._handle_connection_lost()
            return False
        return True

    def _drain_inbound(self) -> None:
        """Consume whatever Discord has sent without blocking."""
        while self._sock is not None:
            sock = self._sock
            try:
                readable, _, _ = select.select([sock], [], [], 0)
            except (OSError, ValueError) as exc:
                logger.info("IPC socket unusable: %s", exc)
                self._handle_connection_lost()
                return
            if not readable:
                return
            try:
                opcode, body = decode_frame(socket_reader(sock))
            except (OSError, DiscordIPCError) as exc:
                logger.info("Discord closed the IPC connection: %s", exc)
                self._handle_connection_lost()
                return

            if opcode == Opcode.CLOSE:
                logger.info("Received CLOSE from Discord: %s", body)
                self._handle_connection_lost()
                return
            if opcode == Opcode.PING:
                self._send_frame(Opcode.PONG, body or {})
            elif body and body.get("evt") == "ERROR":
                logger.warning("Discord rejected command: %s", body.get("data"))

    # ------------------------------------------------------------------
    # Presence (worker thread)
    # ------------------------------------------------------------------

    def _publish(self, info: TrackInfo) -> None:
        if self.state != ConnectionState.CONNECTED:
            return
        self._drain_inbound()
        if self.state != ConnectionState.CONNECTED:
            return

        self._current = info
        self._published_at = time.time()

        cached = self._artwork.cached_artwork_url(info.track, info.artist) if self._artwork else None
        self._send_activity(info, cached)

        if cached is None and self._artwork is not None:
            self._artwork.fetch_artwork_url(
                info.track,
                info.artist,
                lambda url: self._on_artwork_resolved(info, url),
            )

    def _on_artwork_resolved(self, info: TrackInfo, url: Optional[str]) -> None:
        # Called from the lookup thread
        if url is None:
            return
        self._worker.submit(lambda: self._resend_with_artwork(info, url))

    def _resend_with_artwork(self, info: TrackInfo, url: str) -> None:
        if self.state != ConnectionState.CONNECTED:
            return
        current = self._current
        if current is None or current.cache_key != info.cache_key:
            return
        self._send_activity(current, url)

    def _send_activity(self, info: TrackInfo, artwork_url: Optional[str]) -> None:
        activity = build_activity(info, artwork_url, now=self._published_at)
        self._send_frame(Opcode.FRAME, build_set_activity(self._pid, activity))

    def _clear(self) -> None:
        if self.state != ConnectionState.CONNECTED:
            return
        self._current = None
        self._send_frame(Opcode.FRAME, build_clear_activity(self._pid))

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def _run_test(self, completion: TestCallback) -> None:
        code = self._probe()
        success = code == CONNECTED_OK
        message = DIAGNOSTIC_MESSAGES[code]
        self._notifier.submit(lambda: completion(success, message))

    def _probe(self) -> str:
        if not self._client_id:
            return NOT_CONFIGURED
        if self.state == ConnectionState.CONNECTED:
            return CONNECTED_OK
        reached = False
        for candidate in self._locate():
            sock, connected = self._try_candidate(candidate)
            if sock is not None:
                self._close_socket(sock)
                return CONNECTED_OK
            reached = reached or connected
        return HANDSHAKE_FAILED if reached else DISCORD_UNAVAILABLE

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def _set_state(self, new_state: ConnectionState) -> None:
        with self._lock:
            old_state = self._state
            if old_state == new_state:
                return
            self._state = new_state
        logger.debug("Discord IPC state %s -> %s", old_state.value, new_state.value)
        callback = self.on_state_change
        if callback is not None:
            self._notifier.submit(lambda: callback(new_state))
