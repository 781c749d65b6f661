"""Application entrypoint."""

from __future__ import annotations

import logging
import sys
import threading
import time
from typing import Optional

from artwork import ArtworkService
from config import JsonConfigStore, resolve_client_id
from discord_rpc import DiscordRPCService
from logging_setup import configure_logging
from models import ConnectionState, TrackInfo
from playback_monitor import PlayerctlPlaybackMonitor

try:
    from PySide6.QtCore import QObject, Signal, QSize
    from PySide6.QtGui import QAction, QIcon, QPixmap, QPainter, QColor, QBrush
    from PySide6.QtWidgets import QApplication, QInputDialog, QMenu, QMessageBox, QSystemTrayIcon
except Exception as exc:  # pragma: no cover
    raise SystemExit(f"PySide6 is required to run the desktop app: {exc}")

logger = logging.getLogger(__name__)


def _create_icon(color: str = "#888888", size: int = 22) -> QIcon:
    """Generate a simple circular tray icon with the given color."""
    pixmap = QPixmap(QSize(size, size))
    pixmap.fill(QColor(0, 0, 0, 0))  # transparent background
    painter = QPainter(pixmap)
    painter.setRenderHint(QPainter.Antialiasing, True)
    painter.setBrush(QBrush(QColor(color)))
    painter.setPen(QColor(color))
    painter.drawEllipse(2, 2, size - 4, size - 4)
    painter.end()
    return QIcon(pixmap)


ICON_DISCONNECTED = "#888888"  # grey
ICON_CONNECTING = "#FFB020"    # amber
ICON_CONNECTED = "#5865F2"     # blurple

STATE_TOOLTIPS = {
    ConnectionState.DISCONNECTED.value: ("Now Playing — Disconnected", ICON_DISCONNECTED),
    ConnectionState.CONNECTING.value: ("Now Playing — Connecting...", ICON_CONNECTING),
    ConnectionState.CONNECTED.value: ("Now Playing — Connected to Discord", ICON_CONNECTED),
}


class UIBridge(QObject):
    state_signal = Signal(str)
    test_signal = Signal(bool, str)


class App:
    def __init__(self) -> None:
        self.app = QApplication(sys.argv)
        self.app.setQuitOnLastWindowClosed(False)
        self.config_store = JsonConfigStore()
        self.ui = UIBridge()
        self.ui.state_signal.connect(self._on_state_change_ui)
        self.ui.test_signal.connect(self._on_test_result_ui)

        self.artwork = ArtworkService()
        self.presence = self._create_presence(resolve_client_id(self.config_store))
        self.monitor = PlayerctlPlaybackMonitor()

        # Last track reported by the monitor, replayed after (re)connecting
        self._now_playing: Optional[TrackInfo] = None
        self._now_playing_at = 0.0

        self.tray = QSystemTrayIcon()
        self.tray.setIcon(_create_icon(ICON_DISCONNECTED))
        self.tray.setToolTip(STATE_TOOLTIPS[ConnectionState.DISCONNECTED.value][0])
        self._setup_menu()
        self.tray.show()

    def _create_presence(self, client_id: str) -> DiscordRPCService:
        return DiscordRPCService(
            client_id=client_id,
            artwork=self.artwork,
            on_state_change=self._on_state_change,
        )

    def _setup_menu(self) -> None:
        menu = QMenu()

        self.enable_action = QAction("Discord Presence", menu)
        self.enable_action.setCheckable(True)
        self.enable_action.setChecked(self.config_store.get_presence_enabled())
        self.enable_action.toggled.connect(self._toggle_presence)
        menu.addAction(self.enable_action)

        client_action = QAction("Set Discord Client ID", menu)
        client_action.triggered.connect(self._set_client_id)
        menu.addAction(client_action)

        test_action = QAction("Test Connection", menu)
        test_action.triggered.connect(self._test_connection)
        menu.addAction(test_action)

        menu.addSeparator()
        quit_action = QAction("Quit", menu)
        quit_action.triggered.connect(self.quit)
        menu.addAction(quit_action)

        self.tray.setContextMenu(menu)

    def _toggle_presence(self, enabled: bool) -> None:
        self.config_store.set_presence_enabled(enabled)
        self.presence.set_enabled(enabled)

    def _set_client_id(self) -> None:
        value, ok = QInputDialog.getText(
            None, "Discord Client ID", "Discord application ID", text=self.config_store.get_client_id()
        )
        if not ok:
            return
        self.config_store.set_client_id(value)
        # Hot-swap the presence session with the new ID
        old = self.presence
        old.on_state_change = None
        self.presence = self._create_presence(resolve_client_id(self.config_store))
        # Shutting down the old session waits on its worker, keep it off the Qt thread
        threading.Thread(
            target=self._swap_presence,
            args=(old, self.presence, self.enable_action.isChecked()),
            daemon=True,
        ).start()
        self._on_state_change_ui(ConnectionState.DISCONNECTED.value)
        QMessageBox.information(None, "Saved", "Client ID saved and applied.")

    @staticmethod
    def _swap_presence(old: DiscordRPCService, new: DiscordRPCService, enabled: bool) -> None:
        # The old session clears its activity before the new one may publish
        old.shutdown()
        new.set_enabled(enabled)

    def _test_connection(self) -> None:
        self.presence.test_connection(self._on_test_result)

    # ------------------------------------------------------------------
    # Callbacks (called from worker threads → emit signals for UI thread)
    # ------------------------------------------------------------------

    def _on_state_change(self, state: ConnectionState) -> None:
        self.ui.state_signal.emit(state.value)

    def _on_test_result(self, success: bool, message: str) -> None:
        self.ui.test_signal.emit(success, message)

    def _on_track(self, track: str, artist: str, album: str, duration_s: float, elapsed_s: float) -> None:
        self._now_playing = TrackInfo(track, artist, album, duration_s, elapsed_s)
        self._now_playing_at = time.time()
        self.presence.update_presence(track, artist, album, duration_s, elapsed_s)

    def _on_stopped(self) -> None:
        self._now_playing = None
        self.presence.clear_presence()

    # ------------------------------------------------------------------
    # UI thread handlers (safe for Qt)
    # ------------------------------------------------------------------

    def _on_state_change_ui(self, state: str) -> None:
        tooltip, color = STATE_TOOLTIPS.get(state, STATE_TOOLTIPS[ConnectionState.DISCONNECTED.value])
        self.tray.setIcon(_create_icon(color))
        self.tray.setToolTip(tooltip)
        info = self._now_playing
        if state == ConnectionState.CONNECTED.value and info is not None:
            elapsed = info.elapsed_s + (time.time() - self._now_playing_at)
            self.presence.update_presence(info.track, info.artist, info.album, info.duration_s, elapsed)

    def _on_test_result_ui(self, success: bool, message: str) -> None:
        icon = QSystemTrayIcon.Information if success else QSystemTrayIcon.Warning
        self.tray.showMessage("Discord", message, icon, 5000)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run(self) -> int:
        self.presence.set_enabled(self.enable_action.isChecked())
        try:
            self.monitor.start(on_track=self._on_track, on_stopped=self._on_stopped)
        except Exception as exc:
            logger.warning("Playback monitor disabled: %s", exc)
            self.tray.showMessage("Now Playing", f"Playback monitor disabled: {exc}")
        return self.app.exec()

    def quit(self) -> None:
        self.monitor.stop()
        self.presence.shutdown()
        self.app.quit()


def main() -> int:
    configure_logging()
    app = App()
    return app.run()


if __name__ == "__main__":
    raise SystemExit(main())
