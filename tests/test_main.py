"""Tests for the tray app's client-ID hot swap."""

from __future__ import annotations

import threading
import time
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

pytest.importorskip("PySide6.QtWidgets")

from main import App  # noqa: E402


class FakePresence:
    def __init__(self, log: list[str], name: str, gate: threading.Event | None = None) -> None:
        self.log = log
        self.name = name
        self.gate = gate
        self.on_state_change = object()
        self.shut_down = threading.Event()

    def shutdown(self) -> None:
        if self.gate is not None:
            self.gate.wait(timeout=2.0)
        self.log.append(f"{self.name}.shutdown")
        self.shut_down.set()

    def set_enabled(self, enabled: bool) -> None:
        self.log.append(f"{self.name}.set_enabled({enabled})")


def _fake_app(old: FakePresence, new: FakePresence) -> SimpleNamespace:
    store = MagicMock()
    store.get_client_id.return_value = "111"
    return SimpleNamespace(
        config_store=store,
        presence=old,
        enable_action=SimpleNamespace(isChecked=lambda: True),
        _create_presence=lambda client_id: new,
        _on_state_change_ui=lambda state: None,
        _swap_presence=App._swap_presence,
    )


@patch("main.QMessageBox.information")
@patch("main.QInputDialog.getText", return_value=("222", True))
def test_set_client_id_does_not_wait_for_old_session(mock_get: MagicMock, mock_info: MagicMock) -> None:
    log: list[str] = []
    gate = threading.Event()
    old = FakePresence(log, "old", gate=gate)
    new = FakePresence(log, "new")
    app = _fake_app(old, new)

    App._set_client_id(app)

    # Returned while the old session is still shutting down
    assert app.presence is new
    assert old.on_state_change is None
    assert log == []
    mock_info.assert_called_once()

    gate.set()
    assert old.shut_down.wait(timeout=2.0)
    for _ in range(200):
        if len(log) == 2:
            break
        time.sleep(0.01)
    assert log == ["old.shutdown", "new.set_enabled(True)"]
    app.config_store.set_client_id.assert_called_once_with("222")


@patch("main.QInputDialog.getText", return_value=("", False))
def test_cancelled_dialog_keeps_session(mock_get: MagicMock) -> None:
    log: list[str] = []
    old = FakePresence(log, "old")
    app = _fake_app(old, FakePresence(log, "new"))

    App._set_client_id(app)

    assert app.presence is old
    assert log == []
