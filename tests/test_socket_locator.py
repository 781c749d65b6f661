"""Tests for IPC socket discovery."""

from __future__ import annotations

import os
import sys
from pathlib import Path
from types import SimpleNamespace

import psutil
import pytest

import socket_locator
from models import SocketCandidate
from socket_locator import (
    candidate_directories,
    parse_environ,
    socket_candidates,
    socket_path,
    split_null_terminated,
)


# ---------------------------------------------------------------
# Null-delimited scanner
# ---------------------------------------------------------------

def test_split_null_terminated_skips_empty_runs() -> None:
    buffer = b"/usr/bin/discord\x00\x00\x00HOME=/home/me\x00TMPDIR=/tmp/x\x00"
    assert split_null_terminated(buffer) == ["/usr/bin/discord", "HOME=/home/me", "TMPDIR=/tmp/x"]


def test_split_null_terminated_respects_declared_length() -> None:
    buffer = b"A=1\x00B=2\x00C=3\x00"
    assert split_null_terminated(buffer, 6) == ["A=1", "B="]


def test_split_null_terminated_rejects_bad_length() -> None:
    assert split_null_terminated(b"A=1\x00", 50) is None
    assert split_null_terminated(b"A=1\x00", -1) is None


def test_split_null_terminated_skips_invalid_utf8() -> None:
    buffer = b"A=1\x00\xff\xfe\x00B=2"
    assert split_null_terminated(buffer) == ["A=1", "B=2"]


def test_parse_environ_keeps_first_value() -> None:
    env = parse_environ(["TMPDIR=/a", "junk", "TMPDIR=/b", "EMPTY=", "=nokey"])
    assert env == {"TMPDIR": "/a", "EMPTY": ""}


# ---------------------------------------------------------------
# Paths
# ---------------------------------------------------------------

def test_socket_path_appends_prefix_and_slot() -> None:
    assert socket_path("/run/user/1000", 3) == os.path.join("/run/user/1000", "discord-ipc-3")


def test_socket_path_rejects_out_of_range_slot() -> None:
    with pytest.raises(ValueError):
        socket_path("/tmp", 10)


def test_socket_candidates_cover_every_slot(monkeypatch) -> None:  # noqa: ANN001
    monkeypatch.setattr(socket_locator, "candidate_directories", lambda: ["/a", "/b"])

    candidates = socket_candidates()

    assert len(candidates) == 20
    assert candidates[0] == SocketCandidate("/a", 0)
    assert candidates[10] == SocketCandidate("/b", 0)
    assert candidates[13].path == os.path.join("/b", "discord-ipc-3")


# ---------------------------------------------------------------
# Candidate directories
# ---------------------------------------------------------------

def test_candidate_directories_prefers_discord_env_and_resolves_symlinks(tmp_path: Path, monkeypatch) -> None:  # noqa: ANN001
    real = tmp_path / "real"
    real.mkdir()
    link = tmp_path / "link"
    link.symlink_to(real)
    own = tmp_path / "own"
    own.mkdir()

    monkeypatch.setattr(socket_locator, "read_discord_temp_dir", lambda: str(link))
    monkeypatch.setattr(socket_locator, "user_temp_dir", lambda: str(own))

    assert candidate_directories() == [os.path.realpath(real), os.path.realpath(own)]


def test_candidate_directories_drops_duplicates(tmp_path: Path, monkeypatch) -> None:  # noqa: ANN001
    monkeypatch.setattr(socket_locator, "read_discord_temp_dir", lambda: str(tmp_path))
    monkeypatch.setattr(socket_locator, "user_temp_dir", lambda: str(tmp_path) + os.sep)

    assert candidate_directories() == [os.path.realpath(tmp_path)]


def test_candidate_directories_empty_when_nothing_resolves(monkeypatch) -> None:  # noqa: ANN001
    monkeypatch.setattr(socket_locator, "read_discord_temp_dir", lambda: None)
    monkeypatch.setattr(socket_locator, "user_temp_dir", lambda: None)

    assert candidate_directories() == []


@pytest.mark.parametrize(
    "error",
    [KeyError("getpwuid(): uid not found: 4242"), PermissionError("denied"), psutil.AccessDenied(pid=1)],
    ids=["no-passwd-entry", "os-error", "psutil-error"],
)
def test_candidate_directories_keep_fallback_when_process_lookup_fails(
    tmp_path: Path, monkeypatch, error: BaseException  # noqa: ANN001
) -> None:
    def fail() -> None:
        raise error

    monkeypatch.setattr(socket_locator, "find_discord_pid", fail)
    monkeypatch.setattr(socket_locator, "user_temp_dir", lambda: str(tmp_path))

    assert candidate_directories() == [os.path.realpath(tmp_path)]


def test_socket_candidates_survive_getuser_failure(tmp_path: Path, monkeypatch) -> None:  # noqa: ANN001
    def no_user() -> str:
        raise KeyError("getpwuid(): uid not found: 4242")

    monkeypatch.setattr(socket_locator.getpass, "getuser", no_user)
    monkeypatch.setattr(socket_locator, "user_temp_dir", lambda: str(tmp_path))

    candidates = socket_candidates()

    assert candidates[0] == SocketCandidate(os.path.realpath(tmp_path), 0)
    assert len(candidates) == 10


@pytest.mark.skipif(not sys.platform.startswith("linux"), reason="flatpak layout is Linux only")
def test_candidate_directories_include_flatpak_subdirectory(tmp_path: Path, monkeypatch) -> None:  # noqa: ANN001
    flatpak = tmp_path / "app" / "com.discordapp.Discord"
    flatpak.mkdir(parents=True)
    monkeypatch.setattr(socket_locator, "read_discord_temp_dir", lambda: None)
    monkeypatch.setattr(socket_locator, "user_temp_dir", lambda: str(tmp_path))

    assert candidate_directories() == [os.path.realpath(tmp_path), os.path.realpath(flatpak)]


# ---------------------------------------------------------------
# Discord process lookup
# ---------------------------------------------------------------

def _proc(pid: int, name: str, username: str) -> SimpleNamespace:
    return SimpleNamespace(info={"pid": pid, "name": name, "username": username})


def test_find_discord_pid_matches_same_user_only(monkeypatch) -> None:  # noqa: ANN001
    procs = [
        _proc(10, "bash", "me"),
        _proc(11, "Discord", "someone-else"),
        _proc(12, "Discord Canary", "me"),
    ]
    fake_psutil = SimpleNamespace(process_iter=lambda attrs: iter(procs))
    monkeypatch.setattr(socket_locator, "psutil", fake_psutil)
    monkeypatch.setattr(socket_locator.getpass, "getuser", lambda: "me")

    assert socket_locator.find_discord_pid() == 12


def test_find_discord_pid_none_without_psutil(monkeypatch) -> None:  # noqa: ANN001
    monkeypatch.setattr(socket_locator, "psutil", None)
    assert socket_locator.find_discord_pid() is None


def test_read_discord_temp_dir_uses_process_environment(monkeypatch) -> None:  # noqa: ANN001
    monkeypatch.setattr(socket_locator, "find_discord_pid", lambda: 99)
    monkeypatch.setattr(
        socket_locator,
        "read_process_environ",
        lambda pid: {"HOME": "/home/me", "TMPDIR": "/var/folders/xy/T/"},
    )

    assert socket_locator.read_discord_temp_dir() == "/var/folders/xy/T/"


def test_read_discord_temp_dir_skipped_when_not_running(monkeypatch) -> None:  # noqa: ANN001
    def fail(pid: int) -> None:
        raise AssertionError("environment must not be read")

    monkeypatch.setattr(socket_locator, "find_discord_pid", lambda: None)
    monkeypatch.setattr(socket_locator, "read_process_environ", fail)

    assert socket_locator.read_discord_temp_dir() is None


@pytest.mark.skipif(not sys.platform.startswith("linux"), reason="/proc is Linux only")
def test_read_process_environ_reads_own_process() -> None:
    env = socket_locator.read_process_environ(os.getpid())
    assert isinstance(env, dict)


def test_user_temp_dir_falls_back_to_environment(monkeypatch) -> None:  # noqa: ANN001
    monkeypatch.setattr(socket_locator.sys, "platform", "linux")
    monkeypatch.setenv("XDG_RUNTIME_DIR", "/run/user/1000")

    assert socket_locator.user_temp_dir() == "/run/user/1000"
