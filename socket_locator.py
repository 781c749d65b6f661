"""Locate Discord's IPC socket.

Discord listens on ``<tempdir>/discord-ipc-<0..9>`` where ``<tempdir>`` is the
temp directory *Discord* sees. Sandboxed or containerised callers get a
virtualised view of their own temp directory, so the real one is read out of
the running Discord process' environment first, and the caller's own per-user
temp directory is only a fallback. Every path is canonicalised because sandbox
rules match resolved paths only.
"""

from __future__ import annotations

import getpass
import logging
import os
import sys
import tempfile
from typing import Optional

from models import SOCKET_SLOTS, SocketCandidate

try:
    import psutil
except Exception:  # pragma: no cover
    psutil = None  # type: ignore

logger = logging.getLogger(__name__)

# getpass raises KeyError (OSError on 3.13+) for a uid without a passwd entry
LOOKUP_ERRORS: tuple[type[BaseException], ...] = (OSError, KeyError)
if psutil is not None:
    LOOKUP_ERRORS += (psutil.Error,)

# Stable, Canary and PTB builds across Linux and macOS.
DISCORD_PROCESS_NAMES = (
    "Discord",
    "Discord Canary",
    "Discord PTB",
    "DiscordCanary",
    "DiscordPTB",
    "discord",
    "discord-canary",
    "discord-ptb",
)

TEMP_ENV_VARS = ("XDG_RUNTIME_DIR", "TMPDIR", "TMP", "TEMP")

# Sandboxed Linux packages put the socket one level down.
LINUX_SUBDIRECTORIES = ("app/com.discordapp.Discord", "snap.discord")


def split_null_terminated(buffer: bytes, length: Optional[int] = None) -> Optional[list[str]]:
    """Split ``buffer[:length]`` into its NUL-delimited UTF-8 strings.

    Empty runs and entries that are not valid UTF-8 are skipped. Returns
    ``None`` when ``length`` is negative or larger than the buffer.
    """
    size = len(buffer) if length is None else length
    if size < 0 or size > len(buffer):
        return None

    strings: list[str] = []
    start = 0
    while start < size:
        end = buffer.find(b"\x00", start, size)
        if end == -1:
            end = size
        if end > start:
            try:
                strings.append(buffer[start:end].decode("utf-8"))
            except UnicodeDecodeError:
                pass
        start = end + 1
    return strings


def parse_environ(entries: list[str]) -> dict[str, str]:
    env: dict[str, str] = {}
    for entry in entries:
        key, sep, value = entry.partition("=")
        if sep and key and key not in env:
            env[key] = value
    return env


def find_discord_pid() -> Optional[int]:
    """Return the PID of a Discord process owned by the current user."""
    if psutil is None:
        return None
    user = getpass.getuser()
    for proc in psutil.process_iter(["pid", "name", "username"]):
        info = proc.info
        if info.get("name") not in DISCORD_PROCESS_NAMES:
            continue
        username = info.get("username") or ""
        # Windows-style "DOMAIN\\user" usernames
        if username.split("\\")[-1] != user:
            continue
        return int(info["pid"])
    return None


def read_process_environ(pid: int) -> Optional[dict[str, str]]:
    """Read the environment of ``pid`` as the kernel reports it."""
    if sys.platform.startswith("linux"):
        try:
            with open(f"/proc/{pid}/environ", "rb") as fh:
                raw = fh.read()
        except OSError as exc:
            logger.debug("Cannot read environment of pid %s: %s", pid, exc)
            return None
        entries = split_null_terminated(raw)
        return parse_environ(entries) if entries is not None else None

    if psutil is None:
        return None
    try:
        # KERN_PROCARGS2 on macOS, not redirected by the app sandbox
        return dict(psutil.Process(pid).environ())
    except (psutil.Error, OSError) as exc:
        logger.debug("Cannot read environment of pid %s: %s", pid, exc)
        return None


def read_discord_temp_dir() -> Optional[str]:
    pid = find_discord_pid()
    if pid is None:
        return None
    env = read_process_environ(pid)
    if not env:
        return None
    for name in TEMP_ENV_VARS:
        value = env.get(name)
        if value:
            logger.debug("Read %s from Discord process %s: %s", name, pid, value)
            return value
    return None


def user_temp_dir() -> Optional[str]:
    """The OS-standard per-user temp directory of this process."""
    if sys.platform == "darwin":
        try:
            value = os.confstr("CS_DARWIN_USER_TEMP_DIR")
        except (ValueError, OSError):
            value = None
        if value:
            return value
    for name in TEMP_ENV_VARS:
        value = os.environ.get(name)
        if value:
            return value
    try:
        return tempfile.gettempdir()
    except OSError:
        return None


def _expand(directory: str) -> list[str]:
    if not sys.platform.startswith("linux"):
        return [directory]
    expanded = [directory]
    for sub in LINUX_SUBDIRECTORIES:
        path = os.path.join(directory, sub)
        if os.path.isdir(path):
            expanded.append(os.path.realpath(path))
    return expanded


def candidate_directories() -> list[str]:
    """Directories to search for the socket, most likely first."""
    raw: list[str] = []
    try:
        discord_tmp = read_discord_temp_dir()
    except LOOKUP_ERRORS as exc:
        logger.debug("Discord process lookup failed: %s", exc)
        discord_tmp = None
    if discord_tmp:
        raw.append(discord_tmp)
    fallback = user_temp_dir()
    if fallback:
        raw.append(fallback)

    candidates: list[str] = []
    for path in raw:
        for directory in _expand(os.path.realpath(path)):
            if directory not in candidates:
                candidates.append(directory)
    return candidates


def socket_path(directory: str, slot: int) -> str:
    if not 0 <= slot < SOCKET_SLOTS:
        raise ValueError(f"socket slot out of range: {slot}")
    return SocketCandidate(directory, slot).path


def socket_candidates() -> list[SocketCandidate]:
    return [
        SocketCandidate(directory, slot)
        for directory in candidate_directories()
        for slot in range(SOCKET_SLOTS)
    ]
