"""Shared exceptions, diagnostic codes and user-facing messages."""

from __future__ import annotations


class DiscordIPCError(Exception):
    """Base class for IPC session errors."""


class EncodingError(DiscordIPCError):
    """Frame body could not be serialized to JSON."""


class ProtocolError(DiscordIPCError):
    """Remote endpoint violated the framing protocol."""


class ConnectionClosedError(ProtocolError):
    """Remote endpoint closed the socket or a read came up short."""


NOT_CONFIGURED = "NOT_CONFIGURED"
DISCORD_UNAVAILABLE = "DISCORD_UNAVAILABLE"
HANDSHAKE_FAILED = "HANDSHAKE_FAILED"
CONNECTED_OK = "CONNECTED_OK"

DIAGNOSTIC_MESSAGES = {
    NOT_CONFIGURED: "No Discord client ID configured.",
    DISCORD_UNAVAILABLE: "Cannot reach Discord, is it running?",
    HANDSHAKE_FAILED: "Discord refused the connection handshake.",
    CONNECTED_OK: "Connected to Discord.",
}
