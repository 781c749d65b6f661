"""Discord IPC frame codec.

A frame is ``opcode:u32-LE, length:u32-LE, body:bytes[length]`` where the body
is UTF-8 JSON. The codec performs no I/O: callers hand in a ``read(n)``
primitive for decoding and write the encoded bytes themselves.
"""

from __future__ import annotations

import json
import socket
import struct
from typing import Any, Callable, Optional

from errors import ConnectionClosedError, EncodingError

HEADER = struct.Struct("<II")
HEADER_SIZE = HEADER.size
MAX_BODY_LENGTH = 65536

ReadFn = Callable[[int], bytes]


def encode_frame(opcode: int, body: dict[str, Any]) -> bytes:
    try:
        payload = json.dumps(body, separators=(",", ":"), allow_nan=False).encode("utf-8")
    except (TypeError, ValueError) as exc:
        raise EncodingError(f"cannot serialize frame body: {exc}") from exc
    return HEADER.pack(int(opcode), len(payload)) + payload


def decode_frame(read: ReadFn) -> tuple[int, Optional[dict[str, Any]]]:
    """Read one frame through ``read``.

    Raises ``ConnectionClosedError`` on a short header or body read. A length
    outside ``(0, MAX_BODY_LENGTH)`` yields ``(opcode, None)`` and the body is
    not read. An unparsable body also yields ``(opcode, None)``.
    """
    header = read(HEADER_SIZE)
    if len(header) < HEADER_SIZE:
        raise ConnectionClosedError(f"short header read ({len(header)} bytes)")
    opcode, length = HEADER.unpack(header)

    if not 0 < length < MAX_BODY_LENGTH:
        return opcode, None

    payload = read(length)
    if len(payload) < length:
        raise ConnectionClosedError(f"short body read ({len(payload)}/{length} bytes)")

    try:
        body = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        return opcode, None
    if not isinstance(body, dict):
        return opcode, None
    return opcode, body


def socket_reader(sock: socket.socket) -> ReadFn:
    """Wrap ``sock`` as a ``read(n)`` that loops until ``n`` bytes or EOF."""

    def _read(n: int) -> bytes:
        buf = bytearray()
        while len(buf) < n:
            chunk = sock.recv(n - len(buf))
            if not chunk:
                break
            buf.extend(chunk)
        return bytes(buf)

    return _read
