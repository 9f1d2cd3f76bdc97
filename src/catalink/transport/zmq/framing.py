"""ZMQ multipart framing for session messages.

DEALER<->ROUTER, both directions:
    (optional routing prefix...), version, type, id, target, payload_json

Client types:  CONNECT, CALL, SUB, UNSUB
Server types:  CONNECTED, RESULT, READY, NOSUB, DATA, ERROR
"""

from __future__ import annotations

import itertools
import threading
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence, Tuple

from ... import json


PROTOCOL_VERSION = "c1"
_VERSION_BYTES = PROTOCOL_VERSION.encode()

CONNECT = "CONNECT"
CALL = "CALL"
SUB = "SUB"
UNSUB = "UNSUB"

CONNECTED = "CONNECTED"
RESULT = "RESULT"
READY = "READY"
NOSUB = "NOSUB"
DATA = "DATA"
ERROR = "ERROR"


@dataclass
class Frame:
    msg_type: str
    msg_id: bytes = b""
    target: Optional[str] = None
    payload: Any = None
    prefix: Tuple[bytes, ...] = field(default_factory=tuple)


def to_frames(frame: Frame, *, include_prefix: bool = False) -> Tuple[bytes, ...]:
    """Encode a :class:`Frame` to ZMQ multipart frames."""

    prefix = frame.prefix if include_prefix else ()

    if frame.payload is None:
        payload = b""
    else:
        payload = json.dumps(frame.payload)

    parts = (
        _VERSION_BYTES,
        frame.msg_type.encode(),
        frame.msg_id,
        (frame.target or "").encode(),
        payload,
    )
    return tuple(prefix) + parts


def from_frames(parts: Sequence[bytes]) -> Frame:
    """Decode multipart frames into a :class:`Frame`.

    ROUTER sockets prepend an identity frame; it is kept as ``prefix`` so a
    reply can be routed back.
    """

    if not parts:
        raise ValueError("empty message")

    if parts[0] == _VERSION_BYTES:
        prefix: Tuple[bytes, ...] = ()
        start = 0
    else:
        prefix = (parts[0],)
        start = 1

    if len(parts) < start + 5:
        raise ValueError(f"expected {start + 5} frames, received {len(parts)}")

    their_version = parts[start]
    if their_version != _VERSION_BYTES:
        err = {
            "type": "RuntimeError",
            "text": f"message is protocol {their_version!r}, recipient expects {_VERSION_BYTES!r}",
        }
        return Frame(ERROR, parts[start + 2], None, err, prefix)

    msg_type = parts[start + 1].decode()
    msg_id = parts[start + 2]
    target = parts[start + 3].decode() if parts[start + 3] not in (b"", None) else None
    payload_bytes = parts[start + 4]

    if payload_bytes in (b"", None):
        payload = None
    else:
        try:
            payload = json.loads(payload_bytes)
        except json.errors as exc:
            raise ValueError(f"malformed {msg_type} payload: {exc}") from exc

    return Frame(msg_type, msg_id, target, payload, prefix)


_id_min = 0
_id_max = 0xFFFFFFFF
_id_lock = threading.Lock()
_id_ticker = itertools.count(_id_min)


def next_id() -> bytes:
    """Return the next locally unique message id."""

    global _id_ticker

    with _id_lock:
        id = next(_id_ticker)
        if id >= _id_max:
            _id_ticker = itertools.count(_id_min)

    return ("%08x" % id).encode()
