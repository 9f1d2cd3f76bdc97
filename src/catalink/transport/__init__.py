"""Transport layer: the contract a session drives, and its implementations."""

import os

from .base import (
    CONNECTED,
    DISCONNECTED,
    ERROR,
    RemoteError,
    Subscription,
    SubscriptionError,
    Transport,
    TransportConnectionError,
    TransportError,
    TransportTimeout,
)
from .collection import Collection, Observer

_BACKEND = os.environ.get("CATALINK_TRANSPORT", "zmq")

if _BACKEND == "zmq":
    from .zmq import ZmqTransport as _Default
else:
    raise ImportError(f"unknown CATALINK_TRANSPORT backend: {_BACKEND!r}")


def create(address, **kwargs):
    """Instantiate the configured transport backend for *address*."""

    return _Default(address, **kwargs)
