"""Transport interface.

This is the (small) contract that a transport implementation must follow for
a :class:`catalink.Session` to drive it. It covers connection signals, remote
procedure calls, subscriptions with an asynchronous ready signal, and local
collection mirrors that report change deltas.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

from .collection import Collection

logger = logging.getLogger(__name__)


# Transport agnostic exceptions

class TransportError(Exception):
    """Base class for all transport-layer errors."""


class TransportTimeout(TransportError):
    """A request did not receive a timely response."""


class TransportConnectionError(TransportError):
    """The transport could not establish or maintain a connection."""


class RemoteError(TransportError):
    """The remote side answered a call with an error."""

    def __init__(self, error: Any):
        if isinstance(error, dict):
            e_type = error.get("type", "Error")
            e_text = error.get("text", error.get("reason", ""))
            text = f"{e_type}: {e_text}"
        else:
            text = str(error)

        super().__init__(text)
        self.error = error


class SubscriptionError(TransportError):
    """The remote side refused or terminated a subscription."""


CONNECTED = "connected"
DISCONNECTED = "disconnected"
ERROR = "error"

SIGNALS = (CONNECTED, DISCONNECTED, ERROR)


class Subscription:
    """Handle to one active subscription.

    The transport completes the handle with :meth:`_complete` once the remote
    side signals readiness (or refusal). :meth:`remove` releases the
    subscription; it is safe to call more than once, only the first call
    reaches the transport.
    """

    def __init__(self, name: str, args: tuple = (), remover: Optional[Callable[["Subscription"], None]] = None):
        self.name = name
        self.args = tuple(args)
        self.msg_id: Optional[bytes] = None
        self.error: Optional[Exception] = None
        self.removed = False

        self._remover = remover
        self._ready_event = threading.Event()
        self._lock = threading.Lock()

    def ready(self, timeout: Optional[float] = None) -> None:
        """Block until the subscription is ready.

        Raises :class:`TransportTimeout` if *timeout* expires first, or the
        error the transport recorded if the subscription was refused.
        """

        if not self._ready_event.wait(timeout):
            raise TransportTimeout(f"subscription {self.name!r} not ready in {timeout} sec")

        if self.error is not None:
            raise self.error

    @property
    def is_ready(self) -> bool:
        return self._ready_event.is_set() and self.error is None

    def remove(self) -> None:
        with self._lock:
            if self.removed:
                return
            self.removed = True

        if self._remover is not None:
            self._remover(self)

        if not self._ready_event.is_set():
            self._complete(SubscriptionError(f"subscription {self.name!r} removed before ready"))

    def _complete(self, error: Optional[Exception] = None) -> None:
        if self._ready_event.is_set():
            return
        self.error = error
        self._ready_event.set()


class Transport(ABC):
    """Minimal contract for a reconnecting publish/subscribe client."""

    def __init__(self) -> None:
        self._handlers: Dict[str, List[Callable[..., None]]] = {}
        self._collections: Dict[str, Collection] = {}
        self._collections_lock = threading.Lock()

        for signal in SIGNALS:
            self._handlers[signal] = []

    # --- signals ---
    def on(self, signal: str, handler: Callable[..., None]) -> None:
        """Register *handler* for 'connected', 'disconnected' or 'error'."""

        if signal not in self._handlers:
            raise ValueError(f"unknown transport signal: {signal!r}")
        self._handlers[signal].append(handler)

    def _signal(self, signal: str, *args: Any) -> None:
        for handler in tuple(self._handlers[signal]):
            try:
                handler(*args)
            except Exception:
                logger.exception("%s handler raised an exception", signal)

    # --- collections ---
    def collection(self, name: str) -> Collection:
        """Return the local mirror of the named collection."""

        with self._collections_lock:
            found = self._collections.get(name)
            if found is None:
                found = Collection(name)
                self._collections[name] = found
            return found

    def _clear_collections(self) -> None:
        with self._collections_lock:
            collections = tuple(self._collections.values())

        for collection in collections:
            collection.clear()

    # --- connection lifecycle ---
    @abstractmethod
    def connect(self) -> None:
        """Establish the underlying connection; 'connected' follows."""

    @abstractmethod
    def disconnect(self) -> None:
        """Drop the current connection; 'disconnected' is signalled before
        returning. The transport's reconnect policy stays in effect."""

    @abstractmethod
    def close(self) -> None:
        """Disconnect permanently."""

    @property
    def is_connected(self) -> bool:
        """Whether the transport is currently connected."""
        return False

    # --- remote operations ---
    @abstractmethod
    def call(self, method: str, *args: Any, timeout: Optional[float] = None) -> Any:
        """Invoke a remote method and return its result."""

    @abstractmethod
    def subscribe(self, name: str, *args: Any) -> Subscription:
        """Request a subscription; the returned handle becomes ready later."""
