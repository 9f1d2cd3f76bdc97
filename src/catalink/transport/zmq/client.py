"""ZeroMQ implementation of the :class:`catalink.transport.Transport` contract.

A single DEALER socket carries calls, subscription requests and collection
updates. Each connection has one background thread that owns the socket;
other threads hand it outgoing frames through a queue plus an inproc PAIR
signal.

TCP-level connect/disconnect is observed through the ZeroMQ socket monitor.
After a TCP connect the client sends CONNECT and treats the server's
CONNECTED reply as the 'connected' signal. ZeroMQ re-establishes a dropped
TCP connection on its own every ``reconnect_interval`` seconds; an explicit
:meth:`ZmqTransport.disconnect` closes the socket and schedules a fresh
:meth:`ZmqTransport.connect` after the same interval.
"""

from __future__ import annotations

import atexit
import logging
import os
import queue
import threading
import weakref
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlsplit

import zmq
import zmq.utils.monitor

from ..base import (
    CONNECTED as SIG_CONNECTED,
    DISCONNECTED as SIG_DISCONNECTED,
    ERROR as SIG_ERROR,
    RemoteError,
    Subscription,
    SubscriptionError,
    Transport,
    TransportConnectionError,
    TransportTimeout,
)
from . import framing
from .framing import Frame

logger = logging.getLogger(__name__)

zmq_context = zmq.Context()
_live: "weakref.WeakSet[_Connection]" = weakref.WeakSet()

default_ports = {"ws": 80, "http": 80, "wss": 443, "https": 443}


def zmq_address(address: str, port: Optional[int] = None) -> str:
    """Translate a ws/wss/http/https/tcp address into a ZeroMQ endpoint."""

    parts = urlsplit(address)
    scheme = parts.scheme.lower()

    if scheme in ("tcp", "ipc", "inproc") and port is None:
        return address

    host = parts.hostname
    if not host:
        raise ValueError(f"cannot determine host from {address!r}")

    if port is None:
        port = parts.port or default_ports.get(scheme)
    if port is None:
        raise ValueError(f"cannot determine port from {address!r}")

    return f"tcp://{host}:{int(port)}"


class PendingCall:
    """Client-side helper that provides RESULT synchronization."""

    def __init__(self, method: str, msg_id: bytes):
        self.method = method
        self.msg_id = msg_id
        self.value: Any = None
        self.error: Optional[Exception] = None
        self.event = threading.Event()

    def wait(self, timeout: Optional[float]) -> bool:
        return self.event.wait(timeout)

    def _complete(self, value: Any = None, error: Optional[Exception] = None) -> None:
        if self.event.is_set():
            return
        self.value = value
        self.error = error
        self.event.set()


class _Dispatcher:
    """Background thread that runs signal handlers and collection updates.

    This keeps the socket loop tight and lets a handler issue a blocking
    call() without waiting on the very thread that must receive the result.
    Work runs strictly in the order it was queued.
    """

    _stop = object()

    def __init__(self):
        self.queue: "queue.SimpleQueue[Any]" = queue.SimpleQueue()
        self.thread = threading.Thread(target=self.run, daemon=True)
        self.thread.start()

    def put(self, method, *args) -> None:
        self.queue.put((method, args))

    def stop(self) -> None:
        self.queue.put(self._stop)

    def run(self) -> None:
        while True:
            dequeued = self.queue.get()

            if dequeued is self._stop:
                break

            method, args = dequeued
            try:
                method(*args)
            except Exception:
                logger.exception("dispatch of %r raised an exception", method)


class _Connection:
    """One socket lifetime: created by connect(), retired by disconnect()."""

    def __init__(self, transport: "ZmqTransport"):
        self.transport = transport
        self.shutdown = False

        unique = framing.next_id().decode()
        identity = f"catalink.Client.{os.getpid()}.{unique}".encode()

        self.socket = zmq_context.socket(zmq.DEALER)
        self.socket.setsockopt(zmq.LINGER, 0)
        self.socket.setsockopt(zmq.RECONNECT_IVL, int(transport.reconnect_interval * 1000))
        self.socket.identity = identity

        events = zmq.EVENT_CONNECTED | zmq.EVENT_DISCONNECTED
        self.monitor = self.socket.get_monitor_socket(events)

        internal = f"inproc://catalink.Client:signal:{unique}"
        self._signal_rx = zmq_context.socket(zmq.PAIR)
        self._signal_rx.bind(internal)
        self._signal_tx = zmq_context.socket(zmq.PAIR)
        self._signal_tx.connect(internal)
        self._signal_lock = threading.Lock()

        self._outbox: "queue.SimpleQueue[Tuple[bytes, ...]]" = queue.SimpleQueue()
        self.closed = False

        self.thread = threading.Thread(target=self.run, daemon=True)

    def start(self) -> None:
        """Connect the socket and hand it to the background thread."""

        self.socket.connect(self.transport.address)
        _live.add(self)
        self.thread.start()

    def send(self, frame: Frame) -> None:
        self._outbox.put(framing.to_frames(frame))
        self.wake()

    def wake(self) -> None:
        with self._signal_lock:
            if not self.closed:
                self._signal_tx.send(b"")

    def stop(self) -> None:
        self.shutdown = True
        self.wake()

    def _handle_outgoing(self) -> None:
        # Clear one signal and send whatever is queued.
        self._signal_rx.recv(flags=zmq.NOBLOCK)

        while True:
            try:
                parts = self._outbox.get(block=False)
            except queue.Empty:
                break
            if self.shutdown:
                continue
            self.socket.send_multipart(parts)

    def _handle_monitor(self) -> None:
        event = zmq.utils.monitor.recv_monitor_message(self.monitor)
        event_code = event["event"]

        if event_code == zmq.EVENT_CONNECTED:
            logger.debug("tcp connection up: %s", self.transport.address)
            frame = Frame(framing.CONNECT, framing.next_id(), payload={"version": framing.PROTOCOL_VERSION})
            self.socket.send_multipart(framing.to_frames(frame))
        elif event_code == zmq.EVENT_DISCONNECTED:
            logger.debug("tcp connection down: %s", self.transport.address)
            self.transport._lost(self)

    def run(self) -> None:
        poller = zmq.Poller()
        poller.register(self.socket, zmq.POLLIN)
        poller.register(self.monitor, zmq.POLLIN)
        poller.register(self._signal_rx, zmq.POLLIN)

        try:
            while not self.shutdown:
                for active, _flag in poller.poll(1000):
                    if self.shutdown:
                        break
                    if active == self._signal_rx:
                        self._handle_outgoing()
                    elif active == self.monitor:
                        self._handle_monitor()
                    elif active == self.socket:
                        parts = tuple(self.socket.recv_multipart())
                        try:
                            frame = framing.from_frames(parts)
                        except ValueError as exc:
                            self.transport._signal(SIG_ERROR, exc)
                            continue
                        self.transport._incoming(self, frame)
        finally:
            self._close()

    def _close(self) -> None:
        try:
            self.socket.disable_monitor()
        except zmq.ZMQError:
            pass

        for sock in (self.monitor, self.socket, self._signal_rx):
            sock.close(linger=0)

        with self._signal_lock:
            self.closed = True
            self._signal_tx.close(linger=0)

        _live.discard(self)


class ZmqTransport(Transport):
    """Reconnecting ZeroMQ client for a catalink server."""

    def __init__(self, address: str, reconnect_interval: float = 5, timeout: float = 60, port: Optional[int] = None):
        super().__init__()

        self.address = zmq_address(address, port)
        self.reconnect_interval = float(reconnect_interval)
        self.timeout = float(timeout)

        self._lock = threading.RLock()
        self._connection: Optional[_Connection] = None
        self._connected = False
        self._closed = False
        self._reconnect_timer: Optional[threading.Timer] = None

        self._pending: Dict[bytes, PendingCall] = {}
        self._subscriptions: Dict[bytes, Subscription] = {}
        self._dispatcher = _Dispatcher()

    @property
    def is_connected(self) -> bool:
        return self._connected

    # --- lifecycle ---
    def connect(self) -> None:
        with self._lock:
            if self._closed:
                raise TransportConnectionError("transport is closed")

            self._cancel_reconnect()

            if self._connection is not None:
                return

            logger.info("connecting to %s", self.address)
            self._connection = _Connection(self)
            self._connection.start()

    def disconnect(self) -> None:
        with self._lock:
            connection = self._connection
            self._connection = None

        if connection is None:
            return

        connection.stop()
        if threading.current_thread() is not connection.thread:
            connection.thread.join(5)

        self._lost(connection, retired=True)

        with self._lock:
            if not self._closed:
                self._schedule_reconnect()

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._cancel_reconnect()

        self.disconnect()
        self._dispatcher.stop()

    def _schedule_reconnect(self) -> None:
        self._cancel_reconnect()
        timer = threading.Timer(self.reconnect_interval, self._reconnect)
        timer.daemon = True
        self._reconnect_timer = timer
        timer.start()

    def _cancel_reconnect(self) -> None:
        if self._reconnect_timer is not None:
            self._reconnect_timer.cancel()
            self._reconnect_timer = None

    def _reconnect(self) -> None:
        try:
            self.connect()
        except TransportConnectionError:
            pass

    def _lost(self, connection: _Connection, retired: bool = False) -> None:
        """The connection dropped, either at the TCP level or on request.

        A retired connection signals 'disconnected' before disconnect()
        returns; a TCP-level drop signals through the dispatcher, behind any
        collection updates that arrived first.
        """

        with self._lock:
            if not retired and connection is not self._connection:
                return

            was_connected = self._connected
            self._connected = False

            pending = tuple(self._pending.values())
            self._pending.clear()
            subscriptions = tuple(self._subscriptions.values())
            self._subscriptions.clear()

        error = TransportConnectionError(f"connection to {self.address} lost")

        for call in pending:
            call._complete(error=error)
        for sub in subscriptions:
            sub._complete(error)

        if retired:
            self._dropped(was_connected)
        else:
            self._dispatcher.put(self._dropped, was_connected)

    def _dropped(self, was_connected: bool) -> None:
        self._clear_collections()

        if was_connected:
            logger.info("disconnected from %s", self.address)
            self._signal(SIG_DISCONNECTED)

    # --- inbound ---
    def _incoming(self, connection: _Connection, frame: Frame) -> None:
        if connection is not self._connection:
            return

        msg_type = frame.msg_type
        payload = frame.payload or {}

        if msg_type == framing.CONNECTED:
            with self._lock:
                if self._connected:
                    return
                self._connected = True
            logger.info("connected to %s", self.address)
            self._dispatcher.put(self._signal, SIG_CONNECTED)

        elif msg_type == framing.RESULT:
            with self._lock:
                call = self._pending.pop(frame.msg_id, None)
            if call is None:
                return
            error = payload.get("error")
            if error:
                call._complete(error=RemoteError(error))
            else:
                call._complete(value=payload.get("value"))

        elif msg_type == framing.READY:
            sub = self._subscriptions.get(frame.msg_id)
            if sub is not None:
                sub._complete()

        elif msg_type == framing.NOSUB:
            with self._lock:
                sub = self._subscriptions.pop(frame.msg_id, None)
            if sub is None:
                return
            text = payload.get("error") or f"subscription {sub.name!r} refused"
            if sub.is_ready:
                error = SubscriptionError(f"subscription {sub.name!r} terminated: {text}")
                self._dispatcher.put(self._signal, SIG_ERROR, error)
            sub._complete(SubscriptionError(str(text)))

        elif msg_type == framing.DATA:
            self._dispatcher.put(self._data, connection, frame.target, payload)

        elif msg_type == framing.ERROR:
            self._dispatcher.put(self._signal, SIG_ERROR, RemoteError(payload))

        else:
            logger.debug("ignoring %s message", msg_type)

    def _data(self, connection: _Connection, name: Optional[str], payload: Dict[str, Any]) -> None:
        if connection is not self._connection or not name:
            return

        collection = self.collection(name)
        kind = payload.get("msg")
        id = payload.get("id")

        if kind == "added":
            collection.added(id, payload.get("fields"))
        elif kind == "changed":
            collection.changed(id, payload.get("fields"), payload.get("cleared") or ())
        elif kind == "removed":
            collection.removed(id)
        else:
            self._signal(SIG_ERROR, ValueError(f"unknown DATA message {kind!r} for {name!r}"))

    # --- outbound ---
    def _send(self, frame: Frame) -> None:
        with self._lock:
            connection = self._connection
            connected = self._connected

        if connection is None or not connected:
            raise TransportConnectionError(f"not connected to {self.address}")

        connection.send(frame)

    def call(self, method: str, *args: Any, timeout: Optional[float] = None) -> Any:
        if timeout is None:
            timeout = self.timeout

        msg_id = framing.next_id()
        pending = PendingCall(method, msg_id)

        with self._lock:
            self._pending[msg_id] = pending

        try:
            self._send(Frame(framing.CALL, msg_id, method, {"args": list(args)}))
        except TransportConnectionError:
            with self._lock:
                self._pending.pop(msg_id, None)
            raise

        if not pending.wait(timeout):
            with self._lock:
                self._pending.pop(msg_id, None)
            raise TransportTimeout(f"{method}: no result in {timeout:.2f} sec")

        if pending.error is not None:
            raise pending.error
        return pending.value

    def subscribe(self, name: str, *args: Any) -> Subscription:
        msg_id = framing.next_id()
        sub = Subscription(name, args, remover=self._unsubscribe)
        sub.msg_id = msg_id

        with self._lock:
            self._subscriptions[msg_id] = sub

        try:
            self._send(Frame(framing.SUB, msg_id, name, {"args": list(args)}))
        except TransportConnectionError as exc:
            with self._lock:
                self._subscriptions.pop(msg_id, None)
            sub._complete(exc)

        return sub

    def _unsubscribe(self, sub: Subscription) -> None:
        msg_id = sub.msg_id

        with self._lock:
            known = self._subscriptions.pop(msg_id, None)

        if known is None:
            return

        try:
            self._send(Frame(framing.UNSUB, msg_id, sub.name))
        except TransportConnectionError:
            pass




def _cleanup() -> None:
    # Context termination blocks until every socket is closed.
    for connection in tuple(_live):
        connection.stop()
        connection.thread.join(2)

    try:
        zmq_context.term()
    except zmq.ZMQError:
        pass


atexit.register(_cleanup)
