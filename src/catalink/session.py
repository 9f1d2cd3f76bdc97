""" The top-level controller. A :class:`Session` owns one transport, reacts
    to its connection signals, runs the startup sequence for every connected
    interval, keeps the liveness monitor running while online, and forces a
    reconnect when the monitor decides the connection went stale.
"""

import enum
import itertools
import logging
import threading

from . import config as config_module
from . import events
from . import liveness
from . import orchestrate
from . import transport as transport_module

logger = logging.getLogger(__name__)


class Phase(enum.Enum):
    IDLE = 'idle'
    CONNECTING = 'connecting'
    AUTHENTICATING = 'authenticating'
    ORCHESTRATING = 'orchestrating'
    ONLINE = 'online'
    DISCONNECTED = 'disconnected'


# camelCase event names, as used by JavaScript clients, accepted by Session.on().

aliases = dict(
    connected = events.CONNECTION_OPENED,
    disconnected = events.CONNECTION_CLOSED,
    subscribedToService = events.SERVICE_SUBSCRIBED,
    actionAdded = events.ACTION_ADDED,
    dataChange = events.DATA_CHANGED,
    queueChange = events.QUEUE_CHANGED,
)


class Session:
    """ A resilient connection to a catalink server. Settings are resolved
        once, upon construction, via :func:`catalink.config.load`; a
        ready-made :class:`catalink.config.Configuration` can be passed as
        *config* instead. The *transport* argument exists for testing and
        for alternate transports; by default the configured backend from
        :mod:`catalink.transport` is used.

        Nothing happens on the network until :func:`start` is invoked.
    """

    Phase = Phase

    def __init__(self, socket_address=None, token=None, service_description=None,
                       connection_props=None, config=None, transport=None, **settings):

        if config is None:
            config = config_module.load(socket_address=socket_address,
                                        token=token,
                                        service_description=service_description,
                                        connectionProps=connection_props,
                                        **settings)

        self.config = config

        if transport is None:
            transport = transport_module.create(config.socket_address,
                                    reconnect_interval=config.reconnect_interval,
                                    timeout=config.timeout,
                                    port=config.transport_port)

        self.transport = transport
        self.events = events.EventBus()
        self.lock = threading.RLock()

        self.attempt = None
        self.stopped = False
        self._phase = Phase.IDLE
        self._attempts = itertools.count(1)

        if config.probe == 'ping':
            probe = liveness.PingProbe(transport, config.timeout)
        else:
            probe = liveness.StatusProbe(config.socket_address, config.timeout)

        self.monitor = liveness.Monitor(probe, self.force_reconnect,
                                        interval=config.ping_interval,
                                        timeout=config.timeout)

        self.orchestrator = orchestrate.Orchestrator(self)

        transport.on(transport_module.CONNECTED, self._connected)
        transport.on(transport_module.DISCONNECTED, self._disconnected)
        transport.on(transport_module.ERROR, self._error)


    def __repr__(self):
        return 'Session(%s, %s)' % (repr(self.config.socket_address), self._phase.name)


    @property
    def phase(self):
        return self._phase


    def start(self):
        """ Connect the transport. The startup sequence runs every time the
            transport reports a connection, including reconnects.
        """

        logger.info('starting session for %s', self.config.socket_address)
        self.transport.connect()


    def stop(self):
        """ Shut the session down permanently. Every subscription is
            released and the transport is closed; a stopped session cannot
            be started again.
        """

        with self.lock:
            self.stopped = True
            attempt = self.attempt

        self.transport.close()
        self._ensure_disconnected(attempt)


    def on(self, event, handler):
        """ Register *handler* for the named *event*. Both the native event
            names in :mod:`catalink.events` and the camelCase :data:`aliases`
            are accepted. Returns *handler*.
        """

        event = aliases.get(event, event)
        return self.events.on(event, handler)


    def off(self, event, handler):
        event = aliases.get(event, event)
        self.events.off(event, handler)


    def on_connected(self, handler):
        return self.on(events.CONNECTION_OPENED, handler)

    def on_disconnected(self, handler):
        return self.on(events.CONNECTION_CLOSED, handler)

    def on_action_added(self, handler):
        return self.on(events.ACTION_ADDED, handler)

    def on_data_change(self, handler):
        return self.on(events.DATA_CHANGED, handler)

    def on_queue_change(self, handler):
        return self.on(events.QUEUE_CHANGED, handler)

    def on_subscribed_to_service(self, handler):
        return self.on(events.SERVICE_SUBSCRIBED, handler)


    def call(self, method, *args, timeout=None):
        """ Invoke a remote method directly, bypassing the session logic.
            Transport errors propagate to the caller.
        """

        return self.transport.call(method, *args, timeout=timeout)


    def force_reconnect(self, attempt=None):
        """ Drop the current connection and immediately request a new one.
            This is what the liveness monitor invokes when a probe fails; it
            passes the connection attempt it was started for, and a failure
            reported for an attempt that is no longer current is ignored.
        """

        with self.lock:
            if self.stopped == True:
                return

            if attempt is None:
                attempt = self.attempt
            elif attempt is not self.attempt:
                logger.debug('ignoring forced reconnect for stale %s', attempt)
                return

        logger.info('forcing a reconnect to %s', self.config.socket_address)

        self.transport.disconnect()
        self._ensure_disconnected(attempt)

        if self.stopped == False:
            self.transport.connect()


    def _advance(self, attempt, phase):
        """ Move to *phase* on behalf of *attempt*. Raises
            :class:`catalink.orchestrate.StartupAborted` if the attempt has
            been cancelled in the meantime.
        """

        with self.lock:
            attempt.check()
            logger.debug('%s -> %s', self._phase.name, phase.name)
            self._phase = phase


    def _connected(self):

        with self.lock:
            if self.stopped == True:
                return

            previous = self.attempt
            if previous is not None:
                previous.cancel()

            attempt = orchestrate.Attempt(next(self._attempts))
            self.attempt = attempt
            self._phase = Phase.CONNECTING

        if previous is not None:
            self.orchestrator.teardown()

        self.events.emit(events.CONNECTION_OPENED)

        name = 'catalink.Session.startup.%d' % (attempt.number)
        thread = threading.Thread(target=self._startup, args=(attempt,), name=name)
        thread.daemon = True
        thread.start()


    def _startup(self, attempt):

        try:
            epoch = self.orchestrator.startup(attempt)

            # The monitor is started outside the session lock; stopping it
            # waits for a failure callback that itself takes the lock.

            self.monitor.start(epoch, attempt)

            try:
                self._advance(attempt, Phase.ONLINE)
            except orchestrate.StartupAborted:
                self.monitor.stop(attempt)
                raise

        except orchestrate.StartupAborted:
            logger.debug('%s aborted', attempt)
            return

        except Exception:
            if attempt.cancelled.is_set():
                logger.debug('%s failed after it was cancelled', attempt)
                return

            logger.exception('startup failed for %s', self.config.socket_address)

            with self.lock:
                if self.attempt is not attempt:
                    return

            self.transport.disconnect()
            self._ensure_disconnected(attempt)
            return

        logger.info('online with %s', self.config.socket_address)


    def _ensure_disconnected(self, attempt):
        """ Run the disconnected path if the transport did not signal it for
            *attempt* on its own.
        """

        with self.lock:
            current = self.attempt

        if current is None:
            self.orchestrator.teardown()
        elif current is attempt:
            self._disconnected()


    def _disconnected(self):

        with self.lock:
            attempt = self.attempt
            self.attempt = None

            if attempt is not None:
                attempt.cancel()

            previous = self._phase
            self._phase = Phase.DISCONNECTED

        self.orchestrator.teardown()

        if previous in (Phase.IDLE, Phase.DISCONNECTED):
            return

        logger.info('connection to %s closed', self.config.socket_address)
        self.events.emit(events.CONNECTION_CLOSED)


    def _error(self, error):

        if isinstance(error, BaseException):
            logger.error('transport error: %s', error, exc_info=error)
        else:
            logger.error('transport error: %s', error)


# end of class Session


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
