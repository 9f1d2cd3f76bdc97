""" The ordered startup sequence run each time the transport connects, and
    the symmetric teardown run each time it disconnects. The
    :class:`Orchestrator` owns every subscription handle and change
    observer created for a connection; nothing it creates outlives the
    connected interval that created it.
"""

import base64
import functools
import hashlib
import logging
import threading

from . import events
from . import normalize

logger = logging.getLogger(__name__)


READINESS = 'getServerReadiness'
LOGIN = 'login'
REGISTER = 'registerServiceDescriptor'
DISCOVER = 'getUserDataCollectionNames'
DATA = 'subscribeToServiceData'
CONTROL = 'externalServiceQueue'
CONTROL_COLLECTION = 'queue'


class StartupError(RuntimeError):
    """ The server answered a startup step with something unusable.
    """
    pass


class StartupAborted(Exception):
    """ The connection went away while a startup was still in progress.
    """
    pass


def digest(token):
    """ Return the credential digest sent at login: the base64 encoding of
        the SHA-256 hash of the raw *token* bytes.
    """

    if isinstance(token, str):
        token = token.encode()

    hashed = hashlib.sha256(token).digest()
    hashed = base64.b64encode(hashed).decode()

    return {'digest': hashed, 'algorithm': 'sha-256'}



class Attempt:
    """ One connected interval. A startup carries its :class:`Attempt`
        through every step; once the attempt is cancelled, the next check
        raises :class:`StartupAborted`.
    """

    def __init__(self, number):
        self.number = number
        self.cancelled = threading.Event()


    def __repr__(self):
        return 'Attempt(%d%s)' % (self.number, ', cancelled' if self.cancelled.is_set() else '')


    def cancel(self):
        self.cancelled.set()


    def check(self):
        if self.cancelled.is_set():
            raise StartupAborted(repr(self))


    def sleep(self, seconds):
        """ Sleep for *seconds*, waking early if the attempt is cancelled.
        """

        if self.cancelled.wait(seconds):
            raise StartupAborted(repr(self))


# end of class Attempt



class _Gate:
    """ Hold the deltas for one collection until its subscription reports
        ready, then deliver them in arrival order. Everything after that is
        delivered as it arrives.
    """

    def __init__(self, deliver):
        self.deliver = deliver
        self.open = False
        self.held = list()
        self.lock = threading.Lock()


    def __call__(self, delta):
        with self.lock:
            if self.open == True:
                self.deliver(delta)
            else:
                self.held.append(delta)


    def release(self):
        with self.lock:
            held = self.held
            self.held = list()
            self.open = True

            for delta in held:
                self.deliver(delta)


# end of class _Gate



class Orchestrator:
    """ Drive the startup sequence for a :class:`catalink.Session`:

        1. wait for the server to report itself ready;
        2. record the liveness baseline;
        3. authenticate;
        4. register the service descriptor;
        5. subscribe to the control channel;
        6. discover and subscribe to each data collection.

        Every step blocks until the previous one completes; any exception
        aborts the remaining steps.
    """

    def __init__(self, session):

        self.session = session
        self.transport = session.transport
        self.config = session.config
        self.lock = session.lock

        self.control = None
        self.subscriptions = list()
        self.observers = list()


    @property
    def handles(self):
        """ The number of subscriptions and observers currently held.
        """

        count = len(self.subscriptions) + len(self.observers)
        if self.control is not None:
            count += 1

        return count


    def startup(self, attempt):
        """ Run the full startup sequence for *attempt*. Returns the server
            epoch recorded by the liveness baseline, which may be None.
        """

        session = self.session

        if self.config.wait_for_ready == True:
            self.wait_until_ready(attempt)

        attempt.check()
        epoch = session.monitor.baseline()

        session._advance(attempt, session.Phase.AUTHENTICATING)
        self.authenticate(attempt)

        session._advance(attempt, session.Phase.ORCHESTRATING)
        self.register(attempt)
        self.subscribe_control(attempt)
        self.subscribe_data(attempt)

        return epoch


    def wait_until_ready(self, attempt):
        """ Poll the server until it reports itself ready. There is no retry
            limit; the wait ends when the server is ready or the connection
            goes away.
        """

        backoff = self.config.ready_backoff

        while True:
            attempt.check()
            status = self.transport.call(READINESS)

            if isinstance(status, dict) and status.get('isServerReady') == True:
                return

            logger.info('server not ready, retrying in %g sec', backoff)
            attempt.sleep(backoff)


    def authenticate(self, attempt):
        attempt.check()
        token = digest(self.config.token)
        return self.transport.call(LOGIN, {'userToken': token})


    def register(self, attempt):
        attempt.check()
        service = self.transport.call(REGISTER, self.config.service_description)

        attempt.check()

        if isinstance(service, dict) and service.get('serviceFound') == True:
            self.session.events.emit(events.SERVICE_SUBSCRIBED, service)
        else:
            logger.warning('service descriptor not recognized by the server')

        return service


    def subscribe_control(self, attempt):
        gate = self._observe(attempt, CONTROL_COLLECTION, self._control_delta)
        subscription = self._subscribe(attempt, CONTROL, control=True)
        subscription.ready(self.config.timeout)
        gate.release()


    def subscribe_data(self, attempt):

        attempt.check()
        names = self.transport.call(DISCOVER)

        if names is None:
            names = list()

        if isinstance(names, (list, tuple)):
            pass
        else:
            raise StartupError('%s returned %s, expected a list' % (DISCOVER, repr(names)))

        fields = self.config.resolve_fields()

        for name in names:
            if isinstance(name, str):
                pass
            else:
                raise StartupError('invalid collection name: ' + repr(name))

            deliver = functools.partial(self._data_delta, name)
            gate = self._observe(attempt, name, deliver)
            subscription = self._subscribe(attempt, DATA, name, {'fields': fields})
            subscription.ready(self.config.timeout)
            gate.release()

            logger.debug('subscribed to %s', name)


    def teardown(self):
        """ Release every handle acquired by :func:`startup`. This is safe to
            invoke at any time, any number of times, regardless of how far a
            startup progressed; it never raises.
        """

        self.session.monitor.stop()

        with self.lock:
            observers = self.observers
            self.observers = list()
            control = self.control
            self.control = None
            subscriptions = self.subscriptions
            self.subscriptions = list()

        for observer in observers:
            try:
                observer.stop()
            except Exception:
                logger.exception('failed to stop an observer')

        if control is not None:
            subscriptions.insert(0, control)

        for subscription in subscriptions:
            try:
                subscription.remove()
            except Exception:
                logger.exception('failed to remove subscription %s', subscription.name)


    def _observe(self, attempt, name, deliver):
        """ Attach a gated observer to the named collection. The observer is
            adopted under the session lock, so a concurrent teardown either
            sees it or the attempt is already cancelled.
        """

        gate = _Gate(deliver)
        collection = self.transport.collection(name)

        with self.lock:
            attempt.check()
            observer = collection.on_change(gate)
            self.observers.append(observer)

        return gate


    def _subscribe(self, attempt, name, *args, control=False):

        with self.lock:
            attempt.check()
            subscription = self.transport.subscribe(name, *args)

            if control == True:
                self.control = subscription
            else:
                self.subscriptions.append(subscription)

        return subscription


    def _control_delta(self, delta):

        emit = self.session.events.emit
        fixed = normalize.fix_delta(delta)
        added = fixed['added']

        if isinstance(added, dict) and added.get('state') == 'added':
            acknowledge = events.Acknowledgement(self.transport, added)
            emit(events.ACTION_ADDED, added, acknowledge)

        emit(events.QUEUE_CHANGED, fixed, normalize.present(fixed))


    def _data_delta(self, name, delta):
        fixed = normalize.fix_delta(delta)
        self.session.events.emit(events.DATA_CHANGED, name, fixed)


# end of class Orchestrator


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
