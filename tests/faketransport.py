""" An in-memory implementation of the transport contract. Calls are answered
    from scripted responses, subscriptions become ready immediately unless
    told otherwise, and collection deltas are injected by the test.
"""

import threading
import time

from catalink import transport


def wait_for(predicate, timeout=2.0):
    """ Poll *predicate* until it returns something true, or until *timeout*
        expires. Returns the last value of *predicate*.
    """

    expiration = time.monotonic() + timeout

    while True:
        value = predicate()
        if value or time.monotonic() > expiration:
            return value
        time.sleep(0.01)


defaults = dict(
    getServerReadiness = {'isServerReady': True},
    login = {'id': 'user'},
    registerServiceDescriptor = {'serviceFound': True},
    getUserDataCollectionNames = [],
    externalServicePing = {'connectionEstablished': True},
    actionCallback = None,
)


class FakeTransport(transport.Transport):

    def __init__(self, auto_ready=True):
        super().__init__()

        self.auto_ready = auto_ready
        self.connected = False
        self.closed = False
        self.connects = 0
        self.disconnects = 0

        self.calls = list()
        self.responses = dict()
        self.subscriptions = list()
        self.removed = list()
        self.lock = threading.Lock()


    @property
    def is_connected(self):
        return self.connected


    def respond(self, method, *values):
        """ Queue one or more responses for *method*. A queued response that
            is callable is invoked with the call arguments; an exception
            instance is raised. Once the queue is empty the default applies.
        """

        with self.lock:
            self.responses.setdefault(method, list()).extend(values)


    def connect(self):
        if self.closed:
            raise transport.TransportConnectionError('transport is closed')

        if self.connected:
            return

        self.connected = True
        self.connects += 1
        self._signal(transport.CONNECTED)


    def disconnect(self):
        if self.connected:
            pass
        else:
            return

        self.connected = False
        self.disconnects += 1

        error = transport.TransportConnectionError('connection lost')
        for subscription in tuple(self.subscriptions):
            subscription._complete(error)

        self._clear_collections()
        self._signal(transport.DISCONNECTED)


    def close(self):
        self.closed = True
        self.disconnect()


    def call(self, method, *args, timeout=None):

        if self.connected:
            pass
        else:
            raise transport.TransportConnectionError('not connected')

        with self.lock:
            self.calls.append((method, args))
            queued = self.responses.get(method)
            if queued:
                response = queued.pop(0)
            else:
                response = defaults.get(method)

        if callable(response):
            response = response(*args)

        if isinstance(response, BaseException):
            raise response

        return response


    def subscribe(self, name, *args):

        subscription = transport.Subscription(name, args, remover=self._unsubscribe)

        with self.lock:
            self.subscriptions.append(subscription)

        if self.connected == False:
            subscription._complete(transport.TransportConnectionError('not connected'))
        elif self.auto_ready == True:
            subscription._complete()

        return subscription


    def _unsubscribe(self, subscription):
        with self.lock:
            self.removed.append(subscription)


    def active(self):
        """ Return the subscriptions that have not been removed.
        """

        return [sub for sub in self.subscriptions if sub.removed == False]


    def methods(self):
        return [call[0] for call in self.calls]


    def deliver(self, name, delta):
        """ Hand *delta* to every observer of the named collection.
        """

        self.collection(name)._propagate(delta)


# end of class FakeTransport


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
