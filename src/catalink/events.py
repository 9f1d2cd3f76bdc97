""" The fixed vocabulary of externally visible events, and the
    :class:`EventBus` that delivers them to registered handlers.
"""

import logging
import threading

logger = logging.getLogger(__name__)


CONNECTION_OPENED = 'connection-opened'
CONNECTION_CLOSED = 'connection-closed'
SERVICE_SUBSCRIBED = 'service-subscribed'
ACTION_ADDED = 'action-added'
DATA_CHANGED = 'data-changed'
QUEUE_CHANGED = 'queue-changed'

names = (CONNECTION_OPENED, CONNECTION_CLOSED, SERVICE_SUBSCRIBED,
         ACTION_ADDED, DATA_CHANGED, QUEUE_CHANGED)


class EventBus:
    """ Map each event name to an ordered list of handlers. Handlers are
        invoked synchronously, in registration order, in whichever thread
        calls :func:`emit`. A handler that raises an exception is logged and
        skipped; the remaining handlers still run.
    """

    def __init__(self, names=names):

        self.names = tuple(names)
        self.handlers = dict()
        self.lock = threading.Lock()

        for name in self.names:
            self.handlers[name] = list()


    def on(self, name, handler):
        """ Register *handler* to be invoked for every emission of *name*.
            The *handler* is returned, so that :func:`on` can be used as
            a decorator.
        """

        if name not in self.handlers:
            raise ValueError('unknown event: ' + repr(name))

        if callable(handler):
            pass
        else:
            raise TypeError('the registered handler must be callable')

        with self.lock:
            self.handlers[name].append(handler)

        return handler


    def off(self, name, handler):
        """ Remove a previously registered *handler*. Removing a handler
            that is not registered is a no-op.
        """

        with self.lock:
            try:
                self.handlers[name].remove(handler)
            except (KeyError, ValueError):
                pass


    def emit(self, name, *args):
        """ Invoke every handler registered for *name* with *args*.
        """

        with self.lock:
            handlers = tuple(self.handlers[name])

        for handler in handlers:
            try:
                handler(*args)
            except Exception:
                logger.exception("handler for '%s' raised an exception", name)
                continue


# end of class EventBus



class Acknowledgement:
    """ The one-shot reply function handed to 'action-added' handlers. The
        first invocation sends a single 'actionCallback' call tagged with the
        action's identifier; any later invocation is a no-op that returns
        False. An *error* that is an exception instance is sent as a
        dictionary with 'type' and 'text' fields.
    """

    method = 'actionCallback'

    def __init__(self, transport, action):

        self.transport = transport
        self.action = action
        self.used = False
        self.lock = threading.Lock()


    @property
    def id(self):
        return self.action.get('id')


    def __call__(self, result=None, error=None):

        with self.lock:
            if self.used == True:
                logger.debug('action %s already acknowledged', self.id)
                return False
            self.used = True

        if isinstance(error, BaseException):
            error = {'type': error.__class__.__name__, 'text': str(error)}

        self.transport.call(self.method, self.id, result, error)
        return True


# end of class Acknowledgement


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
