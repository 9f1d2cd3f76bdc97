""" Detection of a connection that looks open at the transport layer but is
    no longer meaningfully connected to a live server. A :class:`Monitor`
    probes the server on a fixed interval; a probe that times out, fails,
    reports the server as down, or reveals that the server restarted since
    the connection was established triggers a single forced reconnect.

    Two probe variants share one contract: calling the probe returns a
    :class:`ProbeResult`, or raises an exception.
"""

import datetime
import inspect
import logging
import threading
import time
import weakref
from urllib.parse import urlsplit

import httpx

logger = logging.getLogger(__name__)


class LivenessError(RuntimeError):
    pass


class ProbeTimeout(LivenessError):
    pass


class ProbeResult:
    """ The outcome of a single probe: *alive* is the server's own report,
        *epoch* is the UNIX timestamp the server reports as its start time,
        if the probe variant provides one.
    """

    def __init__(self, alive, epoch=None):
        self.alive = bool(alive)
        self.epoch = epoch

    def __repr__(self):
        return 'ProbeResult(alive=%r, epoch=%r)' % (self.alive, self.epoch)


def status_url(socket_address):
    """ Return the HTTP status URL corresponding to a session's
        *socket_address*. Secure socket schemes map to https, anything else
        maps to plain http.
    """

    parts = urlsplit(socket_address)

    if parts.scheme.lower() in ('https', 'wss'):
        scheme = 'https'
    else:
        scheme = 'http'

    host = parts.hostname
    if host is None:
        raise ValueError('cannot determine host from ' + repr(socket_address))

    if parts.port:
        host = '%s:%d' % (host, parts.port)

    return scheme + '://' + host + '/status'


def parse_epoch(value):
    """ Interpret an 'upSince' value as a UNIX timestamp. Numbers are
        milliseconds since the UNIX epoch; strings may be the same number
        or an ISO-8601 timestamp. Anything else yields None, which disables
        the restart check for that probe.
    """

    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        return value / 1000.0

    if isinstance(value, str):
        try:
            return float(value) / 1000.0
        except ValueError:
            pass

        if value.endswith('Z'):
            value = value[:-1] + '+00:00'

        try:
            parsed = datetime.datetime.fromisoformat(value)
        except ValueError:
            return None

        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=datetime.timezone.utc)

        return parsed.timestamp()

    return None



class StatusProbe:
    """ Probe the HTTP status endpoint of the server behind the session's
        socket address. The endpoint returns a JSON object of the form
        ``{"value": "up", "upSince": ...}``. The optional *http_transport*
        is handed to :class:`httpx.Client` as-is.
    """

    def __init__(self, socket_address, timeout=60, http_transport=None):
        self.url = status_url(socket_address)
        self.timeout = timeout
        self.http_transport = http_transport


    def __call__(self):

        with httpx.Client(timeout=self.timeout, transport=self.http_transport) as client:
            response = client.get(self.url)

        response.raise_for_status()
        data = response.json()

        if isinstance(data, dict):
            pass
        else:
            return ProbeResult(False)

        alive = data.get('value') == 'up'
        epoch = parse_epoch(data.get('upSince'))
        return ProbeResult(alive, epoch)


# end of class StatusProbe



class PingProbe:
    """ Probe the server with the 'externalServicePing' remote call, which
        returns ``{"connectionEstablished": bool}``. This variant carries no
        epoch, so a silent server restart is only caught if the server
        reports the connection as no longer established.
    """

    method = 'externalServicePing'

    def __init__(self, transport, timeout=60):
        self.transport = transport
        self.timeout = timeout


    def __call__(self):

        result = self.transport.call(self.method, timeout=self.timeout)

        if isinstance(result, dict):
            alive = result.get('connectionEstablished') == True
        else:
            alive = False

        return ProbeResult(alive)


# end of class PingProbe



class _Race:
    """ Run one probe on a throwaway daemon thread and wait at most *timeout*
        seconds for it. The first of {probe result, timeout} wins; a probe
        that resolves late has nowhere to deliver its result.
    """

    def __init__(self, probe):

        self.probe = probe
        self.result = None
        self.error = None
        self.done = threading.Event()

        self.thread = threading.Thread(target=self.run)
        self.thread.daemon = True
        self.thread.start()


    def run(self):
        try:
            self.result = self.probe()
        except Exception as e:
            self.error = e

        self.done.set()


    def wait(self, timeout):
        if self.done.wait(timeout) == False:
            raise ProbeTimeout('no probe response in %.1f sec' % (timeout))

        if self.error is not None:
            raise self.error

        return self.result


# end of class _Race



class Monitor:
    """ Periodic liveness checking for one connection. *probe* is a callable
        returning a :class:`ProbeResult`; *on_failure* is invoked, at most
        once per :func:`start`, when a probe fails. The token handed to
        :func:`start` is passed back to *on_failure*, so the caller can tell
        which connection the failure belongs to.

        Only a weak reference to *on_failure* is retained; a session that
        is otherwise unreferenced is not kept alive by its monitor.
    """

    def __init__(self, probe, on_failure, interval=60, timeout=60):

        self.probe = probe

        if inspect.ismethod(on_failure):
            self.reference = weakref.WeakMethod(on_failure)
        else:
            self.reference = weakref.ref(on_failure)

        self.interval = float(interval)
        self.timeout = float(timeout)
        self.epoch = None

        self._lock = threading.Lock()
        self._ticker = None


    @property
    def running(self):
        ticker = self._ticker
        return ticker is not None and ticker.shutdown == False


    @property
    def token(self):
        ticker = self._ticker
        if ticker is None:
            return None
        return ticker.token


    def check(self):
        """ Issue one probe and return its :class:`ProbeResult`. Raises
            :class:`ProbeTimeout` if the probe does not resolve within the
            timeout, or whatever exception the probe itself raised.
        """

        race = _Race(self.probe)
        return race.wait(self.timeout)


    def baseline(self):
        """ Probe the server once at connection time and remember the epoch
            it reports. Later probes reporting a newer epoch mean the server
            restarted underneath the connection. Raises
            :class:`LivenessError` if the probe fails outright, or if the
            server reports itself as not alive.
        """

        try:
            result = self.check()
        except LivenessError:
            raise
        except Exception as e:
            raise LivenessError('baseline probe failed: %s' % (e)) from e

        if result is None or result.alive == False:
            raise LivenessError('server reported not alive at connect time')

        self.epoch = result.epoch
        return self.epoch


    def evaluate(self, result):
        """ Return a description of why *result* counts as a failure, or
            None if the connection is healthy.
        """

        if result is None or result.alive == False:
            return 'server reported not alive'

        if self.epoch is not None and result.epoch is not None:
            if result.epoch > self.epoch:
                return 'server restarted at %s' % (result.epoch)

        return None


    def start(self, epoch=None, token=None):
        """ Begin probing every *interval* seconds on behalf of *token*. Any
            previous cadence is stopped first. If *epoch* is provided it
            replaces the recorded baseline epoch.
        """

        if epoch is not None:
            self.epoch = epoch

        with self._lock:
            previous = self._ticker
            self._ticker = _Ticker(self, token)

        if previous is not None:
            previous.stop()


    def stop(self, token=None):
        """ Discontinue probing. If *token* is provided the cadence is only
            stopped if it was started on behalf of that token.

            Once this returns no further probe will be issued, the result
            of a probe already in flight is ignored, and any failure
            callback already under way has finished. This must not be
            invoked while holding a lock the failure callback acquires.
        """

        with self._lock:
            ticker = self._ticker
            if ticker is None:
                return
            if token is not None and ticker.token is not token:
                return
            self._ticker = None

        ticker.stop()


    def _failed(self, ticker, reason):

        with self._lock:
            if ticker is not self._ticker:
                logger.debug('ignoring a probe failure after stop: %s', reason)
                return

        logger.warning('liveness probe failed: %s', reason)

        callback = self.reference()
        if callback is None:
            return

        try:
            callback(ticker.token)
        except Exception:
            logger.exception('forced reconnect raised an exception')


# end of class Monitor



class _Ticker:
    """ Background thread for one :func:`Monitor.start`; never restarted.
    """

    def __init__(self, monitor, token=None):

        self.monitor = monitor
        self.token = token
        self.shutdown = False
        self.fired = False
        self.lock = threading.Lock()
        self.alarm = threading.Event()
        self.idle = threading.Event()
        self.idle.set()

        self.thread = threading.Thread(target=self.run)
        self.thread.daemon = True
        self.thread.start()


    def run(self):

        interval = self.monitor.interval
        next = time.monotonic() + interval

        while True:
            delay = next - time.monotonic()
            if delay > 0:
                self.alarm.wait(delay)

            if self.shutdown == True:
                break

            # Honor the cadence regardless of how long the probe took.

            next += interval

            if self.tick() == False:
                break


    def tick(self):

        logger.debug('liveness probe')

        try:
            result = self.monitor.check()
        except Exception as e:
            reason = str(e) or e.__class__.__name__
        else:
            reason = self.monitor.evaluate(result)

        if reason is None:
            return True

        # Either stop() sees the failure claimed, and waits for the callback
        # to finish, or the failure is discarded.

        with self.lock:
            if self.shutdown == True or self.fired == True:
                return False
            self.fired = True
            self.shutdown = True
            self.idle.clear()

        try:
            self.monitor._failed(self, reason)
        finally:
            self.idle.set()

        return False


    def stop(self):

        with self.lock:
            self.shutdown = True
        self.alarm.set()

        # The failure callback may stop its own monitor.

        if threading.current_thread() is not self.thread:
            self.idle.wait()


# end of class _Ticker


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
