""" Configuration handling for a :class:`catalink.Session`. All settings are
    resolved exactly once, when the session is constructed, from a fixed
    sequence of sources; see :func:`load` for the precedence order.
"""

import os
from urllib.parse import urlsplit

from . import json


class ConfigurationError(ValueError):
    """ Raised when the configuration is incomplete or malformed. This is the
        one class of error that stops a session before any connection
        attempt is made.
    """
    pass


development_address = 'ws://127.0.0.1:3000'

defaults = dict(
    socket_address = None,
    token = None,
    service_description = None,
    data_fields = None,
    fields = None,
    ping_interval = 60,
    timeout = 60,
    ready_backoff = 10,
    wait_for_ready = True,
    probe = 'status',
    reconnect_interval = 5,
    transport_port = None,
)

# camelCase key names, as used by JavaScript clients, accepted as aliases.

aliases = dict(
    socketAddress = 'socket_address',
    serviceDescription = 'service_description',
    dataFields = 'data_fields',
    pingInterval = 'ping_interval',
    readyBackoff = 'ready_backoff',
    waitForReady = 'wait_for_ready',
    reconnectInterval = 'reconnect_interval',
    transportPort = 'transport_port',
)

probes = ('status', 'ping')
schemes = ('ws', 'wss', 'http', 'https', 'tcp')


class Configuration:
    """ A plain container for the enumerated settings listed in
        :data:`defaults`. Instances are normally created by :func:`load`;
        :func:`validate` is invoked upon construction, so an instance in
        hand is always usable.
    """

    def __init__(self, **settings):

        for key,value in defaults.items():
            setattr(self, key, value)

        for key,value in settings.items():
            if key in defaults:
                pass
            else:
                raise ConfigurationError('unknown configuration key: ' + repr(key))

            setattr(self, key, value)

        if self.service_description is None:
            self.service_description = dict()

        self.validate()


    def __repr__(self):
        settings = self.as_dict()
        if settings['token'] is not None:
            settings['token'] = '***'
        return 'config.Configuration(%s)' % (settings,)


    def as_dict(self):
        result = dict()
        for key in defaults.keys():
            result[key] = getattr(self, key)
        return result


    def resolve_fields(self):
        """ Return the field selection to send with every data subscription.
            The more specific *data_fields* wins over *fields* when both are
            set.
        """

        if self.data_fields:
            return self.data_fields
        return self.fields


    def validate(self):

        if not self.socket_address:
            raise ConfigurationError('missing socket_address')

        if not self.token:
            raise ConfigurationError('missing token')

        scheme = urlsplit(str(self.socket_address)).scheme.lower()
        if scheme not in schemes:
            raise ConfigurationError('unsupported socket_address scheme: ' + repr(self.socket_address))

        if self.probe not in probes:
            raise ConfigurationError('probe must be one of %s, not %s' % (probes, repr(self.probe)))

        for key in ('ping_interval', 'timeout', 'ready_backoff', 'reconnect_interval'):
            value = getattr(self, key)
            try:
                value = float(value)
            except (TypeError, ValueError):
                raise ConfigurationError('%s must be a number, not %s' % (key, repr(value)))

            if value <= 0:
                raise ConfigurationError('%s must be positive' % (key))

            setattr(self, key, value)


# end of class Configuration



def directory(default=None):
    """ Return the directory location where a configuration file is loaded
        from. This defaults to ``$HOME/.catalink``, but can be overridden by
        calling this method with a valid path, or by setting the
        ``CATALINK_HOME`` environment variable. Changes to the environment
        variable will be ignored unless it is set prior to the first
        invocation of this method.
    """

    if default is not None:
        default = str(default)
        default = os.path.expandvars(default)

        if os.path.isabs(default):
            pass
        else:
            raise ValueError('the default directory must be an absolute path')

        os.environ['CATALINK_HOME'] = default
        directory.found = default


    found = directory.found

    if found is not None:
        return found

    try:
        found = os.environ['CATALINK_HOME']
    except KeyError:
        pass
    else:
        directory.found = found
        return found

    try:
        home = os.environ['HOME']
    except KeyError:
        return None

    found = os.path.join(home, '.catalink')

    directory.found = found
    return found

directory.found = None



def translate(settings):
    """ Return a copy of *settings* with any camelCase keys translated to
        their native names. The nested 'connectionProps' block is flattened
        into the top level.
    """

    translated = dict()

    for key,value in settings.items():
        if key == 'connectionProps':
            if value:
                translated.update(translate(value))
            continue

        key = aliases.get(key, key)
        translated[key] = value

    return translated



def from_file(filename=None):
    """ Return the settings found in *filename*, which defaults to
        ``config.json`` in the configuration :func:`directory`. An absent
        file yields an empty dictionary.
    """

    if filename is None:
        base_dir = directory()
        if base_dir is None:
            return dict()
        filename = os.path.join(base_dir, 'config.json')

    if os.path.exists(filename):
        pass
    else:
        return dict()

    with open(filename, 'rb') as contents:
        raw = contents.read()

    try:
        settings = json.load_object(raw, filename)
    except ValueError as e:
        raise ConfigurationError(str(e)) from e

    return translate(settings)



def from_environment(environment=None):
    """ Return the settings described by the ``CATALINK_CONFIG`` environment
        variable, which is expected to contain a JSON object.
    """

    if environment is None:
        environment = os.environ

    try:
        raw = environment['CATALINK_CONFIG']
    except KeyError:
        return dict()

    try:
        settings = json.load_object(raw, 'CATALINK_CONFIG')
    except ValueError as e:
        raise ConfigurationError(str(e)) from e

    return translate(settings)



def load(filename=None, environment=None, **overrides):
    """ Resolve a :class:`Configuration` from every available source. The
        precedence, highest first:

        1. keyword arguments passed to this function (None values ignored);
        2. the ``CATALINK_CONFIG`` environment variable;
        3. the configuration file, see :func:`from_file`;
        4. the development default address, if the ``CATALINK_DEVELOPMENT``
           environment variable is set.
    """

    if environment is None:
        environment = os.environ

    settings = dict()

    if environment.get('CATALINK_DEVELOPMENT'):
        settings['socket_address'] = development_address

    settings.update(from_file(filename))
    settings.update(from_environment(environment))

    for key,value in translate(overrides).items():
        if value is not None:
            settings[key] = value

    return Configuration(**settings)


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
