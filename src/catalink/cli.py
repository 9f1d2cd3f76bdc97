""" The ``catalink-monitor`` command: run a session against a catalink
    server and log everything it reports. Actions are answered with an error
    reply, since there is no local handler to carry them out.
"""

import argparse
import logging
import threading

from . import config
from . import events
from .session import Session

logger = logging.getLogger('catalink.monitor')


def parse_arguments(argv=None):

    description = 'Connect to a catalink server and log every session event.'
    parser = argparse.ArgumentParser(prog='catalink-monitor', description=description)

    parser.add_argument('--config', default=None, metavar='FILE',
                        help='JSON configuration file; defaults to config.json in the catalink home directory')
    parser.add_argument('--address', default=None,
                        help='socket address of the server, such as ws://127.0.0.1:3000')
    parser.add_argument('--token', default=None,
                        help='user credential for the login step')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='log at DEBUG instead of INFO')

    return parser.parse_args(argv)


def attach(session):
    """ Register a logging handler for every event on *session*.
    """

    def opened():
        logger.info('connection opened')

    def closed():
        logger.info('connection closed')

    def subscribed(service):
        logger.info('service subscribed: %s', service)

    def action(record, acknowledge):
        logger.info('action added: %s', record)
        acknowledge(None, {'type': 'NotImplementedError', 'text': 'no action handler is installed'})

    def data(name, delta):
        logger.info('%s changed: %s', name, delta)

    def queue(delta, actions):
        logger.debug('queue %s: %s', '/'.join(actions), delta)

    session.on(events.CONNECTION_OPENED, opened)
    session.on(events.CONNECTION_CLOSED, closed)
    session.on(events.SERVICE_SUBSCRIBED, subscribed)
    session.on(events.ACTION_ADDED, action)
    session.on(events.DATA_CHANGED, data)
    session.on(events.QUEUE_CHANGED, queue)


def main(argv=None):

    arguments = parse_arguments(argv)

    if arguments.verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    logging.basicConfig(level=level,
                        format='[%(asctime)s] %(name)s - %(levelname)s - %(message)s')

    try:
        settings = config.load(arguments.config,
                               socket_address=arguments.address,
                               token=arguments.token)
    except config.ConfigurationError as e:
        logger.error('%s', e)
        return 2

    session = Session(config=settings)
    attach(session)
    session.start()

    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        pass
    finally:
        session.stop()

    return 0


if __name__ == '__main__':
    raise SystemExit(main())


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
