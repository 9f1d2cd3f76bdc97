""" Python implementation of a catalink client session. A session keeps a
    long-lived connection to a catalink server healthy: it authenticates,
    waits for the server to be ready, subscribes to the control and data
    channels, probes the connection for silent failures, and delivers
    normalized change notifications to registered handlers.
"""

# Utility components.

from . import json
from . import normalize

# Submodules used by multiple other components.

from . import config
home = config.directory
load = config.load
Configuration = config.Configuration
ConfigurationError = config.ConfigurationError

from . import events
from . import transport
from . import liveness
from . import orchestrate

# Primary public-facing interfaces.

from . import session
from .session import Session, Phase

# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
