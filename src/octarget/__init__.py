""" Python implementation of an octarget: a network configuration and
    telemetry target. This includes the data tree and its transactional
    mutator, the subscription and notification engine, and the daemon that
    puts all of it on the network.
"""

# Utility components.

from . import json
from . import errors
from . import path
from . import value
from . import ticker

# Submodules used by multiple other components.

from . import protocol
from . import config
home = config.directory

from . import tree
from . import alias
from . import index
from . import mutator
from . import outbound
from . import scheduler
from . import session

# Primary public-facing interfaces.

from .value import Value
from .target import Target
from .daemon import Daemon

# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
