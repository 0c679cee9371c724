""" The process-level entry point for an octarget. A :class:`Daemon` loads its
    configuration, creates the :class:`target.Target`, publishes its own
    built-in state into the tree, and puts the request server on the air.
"""

import argparse
import importlib
import logging
import platform
import resource
import sys
import threading
import time

from . import config as configlib
from . import errors
from . import path as pathlib
from . import ticker
from .protocol import request
from .target import Target

logger = logging.getLogger(__name__)

system_state = ('system', 'state')


class Daemon:
    """ The octarget :class:`Daemon` is a facilitator for common actions
        taken in a daemon context: loading a configuration file,
        instantiating the :class:`target.Target`, and commencing routine
        operations.

        The developer is expected to subclass the :class:`Daemon` class and
        implement a :func:`setup` method, and/or a :func:`setup_final`
        method. A subclass can also implement a ``models`` method, which
        will be used to answer GetModels requests; it receives a
        :class:`protocol.message.GetModelsRequest` and returns a list of
        :class:`protocol.message.ModelData`.

        The *name* is the unique name of this daemon, and is used to locate
        the configuration file; a *config* instance, if provided, is used
        instead. *arguments* is expected to be an :class:`argparse.Namespace`
        instance, though in practice it can be any Python object with
        specific named attributes of interest to a :class:`Daemon` subclass.
    """

    models = None

    def __init__(self, name, arguments=None, config=None, listen=True):

        if config is None:
            config = configlib.get(name)

        self.name = name
        self.arguments = arguments
        self.config = config
        self.producers = list()
        self.server = None

        self.target = Target(self.config, self.models)

        # Local machinery is intact. Invoke the setup() method, which is the
        # hook for the developer to establish their own state producers.

        self.setup()
        self._setup_builtin_state()
        self._setup_initial_values()

        # The promise is that setup_final() gets invoked after everything else
        # is ready, but before we go on the air.

        self.setup_final()

        if listen == True:
            self.server = request.Server(self.target, self.config['hostname'], self.config['port'], worker_count=self.config['worker_count'])
            logger.info("%s listening on %s:%d", self.name, self.server.hostname, self.server.port)


    def add_producer(self, producer_class, path, **kwargs):
        """ Add a :class:`Producer` to this daemon instance, publishing to
            the absolute *path*. The *kwargs* will be passed directly to the
            *producer_class* when it is called to be instantiated.
        """

        path = pathlib.normalize(path)
        producer = producer_class(self.target, path, **kwargs)
        self.producers.append(producer)
        return producer


    def setup(self):
        """ Subclasses should override the :func:`setup` method to invoke
            :func:`add_producer` for any custom :class:`Producer` subclasses
            or otherwise execute custom code. When :func:`setup` is called
            the :class:`target.Target` is in place, but the built-in state
            and initial values have not been published, nor is the daemon
            on the air. The default implementation of this method takes no
            actions.
        """

        pass


    def _setup_builtin_state(self):
        """ Publish the built-in state for this daemon beneath /system/state.
        """

        target = self.target

        target.publish(system_state + ('hostname',), platform.node())
        target.publish(system_state + ('boot-time',), time.time_ns())

        self.add_producer(Uptime, system_state + ('uptime',))
        self.add_producer(MemoryUsage, system_state + ('memory',))
        self.add_producer(ProcessorUsage, system_state + ('cpu',))


    def _setup_initial_values(self):
        """ Apply all initial values defined in the configuration. Values set
            here bypass the read-only checks applied to clients.
        """

        for path, initial in self.config.initial_values():
            self.target.publish(path, initial)


    def setup_final(self):
        """ Subclasses should override the :func:`setup_final` method to
            execute any/all code that should occur after all built-in state
            has been published, but before this daemon goes on the air. The
            default implementation of this method takes no actions.
        """

        pass


    def stop(self):

        for producer in self.producers:
            producer.stop()

        if self.server is not None:
            self.server.stop()

        self.target.close()


# end of class Daemon



class Producer:
    """ Periodically publish a value to a single path in the tree. Subclasses
        implement :func:`perform_get`, which returns the current value;
        *period* is the refresh interval in seconds.
    """

    period = 1

    def __init__(self, target, path, period=None):

        if period is not None:
            self.period = period

        self.target = target
        self.path = path
        self.update()
        self.ticker = ticker.start(self.update, self.period)


    def perform_get(self):
        raise NotImplementedError('Producer subclasses must implement perform_get()')


    def update(self):
        self.target.publish(self.path, self.perform_get())


    def stop(self):
        if self.ticker is not None:
            self.ticker.stop()
            self.ticker = None


# end of class Producer



class MemoryUsage(Producer):

    def perform_get(self):

        resources = resource.getrusage(resource.RUSAGE_SELF)
        max_usage = resources.ru_maxrss

        return max_usage


# end of class MemoryUsage



class ProcessorUsage(Producer):

    def __init__(self, *args, **kwargs):
        resources = resource.getrusage(resource.RUSAGE_SELF)
        self.previous_usage = resources.ru_utime + resources.ru_stime
        self.previous_time = time.time()

        Producer.__init__(self, *args, **kwargs)


    def perform_get(self):

        resources = resource.getrusage(resource.RUSAGE_SELF)
        current_usage = resources.ru_utime + resources.ru_stime
        current_time = time.time()

        consumed = current_usage - self.previous_usage
        elapsed = current_time - self.previous_time

        self.previous_usage = current_usage
        self.previous_time = current_time

        if elapsed > 0:
            usage_percent = 100 * consumed / elapsed
        elif consumed > 0:
            usage_percent = 100
        else:
            usage_percent = 0

        return usage_percent


# end of class ProcessorUsage



class Uptime(Producer):

    def __init__(self, *args, **kwargs):

        self.starttime = time.time()
        Producer.__init__(self, *args, **kwargs)


    def perform_get(self):
        return time.time() - self.starttime


# end of class Uptime



def main(arguments=None):
    """ Entry point for the ``octargetd`` command. Parse the command line,
        configure logging, and run a daemon until interrupted.
    """

    parser = argparse.ArgumentParser(description='Run an octarget daemon.')
    parser.add_argument('name', help='Unique name of this daemon, used to locate its configuration file.')
    parser.add_argument('-c', '--config', help='Configuration file to use instead of the default location.')
    parser.add_argument('-m', '--module', help='Python module containing a Daemon subclass to run.')
    parser.add_argument('-p', '--port', type=int, help='Port to listen on, overriding the configuration.')

    parsed = parser.parse_args(arguments)

    if parsed.config is None:
        config = configlib.get(parsed.name)
    else:
        config = configlib.Configuration(parsed.name)
        config.load(parsed.config)

    if parsed.port is not None:
        config['port'] = parsed.port

    logging.basicConfig(level=config['log_level'], format='%(asctime)s %(levelname)s %(name)s: %(message)s')

    daemon_class = Daemon

    if parsed.module is not None:
        module = importlib.import_module(parsed.module)
        daemon_class = getattr(module, 'Daemon')

    try:
        daemon = daemon_class(parsed.name, parsed, config)
    except (errors.TargetError, ValueError, KeyError) as e:
        logger.error("cannot start %s: %s", parsed.name, e)
        return 1

    finished = threading.Event()

    try:
        while finished.wait(300) == False:
            pass
    except KeyboardInterrupt:
        pass

    daemon.stop()
    return 0


if __name__ == '__main__':
    sys.exit(main())


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
