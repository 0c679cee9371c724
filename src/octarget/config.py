""" Configuration handling for an octarget. A :class:`Configuration` acts like
    a dictionary of policy settings; every setting has a default, and every
    assignment is validated. Configuration files are JSON, stored in the
    directory returned by :func:`directory` and named after the daemon that
    uses them.
"""

import os
import threading

from . import errors
from . import json
from . import path as pathlib
from . import value as valuelib


_cache = dict()
_cache_lock = threading.Lock()

second = 1000000000


def _choice(*choices):

    def validate(key, value):
        if value in choices:
            return value
        raise ValueError("%s must be one of %r, not %r" % (key, choices, value))

    return validate


def _boolean(key, value):
    if value is True or value is False:
        return value
    raise ValueError("%s must be true or false, not %r" % (key, value))


def _interval(key, value):

    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError("%s must be an integer number of nanoseconds, not %r" % (key, value))

    if value < 0:
        raise ValueError("%s cannot be negative" % (key))

    return value


def _positive(key, value):

    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise ValueError("%s must be a positive number, not %r" % (key, value))

    return value


def _count(key, value):

    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValueError("%s must be a positive integer, not %r" % (key, value))

    return value


def _elements(key, value):

    if isinstance(value, str):
        value = (value,)

    elements = list()

    for element in value:
        if not isinstance(element, str) or element == '':
            raise ValueError("%s must be a list of path elements, not %r" % (key, value))
        elements.append(element)

    return elements


def _paths(key, value):
    """ A dictionary keyed by slash-delimited path strings; the path keys
        are checked, the values are kept as-is.
    """

    if not isinstance(value, dict):
        raise ValueError("%s must be a dictionary of path: value pairs" % (key))

    for path in value.keys():
        try:
            path = pathlib.normalize(path)
        except errors.InvalidPath as e:
            raise ValueError("%s: %s" % (key, e.message))

        if not path:
            raise ValueError("%s cannot contain the root path" % (key))

    return dict(value)


def _optional_string(key, value):
    if value is None or isinstance(value, str):
        return value
    raise ValueError("%s must be a string, not %r" % (key, value))


def _optional_port(key, value):

    if value is None:
        return value

    if isinstance(value, bool) or not isinstance(value, int) or value < 1 or value > 65535:
        raise ValueError("%s must be a valid port number, not %r" % (key, value))

    return value


defaults = dict()
validators = dict()

defaults['target_defined_mode'] = 'on_change'
validators['target_defined_mode'] = _choice('on_change', 'sample')

defaults['default_sample_interval'] = 10 * second
validators['default_sample_interval'] = _interval

defaults['minimum_sample_interval'] = second // 1000
validators['minimum_sample_interval'] = _interval

defaults['minimum_heartbeat_interval'] = second // 1000
validators['minimum_heartbeat_interval'] = _interval

defaults['poll_supported'] = True
validators['poll_supported'] = _boolean

defaults['target_aliases'] = True
validators['target_aliases'] = _boolean

defaults['accept_client_aliases'] = True
validators['accept_client_aliases'] = _boolean

defaults['alias_precedence'] = 'client'
validators['alias_precedence'] = _choice('client', 'target')

defaults['queue_capacity'] = 1000
validators['queue_capacity'] = _count

defaults['overflow_policy'] = 'coalesce'
validators['overflow_policy'] = _choice('coalesce', 'block', 'close')

defaults['overflow_timeout'] = 5.0
validators['overflow_timeout'] = _positive

defaults['read_only'] = ['state']
validators['read_only'] = _elements

defaults['defaults'] = dict()
validators['defaults'] = _paths

defaults['initial'] = dict()
validators['initial'] = _paths

defaults['worker_count'] = 10
validators['worker_count'] = _count

defaults['hostname'] = None
validators['hostname'] = _optional_string

defaults['port'] = None
validators['port'] = _optional_port

defaults['log_level'] = 'INFO'
validators['log_level'] = _choice('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')



class Configuration:
    """ A convenience class to represent octarget configuration data. An
        instance acts like a dictionary; any key that has not been set
        returns its default. The optional *name* identifies the file, if
        any, the configuration was loaded from; *values* is a dictionary of
        settings to apply on top of the defaults.
    """

    def __init__(self, name=None, values=None):

        self.name = name
        self._values = dict()

        if values is not None:
            self.update(values)


    def __contains__(self, key):
        return key in validators


    def __getitem__(self, key):

        try:
            return self._values[key]
        except KeyError:
            pass

        default = defaults[key]

        # Mutable defaults are copied so that nobody can modify the shared
        # instance by accident.

        if isinstance(default, (dict, list)):
            default = type(default)(default)

        return default


    def __setitem__(self, key, value):

        try:
            validate = validators[key]
        except KeyError:
            raise KeyError('unknown configuration key: ' + repr(key))

        self._values[key] = validate(key, value)


    def __iter__(self):
        return iter(validators.keys())


    def __len__(self):
        return len(validators)


    def __repr__(self):
        return 'Configuration(%r, %r)' % (self.name, self._values)


    def get(self, key, default=None):
        if key in validators:
            return self[key]
        return default


    def keys(self):
        return validators.keys()


    def update(self, values):
        """ Validate and apply every setting in the dictionary *values*. If
            any setting is invalid, none of them are applied.
        """

        validated = dict()

        for key, value in values.items():
            try:
                validate = validators[key]
            except KeyError:
                raise KeyError('unknown configuration key: ' + repr(key))

            validated[key] = validate(key, value)

        self._values.update(validated)


    def load(self, filename):
        """ Apply the contents of the JSON file *filename*.
        """

        raw_json = open(filename, 'rb').read()
        loaded = json.loads(raw_json)

        if not isinstance(loaded, dict):
            raise ValueError('configuration file must contain a JSON object: ' + filename)

        self.update(loaded)


    def default_values(self):
        """ Return the configured leaf defaults as a dictionary mapping each
            absolute path to a :class:`value.Value`.
        """

        converted = dict()

        for path, value in self['defaults'].items():
            converted[pathlib.normalize(path)] = valuelib.from_python(value)

        return converted


    def initial_values(self):
        """ Return the configured initial leaf values as a list of (absolute
            path, Python value) pairs.
        """

        converted = list()

        for path, value in self['initial'].items():
            converted.append((pathlib.normalize(path), value))

        return converted


# end of class Configuration



def directory(default=None):
    """ Return the directory location where we should be loading
        configuration files. This defaults to ``$HOME/.octarget``, but can be
        overridden by calling this method with a valid path, or by setting
        the ``OCTARGET_HOME`` environment variable. Note that changes to the
        environment variable will be ignored unless it is set prior to the
        first invocation of this method.
    """

    if default is not None:
        default = str(default)
        default = os.path.expandvars(default)

        if os.path.isabs(default):
            pass
        else:
            raise ValueError('the default directory must be an absolute path')

        if os.path.exists(default):
            pass
        else:
            os.makedirs(default, mode=0o775)

        os.environ['OCTARGET_HOME'] = default
        directory.found = default


    found = directory.found

    if found is not None:
        return found

    try:
        found = os.environ['OCTARGET_HOME']
    except KeyError:
        pass
    else:
        directory.found = found
        return found

    try:
        home = os.environ['HOME']
    except KeyError:
        raise RuntimeError('OCTARGET_HOME and HOME environment variables not set, cannot determine octarget configuration directory')

    found = os.path.join(home, '.octarget')

    directory.found = found
    return found

directory.found = None



def get(name):
    """ Retrieve the locally cached :class:`Configuration` instance for the
        daemon *name*, loading ``<directory>/<name>.json`` the first time
        it is requested. A missing file yields the default configuration.
    """

    try:
        config = _cache[name]
    except KeyError:
        _cache_lock.acquire()

        try:
            config = _cache[name]
        except KeyError:
            config = Configuration(name)

            filename = os.path.join(directory(), name + '.json')
            if os.path.exists(filename):
                config.load(filename)

            _cache[name] = config
        finally:
            _cache_lock.release()

    return config



def clear(name=None):
    """ Discard the cached configuration for *name*, or for every name if
        *name* is None, so that the next call to :func:`get` reloads it.
    """

    with _cache_lock:
        if name is None:
            _cache.clear()
        else:
            _cache.pop(name, None)


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
