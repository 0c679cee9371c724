""" Class representations of the request and response messages exchanged
    with an octarget. Each class can render itself as a dictionary with
    :func:`to_dict`, and be recreated from one with :func:`from_dict`; the
    dictionaries use the field names of the wire contract, and every
    enumerated discriminant is carried as its fixed ordinal.
"""

import enum

from .. import errors
from .. import json
from .. import path as pathlib
from ..value import Value


# This is the version of the octarget on-the-wire framing implemented here,
# identified by a single byte.

version = b'a'


class Operation(enum.IntEnum):
    NOT_SPECIFIED = 0
    DELETE = 1
    REPLACE = 2
    UPDATE = 3


class GetType(enum.IntEnum):
    ALL = 0
    CONFIG = 1
    STATE = 2
    OPERATIONAL = 3


class Mode(enum.IntEnum):
    STREAM = 0
    ONCE = 1
    POLL = 2


class SubscriptionMode(enum.IntEnum):
    TARGET_DEFINED = 0
    ON_CHANGE = 1
    SAMPLE = 2


class ModelRequestType(enum.IntEnum):
    SUMMARY = 0
    DETAIL = 1


class ModelType(enum.IntEnum):
    MODULE = 0
    BUNDLE = 1
    AUGMENTATION = 3
    DEVIATION = 4



def path_to_dict(path):
    if isinstance(path, str):
        path = pathlib.normalize(path)
    return {'element': list(path)}


def path_from_dict(encoded):

    # Paths are validated by the engine, not here, so that a bad path can
    # be reported against the one operation it appears in.

    if encoded is None:
        return pathlib.root
    return tuple(encoded.get('element', ()))


def _enum(kind, number):
    try:
        return kind(number)
    except ValueError:
        raise errors.MalformedValue("unknown %s ordinal: %r" % (kind.__name__, number))



class Update:
    """ An :class:`Update` maps a *path* to a :class:`Value`. In a Set
        request a *value* of None removes the path; in a notification the
        path always addresses a leaf.
    """

    def __init__(self, path, value=None):
        self.path = path
        self.value = value


    def __repr__(self):
        return 'Update(%s, %r)' % (pathlib.render(self.path), self.value)


    def to_dict(self):
        encoded = dict()
        encoded['path'] = path_to_dict(self.path)
        if self.value is not None:
            encoded['value'] = self.value.to_dict()
        return encoded


    @classmethod
    def from_dict(cls, encoded):
        path = path_from_dict(encoded.get('path'))
        value = encoded.get('value')
        if value is not None:
            value = Value.from_dict(value)
        return cls(path, value)


# end of class Update



class Notification:
    """ A :class:`Notification` is a batch of *updates* and *deletes*, all
        relative to *prefix*, generated at *timestamp* (nanoseconds since the
        epoch). A notification with *alias* set and a non-empty prefix
        defines that alias; with *alias* set and no prefix, it withdraws
        the alias.
    """

    def __init__(self, timestamp, prefix=pathlib.root, alias='', updates=None, deletes=None):
        self.timestamp = timestamp
        self.prefix = prefix
        self.alias = alias

        if updates is None:
            updates = list()
        if deletes is None:
            deletes = list()

        self.updates = updates
        self.deletes = deletes


    def __repr__(self):
        return 'Notification(%d, %s, alias=%r, updates=%r, deletes=%r)' % (self.timestamp, pathlib.render(self.prefix), self.alias, self.updates, [pathlib.render(path) for path in self.deletes])


    def paths(self):
        """ Return the absolute paths (prefix joined with each update and
            delete path) touched by this notification, updates first.
        """

        absolute = list()

        for update in self.updates:
            absolute.append(self.prefix + update.path)
        for deleted in self.deletes:
            absolute.append(self.prefix + deleted)

        return absolute


    def to_dict(self):
        encoded = dict()
        encoded['timestamp'] = self.timestamp
        encoded['prefix'] = path_to_dict(self.prefix)

        if self.alias:
            encoded['alias'] = self.alias

        encoded['update'] = [update.to_dict() for update in self.updates]
        encoded['delete'] = [path_to_dict(deleted) for deleted in self.deletes]
        return encoded


    @classmethod
    def from_dict(cls, encoded):
        updates = [Update.from_dict(update) for update in encoded.get('update', ())]
        deletes = [path_from_dict(deleted) for deleted in encoded.get('delete', ())]
        prefix = path_from_dict(encoded.get('prefix'))
        return cls(encoded.get('timestamp', 0), prefix, encoded.get('alias', ''), updates, deletes)


# end of class Notification



class UpdateResponse:
    """ The outcome of a single operation in a Set request. The *timestamp*
        is when the request was accepted; *error* is None for an operation
        that validated successfully.
    """

    def __init__(self, timestamp, path, op, error=None):
        self.timestamp = timestamp
        self.path = path
        self.op = Operation(op)
        self.error = error


    def __repr__(self):
        return 'UpdateResponse(%s %s, error=%r)' % (self.op.name, pathlib.render(self.path), self.error)


    def to_dict(self):
        encoded = dict()
        encoded['timestamp'] = self.timestamp
        encoded['path'] = path_to_dict(self.path)
        encoded['op'] = int(self.op)
        if self.error is not None:
            encoded['message'] = self.error.to_dict()
        return encoded


    @classmethod
    def from_dict(cls, encoded):
        error = encoded.get('message')
        if error is not None:
            error = errors.TargetError.from_dict(error)

        path = path_from_dict(encoded.get('path'))

        return cls(encoded.get('timestamp', 0), path, _enum(Operation, encoded.get('op', 0)), error)


# end of class UpdateResponse



class SetResponse:
    """ The response to a Set request: one :class:`UpdateResponse` per
        operation, in the order the operations were applied. If any
        operation failed, *error* describes the aborted transaction.
    """

    def __init__(self, prefix, responses, error=None):
        self.prefix = prefix
        self.responses = responses
        self.error = error


    @property
    def ok(self):
        return self.error is None


    def __repr__(self):
        return 'SetResponse(%r, error=%r)' % (self.responses, self.error)


    def to_dict(self):
        encoded = dict()
        encoded['prefix'] = path_to_dict(self.prefix)
        encoded['response'] = [response.to_dict() for response in self.responses]
        if self.error is not None:
            encoded['error'] = self.error.to_dict()
        return encoded


    @classmethod
    def from_dict(cls, encoded):
        responses = [UpdateResponse.from_dict(response) for response in encoded.get('response', ())]
        error = encoded.get('error')
        if error is not None:
            error = errors.TargetError.from_dict(error)
        return cls(path_from_dict(encoded.get('prefix')), responses, error)


# end of class SetResponse



class GetResponse:
    """ The response to a Get request. *errors* is a list of (path, error)
        pairs for requested paths that could not be retrieved; the other
        paths are still represented in *notifications*.
    """

    def __init__(self, notifications, errors=None):
        self.notifications = notifications

        if errors is None:
            errors = list()

        self.errors = errors


    def to_dict(self):
        encoded = dict()
        encoded['notification'] = [notification.to_dict() for notification in self.notifications]
        encoded['errors'] = [{'path': list(path), 'message': error.to_dict()} for path, error in self.errors]
        return encoded


    @classmethod
    def from_dict(cls, encoded):
        notifications = [Notification.from_dict(notification) for notification in encoded.get('notification', ())]

        failures = list()
        for failure in encoded.get('errors', ()):
            error = errors.TargetError.from_dict(failure['message'])
            failures.append((tuple(failure['path']), error))

        return cls(notifications, failures)


# end of class GetResponse



class GetRequest:
    """ A request for a snapshot of the data at each of *paths*, relative to
        *prefix*, filtered by *type*. The *cache_interval* is a hint, in
        nanoseconds, for how stale the data may be.
    """

    def __init__(self, prefix=pathlib.root, paths=None, type=GetType.ALL, cache_interval=0):
        if paths is None:
            paths = list()

        self.prefix = prefix
        self.paths = paths
        self.type = type
        self.cache_interval = cache_interval


    def to_dict(self):
        encoded = dict()
        encoded['prefix'] = path_to_dict(self.prefix)
        encoded['path'] = [path_to_dict(path) for path in self.paths]
        encoded['type'] = int(self.type)
        encoded['cache_interval'] = self.cache_interval
        return encoded


    @classmethod
    def from_dict(cls, encoded):
        paths = [path_from_dict(path) for path in encoded.get('path', ())]
        type = _enum(GetType, encoded.get('type', 0))
        return cls(path_from_dict(encoded.get('prefix')), paths, type, encoded.get('cache_interval', 0))


# end of class GetRequest



class SetRequest:
    """ A transaction: *deletes* is a list of paths, *replaces* and
        *updates* are lists of :class:`Update` instances, all relative to
        *prefix*.
    """

    def __init__(self, prefix=pathlib.root, deletes=None, replaces=None, updates=None):
        if deletes is None:
            deletes = list()
        if replaces is None:
            replaces = list()
        if updates is None:
            updates = list()

        self.prefix = prefix
        self.deletes = deletes
        self.replaces = replaces
        self.updates = updates


    def to_dict(self):
        encoded = dict()
        encoded['prefix'] = path_to_dict(self.prefix)
        encoded['delete'] = [path_to_dict(path) for path in self.deletes]
        encoded['replace'] = [update.to_dict() for update in self.replaces]
        encoded['update'] = [update.to_dict() for update in self.updates]
        return encoded


    @classmethod
    def from_dict(cls, encoded):
        deletes = [path_from_dict(path) for path in encoded.get('delete', ())]
        replaces = [Update.from_dict(update) for update in encoded.get('replace', ())]
        updates = [Update.from_dict(update) for update in encoded.get('update', ())]
        return cls(path_from_dict(encoded.get('prefix')), deletes, replaces, updates)


# end of class SetRequest



class Subscription:
    """ A standing request for updates to one *path*. The intervals are in
        nanoseconds; see :mod:`octarget.scheduler` for how they are applied.
    """

    def __init__(self, path, mode=SubscriptionMode.TARGET_DEFINED, sample_interval=0, suppress_redundant=False, heartbeat_interval=0):
        self.path = path
        self.mode = mode
        self.sample_interval = sample_interval
        self.suppress_redundant = suppress_redundant
        self.heartbeat_interval = heartbeat_interval


    def __repr__(self):
        return 'Subscription(%s, %r)' % (pathlib.render(self.path), self.mode)


    def to_dict(self):
        encoded = dict()
        encoded['path'] = path_to_dict(self.path)
        encoded['mode'] = int(self.mode)
        encoded['sample_interval'] = self.sample_interval
        encoded['suppress_redundant'] = self.suppress_redundant
        encoded['heartbeat_interval'] = self.heartbeat_interval
        return encoded


    @classmethod
    def from_dict(cls, encoded):

        # The mode is kept as a raw number if it is unknown, so that the
        # session can reject it with the appropriate error.

        mode = encoded.get('mode', 0)
        try:
            mode = SubscriptionMode(mode)
        except ValueError:
            pass

        path = path_from_dict(encoded.get('path'))
        return cls(path, mode, encoded.get('sample_interval', 0), encoded.get('suppress_redundant', False), encoded.get('heartbeat_interval', 0))


# end of class Subscription



class SubscriptionList:
    """ The subscribe variant of a :class:`SubscribeRequest`.
    """

    type = 'subscribe'

    def __init__(self, subscriptions, prefix=pathlib.root, mode=Mode.STREAM, use_aliases=False, qos=None):
        self.subscriptions = subscriptions
        self.prefix = prefix
        self.mode = mode
        self.use_aliases = use_aliases
        self.qos = qos


    def to_dict(self):
        encoded = dict()
        encoded['prefix'] = path_to_dict(self.prefix)
        encoded['subscription'] = [subscription.to_dict() for subscription in self.subscriptions]
        encoded['use_aliases'] = self.use_aliases
        if self.qos is not None:
            encoded['qos'] = {'marking': self.qos}
        encoded['mode'] = int(self.mode)
        return encoded


    @classmethod
    def from_dict(cls, encoded):
        subscriptions = [Subscription.from_dict(subscription) for subscription in encoded.get('subscription', ())]

        mode = encoded.get('mode', 0)
        try:
            mode = Mode(mode)
        except ValueError:
            pass

        qos = encoded.get('qos')
        if qos is not None:
            qos = qos.get('marking', 0)

        prefix = path_from_dict(encoded.get('prefix'))
        return cls(subscriptions, prefix, mode, encoded.get('use_aliases', False), qos)


# end of class SubscriptionList



class Heartbeat:
    """ The heartbeat variant of both :class:`SubscribeRequest` and
        :class:`SubscribeResponse`. The *interval* is the maximum silence,
        in nanoseconds, the requester is willing to tolerate.
    """

    type = 'heartbeat'

    def __init__(self, interval=0):
        self.interval = interval


    def to_dict(self):
        return {'interval': self.interval}


    @classmethod
    def from_dict(cls, encoded):
        return cls(encoded.get('interval', 0))


# end of class Heartbeat



class PollRequest:

    type = 'poll'

    def to_dict(self):
        return dict()


    @classmethod
    def from_dict(cls, encoded):
        return cls()


# end of class PollRequest



class Alias:
    """ A client-defined *alias* (itself a path) for the fully expanded
        *path*. An empty *path* withdraws the alias.
    """

    def __init__(self, alias, path=pathlib.root):
        self.alias = alias
        self.path = path


    def to_dict(self):
        return {'alias': path_to_dict(self.alias), 'path': path_to_dict(self.path)}


    @classmethod
    def from_dict(cls, encoded):
        return cls(path_from_dict(encoded.get('alias')), path_from_dict(encoded.get('path')))


# end of class Alias



class AliasList:

    type = 'aliases'

    def __init__(self, aliases):
        self.aliases = aliases


    def to_dict(self):
        return {'alias': [alias.to_dict() for alias in self.aliases]}


    @classmethod
    def from_dict(cls, encoded):
        return cls([Alias.from_dict(alias) for alias in encoded.get('alias', ())])


# end of class AliasList



class Proxies:
    """ Informational proxy-chain metadata. An octarget records it for
        logging and otherwise ignores it.
    """

    def __init__(self, proxies=None, target_name='', client_name=''):
        if proxies is None:
            proxies = list()

        self.proxies = proxies
        self.target_name = target_name
        self.client_name = client_name


    def __repr__(self):
        return 'Proxies(%r, target=%r, client=%r)' % (self.proxies, self.target_name, self.client_name)


    def to_dict(self):
        encoded = dict()
        encoded['proxy'] = [{'address': address, 'name': name} for address, name in self.proxies]
        encoded['target_name'] = self.target_name
        encoded['client_name'] = self.client_name
        return encoded


    @classmethod
    def from_dict(cls, encoded):
        proxies = [(proxy.get('address', ''), proxy.get('name', '')) for proxy in encoded.get('proxy', ())]
        return cls(proxies, encoded.get('target_name', ''), encoded.get('client_name', ''))


# end of class Proxies



request_variants = dict()
request_variants['subscribe'] = SubscriptionList
request_variants['heartbeat'] = Heartbeat
request_variants['poll'] = PollRequest
request_variants['aliases'] = AliasList


class SubscribeRequest:
    """ One message on the inbound half of a subscription stream. The
        *request* is exactly one of :class:`SubscriptionList`,
        :class:`Heartbeat`, :class:`PollRequest`, or :class:`AliasList`;
        its class-level ``type`` attribute identifies which.
    """

    def __init__(self, request, proxy=None):

        if request.type in request_variants:
            pass
        else:
            raise ValueError('invalid subscribe request type: ' + repr(request.type))

        self.request = request
        self.proxy = proxy


    @property
    def type(self):
        return self.request.type


    def __repr__(self):
        return 'SubscribeRequest(%s)' % (self.type)


    def to_dict(self):
        encoded = dict()
        encoded[self.type] = self.request.to_dict()
        if self.proxy is not None:
            encoded['proxy'] = self.proxy.to_dict()
        return encoded


    @classmethod
    def from_dict(cls, encoded):

        request = None

        for type, variant in request_variants.items():
            try:
                contents = encoded[type]
            except KeyError:
                continue

            request = variant.from_dict(contents)
            break

        if request is None:
            raise errors.MalformedValue('subscribe request does not contain a request')

        proxy = encoded.get('proxy')
        if proxy is not None:
            proxy = Proxies.from_dict(proxy)

        return cls(request, proxy)


# end of class SubscribeRequest



class SubscribeResponse:
    """ One message on the outbound half of a subscription stream. The
        *type* is 'update' (with a :class:`Notification`), 'heartbeat', or
        'sync'. The *sequence* is assigned as the response leaves the
        session's outbound queue; it starts at 1 and has no gaps.
    """

    valid_types = set(('update', 'heartbeat', 'sync'))

    def __init__(self, type, notification=None, sequence=None):

        if type in self.valid_types:
            pass
        else:
            raise ValueError('invalid subscribe response type: ' + repr(type))

        self.type = type
        self.notification = notification
        self.sequence = sequence


    def __repr__(self):
        if self.type == 'update':
            return 'SubscribeResponse(%r, %r)' % (self.sequence, self.notification)
        return 'SubscribeResponse(%r, %s)' % (self.sequence, self.type)


    def to_dict(self):
        encoded = dict()

        if self.type == 'update':
            encoded['update'] = self.notification.to_dict()
        elif self.type == 'heartbeat':
            encoded['heartbeat'] = dict()
        else:
            encoded['sync_response'] = True

        if self.sequence is not None:
            encoded['sequence'] = self.sequence

        return encoded


    @classmethod
    def from_dict(cls, encoded):

        sequence = encoded.get('sequence')

        if 'update' in encoded:
            notification = Notification.from_dict(encoded['update'])
            return cls('update', notification, sequence)

        if 'heartbeat' in encoded:
            return cls('heartbeat', sequence=sequence)

        if encoded.get('sync_response'):
            return cls('sync', sequence=sequence)

        raise errors.MalformedValue('subscribe response does not contain a response')


# end of class SubscribeResponse



class GetModelsRequest:

    def __init__(self, request_type=ModelRequestType.SUMMARY, name='', namespace='', version=''):
        self.request_type = request_type
        self.name = name
        self.namespace = namespace
        self.version = version


    def to_dict(self):
        encoded = dict()
        encoded['request_type'] = int(self.request_type)
        encoded['query'] = {'name': self.name, 'namespace': self.namespace, 'version': self.version}
        return encoded


    @classmethod
    def from_dict(cls, encoded):
        query = encoded.get('query', {})
        request_type = _enum(ModelRequestType, encoded.get('request_type', 0))
        return cls(request_type, query.get('name', ''), query.get('namespace', ''), query.get('version', ''))


# end of class GetModelsRequest



class ModelData:

    def __init__(self, name, namespace='', version='', data=b'', model_type=ModelType.MODULE):
        self.name = name
        self.namespace = namespace
        self.version = version
        self.data = data
        self.model_type = model_type


    def to_dict(self):
        encoded = dict()
        encoded['name'] = self.name
        encoded['namespace'] = self.namespace
        encoded['version'] = self.version
        encoded['data'] = json.encode_bytes(self.data)
        encoded['model_type'] = int(self.model_type)
        return encoded


    @classmethod
    def from_dict(cls, encoded):
        data = json.decode_bytes(encoded.get('data'), 'data')
        model_type = _enum(ModelType, encoded.get('model_type', 0))
        return cls(encoded.get('name', ''), encoded.get('namespace', ''), encoded.get('version', ''), data, model_type)


# end of class ModelData



class GetModelsResponse:

    def __init__(self, models=None):
        if models is None:
            models = list()
        self.models = models


    def to_dict(self):
        return {'model': [model.to_dict() for model in self.models]}


    @classmethod
    def from_dict(cls, encoded):
        return cls([ModelData.from_dict(model) for model in encoded.get('model', ())])


# end of class GetModelsResponse



def encode(message):
    """ Return the JSON bytes for any message instance defined here.
    """

    return json.pack(message)



def decode(kind, raw):
    """ Recreate an instance of the message class *kind* from JSON bytes.
    """

    return json.unpack(raw, kind)


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
