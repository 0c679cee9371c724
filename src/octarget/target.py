""" The :class:`Target` ties the engine together: a single
    :class:`tree.ConfigTree`, the alias table, the subscription index, the
    mutator, and every active :class:`session.StreamSession`. The four
    externally visible operations are :func:`Target.get`, :func:`Target.set`,
    :func:`Target.subscribe`, and :func:`Target.get_models`; the daemon's own
    state producers write via :func:`Target.publish` and
    :func:`Target.apply`.
"""

import logging
import threading

from . import config as configlib
from . import errors
from . import path as pathlib
from . import tree as treelib
from . import value as valuelib
from .alias import AliasTable
from .index import SubscriptionIndex
from .mutator import Mutator, Pending
from .protocol.message import GetResponse, GetType, Notification, Operation, Update
from .session import StreamSession

logger = logging.getLogger(__name__)


class Target:
    """ An octarget engine instance. The *config* is a
        :class:`config.Configuration`, or a dictionary of settings to apply
        on top of the defaults. The optional *models* callable handles
        GetModels requests: it receives a
        :class:`protocol.message.GetModelsRequest` and returns a list of
        :class:`protocol.message.ModelData`.
    """

    def __init__(self, config=None, models=None):

        if config is None:
            config = configlib.Configuration()
        elif isinstance(config, dict):
            config = configlib.Configuration(values=config)

        self.config = config
        self.models = models

        self.tree = treelib.ConfigTree()
        self.aliases = AliasTable(self._exists, config['alias_precedence'])
        self.index = SubscriptionIndex()
        self.mutator = Mutator(self.tree, self.aliases, config['read_only'], config.default_values(), self._dispatch)

        self.sessions = set()
        self.sessions_lock = threading.Lock()


    def _exists(self, path):
        return self.tree.snapshot().exists(path)


    def get(self, prefix=None, paths=(), type=GetType.ALL, cache_interval=None, client=None):
        """ Return a :class:`protocol.message.GetResponse` with one
            notification for every leaf at or beneath each of *paths*,
            relative to *prefix*. An empty *paths* requests the prefix
            itself. Invalid paths are reported individually in the response
            and do not prevent the retrieval of the others.
        """

        try:
            type = GetType(type)
        except ValueError:
            raise errors.MalformedValue('unknown get type: ' + repr(type))

        if cache_interval:
            logger.debug("get with cache interval %r ns, serving live data", cache_interval)

        snapshot = self.tree.snapshot()
        notifications = list()
        failures = list()

        if not paths:
            paths = (pathlib.root,)

        try:
            prefix = pathlib.normalize(prefix)
        except errors.InvalidPath as e:
            for given in paths:
                failures.append((_reported(given), e))
            return GetResponse(notifications, failures)

        for given in paths:
            try:
                relative = pathlib.normalize(given)
            except errors.InvalidPath as e:
                failures.append((_reported(given), e))
                continue

            absolute = self.aliases.resolve(prefix + relative, client)

            for leaf_path, node in snapshot.leaves(absolute):
                if _selected(snapshot, leaf_path, type) == False:
                    continue

                update = Update(pathlib.relative(absolute, leaf_path), node.value)
                notifications.append(Notification(node.timestamp, absolute, updates=[update]))

        return GetResponse(notifications, failures)


    def set(self, prefix=None, deletes=(), replaces=(), updates=(), client=None):
        """ Apply a Set transaction on behalf of a client, returning the
            :class:`protocol.message.SetResponse`. See
            :func:`mutator.Mutator.apply` for the details.
        """

        response, changes = self.mutator.apply(prefix, deletes, replaces, updates, client)

        if response.error is None:
            logger.debug("set committed %d changed leaves", len(changes))

        return response


    def subscribe(self, client=None):
        """ Return a new :class:`session.StreamSession` for a Subscribe call.
            The *client* identity, if any, selects the alias partition the
            session uses.
        """

        session = StreamSession(self, client)

        with self.sessions_lock:
            self.sessions.add(session)

        return session


    def get_models(self, request=None):
        if self.models is None:
            raise errors.Unimplemented('no model provider is configured for this target')
        return self.models(request)


    def publish(self, path, value, timestamp=None):
        """ Write *value* at the absolute *path* on behalf of the target
            itself, bypassing the read-only checks applied to clients. The
            *value* can be a :class:`value.Value` or any Python value that
            :func:`value.from_python` accepts; a dictionary is merged into
            the existing contents at *path*. Return the list of
            :class:`tree.Change` instances produced.
        """

        value = valuelib.from_python(value)
        operation = Pending(Operation.UPDATE, path, value)

        response, changes = self.mutator.transact(pathlib.root, [operation], internal=True, timestamp=timestamp)

        if response.error is not None:
            raise operation.error

        return changes


    def apply(self, notification):
        """ Apply an internally generated :class:`protocol.message.Notification`:
            the updates are applied first, followed by the deletes, which
            only remove leaves no newer than the notification timestamp.
        """

        operations = list()

        for update in notification.updates:
            operations.append(Pending(Operation.UPDATE, update.path, update.value))
        for deleted in notification.deletes:
            operations.append(Pending(Operation.DELETE, deleted))

        timestamp = notification.timestamp or None
        response, changes = self.mutator.transact(notification.prefix, operations, internal=True, timestamp=timestamp, cutoff=timestamp)

        if response.error is not None:
            for operation in operations:
                if operation.error is not None:
                    raise operation.error

            raise response.error

        return changes


    def _dispatch(self, changes):
        """ Hand each committed change to every session with a subscription
            governing it. Called by the mutator with the commit lock held.
        """

        batches = dict()

        for change in changes:
            matches = self.index.match(change.path)

            for session, scheduled in matches.items():
                try:
                    batch = batches[session]
                except KeyError:
                    batch = list()
                    batches[session] = batch

                batch.append((change, scheduled))

        for session, batch in batches.items():
            session.offer(batch)


    def _retire(self, session):
        """ Forget a closed *session*. The alias partition for its client
            identity is dropped once no remaining session shares it.
        """

        client = session.client

        with self.sessions_lock:
            self.sessions.discard(session)

            for other in self.sessions:
                if other.client == client:
                    return

            self.aliases.teardown(client)


    def close(self):
        """ Close every active session.
        """

        with self.sessions_lock:
            sessions = list(self.sessions)

        for session in sessions:
            session.close(errors.Cancelled('target is shutting down'))


# end of class Target



def _selected(snapshot, path, type):

    if type == GetType.ALL:
        return True

    kind = treelib.classify(path)

    if type == GetType.CONFIG:
        return kind == 'config'

    if kind != 'state':
        return False

    if type == GetType.STATE:
        return True

    # Operational data is state with no corresponding config leaf.

    return snapshot.exists(treelib.counterpart(path)) == False



def _reported(given):
    """ Return a representation of a requested path suitable for an error
        report, no matter how malformed the path was.
    """

    if isinstance(given, str):
        return (given,)

    try:
        return tuple(str(element) for element in given)
    except TypeError:
        return (repr(given),)


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
