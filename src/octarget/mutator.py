""" Transactional writes against the :class:`tree.ConfigTree`. A Set request
    is a list of delete, replace, and update operations that is applied in
    its entirety or not at all: every operation is validated first, the
    operations are applied in order to a copy-on-write view of the tree, and
    only if all of them succeed is the view committed. The changed leaves
    are then handed to the *dispatch* callable, still under the commit lock,
    so that notifications for successive transactions are never reordered.
"""

import logging

from . import errors
from . import path as pathlib
from . import tree as treelib
from .protocol.message import Operation, SetResponse, UpdateResponse

logger = logging.getLogger(__name__)


class Pending:
    """ One operation of a transaction, as resolved against the tree.
    """

    __slots__ = ('op', 'given', 'path', 'value', 'python', 'error')

    def __init__(self, op, given, value=None):
        self.op = op
        self.given = given
        self.path = None
        self.value = value
        self.python = None
        self.error = None


class Mutator:
    """ Validate and apply transactions against *tree*. The *aliases* table,
        if provided, is used to expand a leading alias in each path. Any path
        element named in *read_only* marks a subtree clients cannot write;
        writes flagged as internal are exempt. *defaults* maps absolute leaf
        paths to the :class:`value.Value` a leaf receives when a replace, or
        an update that creates its parent, leaves it unspecified.
    """

    def __init__(self, tree, aliases=None, read_only=('state',), defaults=None, dispatch=None):

        if defaults is None:
            defaults = dict()

        self.tree = tree
        self.aliases = aliases
        self.read_only = frozenset(read_only)
        self.defaults = defaults
        self.dispatch = dispatch


    def apply(self, prefix=None, deletes=(), replaces=(), updates=(), client=None, internal=False):
        """ Apply a Set transaction: *deletes* is a sequence of paths,
            *replaces* and *updates* are sequences of
            :class:`protocol.message.Update` instances, all relative to
            *prefix*. Return a tuple of (:class:`protocol.message.SetResponse`,
            list of :class:`tree.Change`); the list is empty if the
            transaction was aborted.
        """

        operations = list()

        for path in deletes:
            operations.append(Pending(Operation.DELETE, path))
        for update in replaces:
            operations.append(Pending(Operation.REPLACE, update.path, update.value))
        for update in updates:
            operations.append(Pending(Operation.UPDATE, update.path, update.value))

        return self.transact(prefix, operations, client, internal)


    def transact(self, prefix, operations, client=None, internal=False, timestamp=None, cutoff=None):
        """ Apply a list of pending operations in the order given. This is
            the common path for :func:`apply` and for internally generated
            notifications, which need updates applied before deletes. A
            *timestamp* overrides the leaf timestamp for written values, and
            *cutoff* overrides the delete guard; both default to the time the
            transaction is accepted.
        """

        try:
            prefix = pathlib.normalize(prefix)
        except errors.InvalidPath as e:
            prefix_error = e
        else:
            prefix_error = None

        tree = self.tree

        with tree.lock:
            accepted = tree.clock()

            if timestamp is None:
                timestamp = accepted
            if cutoff is None:
                cutoff = accepted

            failures = 0

            for operation in operations:
                if prefix_error is not None:
                    operation.error = prefix_error
                else:
                    self._validate(prefix, operation, client, internal)

                if operation.error is not None:
                    failures += 1

            responses = list()
            for operation in operations:
                responses.append(UpdateResponse(accepted, operation.given, operation.op, operation.error))

            if failures:
                error = errors.Aborted('transaction aborted, %d of %d operations failed' % (failures, len(operations)))
                logger.debug("%s: %r", error.message, [operation.error for operation in operations if operation.error])
                return (SetResponse(prefix, responses, error), [])

            if internal == True or not self.read_only:
                preserve = None
            else:
                preserve = self._preserve

            view = tree.view()

            for operation in operations:
                self._apply(view, operation, timestamp, cutoff, preserve)

            changes = view.changes(accepted)
            tree.commit(view)

            if changes and self.dispatch is not None:
                self.dispatch(changes)

        return (SetResponse(prefix, responses), changes)


    def _validate(self, prefix, operation, client, internal):
        """ Resolve the path for *operation* and check it for errors, setting
            :attr:`error` on the operation rather than raising.
        """

        try:
            relative = pathlib.normalize(operation.given)
            operation.given = relative
            absolute = prefix + relative

            if self.aliases is not None:
                absolute = self.aliases.resolve(absolute, client)

            operation.path = absolute

            value = operation.value

            if value is None:
                if operation.op == Operation.REPLACE:
                    raise errors.MalformedValue('replace of %s has no value' % (pathlib.render(absolute)))
            else:
                value.validate()

                if value.is_directory():
                    python = value.decode()

                    if not isinstance(python, dict):
                        raise errors.MalformedValue('directory value is not an object')

                    operation.python = python
                    _check_keys(absolute, python)

                elif not absolute:
                    raise errors.InvalidPath('cannot write a leaf value at the root')

            if internal == False:
                self._check_writable(operation)

        except errors.TargetError as e:
            operation.error = e


    def _check_writable(self, operation):

        read_only = self.read_only

        if not read_only:
            return

        for element in operation.path:
            if element in read_only:
                raise errors.ReadOnlyPath('%s is read-only' % (pathlib.render(operation.path)))

        if operation.python is None:
            return

        for relative, item in treelib.flatten(operation.python):
            for element in relative:
                if element in read_only:
                    raise errors.ReadOnlyPath('%s is read-only' % (pathlib.render(operation.path + relative)))


    def _preserve(self, path):
        return len(path) > 0 and path[-1] in self.read_only


    def _apply(self, view, operation, timestamp, cutoff, preserve):

        path = operation.path
        value = operation.value
        op = operation.op

        if op == Operation.DELETE or (op == Operation.UPDATE and value is None):
            view.delete(path, cutoff, timestamp, preserve)
            return

        if op == Operation.REPLACE:
            view.delete(path, cutoff, timestamp, preserve)
            created = True
        else:
            created = view.snapshot().exists(path) == False

        if operation.python is None:
            view.set_leaf(path, value, timestamp)
        elif operation.python:
            view.merge(path, operation.python, timestamp)

        if created and self.defaults:
            self._apply_defaults(view, path, timestamp)


    def _apply_defaults(self, view, path, timestamp):
        """ Fill in every configured default beneath *path* that is not
            already present in *view*.
        """

        snapshot = view.snapshot()

        for default_path, default in self.defaults.items():
            if not pathlib.contains(path, default_path):
                continue

            if snapshot.exists(default_path):
                continue

            if _blocked(snapshot, path, default_path):
                continue

            view.set_leaf(default_path, default, timestamp)
            snapshot = view.snapshot()


# end of class Mutator



def _check_keys(path, python):

    for element, item in python.items():
        if not isinstance(element, str) or element == '':
            raise errors.InvalidPath('invalid element %r beneath %s' % (element, pathlib.render(path)))

        if isinstance(item, dict):
            _check_keys(path + (element,), item)



def _blocked(snapshot, path, default_path):
    """ Return True if a leaf exists between *path* and *default_path*; a
        default never converts an existing leaf into a directory.
    """

    for length in range(len(path), len(default_path)):
        node = snapshot.node(default_path[:length])

        if node is None:
            return False

        if node.leaf:
            return True

    return False


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
