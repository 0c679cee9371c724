""" Alias indirection. An alias is a short path (usually a single element,
    such as '@42') standing in for a fully expanded path prefix. Aliases are
    partitioned by client identity: each client sees only the aliases it
    defined, plus those the target defined for it. A partition is dropped
    in its entirety via :func:`AliasTable.teardown` when the last session
    using that client identity ends.
"""

import logging
import threading

from . import errors
from . import path as pathlib

logger = logging.getLogger(__name__)

CLIENT = 'client'
TARGET = 'target'


class AliasTable:
    """ The process-wide alias table. *exists* is a callable that returns
        True if a path resolves to real tree data; no alias may shadow such
        a path. *precedence* decides what happens when a client defines an
        alias the target already defined for it: with 'client' the client
        definition shadows the target's, with 'target' the client's request
        is refused.
    """

    def __init__(self, exists=None, precedence=CLIENT):

        if precedence not in (CLIENT, TARGET):
            raise ValueError('alias precedence must be %r or %r, not %r' % (CLIENT, TARGET, precedence))

        self.exists = exists
        self.precedence = precedence
        self.lock = threading.Lock()

        self._by_origin = dict()
        self._by_origin[CLIENT] = dict()
        self._by_origin[TARGET] = dict()


    def _partition(self, origin, client, create=False):

        partitions = self._by_origin[origin]

        try:
            return partitions[client]
        except KeyError:
            if create == False:
                return None

        partition = dict()
        partitions[client] = partition
        return partition


    def aliases(self, client=None):
        """ Return a dictionary of alias -> expanded path for all aliases
            visible to *client*, with client-defined aliases taking effect
            over target-defined ones.
        """

        visible = dict()

        with self.lock:
            for origin in (TARGET, CLIENT):
                partition = self._partition(origin, client)
                if partition:
                    visible.update(partition)

        return visible


    def resolve(self, path, client=None):
        """ Expand a leading alias in *path*, if there is one, and return the
            result. Only a single lookup is performed: the expansion itself
            is never checked for further aliases. A *path* with no leading
            alias is returned unchanged.
        """

        if not path:
            return path

        with self.lock:
            for origin in (CLIENT, TARGET):
                partition = self._partition(origin, client)

                if not partition:
                    continue

                # Target-defined aliases are a single element, but client
                # aliases can be longer; try the longest match first.

                for length in range(len(path), 0, -1):
                    try:
                        expanded = partition[path[:length]]
                    except KeyError:
                        continue

                    return expanded + path[length:]

        return path


    def define(self, alias, path, client=None, origin=CLIENT):
        """ Define *alias* as shorthand for the fully expanded *path*, on
            behalf of *client*. Raise :class:`errors.AliasConflict` if the
            definition is not permitted, or :class:`errors.InvalidPath` if
            either path is malformed.
        """

        alias = pathlib.normalize(alias)
        path = pathlib.normalize(path)

        if not alias:
            raise errors.InvalidPath('an alias must have at least one element')

        if not path:
            raise errors.InvalidPath('an alias must expand to a non-empty path')

        if origin == TARGET and len(alias) != 1:
            raise errors.InvalidPath('target-defined aliases are a single element: ' + pathlib.render(alias))

        if self.exists is not None and self.exists(alias):
            raise errors.AliasConflict('alias %s is a valid path in the data tree' % (pathlib.render(alias)))

        with self.lock:
            for other in (CLIENT, TARGET):
                partition = self._partition(other, client)
                if partition and path[:1] in partition:
                    raise errors.AliasConflict('alias expansions must be fully expanded: ' + pathlib.render(path))

            client_aliases = self._partition(CLIENT, client)
            target_aliases = self._partition(TARGET, client)

            if origin == TARGET:
                if client_aliases and alias in client_aliases:
                    raise errors.AliasConflict('%s is a client-defined alias' % (pathlib.render(alias)))
            else:
                if self.precedence == TARGET and target_aliases and alias in target_aliases:
                    raise errors.AliasConflict('%s is a target-defined alias' % (pathlib.render(alias)))

            partition = self._partition(origin, client, create=True)
            partition[alias] = path

        logger.debug("%s alias %s -> %s defined for %r", origin, pathlib.render(alias), pathlib.render(path), client)


    def undefine(self, alias, client=None, origin=CLIENT):
        """ Withdraw *alias*. Subsequent resolution no longer expands it; any
            notifications already emitted with it are unaffected. A target
            may not withdraw an alias the client defined.
        """

        alias = pathlib.normalize(alias)

        with self.lock:
            if origin == TARGET:
                client_aliases = self._partition(CLIENT, client)
                if client_aliases and alias in client_aliases:
                    raise errors.AliasConflict('a target cannot remove the client-defined alias ' + pathlib.render(alias))

            partition = self._partition(origin, client)

            if partition is None:
                return

            try:
                del partition[alias]
            except KeyError:
                return

        logger.debug("%s alias %s removed for %r", origin, pathlib.render(alias), client)


    def compress(self, path, client=None):
        """ Return (alias, remainder) for the alias whose expansion is the
            longest prefix of *path*, or None if no alias applies.
        """

        best = None
        best_length = 0

        for alias, expanded in self.aliases(client).items():
            length = len(expanded)

            if length > best_length and pathlib.contains(expanded, path):
                best = alias
                best_length = length

        if best is None:
            return None

        return (best, path[best_length:])


    def teardown(self, client):
        """ Discard every alias, of either origin, defined for *client*.
        """

        with self.lock:
            for origin in (CLIENT, TARGET):
                try:
                    del self._by_origin[origin][client]
                except KeyError:
                    pass


# end of class AliasTable


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
