""" The canonical hierarchical store. The tree is an arena of immutable
    :class:`Node` instances addressed by their index in a list; directories
    refer to their children by index. A write never modifies an existing
    node, it appends new nodes for the modified path and its ancestors,
    sharing every unchanged subtree with the previous version. A
    :class:`Snapshot` is therefore nothing more than a reference to the arena
    and the index of a root node, and it remains valid and unchanging no
    matter what writers do afterwards.
"""

import logging
import threading
import time

from . import path as pathlib
from . import value as valuelib

logger = logging.getLogger(__name__)


class Node:
    """ A single tree node. A leaf holds a :class:`value.Value` and has
        *children* set to None; a directory has no value, and *children*
        maps element names to arena indices. The *timestamp* is the last
        modification time in nanoseconds since the epoch.
    """

    __slots__ = ('value', 'timestamp', 'children')

    def __init__(self, value, timestamp, children=None):
        self.value = value
        self.timestamp = timestamp
        self.children = children


    @property
    def leaf(self):
        return self.children is None


    def __repr__(self):
        if self.children is None:
            return 'Node(%r, %d)' % (self.value, self.timestamp)
        return 'Node(%d children, %d)' % (len(self.children), self.timestamp)


# end of class Node



class Change:
    """ A leaf-level difference between two versions of the tree. A *value*
        of None indicates the leaf at *path* was removed.
    """

    __slots__ = ('path', 'value', 'timestamp')

    def __init__(self, path, value, timestamp):
        self.path = path
        self.value = value
        self.timestamp = timestamp


    @property
    def deleted(self):
        return self.value is None


    def __repr__(self):
        return 'Change(%s, %r, %d)' % (pathlib.render(self.path), self.value, self.timestamp)


# end of class Change



class Clock:
    """ Strictly increasing source of timestamps in nanoseconds since the
        epoch. Two calls never return the same timestamp, even when the
        underlying clock does not advance between them.
    """

    def __init__(self):
        self.last = 0
        self.lock = threading.Lock()


    def __call__(self):

        now = time.time_ns()

        with self.lock:
            if now <= self.last:
                now = self.last + 1
            self.last = now

        return now


# end of class Clock



class Snapshot:
    """ An immutable, fully formed version of the tree. Readers, including
        :func:`Target.get` and the initial synchronization of a
        subscription, only ever work against a :class:`Snapshot`.
    """

    def __init__(self, arena, root):
        self.arena = arena
        self.root = root


    def lookup(self, path):
        """ Return the arena index of the node at *path*, or None if there is
            no such node.
        """

        arena = self.arena
        index = self.root

        for element in path:
            children = arena[index].children

            if children is None:
                return None

            try:
                index = children[element]
            except KeyError:
                return None

        return index


    def node(self, path):
        index = self.lookup(path)
        if index is None:
            return None
        return self.arena[index]


    def exists(self, path):
        return self.lookup(path) is not None


    def leaves(self, path=pathlib.root):
        """ Iterate over (absolute path, :class:`Node`) pairs for every leaf
            at or beneath *path*. Nothing is produced if *path* does not
            exist.
        """

        index = self.lookup(path)

        if index is None:
            return

        for found in _leaves(self.arena, index, path):
            yield found


    def entries(self, path=pathlib.root):
        """ Return a list of (absolute path, value, timestamp) tuples for every
            leaf at or beneath *path*.
        """

        entries = list()

        for leaf_path, node in self.leaves(path):
            entries.append((leaf_path, node.value, node.timestamp))

        return entries


    def to_python(self, path=pathlib.root):
        """ Return the Python-native rendition of the subtree at *path*:
            nested dictionaries for directories and decoded values for
            leaves. None is returned if *path* does not exist.
        """

        index = self.lookup(path)

        if index is None:
            return None

        return _to_python(self.arena, index)


    def __len__(self):
        count = 0
        for ignored in self.leaves():
            count += 1
        return count


# end of class Snapshot



class View:
    """ A write-in-progress version of the tree. All modifications append new
        nodes to the shared arena; none of them are visible to readers until
        the :class:`ConfigTree` commits the view. Discarding a view requires
        no action, the orphaned nodes are reclaimed by the next compaction.
    """

    def __init__(self, base):
        self.base = base
        self.arena = base.arena
        self.root = base.root


    def snapshot(self):
        """ Return a :class:`Snapshot` of the view as it currently stands.
        """

        return Snapshot(self.arena, self.root)


    def _append(self, node):
        self.arena.append(node)
        return len(self.arena) - 1


    def _rewrite(self, index, elements, replace, timestamp):
        """ Rebuild the path *elements* beneath the node at *index*, invoking
            *replace* with the index of the node at the end of the path (or
            None, if there is no node there) and substituting whatever index
            it returns. Returns the index of the rebuilt node; a return value
            of None indicates the node should be removed from its parent.
        """

        if not elements:
            return replace(index)

        if index is None:
            node = None
        else:
            node = self.arena[index]

        # Writing beneath a leaf replaces the leaf with a directory.

        if node is None or node.children is None:
            children = dict()
        else:
            children = node.children

        element = elements[0]
        child = children.get(element)
        new_child = self._rewrite(child, elements[1:], replace, timestamp)

        if new_child == child:
            return index

        children = dict(children)

        if new_child is None:
            del children[element]
        else:
            children[element] = new_child

        if not children:
            return None

        return self._append(Node(None, timestamp, children))


    def _set_root(self, index, timestamp):

        # The root is always a directory, even when it is empty.

        if index is None:
            index = self._append(Node(None, timestamp, dict()))

        self.root = index


    def build(self, python, timestamp):
        """ Append a new subtree representing *python* and return its index.
            Dictionaries become directories; a :class:`value.Value` becomes
            a leaf as-is; anything else is encoded as a JSON leaf.
        """

        if isinstance(python, dict):
            children = dict()

            for element, item in python.items():
                children[element] = self.build(item, timestamp)

            return self._append(Node(None, timestamp, children))

        value = valuelib.from_python(python)
        return self._append(Node(value, timestamp))


    def set_leaf(self, path, value, timestamp):
        """ Store *value* at *path*, creating any missing directories and
            replacing whatever node was there before.
        """

        def replace(index):
            return self._append(Node(value, timestamp))

        root = self._rewrite(self.root, path, replace, timestamp)
        self._set_root(root, timestamp)


    def set_tree(self, path, python, timestamp):
        """ Replace the node at *path* with the directory tree described by
            the dictionary *python*.
        """

        def replace(index):
            return self.build(python, timestamp)

        root = self._rewrite(self.root, path, replace, timestamp)
        self._set_root(root, timestamp)


    def merge(self, path, python, timestamp):
        """ Augment the directory at *path* with the contents of the
            dictionary *python*, leaving unlisted children untouched.
        """

        def ensure(index):
            if index is not None and self.arena[index].children is not None:
                return index
            return self._append(Node(None, timestamp, dict()))

        root = self._rewrite(self.root, path, ensure, timestamp)
        self._set_root(root, timestamp)

        for relative, value in flatten(python):
            self.set_leaf(path + relative, valuelib.from_python(value), timestamp)


    def delete(self, path, cutoff, timestamp, preserve=None):
        """ Remove every leaf at or beneath *path* whose timestamp is no newer
            than *cutoff*; directories left empty are removed as well. Any
            subtree for which *preserve* returns True is left intact.
        """

        def replace(index):
            return self._prune(index, path, cutoff, timestamp, preserve)

        root = self._rewrite(self.root, path, replace, timestamp)
        self._set_root(root, timestamp)


    def _prune(self, index, path, cutoff, timestamp, preserve):

        if index is None:
            return None

        if preserve is not None and preserve(path):
            return index

        node = self.arena[index]

        if node.children is None:
            if node.timestamp <= cutoff:
                return None
            return index

        if not node.children:
            if node.timestamp <= cutoff:
                return None
            return index

        children = dict()
        changed = False

        for element, child in node.children.items():
            new_child = self._prune(child, path + (element,), cutoff, timestamp, preserve)

            if new_child != child:
                changed = True

            if new_child is not None:
                children[element] = new_child

        if changed == False:
            return index

        if not children:
            return None

        return self._append(Node(None, timestamp, children))


    def changes(self, timestamp):
        """ Return the list of :class:`Change` instances describing every
            leaf that differs between the base snapshot and this view.
            Removed leaves are reported with the supplied *timestamp*.
        """

        found = list()
        _diff(self.arena, self.base.root, self.root, pathlib.root, timestamp, found)
        return found


# end of class View



class ConfigTree:
    """ The shared tree. Readers call :func:`snapshot` and work against the
        result for as long as they like. Writers serialize on :attr:`lock`,
        which must be held from :func:`view` through :func:`commit`.

        The arena only ever grows while writes are happening; once it is
        sufficiently larger than the live tree, a commit rebuilds it from
        the live nodes. Snapshots taken before that point keep a reference
        to the old arena and are unaffected.
    """

    compact_minimum = 4096

    def __init__(self, clock=None):

        if clock is None:
            clock = Clock()

        self.clock = clock
        self.lock = threading.RLock()

        arena = list()
        arena.append(Node(None, self.clock(), dict()))

        self._current = Snapshot(arena, 0)
        self._compact_at = self.compact_minimum


    def snapshot(self):
        return self._current


    def view(self):
        """ Return a new :class:`View` against the current version of the
            tree. The caller must hold :attr:`lock`.
        """

        return View(self._current)


    def commit(self, view):
        """ Make the contents of *view* the current version of the tree,
            returning the new :class:`Snapshot`.
        """

        with self.lock:
            if view.base is not self._current:
                raise RuntimeError('cannot commit a view of a superseded tree')

            arena = view.arena
            root = view.root

            if len(arena) > self._compact_at:
                arena, root = _compact(arena, root)
                self._compact_at = max(self.compact_minimum, len(arena) * 4)
                logger.debug("compacted tree arena to %d nodes", len(arena))

            snapshot = Snapshot(arena, root)
            self._current = snapshot

        return snapshot


    def to_python(self, path=pathlib.root):
        return self._current.to_python(path)


# end of class ConfigTree



def classify(path):
    """ Return 'state' if the last config/state container on *path* is a
        state container, otherwise 'config'.
    """

    for element in reversed(path):
        if element == 'state':
            return 'state'
        if element == 'config':
            return 'config'

    return 'config'



def counterpart(path):
    """ Return the config path corresponding to the state path *path*: the
        last 'state' element is replaced with 'config'. None is returned if
        there is no state container on the path.
    """

    for position in range(len(path) - 1, -1, -1):
        if path[position] == 'state':
            return path[:position] + ('config',) + path[position + 1:]

    return None



def flatten(python, prefix=pathlib.root):
    """ Iterate over (relative path, leaf value) pairs for a nested
        dictionary. Empty dictionaries produce nothing.
    """

    for element, item in python.items():
        here = prefix + (element,)

        if isinstance(item, dict):
            for found in flatten(item, here):
                yield found
        else:
            yield (here, item)



def _leaves(arena, index, path):

    stack = [(index, path)]

    while stack:
        index, path = stack.pop()
        node = arena[index]

        if node.children is None:
            yield (path, node)
            continue

        # Reverse the push order so that leaves come out in insertion order.

        for element, child in reversed(list(node.children.items())):
            stack.append((child, path + (element,)))



def _to_python(arena, index):

    node = arena[index]

    if node.children is None:
        return node.value.decode()

    python = dict()
    for element, child in node.children.items():
        python[element] = _to_python(arena, child)

    return python



def _diff(arena, old, new, path, timestamp, found):

    if old == new:
        return

    if old is None:
        old_node = None
    else:
        old_node = arena[old]

    if new is None:
        new_node = None
    else:
        new_node = arena[new]

    old_leaf = old_node is not None and old_node.children is None
    new_leaf = new_node is not None and new_node.children is None

    if old_node is not None and not old_leaf:
        old_children = old_node.children
    else:
        old_children = dict()

    if new_node is not None and not new_leaf:
        new_children = new_node.children
    else:
        new_children = dict()

    if old_leaf and not new_leaf:
        found.append(Change(path, None, timestamp))

    if new_leaf:
        if old_leaf and old_node.value == new_node.value and old_node.timestamp == new_node.timestamp:
            pass
        else:
            found.append(Change(path, new_node.value, new_node.timestamp))

    for element, child in new_children.items():
        _diff(arena, old_children.get(element), child, path + (element,), timestamp, found)

    for element, child in old_children.items():
        if element not in new_children:
            _diff(arena, child, None, path + (element,), timestamp, found)



def _compact(arena, root):
    """ Copy the live nodes reachable from *root* into a new arena, returning
        the new arena and the index of the root within it.
    """

    compacted = list()

    def copy(index):
        node = arena[index]

        if node.children is None:
            compacted.append(node)
            return len(compacted) - 1

        children = dict()
        for element, child in node.children.items():
            children[element] = copy(child)

        compacted.append(Node(None, node.timestamp, children))
        return len(compacted) - 1

    root = copy(root)
    return compacted, root


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
