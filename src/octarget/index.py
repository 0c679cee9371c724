""" The subscription index: a trie over path elements, used to find which
    subscription governs a given tree path. Every trie node can carry one
    subscription per session; when subscriptions overlap, the most specific
    one (the deepest in the trie) wins.
"""

import threading


class _TrieNode:

    __slots__ = ('children', 'subscriptions')

    def __init__(self):
        self.children = dict()
        self.subscriptions = dict()


class SubscriptionIndex:
    """ Map tree paths to subscriptions. The *owner* of a subscription is
        normally a :class:`session.StreamSession`, but can be any hashable
        object; each owner has at most one subscription per path.
    """

    def __init__(self):
        self.root = _TrieNode()
        self.lock = threading.Lock()


    def add(self, path, owner, subscription):
        """ Register *subscription* at *path* on behalf of *owner*, replacing
            any subscription that owner previously had at the same path.
        """

        with self.lock:
            node = self.root

            for element in path:
                try:
                    node = node.children[element]
                except KeyError:
                    child = _TrieNode()
                    node.children[element] = child
                    node = child

            node.subscriptions[owner] = subscription


    def remove(self, path, owner):
        """ Remove the subscription *owner* holds at *path*, if any, pruning
            trie nodes that no longer carry anything.
        """

        with self.lock:
            trail = list()
            node = self.root

            for element in path:
                try:
                    child = node.children[element]
                except KeyError:
                    return

                trail.append((node, element))
                node = child

            try:
                del node.subscriptions[owner]
            except KeyError:
                return

            while trail:
                if node.subscriptions or node.children:
                    break

                parent, element = trail.pop()
                del parent.children[element]
                node = parent


    def discard(self, owner, paths):
        """ Remove every subscription *owner* holds at any of *paths*.
        """

        for path in paths:
            self.remove(path, owner)


    def match(self, path):
        """ Return a dictionary mapping each owner with a subscription
            governing *path* to its most specific such subscription. Owners
            with no subscription along *path* do not appear.
        """

        found = dict()

        with self.lock:
            node = self.root
            found.update(node.subscriptions)

            for element in path:
                try:
                    node = node.children[element]
                except KeyError:
                    break

                # Deeper subscriptions overwrite shallower ones for the same
                # owner.

                found.update(node.subscriptions)

        return found


    def owner(self, path, owner):
        """ Return the most specific subscription *owner* holds that governs
            *path*, or None.
        """

        deepest = None

        with self.lock:
            node = self.root
            deepest = node.subscriptions.get(owner, deepest)

            for element in path:
                try:
                    node = node.children[element]
                except KeyError:
                    break

                deepest = node.subscriptions.get(owner, deepest)

        return deepest


    def __len__(self):

        count = 0

        with self.lock:
            stack = [self.root]

            while stack:
                node = stack.pop()
                count += len(node.subscriptions)
                stack.extend(node.children.values())

        return count


# end of class SubscriptionIndex


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
