import octarget
import pytest

from octarget.tree import ConfigTree

V = octarget.value.from_python


def write(tree, path, python, timestamp):

    with tree.lock:
        view = tree.view()
        view.set_leaf(path, V(python), timestamp)
        return tree.commit(view)


def test_snapshots():

    tree = ConfigTree()
    empty = tree.snapshot()

    write(tree, ('a', 'b'), 1, 100)
    first = tree.snapshot()

    write(tree, ('a', 'c'), 2, 200)
    second = tree.snapshot()

    # Earlier snapshots never see later writes.

    assert empty.to_python() == {}
    assert first.to_python() == {'a': {'b': 1}}
    assert second.to_python() == {'a': {'b': 1, 'c': 2}}

    assert len(first) == 1
    assert len(second) == 2

    # Unchanged subtrees are shared between versions.

    assert first.lookup(('a', 'b')) == second.lookup(('a', 'b'))


def test_lookup():

    tree = ConfigTree()
    write(tree, ('a', 'b'), 1, 100)
    snapshot = tree.snapshot()

    assert snapshot.exists(('a',))
    assert snapshot.exists(('a', 'b'))
    assert not snapshot.exists(('a', 'b', 'c'))
    assert not snapshot.exists(('x',))

    node = snapshot.node(('a', 'b'))
    assert node.leaf
    assert node.timestamp == 100
    assert node.value == V(1)

    assert snapshot.entries(('a',)) == [(('a', 'b'), V(1), 100)]
    assert list(snapshot.leaves(('nothing',))) == []


def test_node_kind_replacement():

    tree = ConfigTree()
    write(tree, ('a', 'b'), 1, 100)
    write(tree, ('a', 'b', 'c'), 2, 200)

    assert tree.to_python() == {'a': {'b': {'c': 2}}}

    write(tree, ('a',), 3, 300)
    assert tree.to_python() == {'a': 3}


def test_delete_guard():

    tree = ConfigTree()
    write(tree, ('a', 'b', 'c'), 1, 100)
    write(tree, ('a', 'b', 'd'), 2, 300)
    write(tree, ('x',), 3, 100)

    with tree.lock:
        view = tree.view()
        view.delete(('a', 'b'), 200, 400)
        tree.commit(view)

    # The newer leaf survives; nothing outside the deleted path is touched.

    assert tree.to_python() == {'a': {'b': {'d': 2}}, 'x': 3}

    with tree.lock:
        view = tree.view()
        view.delete(('a',), 300, 500)
        tree.commit(view)

    # Emptied directories are pruned.

    assert tree.to_python() == {'x': 3}


def test_delete_preserve():

    tree = ConfigTree()
    write(tree, ('i', 'config', 'mtu'), 1500, 100)
    write(tree, ('i', 'state', 'mtu'), 1500, 100)

    preserve = lambda path: path[-1:] == ('state',)

    with tree.lock:
        view = tree.view()
        view.delete(('i',), 200, 200, preserve)
        tree.commit(view)

    assert tree.to_python() == {'i': {'state': {'mtu': 1500}}}


def test_merge_and_set_tree():

    tree = ConfigTree()
    write(tree, ('a', 'b', 'c'), 1, 100)

    with tree.lock:
        view = tree.view()
        view.merge(('a', 'b'), {'d': 2, 'e': {'f': 3}}, 200)
        tree.commit(view)

    assert tree.to_python() == {'a': {'b': {'c': 1, 'd': 2, 'e': {'f': 3}}}}

    with tree.lock:
        view = tree.view()
        view.set_tree(('a', 'b'), {'z': 26}, 300)
        tree.commit(view)

    assert tree.to_python() == {'a': {'b': {'z': 26}}}


def test_changes():

    tree = ConfigTree()
    write(tree, ('a', 'b'), 1, 100)
    write(tree, ('a', 'c'), 2, 100)

    with tree.lock:
        view = tree.view()
        view.set_leaf(('a', 'b'), V(10), 200)
        view.delete(('a', 'c'), 200, 200)
        view.set_leaf(('d',), V(4), 200)
        changes = view.changes(200)
        tree.commit(view)

    by_path = dict()
    for change in changes:
        by_path[change.path] = change

    assert set(by_path.keys()) == set((('a', 'b'), ('a', 'c'), ('d',)))
    assert by_path[('a', 'b')].value == V(10)
    assert by_path[('a', 'c')].deleted
    assert by_path[('d',)].timestamp == 200


def test_stale_commit():

    tree = ConfigTree()

    with tree.lock:
        first = tree.view()
        second = tree.view()
        first.set_leaf(('a',), V(1), 100)
        second.set_leaf(('b',), V(2), 100)
        tree.commit(first)

        with pytest.raises(RuntimeError):
            tree.commit(second)

    assert tree.to_python() == {'a': 1}


def test_compaction():

    tree = ConfigTree()
    tree.compact_minimum = 10
    tree._compact_at = 10

    write(tree, ('kept',), 'yes', 1)
    before = tree.snapshot()

    for count in range(100):
        write(tree, ('counter',), count, count + 2)

    after = tree.snapshot()

    assert after.arena is not before.arena
    assert len(after.arena) < 50
    assert after.to_python() == {'kept': 'yes', 'counter': 99}
    assert before.to_python() == {'kept': 'yes'}


def test_clock():

    clock = octarget.tree.Clock()

    previous = clock()
    for count in range(1000):
        now = clock()
        assert now > previous
        previous = now


def test_classify():

    classify = octarget.tree.classify
    counterpart = octarget.tree.counterpart

    assert classify(('interfaces', 'eth0', 'config', 'mtu')) == 'config'
    assert classify(('interfaces', 'eth0', 'state', 'mtu')) == 'state'
    assert classify(('system', 'state', 'config', 'x')) == 'config'
    assert classify(('plain',)) == 'config'

    assert counterpart(('i', 'state', 'mtu')) == ('i', 'config', 'mtu')
    assert counterpart(('i', 'config', 'mtu')) is None


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
