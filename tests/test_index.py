import octarget

from octarget.index import SubscriptionIndex


def test_most_specific():

    index = SubscriptionIndex()
    index.add(('x', 'y'), 'session', 'broad')
    index.add(('x', 'y', 'counters'), 'session', 'narrow')

    assert index.match(('x', 'y', 'counters', 'z')) == {'session': 'narrow'}
    assert index.match(('x', 'y', 'other')) == {'session': 'broad'}
    assert index.match(('x', 'y')) == {'session': 'broad'}
    assert index.match(('x',)) == {}
    assert index.match(('elsewhere',)) == {}

    assert index.owner(('x', 'y', 'counters', 'z'), 'session') == 'narrow'
    assert index.owner(('x', 'q'), 'session') is None


def test_sessions():

    index = SubscriptionIndex()
    index.add(('x',), 'one', 'root of x')
    index.add(('x', 'y', 'counters'), 'two', 'counters')

    assert index.match(('x', 'y', 'counters', 'z')) == {'one': 'root of x', 'two': 'counters'}
    assert index.match(('x', 'y')) == {'one': 'root of x'}

    # A subscription at the root matches everything.

    index.add((), 'three', 'everything')
    assert index.match(('q',)) == {'three': 'everything'}


def test_remove():

    index = SubscriptionIndex()
    index.add(('x', 'y'), 'session', 'broad')
    index.add(('x', 'y', 'counters'), 'session', 'narrow')
    assert len(index) == 2

    index.remove(('x', 'y', 'counters'), 'session')
    assert index.match(('x', 'y', 'counters', 'z')) == {'session': 'broad'}
    assert len(index) == 1

    index.discard('session', [('x', 'y'), ('not', 'there')])
    assert len(index) == 0

    # Empty trie nodes are pruned.

    assert index.root.children == {}


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
