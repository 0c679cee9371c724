import octarget
import pytest

from octarget.alias import AliasTable, CLIENT, TARGET
from octarget.errors import AliasConflict, InvalidPath


def test_round_trip():

    table = AliasTable()
    table.define('@1', '/a/b/c', 'client')

    assert table.resolve(('@1', 'd'), 'client') == ('a', 'b', 'c', 'd')
    assert table.resolve(('@1',), 'client') == ('a', 'b', 'c')

    # Paths without a leading alias are unchanged.

    assert table.resolve(('x', '@1'), 'client') == ('x', '@1')
    assert table.resolve((), 'client') == ()


def test_partitions():

    table = AliasTable()
    table.define('@1', '/a', 'one')
    table.define('@1', '/b', 'two')

    assert table.resolve(('@1',), 'one') == ('a',)
    assert table.resolve(('@1',), 'two') == ('b',)
    assert table.resolve(('@1',), 'three') == ('@1',)

    table.teardown('one')

    assert table.resolve(('@1',), 'one') == ('@1',)
    assert table.aliases('one') == {}
    assert table.aliases('two') == {('@1',): ('b',)}


def test_single_lookup():

    table = AliasTable()
    table.define('@1', '/a/b', 'client')

    # An alias cannot expand to something that starts with another alias.

    with pytest.raises(AliasConflict):
        table.define('@2', ('@1', 'c'), 'client')


def test_tree_conflict():

    exists = lambda path: path == ('interfaces',)
    table = AliasTable(exists)

    with pytest.raises(AliasConflict):
        table.define('interfaces', '/a/b', 'client')

    table.define('@interfaces', '/interfaces', 'client')


def test_malformed():

    table = AliasTable()

    with pytest.raises(InvalidPath):
        table.define((), '/a', 'client')

    with pytest.raises(InvalidPath):
        table.define('@1', (), 'client')

    with pytest.raises(InvalidPath):
        table.define(('@1', 'x'), '/a', 'client', TARGET)

    with pytest.raises(ValueError):
        AliasTable(precedence='nobody')


def test_precedence():

    table = AliasTable(precedence=CLIENT)
    table.define('@1', '/target/path', 'client', TARGET)
    table.define('@1', '/client/path', 'client', CLIENT)

    # The client definition shadows the target's.

    assert table.resolve(('@1',), 'client') == ('client', 'path')

    # A target may neither redefine nor remove a client alias.

    with pytest.raises(AliasConflict):
        table.define('@1', '/other', 'client', TARGET)

    with pytest.raises(AliasConflict):
        table.undefine('@1', 'client', TARGET)


    table = AliasTable(precedence=TARGET)
    table.define('@1', '/target/path', 'client', TARGET)

    with pytest.raises(AliasConflict):
        table.define('@1', '/client/path', 'client', CLIENT)

    assert table.resolve(('@1',), 'client') == ('target', 'path')


def test_undefine():

    table = AliasTable()
    table.define('@1', '/a/b', 'client')
    table.undefine('@1', 'client')

    assert table.resolve(('@1', 'c'), 'client') == ('@1', 'c')

    # Removing something that is not there is not an error.

    table.undefine('@1', 'client')
    table.undefine('@9', 'nobody')


def test_compress():

    table = AliasTable()
    table.define('@short', '/a', 'client')
    table.define('@long', '/a/b/c', 'client')

    assert table.compress(('a', 'b', 'c', 'd'), 'client') == (('@long',), ('d',))
    assert table.compress(('a', 'x'), 'client') == (('@short',), ('x',))
    assert table.compress(('z',), 'client') is None
    assert table.compress(('a', 'b', 'c'), 'other') is None


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
