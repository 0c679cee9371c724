import octarget
import pytest
import threading
import time

from octarget.errors import QueueOverflow
from octarget.outbound import Outbound


class Response:

    def __init__(self, name):
        self.name = name
        self.sequence = None


def names(outbound):

    found = list()

    while True:
        response = outbound.get(timeout=0)
        if response is None:
            break
        found.append(response.name)

    return found


def test_sequence():

    outbound = Outbound(capacity=10)

    for name in ('a', 'b', 'c'):
        assert outbound.put(Response(name)) == True

    first = outbound.get()
    second = outbound.get()

    assert (first.name, first.sequence) == ('a', 1)
    assert (second.name, second.sequence) == ('b', 2)

    outbound.put(Response('d'))
    assert outbound.get().sequence == 3
    assert outbound.get().sequence == 4
    assert outbound.get(timeout=0.05) is None


def test_bad_arguments():

    with pytest.raises(ValueError):
        Outbound(policy='discard')

    with pytest.raises(ValueError):
        Outbound(capacity=0)


def test_coalesce():

    outbound = Outbound(capacity=3, policy='coalesce')
    outbound.put(Response('change'))
    outbound.put(Response('sample x1'), key='x')
    outbound.put(Response('sample y1'), key='y')

    # A newer sample for the same path replaces the queued one.

    outbound.put(Response('sample y2'), key='y')
    assert len(outbound) == 3
    assert outbound.dropped == 1

    # Otherwise the oldest coalescible response goes.

    outbound.put(Response('sample z1'), key='z')

    assert names(outbound) == ['change', 'sample y2', 'sample z1']
    assert outbound.dropped == 2


def test_coalesce_heartbeat_key():

    heartbeat_key = octarget.session.heartbeat_key
    leaf = ('heartbeat',)

    outbound = Outbound(capacity=2, policy='coalesce')
    outbound.put(Response('sample /heartbeat'), key=leaf)
    outbound.put(Response('heartbeat 1'), key=heartbeat_key)

    # A leaf that happens to be named 'heartbeat' is a different key.

    outbound.put(Response('heartbeat 2'), key=heartbeat_key)
    assert names(outbound) == ['sample /heartbeat', 'heartbeat 2']

    outbound.put(Response('heartbeat 3'), key=heartbeat_key)
    outbound.put(Response('sample /heartbeat'), key=leaf)
    outbound.put(Response('sample /heartbeat again'), key=leaf)
    assert names(outbound) == ['heartbeat 3', 'sample /heartbeat again']


def test_coalesce_never_drops_changes():

    outbound = Outbound(capacity=2, policy='coalesce', timeout=0.1)
    outbound.put(Response('one'))
    outbound.put(Response('two'))

    with pytest.raises(QueueOverflow):
        outbound.put(Response('three'), key='x')

    assert names(outbound) == ['one', 'two']


def test_block():

    outbound = Outbound(capacity=1, policy='block', timeout=5)
    outbound.put(Response('first'))

    def consume():
        time.sleep(0.1)
        outbound.get()

    consumer = threading.Thread(target=consume)
    consumer.start()

    began = time.monotonic()
    outbound.put(Response('second'))
    elapsed = time.monotonic() - began
    consumer.join()

    assert elapsed >= 0.05
    assert names(outbound) == ['second']


def test_block_timeout():

    outbound = Outbound(capacity=1, policy='block', timeout=0.1)
    outbound.put(Response('first'))

    with pytest.raises(QueueOverflow):
        outbound.put(Response('second'))


def test_close_policy():

    outbound = Outbound(capacity=1, policy='close')
    outbound.put(Response('first'), key='x')

    with pytest.raises(QueueOverflow):
        outbound.put(Response('second'), key='x')


def test_close():

    outbound = Outbound(capacity=10)
    outbound.put(Response('a'))
    outbound.put(Response('b'))
    outbound.close()

    assert outbound.put(Response('c')) == False
    assert names(outbound) == ['a', 'b']

    # A closed, empty queue does not block.

    assert outbound.get() is None


    outbound = Outbound(capacity=10)
    outbound.put(Response('a'))
    outbound.close(purge=True)

    assert outbound.get() is None


def test_close_releases_producer():

    outbound = Outbound(capacity=1, policy='block', timeout=5)
    outbound.put(Response('first'))
    results = list()

    def produce():
        results.append(outbound.put(Response('second')))

    producer = threading.Thread(target=produce)
    producer.start()
    time.sleep(0.1)
    outbound.close()
    producer.join(1)

    assert results == [False]


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
