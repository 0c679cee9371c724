import octarget
import pytest

from octarget.errors import Code, TargetError
from octarget.protocol import message, request

V = octarget.value.from_python


@pytest.fixture
def connection(target):

    server = request.Server(target, 'localhost', worker_count=2)
    client = request.Client('localhost', server.port)

    yield client

    server.stop()


def until_sync(stream, timeout=2):

    responses = list()

    while True:
        response = stream.get(timeout)
        assert response is not None

        responses.append(response)

        if response.type == 'sync':
            return responses


def test_set_and_get(connection):

    response = connection.set(updates=[message.Update(('a', 'b'), V({'c': 1, 'd': 'two'}))], timeout=5)
    assert response.ok
    assert response.responses[0].op == message.Operation.UPDATE

    response = connection.get(paths=[('a', 'b')], timeout=5)
    assert response.errors == []

    found = dict()
    for notification in response.notifications:
        assert notification.prefix == ('a', 'b')
        found[notification.updates[0].path] = notification.updates[0].value.decode()

    assert found == {('c',): 1, ('d',): 'two'}


def test_set_failure(connection, target):

    target.publish(('i', 'state', 'counter'), 1)

    response = connection.set(updates=[message.Update(('i', 'state', 'counter'), V(2))], timeout=5)

    assert response.ok == False
    assert response.error.code == Code.ABORTED
    assert response.responses[0].error.code == Code.PERMISSION_DENIED
    assert target.tree.to_python() == {'i': {'state': {'counter': 1}}}


def test_get_errors(connection):

    response = connection.get(paths=[('a', '')], timeout=5)

    assert response.notifications == []
    assert response.errors[0][0] == ('a', '')
    assert response.errors[0][1].code == Code.INVALID_ARGUMENT

    with pytest.raises(TargetError) as raised:
        connection.get(type=7, timeout=5)

    assert raised.value.code == Code.INVALID_ARGUMENT


def test_models(connection, target):

    with pytest.raises(TargetError) as raised:
        connection.models(timeout=5)

    assert raised.value.code == Code.UNIMPLEMENTED

    target.models = lambda request: [message.ModelData('openconfig-system', 'openconfig', '1.0.0')]

    models = connection.models(timeout=5)
    assert [model.name for model in models] == ['openconfig-system']


def test_once(connection, target):

    target.publish(('a', 'b'), 1)
    target.publish(('a', 'c'), 2)

    subscriptions = [message.Subscription(('a',))]
    stream = connection.subscribe(message.SubscriptionList(subscriptions, mode=message.Mode.ONCE))

    responses = list(stream)

    assert [response.type for response in responses] == ['update', 'update', 'sync']
    assert [response.sequence for response in responses] == [1, 2, 3]
    assert stream.ended == True
    assert stream.error is None


def test_stream(connection, target):

    target.publish(('a', 'b'), 1)

    subscriptions = [message.Subscription(('a',), message.SubscriptionMode.ON_CHANGE)]
    stream = connection.subscribe(message.SubscriptionList(subscriptions))

    responses = until_sync(stream)
    assert len(responses) == 2

    connection.set(updates=[message.Update(('a', 'b'), V(2))], timeout=5)

    response = stream.get(2)
    assert response.type == 'update'
    assert response.sequence == 3
    assert response.notification.updates[0].value == V(2)

    stream.cancel()

    assert list(stream) == []
    assert stream.error.code == Code.CANCELLED


def test_poll(connection, target):

    target.publish(('a', 'b'), 1)

    subscriptions = [message.Subscription(('a',))]
    stream = connection.subscribe(message.SubscriptionList(subscriptions, mode=message.Mode.POLL))
    assert stream.get(0.2) is None

    stream.put(message.PollRequest())
    responses = until_sync(stream)

    assert responses[0].notification.updates[0].value == V(1)

    stream.cancel()


def test_aliases_scoped_to_stream(connection, target):

    target.publish(('a', 'b', 'c'), 1)

    subscriptions = [message.Subscription(('a',))]
    stream = connection.subscribe(message.SubscriptionList(subscriptions))
    until_sync(stream)

    stream.put(message.AliasList([message.Alias(('@x',), ('a', 'b'))]))
    stream.put(message.SubscriptionList([message.Subscription(('@x',))]))

    notification = until_sync(stream)[0].notification
    assert notification.prefix == ('@x',)
    assert notification.updates[0].path == ('c',)

    # Outside the stream the alias means nothing.

    response = connection.get(paths=[('@x',)], timeout=5)
    assert response.notifications == []

    response = connection.get(paths=[('a', 'b')], timeout=5)
    assert len(response.notifications) == 1

    stream.cancel()


def test_rejected(connection):

    subscriptions = [message.Subscription(('a',), 7)]
    stream = connection.subscribe(message.SubscriptionList(subscriptions))

    assert list(stream) == []
    assert stream.error.code == Code.UNIMPLEMENTED


def test_client_factory(target):

    server = request.Server(target, 'localhost', worker_count=1)

    first = request.client('localhost', server.port)
    assert request.client('localhost', server.port) is first

    response = first.get(timeout=5)
    assert response.notifications == []

    server.stop()


def test_malformed_subscribe(connection):

    stream = request.Stream(connection, b'99')
    connection.send(stream, 'SUBSCRIBE', {'nonsense': {}})

    assert stream.get(2) is None
    assert stream.ended == True
    assert stream.error.code == Code.INVALID_ARGUMENT


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
