import octarget
import os
import pytest


@pytest.fixture
def target():

    target = octarget.Target()

    yield target

    target.close()


@pytest.fixture
def home(tmp_path, monkeypatch):
    """ Point the configuration directory at a scratch location for the
        duration of a test, and make sure nothing cached from a previous
        test leaks in.
    """

    monkeypatch.setenv('OCTARGET_HOME', str(tmp_path))
    monkeypatch.setattr(octarget.config.directory, 'found', None)
    octarget.config.clear()

    yield tmp_path

    octarget.config.clear()



def drain(session, timeout=0.5):
    """ Collect responses from *session* until nothing arrives for *timeout*
        seconds, or the session is closed and empty.
    """

    responses = list()

    while True:
        response = session.get(timeout)

        if response is None:
            return responses

        responses.append(response)



def leaf_paths(responses):
    """ Return the absolute paths of every update in *responses*, in order.
    """

    paths = list()

    for response in responses:
        if response.type != 'update':
            continue

        notification = response.notification
        for update in notification.updates:
            paths.append(notification.prefix + update.path)
        for deleted in notification.deletes:
            paths.append(notification.prefix + deleted)

    return paths


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
