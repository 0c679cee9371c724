import octarget
import os
import time

from octarget.config import Configuration
from octarget.daemon import Daemon, Producer
from octarget.protocol import message, request


class Counter(Producer):

    period = 0.05

    def __init__(self, *args, **kwargs):
        self.count = 0
        Producer.__init__(self, *args, **kwargs)


    def perform_get(self):
        self.count += 1
        return self.count


class Custom(Daemon):

    def setup(self):
        self.counter = self.add_producer(Counter, '/custom/state/count')


    def setup_final(self):
        self.final = self.target.tree.to_python(('system', 'state', 'hostname'))


    def models(self, request):
        return [message.ModelData('custom', 'unit tests', '1')]


def test_builtin_state():

    config = Configuration(values={'initial': {'/a/b': 5, 'a/c': {'d': True}}})
    daemon = Daemon('unittest', config=config, listen=False)

    contents = daemon.target.tree.to_python()

    assert contents['a'] == {'b': 5, 'c': {'d': True}}

    state = contents['system']['state']
    for key in ('hostname', 'boot-time', 'uptime', 'memory', 'cpu'):
        assert key in state

    assert daemon.server is None
    daemon.stop()


def test_configuration_file(home):

    filename = os.path.join(str(home), 'unitfile.json')
    with open(filename, 'wb') as contents:
        contents.write(octarget.json.dumps({'initial': {'/from/file': 'yes'}}))

    daemon = Daemon('unitfile', listen=False)
    assert daemon.target.tree.to_python(('from', 'file')) == 'yes'
    daemon.stop()


def test_subclass():

    daemon = Custom('unitcustom', config=Configuration(), listen=True)

    assert daemon.final is not None
    assert daemon.target.get_models()[0].name == 'custom'

    time.sleep(0.2)
    assert daemon.target.tree.to_python(('custom', 'state', 'count')) > 1

    client = request.Client('localhost', daemon.server.port)
    response = client.get(paths=[('custom', 'state', 'count')], timeout=5)
    assert len(response.notifications) == 1

    daemon.stop()

    count = daemon.counter.count
    time.sleep(0.15)
    assert daemon.counter.count == count


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
