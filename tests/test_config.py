import octarget
import os
import pytest

from octarget.config import Configuration


def test_defaults():

    config = Configuration()

    assert config['target_defined_mode'] == 'on_change'
    assert config['overflow_policy'] == 'coalesce'
    assert config['read_only'] == ['state']
    assert config.get('no such key') is None
    assert 'queue_capacity' in config
    assert len(config) == len(octarget.config.defaults)

    # Mutable defaults are not shared.

    config['read_only'].append('counters')
    assert config['read_only'] == ['state']

    with pytest.raises(KeyError):
        config['no such key']


def test_validation():

    config = Configuration()

    with pytest.raises(KeyError):
        config['no such key'] = 1

    with pytest.raises(ValueError):
        config['overflow_policy'] = 'discard'

    with pytest.raises(ValueError):
        config['queue_capacity'] = 0

    with pytest.raises(ValueError):
        config['poll_supported'] = 'yes'

    with pytest.raises(ValueError):
        config['minimum_sample_interval'] = 0.5

    with pytest.raises(ValueError):
        config['defaults'] = {'/a//b': 1}

    with pytest.raises(ValueError):
        config['initial'] = {'/': 1}

    config['read_only'] = 'state'
    assert config['read_only'] == ['state']


def test_update():

    config = Configuration(values={'queue_capacity': 5})
    assert config['queue_capacity'] == 5

    # Either everything is applied, or nothing is.

    with pytest.raises(ValueError):
        config.update({'queue_capacity': 10, 'overflow_policy': 'discard'})

    assert config['queue_capacity'] == 5
    assert config['overflow_policy'] == 'coalesce'


def test_values():

    config = Configuration(values={
        'defaults': {'/a/enabled': True, 'b/c': 'text'},
        'initial': {'/system/config/name': 'unit'},
    })

    defaults = config.default_values()
    assert defaults == {
        ('a', 'enabled'): octarget.value.from_python(True),
        ('b', 'c'): octarget.value.from_python('text'),
    }

    assert config.initial_values() == [(('system', 'config', 'name'), 'unit')]


def test_files(home):

    assert octarget.config.directory() == str(home)

    filename = os.path.join(str(home), 'unittest.json')
    with open(filename, 'wb') as contents:
        contents.write(octarget.json.dumps({'queue_capacity': 5, 'port': 10222}))

    config = octarget.config.get('unittest')
    assert config.name == 'unittest'
    assert config['queue_capacity'] == 5
    assert config['port'] == 10222
    assert octarget.config.get('unittest') is config

    octarget.config.clear('unittest')
    assert octarget.config.get('unittest') is not config

    missing = octarget.config.get('missing')
    assert missing['queue_capacity'] == 1000


def test_bad_file(home):

    filename = os.path.join(str(home), 'broken.json')
    with open(filename, 'wb') as contents:
        contents.write(b'[1, 2, 3]')

    with pytest.raises(ValueError):
        octarget.config.get('broken')


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
