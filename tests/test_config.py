import os

import pytest

import catalink
from catalink import config


def test_defaults():

    settings = config.Configuration(socket_address='ws://127.0.0.1:3000', token='t')

    assert settings.ping_interval == 60
    assert settings.timeout == 60
    assert settings.ready_backoff == 10
    assert settings.reconnect_interval == 5
    assert settings.wait_for_ready == True
    assert settings.probe == 'status'
    assert settings.service_description == dict()
    assert settings.resolve_fields() is None


def test_validation():

    with pytest.raises(config.ConfigurationError):
        config.Configuration(token='t')

    with pytest.raises(config.ConfigurationError):
        config.Configuration(socket_address='ws://127.0.0.1:3000')

    with pytest.raises(config.ConfigurationError):
        config.Configuration(socket_address='ftp://127.0.0.1', token='t')

    with pytest.raises(config.ConfigurationError):
        config.Configuration(socket_address='ws://127.0.0.1:3000', token='t', probe='smoke')

    with pytest.raises(config.ConfigurationError):
        config.Configuration(socket_address='ws://127.0.0.1:3000', token='t', timeout=0)

    with pytest.raises(config.ConfigurationError):
        config.Configuration(socket_address='ws://127.0.0.1:3000', token='t', ping_interval='often')

    with pytest.raises(config.ConfigurationError):
        config.Configuration(socket_address='ws://127.0.0.1:3000', token='t', colour='blue')

    # A ConfigurationError is a ValueError.

    with pytest.raises(ValueError):
        config.Configuration()


def test_numeric_strings():

    settings = config.Configuration(socket_address='ws://127.0.0.1:3000', token='t', timeout='2.5')
    assert settings.timeout == 2.5


def test_token_masked():

    settings = config.Configuration(socket_address='ws://127.0.0.1:3000', token='very-secret')

    assert 'very-secret' not in repr(settings)
    assert settings.as_dict()['token'] == 'very-secret'


def test_resolve_fields():

    settings = config.Configuration(socket_address='ws://127.0.0.1:3000', token='t',
                                    fields=['a'], data_fields=['b'])
    assert settings.resolve_fields() == ['b']

    settings = config.Configuration(socket_address='ws://127.0.0.1:3000', token='t', fields=['a'])
    assert settings.resolve_fields() == ['a']


def test_translate():

    raw = {'socketAddress': 'ws://h:1', 'token': 't',
           'connectionProps': {'dataFields': ['x'], 'pingInterval': 5}}

    translated = config.translate(raw)

    assert translated == {'socket_address': 'ws://h:1', 'token': 't',
                          'data_fields': ['x'], 'ping_interval': 5}


def test_directory(isolated_environment):

    assert config.directory() == str(isolated_environment)


def test_precedence(isolated_environment):
    """ Keyword arguments beat the environment, which beats the file, which
        beats the development default.
    """

    filename = os.path.join(str(isolated_environment), 'config.json')

    with open(filename, 'w') as contents:
        contents.write('{"socketAddress": "ws://file:1", "token": "file", "timeout": 7, "pingInterval": 8}')

    environment = dict()
    environment['CATALINK_DEVELOPMENT'] = '1'
    environment['CATALINK_CONFIG'] = '{"token": "environment", "timeout": 9}'

    settings = config.load(environment=environment, timeout=11)

    assert settings.socket_address == 'ws://file:1'
    assert settings.token == 'environment'
    assert settings.timeout == 11
    assert settings.ping_interval == 8


def test_development_default():

    environment = {'CATALINK_DEVELOPMENT': 'yes'}
    settings = config.load(environment=environment, token='t')

    assert settings.socket_address == config.development_address


def test_none_overrides_ignored():

    environment = {'CATALINK_CONFIG': '{"socket_address": "ws://h:1", "token": "t"}'}
    settings = config.load(environment=environment, socket_address=None, token=None)

    assert settings.socket_address == 'ws://h:1'
    assert settings.token == 't'


def test_explicit_file(tmp_path):

    filename = tmp_path / 'elsewhere.json'
    filename.write_text('{"socket_address": "tcp://127.0.0.1:5570", "token": "t"}')

    settings = config.load(str(filename), environment=dict())
    assert settings.socket_address == 'tcp://127.0.0.1:5570'

    assert config.from_file(str(tmp_path / 'absent.json')) == dict()


def test_malformed_sources(tmp_path):

    filename = tmp_path / 'broken.json'
    filename.write_text('{not json')

    with pytest.raises(config.ConfigurationError):
        config.from_file(str(filename))

    filename.write_text('[1, 2, 3]')

    with pytest.raises(config.ConfigurationError):
        config.from_file(str(filename))

    with pytest.raises(config.ConfigurationError):
        config.from_environment({'CATALINK_CONFIG': 'nope'})

    with pytest.raises(config.ConfigurationError):
        config.from_environment({'CATALINK_CONFIG': '"a string"'})


def test_package_shortcuts():

    assert catalink.load is config.load
    assert catalink.home is config.directory
    assert catalink.Configuration is config.Configuration


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
