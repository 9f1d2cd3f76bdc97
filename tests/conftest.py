import pytest

import catalink
from faketransport import FakeTransport


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    """ Keep the configuration of the account running the tests from
        leaking into them.
    """

    monkeypatch.delenv('CATALINK_CONFIG', raising=False)
    monkeypatch.delenv('CATALINK_DEVELOPMENT', raising=False)
    monkeypatch.setenv('CATALINK_HOME', str(tmp_path))
    monkeypatch.setattr(catalink.config.directory, 'found', None)

    yield tmp_path


@pytest.fixture
def fake():
    return FakeTransport()


@pytest.fixture
def settings():

    # The ping probe keeps the liveness checks inside the fake transport.

    return catalink.Configuration(socket_address='ws://127.0.0.1:3000',
                                  token='secret',
                                  service_description={'name': 'unittest'},
                                  probe='ping',
                                  ready_backoff=0.05,
                                  ping_interval=30,
                                  timeout=1)


@pytest.fixture
def session(settings, fake):

    session = catalink.Session(config=settings, transport=fake)

    yield session

    session.stop()


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
