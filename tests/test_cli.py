import catalink
from catalink import cli
from faketransport import wait_for


def test_arguments():

    arguments = cli.parse_arguments(['--address', 'ws://127.0.0.1:3000', '--token', 't', '-v'])

    assert arguments.address == 'ws://127.0.0.1:3000'
    assert arguments.token == 't'
    assert arguments.verbose == True
    assert arguments.config is None


def test_missing_configuration():

    assert cli.main(['--address', 'ws://127.0.0.1:3000']) == 2


def test_actions_declined(session, fake):

    cli.attach(session)

    session.start()
    assert wait_for(lambda: session.phase == catalink.Phase.ONLINE)

    fake.deliver('queue', {'added': {'id': 'x', 'state': 'added'}})

    method, args = fake.calls[-1]
    assert method == 'actionCallback'
    assert args[0] == 'x'
    assert args[1] is None
    assert args[2]['type'] == 'NotImplementedError'


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
