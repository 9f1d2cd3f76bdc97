import pytest

from catalink.transport import Collection, Subscription, SubscriptionError, TransportTimeout


def test_added_changed_removed():

    collection = Collection('sensors')
    deltas = list()
    collection.on_change(deltas.append)

    collection.added('a', {'value': 1})
    collection.changed('a', {'value': 2, 'unit': 'K'})
    collection.changed('a', None, cleared=('unit',))
    collection.removed('a')

    assert deltas[0] == {'added': {'id': 'a', 'value': 1}}
    assert deltas[1] == {'changed': {'prev': {'id': 'a', 'value': 1},
                                     'next': {'id': 'a', 'value': 2, 'unit': 'K'}}}
    assert deltas[2]['changed']['next'] == {'id': 'a', 'value': 2}
    assert deltas[3] == {'removed': {'id': 'a', 'value': 2}}
    assert len(collection) == 0


def test_unknown_documents():

    collection = Collection('sensors')
    deltas = list()
    collection.on_change(deltas.append)

    collection.changed('b', {'value': 3})
    collection.removed('nothing')

    assert deltas == [{'added': {'id': 'b', 'value': 3}}]
    assert 'b' in collection
    assert collection.get('b') == {'id': 'b', 'value': 3}
    assert collection.get('nothing') is None


def test_documents_are_copies():

    collection = Collection('sensors')
    collection.added('a', {'nested': {'value': 1}})

    document = collection.get('a')
    document['nested']['value'] = 99

    assert collection.get('a')['nested']['value'] == 1
    assert collection.documents() == [{'id': 'a', 'nested': {'value': 1}}]


def test_observer_stop():

    collection = Collection('sensors')
    deltas = list()

    observer = collection.on_change(deltas.append)
    assert collection.observers == 1

    observer.stop()
    observer.stop()
    assert collection.observers == 0

    collection.added('a')
    assert deltas == []


def test_observer_exception():

    collection = Collection('sensors')
    deltas = list()

    def broken(delta):
        raise RuntimeError('intentional')

    collection.on_change(broken)
    collection.on_change(deltas.append)

    collection.added('a')
    assert len(deltas) == 1

    with pytest.raises(TypeError):
        collection.on_change('not callable')


def test_clear_is_silent():

    collection = Collection('sensors')
    deltas = list()
    collection.on_change(deltas.append)

    collection.added('a')
    collection.clear()

    assert len(deltas) == 1
    assert len(collection) == 0


def test_subscription_ready():

    subscription = Subscription('externalServiceQueue')
    assert subscription.is_ready == False

    with pytest.raises(TransportTimeout):
        subscription.ready(0.01)

    subscription._complete()
    subscription.ready(0.01)
    assert subscription.is_ready == True

    # Completion happens only once.

    subscription._complete(SubscriptionError('late'))
    assert subscription.is_ready == True


def test_subscription_refused():

    subscription = Subscription('subscribeToServiceData', ('sensors',))
    subscription._complete(SubscriptionError('refused'))

    with pytest.raises(SubscriptionError):
        subscription.ready(0.01)

    assert subscription.is_ready == False


def test_subscription_remove():

    removed = list()
    subscription = Subscription('subscribeToServiceData', remover=removed.append)

    subscription.remove()
    subscription.remove()

    assert removed == [subscription]

    # Removal before readiness releases anyone waiting on it.

    with pytest.raises(SubscriptionError):
        subscription.ready(0.01)


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
