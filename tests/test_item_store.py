import pytest

from dashcache.services.item_store import ItemStore


def test_put_then_get_returns_snapshot() -> None:
    store = ItemStore()
    store.put('acc1', {'id': 'acc1', 'alias': 'alice'})

    item = store.get('acc1')
    assert item['alias'] == 'alice'
    with pytest.raises(TypeError):
        item['alias'] = 'bob'


def test_put_replaces_same_identity() -> None:
    store = ItemStore()
    source = {'id': 'acc1', 'alias': 'alice'}
    store.put('acc1', source)
    store.put('acc1', {'id': 'acc1', 'alias': 'alicia'})

    assert len(store) == 1
    assert store.get('acc1')['alias'] == 'alicia'
    # the stored snapshot does not follow the caller's dict
    source['alias'] = 'changed'
    assert store.get('acc1')['alias'] == 'alicia'


def test_remove_is_idempotent() -> None:
    store = ItemStore()
    store.put('acc1', {'id': 'acc1'})

    store.remove('acc1')
    store.remove('acc1')

    assert store.get('acc1') is None
    assert 'acc1' not in store


def test_put_issued_before_later_write_is_skipped() -> None:
    store = ItemStore()
    store.put('acc1', {'id': 'acc1', 'alias': 'old'})
    issued_at = store.epoch

    store.put('acc1', {'id': 'acc1', 'alias': 'fresh'})
    written = store.put('acc1', {'id': 'acc1', 'alias': 'stale'}, issued_at=issued_at)

    assert written is False
    assert store.get('acc1')['alias'] == 'fresh'


def test_put_issued_before_remove_does_not_resurrect() -> None:
    store = ItemStore()
    issued_at = store.epoch
    store.remove('acc9')

    assert store.put('acc9', {'id': 'acc9'}, issued_at=issued_at) is False
    assert store.get('acc9') is None


def test_get_many_keeps_order_and_skips_unknown() -> None:
    store = ItemStore()
    store.put('a', {'id': 'a'})
    store.put('b', {'id': 'b'})

    assert [i['id'] for i in store.get_many(['b', 'x', 'a'])] == ['b', 'a']
