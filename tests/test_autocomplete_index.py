import asyncio

import pytest

from dashcache.core.exceptions.exceptions import InvalidStateError, NetworkUnavailableError
from dashcache.services.autocomplete_index import AutocompleteIndex


def accounts(*aliases):
    return [{'id': f"acc{i + 1}", 'alias': alias} for i, alias in enumerate(aliases)]


@pytest.mark.asyncio
async def test_ensure_loaded_collects_distinct_values(api, controller) -> None:
    api.seed('account', accounts('alice', 'bob', 'alice', None, 'Alfred'))
    index = AutocompleteIndex(controller, page_size=2, sample_size=100)

    entry = await index.ensure_loaded('account', 'alias')

    assert entry.is_loaded
    assert entry.values == frozenset({'alice', 'bob', 'Alfred'})
    assert api.count('list') == 3


@pytest.mark.asyncio
async def test_ensure_loaded_is_a_noop_once_loaded(api, controller) -> None:
    api.seed('account', accounts('alice'))
    index = AutocompleteIndex(controller)

    await index.ensure_loaded('account', 'alias')
    await index.ensure_loaded('account', 'alias')

    assert api.count('list') == 1


@pytest.mark.asyncio
async def test_sampling_stops_at_sample_size(api, controller) -> None:
    api.seed('account', accounts(*[f"a{i}" for i in range(20)]))
    index = AutocompleteIndex(controller, page_size=5, sample_size=7)

    entry = await index.ensure_loaded('account', 'alias')

    assert len(entry.values) == 7
    assert api.count('list') == 2


@pytest.mark.asyncio
async def test_not_refreshed_by_creates(api, controller, dispatcher) -> None:
    api.seed('account', accounts('alice'))
    index = AutocompleteIndex(controller)
    await index.ensure_loaded('account', 'alias')

    await dispatcher.create('account', {'alias': 'zed'})
    assert 'zed' not in index.values('account', 'alias')

    await index.rebuild('account', 'alias')
    assert 'zed' in index.values('account', 'alias')


@pytest.mark.asyncio
async def test_concurrent_loads_share_one_scan(api, controller) -> None:
    api.seed('account', accounts('alice'))
    api.gate = asyncio.Event()
    index = AutocompleteIndex(controller)

    tasks = [asyncio.create_task(index.ensure_loaded('account', 'alias')) for _ in range(3)]
    await asyncio.sleep(0)
    api.gate.set()
    entries = await asyncio.gather(*tasks)

    assert api.count('list') == 1
    assert all(e.values == frozenset({'alice'}) for e in entries)


@pytest.mark.asyncio
async def test_failed_scan_stays_unloaded(api, controller) -> None:
    api.seed('account', accounts('alice'))
    api.fail_next.append(NetworkUnavailableError('Fetch error'))
    index = AutocompleteIndex(controller)

    with pytest.raises(NetworkUnavailableError):
        await index.ensure_loaded('account', 'alias')

    assert not index.entry('account', 'alias').is_loaded
    entry = await index.ensure_loaded('account', 'alias')
    assert entry.values == frozenset({'alice'})


@pytest.mark.asyncio
async def test_nested_field_values(api, controller) -> None:
    api.seed('unspent_output', [
        {'transaction_id': 'tx1', 'position': 0, 'account_alias': 'alice'},
        {'transaction_id': 'tx1', 'position': 1, 'account_alias': 'bob'},
        {'transaction_id': 'tx2', 'position': 0, 'account_alias': 'alice'},
    ])
    index = AutocompleteIndex(controller)

    entry = await index.ensure_loaded('unspent_output', 'account_alias')

    assert entry.values == frozenset({'alice', 'bob'})


@pytest.mark.asyncio
async def test_suggest_is_sorted_case_insensitive_prefix_match(api, controller) -> None:
    api.seed('asset', [{'id': f"as{i}", 'alias': a} for i, a in enumerate(['gold', 'Gas', 'silver', 'grain'])])
    index = AutocompleteIndex(controller)
    await index.ensure_loaded('asset', 'alias')

    assert index.suggest('asset', 'alias', 'g') == ['Gas', 'gold', 'grain']
    assert index.suggest('asset', 'alias', 'g', limit=1) == ['Gas']
    assert index.suggest('asset', 'alias', 'x') == []


@pytest.mark.asyncio
async def test_unknown_resource_type_is_invalid_state(controller) -> None:
    index = AutocompleteIndex(controller)
    with pytest.raises(InvalidStateError):
        await index.ensure_loaded('widget', 'alias')


@pytest.mark.asyncio
async def test_field_not_offered_for_autocomplete_is_invalid_state(api, controller) -> None:
    api.seed('account', accounts('alice'))
    index = AutocompleteIndex(controller)

    with pytest.raises(InvalidStateError):
        await index.ensure_loaded('account', 'quorum')
    assert api.count('list') == 0


@pytest.mark.asyncio
async def test_scan_restarts_when_sample_list_is_invalidated(api, controller, query_cache) -> None:
    api.seed('asset', [{'id': f"as{i}", 'alias': f"alias{i}"} for i in range(5)])
    index = AutocompleteIndex(controller, page_size=2, sample_size=100)
    list_page = api.list_page
    invalidated = []

    async def list_page_then_create_elsewhere(descriptor, query):
        page = await list_page(descriptor, query)
        if not invalidated:
            # a create on another coroutine lands while the first page is in flight
            invalidated.append(query_cache.invalidate_all('asset'))
        return page

    api.list_page = list_page_then_create_elsewhere

    entry = await index.ensure_loaded('asset', 'alias')

    assert entry.values == frozenset(f"alias{i}" for i in range(5))
    assert query_cache.get(index.sample_signature('asset')).is_last_page
    assert api.count('list') == 4
