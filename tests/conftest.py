import asyncio
import copy
import re
from typing import Any, Dict, List, Optional

import pytest

from dashcache.config.resources import ResourceDescriptor
from dashcache.core.exceptions.exceptions import NetworkUnavailableError, ValidationFailedError
from dashcache.schemas.query import ListQuery, Page
from dashcache.services.item_store import ItemStore
from dashcache.services.mutation_dispatcher import MutationDispatcher
from dashcache.services.pagination_controller import PaginationController
from dashcache.services.query_cache import QueryCache

_FIELD_EQUALS = re.compile(r"^(\w+)\s*=\s*'([^']*)'$")


class FakeCoreAPI:
    """In-process stand-in for CoreClient.

    Pages through seeded records using the record index as cursor. Requests
    can be held on `gate` and made to fail via `fail_next`.
    """

    def __init__(self):
        self.records: Dict[str, List[Dict[str, Any]]] = {}
        self.calls: List[tuple] = []
        self.fail_next: List[Exception] = []
        self.gate: Optional[asyncio.Event] = None
        self.by_client_token: Dict[str, Dict[str, Any]] = {}
        self.lose_next_create_response = False
        self.ack_only_updates = False
        self.on_unauthorized = None
        self.client_token = None
        self._next_id = 0

    def seed(self, resource: str, records: List[Dict[str, Any]]) -> None:
        self.records[resource] = [dict(r) for r in records]

    def set_client_token(self, token):
        self.client_token = token

    def close(self):
        pass

    def count(self, method: str) -> int:
        return sum(1 for c in self.calls if c[0] == method)

    async def _enter(self, method: str, resource: str, payload: Any) -> None:
        self.calls.append((method, resource, payload))
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_next:
            raise self.fail_next.pop(0)

    @staticmethod
    def _matches(record: Dict[str, Any], query: ListQuery) -> bool:
        if not query.filter:
            return True
        if query.filter == 'id=$1':
            return record.get('id') == query.filter_params[0]
        match = _FIELD_EQUALS.match(query.filter)
        if match:
            return str(record.get(match.group(1))) == match.group(2)
        return True

    async def list_page(self, descriptor: ResourceDescriptor, query: ListQuery) -> Page:
        await self._enter('list', descriptor.name, query)
        items = [r for r in self.records.get(descriptor.name, []) if self._matches(r, query)]
        start = int(query.after or 0)
        chunk = items[start:start + query.page_size]
        end = start + len(chunk)
        last = end >= len(items)
        return Page(items=copy.deepcopy(chunk), cursor=None if last else str(end), is_last_page=last)

    async def get_item(self, descriptor: ResourceDescriptor, identity: str):
        await self._enter('get', descriptor.name, identity)
        for record in self.records.get(descriptor.name, []):
            if descriptor.identity(record) == identity:
                return copy.deepcopy(record)
        return None

    async def create(self, descriptor: ResourceDescriptor, fields: Dict[str, Any], client_token: str):
        await self._enter('create', descriptor.name, (fields, client_token))
        if fields.get('alias') == 'taken':
            raise ValidationFailedError('non-unique alias', code='CH003', status=400,
                                        data={'field': 'alias'})
        record = self.by_client_token.get(client_token)
        if record is None:
            self._next_id += 1
            record = {'id': f"{descriptor.name}-{self._next_id}", **fields}
            self.records.setdefault(descriptor.name, []).insert(0, record)
            self.by_client_token[client_token] = record
        if self.lose_next_create_response:
            self.lose_next_create_response = False
            raise NetworkUnavailableError('Fetch error: read timed out', code='ReadTimeout')
        return copy.deepcopy(record)

    async def update(self, descriptor: ResourceDescriptor, identity: str, patch: Dict[str, Any]):
        await self._enter('update', descriptor.name, (identity, patch))
        for record in self.records.get(descriptor.name, []):
            if descriptor.identity(record) == identity:
                record.update(patch)
                return None if self.ack_only_updates else copy.deepcopy(record)
        raise ValidationFailedError('not found', code='CH002', status=404)

    async def delete(self, descriptor: ResourceDescriptor, body: Dict[str, Any]) -> None:
        await self._enter('delete', descriptor.name, body)
        records = self.records.get(descriptor.name, [])
        self.records[descriptor.name] = [
            r for r in records
            if not all(r.get(k) == v for k, v in body.items())
        ]


@pytest.fixture
def api():
    return FakeCoreAPI()


@pytest.fixture
def item_store():
    return ItemStore()


@pytest.fixture
def query_cache():
    return QueryCache()


@pytest.fixture
def controller(item_store, query_cache, api):
    return PaginationController(item_store, query_cache, api)


@pytest.fixture
def dispatcher(item_store, query_cache, api):
    return MutationDispatcher(item_store, query_cache, api)

