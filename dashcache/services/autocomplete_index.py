import asyncio
from typing import Dict, List, Tuple

from dashcache.config.resources import get_descriptor
from dashcache.core.exceptions.exceptions import InvalidStateError
from dashcache.schemas.autocomplete import AutocompleteEntry
from dashcache.schemas.query import QuerySignature
from dashcache.services.pagination_controller import PaginationController
from dashcache.services.query_cache import mark_retrieved
from dashcache.utils.log import app_logger
from dashcache.utils.parser import Parser

Key = Tuple[str, str]


class AutocompleteIndex:
    """Distinct values of one field per resource type, sampled from list pages.

    Built once per (resource type, field) and then only read. Creates and
    updates do not refresh it; call `rebuild` to rescan.
    """

    def __init__(self, controller: PaginationController, page_size: int = 100, sample_size: int = 1000):
        self.controller = controller
        self.page_size = page_size
        self.sample_size = sample_size
        self._entries: Dict[Key, AutocompleteEntry] = {}
        self._pending: Dict[Key, asyncio.Future] = {}

    def sample_signature(self, resource_type: str) -> QuerySignature:
        return QuerySignature(resource_type=resource_type, page_size=self.page_size)

    def entry(self, resource_type: str, field: str) -> AutocompleteEntry:
        return self._entries.get((resource_type, field), AutocompleteEntry(field=field))

    def values(self, resource_type: str, field: str) -> frozenset:
        return self.entry(resource_type, field).values

    def suggest(self, resource_type: str, field: str, prefix: str = "", limit: int = 10) -> List[str]:
        needle = prefix.lower()
        matches = sorted(v for v in self.values(resource_type, field) if v.lower().startswith(needle))
        return matches[:limit]

    async def ensure_loaded(self, resource_type: str, field: str) -> AutocompleteEntry:
        descriptor = get_descriptor(resource_type)
        if field not in descriptor.autocomplete_fields:
            raise InvalidStateError(f"{resource_type} has no autocomplete field '{field}'")
        key = (resource_type, field)

        entry = self._entries.get(key)
        if entry is not None and entry.is_loaded:
            return entry

        pending = self._pending.get(key)
        if pending is not None:
            return await pending

        future = asyncio.get_running_loop().create_future()
        future.add_done_callback(mark_retrieved)
        self._pending[key] = future
        try:
            entry = await self._scan(resource_type, field)
        except BaseException as e:
            if isinstance(e, asyncio.CancelledError):
                future.cancel()
            else:
                future.set_exception(e)
            raise
        else:
            self._entries[key] = entry
            future.set_result(entry)
            return entry
        finally:
            del self._pending[key]

    async def rebuild(self, resource_type: str, field: str) -> AutocompleteEntry:
        self._entries.pop((resource_type, field), None)
        self.controller.query_cache.invalidate(self.sample_signature(resource_type))
        return await self.ensure_loaded(resource_type, field)

    async def _scan(self, resource_type: str, field: str) -> AutocompleteEntry:
        signature = self.sample_signature(resource_type)
        cache_entry = await self.controller.load_at_least(signature, self.sample_size)
        records = self.controller.item_store.get_many(cache_entry.ids[:self.sample_size])
        values = frozenset(Parser(records).field_values(field))
        app_logger.info("autocomplete.loaded", resource=resource_type, field=field,
                        sampled=len(records), values=len(values))
        return AutocompleteEntry(field=field, is_loaded=True, values=values)
