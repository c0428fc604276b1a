from typing import List, Optional

from dashcache.clients.core_client import CoreClient
from dashcache.config.resources import ResourceDescriptor, get_descriptor
from dashcache.core.exceptions.exceptions import InvalidStateError, ServerError
from dashcache.schemas.query import CacheEntry, ListQuery, Page, PageState, QuerySignature
from dashcache.services.item_store import Item, ItemStore
from dashcache.services.query_cache import LoadTicket, QueryCache
from dashcache.utils.log import app_logger


class PaginationController:
    """Drives first-page / next-page loads for query signatures.

    Per signature the state moves EMPTY -> LOADING_FIRST -> LOADED ->
    LOADING_NEXT -> LOADED ... -> EXHAUSTED. A failed fetch leaves the
    signature where it was and re-raises; nothing from a failed page is
    written to the item store or the cache.

    Holds references to the shared item store and query cache; it owns
    neither.
    """

    max_restarts = 3

    def __init__(self, item_store: ItemStore, query_cache: QueryCache, client: CoreClient):
        self.item_store = item_store
        self.query_cache = query_cache
        self.client = client

    def state(self, signature: QuerySignature) -> PageState:
        ticket = self.query_cache.in_flight(signature)
        if ticket is not None:
            return PageState.LOADING_FIRST if ticket.first_page else PageState.LOADING_NEXT
        entry = self.query_cache.get(signature)
        if entry is None or not entry.is_loaded:
            return PageState.EMPTY
        if entry.is_last_page:
            return PageState.EXHAUSTED
        return PageState.LOADED

    def items(self, signature: QuerySignature) -> List[Item]:
        """Items of the signature's cached pages, in query order."""
        entry = self.query_cache.get(signature)
        if entry is None:
            return []
        return self.item_store.get_many(entry.ids)

    async def load_first_page(self, signature: QuerySignature) -> CacheEntry:
        descriptor = get_descriptor(signature.resource_type)

        entry = self.query_cache.get(signature)
        if entry is not None and entry.is_loaded:
            app_logger.debug("pagination.cache_hit", resource=signature.resource_type)
            return entry

        ticket, owner = self.query_cache.start_load(signature)
        if not owner:
            return await ticket.future
        return await self._fetch(descriptor, ticket, cursor=None)

    async def load_next_page(self, signature: QuerySignature) -> CacheEntry:
        descriptor = get_descriptor(signature.resource_type)

        # a next page already on its way uses the same cursor; share it
        ticket = self.query_cache.in_flight(signature)
        if ticket is not None and not ticket.first_page:
            return await ticket.future

        entry = self.query_cache.get(signature)
        if entry is None or not entry.is_loaded:
            raise InvalidStateError(f"no first page loaded for {signature.resource_type} query")
        if entry.is_last_page or entry.cursor is None:
            raise InvalidStateError(f"{signature.resource_type} query has no further pages")

        ticket, owner = self.query_cache.start_load(signature)
        if not owner:
            return await ticket.future
        return await self._fetch(descriptor, ticket, cursor=entry.cursor)

    async def refresh(self, signature: QuerySignature) -> CacheEntry:
        self.query_cache.invalidate(signature)
        return await self.load_first_page(signature)

    async def load_at_least(self, signature: QuerySignature, count: int) -> CacheEntry:
        """Load pages until `count` ids are cached or the query is exhausted.

        If the signature is invalidated while a page is in flight, the pages
        loaded so far are stale; loading starts over from the first page, at
        most `max_restarts` times, after which the detached entry is returned.
        """
        restarts = 0
        entry = await self.load_first_page(signature)
        while len(entry.ids) < count and entry.has_next_page:
            if self.query_cache.get(signature) is None:
                if restarts == self.max_restarts:
                    break
                restarts += 1
                app_logger.info("pagination.restart", resource=signature.resource_type, restarts=restarts)
                entry = await self.load_first_page(signature)
                continue
            entry = await self.load_next_page(signature)
        return entry

    @staticmethod
    def _identities(descriptor: ResourceDescriptor, page: Page) -> List[str]:
        try:
            return [descriptor.identity(item) for item in page.items]
        except (KeyError, TypeError) as e:
            raise ServerError(f"{descriptor.name} item without identity in list response",
                              detail=repr(e)) from e

    async def _fetch(self, descriptor: ResourceDescriptor, ticket: LoadTicket,
                     cursor: Optional[str]) -> CacheEntry:
        signature = ticket.signature
        issued_at = self.item_store.epoch
        try:
            page = await self.client.list_page(descriptor, ListQuery.from_signature(signature, cursor))
            identities = self._identities(descriptor, page)
        except BaseException as e:
            self.query_cache.abort_load(ticket, e)
            app_logger.error("pagination.fetch_failed", resource=signature.resource_type,
                             first_page=ticket.first_page, exc_type=type(e).__name__, error=str(e))
            raise

        ids = []
        for identity, item in zip(identities, page.items):
            if not self.item_store.put(identity, item, issued_at=issued_at) and identity not in self.item_store:
                # deleted while this page was in flight
                continue
            ids.append(identity)

        entry = self.query_cache.append_page(
            signature, ids, page.cursor, page.is_last_page, ticket=ticket
        )
        app_logger.info("pagination.page_loaded", resource=signature.resource_type,
                        first_page=ticket.first_page, count=len(ids), last_page=page.is_last_page)
        return entry
