import asyncio
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from dashcache.schemas.query import CacheEntry, QuerySignature
from dashcache.utils.log import app_logger


def mark_retrieved(future: asyncio.Future) -> None:
    # the load owner re-raises the error itself; waiters are optional
    if not future.cancelled():
        future.exception()


@dataclass(eq=False)
class LoadTicket:
    """One in-flight fetch for a signature.

    Later callers for the same signature await `future` instead of issuing a
    request of their own. The future resolves to the resulting cache entry, or
    to the fetch error.
    """
    signature: QuerySignature
    first_page: bool
    base: CacheEntry
    future: asyncio.Future


class QueryCache:
    """In-memory cache of paginated query results.

    Maps a query signature to the ordered item identities fetched so far and
    the cursor for the next page. Entries hold identities only; the items live
    in the shared item store.

    There is at most one fetch in flight per signature. Invalidating a
    signature while its fetch is in flight detaches that fetch: its page is
    still handed to whoever awaits it but never stored.
    """

    def __init__(self):
        self._entries: Dict[QuerySignature, CacheEntry] = {}
        self._inflight: Dict[QuerySignature, LoadTicket] = {}

    def get(self, signature: QuerySignature) -> Optional[CacheEntry]:
        return self._entries.get(signature)

    def in_flight(self, signature: QuerySignature) -> Optional[LoadTicket]:
        return self._inflight.get(signature)

    def is_current(self, ticket: LoadTicket) -> bool:
        return self._inflight.get(ticket.signature) is ticket

    def start_load(self, signature: QuerySignature) -> Tuple[LoadTicket, bool]:
        """Register a fetch for `signature`.

        Returns `(ticket, True)` when the caller owns a new fetch, or the
        already running `(ticket, False)` the caller must await instead.
        """
        ticket = self._inflight.get(signature)
        if ticket is not None:
            return ticket, False

        entry = self._entries.get(signature)
        if entry is None:
            entry = CacheEntry()
            self._entries[signature] = entry

        future = asyncio.get_running_loop().create_future()
        future.add_done_callback(mark_retrieved)
        ticket = LoadTicket(
            signature=signature,
            first_page=not entry.is_loaded,
            base=entry,
            future=future,
        )
        self._inflight[signature] = ticket
        app_logger.debug("query_cache.start_load", resource=signature.resource_type,
                         first_page=ticket.first_page)
        return ticket, True

    @staticmethod
    def _build(base: CacheEntry, ids: Iterable[str], cursor: Optional[str],
               is_last_page: bool, first_page: bool) -> CacheEntry:
        prefix = () if first_page else base.ids
        return CacheEntry(
            ids=prefix + tuple(ids),
            cursor=None if is_last_page else cursor,
            is_loaded=True,
            is_last_page=is_last_page,
        )

    def append_page(self, signature: QuerySignature, ids: Iterable[str], cursor: Optional[str],
                    is_last_page: bool, ticket: Optional[LoadTicket] = None) -> CacheEntry:
        """Store a fetched page.

        A first page replaces the entry's ids, any later page is concatenated
        after them. With a `ticket` that is no longer current the resulting
        entry is returned detached and the cache is left untouched.
        """
        ids = tuple(ids)

        if ticket is not None and not self.is_current(ticket):
            entry = self._build(ticket.base, ids, cursor, is_last_page, ticket.first_page)
            app_logger.info("query_cache.append_detached", resource=signature.resource_type,
                            count=len(ids))
            if not ticket.future.done():
                ticket.future.set_result(entry)
            return entry

        base = self._entries.get(signature) or CacheEntry()
        first_page = ticket.first_page if ticket is not None else not base.is_loaded
        entry = self._build(base, ids, cursor, is_last_page, first_page)
        self._entries[signature] = entry

        if ticket is not None:
            del self._inflight[signature]
            ticket.future.set_result(entry)

        app_logger.debug("query_cache.append_page", resource=signature.resource_type,
                         count=len(ids), total=len(entry.ids), last_page=is_last_page)
        return entry

    def abort_load(self, ticket: LoadTicket, error: BaseException) -> None:
        """Drop a failed fetch, leaving the entry as it was before the fetch."""
        if self.is_current(ticket):
            del self._inflight[ticket.signature]
            entry = self._entries.get(ticket.signature)
            # a failed first page leaves nothing behind
            if entry is not None and not entry.is_loaded:
                del self._entries[ticket.signature]
        if ticket.future.done():
            return
        if isinstance(error, asyncio.CancelledError):
            ticket.future.cancel()
        else:
            ticket.future.set_exception(error)

    def invalidate(self, signature: QuerySignature) -> None:
        """Discard the entry; the next `get` returns None."""
        self._entries.pop(signature, None)
        self._inflight.pop(signature, None)
        app_logger.debug("query_cache.invalidate", resource=signature.resource_type)

    def invalidate_all(self, resource_type: str) -> int:
        """Discard every entry of `resource_type`; returns how many were dropped."""
        signatures = {s for s in list(self._entries) + list(self._inflight)
                      if s.resource_type == resource_type}
        for signature in signatures:
            self.invalidate(signature)
        app_logger.info("query_cache.invalidate_all", resource=resource_type, dropped=len(signatures))
        return len(signatures)

    def prune(self, identity: str) -> int:
        """Remove `identity` from every entry that lists it; returns how many changed."""
        changed = 0
        for signature, entry in list(self._entries.items()):
            if identity in entry.ids:
                ids = tuple(i for i in entry.ids if i != identity)
                self._entries[signature] = entry.model_copy(update={'ids': ids})
                changed += 1
        if changed:
            app_logger.debug("query_cache.prune", identity=identity, entries=changed)
        return changed

    def entries(self, resource_type: Optional[str] = None) -> List[Tuple[QuerySignature, CacheEntry]]:
        return [(s, e) for s, e in self._entries.items()
                if resource_type is None or s.resource_type == resource_type]

    def lists_identity(self, resource_type: str, identity: str) -> bool:
        return any(identity in e.ids for _, e in self.entries(resource_type))

    def clear(self) -> None:
        self._entries.clear()
        self._inflight.clear()
