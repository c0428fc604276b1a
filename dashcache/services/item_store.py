from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional

from dashcache.utils.log import app_logger

Item = Mapping[str, Any]


class ItemStore:
    """Normalized mapping from item identity to the latest known item snapshot.

    Items are stored as read-only snapshots; a newer representation replaces
    the slot, it is never edited in place.

    Every write advances `epoch`. A writer that captured the epoch before it
    started a request can pass it as `issued_at`; identities that were written
    or removed after that point are then left alone, so a slow list response
    cannot overwrite a fresher mutation result or resurrect a deleted item.
    """

    def __init__(self):
        self._items: Dict[str, Item] = {}
        self._written_at: Dict[str, int] = {}
        self._epoch = 0

    @property
    def epoch(self) -> int:
        return self._epoch

    def _tick(self, identity: str) -> None:
        self._epoch += 1
        self._written_at[identity] = self._epoch

    def is_stale(self, identity: str, issued_at: int) -> bool:
        """True if `identity` was written or removed after epoch `issued_at`."""
        return self._written_at.get(identity, 0) > issued_at

    def put(self, identity: str, item: Mapping[str, Any], issued_at: Optional[int] = None) -> bool:
        """Insert or replace the item under `identity`.

        Returns False when the write was skipped because it is older than the
        slot's last write.
        """
        if issued_at is not None and self.is_stale(identity, issued_at):
            app_logger.debug("item_store.put_skipped", identity=identity, issued_at=issued_at)
            return False
        self._items[identity] = MappingProxyType(dict(item))
        self._tick(identity)
        return True

    def get(self, identity: str) -> Optional[Item]:
        return self._items.get(identity)

    def get_many(self, identities: Iterable[str]) -> List[Item]:
        """Items for `identities` in the given order; unknown identities are skipped."""
        return [self._items[i] for i in identities if i in self._items]

    def remove(self, identity: str) -> None:
        # removing an absent identity still records a tombstone epoch
        self._items.pop(identity, None)
        self._tick(identity)

    def clear(self) -> None:
        self._items.clear()
        self._written_at.clear()

    def __contains__(self, identity: object) -> bool:
        return identity in self._items

    def __len__(self) -> int:
        return len(self._items)
