from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


class PageState(str, Enum):
    EMPTY = "empty"
    LOADING_FIRST = "loading_first"
    LOADED = "loaded"
    LOADING_NEXT = "loading_next"
    EXHAUSTED = "exhausted"


def _freeze(param: Any) -> Any:
    # list params (e.g. for `IN $1`) become nested tuples so the signature stays hashable
    if isinstance(param, (list, tuple)):
        return tuple(_freeze(p) for p in param)
    if isinstance(param, (dict, set)):
        raise ValueError(f"filter params must be scalars or lists, got {type(param).__name__}")
    return param


class QuerySignature(BaseModel):
    """Normalized key of one paginated query.

    Two signatures built from the same resource type, filter, sort order, page
    size and per-type discriminator compare (and hash) equal, so they read and
    write the same cache entry.
    """
    model_config = ConfigDict(frozen=True)

    resource_type: str
    filter: str = ""
    filter_params: Tuple[Any, ...] = ()
    sort_order: Optional[str] = None
    page_size: int = Field(default=25, gt=0)
    sum_by: Tuple[str, ...] = ()

    @field_validator("filter", mode="before")
    @classmethod
    def _strip_filter(cls, v: Optional[str]) -> str:
        # whitespace around a filter expression never changes its meaning
        return (v or "").strip()

    @field_validator("filter_params", "sum_by", mode="before")
    @classmethod
    def _as_tuple(cls, v: Any) -> Tuple[Any, ...]:
        if v is None:
            return ()
        if isinstance(v, (list, tuple)):
            return tuple(_freeze(p) for p in v)
        return (_freeze(v),)

    @field_validator("sort_order", mode="before")
    @classmethod
    def _normalize_sort(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip().lower()
        return v or None


class ListQuery(BaseModel):
    """Body of one list request: a signature plus, after the first page, a cursor."""
    filter: str = ""
    filter_params: List[Any] = Field(default_factory=list)
    page_size: int
    after: Optional[str] = None
    sum_by: Optional[List[str]] = None
    order: Optional[str] = None

    @classmethod
    def from_signature(cls, signature: QuerySignature, cursor: Optional[str] = None) -> "ListQuery":
        return cls(
            filter=signature.filter,
            filter_params=list(signature.filter_params),
            page_size=signature.page_size,
            after=cursor,
            sum_by=list(signature.sum_by) or None,
            order=signature.sort_order,
        )

    def to_body(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class Page(BaseModel):
    """One page as returned by the remote API."""
    items: List[Dict[str, Any]] = Field(default_factory=list)
    cursor: Optional[str] = None
    is_last_page: bool = False


class CacheEntry(BaseModel):
    """Cached state of one query signature.

    Snapshots are immutable; every change produces a new entry via `model_copy`.
    `cursor` is None once `is_last_page` is set.
    """
    model_config = ConfigDict(frozen=True)

    ids: Tuple[str, ...] = ()
    cursor: Optional[str] = None
    is_loaded: bool = False
    is_last_page: bool = False

    @property
    def has_next_page(self) -> bool:
        return self.is_loaded and not self.is_last_page and self.cursor is not None
