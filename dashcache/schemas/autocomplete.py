from typing import FrozenSet

from pydantic import BaseModel, ConfigDict


class AutocompleteEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str
    is_loaded: bool = False
    values: FrozenSet[str] = frozenset()
