from typing import Any, Iterable, List, Mapping


class Parser:
    """Pulls field values out of raw API records.

    Field names may be dotted paths into nested objects (`tags.region`,
    `definition.name`). Lists along the path are flattened, so a path that
    crosses a list yields one value per element.
    """

    def __init__(self, data: Iterable[Mapping[str, Any]]):
        self.data = data

    @staticmethod
    def lookup(record: Any, path: str) -> List[Any]:
        current = [record]
        for part in path.split('.'):
            found = []
            for node in current:
                if isinstance(node, Mapping):
                    if part in node:
                        found.append(node[part])
                elif isinstance(node, (list, tuple)):
                    found.extend(n[part] for n in node if isinstance(n, Mapping) and part in n)
            current = found
            if not current:
                break

        values = []
        for value in current:
            if isinstance(value, (list, tuple)):
                values.extend(value)
            else:
                values.append(value)
        return values

    def field_values(self, path: str) -> List[str]:
        """Return the non-empty scalar values found at `path`, in record order."""
        values = []
        for record in self.data:
            for value in self.lookup(record, path):
                # only scalars are meaningful as suggestions
                if value is None or isinstance(value, (Mapping, list, tuple)):
                    continue
                text = str(value).strip()
                if text:
                    values.append(text)
        return values
