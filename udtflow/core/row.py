"""Row type handed to table function handlers."""

from typing import Any, Dict, Iterable, Sequence, Tuple


class Row(tuple):
    """An immutable row that also knows its column names.

    Values are reachable by position (``row[0]``), by column name
    (``row["id"]``) or as attributes (``row.id``). Name lookups are
    case-insensitive.

    Example:
        >>> row = Row(["id", "value"], [1, 10])
        >>> row.value, row["ID"], tuple(row)
        (10, 1, (1, 10))
    """

    _fields: Tuple[str, ...]

    def __new__(cls, fields: Sequence[str], values: Iterable[Any]) -> "Row":
        row = super().__new__(cls, values)
        fields = tuple(fields)
        if len(fields) != len(row):
            raise ValueError(
                f"Row has {len(row)} values but {len(fields)} column names"
            )
        row._fields = fields
        row._index = {name.lower(): i for i, name in enumerate(fields)}
        return row

    def __getitem__(self, item):
        if isinstance(item, str):
            try:
                return tuple.__getitem__(self, self._index[item.lower()])
            except KeyError:
                raise KeyError(item) from None
        return tuple.__getitem__(self, item)

    def __getattr__(self, name: str) -> Any:
        # Only reached when normal attribute lookup fails
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return tuple.__getitem__(self, self._index[name.lower()])
        except KeyError:
            raise AttributeError(f"Row has no column '{name}'") from None

    def __reduce__(self):
        return (Row, (self._fields, tuple(self)))

    def __repr__(self) -> str:
        values = ", ".join(
            f"{name}={value!r}" for name, value in zip(self._fields, self)
        )
        return f"Row({values})"

    @property
    def fields(self) -> Tuple[str, ...]:
        return self._fields

    def as_dict(self) -> Dict[str, Any]:
        return dict(zip(self._fields, self))
