"""In-memory table built from query results.

The service returns query rows as a JSON array of flat objects. Each
distinct key becomes a column, in order of first appearance. Nested objects
and arrays are stored as-is; they are not flattened.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

DEFAULT_TABLE_NAME = "Table1"


def _infer_type(values: List[Any]) -> type:
    """Pick a column type from its non-null values.

    Mixed ints and floats widen to float; anything else mixed, nested or
    entirely null becomes ``object``.
    """
    seen = set()
    for value in values:
        if value is None:
            continue
        if isinstance(value, bool):
            seen.add(bool)
        elif isinstance(value, int):
            seen.add(int)
        elif isinstance(value, float):
            seen.add(float)
        elif isinstance(value, str):
            seen.add(str)
        else:
            return object

    if len(seen) == 1:
        return seen.pop()
    if seen == {int, float}:
        return float
    return object


@dataclass
class Column:
    name: str
    type: type = object


@dataclass
class Table:
    """Named columns plus ordered rows; ``None`` marks a missing value."""
    name: str = DEFAULT_TABLE_NAME
    columns: List[Column] = field(default_factory=list)
    rows: List[List[Any]] = field(default_factory=list)

    @classmethod
    def from_records(cls, records: List[Dict[str, Any]], name: str = DEFAULT_TABLE_NAME) -> "Table":
        names: List[str] = []
        index: Dict[str, int] = {}
        for i, record in enumerate(records):
            if not isinstance(record, dict):
                raise ValueError(
                    f"Row {i} is a {type(record).__name__}, expected a JSON object"
                )
            for key in record:
                if key not in index:
                    index[key] = len(names)
                    names.append(key)

        rows = [[record.get(key) for key in names] for record in records]
        columns = [
            Column(key, _infer_type([row[i] for row in rows]))
            for i, key in enumerate(names)
        ]
        return cls(name=name or DEFAULT_TABLE_NAME, columns=columns, rows=rows)

    @classmethod
    def from_json(cls, json_text: str, name: str = DEFAULT_TABLE_NAME) -> "Table":
        """Deserialize a JSON array of row objects.

        Raises ``ValueError`` for malformed JSON or a document that is not an
        array of objects.
        """
        data = json.loads(json_text)
        if not isinstance(data, list):
            raise ValueError(
                f"Expected a JSON array of rows, got {type(data).__name__}"
            )
        return cls.from_records(data, name)

    @property
    def column_names(self) -> List[str]:
        return [c.name for c in self.columns]

    def column(self, name: str) -> Optional[Column]:
        for c in self.columns:
            if c.name == name:
                return c
        return None

    def records(self) -> List[Dict[str, Any]]:
        """Rows as dicts keyed by column name, in column order."""
        names = self.column_names
        return [dict(zip(names, row)) for row in self.rows]

    def value(self, row: int, column: str) -> Any:
        return self.rows[row][self.column_names.index(column)]

    def to_list(self, first_row_column_names: bool = False) -> List[List[Any]]:
        result: List[List[Any]] = []
        if first_row_column_names:
            result.append(list(self.column_names))
        result.extend(list(row) for row in self.rows)
        return result

    def __len__(self) -> int:
        return len(self.rows)
