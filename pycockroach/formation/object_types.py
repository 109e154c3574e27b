import abc
from collections.abc import KeysView, Mapping, ValuesView
from dataclasses import dataclass
from typing import Generic, Iterable, Iterator, Optional, Protocol, TypeVar

from ..model.data_types import SqlDataType, SqlVirtualType
from ..model.id_types import LocalId, SupportsName, SupportsQualifiedId

ObjectItem = TypeVar("ObjectItem", bound=SupportsName)


class MappingError(RuntimeError):
    "Raised when a Python class cannot map to a database entity."


class ObjectDict(Generic[ObjectItem], Mapping[str, ObjectItem]):
    "An insertion-ordered collection of named database objects, looked up by unquoted name."

    _items: dict[str, ObjectItem]

    def __init__(self, items: Iterable[ObjectItem]) -> None:
        self._items = {}
        for item in items:
            self.add(item)

    def __contains__(self, key: object) -> bool:
        return key in self._items

    def __getitem__(self, key: str) -> ObjectItem:
        return self._items[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return repr(list(self._items.values()))

    def add(self, item: ObjectItem) -> None:
        if item.name.local_id in self._items:
            raise ValueError(f"item already in collection: {item.name}")

        self._items[item.name.local_id] = item

    def keys(self) -> KeysView[str]:
        return self._items.keys()

    def values(self) -> ValuesView[ObjectItem]:
        return self._items.values()


@dataclass(eq=True)
class Column:
    """
    A column in a database table, or a virtual attribute of a model.

    :param name: The physical name of the column within its host table.
    :param data_type: The SQL data type of the column.
    :param nullable: True if the column can take the value NULL.
    :param default: The default value the column takes if no explicit value is set. Must be a valid SQL expression.
    :param identity: Whether the database generates the value of the column (e.g. `unique_rowid()`).
    :param attribute: The logical name by which the model refers to the column, if it differs from the name.
    """

    name: LocalId
    data_type: SqlDataType
    nullable: bool = True
    default: Optional[str] = None
    identity: bool = False
    attribute: Optional[str] = None

    @property
    def field_name(self) -> str:
        "Physical name of the column."

        return self.name.local_id

    @property
    def logical_name(self) -> str:
        "Name of the model attribute the column maps to."

        return self.attribute if self.attribute is not None else self.name.local_id

    @property
    def is_virtual(self) -> bool:
        return isinstance(self.data_type, SqlVirtualType)

    def __str__(self) -> str:
        nullable = " NOT NULL" if not self.nullable and not self.identity else ""
        default = f" DEFAULT {self.default}" if self.default is not None else ""
        return f"{self.name} {self.data_type}{nullable}{default}"


@dataclass
class UniqueConstraint:
    """
    A unique constraint.

    :param name: The name of the constraint.
    :param unique_columns: Names of columns that comprise the constraint.
    """

    name: LocalId
    unique_columns: tuple[LocalId, ...]

    def __str__(self) -> str:
        columns = ", ".join(str(column) for column in self.unique_columns)
        return f"CONSTRAINT {self.name} UNIQUE ({columns})"


@dataclass
class Index:
    """
    A secondary index.

    :param name: The name of the index.
    :param columns: Names of indexed columns in order.
    :param unique: True if the index rejects duplicate keys.
    """

    name: LocalId
    columns: tuple[LocalId, ...]
    unique: bool = False


class SupportsModelMetadata(Protocol):
    "Keys and columns of a model as consumed by the upsert statement generator."

    @abc.abstractmethod
    def get_primary_key_columns(self) -> list[str]: ...

    @abc.abstractmethod
    def get_unique_constraint_groups(self) -> list[list[str]]: ...

    @abc.abstractmethod
    def get_unique_index_groups(self) -> list[list[str]]: ...

    @abc.abstractmethod
    def get_columns(self) -> list[Column]: ...

    @abc.abstractmethod
    def find_column(self, key: str) -> Optional[Column]: ...


@dataclass
class Table:
    """
    A database table with the metadata an upsert needs.

    :param name: The qualified name of the table.
    :param columns: The columns (and virtual attributes) that the table consists of.
    :param primary_key: The primary key column(s) of the table.
    :param constraints: Unique constraints applied to the table.
    :param indexes: Secondary indexes defined on the table.
    """

    name: SupportsQualifiedId
    columns: ObjectDict[Column]
    primary_key: tuple[LocalId, ...]
    constraints: ObjectDict[UniqueConstraint]
    indexes: ObjectDict[Index]

    def __init__(
        self,
        name: SupportsQualifiedId,
        columns: list[Column],
        *,
        primary_key: tuple[LocalId, ...] = (),
        constraints: Optional[list[UniqueConstraint]] = None,
        indexes: Optional[list[Index]] = None,
    ) -> None:
        self.name = name
        self.columns = ObjectDict(columns)
        self.primary_key = primary_key
        self.constraints = ObjectDict(constraints or [])
        self.indexes = ObjectDict(indexes or [])

        for key in primary_key:
            if key.local_id not in self.columns:
                raise MappingError(
                    f"primary key column {key} not found in table {self.name}"
                )

    def get_primary_key_columns(self) -> list[str]:
        "Physical names of primary key columns in key order."

        return [key.local_id for key in self.primary_key]

    def get_unique_constraint_groups(self) -> list[list[str]]:
        "Column groups of unique constraints in declaration order."

        return [
            [column.local_id for column in constraint.unique_columns]
            for constraint in self.constraints.values()
            if len(constraint.unique_columns) >= 1
        ]

    def get_unique_index_groups(self) -> list[list[str]]:
        "Column groups of unique indexes in declaration order."

        return [
            [column.local_id for column in index.columns]
            for index in self.indexes.values()
            if index.unique and len(index.columns) >= 1
        ]

    def get_columns(self) -> list[Column]:
        return list(self.columns.values())

    def get_persisted_columns(self) -> list[Column]:
        "Columns that have a backing column in the database."

        return [column for column in self.columns.values() if not column.is_virtual]

    def find_column(self, key: str) -> Optional[Column]:
        "Looks up a column by its physical name, or by the logical name of the attribute it maps to."

        column = self.columns.get(key)
        if column is not None:
            return column

        for column in self.columns.values():
            if column.logical_name == key:
                return column

        return None

    def __str__(self) -> str:
        defs: list[str] = []
        defs.extend(str(c) for c in self.get_persisted_columns())
        if self.primary_key:
            keys = ", ".join(str(key) for key in self.primary_key)
            defs.append(f"PRIMARY KEY ({keys})")
        defs.extend(str(c) for c in self.constraints.values())
        definition = ",\n".join(defs)
        return f"CREATE TABLE {self.name} (\n{definition}\n);"
