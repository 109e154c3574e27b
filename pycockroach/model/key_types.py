"""
Annotations that attach column semantics to data-class fields.

Example:
```
@dataclass
class Account:
    id: Identity[int]
    email: Unique[Annotated[str, Column("email_address")]]
    display_name: Virtual[str]
```
"""

from dataclasses import dataclass
from typing import Annotated, Optional, TypeVar, Union

from strong_typing.inspection import TypeLike, get_annotation

T = TypeVar("T")


class PrimaryKeyTag:
    "Marks a field as the primary key of a table."

    def __repr__(self) -> str:
        return "PrimaryKey"


class IdentityTag:
    "Marks a field as a primary key column whose value the database generates."

    def __repr__(self) -> str:
        return "Identity"


class UniqueTag:
    "Marks a field as a column with a unique constraint."

    def __repr__(self) -> str:
        return "Unique"


class VirtualTag:
    "Marks a field as a model attribute with no backing column."

    def __repr__(self) -> str:
        return "Virtual"


class DefaultTag:
    "The placeholder value DEFAULT."

    def __repr__(self) -> str:
        return "DEFAULT"


@dataclass(frozen=True)
class Column:
    "Maps a field to a column whose physical name differs from the field name."

    name: str


DEFAULT = DefaultTag()

PrimaryKey = Annotated[T, PrimaryKeyTag()]
Identity = Annotated[Union[T, DefaultTag], PrimaryKeyTag(), IdentityTag()]
Unique = Annotated[T, UniqueTag()]
Virtual = Annotated[T, VirtualTag()]


def is_primary_key_type(field_type: TypeLike) -> bool:
    "Checks if the field type is marked as the primary key of a table."

    return get_annotation(field_type, PrimaryKeyTag) is not None


def is_identity_type(field_type: TypeLike) -> bool:
    "Checks if the field type is marked as an identity column in a table."

    return get_annotation(field_type, IdentityTag) is not None


def is_unique_type(field_type: TypeLike) -> bool:
    "Checks if the field type is marked as a unique column in a table."

    return get_annotation(field_type, UniqueTag) is not None


def is_virtual_type(field_type: TypeLike) -> bool:
    "Checks if the field type is marked as having no backing column."

    return get_annotation(field_type, VirtualTag) is not None


def get_column_name(field_type: TypeLike) -> Optional[str]:
    "Returns the physical column name assigned to a field, if any."

    column = get_annotation(field_type, Column)
    return column.name if column is not None else None


def is_constraint(item: object) -> bool:
    return isinstance(
        item, (PrimaryKeyTag, IdentityTag, UniqueTag, VirtualTag, DefaultTag, Column)
    )
