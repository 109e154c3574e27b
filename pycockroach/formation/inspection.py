import datetime
import decimal
import typing
import uuid
from typing import Any, Optional

from strong_typing.inspection import (
    DataclassInstance,
    dataclass_fields,
    is_dataclass_type,
    is_type_enum,
    is_type_optional,
    unwrap_annotated_type,
    unwrap_optional_type,
)

from ..model.data_types import (
    SqlBooleanType,
    SqlDataType,
    SqlDateType,
    SqlDecimalType,
    SqlDoubleType,
    SqlIntegerType,
    SqlJsonType,
    SqlTimestampType,
    SqlUuidType,
    SqlVariableCharacterType,
    SqlVirtualType,
)
from ..model.id_types import LocalId, QualifiedId
from ..model.key_types import (
    DefaultTag,
    get_column_name,
    is_constraint,
    is_identity_type,
    is_primary_key_type,
    is_unique_type,
    is_virtual_type,
)
from .object_types import Column, Index, MappingError, Table, UniqueConstraint


def python_to_sql_data_type(
    plain_type: Any, metadata: tuple[Any, ...] = ()
) -> SqlDataType:
    "Maps a plain Python type and its metadata annotations to a SQL data type."

    sql_type: SqlDataType
    if plain_type is bool:
        sql_type = SqlBooleanType()
    elif plain_type is int:
        sql_type = SqlIntegerType(8)
    elif plain_type is float:
        sql_type = SqlDoubleType()
    elif plain_type is decimal.Decimal:
        sql_type = SqlDecimalType()
    elif plain_type is str:
        sql_type = SqlVariableCharacterType()
    elif plain_type is datetime.datetime:
        sql_type = SqlTimestampType()
    elif plain_type is datetime.date:
        sql_type = SqlDateType()
    elif plain_type is uuid.UUID:
        sql_type = SqlUuidType()
    elif plain_type in (dict, list) or typing.get_origin(plain_type) in (
        dict,
        list,
    ):
        sql_type = SqlJsonType()
    elif is_type_enum(plain_type):
        sql_type = SqlVariableCharacterType()
    else:
        raise MappingError(f"no SQL data type for Python type: {plain_type}")

    for meta in metadata:
        if is_constraint(meta):
            continue
        sql_type.parse_meta(meta)

    return sql_type


def dataclass_to_table(
    class_type: type[DataclassInstance],
    *,
    namespace: Optional[str] = None,
    indexes: Optional[list[Index]] = None,
) -> Table:
    """
    Builds model metadata from a data-class whose fields carry key annotations.

    :param class_type: A data-class type, e.g. with fields of type `PrimaryKey[int]` or `Unique[str]`.
    :param namespace: The schema in which the table resides.
    :param indexes: Secondary indexes to attach to the table.
    """

    if not is_dataclass_type(class_type):
        raise TypeError(f"expected: data-class type; got: {class_type}")

    hints = typing.get_type_hints(class_type, include_extras=True)

    columns: list[Column] = []
    primary_key: list[LocalId] = []
    constraints: list[UniqueConstraint] = []
    for field in dataclass_fields(class_type):
        field_type = hints.get(field.name, field.type)

        nullable = False
        plain_type = unwrap_annotated_type(field_type)
        metadata: tuple[Any, ...] = getattr(field_type, "__metadata__", ())
        if is_type_optional(plain_type):
            nullable = True
            inner_type = unwrap_optional_type(plain_type)
            metadata += getattr(inner_type, "__metadata__", ())
            plain_type = unwrap_annotated_type(inner_type)

        column_name = get_column_name(field_type) or field.name
        column_id = LocalId(column_name)

        data_type: SqlDataType
        if is_virtual_type(field_type):
            data_type = SqlVirtualType()
        else:
            data_type = python_to_sql_data_type(_strip_default(plain_type), metadata)

        columns.append(
            Column(
                column_id,
                data_type,
                nullable=nullable,
                identity=is_identity_type(field_type),
                attribute=field.name if column_name != field.name else None,
            )
        )

        if is_primary_key_type(field_type):
            primary_key.append(column_id)
        if is_unique_type(field_type):
            constraints.append(
                UniqueConstraint(
                    LocalId(f"uq_{class_type.__name__}_{column_name}"), (column_id,)
                )
            )

    return Table(
        QualifiedId(namespace, class_type.__name__),
        columns,
        primary_key=tuple(primary_key),
        constraints=constraints,
        indexes=indexes,
    )


def _strip_default(typ: Any) -> Any:
    "Removes the `DEFAULT` placeholder from the union type of an identity field."

    args = typing.get_args(typ)
    if typing.get_origin(typ) is typing.Union and args:
        members = [arg for arg in args if arg is not DefaultTag]
        if len(members) == 1:
            return members[0]
    return typ

