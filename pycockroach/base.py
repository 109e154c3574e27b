"""
pycockroach: CockroachDB compatibility layer for PostgreSQL code generation.

This module defines the error taxonomy, statement options, and the base class of generators that synthesize
insert and upsert statements.
"""

import abc
import enum
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Optional, Union

from .formation.object_types import Column, SupportsModelMetadata
from .model.data_types import (
    SqlGeographyType,
    SqlJsonType,
    encode_wide_integer,
    is_wide_integer_type,
    json_document,
)
from .model.id_types import SupportsQualifiedId, quote_identifier, to_qualified_id

LOGGER = logging.getLogger("pycockroach")

# SQLSTATE code of a unique constraint violation
UNIQUE_VIOLATION = "23505"

# result column that reports a unique constraint violation captured by a session-temporary function
SENTINEL_COLUMN = "pycockroach_caught_exception"


class ConfigurationError(RuntimeError):
    "Raised when model metadata or version information does not permit generating a statement."


class UnsupportedOperationError(RuntimeError):
    "Raised when a combination of options is not supported by the selected code path."


class DatabaseError(RuntimeError):
    """
    Raised when the database rejects a statement, or the connection fails while executing it.

    :param message: Error message reported by the database or the driver.
    :param code: Machine-readable error code (SQLSTATE), if any.
    :param sql: The SQL text that was being executed.
    :param parameters: The bind parameters passed with the SQL text.
    """

    message: str
    code: Optional[str]
    sql: Optional[str]
    parameters: Optional[tuple[Any, ...]]

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        sql: Optional[str] = None,
        parameters: Optional[tuple[Any, ...]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.sql = sql
        self.parameters = parameters

    def __str__(self) -> str:
        if self.sql is None:
            return self.message

        query = f"{self.sql[:1000]}..." if len(self.sql) > 1000 else self.sql
        return f"{self.message}\nerror executing query:\n{query}"


class UniqueConstraintError(DatabaseError):
    """
    Raised when an insert or update violates a unique constraint.

    :param detail: Detail text reported by the database, e.g. `Key (email)=(a@b.c) already exists.`
    """

    detail: Optional[str]

    def __init__(
        self,
        detail: Optional[str],
        *,
        message: Optional[str] = None,
        sql: Optional[str] = None,
        parameters: Optional[tuple[Any, ...]] = None,
    ) -> None:
        super().__init__(
            message or detail or "unique constraint violation",
            code=UNIQUE_VIOLATION,
            sql=sql,
            parameters=parameters,
        )
        self.detail = detail

    @property
    def fields(self) -> dict[str, str]:
        "Column names and values that caused the violation, as parsed from the detail text."

        if not self.detail:
            return {}

        match = re.match(r"Key \((.*)\)=\((.*)\)", self.detail)
        if match is None:
            return {}

        names = [name.strip().strip('"') for name in match.group(1).split(",")]
        values = [value.strip() for value in match.group(2).split(",")]
        if len(names) != len(values):
            return {}
        return dict(zip(names, values))


class ConnectionLostError(DatabaseError):
    "Raised when the connection is reset while executing a statement. The connection must not be reused."


@enum.unique
class StatementKind(enum.Enum):
    "Determines how the result of a statement is shaped."

    INSERT = "insert"
    UPDATE = "update"
    UPSERT = "upsert"
    BULK_UPDATE = "bulkupdate"
    BULK_DELETE = "bulkdelete"
    SELECT = "select"
    RAW = "raw"
    DESCRIBE = "describe"


@enum.unique
class UpsertPath(enum.Enum):
    "Selects the code path used to synthesize upsert statements."

    LEGACY = "legacy"
    "Inline literals without bind parameters. Upsert statements cannot return rows."

    BINDING = "binding"
    "Bind parameters with an optional RETURNING clause."

    @classmethod
    def from_version(cls, version: str) -> "UpsertPath":
        """
        Chooses a code path based on the version of the ORM library that emits statements.

        :param version: A version string such as `6.37.1` or `v5`.
        :raises ConfigurationError: Raised when the version is unrecognized or unsupported.
        """

        major = get_major_version(version)
        if major <= 4:
            raise ConfigurationError(
                f"versions 4 and below are not supported; detected version is {version}"
            )
        elif major == 5:
            return cls.LEGACY
        else:
            return cls.BINDING


def get_major_version(version: str) -> int:
    """
    Extracts the major component of a version string such as `6.37.1` or `v5`.

    :raises ConfigurationError: Raised when the version string is unrecognized.
    """

    match = re.match(r"^\s*v?(\d+)", version)
    if match is None:
        raise ConfigurationError(f"unrecognized version string: {version!r}")
    return int(match.group(1))


@dataclass(frozen=True)
class Verbatim:
    """
    A raw SQL fragment embedded in a statement as-is.

    The caller is responsible for the safety of the fragment; it is never escaped or bound.
    """

    sql: str

    def __str__(self) -> str:
        return self.sql


@dataclass(frozen=True)
class SynthesizedStatement:
    """
    A SQL statement ready to be passed to a transport.

    :param sql: SQL text.
    :param parameters: Positional bind parameters, or `None` when values are inlined.
    """

    sql: str
    parameters: Optional[tuple[Any, ...]] = None


@dataclass
class InsertOptions:
    """
    Options for synthesizing an insert statement.

    :param returning: True to return all persisted model columns, or a list of column names to return.
    :param bind: Whether to use bind parameters instead of inline literals.
    :param exception: Whether to capture unique constraint violations into a sentinel column instead of failing.
    :param omit_null: Whether to leave out columns whose value is `None`.
    :param ignore_duplicates: Whether to skip rows that conflict with existing rows.
    """

    returning: Union[bool, list[str]] = False
    bind: bool = True
    exception: bool = False
    omit_null: bool = False
    ignore_duplicates: bool = False


@dataclass
class UpsertOptions(InsertOptions):
    "Options for synthesizing an insert-or-update statement."


@dataclass
class GeneratorOptions:
    """
    Options fixed when a generator is created.

    :param upsert_path: Code path for synthesizing upsert statements.
    :param default_in_values: Whether `DEFAULT` may stand in for a value in a `VALUES` list.
    """

    upsert_path: UpsertPath = UpsertPath.BINDING
    default_in_values: bool = True


Values = dict[str, Any]
TableName = Union[str, SupportsQualifiedId]


class BaseGenerator(abc.ABC):
    """
    Synthesizes insert and upsert statements.

    :param options: Options fixed at creation time.
    """

    options: GeneratorOptions

    def __init__(self, options: Optional[GeneratorOptions] = None) -> None:
        self.options = options if options is not None else GeneratorOptions()

    @abc.abstractmethod
    def placeholder(self, index: int) -> str:
        """
        Returns a placeholder for a positional argument in a prepared statement.

        :param index: An index starting at 1 for the first position.
        """
        ...

    @abc.abstractmethod
    def get_insert_stmt(
        self,
        table_name: TableName,
        values: Values,
        model: Optional[SupportsModelMetadata],
        options: Optional[InsertOptions] = None,
    ) -> SynthesizedStatement:
        "Returns a statement that inserts a single row."
        ...

    @abc.abstractmethod
    def get_upsert_stmt(
        self,
        table_name: TableName,
        insert_values: Values,
        update_values: Values,
        model: SupportsModelMetadata,
        options: Optional[UpsertOptions] = None,
    ) -> SynthesizedStatement:
        "Returns a statement that inserts a single row, or updates the row it conflicts with."
        ...

    def get_table_id(self, table_name: TableName) -> SupportsQualifiedId:
        return to_qualified_id(table_name)

    def get_field_name(
        self, model: Optional[SupportsModelMetadata], key: str
    ) -> tuple[str, Optional[Column]]:
        "Maps a value key (logical or physical name) to a physical column name."

        if model is None:
            return key, None

        column = model.find_column(key)
        if column is None:
            return key, None
        return column.field_name, column

    def get_conflict_target(
        self, update_columns: list[str], model: SupportsModelMetadata
    ) -> list[str]:
        """
        Determines the columns of the `ON CONFLICT` clause.

        For each updated column in order, the first unique constraint that contains the column is selected. If no
        constraint contains any of the updated columns, unique indexes are scanned the same way. The primary key
        is used when neither matches, or when an updated column is part of the primary key.

        :param update_columns: Physical names of columns to update when a conflict occurs.
        :param model: Keys of the model.
        :raises ConfigurationError: Raised when no column is available to detect a conflict.
        """

        primary_keys = model.get_primary_key_columns()

        target: list[str] = []
        for groups in (
            model.get_unique_constraint_groups(),
            model.get_unique_index_groups(),
        ):
            for field in update_columns:
                group = next((g for g in groups if field in g), None)
                if group is not None:
                    target = list(group)
                    break
            if target:
                break

        if not target or any(field in primary_keys for field in update_columns):
            target = list(primary_keys)

        target = list(dict.fromkeys(target))
        if not target:
            raise ConfigurationError(
                "no primary key, unique constraint or unique index to detect a conflict on; "
                f"updated columns: {', '.join(update_columns) or '(none)'}"
            )

        LOGGER.debug("conflict target: %s", target)
        return target

    def get_returning_columns(
        self,
        model: Optional[SupportsModelMetadata],
        returning: Union[bool, list[str]],
    ) -> list[str]:
        "Returns the quoted column list of a RETURNING clause."

        fields: list[str] = []
        if isinstance(returning, list):
            fields.extend(
                quote_identifier(self.get_field_name(model, name)[0])
                for name in returning
            )
        elif model is not None:
            fields.extend(
                quote_identifier(column.field_name)
                for column in model.get_columns()
                if not column.is_virtual
            )

        if not fields:
            fields.append("*")
        return fields

    def get_value_transformer(
        self, column: Optional[Column]
    ) -> Optional[Callable[[Any], Any]]:
        "Returns a callable function object that transforms a value into the representation the column expects."

        if column is None:
            return None

        if is_wide_integer_type(column.data_type):
            type_name = str(column.data_type)
            return lambda value: encode_wide_integer(value, type_name)
        elif isinstance(column.data_type, (SqlJsonType, SqlGeographyType)):
            return json_document
        else:
            return None
