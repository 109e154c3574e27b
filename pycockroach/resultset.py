"""
pycockroach: CockroachDB compatibility layer for PostgreSQL code generation.

This module shapes the raw result-set of a statement into the value the caller expects, based on the kind of
statement that produced it.
"""

import errno
import logging
from collections.abc import MutableMapping
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, Union

from .base import (
    SENTINEL_COLUMN,
    UNIQUE_VIOLATION,
    ConnectionLostError,
    DatabaseError,
    StatementKind,
    SynthesizedStatement,
    UniqueConstraintError,
)
from .formation.object_types import SupportsModelMetadata
from .model.data_types import SqlDataType, SqlIntegerType, decode_wide_integer

LOGGER = logging.getLogger("pycockroach")

Row = dict[str, Any]


@dataclass
class RawResultSet:
    """
    Rows and row count as returned by a transport.

    :param rows: Result rows as column name to value maps, in column order.
    :param row_count: Number of rows affected, as reported in the command status.
    :param column_types: SQL data type of result columns, where known to the transport.
    """

    rows: list[Row] = field(default_factory=list)
    row_count: Union[int, str, None] = None
    column_types: dict[str, SqlDataType] = field(default_factory=dict)


@dataclass
class SingleRecord:
    "The first row of a result-set, or `None` if the result-set is empty."

    record: Optional[Row]


@dataclass
class RecordList:
    "All rows of a result-set, with the raw result-set attached when requested."

    records: list[Row]
    raw: Optional[RawResultSet] = None


@dataclass
class AffectedCount:
    "Number of rows a bulk statement affected."

    count: int


@dataclass
class UpdatedInPlace:
    """
    An existing record into which the returned row has been merged.

    :param instance: The record passed by the caller, after update.
    :param created: Whether an upsert inserted a new row; `None` when the database does not report this.
    :param row_count: Number of rows affected by an insert or update.
    """

    instance: Any
    created: Optional[bool] = None
    row_count: Optional[int] = None


@dataclass
class ColumnDescription:
    """
    Properties of a table column as reported by the database.

    :param type: Upper-case SQL type name, e.g. `CHARACTER VARYING(255)`.
    :param allow_null: True if the column accepts `NULL`.
    :param default_value: Default expression, stripped of quotes and type casts.
    :param primary_key: True if the column is part of the primary key.
    :param special: Labels of an enumeration type.
    """

    type: str
    allow_null: bool
    default_value: Any
    primary_key: bool
    special: list[str] = field(default_factory=list)


@dataclass
class TableDescription:
    "Columns of a table keyed by column name, in ordinal position."

    columns: dict[str, ColumnDescription]


InterpretedResult = Union[
    SingleRecord, RecordList, AffectedCount, UpdatedInPlace, TableDescription
]


@dataclass
class InterpretOptions:
    """
    Context needed to shape a result-set.

    :param model: Model metadata to map physical column names and to identify wide-integer columns.
    :param instance: An existing record (a mutable mapping or an object) to merge the returned row into.
    :param returning: Whether a bulk update requested rows to be returned.
    :param plain: Whether the caller expects a single record rather than a list.
    :param raw: Whether the raw result-set is to be returned alongside the rows.
    """

    model: Optional[SupportsModelMetadata] = None
    instance: Any = None
    returning: Union[bool, list[str]] = False
    plain: bool = False
    raw: bool = False


class SupportsExecute(Protocol):
    "A transport that runs SQL statements."

    async def execute(
        self, sql: str, parameters: Optional[tuple[Any, ...]] = None
    ) -> RawResultSet:
        "Runs a statement with positional bind parameters."
        ...

    def invalidate(self) -> None:
        "Marks the connection as unusable for further statements."
        ...


def from_array(text: Union[str, list[Any], None]) -> list[str]:
    """
    Parses a PostgreSQL array literal such as `{a,b,"c d"}` into a list of strings.

    Lists are returned as-is, allowing for drivers that decode arrays natively.
    """

    if text is None:
        return []
    if isinstance(text, list):
        return [str(item) for item in text]

    body = text.strip()
    if body.startswith("{") and body.endswith("}"):
        body = body[1:-1]
    if not body:
        return []
    return [item.strip().strip('"') for item in body.split(",")]


def is_connection_reset(exc: BaseException) -> bool:
    "True if the exception signals that the peer has reset the connection."

    if isinstance(exc, ConnectionResetError):
        return True
    if isinstance(exc, OSError) and exc.errno == errno.ECONNRESET:
        return True
    return getattr(exc, "code", None) == "ECONNRESET"


def wrap_error(exc: Exception, statement: SynthesizedStatement) -> DatabaseError:
    "Converts a transport error into a database error that carries the statement."

    if isinstance(exc, DatabaseError):
        if exc.sql is None:
            exc.sql = statement.sql
            exc.parameters = statement.parameters
        return exc

    message = str(exc) or type(exc).__name__
    if is_connection_reset(exc):
        return ConnectionLostError(
            message,
            code="ECONNRESET",
            sql=statement.sql,
            parameters=statement.parameters,
        )

    code = getattr(exc, "sqlstate", None) or getattr(exc, "code", None)
    if code == UNIQUE_VIOLATION:
        return UniqueConstraintError(
            getattr(exc, "detail", None),
            message=message,
            sql=statement.sql,
            parameters=statement.parameters,
        )

    return DatabaseError(
        message,
        code=str(code) if code is not None else None,
        sql=statement.sql,
        parameters=statement.parameters,
    )


class ResultInterpreter:
    "Shapes the raw result-set of a statement based on the kind of statement."

    def interpret(
        self,
        result: RawResultSet,
        kind: StatementKind,
        options: Optional[InterpretOptions] = None,
    ) -> InterpretedResult:
        """
        Converts a raw result-set into the value the caller expects.

        :param result: Rows and row count returned by the transport.
        :param kind: The kind of statement that produced the result-set.
        :param options: Context that shapes the result.
        :raises UniqueConstraintError: Raised when the result-set reports a captured unique constraint violation.
        """

        if options is None:
            options = InterpretOptions()

        rows = self._check_sentinel(result.rows)
        rows = self.decode_rows(rows, result, options.model)

        if kind is StatementKind.DESCRIBE:
            return self.describe(rows)

        if kind in (StatementKind.INSERT, StatementKind.UPDATE, StatementKind.UPSERT):
            if options.instance is not None:
                if rows:
                    self.merge(options.instance, rows[0], options.model)
                if kind is StatementKind.UPSERT:
                    return UpdatedInPlace(options.instance, created=None)
                else:
                    return UpdatedInPlace(
                        options.instance, row_count=self.get_row_count(result)
                    )
            elif options.plain:
                return SingleRecord(rows[0] if rows else None)
            else:
                return RecordList(rows)

        if kind is StatementKind.BULK_UPDATE:
            if options.returning:
                return RecordList(rows)
            else:
                return AffectedCount(self.get_row_count(result))

        if kind is StatementKind.BULK_DELETE:
            return AffectedCount(self.get_row_count(result))

        if kind is StatementKind.RAW or options.raw:
            return RecordList(rows, raw=result)

        if options.plain:
            return SingleRecord(rows[0] if rows else None)

        return RecordList(rows)

    async def run(
        self,
        transport: SupportsExecute,
        statement: SynthesizedStatement,
        kind: StatementKind,
        options: Optional[InterpretOptions] = None,
    ) -> InterpretedResult:
        """
        Executes a statement with a transport and interprets its result-set.

        :raises ConnectionLostError: Raised after the transport is invalidated when the connection is reset.
        :raises DatabaseError: Raised when the transport fails; carries the SQL text and bind parameters.
        """

        LOGGER.debug("executing statement: %s", statement.sql)
        try:
            result = await transport.execute(statement.sql, statement.parameters)
        except Exception as e:
            if is_connection_reset(e):
                LOGGER.warning("connection reset; invalidating connection")
                transport.invalidate()
            raise wrap_error(e, statement) from e

        LOGGER.debug("statement returned %d row(s)", len(result.rows))
        try:
            return self.interpret(result, kind, options)
        except DatabaseError as e:
            # captured violations carry the statement too
            raise wrap_error(e, statement)

    def get_row_count(self, result: RawResultSet) -> int:
        if result.row_count is None:
            return len(result.rows)
        return int(str(result.row_count), 10)

    def decode_rows(
        self,
        rows: list[Row],
        result: RawResultSet,
        model: Optional[SupportsModelMetadata],
    ) -> list[Row]:
        "Decodes all values of integer columns, which the transport passes as decimal strings."

        integer_columns = {
            name
            for name, data_type in result.column_types.items()
            if isinstance(data_type, SqlIntegerType)
        }
        if model is not None:
            integer_columns.update(
                column.field_name
                for column in model.get_columns()
                if isinstance(column.data_type, SqlIntegerType)
            )

        if not integer_columns:
            return rows

        return [
            {
                key: (
                    decode_wide_integer(value)
                    if key in integer_columns and value is not None
                    else value
                )
                for key, value in row.items()
            }
            for row in rows
        ]

    def merge(
        self, instance: Any, row: Row, model: Optional[SupportsModelMetadata]
    ) -> None:
        "Writes the values of a returned row into an existing record."

        for key, value in row.items():
            name = key
            if model is not None:
                column = model.find_column(key)
                if column is not None:
                    name = column.logical_name

            if isinstance(instance, MutableMapping):
                instance[name] = value
            else:
                setattr(instance, name, value)

    def describe(self, rows: list[Row]) -> TableDescription:
        "Interprets the result-set of a column description query."

        columns: dict[str, ColumnDescription] = {}
        for row in rows:
            data_type = str(row["Type"]).upper()
            default_value: Any = row.get("Default")

            if data_type == "BOOLEAN":
                default_value = {"false": False, "true": True}.get(
                    str(default_value)
                )
            if isinstance(default_value, str):
                default_value = default_value.replace("'", "")
                if "::" in default_value:
                    value, cast = default_value.split("::", 1)
                    if cast.lower() != "regclass)":
                        default_value = value

            columns[row["Field"]] = ColumnDescription(
                type=data_type,
                allow_null=row.get("Null") == "YES",
                default_value=default_value,
                primary_key=row.get("Constraint") == "PRIMARY KEY",
                special=from_array(row.get("special")),
            )
        return TableDescription(columns)

    def _check_sentinel(self, rows: list[Row]) -> list[Row]:
        if not rows or SENTINEL_COLUMN not in rows[0]:
            return rows

        detail = rows[0][SENTINEL_COLUMN]
        if detail is not None:
            raise UniqueConstraintError(detail)

        return [
            {key: value for key, value in row.items() if key != SENTINEL_COLUMN}
            for row in rows
        ]
