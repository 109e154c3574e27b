import logging
import re
import ssl
import types
import typing
from dataclasses import dataclass, field
from typing import Any, Optional

import asyncpg

from pycockroach import __version__
from pycockroach.base import (
    ConnectionLostError,
    DatabaseError,
    GeneratorOptions,
    InsertOptions,
    StatementKind,
    SynthesizedStatement,
    TableName,
    UpsertOptions,
    Values,
    get_major_version,
)
from pycockroach.connection import (
    DEFAULT_PORT,
    ConnectionParameters,
    ConnectionSSLMode,
    create_context,
)
from pycockroach.formation.object_types import Table
from pycockroach.model.data_types import SqlDataType, SqlIntegerType
from pycockroach.resultset import (
    InterpretedResult,
    InterpretOptions,
    RawResultSet,
    ResultInterpreter,
    TableDescription,
)

from .generator import CockroachGenerator

LOGGER = logging.getLogger("pycockroach.cockroachdb")

# PostgreSQL integer types whose values are exchanged as decimal strings
_INTEGER_TYPES: dict[str, int] = {"int2": 2, "int4": 4, "int8": 8}

_DOLLAR_TAG = re.compile(r"\$[A-Za-z_0-9]*\$")


def split_statements(script: str) -> list[str]:
    """
    Splits a script into individual SQL statements on semicolons.

    Semicolons inside string literals, quoted identifiers and dollar-quoted bodies do not terminate a statement.
    """

    statements: list[str] = []
    start = 0
    index = 0
    length = len(script)
    while index < length:
        char = script[index]
        if char == "'" or char == '"':
            end = script.find(char, index + 1)
            while end >= 0 and script.startswith(char, end + 1):
                end = script.find(char, end + 2)
            index = length if end < 0 else end + 1
        elif char == "$":
            match = _DOLLAR_TAG.match(script, index)
            if match is None:
                index += 1
            else:
                end = script.find(match.group(0), match.end())
                index = length if end < 0 else end + len(match.group(0))
        elif char == ";":
            statement = script[start:index].strip()
            if statement:
                statements.append(statement)
            index += 1
            start = index
        else:
            index += 1

    statement = script[start:].strip()
    if statement:
        statements.append(statement)
    return statements


def get_row_count(status: Optional[str]) -> Optional[int]:
    "Extracts the number of affected rows from a command status such as `INSERT 0 1` or `UPDATE 3`."

    if not status:
        return None
    count = status.rsplit(" ", 1)[-1]
    return int(count) if count.isdigit() else None


def parse_server_version(version: str) -> Optional[tuple[int, int, int]]:
    "Parses the version number from the output of `SELECT version()`, e.g. `CockroachDB CCL v23.1.11 (...)`."

    match = re.search(r"v(\d+)\.(\d+)\.(\d+)", version)
    if match is None:
        return None
    return int(match.group(1)), int(match.group(2)), int(match.group(3))


@dataclass
class CockroachOptions:
    """
    Options of a CockroachDB connection.

    :param generator: Options passed to the statement generator.
    :param telemetry: Whether to report use of this library to the server's feature counters.
    :param orm_name: Name of the ORM library that emits statements, reported with telemetry.
    :param orm_version: Version of the ORM library that emits statements, e.g. `6.37.1`.
    """

    generator: GeneratorOptions = field(default_factory=GeneratorOptions)
    telemetry: bool = True
    orm_name: Optional[str] = None
    orm_version: Optional[str] = None


def get_feature_counters(options: CockroachOptions) -> list[str]:
    "Names of the server feature counters that record use of this library."

    counters: list[str] = []
    if options.orm_name is not None and options.orm_version is not None:
        major = get_major_version(options.orm_version)
        counters.append(f"{options.orm_name} v{major}")
    counters.append(f"pycockroach {__version__}")
    return counters


class CockroachConnection:
    "An active connection to a CockroachDB server."

    generator: CockroachGenerator
    params: ConnectionParameters
    options: CockroachOptions
    native: asyncpg.Connection
    server_version: Optional[tuple[int, int, int]]

    def __init__(
        self,
        generator: CockroachGenerator,
        params: ConnectionParameters,
        options: Optional[CockroachOptions] = None,
    ) -> None:
        self.generator = generator
        self.params = params
        self.options = options if options is not None else CockroachOptions()
        self.server_version = None

    async def __aenter__(self) -> "CockroachContext":
        return await self.open()

    async def __aexit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[types.TracebackType],
    ) -> None:
        await self.close()

    async def open(self) -> "CockroachContext":
        LOGGER.info("connecting to %s", self.params)

        ssl_mode = self.params.ssl
        if ssl_mode is None or ssl_mode is ConnectionSSLMode.disable:
            return await self._open()
        elif ssl_mode is ConnectionSSLMode.prefer:
            try:
                return await self._open(create_context(ssl_mode))
            except ConnectionError:
                return await self._open()
        elif ssl_mode is ConnectionSSLMode.allow:
            try:
                return await self._open()
            except ConnectionError:
                return await self._open(create_context(ssl_mode))
        else:
            return await self._open(create_context(ssl_mode))

    async def _open(self, ctx: Optional[ssl.SSLContext] = None) -> "CockroachContext":
        conn: asyncpg.Connection = await asyncpg.connect(
            host=self.params.host,
            port=self.params.port or DEFAULT_PORT,
            user=self.params.username,
            password=self.params.password,
            database=self.params.database,
            ssl=ctx,
        )

        # keep integers in text form such that wide integers are never approximated
        for type_name in _INTEGER_TYPES:
            await conn.set_type_codec(
                type_name,
                encoder=str,
                decoder=str,
                schema="pg_catalog",
                format="text",
            )

        self.native = conn

        version_string: str = await conn.fetchval("SELECT version();")
        self.server_version = parse_server_version(version_string)
        if self.server_version is not None:
            LOGGER.info("CockroachDB version %d.%d.%d", *self.server_version)
        else:
            LOGGER.warning("unrecognized server version: %s", version_string)

        if self.options.telemetry:
            await self._record_telemetry()

        return CockroachContext(self)

    async def _record_telemetry(self) -> None:
        if self.server_version is None or self.server_version[:2] < (21, 1):
            return

        try:
            for counter in get_feature_counters(self.options):
                await self.native.execute(
                    "SELECT crdb_internal.increment_feature_counter($1);", counter
                )
        except asyncpg.PostgresError as e:
            LOGGER.info("could not record telemetry: %s", e)

    async def close(self) -> None:
        await self.native.close()


class CockroachContext:
    "Context object returned by a CockroachDB connection object."

    connection: CockroachConnection
    interpreter: ResultInterpreter
    invalid: bool

    def __init__(self, connection: CockroachConnection) -> None:
        self.connection = connection
        self.interpreter = ResultInterpreter()
        self.invalid = False

    @property
    def native_connection(self) -> asyncpg.Connection:
        return self.connection.native

    @property
    def generator(self) -> CockroachGenerator:
        return self.connection.generator

    def invalidate(self) -> None:
        "Marks the connection as unusable, e.g. after the server has reset it."

        if not self.invalid:
            LOGGER.warning("connection to %s marked invalid", self.connection.params)
        self.invalid = True

    async def execute(
        self, sql: str, parameters: Optional[tuple[Any, ...]] = None
    ) -> RawResultSet:
        """
        Runs one or more SQL statements, and returns the rows of the last statement that produces a result-set.

        :param sql: SQL text. Multiple statements are permitted only without bind parameters.
        :param parameters: Positional bind parameters.
        """

        if self.invalid:
            raise ConnectionLostError(
                "connection has been invalidated",
                code="ECONNRESET",
                sql=sql,
                parameters=parameters,
            )

        statements = [sql] if parameters else split_statements(sql)
        if not statements:
            raise ValueError("empty statement")

        result = RawResultSet()
        try:
            for statement in statements:
                prepared = await self.native_connection.prepare(statement)
                records: list[asyncpg.Record] = await prepared.fetch(
                    *(parameters or ())
                )
                attributes = prepared.get_attributes()
                row_count = get_row_count(prepared.get_statusmsg())
                if attributes or len(statements) == 1:
                    result = RawResultSet(
                        rows=[dict(record.items()) for record in records],
                        row_count=row_count,
                        column_types=self._get_column_types(attributes),
                    )
        except asyncpg.ConnectionDoesNotExistError as e:
            raise ConnectionResetError(str(e)) from e

        return result

    def _get_column_types(self, attributes: Any) -> dict[str, SqlDataType]:
        column_types: dict[str, SqlDataType] = {}
        for attribute in attributes:
            width = _INTEGER_TYPES.get(attribute.type.name)
            if width is not None:
                column_types[attribute.name] = SqlIntegerType(width)
        return column_types

    async def run(
        self,
        statement: SynthesizedStatement,
        kind: StatementKind,
        options: Optional[InterpretOptions] = None,
    ) -> InterpretedResult:
        "Executes a statement and shapes its result-set based on the kind of statement."

        return await self.interpreter.run(self, statement, kind, options)

    async def insert(
        self,
        table: Table,
        values: Values,
        options: Optional[InsertOptions] = None,
        *,
        instance: Any = None,
    ) -> InterpretedResult:
        "Inserts a single row, and merges the returned row into an existing record if given."

        statement = self.generator.get_insert_stmt(table.name, values, table, options)
        return await self.run(
            statement,
            StatementKind.INSERT,
            InterpretOptions(model=table, instance=instance, plain=True),
        )

    async def upsert(
        self,
        table: Table,
        insert_values: Values,
        update_values: Values,
        options: Optional[UpsertOptions] = None,
        *,
        instance: Any = None,
    ) -> InterpretedResult:
        "Inserts a single row or updates the row it conflicts with."

        statement = self.generator.get_upsert_stmt(
            table.name, insert_values, update_values, table, options
        )
        return await self.run(
            statement,
            StatementKind.UPSERT,
            InterpretOptions(model=table, instance=instance, plain=True),
        )

    async def describe_table(self, table_name: TableName) -> TableDescription:
        statement = self.generator.get_describe_table_stmt(table_name)
        return typing.cast(
            TableDescription, await self.run(statement, StatementKind.DESCRIBE)
        )

    async def drop_schema(self, schema: str) -> None:
        "Drops a schema with all objects it contains. System schemas are left intact."

        statement = self.generator.get_drop_schema_stmt(schema)
        if statement is not None:
            await self.run(statement, StatementKind.RAW)

    async def remove_constraint(self, table_name: TableName, constraint: str) -> None:
        "Removes a constraint, or the unique index that backs it."

        statement = self.generator.get_remove_constraint_stmt(table_name, constraint)
        try:
            await self.run(statement, StatementKind.RAW)
        except DatabaseError as e:
            if "use DROP INDEX CASCADE instead" not in e.message:
                raise

            LOGGER.info("dropping unique index %s with dependents", constraint)
            await self.run(
                self.generator.get_drop_index_stmt(table_name, constraint),
                StatementKind.RAW,
            )
