import enum
import logging
from typing import Any, Optional, Protocol

from pycockroach.base import (
    BaseGenerator,
    GeneratorOptions,
    InsertOptions,
    SynthesizedStatement,
    TableName,
    UnsupportedOperationError,
    UpsertOptions,
    Values,
    Verbatim,
)
from pycockroach.formation.object_types import Column, SupportsModelMetadata
from pycockroach.model.data_types import (
    SqlGeographyType,
    SqlJsonType,
    constant,
    encode_wide_integer,
    is_wide_integer_type,
    json_document,
    quote,
)
from pycockroach.model.id_types import (
    LocalId,
    SupportsQualifiedId,
    quote_identifier,
)
from pycockroach.model.key_types import DefaultTag
from pycockroach.util.typing import override

LOGGER = logging.getLogger("pycockroach.cockroachdb")

ColumnValue = tuple[str, Optional[Column], Any]


class SupportsExceptionWrapper(Protocol):
    "Wraps an insert statement such that a unique constraint violation is reported in the result-set."

    def wrap(
        self,
        table_id: SupportsQualifiedId,
        statement: str,
        model: Optional[SupportsModelMetadata],
        options: InsertOptions,
    ) -> str: ...


class CockroachGenerator(BaseGenerator):
    "Generator for CockroachDB, which requires an explicit conflict target in `ON CONFLICT`."

    exception_wrapper: Optional[SupportsExceptionWrapper]

    def __init__(
        self,
        options: Optional[GeneratorOptions] = None,
        exception_wrapper: Optional[SupportsExceptionWrapper] = None,
    ) -> None:
        super().__init__(options)
        self.exception_wrapper = exception_wrapper

    @override
    def placeholder(self, index: int) -> str:
        return f"${index}"

    def get_bind_expr(self, column: Optional[Column], index: int) -> str:
        "Returns the expression that references a bind parameter in a `VALUES` list."

        placeholder = self.placeholder(index)
        if column is not None and isinstance(column.data_type, SqlGeographyType):
            return f"ST_GeomFromGeoJSON({placeholder}::json)::geography"
        else:
            return placeholder

    def get_literal(self, value: Any, column: Optional[Column]) -> str:
        "Returns the inline SQL representation of a value."

        if isinstance(value, Verbatim):
            return value.sql
        if value is None:
            return "NULL"
        if isinstance(value, enum.Enum):
            value = value.value

        if column is not None:
            if is_wide_integer_type(column.data_type):
                return encode_wide_integer(value, str(column.data_type))
            elif isinstance(column.data_type, SqlGeographyType):
                return f"ST_GeomFromGeoJSON({quote(json_document(value))})::geography"
            elif isinstance(column.data_type, SqlJsonType):
                return quote(json_document(value))

        return constant(value)

    def get_column_values(
        self,
        values: Values,
        model: Optional[SupportsModelMetadata],
        options: InsertOptions,
    ) -> list[ColumnValue]:
        "Maps insert values to physical columns, substituting `DEFAULT` for missing generated values."

        items: list[ColumnValue] = []
        for key, value in values.items():
            field_name, column = self.get_field_name(model, key)
            if column is not None and column.is_virtual:
                continue
            if value is None and options.omit_null:
                continue

            if (
                column is not None
                and column.identity
                and (value is None or value == "")
            ):
                if not self.options.default_in_values:
                    continue
                value = DefaultTag()

            items.append((field_name, column, value))
        return items

    def get_update_columns(
        self, values: Values, model: Optional[SupportsModelMetadata]
    ) -> list[str]:
        "Physical names of columns to update when a conflict occurs."

        fields: list[str] = []
        for key in values.keys():
            field_name, column = self.get_field_name(model, key)
            if column is not None and column.is_virtual:
                continue
            fields.append(field_name)
        return list(dict.fromkeys(fields))

    def get_values_clause(
        self, items: list[ColumnValue], bind: bool
    ) -> tuple[str, Optional[tuple[Any, ...]]]:
        """
        Builds the column list and value list of an insert statement.

        :param items: Physical column names, column metadata and values.
        :param bind: Whether to emit bind parameters instead of inline literals.
        :returns: A SQL fragment, and the bind parameters (or `None` if values are inlined).
        """

        parameters: list[Any] = []
        exprs: list[str] = []
        for _, column, value in items:
            if isinstance(value, DefaultTag):
                exprs.append("DEFAULT")
            elif isinstance(value, Verbatim):
                exprs.append(value.sql)
            elif bind:
                if isinstance(value, enum.Enum):
                    value = value.value
                transformer = self.get_value_transformer(column)
                if transformer is not None and value is not None:
                    value = transformer(value)
                parameters.append(value)
                exprs.append(self.get_bind_expr(column, len(parameters)))
            else:
                exprs.append(self.get_literal(value, column))

        if items:
            column_list = ",".join(quote_identifier(name) for name, _, _ in items)
            value_list = ",".join(exprs)
            clause = f"({column_list}) VALUES ({value_list})"
        else:
            clause = "DEFAULT VALUES"

        return clause, tuple(parameters) if bind else None

    def get_conflict_clause(
        self, update_columns: list[str], model: SupportsModelMetadata
    ) -> str:
        target = ",".join(
            quote_identifier(name)
            for name in self.get_conflict_target(update_columns, model)
        )
        if update_columns:
            assignments = ",".join(
                f"{quote_identifier(name)}=EXCLUDED.{quote_identifier(name)}"
                for name in update_columns
            )
            return f"ON CONFLICT ({target}) DO UPDATE SET {assignments}"
        else:
            return f"ON CONFLICT ({target}) DO NOTHING"

    def get_returning_clause(
        self, model: Optional[SupportsModelMetadata], options: InsertOptions
    ) -> Optional[str]:
        if not options.returning:
            return None

        columns = ",".join(self.get_returning_columns(model, options.returning))
        return f"RETURNING {columns}"

    def use_binding(self, options: InsertOptions) -> bool:
        return options.bind and not options.exception

    def wrap_exception(
        self,
        table_id: SupportsQualifiedId,
        statement: str,
        model: Optional[SupportsModelMetadata],
        options: InsertOptions,
    ) -> str:
        if self.exception_wrapper is None:
            raise UnsupportedOperationError(
                "capturing unique constraint violations requires an exception wrapper"
            )

        return self.exception_wrapper.wrap(table_id, statement, model, options)

    @override
    def get_insert_stmt(
        self,
        table_name: TableName,
        values: Values,
        model: Optional[SupportsModelMetadata],
        options: Optional[InsertOptions] = None,
    ) -> SynthesizedStatement:
        if options is None:
            options = InsertOptions()

        table_id = self.get_table_id(table_name)
        bind = self.use_binding(options)
        items = self.get_column_values(values, model, options)
        values_clause, parameters = self.get_values_clause(items, bind)

        parts: list[str] = [f"INSERT INTO {table_id.quoted_id} {values_clause}"]
        if options.ignore_duplicates:
            parts.append("ON CONFLICT DO NOTHING")

        return self._finalize(table_id, parts, parameters, model, options)

    @override
    def get_upsert_stmt(
        self,
        table_name: TableName,
        insert_values: Values,
        update_values: Values,
        model: SupportsModelMetadata,
        options: Optional[UpsertOptions] = None,
    ) -> SynthesizedStatement:
        if options is None:
            options = UpsertOptions()

        table_id = self.get_table_id(table_name)
        bind = self.use_binding(options)
        items = self.get_column_values(insert_values, model, options)
        values_clause, parameters = self.get_values_clause(items, bind)
        update_columns = self.get_update_columns(update_values, model)

        parts: list[str] = [
            f"INSERT INTO {table_id.quoted_id} {values_clause}",
            self.get_conflict_clause(update_columns, model),
        ]

        return self._finalize(table_id, parts, parameters, model, options)

    def _finalize(
        self,
        table_id: SupportsQualifiedId,
        parts: list[str],
        parameters: Optional[tuple[Any, ...]],
        model: Optional[SupportsModelMetadata],
        options: InsertOptions,
    ) -> SynthesizedStatement:
        if options.exception:
            sql = self.wrap_exception(table_id, " ".join(parts), model, options)
        else:
            returning = self.get_returning_clause(model, options)
            if returning is not None:
                parts.append(returning)
            sql = " ".join(parts)

        sql = f"{sql};"
        LOGGER.debug("synthesized statement: %s", sql)
        return SynthesizedStatement(sql, parameters)

    def get_describe_table_stmt(self, table_name: TableName) -> SynthesizedStatement:
        "Returns a query that lists the columns of a table with their type, nullability, default and key role."

        table_id = self.get_table_id(table_name)
        schema = table_id.scope_id or "public"
        sql = (
            "SELECT "
            "pk.constraint_type AS \"Constraint\", "
            "c.column_name AS \"Field\", "
            "c.column_default AS \"Default\", "
            "c.is_nullable AS \"Null\", "
            "(CASE WHEN c.udt_name = 'hstore' THEN c.udt_name "
            "ELSE c.data_type END) || "
            "(CASE WHEN c.character_maximum_length IS NOT NULL "
            "THEN '(' || CAST(c.character_maximum_length AS STRING) || ')' ELSE '' END) AS \"Type\", "
            "(SELECT array_agg(e.enumlabel) FROM pg_catalog.pg_type t "
            "JOIN pg_catalog.pg_enum e ON t.oid = e.enumtypid "
            "WHERE t.typname = c.udt_name) AS \"special\" "
            "FROM information_schema.columns c "
            "LEFT JOIN (SELECT tc.table_schema, tc.table_name, cu.column_name, tc.constraint_type "
            "FROM information_schema.table_constraints tc "
            "JOIN information_schema.key_column_usage cu "
            "ON tc.table_schema = cu.table_schema AND tc.table_name = cu.table_name "
            "AND tc.constraint_name = cu.constraint_name "
            "AND tc.constraint_type = 'PRIMARY KEY') pk "
            "ON pk.table_schema = c.table_schema AND pk.table_name = c.table_name "
            "AND pk.column_name = c.column_name "
            f"WHERE c.table_name = {quote(table_id.local_id)} "
            f"AND c.table_schema = {quote(schema)} "
            "ORDER BY c.ordinal_position;"
        )
        return SynthesizedStatement(sql)

    def get_drop_schema_stmt(self, schema: str) -> Optional[SynthesizedStatement]:
        "Returns a statement that drops a schema, or `None` if the schema is managed by the database."

        if schema == "crdb_internal":
            LOGGER.warning("skipping system schema %s", schema)
            return None

        return SynthesizedStatement(
            f"DROP SCHEMA IF EXISTS {LocalId(schema)} CASCADE;"
        )

    def get_remove_constraint_stmt(
        self, table_name: TableName, constraint: str
    ) -> SynthesizedStatement:
        table_id = self.get_table_id(table_name)
        return SynthesizedStatement(
            f"ALTER TABLE {table_id.quoted_id} DROP CONSTRAINT {LocalId(constraint)};"
        )

    def get_drop_index_stmt(
        self, table_name: TableName, index: str
    ) -> SynthesizedStatement:
        "Returns a statement that drops the unique index backing a constraint, with its dependents."

        table_id = self.get_table_id(table_name)
        return SynthesizedStatement(
            f"DROP INDEX {table_id.quoted_id}@{LocalId(index)} CASCADE;"
        )
