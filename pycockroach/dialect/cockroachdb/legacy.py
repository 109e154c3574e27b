"""
Legacy upsert path for ORM versions that cannot consume bind parameters in upsert statements.

This module can be removed together with support for the legacy path.
"""

import logging
import uuid
from typing import Optional

from pycockroach.base import (
    GeneratorOptions,
    InsertOptions,
    SENTINEL_COLUMN,
    SynthesizedStatement,
    TableName,
    UnsupportedOperationError,
    UpsertOptions,
    Values,
)
from pycockroach.formation.object_types import SupportsModelMetadata
from pycockroach.model.id_types import SupportsQualifiedId, quote_identifier
from pycockroach.util.typing import override

from .generator import CockroachGenerator

LOGGER = logging.getLogger("pycockroach.cockroachdb")


class ExceptionWrapper:
    """
    Wraps an insert statement into a session-temporary function that captures unique constraint violations.

    The function returns the inserted row and the detail text of a captured violation in the column
    `pycockroach_caught_exception`. Each call gets a fresh function name and dollar-quote delimiter such that
    concurrent callers sharing a session never overwrite each other's function.
    """

    def wrap(
        self,
        table_id: SupportsQualifiedId,
        statement: str,
        model: Optional[SupportsModelMetadata],
        options: InsertOptions,
    ) -> str:
        tag = uuid.uuid4().hex
        function_name = f"pg_temp.pycockroach_{tag}"
        delimiter = f"$func_{tag}$"
        LOGGER.debug("capturing unique violations in %s", function_name)

        if isinstance(options.returning, list):
            response = ", ".join(
                f"(t.response).{quote_identifier(self._get_field_name(model, name))}"
                for name in options.returning
            )
        else:
            response = "(t.response).*"

        return (
            f"CREATE OR REPLACE FUNCTION {function_name}"
            f"(OUT response {table_id.quoted_id}, OUT {SENTINEL_COLUMN} text) "
            f"RETURNS RECORD AS {delimiter} "
            f"BEGIN {statement} RETURNING * INTO response; "
            "EXCEPTION WHEN unique_violation THEN "
            f"GET STACKED DIAGNOSTICS {SENTINEL_COLUMN} = PG_EXCEPTION_DETAIL; "
            f"END {delimiter} LANGUAGE plpgsql; "
            f"SELECT {response}, t.{SENTINEL_COLUMN} FROM {function_name}() AS t; "
            f"DROP FUNCTION IF EXISTS {function_name}()"
        )

    def _get_field_name(self, model: Optional[SupportsModelMetadata], name: str) -> str:
        if model is not None:
            column = model.find_column(name)
            if column is not None:
                return column.field_name
        return name


class LegacyGenerator(CockroachGenerator):
    """
    Generator for the legacy upsert path.

    Values are always inlined as SQL literals, and upsert statements cannot return rows.
    """

    def __init__(self, options: Optional[GeneratorOptions] = None) -> None:
        super().__init__(options, ExceptionWrapper())

    @override
    def use_binding(self, options: InsertOptions) -> bool:
        return False

    @override
    def get_upsert_stmt(
        self,
        table_name: TableName,
        insert_values: Values,
        update_values: Values,
        model: SupportsModelMetadata,
        options: Optional[UpsertOptions] = None,
    ) -> SynthesizedStatement:
        if options is not None and options.returning:
            raise UnsupportedOperationError(
                "RETURNING is not supported with INSERT .. ON CONFLICT on the legacy upsert path; "
                "see https://github.com/cockroachdb/cockroach/issues/6637"
            )

        return super().get_upsert_stmt(
            table_name, insert_values, update_values, model, options
        )
