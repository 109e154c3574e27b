import unittest

from pycockroach.dialect.cockroachdb.generator import CockroachGenerator
from pycockroach.formation.inspection import dataclass_to_table
from pycockroach.formation.object_types import Column, MappingError, Table
from pycockroach.model.data_types import (
    SqlIntegerType,
    SqlJsonType,
    SqlVariableCharacterType,
    SqlVirtualType,
)
from pycockroach.model.id_types import LocalId, QualifiedId
from tests import tables


class TestInspection(unittest.TestCase):
    def test_columns(self) -> None:
        table = dataclass_to_table(tables.Account, namespace="app")
        self.assertEqual(table.name, QualifiedId("app", "Account"))
        self.assertEqual(
            list(table.columns.keys()),
            [
                "id",
                "email_address",
                "state",
                "balance",
                "rank",
                "score",
                "settings",
                "created_at",
                "display_name",
            ],
        )

        id_column = table.columns["id"]
        self.assertTrue(id_column.identity)
        self.assertEqual(id_column.data_type, SqlIntegerType(8))
        self.assertEqual(table.get_primary_key_columns(), ["id"])

        email = table.columns["email_address"]
        self.assertEqual(email.logical_name, "email")
        self.assertEqual(email.data_type, SqlVariableCharacterType(255))
        self.assertFalse(email.nullable)

        self.assertEqual(table.columns["state"].data_type, SqlVariableCharacterType())
        self.assertEqual(table.columns["balance"].data_type.width, 8)  # type: ignore
        self.assertEqual(table.columns["rank"].data_type.width, 2)  # type: ignore
        self.assertEqual(table.columns["score"].data_type.width, 4)  # type: ignore
        self.assertTrue(table.columns["score"].nullable)
        self.assertEqual(table.columns["settings"].data_type, SqlJsonType())
        self.assertIsInstance(table.columns["display_name"].data_type, SqlVirtualType)

    def test_constraints(self) -> None:
        table = dataclass_to_table(tables.Account)
        self.assertEqual(table.get_unique_constraint_groups(), [["email_address"]])
        self.assertEqual(table.get_unique_index_groups(), [])
        self.assertEqual(
            [column.field_name for column in table.get_persisted_columns()],
            [
                "id",
                "email_address",
                "state",
                "balance",
                "rank",
                "score",
                "settings",
                "created_at",
            ],
        )

    def test_upsert_from_dataclass(self) -> None:
        table = dataclass_to_table(tables.User)
        statement = CockroachGenerator().get_upsert_stmt(
            table.name, {"id": 1, "name": "A"}, {"name": "B"}, table
        )
        self.assertEqual(
            statement.sql,
            'INSERT INTO "User" ("id","name") VALUES ($1,$2) '
            'ON CONFLICT ("id") DO UPDATE SET "name"=EXCLUDED."name";',
        )

        table = dataclass_to_table(tables.Account)
        statement = CockroachGenerator().get_upsert_stmt(
            table.name,
            {"id": None, "email": "a@b.c", "display_name": "A"},
            {"email": "a@b.c"},
            table,
        )
        self.assertEqual(
            statement.sql,
            'INSERT INTO "Account" ("id","email_address") VALUES (DEFAULT,$1) '
            'ON CONFLICT ("email_address") DO UPDATE SET "email_address"=EXCLUDED."email_address";',
        )

    def test_create_table(self) -> None:
        self.assertEqual(
            str(tables.users_table()),
            'CREATE TABLE "users" (\n'
            '"id" bigint NOT NULL,\n'
            '"name" text,\n'
            'PRIMARY KEY ("id")\n'
            ");",
        )

    def test_not_a_dataclass(self) -> None:
        with self.assertRaises(TypeError):
            dataclass_to_table(int)  # type: ignore

    def test_missing_primary_key_column(self) -> None:
        with self.assertRaises(MappingError):
            Table(
                QualifiedId(None, "t"),
                [Column(LocalId("a"), SqlIntegerType(8))],
                primary_key=(LocalId("b"),),
            )


if __name__ == "__main__":
    unittest.main()
