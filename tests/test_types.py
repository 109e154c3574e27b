import datetime
import decimal
import unittest
import uuid

from pycockroach.model.data_types import (
    MAX_SAFE_INTEGER,
    SqlIntegerType,
    SqlJsonType,
    ValidationError,
    WideInteger,
    constant,
    decode_wide_integer,
    encode_wide_integer,
    is_wide_integer_type,
    json_document,
)


class TestWideInteger(unittest.TestCase):
    def test_encode(self) -> None:
        self.assertEqual(encode_wide_integer(42), "42")
        self.assertEqual(encode_wide_integer(-42), "-42")
        self.assertEqual(encode_wide_integer("42"), "42")
        self.assertEqual(encode_wide_integer("+42"), "42")
        self.assertEqual(encode_wide_integer("-0042"), "-42")
        self.assertEqual(encode_wide_integer("000"), "0")
        self.assertEqual(encode_wide_integer("-0"), "0")
        self.assertEqual(
            encode_wide_integer("9223372036854775807"), "9223372036854775807"
        )
        self.assertEqual(encode_wide_integer(2**70), str(2**70))

    def test_encode_rejects(self) -> None:
        for value in [
            "102.3",
            "'",
            "",
            " 1",
            "1 ",
            "1 2",
            "1e3",
            "0x1F",
            "--1",
            "+",
            "1; DROP TABLE users",
            "１２",
        ]:
            with self.subTest(value=value):
                with self.assertRaises(ValidationError):
                    encode_wide_integer(value)

        for other in [True, 1.5, None, decimal.Decimal("1")]:
            with self.subTest(value=other):
                with self.assertRaises(ValidationError):
                    encode_wide_integer(other)  # type: ignore

    def test_error_message(self) -> None:
        with self.assertRaises(ValidationError) as cm:
            encode_wide_integer("102.3")
        self.assertEqual(str(cm.exception), '"102.3" is not a valid integer')

        with self.assertRaises(ValidationError) as cm:
            encode_wide_integer("x", "bigint")
        self.assertEqual(str(cm.exception), '"x" is not a valid bigint')

    def test_decode(self) -> None:
        value = decode_wide_integer("42")
        self.assertEqual(value, 42)
        self.assertIs(type(value), int)

        value = decode_wide_integer("9223372036854775807")
        self.assertEqual(value, 9223372036854775807)
        self.assertIsInstance(value, WideInteger)

        value = decode_wide_integer("-9223372036854775808")
        self.assertEqual(value, -9223372036854775808)
        self.assertIsInstance(value, WideInteger)

    def test_decode_safe_boundary(self) -> None:
        self.assertIs(type(decode_wide_integer(str(MAX_SAFE_INTEGER))), int)
        self.assertIs(type(decode_wide_integer(str(-MAX_SAFE_INTEGER))), int)
        self.assertIsInstance(
            decode_wide_integer(str(MAX_SAFE_INTEGER + 1)), WideInteger
        )
        self.assertIsInstance(decode_wide_integer(MAX_SAFE_INTEGER + 1), WideInteger)

    def test_decode_rejects(self) -> None:
        for value in ["", "1.0", "abc", " 7"]:
            with self.subTest(value=value):
                with self.assertRaises(ValidationError):
                    decode_wide_integer(value)

    def test_round_trip(self) -> None:
        for text in [
            "0",
            "+1",
            "-1",
            "007",
            str(MAX_SAFE_INTEGER),
            str(MAX_SAFE_INTEGER + 2),
            "-9223372036854775808",
            "123456789012345678901234567890",
        ]:
            with self.subTest(text=text):
                self.assertEqual(
                    decode_wide_integer(encode_wide_integer(text)), int(text)
                )

    def test_repr(self) -> None:
        self.assertEqual(
            repr(WideInteger(9007199254740993)), "WideInteger(9007199254740993)"
        )


class TestDataTypes(unittest.TestCase):
    def test_integer_width(self) -> None:
        self.assertTrue(is_wide_integer_type(SqlIntegerType(8)))
        self.assertTrue(is_wide_integer_type(SqlIntegerType(4)))
        self.assertFalse(is_wide_integer_type(SqlIntegerType(2)))
        self.assertFalse(is_wide_integer_type(SqlJsonType()))
        self.assertFalse(is_wide_integer_type(None))
        self.assertEqual(str(SqlIntegerType(2)), "smallint")
        self.assertEqual(str(SqlIntegerType(4)), "integer")
        self.assertEqual(str(SqlIntegerType(8)), "bigint")

    def test_constant(self) -> None:
        self.assertEqual(constant(None), "NULL")
        self.assertEqual(constant(True), "TRUE")
        self.assertEqual(constant(3), "3")
        self.assertEqual(constant("it's"), "'it''s'")
        self.assertEqual(constant(decimal.Decimal("1.50")), "1.50")
        self.assertEqual(
            constant(datetime.datetime(2024, 1, 2, 3, 4, 5)), "'2024-01-02 03:04:05'"
        )
        self.assertEqual(
            constant(
                datetime.datetime(
                    2024,
                    1,
                    2,
                    3,
                    4,
                    5,
                    tzinfo=datetime.timezone(datetime.timedelta(hours=2)),
                )
            ),
            "'2024-01-02 01:04:05'",
        )
        self.assertEqual(constant(datetime.date(2024, 1, 2)), "'2024-01-02'")
        self.assertEqual(
            constant(uuid.UUID("6ba7b810-9dad-11d1-80b4-00c04fd430c8")),
            "'6ba7b810-9dad-11d1-80b4-00c04fd430c8'",
        )
        self.assertEqual(constant((1, "a")), "(1, 'a')")
        with self.assertRaises(NotImplementedError):
            constant(object())

    def test_json_document(self) -> None:
        self.assertEqual(json_document({"a": [1, 2]}), '{"a":[1,2]}')
        self.assertEqual(json_document('{"a": 1}'), '{"a": 1}')
        self.assertEqual(json_document({"k": "é"}), '{"k":"é"}')


if __name__ == "__main__":
    unittest.main()
