import datetime
import decimal
import json
import re
import uuid
from dataclasses import dataclass
from typing import Any, Optional, Union

from strong_typing.auxiliary import (
    IntegerRange,
    MaxLength,
    Precision,
    Signed,
    Storage,
    TimePrecision,
)

# largest integer that a double-precision floating-point number represents exactly
MAX_SAFE_INTEGER = 2**53 - 1

_INTEGER_PATTERN = re.compile(r"[-+]?[0-9]+")

_JSON_ENCODER = json.JSONEncoder(
    ensure_ascii=False,
    check_circular=False,
    allow_nan=False,
    indent=None,
    separators=(",", ":"),
)


class ValidationError(ValueError):
    "Raised when a value cannot be represented in the SQL type of its column."


def quote(s: str) -> str:
    "Quotes a string to be embedded in an SQL statement."

    return "'" + s.replace("'", "''") + "'"


def constant(v: Any) -> str:
    "Outputs a constant value."

    if v is None:
        return "NULL"
    elif isinstance(v, str):
        return quote(v)
    elif isinstance(v, bool):
        return "TRUE" if v else "FALSE"
    elif isinstance(v, (int, float)):
        return str(v)
    elif isinstance(v, decimal.Decimal):
        return str(v)
    elif isinstance(v, datetime.datetime):
        if v.tzinfo is not None:
            timestamp = v.astimezone(tz=datetime.timezone.utc).replace(tzinfo=None)
        else:
            timestamp = v
        return quote(timestamp.isoformat(sep=" "))
    elif isinstance(v, (datetime.date, datetime.time)):
        return quote(v.isoformat())
    elif isinstance(v, uuid.UUID):
        return quote(str(v))
    elif isinstance(v, tuple):
        values = ", ".join(constant(value) for value in v)
        return f"({values})"
    else:
        raise NotImplementedError(
            f"unknown constant representation for value (of type): {v} ({type(v)})"
        )


def json_document(value: Any) -> str:
    "Serializes a value as a compact JSON document. Strings are assumed to hold a serialized document already."

    if isinstance(value, str):
        return value
    return _JSON_ENCODER.encode(value)


class WideInteger(int):
    """
    An integer whose magnitude exceeds the range a double-precision floating-point number represents exactly.

    Instances compare equal to the plain integer of the same value. The type acts as a marker for consumers that
    would otherwise lose precision, e.g. JSON serializers that emit numbers as doubles.
    """

    def __repr__(self) -> str:
        return f"{type(self).__name__}({int.__repr__(self)})"


def _describe(value: Any) -> str:
    try:
        return json.dumps(value)
    except (TypeError, ValueError):
        return json.dumps(str(value))


def encode_wide_integer(value: Union[int, str], type_name: str = "integer") -> str:
    """
    Converts an integer or a string of decimal digits into a canonical SQL numeric literal.

    The returned string must not be quoted when embedded in a SQL statement.

    :param value: An integer, or a string of an optional sign followed by decimal digits.
    :param type_name: The SQL type name to report in an error message.
    :raises ValidationError: Raised when the input is not a well-formed integer.
    """

    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise ValidationError(f"{_describe(value)} is not a valid {type_name}")

    rep = str(value) if isinstance(value, str) else int.__repr__(value)
    if not _INTEGER_PATTERN.fullmatch(rep):
        raise ValidationError(f"{_describe(value)} is not a valid {type_name}")

    sign = "-" if rep.startswith("-") else ""
    digits = rep.lstrip("+-").lstrip("0")
    if not digits:
        return "0"
    return f"{sign}{digits}"


def decode_wide_integer(text: Union[str, int]) -> int:
    """
    Parses a decimal string received from the database into an integer.

    Values within the safe range of a double-precision float are returned as a plain `int`. Values beyond that
    range are returned as a `WideInteger`, which holds the exact value.
    """

    if isinstance(text, bool):
        raise ValidationError(f"{_describe(text)} is not a valid integer")
    if isinstance(text, int):
        value = int(text)
    else:
        if not _INTEGER_PATTERN.fullmatch(text):
            raise ValidationError(f"{_describe(text)} is not a valid integer")
        value = int(text)

    if abs(value) > MAX_SAFE_INTEGER:
        return WideInteger(value)
    else:
        return value


@dataclass
class SqlDataType:
    def parse_meta(self, meta: Any) -> None:
        raise TypeError(
            f"unrecognized Python type annotation for {type(self).__name__}: {meta}"
        )


@dataclass
class SqlUuidType(SqlDataType):
    def __str__(self) -> str:
        return "uuid"


@dataclass
class SqlBooleanType(SqlDataType):
    def __str__(self) -> str:
        return "boolean"


@dataclass
class SqlIntegerType(SqlDataType):
    """
    Integer type.

    CockroachDB maps `INT` and `INTEGER` to 8-byte integers, hence all integer types of 4 or more bytes are treated
    as wide integers.

    :param width: Storage size in bytes.
    """

    width: int
    minimum: Optional[int] = None
    maximum: Optional[int] = None

    def __str__(self) -> str:
        if self.width <= 2:
            return "smallint"
        elif self.width == 4:
            return "integer"
        elif self.width == 8:
            return "bigint"

        raise TypeError(f"invalid integer width: {self.width}")

    @property
    def is_wide(self) -> bool:
        return self.width >= 4

    def parse_meta(self, meta: Any) -> None:
        if isinstance(meta, IntegerRange):
            self.minimum = meta.minimum
            self.maximum = meta.maximum
        elif isinstance(meta, Signed):
            pass  # all CockroachDB integer types are signed
        elif isinstance(meta, Storage):
            self.width = meta.bytes
        else:
            super().parse_meta(meta)


@dataclass
class SqlDoubleType(SqlDataType):
    def __str__(self) -> str:
        return "double precision"


@dataclass
class SqlDecimalType(SqlDataType):
    """
    Fixed-point numeric type.

    :param precision: Numeric precision in base 10.
    :param scale: Scale in base 10.
    """

    precision: Optional[int] = None
    scale: Optional[int] = None

    def __str__(self) -> str:
        if self.precision is not None and self.scale is not None:
            return f"decimal({self.precision}, {self.scale})"
        elif self.precision is not None:
            return f"decimal({self.precision})"
        else:
            return "decimal"

    def parse_meta(self, meta: Any) -> None:
        if isinstance(meta, Precision):
            self.precision = meta.significant_digits
            self.scale = meta.decimal_digits
        else:
            super().parse_meta(meta)


@dataclass
class SqlVariableCharacterType(SqlDataType):
    limit: Optional[int] = None

    def __str__(self) -> str:
        if self.limit is not None:
            return f"varchar({self.limit})"
        else:
            return "text"

    def parse_meta(self, meta: Any) -> None:
        if isinstance(meta, MaxLength):
            self.limit = meta.value
        else:
            super().parse_meta(meta)


@dataclass
class SqlTimestampType(SqlDataType):
    precision: Optional[int] = None

    def __str__(self) -> str:
        if self.precision is not None:
            return f"timestamp({self.precision})"
        else:
            return "timestamp"

    def parse_meta(self, meta: Any) -> None:
        if isinstance(meta, TimePrecision):
            self.precision = meta.decimal_digits
        else:
            super().parse_meta(meta)


@dataclass
class SqlDateType(SqlDataType):
    def __str__(self) -> str:
        return "date"


@dataclass
class SqlJsonType(SqlDataType):
    def __str__(self) -> str:
        return "jsonb"


@dataclass
class SqlGeographyType(SqlDataType):
    "Spatial type whose values are bound as GeoJSON documents."

    def __str__(self) -> str:
        return "geography"


@dataclass
class SqlVirtualType(SqlDataType):
    "A type of a computed model attribute that has no backing column in the database."

    def __str__(self) -> str:
        raise TypeError("virtual type has no SQL representation")


def is_wide_integer_type(data_type: Optional[SqlDataType]) -> bool:
    "True if values of the type are marshaled as decimal strings."

    return isinstance(data_type, SqlIntegerType) and data_type.is_wide
