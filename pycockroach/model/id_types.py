import abc
from dataclasses import dataclass
from typing import Optional, Protocol, Union, runtime_checkable

ID_QUOTE_CHAR = '"'


def quote_id(name: str) -> str:
    return name.replace(ID_QUOTE_CHAR, 2 * ID_QUOTE_CHAR)


def quote_identifier(name: str) -> str:
    "Escapes a column or table name to be embedded in a SQL statement."

    return ID_QUOTE_CHAR + quote_id(name) + ID_QUOTE_CHAR


@runtime_checkable
class SupportsLocalId(Protocol):
    __slots__ = ()

    @property
    @abc.abstractmethod
    def local_id(self) -> str:
        "Unquoted component of an identifier to be used in a local context, e.g. columns of a table."
        ...

    @property
    @abc.abstractmethod
    def quoted_id(self) -> str:
        "A fully-quoted identifier."
        ...


@runtime_checkable
class SupportsQualifiedId(Protocol):
    __slots__ = ()

    @property
    @abc.abstractmethod
    def scope_id(self) -> Optional[str]:
        "Unquoted scope identifier."
        ...

    @property
    @abc.abstractmethod
    def local_id(self) -> str:
        "Unquoted component of an identifier to be used in a local context, e.g. columns of a table."
        ...

    @property
    @abc.abstractmethod
    def quoted_id(self) -> str:
        "A fully-quoted identifier."
        ...


@runtime_checkable
class SupportsName(Protocol):
    __slots__ = ()

    @property
    @abc.abstractmethod
    def name(self) -> SupportsLocalId: ...


@dataclass(frozen=True)
class LocalId:
    id: str

    @property
    def local_id(self) -> str:
        "Unquoted identifier."

        return self.id

    @property
    def quoted_id(self) -> str:
        return quote_identifier(self.id)

    def __str__(self) -> str:
        "Quotes an identifier to be embedded in a SQL statement."

        return self.quoted_id


@dataclass(frozen=True)
class QualifiedId:
    namespace: Optional[str]
    id: str

    @property
    def scope_id(self) -> Optional[str]:
        return self.namespace

    @property
    def local_id(self) -> str:
        return self.id

    @property
    def quoted_id(self) -> str:
        if self.namespace is not None:
            return quote_identifier(self.namespace) + "." + quote_identifier(self.id)
        else:
            return quote_identifier(self.id)

    def __str__(self) -> str:
        "Quotes a qualified identifier to be embedded in a SQL statement."

        return self.quoted_id


def to_qualified_id(name: Union[str, SupportsQualifiedId]) -> SupportsQualifiedId:
    """
    Converts a table name into a qualified identifier.

    A string is split on its first dot into a schema and a table name, e.g. `public.users`.
    """

    if isinstance(name, str):
        namespace, sep, local = name.partition(".")
        if sep:
            return QualifiedId(namespace, local)
        else:
            return QualifiedId(None, name)
    else:
        return name
