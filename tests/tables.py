import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from strong_typing.auxiliary import Annotated, MaxLength, int16, int32, int64

from pycockroach.formation.object_types import Column, Index, Table, UniqueConstraint
from pycockroach.model.data_types import (
    SqlGeographyType,
    SqlIntegerType,
    SqlJsonType,
    SqlVariableCharacterType,
    SqlVirtualType,
)
from pycockroach.model.id_types import LocalId, QualifiedId
from pycockroach.model.key_types import (
    Column as ColumnName,
    Identity,
    PrimaryKey,
    Unique,
    Virtual,
)


class WorkflowState(enum.Enum):
    active = "active"
    inactive = "inactive"
    deleted = "deleted"


@dataclass
class User:
    id: PrimaryKey[int]
    name: str


@dataclass
class Account:
    id: Identity[int]
    email: Unique[Annotated[str, ColumnName("email_address"), MaxLength(255)]]
    state: WorkflowState
    balance: int64
    rank: int16
    score: Optional[int32]
    settings: dict[str, Any]
    created_at: datetime
    display_name: Virtual[str]


def users_table() -> Table:
    "Table `users(id PK, name)`."

    return Table(
        QualifiedId(None, "users"),
        [
            Column(LocalId("id"), SqlIntegerType(8), nullable=False),
            Column(LocalId("name"), SqlVariableCharacterType()),
        ],
        primary_key=(LocalId("id"),),
    )


def accounts_table() -> Table:
    "Table `accounts` with a unique constraint on `(email, companyId)`."

    return Table(
        QualifiedId(None, "accounts"),
        [
            Column(LocalId("id"), SqlIntegerType(8), nullable=False, identity=True),
            Column(LocalId("email"), SqlVariableCharacterType()),
            Column(LocalId("companyId"), SqlIntegerType(8)),
            Column(LocalId("nickname"), SqlVariableCharacterType()),
            Column(LocalId("handle"), SqlVariableCharacterType()),
            Column(LocalId("profile"), SqlJsonType()),
            Column(LocalId("location"), SqlGeographyType()),
            Column(LocalId("full_name"), SqlVirtualType()),
        ],
        primary_key=(LocalId("id"),),
        constraints=[
            UniqueConstraint(
                LocalId("uq_accounts_email_company"),
                (LocalId("email"), LocalId("companyId")),
            ),
        ],
        indexes=[
            Index(LocalId("ix_accounts_nickname"), (LocalId("nickname"),)),
            Index(
                LocalId("ux_accounts_handle"),
                (LocalId("handle"), LocalId("companyId")),
                unique=True,
            ),
        ],
    )


def mapped_table() -> Table:
    "Table whose columns have physical names that differ from attribute names."

    return Table(
        QualifiedId("app", "people"),
        [
            Column(
                LocalId("person_id"),
                SqlIntegerType(8),
                nullable=False,
                identity=True,
                attribute="id",
            ),
            Column(
                LocalId("given_name"),
                SqlVariableCharacterType(),
                attribute="firstName",
            ),
        ],
        primary_key=(LocalId("person_id"),),
    )


def keyless_table() -> Table:
    "Table without primary key, unique constraint or unique index."

    return Table(
        QualifiedId(None, "events"),
        [
            Column(LocalId("kind"), SqlVariableCharacterType()),
            Column(LocalId("payload"), SqlJsonType()),
        ],
        indexes=[Index(LocalId("ix_events_kind"), (LocalId("kind"),))],
    )
