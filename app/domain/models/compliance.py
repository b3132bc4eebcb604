# app/domain/models/compliance.py
"""
Domain types for the compliance status-transition engine.

EntityKind / *Status:  the entity kinds and their status vocabularies.
FieldChanges:          a partial update, where an absent field means "unchanged".
TransitionDecision:    what the validator decided for one status change.
CascadeUpdate:         one dependent-entity mutation emitted by the resolver.
CommittedState:        what the engine hands back after a successful commit.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Iterator, Mapping
from uuid import UUID


class EntityKind(str, Enum):
    CLIENT = "client"
    REGISTRATION = "registration"
    RETURN = "return"
    PAYMENT = "payment"
    NOTICE = "notice"
    INVOICE = "invoice"


class ClientGSTStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    SUSPENDED = "SUSPENDED"
    CANCELLED = "CANCELLED"


class RegistrationStatus(str, Enum):
    DRAFT = "Draft"
    SUBMITTED = "Submitted"
    APPROVED = "Approved"
    REJECTED = "Rejected"


class ReturnStatus(str, Enum):
    DRAFT = "Draft"
    FILED = "Filed"
    PROCESSED = "Processed"
    OVERDUE = "Overdue"
    REJECTED = "Rejected"


class PaymentStatus(str, Enum):
    DRAFT = "DRAFT"
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class NoticeStatus(str, Enum):
    RECEIVED = "RECEIVED"
    IN_PROGRESS = "IN_PROGRESS"
    REPLIED = "REPLIED"
    RESOLVED = "RESOLVED"


class InvoiceStatus(str, Enum):
    DRAFT = "Draft"
    SENT = "Sent"
    PAID = "Paid"
    OVERDUE = "Overdue"
    CANCELLED = "Cancelled"


STATUS_VALUES: dict[EntityKind, type[Enum]] = {
    EntityKind.CLIENT: ClientGSTStatus,
    EntityKind.REGISTRATION: RegistrationStatus,
    EntityKind.RETURN: ReturnStatus,
    EntityKind.PAYMENT: PaymentStatus,
    EntityKind.NOTICE: NoticeStatus,
    EntityKind.INVOICE: InvoiceStatus,
}

# Column holding the lifecycle status for each kind
STATUS_FIELD: dict[EntityKind, str] = {
    EntityKind.CLIENT: "gst_status",
    EntityKind.REGISTRATION: "status",
    EntityKind.RETURN: "status",
    EntityKind.PAYMENT: "status",
    EntityKind.NOTICE: "status",
    EntityKind.INVOICE: "status",
}

# Fields a practitioner may edit through an update request
EDITABLE_FIELDS: dict[EntityKind, frozenset[str]] = {
    EntityKind.CLIENT: frozenset({
        "business_name", "gstin", "pan", "email", "phone",
        "address", "state", "business_type", "gst_status",
    }),
    EntityKind.REGISTRATION: frozenset({
        "application_no", "reference_no", "arn", "effective_date", "status",
    }),
    EntityKind.RETURN: frozenset({
        "return_type", "period", "due_date", "acknowledgement_no", "status",
    }),
    EntityKind.PAYMENT: frozenset({
        "return_id", "challan_no", "payment_type", "amount",
        "bank_reference", "status", "paid_at",
    }),
    EntityKind.NOTICE: frozenset({
        "notice_no", "notice_type", "subject", "description",
        "received_at", "due_date", "reply_draft", "status",
    }),
    EntityKind.INVOICE: frozenset({
        "invoice_no", "amount", "due_date", "status", "notes",
    }),
}

# Kinds that may own an attachment set (replace-in-place)
DOCUMENT_OWNER_FIELD: dict[EntityKind, str] = {
    EntityKind.NOTICE: "notice_id",
    EntityKind.REGISTRATION: "registration_id",
    EntityKind.RETURN: "return_id",
}


class _Unset:
    _instance: _Unset | None = None

    def __new__(cls) -> _Unset:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


@dataclass(frozen=True)
class FieldChanges:
    """Partial update: fields present in ``values`` are set, all others stay unchanged.

    ``None`` is a real value (clears the column); absence is "unchanged".
    """

    values: Mapping[str, Any] = field(default_factory=dict)

    def get(self, name: str) -> Any:
        return self.values.get(name, UNSET)

    def is_set(self, name: str) -> bool:
        return name in self.values

    def without(self, *names: str) -> FieldChanges:
        return FieldChanges({k: v for k, v in self.values.items() if k not in names})

    def __iter__(self) -> Iterator[tuple[str, Any]]:
        return iter(self.values.items())

    def __len__(self) -> int:
        return len(self.values)


@dataclass(frozen=True)
class ActorContext:
    """Who is acting. Used only to scope ownership, never for transition rules."""

    user_id: UUID


@dataclass(frozen=True)
class TimestampEffect:
    field: str
    value: datetime | None
    set_if_unset: bool = False


@dataclass(frozen=True)
class TransitionDecision:
    accepted: bool
    from_status: str | None
    to_status: str | None
    timestamp_effects: tuple[TimestampEffect, ...] = ()

    @property
    def status_changed(self) -> bool:
        return self.to_status is not None and self.to_status != self.from_status

    def enters(self, status: str) -> bool:
        return self.status_changed and self.to_status == status


@dataclass(frozen=True)
class CascadeUpdate:
    kind: EntityKind
    entity_id: UUID
    changes: Mapping[str, Any]


@dataclass(frozen=True)
class DocumentSpec:
    name: str
    type: str | None = None
    file_path: str | None = None
    mime_type: str | None = None
    file_size: int | None = None


@dataclass(frozen=True)
class PrimaryUpdate:
    kind: EntityKind
    entity: Any
    changes: FieldChanges
    decision: TransitionDecision


@dataclass(frozen=True)
class CommittedTransition:
    """A status change that is durably committed; fed to the notification trigger."""

    kind: EntityKind
    entity_id: UUID
    client_id: UUID | None
    from_status: str | None
    to_status: str
    via_cascade: bool = False


@dataclass
class CommittedState:
    kind: EntityKind
    entity_id: UUID
    entity: dict[str, Any]
    cascades: list[CascadeUpdate] = field(default_factory=list)
    related: dict[str, dict[str, Any]] = field(default_factory=dict)
    events: list[CommittedTransition] = field(default_factory=list)
