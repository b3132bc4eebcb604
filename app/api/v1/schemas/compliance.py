# app/api/v1/schemas/compliance.py
"""Pydantic request schemas for the compliance record endpoints.

Update bodies are partial: only fields the caller actually sent are passed
on (``model_dump(exclude_unset=True)``), so an omitted field stays as is and
an explicit ``null`` clears it.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.domain.models.compliance import DocumentSpec

_ENVELOPE_FIELDS = {"expected_version", "documents", "client_id"}


class DocumentIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    type: str | None = None
    file_path: str | None = None
    mime_type: str | None = None
    file_size: int | None = Field(None, ge=0)

    def to_spec(self) -> DocumentSpec:
        return DocumentSpec(**self.model_dump())


class _RecordBody(BaseModel):
    model_config = ConfigDict(extra="forbid")

    def changes(self) -> dict[str, Any]:
        """Fields the caller sent, minus the request-level ones."""
        return {k: v for k, v in self.model_dump(exclude_unset=True).items() if k not in _ENVELOPE_FIELDS}

    def document_specs(self) -> list[DocumentSpec] | None:
        docs = getattr(self, "documents", None)
        # an empty list leaves existing attachments alone
        if not docs:
            return None
        return [d.to_spec() for d in docs]


class _UpdateBody(_RecordBody):
    expected_version: int | None = Field(None, ge=1, description="Version last read; 409 if it moved on")


# --- Clients -----------------------------------------------------------------

class ClientFields(_RecordBody):
    business_name: str | None = Field(None, max_length=255)
    gstin: str | None = Field(None, min_length=15, max_length=15)
    pan: str | None = Field(None, min_length=10, max_length=10)
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    state: str | None = None
    business_type: str | None = None
    gst_status: str | None = None


class ClientCreate(ClientFields):
    business_name: str = Field(..., min_length=1, max_length=255)


class ClientUpdate(ClientFields, _UpdateBody):
    pass


# --- Registrations -------------------------------------------------------------

class RegistrationFields(_RecordBody):
    application_no: str | None = None
    reference_no: str | None = None
    arn: str | None = None
    effective_date: date | None = None
    status: str | None = None
    documents: list[DocumentIn] = Field(default_factory=list)


class RegistrationCreate(RegistrationFields):
    client_id: UUID


class RegistrationUpdate(RegistrationFields, _UpdateBody):
    pass


# --- Returns -----------------------------------------------------------------

class ReturnFields(_RecordBody):
    return_type: str | None = Field(None, description="GSTR-1, GSTR-3B, GSTR-9, ...")
    period: str | None = Field(None, description="e.g. 04-2025")
    due_date: date | None = None
    acknowledgement_no: str | None = None
    status: str | None = None
    documents: list[DocumentIn] = Field(default_factory=list)


class ReturnCreate(ReturnFields):
    client_id: UUID
    return_type: str
    period: str


class ReturnUpdate(ReturnFields, _UpdateBody):
    pass


# --- Payments ----------------------------------------------------------------

class PaymentFields(_RecordBody):
    return_id: UUID | None = None
    challan_no: str | None = None
    payment_type: str | None = None
    amount: Decimal | None = Field(None, ge=0)
    bank_reference: str | None = None
    status: str | None = None
    paid_at: datetime | None = Field(None, description="Used when the payment enters PAID")


class PaymentCreate(PaymentFields):
    client_id: UUID
    amount: Decimal = Field(..., ge=0)


class PaymentUpdate(PaymentFields, _UpdateBody):
    pass


# --- Notices -----------------------------------------------------------------

class NoticeFields(_RecordBody):
    notice_no: str | None = None
    notice_type: str | None = Field(None, description="ASMT-10, DRC-01, REG-17, ...")
    subject: str | None = None
    description: str | None = None
    received_at: date | None = None
    due_date: date | None = None
    reply_draft: str | None = None
    status: str | None = None
    documents: list[DocumentIn] = Field(default_factory=list)


class NoticeCreate(NoticeFields):
    client_id: UUID
    notice_type: str
    subject: str


class NoticeUpdate(NoticeFields, _UpdateBody):
    pass


# --- Invoices ----------------------------------------------------------------

class InvoiceFields(_RecordBody):
    invoice_no: str | None = None
    amount: Decimal | None = Field(None, ge=0)
    due_date: date | None = None
    status: str | None = None
    notes: str | None = None


class InvoiceCreate(InvoiceFields):
    client_id: UUID
    invoice_no: str


class InvoiceUpdate(InvoiceFields, _UpdateBody):
    pass


# --- Notifications / portal ---------------------------------------------------

class MarkReadRequest(BaseModel):
    notification_ids: list[UUID] = Field(default_factory=list)
    mark_all: bool = False


class PortalRequest(BaseModel):
    gstin: str = Field(..., min_length=15, max_length=15)
    username: str
    password: str
    from_year: int | None = None
    to_year: int | None = None
