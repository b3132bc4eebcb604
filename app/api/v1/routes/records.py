# app/api/v1/routes/records.py
"""CRUD endpoints for the six compliance record kinds.

Every kind gets the same five routes; all writes go through the
``ComplianceEngine`` so status changes pick up their timestamps and
cascades. Domain errors are turned into envelope responses by the handler
registered in ``main.py``.
"""

# No ``from __future__ import annotations`` here: FastAPI has to see the real
# body model classes bound inside ``build_record_router``.

import logging
from typing import Optional, Type
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from app.api.v1.deps import get_actor, get_engine
from app.api.v1.envelope import PaginationParams, ok
from app.api.v1.schemas.compliance import (
    ClientCreate,
    ClientUpdate,
    InvoiceCreate,
    InvoiceUpdate,
    NoticeCreate,
    NoticeUpdate,
    PaymentCreate,
    PaymentUpdate,
    RegistrationCreate,
    RegistrationUpdate,
    ReturnCreate,
    ReturnUpdate,
    _RecordBody,
)
from app.domain.models.compliance import ActorContext, CommittedState, EntityKind
from app.domain.services.compliance_engine import ComplianceEngine

logger = logging.getLogger("api.v1.records")


def _committed(state: CommittedState) -> dict:
    return {
        **state.entity,
        "cascades": [
            {"kind": c.kind.value, "id": c.entity_id, "changes": dict(c.changes)}
            for c in state.cascades
        ],
    }


def build_record_router(
    kind: EntityKind,
    prefix: str,
    tag: str,
    create_model: Type[_RecordBody],
    update_model: Type[_RecordBody],
) -> APIRouter:
    router = APIRouter(prefix=prefix, tags=[tag])
    label = kind.value.capitalize()

    @router.get("/")
    async def list_records(
        client_id: Optional[UUID] = Query(None),
        status: Optional[str] = Query(None),
        page: PaginationParams = Depends(),
        actor: ActorContext = Depends(get_actor),
        engine: ComplianceEngine = Depends(get_engine),
    ):
        rows = await engine.list(
            actor, kind, client_id=client_id, status=status, limit=page.limit, offset=page.offset,
        )
        return ok(data=rows, message=f"Found {len(rows)} {kind.value}(s)")

    @router.get("/{record_id}")
    async def get_record(
        record_id: UUID,
        actor: ActorContext = Depends(get_actor),
        engine: ComplianceEngine = Depends(get_engine),
    ):
        return ok(data=await engine.get(actor, kind, record_id))

    @router.post("/", status_code=201)
    async def create_record(
        body: create_model,
        actor: ActorContext = Depends(get_actor),
        engine: ComplianceEngine = Depends(get_engine),
    ):
        fields = body.changes()
        if getattr(body, "client_id", None) is not None:
            fields["client_id"] = body.client_id
        state = await engine.create(actor, kind, fields, documents=body.document_specs())
        return ok(data=_committed(state), message=f"{label} created")

    @router.put("/{record_id}")
    async def update_record(
        record_id: UUID,
        body: update_model,
        actor: ActorContext = Depends(get_actor),
        engine: ComplianceEngine = Depends(get_engine),
    ):
        state = await engine.update(
            actor,
            kind,
            record_id,
            body.changes(),
            expected_version=body.expected_version,
            documents=body.document_specs(),
        )
        return ok(data=_committed(state), message=f"{label} updated")

    @router.delete("/{record_id}")
    async def delete_record(
        record_id: UUID,
        expected_version: Optional[int] = Query(None, ge=1),
        actor: ActorContext = Depends(get_actor),
        engine: ComplianceEngine = Depends(get_engine),
    ):
        await engine.delete(actor, kind, record_id, expected_version=expected_version)
        return ok(data={"id": record_id}, message=f"{label} deleted")

    return router


clients_router = build_record_router(
    EntityKind.CLIENT, "/clients", "Clients", ClientCreate, ClientUpdate)
registrations_router = build_record_router(
    EntityKind.REGISTRATION, "/registrations", "GST Registrations", RegistrationCreate, RegistrationUpdate)
returns_router = build_record_router(
    EntityKind.RETURN, "/returns", "GST Returns", ReturnCreate, ReturnUpdate)
payments_router = build_record_router(
    EntityKind.PAYMENT, "/payments", "GST Payments", PaymentCreate, PaymentUpdate)
notices_router = build_record_router(
    EntityKind.NOTICE, "/notices", "Notice Management", NoticeCreate, NoticeUpdate)
invoices_router = build_record_router(
    EntityKind.INVOICE, "/invoices", "Practice Invoices", InvoiceCreate, InvoiceUpdate)
