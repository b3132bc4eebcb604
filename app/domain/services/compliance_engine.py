# app/domain/services/compliance_engine.py
"""
Compliance status-transition engine.

Entry point for every create / update / delete on a compliance record:

    request -> validator (timestamp effects)
            -> resolver  (cascade list, pure data)
            -> applier   (primary + cascades + documents, one transaction)
            -> trigger   (alerts, after commit, best-effort)

Examples
--------
Payment{PENDING, return_id=R1} -> {status: PAID}
    paid_at = now, Return[R1].status = Filed
Registration{Draft, client_id=C1} -> {status: Approved}
    approved_at = now, Client[C1].gst_status = ACTIVE
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Mapping

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.domain.errors import ConflictError, ValidationError
from app.domain.models.compliance import (
    DOCUMENT_OWNER_FIELD,
    EDITABLE_FIELDS,
    STATUS_FIELD,
    UNSET,
    ActorContext,
    ClientGSTStatus,
    CommittedState,
    DocumentSpec,
    EntityKind,
    FieldChanges,
    InvoiceStatus,
    NoticeStatus,
    PaymentStatus,
    PrimaryUpdate,
    RegistrationStatus,
    ReturnStatus,
)
from app.domain.services.cascade_resolver import resolve
from app.domain.services.consistency_applier import ConsistencyApplier
from app.domain.services.notification_service import (
    DatabaseNotificationSink,
    NotificationTrigger,
)
from app.domain.services.transition_validator import validate
from app.infrastructure.audit import log_practitioner_action
from app.infrastructure.db.entity_store import EntityStore, to_dict
from app.infrastructure.db.repositories.client_repository import ClientRepository
from app.infrastructure.db.repositories.document_repository import DocumentRepository

logger = logging.getLogger("compliance_engine")

INITIAL_STATUS: dict[EntityKind, str] = {
    EntityKind.CLIENT: ClientGSTStatus.INACTIVE.value,
    EntityKind.REGISTRATION: RegistrationStatus.DRAFT.value,
    EntityKind.RETURN: ReturnStatus.DRAFT.value,
    EntityKind.PAYMENT: PaymentStatus.PENDING.value,
    EntityKind.NOTICE: NoticeStatus.RECEIVED.value,
    EntityKind.INVOICE: InvoiceStatus.DRAFT.value,
}

REQUIRED_ON_CREATE: dict[EntityKind, tuple[str, ...]] = {
    EntityKind.CLIENT: ("business_name",),
    EntityKind.REGISTRATION: (),
    EntityKind.RETURN: ("return_type", "period"),
    EntityKind.PAYMENT: ("amount",),
    EntityKind.NOTICE: ("notice_type", "subject"),
    EntityKind.INVOICE: ("invoice_no",),
}

NOT_NULL_FIELDS: dict[EntityKind, tuple[str, ...]] = {
    **REQUIRED_ON_CREATE,
    EntityKind.INVOICE: ("invoice_no", "amount"),
}

TIMESTAMP_FIELDS: dict[EntityKind, tuple[str, ...]] = {
    EntityKind.REGISTRATION: ("submitted_at", "approved_at"),
    EntityKind.RETURN: ("filed_at", "processed_at"),
    EntityKind.NOTICE: ("replied_at",),
    EntityKind.PAYMENT: ("paid_at",),
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_changes(changes: FieldChanges | Mapping[str, Any]) -> FieldChanges:
    return changes if isinstance(changes, FieldChanges) else FieldChanges(dict(changes))


def _coerce_uuid(value: Any, field: str) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError as exc:
        raise ValidationError(f"'{field}' is not a valid id", field=field) from exc


def _check_fields(kind: EntityKind, changes: FieldChanges) -> None:
    unknown = sorted(set(changes.values) - EDITABLE_FIELDS[kind])
    if unknown:
        raise ValidationError(
            f"Unknown or read-only field(s) for {kind.value}: {', '.join(unknown)}",
            fields=unknown,
        )


def _check_not_cleared(kind: EntityKind, changes: FieldChanges) -> None:
    cleared = [f for f in NOT_NULL_FIELDS[kind] if changes.is_set(f) and changes.get(f) in (None, "")]
    if cleared:
        raise ValidationError(f"Field(s) cannot be empty: {', '.join(cleared)}", fields=cleared)


def _check_documents(kind: EntityKind, documents: list[DocumentSpec] | None) -> None:
    if documents and kind not in DOCUMENT_OWNER_FIELD:
        raise ValidationError(f"{kind.value.capitalize()} records do not carry documents")


class ComplianceEngine:
    """Façade over validator, resolver, applier and trigger.

    One instance per process: the applier's lock registry is what lets only one
    of several concurrent requests for the same entity through.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        applier: ConsistencyApplier | None = None,
        trigger: NotificationTrigger | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.session_factory = session_factory
        self.applier = applier or ConsistencyApplier(session_factory)
        self.trigger = trigger or NotificationTrigger(DatabaseNotificationSink(session_factory))
        self.clock = clock

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, ctx: ActorContext, kind: EntityKind, entity_id: uuid.UUID) -> dict[str, Any]:
        async with self.session_factory() as session:
            entity = await EntityStore(session).get_owned(ctx, kind, entity_id)
            data = to_dict(entity)
            if kind in DOCUMENT_OWNER_FIELD:
                docs = await DocumentRepository(session).list_for_owner(DOCUMENT_OWNER_FIELD[kind], entity.id)
                data["documents"] = [to_dict(d) for d in docs]
            return data

    async def list(
        self,
        ctx: ActorContext,
        kind: EntityKind,
        *,
        client_id: uuid.UUID | None = None,
        status: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        async with self.session_factory() as session:
            rows = await EntityStore(session).list_owned(
                ctx, kind, client_id=client_id, status=status, limit=limit, offset=offset,
            )
            return [to_dict(r) for r in rows]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create(
        self,
        ctx: ActorContext,
        kind: EntityKind,
        fields: Mapping[str, Any],
        *,
        documents: list[DocumentSpec] | None = None,
    ) -> CommittedState:
        """Create a record. Its initial status is treated as a transition from nothing."""
        fields = dict(fields)
        client_id = fields.pop("client_id", None)
        changes = _as_changes(fields)
        _check_fields(kind, changes)
        _check_not_cleared(kind, changes)
        _check_documents(kind, documents)
        missing = [f for f in REQUIRED_ON_CREATE[kind] if changes.get(f) in (UNSET, None, "")]
        if missing:
            raise ValidationError(f"Missing required field(s): {', '.join(missing)}", fields=missing)

        status_field = STATUS_FIELD[kind]
        if changes.get(status_field) in (UNSET, None):
            changes = FieldChanges({**changes.values, status_field: INITIAL_STATUS[kind]})

        new_id = uuid.uuid4()
        now = self.clock()

        async def work(session: AsyncSession) -> CommittedState:
            store = EntityStore(session)
            if kind == EntityKind.CLIENT:
                owner = {"user_id": ctx.user_id}
            else:
                if client_id is None:
                    raise ValidationError("client_id is required", field="client_id")
                client = await store.get_owned(ctx, EntityKind.CLIENT, _coerce_uuid(client_id, "client_id"))
                owner = {"client_id": client.id}
            entity = store.new(kind, id=new_id, **owner)
            return await self._transition(session, ctx, kind, entity, None, changes, now, documents)

        state = await self.applier.run(kind, new_id, work)
        await self._after_commit(ctx, "create", state)
        return state

    async def update(
        self,
        ctx: ActorContext,
        kind: EntityKind,
        entity_id: uuid.UUID,
        changes: FieldChanges | Mapping[str, Any],
        *,
        expected_version: int | None = None,
        documents: list[DocumentSpec] | None = None,
    ) -> CommittedState:
        """Apply field changes, including an optional status change, to one record.

        ``expected_version`` is the version the caller last read; when given,
        a newer committed version fails with ``ConflictError``.
        """
        changes = _as_changes(changes)
        _check_fields(kind, changes)
        _check_not_cleared(kind, changes)
        _check_documents(kind, documents)
        now = self.clock()

        async def work(session: AsyncSession) -> CommittedState:
            entity = await EntityStore(session).get_owned(ctx, kind, entity_id, for_update=True)
            if expected_version is not None and entity.version != expected_version:
                raise ConflictError(
                    f"{kind.value.capitalize()} has changed since it was read; reload and retry",
                    kind=kind.value,
                    id=str(entity_id),
                    expected_version=expected_version,
                    current_version=entity.version,
                )
            current = getattr(entity, STATUS_FIELD[kind])
            return await self._transition(session, ctx, kind, entity, current, changes, now, documents)

        state = await self.applier.run(kind, entity_id, work)
        await self._after_commit(ctx, "update", state)
        return state

    async def delete(
        self,
        ctx: ActorContext,
        kind: EntityKind,
        entity_id: uuid.UUID,
        *,
        expected_version: int | None = None,
    ) -> None:
        """Delete a record and everything it owns."""

        async def work(session: AsyncSession) -> None:
            store = EntityStore(session)
            entity = await store.get_owned(ctx, kind, entity_id, for_update=True)
            if expected_version is not None and entity.version != expected_version:
                raise ConflictError(
                    f"{kind.value.capitalize()} has changed since it was read; reload and retry",
                    kind=kind.value,
                    id=str(entity_id),
                )
            await store.delete(kind, entity)

        await self.applier.run(kind, entity_id, work)
        log_practitioner_action("delete", user_id=ctx.user_id, entity_kind=kind.value, entity_id=entity_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _transition(
        self,
        session: AsyncSession,
        ctx: ActorContext,
        kind: EntityKind,
        entity: Any,
        current_status: str | None,
        changes: FieldChanges,
        now: datetime,
        documents: list[DocumentSpec] | None,
    ) -> CommittedState:
        status_field = STATUS_FIELD[kind]
        decision = validate(
            kind,
            current_status,
            changes.get(status_field),
            now=now,
            timestamps={f: getattr(entity, f) for f in TIMESTAMP_FIELDS.get(kind, ())},
            supplied_paid_at=changes.get("paid_at"),
        )
        if decision.to_status is not None:
            changes = FieldChanges({**changes.values, status_field: decision.to_status})
        else:
            changes = changes.without(status_field)

        return_id = None
        if kind == EntityKind.CLIENT:
            await self._check_client_edit(session, ctx, entity, changes, decision.enters(ClientGSTStatus.ACTIVE.value))
        elif kind == EntityKind.PAYMENT:
            changes, return_id = await self._linked_return(session, entity, changes)

        cascades = resolve(
            kind,
            entity.id,
            decision,
            client_id=getattr(entity, "client_id", None),
            return_id=return_id,
            return_linked=changes.is_set("return_id"),
        )
        unit = await self.applier.apply(
            session,
            PrimaryUpdate(kind, entity, changes, decision),
            cascades,
            documents=documents,
        )
        return CommittedState(
            kind=kind,
            entity_id=entity.id,
            entity=to_dict(entity),
            cascades=cascades,
            related={target_kind.value: to_dict(target) for target_kind, target in unit.targets},
            events=unit.events,
        )

    async def _check_client_edit(
        self,
        session: AsyncSession,
        ctx: ActorContext,
        client: Any,
        changes: FieldChanges,
        activating: bool,
    ) -> None:
        repo = ClientRepository(session)
        duplicate = await repo.find_duplicate(
            ctx.user_id,
            email=changes.get("email") or None,
            pan=changes.get("pan") or None,
            gstin=changes.get("gstin") or None,
            exclude_id=client.id,
        )
        if duplicate is not None:
            raise ValidationError(
                "Client with this email, PAN, or GSTIN already exists",
                duplicate_id=str(duplicate.id),
            )
        # ACTIVE is owned by registration approval; a plain edit may only re-assert it
        if activating and not await repo.has_approved_registration(client.id):
            raise ValidationError(
                "Client GST status can only become ACTIVE through an approved GST registration",
                field="gst_status",
            )

    async def _linked_return(
        self,
        session: AsyncSession,
        payment: Any,
        changes: FieldChanges,
    ) -> tuple[FieldChanges, uuid.UUID | None]:
        """Validate a new ``return_id`` and return the payment's effective linked return."""
        if not changes.is_set("return_id"):
            return changes, payment.return_id

        raw = changes.get("return_id")
        if raw is None:
            return changes, None

        return_id = _coerce_uuid(raw, "return_id")
        gst_return = await EntityStore(session).get(EntityKind.RETURN, return_id)
        if gst_return is None or gst_return.client_id != payment.client_id:
            raise ValidationError(
                "Payment references a GST return that does not exist for this client",
                field="return_id",
                return_id=str(return_id),
            )
        return FieldChanges({**changes.values, "return_id": return_id}), return_id

    async def _after_commit(self, ctx: ActorContext, action: str, state: CommittedState) -> None:
        log_practitioner_action(
            action,
            user_id=ctx.user_id,
            entity_kind=state.kind.value,
            entity_id=state.entity_id,
            details={
                "status": state.entity.get(STATUS_FIELD[state.kind]),
                "cascades": [f"{c.kind.value}:{c.entity_id}" for c in state.cascades],
            },
        )
        if not state.events:
            return
        try:
            await self.trigger.on_committed(ctx, state)
        except Exception:
            logger.exception("Notification trigger failed for %s %s", state.kind.value, state.entity_id)
