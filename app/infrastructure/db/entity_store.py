# app/infrastructure/db/entity_store.py
"""
Entity Store: kind-addressed access to the compliance tables.

Everything is scoped by the acting practitioner: an entity that exists but
belongs to another user's client is reported as not found. Nothing here
commits; the unit of work owns the transaction.
"""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import delete, inspect, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.errors import NotFoundError
from app.domain.models.compliance import DOCUMENT_OWNER_FIELD, ActorContext, EntityKind
from app.infrastructure.db.models import (
    Client,
    Document,
    GSTPayment,
    GSTRegistration,
    GSTReturn,
    Invoice,
    Notice,
)

MODELS: dict[EntityKind, type] = {
    EntityKind.CLIENT: Client,
    EntityKind.REGISTRATION: GSTRegistration,
    EntityKind.RETURN: GSTReturn,
    EntityKind.PAYMENT: GSTPayment,
    EntityKind.NOTICE: Notice,
    EntityKind.INVOICE: Invoice,
}

# Tables owned by a client, removed with it (documents first, payments before returns)
_CLIENT_CHILDREN = (Document, GSTPayment, Notice, GSTRegistration, GSTReturn, Invoice)


def to_dict(entity: Any) -> dict[str, Any]:
    """Column snapshot of an ORM row."""
    mapper = inspect(entity).mapper
    return {attr.key: getattr(entity, attr.key) for attr in mapper.column_attrs}


class EntityStore:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get(
        self,
        kind: EntityKind,
        entity_id: uuid.UUID,
        *,
        for_update: bool = False,
    ) -> Any | None:
        model = MODELS[kind]
        stmt = select(model).where(model.id == entity_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_owned(
        self,
        ctx: ActorContext,
        kind: EntityKind,
        entity_id: uuid.UUID,
        *,
        for_update: bool = False,
    ) -> Any:
        """Fetch an entity the actor owns, or raise ``NotFoundError``."""
        model = MODELS[kind]
        if kind == EntityKind.CLIENT:
            stmt = select(Client).where(Client.id == entity_id, Client.user_id == ctx.user_id)
        else:
            stmt = (
                select(model)
                .join(Client, model.client_id == Client.id)
                .where(model.id == entity_id, Client.user_id == ctx.user_id)
            )
        if for_update:
            stmt = stmt.with_for_update(of=model)
        result = await self.db.execute(stmt)
        entity = result.scalar_one_or_none()
        if entity is None:
            raise NotFoundError(f"{kind.value.capitalize()} not found", kind=kind.value, id=str(entity_id))
        return entity

    async def list_owned(
        self,
        ctx: ActorContext,
        kind: EntityKind,
        *,
        client_id: uuid.UUID | None = None,
        status: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Any]:
        model = MODELS[kind]
        if kind == EntityKind.CLIENT:
            stmt = select(Client).where(Client.user_id == ctx.user_id)
            if status:
                stmt = stmt.where(Client.gst_status == status)
        else:
            stmt = (
                select(model)
                .join(Client, model.client_id == Client.id)
                .where(Client.user_id == ctx.user_id)
            )
            if client_id is not None:
                stmt = stmt.where(model.client_id == client_id)
            if status:
                stmt = stmt.where(model.status == status)
        stmt = stmt.order_by(model.created_at.desc()).offset(offset).limit(limit)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    def new(kind: EntityKind, **fields: Any) -> Any:
        """Build an entity that is not yet attached to the session; the applier adds it."""
        return MODELS[kind](**fields)

    async def delete(self, kind: EntityKind, entity: Any) -> None:
        """Delete ``entity`` together with what it owns."""
        if kind == EntityKind.CLIENT:
            for child in _CLIENT_CHILDREN:
                await self.db.execute(delete(child).where(child.client_id == entity.id))
        elif kind in DOCUMENT_OWNER_FIELD:
            owner_col = getattr(Document, DOCUMENT_OWNER_FIELD[kind])
            await self.db.execute(delete(Document).where(owner_col == entity.id))
        if kind == EntityKind.RETURN:
            await self.db.execute(
                update(GSTPayment)
                .where(GSTPayment.return_id == entity.id)
                .values(return_id=None)
                .execution_options(synchronize_session=False)
            )
        await self.db.delete(entity)
        await self.db.flush()
