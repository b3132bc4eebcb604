# app/infrastructure/db/repositories/client_repository.py
"""Client lookups that go beyond kind-addressed access in the entity store."""

from __future__ import annotations

import uuid

from sqlalchemy import and_, exists, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.infrastructure.db.models import Client, GSTRegistration


class ClientRepository:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def find_duplicate(
        self,
        user_id: uuid.UUID,
        *,
        email: str | None = None,
        pan: str | None = None,
        gstin: str | None = None,
        exclude_id: uuid.UUID | None = None,
    ) -> Client | None:
        """Another of this practitioner's clients with the same email, PAN or GSTIN."""
        clauses = []
        if email:
            clauses.append(Client.email == email)
        if pan:
            clauses.append(Client.pan == pan)
        if gstin:
            clauses.append(Client.gstin == gstin)
        if not clauses:
            return None

        stmt = select(Client).where(and_(Client.user_id == user_id, or_(*clauses)))
        if exclude_id is not None:
            stmt = stmt.where(Client.id != exclude_id)
        result = await self.db.execute(stmt.limit(1))
        return result.scalar_one_or_none()

    async def has_approved_registration(self, client_id: uuid.UUID) -> bool:
        stmt = select(
            exists().where(
                GSTRegistration.client_id == client_id,
                GSTRegistration.status == "Approved",
            )
        )
        result = await self.db.execute(stmt)
        return bool(result.scalar())
