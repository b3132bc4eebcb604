# app/infrastructure/db/repositories/document_repository.py
"""Attachment metadata. Updates replace an owner's whole set in place."""

from __future__ import annotations

import uuid
from typing import Iterable

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.models.compliance import DocumentSpec
from app.infrastructure.db.models import Document


class DocumentRepository:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def list_for_owner(self, owner_field: str, owner_id: uuid.UUID) -> list[Document]:
        stmt = (
            select(Document)
            .where(getattr(Document, owner_field) == owner_id)
            .order_by(Document.uploaded_at.asc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def replace_for_owner(
        self,
        owner_field: str,
        owner_id: uuid.UUID,
        client_id: uuid.UUID,
        documents: Iterable[DocumentSpec],
    ) -> list[Document]:
        """Delete the owner's existing documents and create ``documents`` in their place."""
        await self.db.execute(
            delete(Document).where(getattr(Document, owner_field) == owner_id)
        )
        created = [
            Document(
                id=uuid.uuid4(),
                client_id=client_id,
                name=doc.name,
                type=doc.type,
                file_path=doc.file_path,
                mime_type=doc.mime_type,
                file_size=doc.file_size,
                **{owner_field: owner_id},
            )
            for doc in documents
        ]
        self.db.add_all(created)
        return created
