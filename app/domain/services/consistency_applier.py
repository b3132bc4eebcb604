# app/domain/services/consistency_applier.py
"""
Consistency Applier.

Commits a primary update and its cascade updates as one unit of work:

  1. take the in-process lock for the primary entity; a request that finds
     it taken fails with ``ConflictError`` instead of waiting;
  2. open a session and run the caller's work inside its transaction;
  3. commit, or roll everything back on any failure.

Cross-process writers are caught by the ``version`` column on every
mutable table (SQLAlchemy ``version_id_col``): a row changed underneath us
fails the flush with ``StaleDataError``, reported as ``ConflictError``.
On PostgreSQL the primary row is also held with ``SELECT ... FOR UPDATE``.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Hashable, Iterable, TypeVar

from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from app.domain.errors import ComplianceError, ConflictError, NotFoundError, PersistenceError
from app.domain.models.compliance import (
    DOCUMENT_OWNER_FIELD,
    STATUS_FIELD,
    CascadeUpdate,
    CommittedTransition,
    DocumentSpec,
    EntityKind,
    PrimaryUpdate,
)
from app.infrastructure.db.entity_store import EntityStore
from app.infrastructure.db.repositories.document_repository import DocumentRepository

logger = logging.getLogger("consistency_applier")

T = TypeVar("T")


class EntityLockRegistry:
    """Per-entity ``asyncio.Lock`` objects, created on demand and dropped when released.

    A second writer for an entity that is already held does not queue behind
    the first: it fails with ``ConflictError`` so exactly one request wins.
    """

    def __init__(self) -> None:
        self._locks: dict[Hashable, asyncio.Lock] = {}

    @asynccontextmanager
    async def hold(self, kind: EntityKind, entity_id: Any) -> AsyncIterator[None]:
        key = (kind, entity_id)
        lock = self._locks.setdefault(key, asyncio.Lock())
        if lock.locked():
            logger.warning("Rejected concurrent write on %s %s", kind.value, entity_id)
            raise ConflictError(
                f"{kind.value.capitalize()} is being changed by another request; reload and retry",
                kind=kind.value,
                id=str(entity_id),
            )
        try:
            async with lock:
                yield
        finally:
            self._locks.pop(key, None)

    def __len__(self) -> int:
        return len(self._locks)


@dataclass
class AppliedUnit:
    """What one ``apply`` call changed, for the engine's response and the trigger."""

    events: list[CommittedTransition] = field(default_factory=list)
    targets: list[tuple[EntityKind, Any]] = field(default_factory=list)


class ConsistencyApplier:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        locks: EntityLockRegistry | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.locks = locks or EntityLockRegistry()

    async def run(
        self,
        kind: EntityKind,
        entity_id: Any,
        work: Callable[[AsyncSession], Awaitable[T]],
    ) -> T:
        """Run ``work`` as one atomic unit while holding the lock for ``(kind, entity_id)``."""
        async with self.locks.hold(kind, entity_id):
            async with self.session_factory() as session:
                try:
                    result = await work(session)
                    await session.commit()
                except StaleDataError as exc:
                    await session.rollback()
                    logger.warning("Concurrent write on %s %s: %s", kind.value, entity_id, exc)
                    raise ConflictError(
                        f"{kind.value.capitalize()} was modified concurrently; reload and retry",
                        kind=kind.value,
                        id=str(entity_id),
                    ) from exc
                except ComplianceError:
                    await session.rollback()
                    raise
                except SQLAlchemyError as exc:
                    await session.rollback()
                    logger.exception("Persistence failure on %s %s", kind.value, entity_id)
                    raise PersistenceError(
                        "Could not save changes",
                        kind=kind.value,
                        id=str(entity_id),
                    ) from exc
                return result

    async def apply(
        self,
        session: AsyncSession,
        primary: PrimaryUpdate,
        cascades: Iterable[CascadeUpdate],
        *,
        documents: list[DocumentSpec] | None = None,
    ) -> AppliedUnit:
        """Write the primary update, its document set and every cascade, then flush.

        All cascade targets are loaded before anything is mutated, so a
        missing target fails the unit without side effects.
        """
        store = EntityStore(session)
        cascades = list(cascades)

        loaded: list[tuple[CascadeUpdate, Any]] = []
        for cascade in cascades:
            target = await store.get(cascade.kind, cascade.entity_id, for_update=True)
            if target is None:
                raise NotFoundError(
                    f"Dependent {cascade.kind.value} not found",
                    kind=cascade.kind.value,
                    id=str(cascade.entity_id),
                )
            loaded.append((cascade, target))

        entity = primary.entity
        for name, value in primary.changes:
            setattr(entity, name, value)
        if inspect(entity).transient:
            session.add(entity)
        for effect in primary.decision.timestamp_effects:
            if effect.set_if_unset and getattr(entity, effect.field) is not None:
                continue
            setattr(entity, effect.field, effect.value)

        if documents:
            # owner row must exist before its documents reference it
            await session.flush()
            owner_field = DOCUMENT_OWNER_FIELD[primary.kind]
            await DocumentRepository(session).replace_for_owner(
                owner_field, entity.id, entity.client_id, documents,
            )

        unit = AppliedUnit()
        if primary.decision.status_changed:
            unit.events.append(
                CommittedTransition(
                    kind=primary.kind,
                    entity_id=entity.id,
                    client_id=getattr(entity, "client_id", None),
                    from_status=primary.decision.from_status,
                    to_status=primary.decision.to_status,
                )
            )

        for cascade, target in loaded:
            status_field = STATUS_FIELD[cascade.kind]
            before = getattr(target, status_field)
            for name, value in cascade.changes.items():
                setattr(target, name, value)
            after = getattr(target, status_field)
            unit.targets.append((cascade.kind, target))
            if after != before:
                unit.events.append(
                    CommittedTransition(
                        kind=cascade.kind,
                        entity_id=target.id,
                        client_id=target.id if cascade.kind == EntityKind.CLIENT else target.client_id,
                        from_status=before,
                        to_status=after,
                        via_cascade=True,
                    )
                )

        await session.flush()
        logger.info(
            "Applied %s %s (%d field(s), %d cascade(s))",
            primary.kind.value, entity.id, len(primary.changes), len(loaded),
        )
        return unit
