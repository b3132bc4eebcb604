# app/domain/services/cascade_resolver.py
"""
Cascade Resolver.

Turns an accepted transition into the list of dependent-entity updates it
implies. Pure function: no I/O, no recursion. Cascades are exactly one hop
deep, so a cascaded status never produces further cascades or timestamp
effects on its target (a return filed through its payment keeps
``filed_at`` untouched).
"""

from __future__ import annotations

from uuid import UUID

from app.domain.models.compliance import (
    CascadeUpdate,
    ClientGSTStatus,
    EntityKind,
    PaymentStatus,
    RegistrationStatus,
    ReturnStatus,
    TransitionDecision,
)


def resolve(
    kind: EntityKind,
    entity_id: UUID,
    transition: TransitionDecision,
    *,
    client_id: UUID | None = None,
    return_id: UUID | None = None,
    return_linked: bool = False,
) -> list[CascadeUpdate]:
    """Return the cascade list for ``transition`` on entity ``entity_id``.

    ``client_id`` is the owning client; ``return_id`` is the payment's
    effective linked return (request value if supplied, stored value otherwise).
    ``return_linked`` is true when the request itself carries ``return_id``.

    A cascade follows the request, not the stored delta: re-sending ``PAID``
    or ``Approved`` re-asserts the dependent status, and linking a return to
    a payment that is already PAID files that return.
    """
    cascades: list[CascadeUpdate] = []

    if kind == EntityKind.PAYMENT:
        resulting = transition.to_status or transition.from_status
        requested = transition.to_status is not None or return_linked
        if resulting == PaymentStatus.PAID.value and requested and return_id is not None:
            cascades.append(
                CascadeUpdate(EntityKind.RETURN, return_id, {"status": ReturnStatus.FILED.value})
            )

    elif kind == EntityKind.REGISTRATION and transition.to_status == RegistrationStatus.APPROVED.value:
        if client_id is None:
            raise ValueError(f"registration {entity_id} has no owning client")
        cascades.append(
            CascadeUpdate(EntityKind.CLIENT, client_id, {"gst_status": ClientGSTStatus.ACTIVE.value})
        )

    return cascades
