# app/domain/services/transition_validator.py
"""
Transition Validator.

Decides, for one requested status change, which timestamp mutations go with
it. Every transition is accepted: backward moves (Approved -> Draft,
PAID -> PENDING) are part of the manual-correction workflow, so there is no
terminal-state table here, unlike the filing workflow tables elsewhere.

    Registration  -> Submitted   submitted_at   only if unset
    Registration  -> Approved    approved_at    only if unset
    Return        => Filed       filed_at       on entry, only if unset
    Return        => Processed   processed_at   on entry, only if unset
    Notice        => REPLIED     replied_at     on entry, always now
    Payment       => PAID        paid_at        on entry, supplied date or now
    Payment       -> non-PAID    paid_at        cleared
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Mapping

from app.domain.errors import ValidationError
from app.domain.models.compliance import (
    STATUS_VALUES,
    UNSET,
    EntityKind,
    NoticeStatus,
    PaymentStatus,
    RegistrationStatus,
    ReturnStatus,
    TimestampEffect,
    TransitionDecision,
)

logger = logging.getLogger("transition_validator")

# (status reached, timestamp field) pairs that are written once and then kept
_SET_ONCE: dict[EntityKind, dict[str, str]] = {
    EntityKind.REGISTRATION: {
        RegistrationStatus.SUBMITTED.value: "submitted_at",
        RegistrationStatus.APPROVED.value: "approved_at",
    },
    EntityKind.RETURN: {
        ReturnStatus.FILED.value: "filed_at",
        ReturnStatus.PROCESSED.value: "processed_at",
    },
}


def check_status_value(kind: EntityKind, status: Any) -> str:
    """Return ``status`` as a plain string, or raise if it is not in the kind's vocabulary."""
    allowed = STATUS_VALUES[kind]
    value = status.value if hasattr(status, "value") else status
    if value not in {s.value for s in allowed}:
        raise ValidationError(
            f"Unknown {kind.value} status '{value}'",
            field="status",
            allowed=[s.value for s in allowed],
        )
    return value


def validate(
    kind: EntityKind,
    current_status: str | None,
    requested_status: Any,
    *,
    now: datetime,
    timestamps: Mapping[str, datetime | None] | None = None,
    supplied_paid_at: Any = UNSET,
) -> TransitionDecision:
    """Decide the timestamp effects of moving ``kind`` from ``current_status`` to ``requested_status``.

    ``requested_status`` may be ``UNSET`` (no status in the request), in which
    case nothing is implied. ``timestamps`` holds the entity's current values
    for the set-once fields.
    """
    if requested_status is UNSET or requested_status is None:
        return TransitionDecision(accepted=True, from_status=current_status, to_status=None)

    to_status = check_status_value(kind, requested_status)
    timestamps = timestamps or {}
    entering = to_status != current_status
    effects: list[TimestampEffect] = []

    if kind == EntityKind.REGISTRATION:
        ts_field = _SET_ONCE[kind].get(to_status)
        if ts_field and timestamps.get(ts_field) is None:
            effects.append(TimestampEffect(ts_field, now, set_if_unset=True))

    elif kind == EntityKind.RETURN:
        ts_field = _SET_ONCE[kind].get(to_status)
        if entering and ts_field and timestamps.get(ts_field) is None:
            effects.append(TimestampEffect(ts_field, now, set_if_unset=True))

    elif kind == EntityKind.NOTICE:
        if to_status == NoticeStatus.REPLIED.value and entering:
            effects.append(TimestampEffect("replied_at", now))

    elif kind == EntityKind.PAYMENT:
        if to_status == PaymentStatus.PAID.value:
            if entering:
                paid_at = supplied_paid_at if supplied_paid_at not in (UNSET, None) else now
                effects.append(TimestampEffect("paid_at", paid_at))
        else:
            effects.append(TimestampEffect("paid_at", None))

    decision = TransitionDecision(
        accepted=True,
        from_status=current_status,
        to_status=to_status,
        timestamp_effects=tuple(effects),
    )
    if decision.status_changed:
        logger.debug(
            "Transition %s %s -> %s effects=%s",
            kind.value, current_status, to_status, [e.field for e in effects],
        )
    return decision
