"""
Audit logger for practitioner actions on compliance records.

Logs who changed what, when, and which dependent records moved with it.
Lines are structured ``key=value`` so any log aggregator can index them.
"""

import logging
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger("audit")


def log_practitioner_action(
    action: str,
    *,
    user_id: Any,
    entity_kind: str,
    entity_id: Any,
    details: dict[str, Any] | None = None,
) -> None:
    """Log a committed create / update / delete on a compliance record."""
    logger.info(
        "PRACTITIONER_ACTION action=%s user_id=%s entity=%s:%s time=%s details=%s",
        action,
        user_id,
        entity_kind,
        entity_id,
        datetime.now(timezone.utc).isoformat(),
        details or {},
    )
