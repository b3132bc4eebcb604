# app/api/v1/routes/gst_portal.py
"""Read-through endpoints to the GST portal (client details, returns, notices, payments)."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from app.api.v1.deps import get_actor
from app.api.v1.envelope import ok
from app.api.v1.schemas.compliance import PortalRequest
from app.domain.models.compliance import ActorContext
from app.infrastructure.external.gst_portal_client import GSTPortalClient, GSTPortalError

logger = logging.getLogger("api.v1.gst_portal")

router = APIRouter(prefix="/gst-portal", tags=["GST Portal"])


def get_portal_client() -> GSTPortalClient:
    return GSTPortalClient()


async def _fetch(body: PortalRequest, record_type: str, client: GSTPortalClient) -> list[dict]:
    try:
        if not await client.authenticate(body.username, body.password):
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="GST portal authentication failed")
        return await client.fetch_records(body.gstin, record_type, body.from_year, body.to_year)
    except GSTPortalError as e:
        logger.error("GST portal %s fetch failed for %s: %s", record_type, body.gstin, e)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"GST portal error: {e}")


@router.post("/client-details")
async def client_details(
    body: PortalRequest,
    actor: ActorContext = Depends(get_actor),
    client: GSTPortalClient = Depends(get_portal_client),
):
    records = await _fetch(body, "details", client)
    if not records:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Client details not found")
    return ok(data=records[0])


@router.post("/returns-history")
async def returns_history(
    body: PortalRequest,
    actor: ActorContext = Depends(get_actor),
    client: GSTPortalClient = Depends(get_portal_client),
):
    if body.from_year is None or body.to_year is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="from_year and to_year are required")
    records = await _fetch(body, "returns", client)
    return ok(data=records, message=f"{len(records)} return(s)")


@router.post("/notices")
async def notices(
    body: PortalRequest,
    actor: ActorContext = Depends(get_actor),
    client: GSTPortalClient = Depends(get_portal_client),
):
    records = await _fetch(body, "notices", client)
    return ok(data=records, message=f"{len(records)} notice(s)")


@router.post("/payments-history")
async def payments_history(
    body: PortalRequest,
    actor: ActorContext = Depends(get_actor),
    client: GSTPortalClient = Depends(get_portal_client),
):
    records = await _fetch(body, "payments", client)
    return ok(data=records, message=f"{len(records)} payment(s)")
