# app/infrastructure/external/gst_portal_client.py
"""
GST portal client.

Pulls a taxpayer's filing history from the GST portal so a practitioner can
compare it with what the practice has on record. Read-only: nothing here
touches the compliance tables.

Flow:
  1. POST /authenticate            -> auth token (kept on the instance)
  2. GET  /taxpayers/{gstin}/{record_type}?from_year=..&to_year=..

record_type is one of: details, returns, notices, payments
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from app.core.config import settings

logger = logging.getLogger("gst_portal_client")

RECORD_TYPES = ("details", "returns", "notices", "payments")


class GSTPortalError(Exception):
    """Raised when the GST portal rejects a call or cannot be reached."""

    def __init__(self, message: str, status_code: int = 0, response: dict | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.response = response or {}


class GSTPortalClient:
    """Async client for the GST portal's taxpayer records API.

    ``transport`` is passed straight to ``httpx.AsyncClient``; tests hand in
    an ``httpx.MockTransport``.
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base = (base_url or settings.GST_PORTAL_BASE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.GST_PORTAL_TIMEOUT_SECONDS
        self.transport = transport
        self.auth_token: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return self.auth_token is not None

    async def _request(
        self,
        method: str,
        path: str,
        params: Dict[str, Any] | None = None,
        json_body: dict | None = None,
    ) -> Any:
        headers = {"Accept": "application/json"}
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"

        logger.info("GST portal %s %s", method, path)
        async with httpx.AsyncClient(
            base_url=self.base, timeout=self.timeout, transport=self.transport,
        ) as client:
            try:
                r = await client.request(method, path, headers=headers, params=params, json=json_body)
                r.raise_for_status()
            except httpx.HTTPStatusError as e:
                body: dict = {}
                try:
                    body = e.response.json()
                except ValueError:
                    pass
                logger.error("GST portal HTTP %s on %s: %s", e.response.status_code, path, e.response.text[:500])
                raise GSTPortalError(
                    body.get("message") or f"HTTP {e.response.status_code}",
                    status_code=e.response.status_code,
                    response=body,
                ) from e
            except httpx.RequestError as e:
                logger.error("GST portal request failed on %s: %s", path, e)
                raise GSTPortalError(f"Request failed: {e}") from e

        if not r.content.strip():
            return {}
        try:
            return r.json()
        except ValueError as e:
            raise GSTPortalError("Non-JSON response from GST portal", status_code=r.status_code) from e

    async def authenticate(self, username: str, password: str) -> bool:
        """Log in and keep the session token. Returns False on rejected credentials."""
        try:
            data = await self._request(
                "POST", "/authenticate", json_body={"username": username, "password": password},
            )
        except GSTPortalError as e:
            if e.status_code in (401, 403):
                logger.warning("GST portal rejected credentials for %s", username)
                self.auth_token = None
                return False
            raise

        token = data.get("auth_token") if isinstance(data, dict) else None
        self.auth_token = token
        return token is not None

    async def fetch_records(
        self,
        gstin: str,
        record_type: str,
        from_year: int | None = None,
        to_year: int | None = None,
    ) -> List[Dict[str, Any]]:
        """Fetch one kind of record for ``gstin``; ``details`` comes back as a one-item list."""
        if record_type not in RECORD_TYPES:
            raise GSTPortalError(f"Unknown record type '{record_type}'")
        if not self.is_authenticated:
            raise GSTPortalError("Not authenticated", status_code=401)
        if from_year is not None and to_year is not None and from_year > to_year:
            raise GSTPortalError("from_year must not be after to_year")

        params = {}
        if from_year is not None:
            params["from_year"] = from_year
        if to_year is not None:
            params["to_year"] = to_year

        data = await self._request("GET", f"/taxpayers/{gstin}/{record_type}", params=params or None)
        if isinstance(data, dict):
            records = data.get("data", data if record_type == "details" else [])
        else:
            records = data
        if isinstance(records, dict):
            records = [records]
        logger.info("GST portal returned %d %s record(s) for %s", len(records), record_type, gstin)
        return list(records)
