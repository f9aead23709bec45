"""
HTTP ledger client.

Posts entries to the ledger REST API with aiohttp and classifies responses:
2xx is a receipt, a client error is a definite rejection, everything else
(5xx, throttling, timeouts, broken bodies) is ambiguous.
"""

import asyncio
from typing import Any

import aiohttp
from loguru import logger

from settlement.services.ledger.client import LedgerClient, LedgerEntry, LedgerReceipt
from settlement.utils.exceptions import AmbiguousLedgerOutcome, DefiniteLedgerRejection


# Client errors that mean the ledger refused the entry for good.
# 409 is absent: it reports a request with the same idempotency key
# still in flight.
DEFINITE_REJECTION_STATUSES = frozenset({400, 401, 403, 404, 410, 422})


class HttpLedgerClient(LedgerClient):
    """Ledger client speaking JSON over HTTP."""

    def __init__(
        self,
        base_url: str,
        api_token: str | None = None,
        timeout_seconds: float = 10.0,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        """
        Initialize HTTP ledger client.

        Args:
            base_url: Ledger API base URL (entries are posted to /entries)
            api_token: Optional bearer token
            timeout_seconds: Total timeout per posting
            session: Shared aiohttp session (created lazily if None)
        """
        self.base_url = base_url.rstrip("/")
        self.api_token = api_token
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._session = session
        self._owns_session = session is None

    def _get_session(self) -> aiohttp.ClientSession:
        """Return the HTTP session, creating it on first use."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True
        return self._session

    def _headers(self, entry: LedgerEntry) -> dict[str, str]:
        """Request headers for a posting."""
        headers = {
            "Content-Type": "application/json",
            "Idempotency-Key": entry.idempotency_key,
        }
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"
        return headers

    async def post(self, entry: LedgerEntry) -> LedgerReceipt:
        """Post an entry; see LedgerClient.post for the outcome contract."""
        url = f"{self.base_url}/entries"
        session = self._get_session()

        try:
            async with session.post(
                url,
                json=entry.to_payload(),
                headers=self._headers(entry),
                timeout=self.timeout,
            ) as response:
                status = response.status
                try:
                    body: Any = await response.json(content_type=None)
                except (aiohttp.ContentTypeError, ValueError):
                    body = None
        except asyncio.TimeoutError as e:
            raise AmbiguousLedgerOutcome(
                f"Ledger timeout after {self.timeout.total}s",
                {"idempotency_key": entry.idempotency_key},
            ) from e
        except aiohttp.ClientError as e:
            raise AmbiguousLedgerOutcome(
                f"Ledger connection error: {e}",
                {"idempotency_key": entry.idempotency_key},
            ) from e

        return self._classify(entry, status, body)

    def _classify(
        self, entry: LedgerEntry, status: int, body: Any
    ) -> LedgerReceipt:
        """Map an HTTP response to a receipt or a ledger error."""
        details = {
            "status": status,
            "idempotency_key": entry.idempotency_key,
        }

        if 200 <= status < 300:
            ledger_ref = None
            if isinstance(body, dict):
                ledger_ref = body.get("ledgerRef") or body.get("id")
            if not ledger_ref:
                # Money may have moved; never treat this as a failure
                raise AmbiguousLedgerOutcome(
                    "Ledger accepted the entry without returning a reference",
                    details,
                )
            return LedgerReceipt(
                ledger_ref=str(ledger_ref),
                duplicate=bool(body.get("duplicate", False)),
            )

        reason = None
        if isinstance(body, dict):
            reason = body.get("error") or body.get("message")

        if status in DEFINITE_REJECTION_STATUSES:
            logger.warning(
                "Ledger rejected entry",
                extra={**details, "reason": reason},
            )
            raise DefiniteLedgerRejection(
                reason or f"Ledger rejected entry with HTTP {status}",
                details,
            )

        raise AmbiguousLedgerOutcome(
            reason or f"Ledger returned HTTP {status}",
            details,
        )

    async def close(self) -> None:
        """Close the HTTP session if this client created it."""
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
