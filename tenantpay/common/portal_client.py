"""Async REST client for the tenant portal backend.

Wraps one lazily created `httpx.AsyncClient`. Every response body may arrive
inside a `{"data": ...}` envelope; callers always get the unwrapped payload
decoded into read models.
"""

from typing import Any

import httpx
from pydantic import ValidationError

from tenantpay.common.config import settings
from tenantpay.common.logging import logger
from tenantpay.services.tracker.models import EtransferSettings, Invoice


class PortalClientError(Exception):
    """Base class for every backend call failure."""


class InvoiceFetchError(PortalClientError):
    """Transport failure or non-2xx response."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class InvoiceDecodeError(PortalClientError):
    """Response body did not match the expected read model."""


class PortalRequestRejected(PortalClientError):
    """Backend refused a state-changing request with an error code."""

    def __init__(self, message: str, code: str, status_code: int) -> None:
        super().__init__(message)
        self.code = code
        self.status_code = status_code


def _unwrap(body: Any) -> Any:
    if isinstance(body, dict) and "data" in body:
        return body["data"]
    return body


def _error_detail(resp: httpx.Response) -> tuple[str, str]:
    """Pull `(message, code)` out of an `{"error": {...}}` body, if present."""

    try:
        error = resp.json().get("error") or {}
    except (ValueError, AttributeError):
        error = {}
    if not isinstance(error, dict):
        error = {}
    return str(error.get("message") or resp.text or resp.reason_phrase), str(error.get("code") or "UNKNOWN")


class PortalClient:
    """Read-mostly client for the invoice endpoints used by tracker sessions."""

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.portal_api_url).rstrip("/")
        self.token = settings.portal_api_token if token is None else token
        self.timeout = settings.http_timeout_seconds if timeout is None else timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {"accept": "application/json"}
            if self.token:
                headers["authorization"] = f"Bearer {self.token}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _get_json(self, path: str) -> Any:
        try:
            resp = await self.client().get(path)
        except httpx.HTTPError as exc:
            raise InvoiceFetchError(f"GET {path} failed: {exc}") from exc
        if resp.status_code >= 400:
            message, _ = _error_detail(resp)
            raise InvoiceFetchError(f"GET {path} returned {resp.status_code}: {message}", resp.status_code)
        try:
            return _unwrap(resp.json())
        except ValueError as exc:
            raise InvoiceDecodeError(f"GET {path} returned non-JSON body") from exc

    async def get_invoice(self, invoice_id: str) -> Invoice:
        """Fetch one invoice's status snapshot."""

        payload = await self._get_json(f"/invoices/{invoice_id}")
        try:
            return Invoice.model_validate(payload)
        except ValidationError as exc:
            raise InvoiceDecodeError(f"invoice {invoice_id} payload invalid: {exc.error_count()} errors") from exc

    async def list_invoices(self) -> list[Invoice]:
        """Fetch every invoice visible to the tenant."""

        payload = await self._get_json("/invoices")
        if not isinstance(payload, list):
            raise InvoiceDecodeError("invoice list payload is not a list")
        try:
            return [Invoice.model_validate(item) for item in payload]
        except ValidationError as exc:
            raise InvoiceDecodeError(f"invoice list payload invalid: {exc.error_count()} errors") from exc

    async def get_etransfer_settings(self) -> EtransferSettings:
        payload = await self._get_json("/invoices/etransfer-settings")
        try:
            return EtransferSettings.model_validate(payload)
        except ValidationError as exc:
            raise InvoiceDecodeError("etransfer settings payload invalid") from exc

    async def mark_etransfer_sent(self, invoice_id: str) -> None:
        """Tell the backend the tenant has sent the transfer.

        The backend moves the invoice's transfer status to `pending`; it refuses
        paid, voided and already-pending invoices.
        """

        path = f"/invoices/{invoice_id}/etransfer-sent"
        try:
            resp = await self.client().post(path)
        except httpx.HTTPError as exc:
            raise InvoiceFetchError(f"POST {path} failed: {exc}") from exc
        if resp.status_code >= 400:
            message, code = _error_detail(resp)
            logger.warning("etransfer_sent_rejected status=%s code=%s", resp.status_code, code)
            raise PortalRequestRejected(message, code, resp.status_code)
        logger.info("etransfer_marked_sent")
