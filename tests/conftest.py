"""Shared fakes for tracker tests: a manual timer and a scripted portal backend."""

import asyncio

import httpx
import pytest

from tenantpay.common.portal_client import PortalClient
from tenantpay.services.tracker.models import Invoice


class ManualSleep:
    """Injected `sleep` that only returns when the test calls `tick()`."""

    def __init__(self) -> None:
        self.calls: list[float] = []
        self._waiters: list[asyncio.Future] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        fut = asyncio.get_running_loop().create_future()
        self._waiters.append(fut)
        try:
            await fut
        finally:
            if fut in self._waiters:
                self._waiters.remove(fut)

    @property
    def pending(self) -> int:
        return len(self._waiters)

    @staticmethod
    async def settle(rounds: int = 25) -> None:
        for _ in range(rounds):
            await asyncio.sleep(0)

    async def tick(self) -> None:
        """Fire every pending timer, then let the loop run."""

        await self.settle()
        for fut in list(self._waiters):
            if not fut.done():
                fut.set_result(None)
        await self.settle()


class FakePortal:
    """Scripted tenant portal backend served through `httpx.MockTransport`."""

    def __init__(self) -> None:
        self.invoices: dict[str, dict] = {}
        self.invoice_list: list[dict] = []
        self.etransfer = {
            "etransferEnabled": True,
            "etransferRecipientEmail": "rent@example.com",
            "etransferMemoTemplate": "{UNIT_LABEL} - {MONTH}",
        }
        self.failures: list[httpx.Response] = []
        self.reject_mark_sent: str | None = None
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if request.method == "GET" and path.endswith("/invoices/etransfer-settings"):
            return httpx.Response(200, json={"data": self.etransfer})
        if request.method == "GET" and path.endswith("/invoices"):
            return httpx.Response(200, json={"data": self.invoice_list})
        if request.method == "POST" and path.endswith("/etransfer-sent"):
            if self.reject_mark_sent:
                return httpx.Response(
                    400,
                    json={"error": {"message": "refused", "code": self.reject_mark_sent}},
                )
            invoice_id = path.split("/")[-2]
            self.invoices[invoice_id]["etransferStatus"] = "pending"
            return httpx.Response(200, json={"data": {"id": invoice_id, "etransferStatus": "pending"}})
        if request.method == "GET" and "/invoices/" in path:
            if self.failures:
                return self.failures.pop(0)
            invoice_id = path.rsplit("/", 1)[-1]
            if invoice_id not in self.invoices:
                return httpx.Response(404, json={"error": {"message": "Invoice not found", "code": "NOT_FOUND"}})
            return httpx.Response(200, json={"data": self.invoices[invoice_id]})
        return httpx.Response(404)

    def gets_for(self, invoice_id: str) -> int:
        return sum(
            1
            for req in self.requests
            if req.method == "GET" and req.url.path.endswith(f"/invoices/{invoice_id}")
        )

    def client(self) -> PortalClient:
        return PortalClient(
            base_url="http://portal.test/api/tenant",
            token="test-token",
            transport=httpx.MockTransport(self.handler),
        )


def invoice_payload(invoice_id: str = "inv-1", **overrides) -> dict:
    payload = {
        "id": invoice_id,
        "amountCents": 150000,
        "status": "OPEN",
        "etransferStatus": None,
        "periodMonth": "2026-03",
        "unit": {"unitLabel": "Unit 4B"},
        "payments": [],
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def manual_sleep() -> ManualSleep:
    return ManualSleep()


@pytest.fixture
def portal() -> FakePortal:
    return FakePortal()


@pytest.fixture
def make_invoice():
    """Build `Invoice` snapshots from wire-shaped overrides."""

    def _make(invoice_id: str = "inv-1", **overrides) -> Invoice:
        return Invoice.model_validate(invoice_payload(invoice_id, **overrides))

    return _make


@pytest.fixture
def make_payload():
    return invoice_payload
