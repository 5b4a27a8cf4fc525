"""Tenant invoice list: badges, pay eligibility, ordering and cache refresh."""

import asyncio

from tenantpay.common.query_cache import TENANT_INVOICES_KEY, QueryCache
from tenantpay.services.invoices.service import (
    InvoiceListService,
    can_pay,
    sort_invoices,
    status_display,
)


def test_status_display_prefers_transfer_state(make_invoice):
    assert status_display(make_invoice(etransferStatus="pending")) == "Processing"
    assert status_display(make_invoice(etransferStatus="rejected")) == "e-Transfer Not Found"
    assert status_display(make_invoice(status="OVERDUE")) == "OVERDUE"
    assert status_display(make_invoice(status="PAID")) == "PAID"


def test_can_pay(make_invoice):
    assert can_pay(make_invoice(status="OPEN"))
    assert can_pay(make_invoice(status="OVERDUE", etransferStatus="rejected"))
    assert not can_pay(make_invoice(status="PAID"))
    assert not can_pay(make_invoice(status="VOID"))
    assert not can_pay(make_invoice(status="OPEN", etransferStatus="pending"))


def test_sort_overdue_open_pending_paid_void(make_invoice):
    invoices = [
        make_invoice("void", status="VOID"),
        make_invoice("paid", status="PAID"),
        make_invoice("pending", status="OPEN", etransferStatus="pending"),
        make_invoice("open", status="OPEN"),
        make_invoice("overdue", status="OVERDUE"),
    ]

    assert [invoice.id for invoice in sort_invoices(invoices)] == ["overdue", "open", "pending", "paid", "void"]


def test_list_is_cached_until_invalidated(portal, make_payload):
    portal.invoice_list = [make_payload("inv-1", etransferStatus="pending")]

    async def scenario():
        cache = QueryCache()
        service = InvoiceListService(portal.client(), cache)
        first = await service.list_items()
        portal.invoice_list = [make_payload("inv-1", status="PAID")]
        cached = await service.list_items()
        cache.invalidate(TENANT_INVOICES_KEY)
        fresh = await service.list_items()
        await service.client.close()
        return first, cached, fresh

    first, cached, fresh = asyncio.run(scenario())

    assert first[0].badge == "Processing"
    assert cached[0].badge == "Processing"
    assert fresh[0].badge == "PAID"
    assert fresh[0].can_pay is False
    list_gets = [r for r in portal.requests if r.url.path.endswith("/invoices")]
    assert len(list_gets) == 2
