"""Tenant invoice list read model.

The list is cached under `TENANT_INVOICES_KEY`; tracker sessions invalidate
that key when a payment is confirmed so the next read reflects the backend.
"""

from tenantpay.common.portal_client import PortalClient
from tenantpay.common.query_cache import TENANT_INVOICES_KEY, QueryCache
from tenantpay.services.tracker.models import Invoice, InvoiceStatus, TransferStatus
from tenantpay.services.tracker.schemas import InvoiceListItem

# OVERDUE first, then OPEN, pending transfers, then PAID/VOID
_SORT_PRIORITY = {
    InvoiceStatus.OVERDUE: 0,
    InvoiceStatus.OPEN: 1,
    InvoiceStatus.PAID: 3,
    InvoiceStatus.VOID: 4,
}
_PENDING_TRANSFER_PRIORITY = 2


def status_display(invoice: Invoice) -> str:
    """Badge label shown next to an invoice."""

    if invoice.transfer_status is TransferStatus.PENDING:
        return "Processing"
    if invoice.transfer_status is TransferStatus.REJECTED:
        return "e-Transfer Not Found"
    return invoice.status.value


def can_pay(invoice: Invoice) -> bool:
    if invoice.status in (InvoiceStatus.PAID, InvoiceStatus.VOID):
        return False
    return invoice.transfer_status is not TransferStatus.PENDING


def _priority(invoice: Invoice) -> int:
    if invoice.transfer_status is TransferStatus.PENDING:
        return _PENDING_TRANSFER_PRIORITY
    return _SORT_PRIORITY.get(invoice.status, 3)


def sort_invoices(invoices: list[Invoice]) -> list[Invoice]:
    return sorted(invoices, key=_priority)


def to_list_item(invoice: Invoice) -> InvoiceListItem:
    return InvoiceListItem(
        id=invoice.id,
        amount_cents=invoice.amount_cents,
        status=invoice.status.value,
        transfer_status=invoice.transfer_status.value if invoice.transfer_status else None,
        period_month=invoice.period_month,
        badge=status_display(invoice),
        can_pay=can_pay(invoice),
    )


class InvoiceListService:
    """Cached, sorted tenant invoice list."""

    def __init__(self, client: PortalClient, cache: QueryCache) -> None:
        self.client = client
        self.cache = cache

    async def list_invoices(self) -> list[Invoice]:
        invoices = await self.cache.fetch(TENANT_INVOICES_KEY, self.client.list_invoices)
        return sort_invoices(invoices)

    async def list_items(self) -> list[InvoiceListItem]:
        return [to_list_item(invoice) for invoice in await self.list_invoices()]
