"""HTTP surface for live payment tracker sessions and the tenant invoice list."""

from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import FastAPI, Header, HTTPException, Response

from tenantpay.common.config import settings
from tenantpay.common.logging import configure_logging, invoice_id_ctx, logger, trace_id_ctx
from tenantpay.common.metrics import metrics_response
from tenantpay.common.portal_client import PortalClient, PortalClientError, PortalRequestRejected
from tenantpay.common.query_cache import QueryCache
from tenantpay.common.startup import log_startup_config
from tenantpay.common.tracing import instrument_app, setup_tracing
from tenantpay.services.invoices.service import InvoiceListService
from tenantpay.services.tracker.poller import POLL_INTERVAL_SECONDS
from tenantpay.services.tracker.schemas import InvoiceListItem, OpenTrackerRequest, TrackerView
from tenantpay.services.tracker.service import TrackerAlreadyOpen, TrackerNotFound, TrackerService

configure_logging()
setup_tracing(settings.service_name)
log_startup_config(
    ["service_name", "portal_api_url", "portal_api_token", "http_timeout_seconds"],
    poll_interval_seconds=POLL_INTERVAL_SECONDS,
)
client = PortalClient()
cache = QueryCache()
service = TrackerService(client, cache)
invoices = InvoiceListService(client, cache)


@asynccontextmanager
async def lifespan(_: FastAPI):
    """Close every open tracker (stopping its poller) on shutdown."""

    yield
    await service.shutdown()


app = FastAPI(title="TenantPay Payment Tracker", lifespan=lifespan)
instrument_app(app)


def _bind_request(invoice_id: str, x_trace_id: str | None) -> None:
    trace_id_ctx.set(x_trace_id or str(uuid4()))
    invoice_id_ctx.set(invoice_id)


@app.post("/trackers/{invoice_id}", response_model=TrackerView, status_code=201)
async def open_tracker(
    invoice_id: str,
    req: OpenTrackerRequest | None = None,
    x_trace_id: str | None = Header(default=None),
):
    """Open a tracker and return its view after the first poll."""

    _bind_request(invoice_id, x_trace_id)
    mark_sent = req.mark_sent if req is not None else False
    try:
        session = await service.open_tracker(invoice_id, mark_sent=mark_sent)
    except TrackerAlreadyOpen as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except PortalRequestRejected as exc:
        raise HTTPException(status_code=409, detail={"message": str(exc), "code": exc.code}) from exc
    except PortalClientError as exc:
        logger.error("open_tracker_failed error=%s", exc)
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return session.view()


@app.get("/trackers/{invoice_id}", response_model=TrackerView)
async def get_tracker(invoice_id: str):
    """Current view of one open tracker."""

    try:
        return service.get_tracker(invoice_id).view()
    except TrackerNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.delete("/trackers/{invoice_id}", status_code=204)
async def close_tracker(invoice_id: str, x_trace_id: str | None = Header(default=None)):
    """Close a tracker. Closing an unknown or already closed tracker succeeds."""

    _bind_request(invoice_id, x_trace_id)
    service.close_tracker(invoice_id)
    return Response(status_code=204)


@app.get("/invoices", response_model=list[InvoiceListItem])
async def list_invoices():
    """Tenant invoice list, served from cache until a tracker invalidates it."""

    try:
        return await invoices.list_items()
    except PortalClientError as exc:
        logger.error("invoice_list_failed error=%s", exc)
        raise HTTPException(status_code=502, detail=str(exc)) from exc


@app.get("/metrics")
def metrics():
    """Prometheus scrape endpoint."""

    return metrics_response()


@app.get("/health")
def health():
    """Container health probe endpoint."""

    return {"ok": True, "open_trackers": len(service.sessions)}
