"""HTTP surface of the tracker service."""

import asyncio

import pytest
from fastapi.testclient import TestClient

from tenantpay.common.query_cache import QueryCache
from tenantpay.services.invoices.service import InvoiceListService
from tenantpay.services.tracker import main
from tenantpay.services.tracker.service import TrackerService


async def _idle(_: float) -> None:
    await asyncio.Event().wait()


@pytest.fixture
def http(monkeypatch, portal):
    client = portal.client()
    cache = QueryCache()
    monkeypatch.setattr(main, "service", TrackerService(client, cache, sleep=_idle, service_name="test"))
    monkeypatch.setattr(main, "invoices", InvoiceListService(client, cache))
    with TestClient(main.app) as test_client:
        yield test_client


def test_open_get_close_tracker(http, portal, make_payload):
    portal.invoices["inv-1"] = make_payload(etransferStatus="pending")

    opened = http.post("/trackers/inv-1")
    assert opened.status_code == 201
    body = opened.json()
    assert body["state"] == "PROCESSING"
    assert body["current_step"] == 2
    assert body["listening"] is True
    assert [step["title"] for step in body["steps"]] == ["Send Transfer", "Processing", "Confirmed"]

    assert http.post("/trackers/inv-1").status_code == 409

    fetched = http.get("/trackers/inv-1")
    assert fetched.status_code == 200
    assert fetched.json()["session_id"] == body["session_id"]

    assert http.delete("/trackers/inv-1").status_code == 204
    assert http.get("/trackers/inv-1").status_code == 404
    assert http.delete("/trackers/inv-1").status_code == 204


def test_mark_sent_rejection_maps_to_conflict(http, portal, make_payload):
    portal.invoices["inv-1"] = make_payload(status="VOID")
    portal.reject_mark_sent = "VOIDED"

    resp = http.post("/trackers/inv-1", json={"mark_sent": True})

    assert resp.status_code == 409
    assert resp.json()["detail"]["code"] == "VOIDED"
    assert http.get("/trackers/inv-1").status_code == 404


def test_unknown_invoice_is_a_soft_poll_failure(http):
    resp = http.post("/trackers/missing")

    assert resp.status_code == 201
    assert resp.json()["state"] == "WAITING"
    assert resp.json()["consecutive_failures"] == 1


def test_confirmed_on_open(http, portal, make_payload):
    portal.invoices["inv-1"] = make_payload(status="PAID")

    body = http.post("/trackers/inv-1").json()

    assert body["state"] == "CONFIRMED"
    assert body["celebrate"] is True
    assert body["can_cancel"] is False
    assert http.get("/trackers/inv-1").json()["celebrate"] is False


def test_invoice_list(http, portal, make_payload):
    portal.invoice_list = [
        make_payload("inv-paid", status="PAID"),
        make_payload("inv-late", status="OVERDUE"),
    ]

    resp = http.get("/invoices")

    assert resp.status_code == 200
    assert [(item["id"], item["badge"], item["can_pay"]) for item in resp.json()] == [
        ("inv-late", "OVERDUE", True),
        ("inv-paid", "PAID", False),
    ]


def test_health_and_metrics(http):
    assert http.get("/health").json() == {"ok": True, "open_trackers": 0}
    metrics = http.get("/metrics")
    assert metrics.status_code == 200
    assert "tracker_polls_total" in metrics.text
