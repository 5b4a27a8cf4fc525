"""Tracker view-model helpers."""

import pytest

from tenantpay.services.tracker.models import EtransferSettings
from tenantpay.services.tracker.presentation import (
    actions_for,
    build_steps,
    current_step,
    format_month,
    memo_text,
    transfer_notice,
)


@pytest.mark.parametrize(
    "state,history,expected",
    [
        ("WAITING", ["WAITING"], 1),
        ("PROCESSING", ["WAITING", "PROCESSING"], 2),
        ("CONFIRMED", ["WAITING", "CONFIRMED"], 3),
        ("PARTIAL", ["WAITING", "PROCESSING", "PARTIAL"], 2),
        ("PARTIAL", ["WAITING", "PARTIAL"], 1),
    ],
)
def test_current_step(state, history, expected):
    assert current_step(state, history) == expected


def test_steps_mark_earlier_steps_completed():
    steps = build_steps(2, "PROCESSING")

    assert [(s.active, s.completed) for s in steps] == [(False, True), (True, False), (False, False)]


def test_confirmed_step_is_active_not_completed():
    steps = build_steps(3, "CONFIRMED")

    assert steps[2].active and not steps[2].completed
    assert steps[0].completed and steps[1].completed


def test_actions():
    assert actions_for("WAITING") == ["close"]
    assert actions_for("PROCESSING") == ["close"]
    assert actions_for("PARTIAL") == ["close"]
    assert actions_for("CONFIRMED") == ["done"]
    assert actions_for("CLOSED") == []


def test_memo_text_fills_placeholders():
    etransfer = EtransferSettings(memo_template="Rent {UNIT_LABEL} {MONTH}")

    assert memo_text(etransfer, "Unit 4B", "2026-11") == "Rent Unit 4B Nov 2026"
    assert memo_text(etransfer, None, None) == "Rent {UNIT_LABEL} {MONTH}"


def test_format_month_passes_through_garbage():
    assert format_month("soon") == "soon"


def test_transfer_notice_only_for_rejected(make_invoice):
    assert transfer_notice(make_invoice(etransferStatus="pending")) is None
    assert transfer_notice(make_invoice(etransferStatus="rejected", etransferRejectReason="No deposit")) == "No deposit"
    assert transfer_notice(make_invoice(etransferStatus="rejected")).startswith("Your e-Transfer")
    assert transfer_notice(None) is None
