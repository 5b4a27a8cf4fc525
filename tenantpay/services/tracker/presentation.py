"""View model for tracker sessions.

Only the parts of the tracker UI that encode state-machine semantics live here:
which step is active, which panel is shown, whether the session can still be
cancelled, and the one-time celebration flag.
"""

import calendar

from tenantpay.common.state_machine import (
    CANCELLABLE_STATES,
    CLOSED,
    CONFIRMED,
    PARTIAL,
    PROCESSING,
    WAITING,
)
from tenantpay.services.tracker.models import EtransferSettings, Invoice, TransferStatus
from tenantpay.services.tracker.schemas import TrackerStep, TrackerView, TransferInstructions

STEPS = (
    (1, "Send Transfer", "Send your e-Transfer using the details below"),
    (2, "Processing", "Our system is listening for your bank's notification"),
    (3, "Confirmed", "Payment verified! Your ledger has been updated"),
)

PANEL_MESSAGES = {
    WAITING: "Send your e-Transfer. Checking status every 30 seconds...",
    PROCESSING: "We're processing your payment. Checking status every 30 seconds...",
    CONFIRMED: "Payment confirmed. Thank you!",
    PARTIAL: (
        "We detected a payment but the amount doesn't match your invoice. "
        "An Admin has been notified to verify your account balance manually."
    ),
    CLOSED: "Tracker closed.",
}

PANELS = {
    WAITING: "instructions",
    PROCESSING: "processing",
    CONFIRMED: "confirmed",
    PARTIAL: "partial",
    CLOSED: "closed",
}


def format_month(period_month: str) -> str:
    """`2026-03` -> `Mar 2026`; unparseable input is returned unchanged."""

    try:
        year, month = period_month.split("-")[:2]
        return f"{calendar.month_abbr[int(month)]} {int(year)}"
    except (ValueError, IndexError):
        return period_month


def memo_text(etransfer: EtransferSettings, unit_label: str | None, period_month: str | None) -> str:
    memo = etransfer.memo_template
    if unit_label:
        memo = memo.replace("{UNIT_LABEL}", unit_label)
    if period_month:
        memo = memo.replace("{MONTH}", format_month(period_month))
    return memo


def current_step(state: str, history: list[str]) -> int:
    if state == CONFIRMED:
        return 3
    if state == PROCESSING or PROCESSING in history:
        return 2
    return 1


def build_steps(step: int, state: str) -> list[TrackerStep]:
    return [
        TrackerStep(
            number=number,
            title=title,
            description=description,
            active=number == step and state not in (PARTIAL, CLOSED),
            # the final step is shown as active, never completed
            completed=number < step and number < 3,
        )
        for number, title, description in STEPS
    ]


def actions_for(state: str) -> list[str]:
    if state == CONFIRMED:
        return ["done"]
    if state in CANCELLABLE_STATES or state == PARTIAL:
        return ["close"]
    return []


def transfer_notice(invoice: Invoice | None) -> str | None:
    if invoice is None or invoice.transfer_status is not TransferStatus.REJECTED:
        return None
    return invoice.transfer_reject_reason or "Your e-Transfer could not be found. Please contact management."


def build_view(session) -> TrackerView:
    """Render a `TrackerSession` into a `TrackerView`.

    Reading the view consumes the pending celebration, so `celebrate` is true
    exactly once per confirmed session.
    """

    state = session.machine.current_state()
    record = session.record
    invoice = record.last_observed_invoice
    step = current_step(state, session.machine.history)

    instructions = None
    if session.etransfer is not None and session.etransfer.enabled:
        instructions = TransferInstructions(
            recipient_email=session.etransfer.recipient_email,
            memo=memo_text(
                session.etransfer,
                invoice.unit_label if invoice else None,
                invoice.period_month if invoice else None,
            ),
        )

    return TrackerView(
        invoice_id=record.invoice_id,
        session_id=record.session_id,
        state=state,
        current_step=step,
        steps=build_steps(step, state),
        panel=PANELS[state],
        message=PANEL_MESSAGES[state],
        listening=record.active and state in CANCELLABLE_STATES,
        can_cancel=state in CANCELLABLE_STATES,
        actions=actions_for(state),
        celebrate=session.consume_celebration(),
        poll_interval_seconds=record.interval_seconds,
        consecutive_failures=session.poller.consecutive_failures,
        invoice_status=invoice.status.value if invoice else None,
        transfer_status=invoice.transfer_status.value if invoice and invoice.transfer_status else None,
        transfer_notice=transfer_notice(invoice),
        amount_cents=invoice.amount_cents if invoice else None,
        recorded_amount_cents=invoice.recorded_amount_cents if invoice else None,
        instructions=instructions,
    )
