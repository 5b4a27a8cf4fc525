"""Confirmation state machine for one tracker session.

Interprets invoice snapshots and moves WAITING -> PROCESSING -> CONFIRMED, with
PARTIAL for amount mismatches and CLOSED for user cancellation. Snapshots only
ever move the state forward; anything that would regress it is ignored.
"""

from typing import Callable

from tenantpay.common.logging import logger
from tenantpay.common.state_machine import (
    CANCELLABLE_STATES,
    CLOSED,
    CONFIRMED,
    PARTIAL,
    PROCESSING,
    STATE_RANK,
    TERMINAL_STATES,
    WAITING,
    validate_transition,
)
from tenantpay.services.tracker.models import Invoice

TransitionHook = Callable[[str, str, str], None]
InvoiceHook = Callable[[Invoice], None]


class ConfirmationStateMachine:
    """Owns the tracker state for exactly one invoice."""

    def __init__(
        self,
        invoice_id: str,
        on_transition: TransitionHook | None = None,
        on_confirmed: InvoiceHook | None = None,
        on_partial: InvoiceHook | None = None,
    ) -> None:
        self.invoice_id = invoice_id
        self._state = WAITING
        self._on_transition = on_transition
        self._on_confirmed = on_confirmed
        self._on_partial = on_partial
        self._confirmed_fired = False
        self.history: list[str] = [WAITING]

    def current_state(self) -> str:
        return self._state

    @property
    def terminal(self) -> bool:
        return self._state in TERMINAL_STATES

    def target_for(self, invoice: Invoice) -> str:
        """Classify a snapshot without applying it."""

        if invoice.has_amount_mismatch():
            return PARTIAL
        if invoice.is_paid:
            return CONFIRMED
        if invoice.transfer_pending:
            return PROCESSING
        return WAITING

    def handle_snapshot(self, invoice: Invoice) -> str | None:
        """Apply one snapshot; return the new state or None when nothing changed."""

        if invoice.id != self.invoice_id:
            logger.warning("snapshot_ignored reason=foreign_invoice got=%s", invoice.id)
            return None
        if self.terminal:
            return None

        target = self.target_for(invoice)
        if target == self._state or STATE_RANK[target] < STATE_RANK[self._state]:
            return None

        if target == PARTIAL:
            reason = (
                f"amount_mismatch expected={invoice.amount_cents} "
                f"recorded={invoice.recorded_amount_cents}"
            )
        elif target == CONFIRMED:
            reason = "invoice_paid"
        else:
            reason = "transfer_pending"
        self._transition(target, reason)

        if target == CONFIRMED and not self._confirmed_fired:
            self._confirmed_fired = True
            if self._on_confirmed is not None:
                self._on_confirmed(invoice)
        elif target == PARTIAL and self._on_partial is not None:
            self._on_partial(invoice)
        return target

    def close(self) -> bool:
        """User cancellation. Returns True when the state moved to CLOSED.

        Closing a CONFIRMED or PARTIAL session is allowed by the caller but is
        not a transition.
        """

        if self._state not in CANCELLABLE_STATES:
            return False
        self._transition(CLOSED, "user_closed")
        return True

    def _transition(self, new_state: str, reason: str) -> None:
        validate_transition(self._state, new_state)
        from_state = self._state
        self._state = new_state
        self.history.append(new_state)
        logger.info("tracker_transition from=%s to=%s reason=%s", from_state, new_state, reason)
        if self._on_transition is not None:
            self._on_transition(from_state, new_state, reason)
