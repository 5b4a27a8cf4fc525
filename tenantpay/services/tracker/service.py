"""Tracker session orchestration.

A `TrackerSession` owns one `PollingSession` record, one `Poller` and one
`ConfirmationStateMachine`, and wires the side effects of reaching a terminal
state (stop polling, invalidate cached read models, metrics). `TrackerService`
keeps at most one open session per invoice id.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable
from uuid import uuid4

from tenantpay.common.config import settings
from tenantpay.common.logging import logger, tracker_context
from tenantpay.common.metrics import (
    payment_confirmed_total,
    payment_partial_total,
    tracker_session_seconds,
    tracker_sessions_active,
    tracker_transitions_total,
)
from tenantpay.common.portal_client import PortalClient, PortalClientError
from tenantpay.common.query_cache import TENANT_INVOICES_KEY, QueryCache, invoice_key
from tenantpay.services.tracker.confirmation import ConfirmationStateMachine
from tenantpay.services.tracker.models import EtransferSettings, Invoice
from tenantpay.services.tracker.poller import POLL_INTERVAL_SECONDS, Poller, Sleeper
from tenantpay.services.tracker.presentation import build_view
from tenantpay.services.tracker.schemas import TrackerView

ETRANSFER_SETTINGS_KEY = ("etransfer-settings-tenant",)

TransitionListener = Callable[[str, str, str], None]


class TrackerAlreadyOpen(Exception):
    def __init__(self, invoice_id: str) -> None:
        super().__init__(f"a tracker is already open for invoice {invoice_id}")
        self.invoice_id = invoice_id


class TrackerNotFound(Exception):
    def __init__(self, invoice_id: str) -> None:
        super().__init__(f"no open tracker for invoice {invoice_id}")
        self.invoice_id = invoice_id


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class PollingSession:
    """Ephemeral record of one open tracker."""

    invoice_id: str
    interval_seconds: float = POLL_INTERVAL_SECONDS
    active: bool = False
    last_observed_invoice: Invoice | None = None
    session_id: str = field(default_factory=lambda: str(uuid4()))
    opened_at: datetime = field(default_factory=_now)
    snapshots: int = 0


class TrackerSession:
    """Controller for one invoice's live payment tracker."""

    def __init__(
        self,
        invoice_id: str,
        client: PortalClient,
        cache: QueryCache,
        sleep: Sleeper = asyncio.sleep,
        on_transition: TransitionListener | None = None,
        on_confirmed: Callable[[Invoice], None] | None = None,
        service_name: str | None = None,
    ) -> None:
        self.service_name = service_name or settings.service_name
        self.record = PollingSession(invoice_id=invoice_id)
        self.cache = cache
        self.poller = Poller(
            client.get_invoice,
            interval_seconds=self.record.interval_seconds,
            sleep=sleep,
            service_name=self.service_name,
        )
        self.machine = ConfirmationStateMachine(
            invoice_id,
            on_transition=self._handle_transition,
            on_confirmed=self._handle_confirmed,
            on_partial=self._handle_partial,
        )
        self.etransfer: EtransferSettings | None = None
        self._listener = on_transition
        self._on_confirmed = on_confirmed
        self._celebration_pending = False
        self.celebrations = 0
        self.closed = False

    @property
    def invoice_id(self) -> str:
        return self.record.invoice_id

    def open(self) -> asyncio.Task | None:
        """Start polling; returns the task running the first fetch.

        A session that was closed before it opened never starts polling and
        returns None.
        """

        if self.closed:
            logger.info("tracker_open_skipped reason=closed invoice_id=%s", self.invoice_id)
            return None
        with tracker_context(self.invoice_id, self.record.session_id):
            self.record.active = True
            self.record.opened_at = _now()
            tracker_sessions_active.labels(service=self.service_name).inc()
            logger.info("tracker_opened")
            return self.poller.start(self.invoice_id, self.handle_snapshot)

    def handle_snapshot(self, invoice: Invoice) -> str | None:
        self.record.last_observed_invoice = invoice
        self.record.snapshots += 1
        return self.machine.handle_snapshot(invoice)

    def close(self) -> None:
        """User cancellation or teardown. Safe to call any number of times."""

        self.poller.stop()
        if self.closed:
            return
        self.closed = True
        self.machine.close()
        self._deactivate()
        logger.info("tracker_closed state=%s", self.machine.current_state())

    def consume_celebration(self) -> bool:
        if not self._celebration_pending:
            return False
        self._celebration_pending = False
        return True

    def view(self) -> TrackerView:
        return build_view(self)

    def _deactivate(self) -> None:
        if not self.record.active:
            return
        self.record.active = False
        tracker_sessions_active.labels(service=self.service_name).dec()
        elapsed = max(0.0, (_now() - self.record.opened_at).total_seconds())
        tracker_session_seconds.labels(
            service=self.service_name,
            final_state=self.machine.current_state(),
        ).observe(elapsed)

    def _notify(self, hook: str, callback: Callable, *args) -> None:
        # runs inside poll tasks; terminal side effects still follow a failed hook
        try:
            callback(*args)
        except Exception as exc:
            logger.exception("tracker_hook_failed hook=%s error=%s", hook, exc)

    def _handle_transition(self, from_state: str, to_state: str, reason: str) -> None:
        tracker_transitions_total.labels(
            service=self.service_name,
            from_state=from_state,
            to_state=to_state,
        ).inc()
        if self._listener is not None:
            self._notify("on_transition", self._listener, from_state, to_state, reason)

    def _handle_confirmed(self, invoice: Invoice) -> None:
        self.poller.stop()
        self._deactivate()
        self.cache.invalidate(TENANT_INVOICES_KEY)
        self.cache.invalidate(invoice_key(invoice.id))
        payment_confirmed_total.labels(service=self.service_name).inc()
        self._celebration_pending = True
        self.celebrations += 1
        logger.info("payment_confirmed amount_cents=%s", invoice.amount_cents)
        if self._on_confirmed is not None:
            self._notify("on_confirmed", self._on_confirmed, invoice)

    def _handle_partial(self, invoice: Invoice) -> None:
        self.poller.stop()
        self._deactivate()
        self.cache.invalidate(invoice_key(invoice.id))
        payment_partial_total.labels(service=self.service_name).inc()
        logger.warning(
            "partial_payment_detected expected_cents=%s recorded_cents=%s manual_review_required=true",
            invoice.amount_cents,
            invoice.recorded_amount_cents,
        )


class TrackerService:
    """Registry of open tracker sessions, one per invoice id."""

    def __init__(
        self,
        client: PortalClient,
        cache: QueryCache,
        sleep: Sleeper = asyncio.sleep,
        service_name: str | None = None,
    ) -> None:
        self.client = client
        self.cache = cache
        self.sleep = sleep
        self.service_name = service_name or settings.service_name
        self.sessions: dict[str, TrackerSession] = {}

    async def open_tracker(
        self,
        invoice_id: str,
        mark_sent: bool = False,
        on_transition: TransitionListener | None = None,
        on_confirmed: Callable[[Invoice], None] | None = None,
    ) -> TrackerSession:
        """Open a session and wait for its first poll to finish.

        With `mark_sent`, the backend is first told the transfer was sent; a
        rejection from the backend propagates and no session is left open.
        """

        if invoice_id in self.sessions:
            raise TrackerAlreadyOpen(invoice_id)
        session = TrackerSession(
            invoice_id,
            self.client,
            self.cache,
            sleep=self.sleep,
            on_transition=on_transition,
            on_confirmed=on_confirmed,
            service_name=self.service_name,
        )
        self.sessions[invoice_id] = session
        try:
            if mark_sent:
                await self.client.mark_etransfer_sent(invoice_id)
                self.cache.invalidate(TENANT_INVOICES_KEY)
            session.etransfer = await self._etransfer_settings()
        except BaseException:
            if self.sessions.get(invoice_id) is session:
                del self.sessions[invoice_id]
            raise

        # close_tracker may have run while the backend calls were in flight
        if session.closed or self.sessions.get(invoice_id) is not session:
            session.close()
            return session
        first_poll = session.open()
        if first_poll is not None:
            await asyncio.wait({first_poll})
        return session

    def get_tracker(self, invoice_id: str) -> TrackerSession:
        session = self.sessions.get(invoice_id)
        if session is None:
            raise TrackerNotFound(invoice_id)
        return session

    def close_tracker(self, invoice_id: str) -> bool:
        """Close and forget a session; False when none was open."""

        session = self.sessions.pop(invoice_id, None)
        if session is None:
            return False
        session.close()
        return True

    async def shutdown(self) -> None:
        """Close every open session and the backend client."""

        sessions = list(self.sessions.values())
        self.sessions.clear()
        for session in sessions:
            session.close()
        for session in sessions:
            await session.poller.join()
        await self.client.close()

    async def _etransfer_settings(self) -> EtransferSettings | None:
        try:
            return await self.cache.fetch(ETRANSFER_SETTINGS_KEY, self.client.get_etransfer_settings)
        except PortalClientError as exc:
            logger.warning("etransfer_settings_unavailable error=%s", exc)
            return None
