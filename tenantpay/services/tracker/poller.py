"""Fixed-cadence invoice status poller.

The first fetch is issued synchronously from `start()`; after that a timer task
issues one fetch every `interval_seconds`. Fetches run in their own tasks so a
slow response never delays the next tick. Each fetch carries a sequence number
and only responses newer than the last delivered one reach `on_snapshot`.
"""

import asyncio
from time import perf_counter
from typing import Awaitable, Callable

from tenantpay.common.config import settings
from tenantpay.common.logging import logger
from tenantpay.common.metrics import (
    tracker_poll_failures_total,
    tracker_poll_latency_seconds,
    tracker_polls_total,
    tracker_stale_responses_total,
)
from tenantpay.common.portal_client import InvoiceDecodeError, InvoiceFetchError
from tenantpay.common.tracing import tracer
from tenantpay.services.tracker.models import Invoice

POLL_INTERVAL_SECONDS = 30.0

Fetcher = Callable[[str], Awaitable[Invoice]]
SnapshotHandler = Callable[[Invoice], None]
Sleeper = Callable[[float], Awaitable[None]]


def _failure_reason(exc: Exception) -> str:
    if isinstance(exc, InvoiceDecodeError):
        return "decode"
    if isinstance(exc, InvoiceFetchError):
        return "fetch"
    return "unexpected"


class Poller:
    """Repeatedly fetch one invoice until `stop()` is called."""

    def __init__(
        self,
        fetch: Fetcher,
        interval_seconds: float = POLL_INTERVAL_SECONDS,
        sleep: Sleeper = asyncio.sleep,
        service_name: str | None = None,
    ) -> None:
        self._fetch = fetch
        self.interval_seconds = interval_seconds
        self._sleep = sleep
        self.service_name = service_name or settings.service_name
        self.invoice_id: str | None = None
        self._on_snapshot: SnapshotHandler | None = None
        self._active = False
        self._timer: asyncio.Task | None = None
        self._inflight: set[asyncio.Task] = set()
        self._issued = 0
        self._delivered = 0
        self.consecutive_failures = 0

    @property
    def active(self) -> bool:
        return self._active

    def start(self, invoice_id: str, on_snapshot: SnapshotHandler) -> asyncio.Task:
        """Begin polling; returns the task running the first fetch.

        Must be called from a running event loop.
        """

        if self._active or self._timer is not None:
            raise RuntimeError(f"poller for invoice {self.invoice_id} already started")
        self.invoice_id = invoice_id
        self._on_snapshot = on_snapshot
        self._active = True
        first = self._issue()
        self._timer = asyncio.create_task(self._run_timer(), name=f"poller-timer:{invoice_id}")
        logger.info("poller_started interval_s=%s", self.interval_seconds)
        return first

    def stop(self) -> None:
        """Cancel the timer and in-flight fetches. Idempotent.

        No `on_snapshot` call happens after this returns, including for fetches
        that complete late.
        """

        if not self._active and self._timer is None and not self._inflight:
            return
        self._active = False
        current = asyncio.current_task() if self._in_loop() else None
        if self._timer is not None:
            if self._timer is not current:
                self._timer.cancel()
            self._timer = None
        for task in list(self._inflight):
            if task is not current:
                task.cancel()
        logger.info("poller_stopped invoice_id=%s issued=%s", self.invoice_id, self._issued)

    async def join(self) -> None:
        """Wait for cancelled tasks to unwind after `stop()`."""

        pending = [task for task in self._inflight if not task.done()]
        if pending:
            await asyncio.wait(pending)

    @staticmethod
    def _in_loop() -> bool:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return False
        return True

    def _issue(self) -> asyncio.Task:
        self._issued += 1
        task = asyncio.create_task(self._poll(self._issued), name=f"poll:{self.invoice_id}:{self._issued}")
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return task

    async def _run_timer(self) -> None:
        while self._active:
            await self._sleep(self.interval_seconds)
            if not self._active:
                return
            self._issue()

    async def _poll(self, seq: int) -> None:
        tracker_polls_total.labels(service=self.service_name).inc()
        started = perf_counter()
        try:
            with tracer.start_as_current_span("tracker.poll") as span:
                span.set_attribute("invoice.id", self.invoice_id or "")
                span.set_attribute("poll.seq", seq)
                invoice = await self._fetch(self.invoice_id)
        except Exception as exc:
            if not self._active:
                return
            self.consecutive_failures += 1
            reason = _failure_reason(exc)
            tracker_poll_failures_total.labels(service=self.service_name, reason=reason).inc()
            logger.warning(
                "poll_failed seq=%s reason=%s consecutive=%s error=%s",
                seq,
                reason,
                self.consecutive_failures,
                exc,
            )
            return
        finally:
            tracker_poll_latency_seconds.labels(service=self.service_name).observe(
                max(0.0, perf_counter() - started)
            )

        if not self._active:
            return
        if seq < self._delivered:
            tracker_stale_responses_total.labels(service=self.service_name).inc()
            logger.info("stale_poll_discarded seq=%s delivered=%s", seq, self._delivered)
            return
        self._delivered = seq
        self.consecutive_failures = 0
        self._on_snapshot(invoice)
