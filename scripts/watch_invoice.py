"""Watch one invoice's e-Transfer confirmation from a terminal.

Opens a tracker session against the portal backend, prints every state change,
and exits once the payment is confirmed or flagged as partial.

Exit codes: 0 confirmed, 1 marking the transfer sent failed (rejected or backend
unreachable), 2 partial payment (manual review), 130 interrupted.
"""

import argparse
import asyncio

from tenantpay.common.config import settings
from tenantpay.common.logging import configure_logging
from tenantpay.common.portal_client import PortalClient, PortalClientError, PortalRequestRejected
from tenantpay.common.query_cache import QueryCache
from tenantpay.common.state_machine import CONFIRMED, PARTIAL
from tenantpay.services.tracker.poller import Sleeper
from tenantpay.services.tracker.service import TrackerService


async def watch(
    invoice_id: str,
    client: PortalClient,
    mark_sent: bool = False,
    sleep: Sleeper = asyncio.sleep,
) -> int:
    """Track one invoice until it reaches a terminal state."""

    service = TrackerService(client, QueryCache(), sleep=sleep)
    finished = asyncio.Event()

    def on_transition(from_state: str, to_state: str, reason: str) -> None:
        if to_state in (CONFIRMED, PARTIAL):
            finished.set()
        print(f"{from_state} -> {to_state} ({reason})")

    try:
        try:
            session = await service.open_tracker(invoice_id, mark_sent=mark_sent, on_transition=on_transition)
        except PortalRequestRejected as exc:
            print(f"Backend refused to mark the transfer sent: {exc.code} {exc}")
            return 1
        except PortalClientError as exc:
            print(f"Could not mark the transfer sent: {exc}")
            return 1
        view = session.view()
        print(f"Watching invoice {invoice_id}: {view.state} (polling every {view.poll_interval_seconds:.0f}s)")
        if view.instructions is not None:
            print(f"Send to: {view.instructions.recipient_email}  memo: {view.instructions.memo}")
        if not session.machine.terminal:
            await finished.wait()
        final = session.view()
        print(final.message)
        return 0 if final.state == CONFIRMED else 2
    finally:
        await service.shutdown()


def main() -> None:
    """CLI entrypoint."""

    parser = argparse.ArgumentParser(description="Watch an invoice until its e-Transfer is confirmed.")
    parser.add_argument("--invoice-id", required=True)
    parser.add_argument("--base-url", default=settings.portal_api_url)
    parser.add_argument("--token", default=settings.portal_api_token)
    parser.add_argument("--mark-sent", action="store_true", help="Mark the e-Transfer as sent before watching")
    args = parser.parse_args()

    configure_logging()
    client = PortalClient(base_url=args.base_url, token=args.token)
    try:
        rc = asyncio.run(watch(args.invoice_id, client, mark_sent=args.mark_sent))
    except KeyboardInterrupt:
        print("Stopped watching.")
        rc = 130
    raise SystemExit(rc)


if __name__ == "__main__":
    main()
