"""API request/response schemas for tracker and invoice-list endpoints."""

from pydantic import BaseModel


class OpenTrackerRequest(BaseModel):
    """Body accepted by `POST /trackers/{invoice_id}`."""

    mark_sent: bool = False


class TrackerStep(BaseModel):
    number: int
    title: str
    description: str
    active: bool
    completed: bool


class TransferInstructions(BaseModel):
    """Where and how the tenant should send the transfer."""

    recipient_email: str
    memo: str | None = None


class TrackerView(BaseModel):
    """Everything a client needs to render one tracker session."""

    invoice_id: str
    session_id: str
    state: str
    current_step: int
    steps: list[TrackerStep]
    panel: str
    message: str
    listening: bool
    can_cancel: bool
    actions: list[str]
    celebrate: bool
    poll_interval_seconds: float
    consecutive_failures: int
    invoice_status: str | None = None
    transfer_status: str | None = None
    transfer_notice: str | None = None
    amount_cents: int | None = None
    recorded_amount_cents: int | None = None
    instructions: TransferInstructions | None = None


class InvoiceListItem(BaseModel):
    """One row of the tenant invoice list."""

    id: str
    amount_cents: int
    status: str
    transfer_status: str | None = None
    period_month: str | None = None
    badge: str
    can_pay: bool
