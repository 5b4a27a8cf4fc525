"""Invoice read model consumed by tracker sessions.

These are projections of backend responses. The backend owns every field;
nothing here is written back.
"""

from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

# card payments record the charged total, processing fee included
CARD_PAYMENT_METHODS = frozenset({"stripe"})


class InvoiceStatus(str, Enum):
    """Authoritative billing state."""

    OPEN = "OPEN"
    OVERDUE = "OVERDUE"
    PAID = "PAID"
    VOID = "VOID"


class TransferStatus(str, Enum):
    """Out-of-band bank transfer reconciliation state (advisory only)."""

    PENDING = "pending"
    REJECTED = "rejected"


class _ReadModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class InvoicePayment(_ReadModel):
    """One payment recorded against an invoice."""

    id: str | None = None
    amount_cents: int = Field(ge=0)
    paid_at: str | None = None
    method: str | None = None


class Invoice(_ReadModel):
    """Snapshot of one invoice's payment status."""

    id: str = Field(min_length=1)
    amount_cents: int = Field(ge=0)
    status: InvoiceStatus
    transfer_status: TransferStatus | None = Field(
        default=None,
        validation_alias=AliasChoices("transferStatus", "etransferStatus", "transfer_status"),
    )
    transfer_reject_reason: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "transferRejectReason", "etransferRejectReason", "transfer_reject_reason"
        ),
    )
    payment_method: str | None = None
    period_month: str | None = None
    due_date: str | None = None
    unit_label: str | None = Field(
        default=None,
        validation_alias=AliasChoices("unitLabel", "unit_label"),
    )
    payments: list[InvoicePayment] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _lift_unit_label(cls, data: Any) -> Any:
        # the backend nests the label as {"unit": {"unitLabel": ...}}
        if isinstance(data, dict) and "unitLabel" not in data and isinstance(data.get("unit"), dict):
            data = {**data, "unitLabel": data["unit"].get("unitLabel")}
        return data

    @property
    def is_paid(self) -> bool:
        return self.status is InvoiceStatus.PAID

    @property
    def transfer_pending(self) -> bool:
        return self.transfer_status is TransferStatus.PENDING

    @property
    def recorded_amount_cents(self) -> int:
        """Integer sum of every recorded payment."""

        return sum(payment.amount_cents for payment in self.payments)

    @property
    def transfer_payments(self) -> list[InvoicePayment]:
        """Recorded payments other than card charges."""

        return [payment for payment in self.payments if payment.method not in CARD_PAYMENT_METHODS]

    def has_amount_mismatch(self) -> bool:
        """True when transfer payments were recorded but do not add up to the amount due.

        Amounts are integer cents and compared exactly. Card payments are left
        out because their recorded amount includes the processing fee.
        """

        transfers = self.transfer_payments
        if not transfers:
            return False
        return sum(payment.amount_cents for payment in transfers) != self.amount_cents


class EtransferSettings(_ReadModel):
    """Tenant-visible e-Transfer instructions."""

    enabled: bool = Field(
        default=False,
        validation_alias=AliasChoices("etransferEnabled", "enabled"),
    )
    recipient_email: str = Field(
        default="",
        validation_alias=AliasChoices("etransferRecipientEmail", "recipientEmail", "recipient_email"),
    )
    memo_template: str = Field(
        default="{UNIT_LABEL} - {MONTH}",
        validation_alias=AliasChoices("etransferMemoTemplate", "memoTemplate", "memo_template"),
    )
