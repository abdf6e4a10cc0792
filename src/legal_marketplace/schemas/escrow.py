"""Pydantic schemas for the Escrow API.

The escrow row is one flat table, but each status only has meaningful values
for some of its columns (no dispute fields before a dispute, no release
amount before release). Responses are therefore a union of per-status views
discriminated by ``status``, so clients never see a half-populated record.
"""

import uuid
from datetime import datetime
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from legal_marketplace.domain.enums import EscrowStatus

# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------


class CreateEscrowRequest(BaseModel):
    """Request body for opening the escrow of an assigned case."""

    lawyer_id: str = Field(..., min_length=1, max_length=128)
    total_amount: int | None = Field(
        default=None,
        gt=0,
        description="Total case fee in minor units; defaults to the agreed fee",
    )


class FundEscrowRequest(BaseModel):
    """Request body for recording that the client's payment was captured."""

    transaction_id: str = Field(
        ...,
        min_length=1,
        max_length=128,
        description="Transaction id issued by the payment provider",
        examples=["txn-1"],
    )


class RaiseDisputeRequest(BaseModel):
    reason: str = Field(..., min_length=10, max_length=2000)


class ResolveDisputeRequest(BaseModel):
    """Admin split of a disputed escrow. Percentages must add up to 100."""

    client_percent: int = Field(..., ge=0, le=100)
    lawyer_percent: int = Field(..., ge=0, le=100)

    @model_validator(mode="after")
    def _sums_to_hundred(self) -> "ResolveDisputeRequest":
        if self.client_percent + self.lawyer_percent != 100:
            raise ValueError("client_percent and lawyer_percent must sum to 100")
        return self


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------


class _EscrowView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    case_id: uuid.UUID
    client_id: str
    lawyer_id: str
    total_amount: int
    escrow_amount: int
    created_at: datetime
    updated_at: datetime


class PendingPaymentEscrow(_EscrowView):
    status: Literal["PENDING_PAYMENT"]


class FundedEscrow(_EscrowView):
    status: Literal["FUNDED"]
    transaction_id: str
    funded_at: datetime
    client_confirmed: bool
    lawyer_confirmed: bool
    client_confirmed_at: datetime | None
    lawyer_confirmed_at: datetime | None


class ReleasedEscrow(_EscrowView):
    """Released either by dual confirmation or by a dispute split."""

    status: Literal["RELEASED"]
    transaction_id: str
    funded_at: datetime
    release_amount: int
    refund_amount: int | None
    released_at: datetime
    dispute_client_percent: int | None
    dispute_lawyer_percent: int | None


class DisputedEscrow(_EscrowView):
    status: Literal["DISPUTED"]
    transaction_id: str
    funded_at: datetime
    dispute_reason: str
    disputed_by: str
    disputed_at: datetime


class RefundedEscrow(_EscrowView):
    status: Literal["REFUNDED"]
    transaction_id: str
    refund_amount: int
    refunded_at: datetime


EscrowResponse = Annotated[
    PendingPaymentEscrow | FundedEscrow | ReleasedEscrow | DisputedEscrow | RefundedEscrow,
    Field(discriminator="status"),
]

_VIEWS: dict[EscrowStatus, type[_EscrowView]] = {
    EscrowStatus.PENDING_PAYMENT: PendingPaymentEscrow,
    EscrowStatus.FUNDED: FundedEscrow,
    EscrowStatus.RELEASED: ReleasedEscrow,
    EscrowStatus.DISPUTED: DisputedEscrow,
    EscrowStatus.REFUNDED: RefundedEscrow,
}


def escrow_view(escrow: object) -> _EscrowView:
    """Build the status-specific view of an Escrow ORM row."""
    status = EscrowStatus(escrow.status)  # type: ignore[attr-defined]
    return _VIEWS[status].model_validate(escrow)


class EscrowStatusResponse(BaseModel):
    """Lightweight status check response."""

    case_id: uuid.UUID
    status: str
    client_confirmed: bool
    lawyer_confirmed: bool
    allowed_events: list[str] = Field(
        description="State machine events that can fire from the current status"
    )
