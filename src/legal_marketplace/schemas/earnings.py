"""Pydantic schemas for earnings, the wallet and payouts."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from legal_marketplace.domain.enums import PayoutMethod


class EarningResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    lawyer_id: str
    case_id: uuid.UUID | None
    consultation_id: uuid.UUID | None
    earning_type: str
    amount: int
    platform_fee: int
    net_amount: int
    description: str
    client_name: str | None
    status: str
    hold_reason: str | None
    available_at: datetime
    created_at: datetime


class HoldEarningRequest(BaseModel):
    reason: str = Field(..., min_length=3, max_length=1000)


class WalletResponse(BaseModel):
    """Balances in minor units."""

    model_config = ConfigDict(from_attributes=True)

    lawyer_id: str
    available_balance: int
    pending_balance: int
    escrow_balance: int
    total_earned: int
    total_withdrawn: int
    last_updated: datetime


class EarningsSummaryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    lawyer_id: str
    total_earnings: int
    total_platform_fees: int
    net_earnings: int
    total_deductions: int = 0
    pending_earnings: int
    on_hold_earnings: int
    available_earnings: int
    withdrawn_amount: int
    earnings_count: int


class WalletReconciliationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    lawyer_id: str
    balanced: bool
    stored: dict[str, int]
    expected: dict[str, int]
    discrepancies: dict[str, int]


class AccountDetails(BaseModel):
    account_name: str = Field(..., min_length=1, max_length=120)
    account_number: str = Field(..., min_length=1, max_length=64)
    bank_name: str | None = Field(default=None, max_length=120)


class PayoutRequestBody(BaseModel):
    amount: int = Field(..., gt=0, description="Amount in minor units")
    method: PayoutMethod
    account_details: AccountDetails


class ProcessPayoutRequest(BaseModel):
    transaction_id: str = Field(..., min_length=1, max_length=128)


class FailPayoutRequest(BaseModel):
    failure_reason: str = Field(..., min_length=3, max_length=1000)


class PayoutResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    lawyer_id: str
    amount: int
    method: str
    account_details: dict
    status: str
    transaction_id: str | None
    failure_reason: str | None
    created_at: datetime
    processed_at: datetime | None


class ReleaseDueResponse(BaseModel):
    released: int
    earning_ids: list[uuid.UUID]
