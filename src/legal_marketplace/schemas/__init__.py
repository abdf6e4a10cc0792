"""Pydantic API schemas."""

from legal_marketplace.schemas.bid import (
    BidResponse,
    CreateBidRequest,
    RejectBidRequest,
    UpdateBidRequest,
)
from legal_marketplace.schemas.case import (
    CaseResponse,
    CaseStatusResponse,
    CreateCaseRequest,
    UpdateCaseStatusRequest,
)
from legal_marketplace.schemas.common import ErrorResponse, EventResponse, HealthResponse
from legal_marketplace.schemas.consultation import (
    AvailabilityResponse,
    BlockedDateRequest,
    BookConsultationRequest,
    CancelConsultationRequest,
    CompleteConsultationRequest,
    ConfirmConsultationRequest,
    ConsultationResponse,
    RescheduleConsultationRequest,
    SetAvailabilityRequest,
    TimeSlotResponse,
)
from legal_marketplace.schemas.earnings import (
    EarningResponse,
    EarningsSummaryResponse,
    FailPayoutRequest,
    HoldEarningRequest,
    PayoutRequestBody,
    PayoutResponse,
    ProcessPayoutRequest,
    ReleaseDueResponse,
    WalletReconciliationResponse,
    WalletResponse,
)
from legal_marketplace.schemas.escrow import (
    CreateEscrowRequest,
    EscrowResponse,
    EscrowStatusResponse,
    FundEscrowRequest,
    RaiseDisputeRequest,
    ResolveDisputeRequest,
    escrow_view,
)

__all__ = [
    "AvailabilityResponse",
    "BidResponse",
    "BlockedDateRequest",
    "BookConsultationRequest",
    "CancelConsultationRequest",
    "CaseResponse",
    "CaseStatusResponse",
    "CompleteConsultationRequest",
    "ConfirmConsultationRequest",
    "ConsultationResponse",
    "CreateBidRequest",
    "CreateCaseRequest",
    "CreateEscrowRequest",
    "EarningResponse",
    "EarningsSummaryResponse",
    "ErrorResponse",
    "EscrowResponse",
    "EscrowStatusResponse",
    "EventResponse",
    "FailPayoutRequest",
    "FundEscrowRequest",
    "HealthResponse",
    "HoldEarningRequest",
    "PayoutRequestBody",
    "PayoutResponse",
    "ProcessPayoutRequest",
    "RaiseDisputeRequest",
    "RejectBidRequest",
    "ReleaseDueResponse",
    "RescheduleConsultationRequest",
    "ResolveDisputeRequest",
    "SetAvailabilityRequest",
    "TimeSlotResponse",
    "UpdateBidRequest",
    "UpdateCaseStatusRequest",
    "WalletReconciliationResponse",
    "WalletResponse",
    "escrow_view",
]
