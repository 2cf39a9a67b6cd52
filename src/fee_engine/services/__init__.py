"""Engine services: routing, state transitions, receipts and read models."""

from fee_engine.services.callback_listener import CallbackListener
from fee_engine.services.fee_service import FeeFilter, FeeService, FeeStatistics, FeeView
from fee_engine.services.payment_router import PaymentGatewayRouter, RouterConfig, SubmissionResult
from fee_engine.services.permit_service import PermitService, PermitStatistics
from fee_engine.services.receipt_generator import ReceiptGenerator, render_receipt_text
from fee_engine.services.state_machine import ApplyOutcome, OutcomeKind, PaymentStateMachine
from fee_engine.services.webhook_signature import compute_signature, verify_signature

__all__ = [
    "ApplyOutcome",
    "CallbackListener",
    "FeeFilter",
    "FeeService",
    "FeeStatistics",
    "FeeView",
    "OutcomeKind",
    "PaymentGatewayRouter",
    "PaymentStateMachine",
    "PermitService",
    "PermitStatistics",
    "ReceiptGenerator",
    "RouterConfig",
    "SubmissionResult",
    "compute_signature",
    "render_receipt_text",
    "verify_signature",
]
