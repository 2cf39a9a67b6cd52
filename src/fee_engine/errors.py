"""Exceptions raised by the payment lifecycle engine."""

from __future__ import annotations

from uuid import UUID


class PaymentEngineError(Exception):
    """Base class for engine errors."""


class ValidationError(PaymentEngineError):
    """Request rejected before anything was written."""

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) or "Invalid request")


class PaymentValidationError(ValidationError):
    """Payment request rejected before any attempt was created."""


class PaymentInProgressError(PaymentEngineError):
    """Another attempt already holds the single-flight lock for this fee."""

    def __init__(self, fee_id: UUID, attempt_id: UUID | None = None):
        self.fee_id = fee_id
        self.attempt_id = attempt_id
        super().__init__(f"Payment in progress for fee {fee_id}")


class TargetNotFoundError(PaymentEngineError):
    """Fee or permit referenced by a request does not exist."""

    def __init__(self, target_type: str, target_id: UUID | str):
        self.target_type = target_type
        self.target_id = target_id
        super().__init__(f"{target_type} {target_id} not found")


class AttemptNotFoundError(PaymentEngineError):
    """Payment attempt could not be resolved."""

    def __init__(self, reference: UUID | str):
        self.reference = reference
        super().__init__(f"Payment attempt {reference} not found")


class InvalidTransitionError(PaymentEngineError):
    """Raised when an invalid state transition is attempted."""

    def __init__(
        self,
        entity: str,
        from_status: str,
        to_status: str,
        reason: str | None = None,
    ):
        self.entity = entity
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid {entity} transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class WorkerPassNotAllowedError(PaymentEngineError):
    """Worker passes can only be issued for approved or in-progress permits."""

    def __init__(self, permit_id: UUID, permit_status: str):
        self.permit_id = permit_id
        self.permit_status = permit_status
        super().__init__(
            f"Cannot issue worker pass for permit {permit_id} in status '{permit_status}'"
        )


class GatewayError(Exception):
    """Transport-level failure talking to a payment processor.

    The outcome of the payment is unknown; the attempt stays in
    ``processing`` until a callback or manual refresh resolves it.
    """

    def __init__(self, category: str, message: str, intent_id: str | None = None):
        self.category = category
        self.intent_id = intent_id
        super().__init__(message)


class GatewayTimeoutError(GatewayError):
    """Processor did not answer in time."""


class ReceiptNotIssuableError(PaymentEngineError):
    """Receipts exist only for succeeded attempts that were applied to a fee."""

    def __init__(self, attempt_id: UUID, status: str, applied: bool):
        self.attempt_id = attempt_id
        self.status = status
        self.applied = applied
        super().__init__(
            f"Cannot issue receipt for attempt {attempt_id} (status '{status}', applied={applied})"
        )


class FeeNotWaivableError(PaymentEngineError):
    """Fee cannot be waived in its current state."""

    def __init__(self, fee_id: UUID, reason: str):
        self.fee_id = fee_id
        self.reason = reason
        super().__init__(f"Cannot waive fee {fee_id}: {reason}")
