"""Standardized error payloads and service-level HTTP errors."""
from typing import Any

from fastapi import HTTPException, status


def error_response(code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    """Return a standardized error payload."""

    payload: dict[str, Any] = {"error": {"code": code, "message": message}}
    if details:
        payload["error"]["details"] = details
    return payload


class ServiceError(HTTPException):
    """HTTPException carrying a stable error code in the standard envelope.

    Subclasses fix ``code``, ``http_status`` and a default ``message`` so services
    can ``raise JobNotFound()`` and routers stay free of error mapping.
    """

    code = "SERVICE_ERROR"
    http_status = status.HTTP_400_BAD_REQUEST
    message = "The request could not be processed."

    def __init__(
        self,
        message: str | None = None,
        *,
        details: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.message = message or self.message
        self.details = details
        super().__init__(
            status_code=self.http_status,
            detail=error_response(self.code, self.message, details),
            headers=headers,
        )


# --- Validation / precondition errors (never retried) --------------------
class UserNotFound(ServiceError):
    code = "USER_NOT_FOUND"
    http_status = status.HTTP_404_NOT_FOUND
    message = "User not found."


class JobNotFound(ServiceError):
    code = "JOB_NOT_FOUND"
    http_status = status.HTTP_404_NOT_FOUND
    message = "Job not found."


class JobNotAssigned(ServiceError):
    code = "JOB_NOT_ASSIGNED"
    http_status = status.HTTP_409_CONFLICT
    message = "Job must have an assigned helper before it can be funded."


class InvalidAmount(ServiceError):
    code = "INVALID_AMOUNT"
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY
    message = "Amount must be a positive value with at most two decimal places."


class PaymentAlreadyActive(ServiceError):
    code = "PAYMENT_ALREADY_ACTIVE"
    http_status = status.HTTP_409_CONFLICT
    message = "This job already has an active escrow payment."


class NoPayoutAccount(ServiceError):
    code = "NO_PAYOUT_ACCOUNT"
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY
    message = "The assigned helper has not finished setting up payouts."


class PaymentNotFound(ServiceError):
    code = "PAYMENT_NOT_FOUND"
    http_status = status.HTTP_404_NOT_FOUND
    message = "Payment not found."


class NotInEscrow(ServiceError):
    code = "NOT_IN_ESCROW"
    http_status = status.HTTP_409_CONFLICT
    message = "Payment is not in escrow."


class NotRefundable(ServiceError):
    code = "NOT_REFUNDABLE"
    http_status = status.HTTP_409_CONFLICT
    message = "Payment can no longer be refunded."


class ConnectAccountNotFound(ServiceError):
    code = "CONNECT_ACCOUNT_NOT_FOUND"
    http_status = status.HTTP_404_NOT_FOUND
    message = "No payout account found for user."


class ForbiddenActor(ServiceError):
    code = "FORBIDDEN_ACTOR"
    http_status = status.HTTP_403_FORBIDDEN
    message = "This API key may not perform this action."


# --- Processor / infrastructure errors -----------------------------------
class ProcessorUnavailable(ServiceError):
    """The processor could not be reached or failed transiently; safe to retry."""

    code = "PROCESSOR_UNAVAILABLE"
    http_status = status.HTTP_503_SERVICE_UNAVAILABLE
    message = "Something went wrong talking to the payment processor, please try again."

    def __init__(self, message: str | None = None, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            message,
            details={"retryable": True, **(details or {})},
            headers={"Retry-After": "5"},
        )


class ProcessorRejected(ServiceError):
    """The processor refused the operation; retrying the same request will not help."""

    code = "PROCESSOR_REJECTED"
    http_status = status.HTTP_502_BAD_GATEWAY
    message = "The payment processor rejected the operation."

    def __init__(self, message: str | None = None, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, details={"retryable": False, **(details or {})})


class PaymentStateDrift(ServiceError):
    """Money moved at the processor but the local record could not be updated."""

    code = "PAYMENT_STATE_DRIFT"
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "The payment was processed but could not be recorded; it will be reconciled."

    def __init__(self, message: str | None = None, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, details={"retryable": False, **(details or {})})
