"""Exceptions raised by the Storefront services.

Each error carries the HTTP status it maps to; main.py renders them as
``{"success": false, "message": ..., "errors": [...]}``.
"""
from typing import List, Optional


class AppError(Exception):
    """Base exception for all Storefront errors."""

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.errors = errors or []


class BadRequestError(AppError):
    status_code = 400


class UnauthorizedError(AppError):
    status_code = 401


class ForbiddenError(AppError):
    status_code = 403


class NotFoundError(AppError):
    status_code = 404

    def __init__(self, resource: str, resource_id: Optional[str] = None):
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource} not found"
        if resource_id:
            msg = f"{resource} not found: {resource_id}"
        super().__init__(msg)


class ConflictError(AppError):
    status_code = 409


class InvalidTransitionError(BadRequestError):
    """Raised when an order status change is not allowed."""

    def __init__(self, current: str, requested: str, message: Optional[str] = None):
        self.current = current
        self.requested = requested
        super().__init__(message or f"Cannot change order status from '{current}' to '{requested}'")


class PaymentGatewayError(AppError):
    """Raised when the payment provider rejects or fails a call."""

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Payment gateway error during {operation}: {detail}")


class MediaUploadError(AppError):
    def __init__(self, detail: str):
        super().__init__(f"Image upload failed: {detail}")


class MailDeliveryError(AppError):
    def __init__(self, recipient: str, detail: str):
        self.recipient = recipient
        super().__init__(f"Could not send e-mail to {recipient}: {detail}")
