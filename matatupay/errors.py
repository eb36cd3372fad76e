"""
Domain errors raised by the services layer.

Each error carries the HTTP status the API boundary answers with; the handler
registered in ``matatupay.main`` turns them into ``{"detail", "code"}`` bodies.
"""
from typing import Optional


class MatatuPayError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"detail": self.message, "code": type(self).__name__}


class NotFound(MatatuPayError):
    status_code = 404


class Forbidden(MatatuPayError):
    status_code = 403


class InvalidFareType(MatatuPayError):
    status_code = 400


class InvalidPhoneNumber(MatatuPayError):
    status_code = 400


class InvalidAmount(MatatuPayError):
    status_code = 400


class AlreadyExists(MatatuPayError):
    status_code = 409


class AlreadyPaid(MatatuPayError):
    status_code = 409


class DuplicateRequest(MatatuPayError):
    """A charge for the same trip and phone is already in flight."""

    status_code = 409

    def __init__(self, message: str, payment_id: Optional[str] = None):
        super().__init__(message)
        self.payment_id = payment_id

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["payment_id"] = self.payment_id
        return body


class UpstreamFailure(MatatuPayError):
    status_code = 502
