"""
Error taxonomy shared by the resolver, validators and transactional operations.

Each error carries the HTTP status it is rendered with; the handlers in
main.py turn them into the `{success: false, message}` envelope.
"""
from fastapi import status


class ComplianceError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(ComplianceError):
    status_code = status.HTTP_404_NOT_FOUND


class Unauthorized(ComplianceError):
    status_code = status.HTTP_401_UNAUTHORIZED


class Forbidden(ComplianceError):
    status_code = status.HTTP_403_FORBIDDEN


class ValidationError(ComplianceError):
    status_code = status.HTTP_400_BAD_REQUEST


class QuotaExceeded(ComplianceError):
    status_code = status.HTTP_400_BAD_REQUEST


class TransactionAborted(ComplianceError):
    """Multi-document write rolled back; the client only ever sees a generic failure."""

    def __init__(self, message: str = "Server Error"):
        super().__init__(message)


class ServiceUnavailable(ComplianceError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
