"""Domain exceptions raised by services and translated to HTTP errors by routers."""

from fastapi import HTTPException, status


class CRMError(Exception):
    """Base class for business-level failures."""
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_http(self) -> HTTPException:
        return HTTPException(status_code=self.status_code, detail=self.message)


class NotFoundError(CRMError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(CRMError):
    """Unique value already taken (phone, merchant code, email)."""
    status_code = status.HTTP_400_BAD_REQUEST


class BusinessRuleError(CRMError):
    status_code = status.HTTP_400_BAD_REQUEST


class ScopeError(CRMError):
    """Caller may not act on the requested record."""
    status_code = status.HTTP_403_FORBIDDEN
