from typing import Any, Dict, Optional


class AppError(Exception):
    """Base class for all application-level errors."""
    pass


class DomainError(AppError):
    """Base for domain logic errors."""
    pass


class InvalidStateError(DomainError):
    """The caller asked for something the current state cannot do.

    This is a programming error in the caller (e.g. asking for the next page of
    a query that has no cursor), not a runtime condition worth retrying.
    """

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class InfrastructureError(AppError):
    """Base for infrastructure-related errors (DB, API, etc)."""
    pass


class RemoteAPIError(InfrastructureError):
    """An error reported by, or while talking to, the remote core API.

    Mirrors the API's error body: a machine-readable `code`, a human `message`,
    an optional `detail` and free-form `data` (field-level validation detail).
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        detail: Optional[str] = None,
        status: Optional[int] = None,
        request_id: Optional[str] = None,
        temporary: bool = False,
        data: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.detail = detail
        self.status = status
        self.request_id = request_id
        self.temporary = temporary
        self.data = data or {}
        super().__init__(self._format())

    def _format(self) -> str:
        parts = []
        if self.code:
            parts.append(f"Code: {self.code}")
        parts.append(f"Message: {self.message}")
        if self.detail:
            parts.append(f"Detail: {self.detail}")
        if self.request_id:
            parts.append(f"Request-ID: {self.request_id}")
        return " ".join(parts)


class NetworkUnavailableError(RemoteAPIError):
    """No response was received (connection failure, DNS, timeout)."""
    pass


class UnauthorizedError(RemoteAPIError):
    """The remote API rejected the credentials (HTTP 401)."""
    pass


class ServerError(RemoteAPIError):
    """The remote API failed (5xx) or answered with something unusable."""
    pass


class ValidationFailedError(RemoteAPIError):
    """The remote API rejected the request (4xx other than 401)."""
    pass
