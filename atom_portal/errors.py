"""
Error envelope shared by services and routers.

Every failure leaves the API as ``{"ok": false, "error": CODE, "details": ...}``
with an HTTP status code. Services raise ``ServiceError``; the handlers
registered in ``atom_portal.main`` render it.
"""

from typing import Any, Dict, Optional


class ServiceError(Exception):
    """Business-rule or validation failure with a stable error code."""

    def __init__(
        self,
        code: str,
        status_code: int = 400,
        details: Any = None,
        **extra: Any,
    ):
        super().__init__(code)
        self.code = code
        self.status_code = int(status_code)
        self.details = details
        self.extra = extra

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"ok": False, "error": self.code}
        if self.details is not None:
            payload["details"] = self.details
        payload.update(self.extra)
        return payload


class NotFoundError(ServiceError):
    def __init__(self, code: str = "NOT_FOUND", details: Any = None, **extra: Any):
        super().__init__(code, 404, details, **extra)


class ConflictError(ServiceError):
    def __init__(self, code: str, details: Any = None, **extra: Any):
        super().__init__(code, 409, details, **extra)


HTTP_STATUS_CODES: Dict[int, str] = {
    401: "NOT_AUTHENTICATED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
}


def error_payload(code: str, details: Optional[Any] = None) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"ok": False, "error": code}
    if details is not None:
        payload["details"] = details
    return payload
