"""
KU SHEET error types.
"""

from typing import Any, Optional


class KuSheetError(Exception):
    def __init__(self, code: str, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.details = details


class PayloadError(KuSheetError):
    """PromptPay payload could not be built from the given input."""


class InvalidInputError(PayloadError):
    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__("invalid_input", message, details)


class InvalidFormatError(PayloadError):
    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__("invalid_format", message, details)


class HttpError(KuSheetError):
    def __init__(self, status_code: int, message: str, code: str = "http_error"):
        super().__init__(code, message, {"status_code": status_code})
        self.status_code = status_code


class AuthError(HttpError):
    def __init__(self, message: str):
        super().__init__(401, message, code="auth_error")


class ForbiddenError(HttpError):
    def __init__(self, message: str):
        super().__init__(403, message, code="forbidden")


class ConnectionError(KuSheetError):
    def __init__(self, message: str):
        super().__init__("connection_error", message)


class SendError(KuSheetError):
    """Both the socket and the REST path failed; ``content`` is kept for a retry."""

    def __init__(self, message: str, content: str):
        super().__init__("send_failed", message, {"content": content})
        self.content = content


class PaymentExpiredError(KuSheetError):
    def __init__(self, session_id: str):
        super().__init__("expired", f"PromptPay session {session_id} expired before payment", {"session_id": session_id})
        self.session_id = session_id
