"""
Salesforce API Client Error Classes

Error hierarchy for authentication, transport, validation and provider
failures, plus the classifier for Salesforce error bodies.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from .types import ErrorResponse, loads_strict


class SalesforceError(Exception):
    """Base error class for the Salesforce API client."""

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 0,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")

    def with_context(self, context: str) -> "SalesforceError":
        """
        Return a copy of this error with ``context`` prepended to the message.

        The copy keeps the concrete class and every attribute, so callers can
        add the operation name without losing the error classification.
        """
        clone = self.__class__.__new__(self.__class__)
        clone.__dict__.update(self.__dict__)
        clone.message = f"{context}: {self.message}"
        clone.args = (clone.message,)
        return clone

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "name": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "status_code": self.status_code,
            "details": self.details,
            "timestamp": self.timestamp,
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"


class NetworkError(SalesforceError):
    """Network error (connection issues, timeouts, unreadable bodies)."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("NETWORK_ERROR", message, 0, details)


class AuthenticationError(SalesforceError):
    """The login endpoint rejected the refresh-token exchange."""

    def __init__(
        self,
        message: str,
        status_code: int = 401,
        error: Optional[str] = None,
        error_description: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__("AUTHENTICATION_FAILED", message, status_code, details)
        self.error = error
        self.error_description = error_description


class AuthResponseError(SalesforceError):
    """The login endpoint answered 2xx with a body that is not a token response."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("AUTH_RESPONSE_MALFORMED", message, 0, details)


class ValidationError(SalesforceError):
    """Local validation error; no request was sent."""

    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(code, message, 0, details)


class DecodeError(SalesforceError):
    """A response body could not be decoded into the expected shape."""

    def __init__(
        self,
        message: str,
        code: str = "DECODE_ERROR",
        status_code: int = 0,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(code, message, status_code, details)


class ErrorParseError(DecodeError):
    """An error body matched neither the array nor the object error shape."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "ERROR_PARSE_FAILED", 0, details)


class APIError(SalesforceError):
    """Business error reported by Salesforce."""

    def __init__(
        self,
        message: str,
        status_code: int,
        error_code: Optional[str] = None,
        fields: Optional[List[str]] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(error_code or "API_ERROR", message, status_code, details)
        self.error_code = error_code
        self.fields = fields or []

    @classmethod
    def from_response(cls, status_code: int, status: str, body: Union[bytes, str]) -> "APIError":
        """
        Build the error for a failed response.

        The message names the classified Salesforce error when the body
        matches a known error shape, otherwise only the HTTP status line.
        """
        try:
            error = parse_error_body(body)
        except ErrorParseError:
            return cls(f"request failed with status: {status}", status_code)
        return cls(
            f"API error: {error.message} (code: {error.error_code})",
            status_code,
            error_code=error.error_code,
            fields=error.fields,
        )


class ConfigurationError(SalesforceError):
    """Configuration error."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFIGURATION_ERROR", message, 0, details)


def _error_from_object(item: Any) -> Optional[ErrorResponse]:
    if not isinstance(item, dict):
        return None
    message = item.get("message")
    error_code = item.get("errorCode")
    if not isinstance(message, str) or not isinstance(error_code, str):
        return None
    fields = item.get("fields") or []
    if not isinstance(fields, list) or not all(isinstance(f, str) for f in fields):
        return None
    return ErrorResponse(message=message, error_code=error_code, fields=list(fields))


def parse_error_body(body: Union[bytes, str]) -> ErrorResponse:
    """
    Classify a Salesforce error body.

    Salesforce returns errors either as an array of error objects or as a
    single object. The first element of a non-empty array is tried first,
    then the single-object form.

    Raises:
        ErrorParseError: If the body matches neither shape
    """
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    try:
        payload = loads_strict(body)
    except (TypeError, ValueError) as e:
        raise ErrorParseError(f"error body is not valid JSON: {e}") from e

    if isinstance(payload, list):
        error = _error_from_object(payload[0]) if payload else None
    else:
        error = _error_from_object(payload)

    if error is None:
        raise ErrorParseError("error body does not match a known error shape")
    return error


def is_salesforce_error(error: Any) -> bool:
    """Check if error is a SalesforceError."""
    return isinstance(error, SalesforceError)
