"""
Salesforce API Client

Client for the Salesforce REST API (cases, SOQL queries, attachments,
email messages) authenticated with an OAuth2 refresh token.

The access token is refreshed on demand before it expires. Calls made
through ``request`` additionally force a refresh when Salesforce answers
401, so that the caller's next attempt uses a fresh token.
"""

import base64
import json
import logging
import os
import threading
from dataclasses import replace
from typing import Any, Literal, Mapping, Optional, Tuple
from urllib.parse import quote_plus, urlparse

import httpx

from .auth import Authenticator, resolve_timeout
from .errors import (
    SalesforceError,
    NetworkError,
    ValidationError,
    DecodeError,
    APIError,
    ConfigurationError,
    ErrorParseError,
    parse_error_body,
)
from .events import log_event
from .storage import TokenStore
from .types import (
    SalesforceConfig,
    Credentials,
    Response,
    Case,
    CaseHeaders,
    QueryResult,
    EmailMessageParams,
    AttachmentResult,
    JsonDocument,
    DEFAULT_EMAIL_STATUS,
    loads_strict,
)


HttpMethod = Literal["GET", "POST", "PUT", "PATCH", "DELETE"]

# Refresh when the token has less than this many seconds left
REFRESH_MARGIN = 5 * 60

# Salesforce limit for Attachment bodies
MAX_ATTACHMENT_SIZE = 25 * 1024 * 1024

_BODY_METHODS = ("POST", "PUT", "PATCH")


class SalesforceClient:
    """
    Salesforce REST API client.

    Safe to share between threads. The token state is guarded by a single
    lock covering validity checks, refreshes and the administrative setters;
    the session case ID has its own lock.
    """

    def __init__(self, config: SalesforceConfig, http_client: Optional[httpx.Client] = None) -> None:
        """Initialize the Salesforce client."""
        self._validate_config(config)

        self._api_version = config.api_version
        self._timeout = config.timeout
        self._debug = config.debug
        self._to_email = config.to_email
        self._custom_headers = config.headers or {}

        self._http_client = http_client or httpx.Client(timeout=self._timeout)
        self._authenticator = Authenticator(
            self._http_client,
            Credentials.from_config(config),
            debug=self._debug,
        )
        self._tokens = TokenStore()

        # Session state
        self._case_id = ""
        self._case_id_lock = threading.Lock()

        self._log(f"SalesforceClient initialized (api_version={self._api_version})")

    def _validate_config(self, config: SalesforceConfig) -> None:
        """Validate configuration."""
        if not config.client_id:
            raise ConfigurationError("client_id is required")
        if not config.client_secret:
            raise ConfigurationError("client_secret is required")
        if not config.refresh_token:
            raise ConfigurationError("refresh_token is required")
        parsed = urlparse(config.login_url or "")
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ConfigurationError(
                f"login_url must be an absolute http(s) URL, got {config.login_url!r}"
            )

    def _log(self, message: str, **fields: Any) -> None:
        """Log debug message."""
        log_event(logging.DEBUG, message, debug=self._debug, **fields)

    # =========================================================================
    # Token Management
    # =========================================================================

    def ensure_valid_token(self, timeout: Optional[float] = None) -> str:
        """
        Return a usable access token, authenticating first if needed.

        A new token is fetched when there is none or when the current one
        expires within five minutes. Concurrent callers wait for a single
        exchange and then all see its token. On failure the stored token is
        left as it was.
        """
        return self._valid_session(timeout)[0]

    def _valid_session(self, timeout: Optional[float]) -> Tuple[str, str]:
        """Validity gate; returns the token with the instance URL it was issued for."""
        with self._tokens.lock:
            if self._tokens.needs_refresh(REFRESH_MARGIN):
                self._tokens.set_token(self._authenticator.authenticate(timeout))
            return self._tokens.access_token, self._tokens.instance_url

    def force_refresh(self, timeout: Optional[float] = None) -> None:
        """Drop the current token and authenticate unconditionally."""
        with self._tokens.lock:
            self._tokens.clear_token()
            self._tokens.set_token(self._authenticator.authenticate(timeout))

    @property
    def access_token(self) -> str:
        """Current access token ("" before the first authentication)."""
        with self._tokens.lock:
            return self._tokens.access_token

    @property
    def instance_url(self) -> str:
        """Instance URL the current token was issued for."""
        with self._tokens.lock:
            return self._tokens.instance_url

    @property
    def token_expires_at(self) -> float:
        """Local expiry of the current token as a UNIX timestamp (0 if none)."""
        with self._tokens.lock:
            return self._tokens.expires_at

    def set_refresh_token(self, refresh_token: str) -> None:
        """Rotate the refresh token used for future exchanges."""
        if not refresh_token:
            raise ValidationError("refresh token is required")
        with self._tokens.lock:
            self._authenticator.credentials = replace(
                self._authenticator.credentials, refresh_token=refresh_token
            )

    def set_login_url(self, login_url: str) -> None:
        """Point the token exchange at another endpoint."""
        with self._tokens.lock:
            self._authenticator.credentials = replace(
                self._authenticator.credentials, login_url=login_url
            )

    def set_instance_url(self, instance_url: str) -> None:
        """Override the instance URL until the next authentication."""
        with self._tokens.lock:
            self._tokens.set_instance_url(instance_url)

    def set_http_client(self, http_client: httpx.Client) -> None:
        """Replace the HTTP transport."""
        with self._tokens.lock:
            self._http_client = http_client
            self._authenticator.http_client = http_client

    # =========================================================================
    # Session Case ID
    # =========================================================================

    def get_case_id(self) -> str:
        """Case ID used by default for attachments and email messages."""
        with self._case_id_lock:
            return self._case_id

    def set_case_id(self, case_id: str) -> None:
        """Remember ``case_id`` for later calls. Empty values are ignored."""
        if not case_id:
            return
        with self._case_id_lock:
            self._case_id = case_id

    # =========================================================================
    # Request Engine
    # =========================================================================

    def _data_path(self, suffix: str) -> str:
        return f"/services/data/v{self._api_version}/{suffix}"

    def _auth_headers(self, token: str) -> httpx.Headers:
        """Default headers; later assignments replace names case-insensitively."""
        headers = httpx.Headers(self._custom_headers)
        headers["Authorization"] = f"Bearer {token}"
        headers["Accept"] = "application/json"
        return headers

    def _session_for_request(self, timeout: Optional[float]) -> Tuple[str, str]:
        try:
            return self._valid_session(timeout)
        except SalesforceError as e:
            raise e.with_context("failed to get valid token") from e

    def _send(
        self,
        method: str,
        base_url: str,
        path: str,
        content: Optional[bytes],
        headers: httpx.Headers,
        timeout: Optional[float],
    ) -> httpx.Response:
        """
        Send one request and read its body; transport failures raise NetworkError.

        ``base_url`` must be the instance URL returned together with the
        token in ``headers``.
        """
        with self._tokens.lock:
            http_client = self._http_client
        url = base_url + path

        try:
            request = http_client.build_request(
                method,
                url,
                content=content,
                headers=headers,
                timeout=resolve_timeout(timeout),
            )
            response = http_client.send(request, stream=True)
        except httpx.TimeoutException as e:
            log_event(logging.ERROR, "Request timed out",
                      action="api_request", method=method, path=path, success=False, error=str(e))
            raise NetworkError(f"request failed: {e}", {"timeout": timeout}) from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            log_event(logging.ERROR, "Request failed",
                      action="api_request", method=method, path=path, success=False, error=str(e))
            raise NetworkError(f"request failed: {e}") from e

        try:
            response.read()
        except httpx.HTTPError as e:
            log_event(logging.ERROR, "Failed to read response body",
                      action="api_request", method=method, path=path,
                      status=response.status_code, success=False, error=str(e))
            raise NetworkError(f"failed to read response body: {e}") from e
        finally:
            response.close()
        return response

    def _encode_body(self, method: str, path: str, payload: Any) -> bytes:
        try:
            return json.dumps(payload, allow_nan=False).encode("utf-8")
        except (TypeError, ValueError) as e:
            log_event(logging.ERROR, "Failed to marshal request data",
                      action="api_request", method=method, path=path, success=False, error=str(e))
            raise ValidationError(f"failed to marshal request data: {e}") from e

    def request(
        self,
        path: str,
        method: str = "GET",
        payload: Any = None,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> Response:
        """
        Make an authenticated request and return the response envelope.

        HTTP error statuses do not raise; inspect ``Response.success`` and
        ``Response.code``. A 401 answer forces a token refresh so the next
        call uses a new token, but the 401 envelope is still returned and the
        request is not repeated. A failing refresh is only logged.

        Args:
            path: Path below the instance URL, e.g. ``/services/data/v64.0/limits``
            method: HTTP method
            payload: JSON-serializable body, sent for POST/PUT/PATCH only
            headers: Extra headers, applied last so they can override defaults
            timeout: Deadline for the call in seconds; client default if None

        Raises:
            SalesforceError: If no token could be obtained (message starts with
                "failed to get valid token"), the payload cannot be
                serialized, or the request never got a response
        """
        method = method.upper()
        token, base_url = self._session_for_request(timeout)

        content: Optional[bytes] = None
        if payload is not None and method in _BODY_METHODS:
            content = self._encode_body(method, path, payload)

        request_headers = self._auth_headers(token)
        if content is not None:
            request_headers["Content-Type"] = "application/json"
            request_headers["Content-Length"] = str(len(content))
        request_headers.update(headers or {})

        http_response = self._send(method, base_url, path, content, request_headers, timeout)
        response = Response.build(
            http_response.status_code,
            http_response.reason_phrase,
            http_response.content,
            http_response.headers.multi_items(),
        )

        if response.code == 401:
            log_event(logging.WARNING, "Authentication failed, attempting token refresh",
                      action="token_refresh", method=method, path=path, status_code=response.code)
            try:
                self.force_refresh(timeout)
            except SalesforceError as e:
                log_event(logging.WARNING, "Token refresh failed",
                          action="token_refresh", method=method, path=path, error=e.message)

        return response

    def _do_request(
        self,
        method: HttpMethod,
        path: str,
        body: Any = None,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> httpx.Response:
        """
        Make an authenticated request that must succeed.

        Any status >= 400 raises APIError carrying the classified Salesforce
        error when the body has a known error shape. No refresh is attempted
        on 401.
        """
        try:
            token, base_url = self._valid_session(timeout)
        except SalesforceError as e:
            raise e.with_context("failed to get token") from e

        content = self._encode_body(method, path, body) if body is not None else None

        request_headers = self._auth_headers(token)
        request_headers["Content-Type"] = "application/json"
        request_headers.update(headers or {})

        response = self._send(method, base_url, path, content, request_headers, timeout)
        if response.status_code >= 400:
            status = f"{response.status_code} {response.reason_phrase}".strip()
            log_event(logging.ERROR, "API request returned an error status",
                      action="api_request", method=method, path=path,
                      status=status, success=False, response_body=response.text)
            raise APIError.from_response(response.status_code, status, response.content)
        return response

    def _decode_json(self, response: httpx.Response, what: str) -> Any:
        try:
            return loads_strict(response.text)
        except ValueError as e:
            raise DecodeError(
                f"failed to decode {what}: {e}",
                status_code=response.status_code,
                details={"body": response.text},
            ) from e

    # =========================================================================
    # Cases
    # =========================================================================

    def create_case(
        self,
        case: Case,
        headers: Optional[CaseHeaders] = None,
        timeout: Optional[float] = None,
    ) -> Case:
        """
        Create a case.

        When Salesforce returns an ID it becomes the session case ID.

        Args:
            case: Case fields; empty fields are not sent
            headers: Optional assignment-rule / email-trigger headers
            timeout: Deadline for the call in seconds
        """
        request_headers = headers.to_dict() if headers else {}
        payload = case.to_dict()

        self._log("Creating case with data", case=payload, headers=request_headers)

        try:
            response = self._do_request(
                "POST", self._data_path("sobjects/Case/"), payload, request_headers, timeout
            )
        except SalesforceError as e:
            raise e.with_context("failed to create case") from e

        self._log("Response received", status=response.status_code, body=response.text)

        data = self._decode_json(response, "response")
        if not isinstance(data, dict):
            raise DecodeError("failed to decode response: expected a JSON object",
                              status_code=response.status_code)
        result = Case.from_dict(data)

        if result.id:
            self.set_case_id(result.id)

        return result

    def get_case(self, case_id: str, timeout: Optional[float] = None) -> Case:
        """Fetch a case by ID."""
        if not case_id:
            raise ValidationError("case ID is required")

        response = self._do_request(
            "GET", self._data_path(f"sobjects/Case/{case_id}"), timeout=timeout
        )
        data = self._decode_json(response, "response")
        if not isinstance(data, dict):
            raise DecodeError("failed to decode response: expected a JSON object",
                              status_code=response.status_code)
        return Case.from_dict(data)

    # =========================================================================
    # Query
    # =========================================================================

    def query(self, soql: str, timeout: Optional[float] = None) -> QueryResult:
        """Run a SOQL query. Only the first batch of records is returned."""
        path = self._data_path(f"query/?q={quote_plus(soql)}")

        response = self._do_request("GET", path, timeout=timeout)
        data = self._decode_json(response, "query response")
        if not isinstance(data, dict):
            raise DecodeError("failed to decode query response: expected a JSON object",
                              status_code=response.status_code)
        try:
            return QueryResult.from_dict(data)
        except (TypeError, ValueError) as e:
            raise DecodeError(
                f"failed to decode query response: {e}",
                status_code=response.status_code,
                details={"body": response.text},
            ) from e

    # =========================================================================
    # Attachments
    # =========================================================================

    def upload_attachment(
        self,
        parent_id: str,
        file_path: str,
        timeout: Optional[float] = None,
    ) -> AttachmentResult:
        """
        Upload a local file as an Attachment of ``parent_id``.

        The whole file is read into memory and sent base64-encoded, so it
        must not exceed the 25 MiB Salesforce limit.

        Raises:
            ValidationError: If an argument is empty, the file is missing,
                not a regular file, or too large
            APIError: If Salesforce rejects the upload
        """
        if not parent_id:
            raise ValidationError("parent ID is required")
        if not file_path:
            raise ValidationError("file path is required")

        if not os.path.exists(file_path):
            raise ValidationError(f"file does not exist: {file_path}", "FILE_NOT_FOUND",
                                  {"file": file_path})
        if not os.path.isfile(file_path):
            raise ValidationError(f"not a regular file: {file_path}", "FILE_NOT_FOUND",
                                  {"file": file_path})

        size = os.path.getsize(file_path)
        if size > MAX_ATTACHMENT_SIZE:
            raise ValidationError(
                f"file size exceeds 25MB limit: {size} bytes",
                "FILE_TOO_LARGE",
                {"file": file_path, "size": size, "limit": MAX_ATTACHMENT_SIZE},
            )

        try:
            with open(file_path, "rb") as f:
                raw_data = f.read()
        except OSError as e:
            raise ValidationError(f"failed to read file {file_path}: {e}") from e

        file_name = os.path.basename(file_path)
        attachment = {
            "ParentId": parent_id,
            "Name": file_name,
            "Body": base64.b64encode(raw_data).decode("ascii"),
        }

        try:
            response = self.request(
                self._data_path("sobjects/Attachment/"), "POST", attachment, timeout=timeout
            )
        except SalesforceError as e:
            raise e.with_context("API request failed") from e

        if response.code >= 400:
            try:
                error = parse_error_body(response.content)
            except ErrorParseError:
                raise APIError(
                    f"attachment upload failed with status: {response.status}",
                    response.code,
                ) from None
            raise APIError(
                f"attachment upload failed: API error: {error.message} (code: {error.error_code})",
                response.code,
                error_code=error.error_code,
                fields=error.fields,
            )

        data = response.json()
        if not isinstance(data, dict):
            raise DecodeError("failed to parse API response", status_code=response.code,
                              details={"body": response.raw})

        errors = data.get("errors") or []
        if not isinstance(errors, list):
            raise DecodeError("failed to parse API response", status_code=response.code,
                              details={"body": response.raw})

        if not data.get("success"):
            first = errors[0] if errors and isinstance(errors[0], dict) else {}
            message = "Salesforce API error"
            if first:
                message = f"{message}: {first.get('message')} (code: {first.get('errorCode')})"
            raise APIError(message, response.code, error_code=first.get("errorCode"))

        return AttachmentResult(
            success=True,
            id=data.get("id", ""),
            name=file_name,
            size=size,
        )

    def create_attachment(self, file_path: str, timeout: Optional[float] = None) -> AttachmentResult:
        """Upload a file as an Attachment of the session case."""
        if not file_path:
            raise ValidationError("file path is required")

        case_id = self.get_case_id()
        if not case_id:
            raise ValidationError("no case ID available, create a case first", "NO_CASE_ID")

        file_name = os.path.basename(file_path)
        try:
            result = self.upload_attachment(case_id, file_path, timeout=timeout)
        except SalesforceError as e:
            log_event(logging.WARNING, "Attachment upload failed",
                      action="upload attachment", success=False,
                      case_id=case_id, file=file_name, error=e.message)
            raise

        log_event(logging.INFO, "Attachment uploaded", debug=self._debug,
                  action="upload attachment", success=True,
                  case_id=case_id, file=file_name, data=result.to_dict()["data"])
        return result

    # =========================================================================
    # Email Messages
    # =========================================================================

    def email_message(self, params: EmailMessageParams, timeout: Optional[float] = None) -> JsonDocument:
        """
        Create an EmailMessage record.

        ``status`` defaults to 3, the recipient to the configured ``to_email``
        and the parent to the session case ID when not given.
        """
        payload = replace(params)
        if not payload.status:
            payload.status = DEFAULT_EMAIL_STATUS
        if not payload.to_address and self._to_email:
            payload.to_address = self._to_email
        if not payload.parent_id:
            payload.parent_id = self.get_case_id()

        try:
            response = self._do_request(
                "POST", self._data_path("sobjects/EmailMessage/"), payload.to_dict(), timeout=timeout
            )
        except SalesforceError as e:
            raise e.with_context("failed to create email message") from e

        data = self._decode_json(response, "response")
        if not isinstance(data, dict):
            raise DecodeError("failed to decode response: expected a JSON object",
                              status_code=response.status_code)
        return JsonDocument(data)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def close(self) -> None:
        """Close the HTTP client."""
        self._http_client.close()

    def __enter__(self) -> "SalesforceClient":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


def create_salesforce_client(config: Optional[SalesforceConfig] = None) -> SalesforceClient:
    """Create a new Salesforce client, reading ``SF_*`` environment variables if no config is given."""
    return SalesforceClient(config or SalesforceConfig.from_env())
