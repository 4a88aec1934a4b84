"""
Salesforce API Client Type Definitions

Configuration, credentials, Salesforce object shapes and the uniform
response envelope returned by the generic request path.
"""

import json
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple


logger = logging.getLogger("sf_api_client")

DEFAULT_LOGIN_URL = "https://login.salesforce.com/services/oauth2/token"
DEFAULT_API_VERSION = "64.0"
DEFAULT_TIMEOUT = 30.0


def _reject_constant(name: str) -> Any:
    raise ValueError(f"invalid JSON constant: {name}")


def loads_strict(text: str) -> Any:
    """
    Parse JSON text, rejecting the NaN/Infinity extensions.

    Raises:
        ValueError: If the text is not JSON or nests too deeply to decode
    """
    try:
        return json.loads(text, parse_constant=_reject_constant)
    except RecursionError as e:
        raise ValueError(f"JSON nesting too deep: {e}") from e


def is_valid_json(text: str) -> bool:
    """Check whether text is syntactically valid JSON."""
    try:
        loads_strict(text)
    except ValueError:
        return False
    return True


@dataclass
class SalesforceConfig:
    """Client configuration: OAuth2 credentials plus transport settings."""

    # Connected app consumer key
    client_id: str
    # Connected app consumer secret
    client_secret: str
    # Long-lived refresh token exchanged for access tokens
    refresh_token: str
    # OAuth2 token endpoint
    login_url: str = DEFAULT_LOGIN_URL
    # OAuth2 grant type sent with the exchange
    grant_type: str = "refresh_token"
    # REST API version used for every data path
    api_version: str = DEFAULT_API_VERSION
    # Request timeout in seconds (default: 30)
    timeout: float = DEFAULT_TIMEOUT
    # Emit info-level events (default: False)
    debug: bool = False
    # Default recipient for email messages
    to_email: Optional[str] = None
    # Extra headers sent with every authenticated request
    headers: Optional[Dict[str, str]] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SalesforceConfig":
        """
        Create from a mapping, optionally nested under a ``salesforce`` key.

        This is the shape a YAML configuration file decodes to.
        """
        section = data.get("salesforce", data)
        timeout = section.get("timeout")
        return cls(
            client_id=section.get("client_id", ""),
            client_secret=section.get("client_secret", ""),
            refresh_token=section.get("refresh_token", ""),
            login_url=section.get("login_url") or DEFAULT_LOGIN_URL,
            grant_type=section.get("grant_type") or "refresh_token",
            api_version=str(section.get("api_version") or DEFAULT_API_VERSION),
            timeout=float(timeout) if timeout is not None else DEFAULT_TIMEOUT,
            debug=bool(section.get("debug", False)),
            to_email=section.get("to_email") or None,
            headers=section.get("headers"),
        )

    @classmethod
    def from_env(cls, prefix: str = "SF_") -> "SalesforceConfig":
        """Create from environment variables (``SF_CLIENT_ID`` and friends)."""
        env_timeout = os.environ.get(f"{prefix}TIMEOUT", "")
        timeout = DEFAULT_TIMEOUT
        if env_timeout.strip():
            try:
                timeout = float(env_timeout)
            except ValueError:
                logger.warning(f"Invalid {prefix}TIMEOUT value '{env_timeout}', using default {DEFAULT_TIMEOUT}")

        return cls(
            client_id=os.environ.get(f"{prefix}CLIENT_ID", ""),
            client_secret=os.environ.get(f"{prefix}CLIENT_SECRET", ""),
            refresh_token=os.environ.get(f"{prefix}REFRESH_TOKEN", ""),
            login_url=os.environ.get(f"{prefix}LOGIN_URL") or DEFAULT_LOGIN_URL,
            grant_type=os.environ.get(f"{prefix}GRANT_TYPE") or "refresh_token",
            api_version=os.environ.get(f"{prefix}API_VERSION") or DEFAULT_API_VERSION,
            timeout=timeout,
            debug=os.environ.get(f"{prefix}DEBUG", "").lower() in ("1", "true", "yes", "on"),
            to_email=os.environ.get(f"{prefix}TO_EMAIL") or None,
        )


@dataclass(frozen=True)
class Credentials:
    """Credentials for the refresh-token exchange. Replaced, never mutated."""

    client_id: str
    client_secret: str
    refresh_token: str
    login_url: str
    grant_type: str = "refresh_token"

    @classmethod
    def from_config(cls, config: SalesforceConfig) -> "Credentials":
        return cls(
            client_id=config.client_id,
            client_secret=config.client_secret,
            refresh_token=config.refresh_token,
            login_url=config.login_url,
            grant_type=config.grant_type,
        )

    def to_form(self) -> Dict[str, str]:
        """Form fields for the token endpoint."""
        return {
            "grant_type": self.grant_type,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "refresh_token": self.refresh_token,
        }


@dataclass
class TokenResult:
    """Access token minted by the login endpoint."""

    access_token: str
    instance_url: str
    expires_at: float
    token_type: str = "Bearer"
    issued_at: Optional[str] = None
    id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any], expires_at: float) -> "TokenResult":
        """Create from the token endpoint response."""
        return cls(
            access_token=data["access_token"],
            instance_url=data["instance_url"].rstrip("/"),
            expires_at=expires_at,
            token_type=data.get("token_type", "Bearer"),
            issued_at=data.get("issued_at"),
            id=data.get("id"),
        )


class JsonDocument(Mapping):
    """
    Read-only view over a JSON object whose shape is not known in advance.

    Nested objects are returned as JsonDocument as well, so lookups can be
    chained: ``record["attributes"]["type"]``.
    """

    def __init__(self, data: Dict[str, Any]) -> None:
        self._data = dict(data)

    @staticmethod
    def _wrap(value: Any) -> Any:
        if isinstance(value, dict):
            return JsonDocument(value)
        if isinstance(value, list):
            return [JsonDocument._wrap(v) for v in value]
        return value

    def __getitem__(self, key: str) -> Any:
        return self._wrap(self._data[key])

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def to_dict(self) -> Dict[str, Any]:
        """Return the underlying parsed JSON as plain dicts and lists."""
        return json.loads(json.dumps(self._data))

    def __repr__(self) -> str:
        return f"JsonDocument({self._data!r})"


@dataclass(frozen=True)
class Response:
    """
    Uniform result of the generic request path.

    ``data`` carries the body text unchanged when it is valid JSON and is
    None otherwise; ``raw`` always carries the body. Headers keep only the
    first value seen for each (lower-cased) header name.
    """

    success: bool
    code: int
    status: str
    raw: str
    content: bytes = b""
    data: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def build(
        cls,
        code: int,
        reason: str,
        content: bytes,
        header_items: Iterable[Tuple[str, str]] = (),
    ) -> "Response":
        headers: Dict[str, str] = {}
        for name, value in header_items:
            headers.setdefault(name.lower(), value)

        raw = content.decode("utf-8", errors="replace")
        return cls(
            success=200 <= code < 300,
            code=code,
            status=f"{code} {reason}".strip(),
            raw=raw,
            content=content,
            data=raw if is_valid_json(raw) else None,
            headers=headers,
        )

    def json(self) -> Any:
        """Parsed ``data``, or None when the body was not JSON."""
        if self.data is None:
            return None
        return loads_strict(self.data)


@dataclass
class ErrorResponse:
    """Error object reported by Salesforce."""

    message: str
    error_code: str
    fields: List[str] = field(default_factory=list)


def _case_field(api_name: str) -> Any:
    return field(default=None, metadata={"api_name": api_name})


@dataclass
class Case:
    """Salesforce Case record."""

    id: Optional[str] = _case_field("Id")
    case_number: Optional[str] = _case_field("CaseNumber")
    subject: Optional[str] = _case_field("Subject")
    description: Optional[str] = _case_field("Description")
    status: Optional[str] = _case_field("Status")
    priority: Optional[str] = _case_field("Priority")
    origin: Optional[str] = _case_field("Origin")
    record_type_id: Optional[str] = _case_field("RecordTypeId")
    account_id: Optional[str] = _case_field("AccountId")
    contact_id: Optional[str] = _case_field("ContactId")
    supplied_name: Optional[str] = _case_field("SuppliedName")
    supplied_email: Optional[str] = _case_field("SuppliedEmail")
    supplied_country: Optional[str] = _case_field("SuppliedCountry__c")
    supplied_phone: Optional[str] = _case_field("SuppliedPhone")
    ip_address: Optional[str] = _case_field("IP_Address__c")
    severity: Optional[str] = _case_field("Severity__c")
    product: Optional[str] = _case_field("Product__c")
    operating_system: Optional[str] = _case_field("Operating_System__c")
    web_queue_email: Optional[str] = _case_field("Web_Queue_Email__c")
    web_url: Optional[str] = _case_field("Web_URL__c")
    type: Optional[str] = _case_field("type")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API requests, omitting empty fields."""
        result: Dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value:
                result[f.metadata["api_name"]] = value
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Case":
        """Create from dictionary; field names match case-insensitively."""
        lowered = {str(k).lower(): v for k, v in data.items()}
        values: Dict[str, Any] = {}
        for f in fields(cls):
            value = lowered.get(f.metadata["api_name"].lower())
            if value is not None:
                values[f.name] = str(value) if not isinstance(value, str) else value
        return cls(**values)


@dataclass
class CaseHeaders:
    """Optional Salesforce headers for case creation."""

    assignment_rule: str = ""
    email_trigger: str = ""

    def to_dict(self) -> Dict[str, str]:
        """Headers with non-empty values only."""
        result: Dict[str, str] = {}
        if self.assignment_rule:
            result["Sforce-Assignment-Rule-Header"] = self.assignment_rule
        if self.email_trigger:
            result["Sforce-Email-Header"] = self.email_trigger
        return result


@dataclass
class QueryResult:
    """SOQL query result. Record shape depends on the query."""

    total_size: int
    done: bool
    records: List[JsonDocument] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QueryResult":
        """
        Create from the query endpoint response.

        Raises:
            TypeError, ValueError: If the counters or records have the wrong type
        """
        records = data.get("records") or []
        if not isinstance(records, list):
            raise TypeError(f"records must be a list, got {type(records).__name__}")
        return cls(
            total_size=int(data.get("totalSize", 0)),
            done=bool(data.get("done", False)),
            records=[JsonDocument(r) for r in records],
        )


# EmailMessage.Status picklist value used when none is given
DEFAULT_EMAIL_STATUS = 3


@dataclass
class EmailMessageParams:
    """Fields for a new EmailMessage record."""

    parent_id: str = ""
    from_address: str = ""
    from_name: str = ""
    to_address: str = ""
    subject: str = ""
    text_body: str = ""
    status: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API requests, omitting empty fields."""
        result: Dict[str, Any] = {}
        if self.parent_id:
            result["ParentId"] = self.parent_id
        if self.from_address:
            result["FromAddress"] = self.from_address
        if self.from_name:
            result["FromName"] = self.from_name
        if self.to_address:
            result["ToAddress"] = self.to_address
        if self.subject:
            result["Subject"] = self.subject
        if self.text_body:
            result["TextBody"] = self.text_body
        if self.status:
            result["Status"] = self.status
        return result


@dataclass
class AttachmentResult:
    """Outcome of an attachment upload."""

    success: bool
    id: str
    name: str
    size: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "data": {
                "id": self.id,
                "name": self.name,
                "size": self.size,
            },
        }
