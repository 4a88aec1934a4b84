"""
Salesforce API Client
sf-api-client

A Python client for the Salesforce REST API (cases, SOQL queries,
attachments, email messages) with OAuth2 refresh-token authentication
and on-demand token renewal.
"""

from .client import SalesforceClient, create_salesforce_client
from .types import (
    SalesforceConfig,
    Credentials,
    TokenResult,
    Response,
    JsonDocument,
    ErrorResponse,
    Case,
    CaseHeaders,
    QueryResult,
    EmailMessageParams,
    AttachmentResult,
)
from .errors import (
    SalesforceError,
    NetworkError,
    AuthenticationError,
    AuthResponseError,
    ValidationError,
    DecodeError,
    ErrorParseError,
    APIError,
    ConfigurationError,
    parse_error_body,
    is_salesforce_error,
)
from .storage import TokenStore

__version__ = "1.0.0"
__all__ = [
    # Client
    "SalesforceClient",
    "create_salesforce_client",
    # Types
    "SalesforceConfig",
    "Credentials",
    "TokenResult",
    "Response",
    "JsonDocument",
    "ErrorResponse",
    "Case",
    "CaseHeaders",
    "QueryResult",
    "EmailMessageParams",
    "AttachmentResult",
    # Errors
    "SalesforceError",
    "NetworkError",
    "AuthenticationError",
    "AuthResponseError",
    "ValidationError",
    "DecodeError",
    "ErrorParseError",
    "APIError",
    "ConfigurationError",
    "parse_error_body",
    "is_salesforce_error",
    # Storage
    "TokenStore",
]
