"""
Shared fixtures for the Salesforce API client tests.
"""

from typing import Any, Callable, Dict

import httpx
import pytest
import respx

from sf_api_client import SalesforceClient, SalesforceConfig


LOGIN_URL = "https://login.example.com/services/oauth2/token"
INSTANCE_URL = "https://na1.example.my.salesforce.com"
DATA_URL = f"{INSTANCE_URL}/services/data/v64.0"


def token_response(access_token: str = "test-token", instance_url: str = INSTANCE_URL) -> Dict[str, Any]:
    """Token endpoint payload."""
    return {
        "access_token": access_token,
        "instance_url": instance_url,
        "id": "https://login.example.com/id/00Dxx0000001gEREAY/005xx000001Sv6AAAS",
        "token_type": "Bearer",
        "issued_at": "1760000000000",
        "signature": "c2lnbmF0dXJl",
    }


@pytest.fixture
def config() -> SalesforceConfig:
    """Valid configuration for testing."""
    return SalesforceConfig(
        client_id="test-client",
        client_secret="test-secret",
        refresh_token="test-refresh-token",
        login_url=LOGIN_URL,
        debug=True,
    )


@pytest.fixture
def client(config: SalesforceConfig) -> SalesforceClient:
    """Client for testing."""
    sf = SalesforceClient(config)
    yield sf
    sf.close()


@pytest.fixture
def mock_login() -> Callable[..., respx.Route]:
    """Register a successful token endpoint; call inside an active respx mock."""

    def _mock(access_token: str = "test-token") -> respx.Route:
        return respx.post(LOGIN_URL).mock(
            return_value=httpx.Response(200, json=token_response(access_token))
        )

    return _mock
