"""
Salesforce OAuth2 refresh-token exchange.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any, Optional

import httpx

from .errors import AuthenticationError, AuthResponseError, NetworkError
from .events import log_event
from .types import Credentials, TokenResult, loads_strict


# Tokens live 60 minutes at Salesforce; treat them as expired 5 minutes early
TOKEN_LIFETIME = 55 * 60


def resolve_timeout(timeout: Optional[float]) -> Any:
    return timeout if timeout is not None else httpx.USE_CLIENT_DEFAULT


class Authenticator:
    """Mints access tokens from a refresh token."""

    def __init__(self, http_client: httpx.Client, credentials: Credentials, debug: bool = False) -> None:
        self.http_client = http_client
        self.credentials = credentials
        self._debug = debug

    def authenticate(self, timeout: Optional[float] = None) -> TokenResult:
        """
        Exchange the refresh token for a new access token.

        Args:
            timeout: Deadline for the exchange in seconds; client default if None

        Returns:
            TokenResult with the token, its instance URL and local expiry

        Raises:
            NetworkError: If the login endpoint could not be reached
            AuthenticationError: If the login endpoint rejected the exchange
            AuthResponseError: If a 2xx answer is not a token response
        """
        credentials = self.credentials
        try:
            response = self.http_client.post(
                credentials.login_url,
                data=credentials.to_form(),
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=resolve_timeout(timeout),
            )
        except httpx.TimeoutException as e:
            log_event(logging.ERROR, "Authentication request timed out",
                      action="authentication", success=False, url=credentials.login_url, error=str(e))
            raise NetworkError(f"auth request failed: {e}", {"timeout": timeout}) from e
        except httpx.HTTPError as e:
            log_event(logging.ERROR, "Authentication request failed",
                      action="authentication", success=False, url=credentials.login_url, error=str(e))
            raise NetworkError(f"auth request failed: {e}") from e

        body = response.text
        if not response.is_success:
            raise self._rejected(response, body)

        try:
            payload = loads_strict(body)
            token = TokenResult.from_dict(payload, time.time() + TOKEN_LIFETIME)
            if not token.access_token or not token.instance_url:
                raise ValueError("access_token and instance_url are required")
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            log_event(logging.ERROR, "Failed to decode authentication response",
                      action="authentication", success=False,
                      status_code=response.status_code, response_body=body, error=str(e))
            raise AuthResponseError(f"failed to decode auth response: {e}") from e

        log_event(
            logging.INFO,
            "token refreshed successfully",
            debug=self._debug,
            action="authentication",
            success=True,
            token_expiry=datetime.fromtimestamp(token.expires_at, timezone.utc).isoformat(),
            instance_url=token.instance_url,
        )
        return token

    def _rejected(self, response: httpx.Response, body: str) -> AuthenticationError:
        status = f"{response.status_code} {response.reason_phrase}".strip()
        error: Optional[str] = None
        description: Optional[str] = None
        try:
            payload = loads_strict(body)
            if isinstance(payload, dict):
                error = payload.get("error") or None
                description = payload.get("error_description")
        except ValueError:
            pass

        if error:
            log_event(logging.ERROR, "Authentication failed with Salesforce error",
                      action="authentication", success=False, status_code=response.status_code,
                      error=error, description=description, response_body=body)
            message = f"auth failed: {error}"
            if description:
                message = f"{message} - {description}"
            return AuthenticationError(
                message,
                status_code=response.status_code,
                error=error,
                error_description=description,
            )

        log_event(logging.ERROR, "Authentication failed with non-JSON error",
                  action="authentication", success=False, status_code=response.status_code,
                  status=status, response_body=body)
        return AuthenticationError(
            f"auth failed with status: {status}",
            status_code=response.status_code,
        )
