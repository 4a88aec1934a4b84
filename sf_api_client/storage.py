"""
Salesforce API Client Token Storage

In-memory holder for the bearer token, the instance URL it was issued
for, and its expiry.
"""

import threading
import time

from .types import TokenResult


class TokenStore:
    """
    Session token state owned by a single client.

    The token and the instance URL always change together since both come
    from the same login response. ``lock`` serializes the check-and-refresh
    sequence in the client; it must be held across validity checks, refreshes
    and the administrative setters.
    """

    def __init__(self) -> None:
        self._access_token: str = ""
        self._instance_url: str = ""
        self._expires_at: float = 0
        self.lock = threading.Lock()

    @property
    def access_token(self) -> str:
        return self._access_token

    @property
    def instance_url(self) -> str:
        return self._instance_url

    @property
    def expires_at(self) -> float:
        return self._expires_at

    def set_token(self, token: TokenResult) -> None:
        """Replace token, instance URL and expiry from one login response."""
        self._access_token = token.access_token
        self._instance_url = token.instance_url
        self._expires_at = token.expires_at

    def set_instance_url(self, instance_url: str) -> None:
        self._instance_url = instance_url.rstrip("/")

    def clear_token(self) -> None:
        """Forget the token and its expiry. The instance URL is kept."""
        self._access_token = ""
        self._expires_at = 0

    def needs_refresh(self, margin: float) -> bool:
        """True if there is no token or it expires within ``margin`` seconds."""
        if not self._access_token:
            return True
        return self._expires_at - time.time() < margin
