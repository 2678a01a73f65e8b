"""Google service account OAuth2 for Firebase Cloud Messaging.

Implements the JWT bearer grant: a short-lived RS256 assertion signed
with the service account's private key is exchanged for an access token
at the account's ``token_uri``. The token is cached until shortly
before it expires.
"""

import asyncio
import time

import httpx
from jose import JOSEError, jwt

from sosrelay.core.exceptions import TransportError
from sosrelay.logging_config import get_logger

logger = get_logger(__name__)

GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"
FCM_SCOPE = "https://www.googleapis.com/auth/firebase.messaging"
JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"

ASSERTION_LIFETIME_SECONDS = 3600
# Refresh this many seconds before the token actually expires
REFRESH_MARGIN_SECONDS = 300


class ServiceAccountCredentials:
    """Access-token source for one service account."""

    def __init__(self, info: dict, client: httpx.AsyncClient):
        self.client_email: str = info.get("client_email", "")
        self.project_id: str = info.get("project_id", "")
        self._private_key: str = info.get("private_key", "")
        self._token_uri: str = info.get("token_uri") or GOOGLE_TOKEN_URI
        self._client = client
        self._access_token: str | None = None
        self._expires_at: float = 0.0
        self._lock = asyncio.Lock()

    def _build_assertion(self, issued_at: int) -> str:
        claims = {
            "iss": self.client_email,
            "scope": FCM_SCOPE,
            "aud": self._token_uri,
            "iat": issued_at,
            "exp": issued_at + ASSERTION_LIFETIME_SECONDS,
        }
        try:
            return jwt.encode(claims, self._private_key, algorithm="RS256")
        except JOSEError as e:
            raise TransportError(f"Failed to sign service account assertion: {e}") from e

    async def get_access_token(self) -> str:
        """Return a valid access token, fetching a new one when needed.

        Raises:
            TransportError: If the account is incomplete or the token
                exchange fails.
        """
        async with self._lock:
            if self._access_token and time.time() < self._expires_at - REFRESH_MARGIN_SECONDS:
                return self._access_token

            if not self.client_email or not self._private_key:
                raise TransportError(
                    "Service account is missing client_email or private_key"
                )

            issued_at = int(time.time())
            assertion = self._build_assertion(issued_at)

            try:
                response = await self._client.post(
                    self._token_uri,
                    data={"grant_type": JWT_BEARER_GRANT, "assertion": assertion},
                )
            except httpx.HTTPError as e:
                raise TransportError(f"Token exchange request failed: {e}") from e

            if response.status_code != 200:
                raise TransportError(
                    f"Token exchange failed: {response.status_code} {response.text}"
                )

            try:
                data = response.json()
            except ValueError as e:
                raise TransportError(f"Token exchange returned invalid JSON: {e}") from e

            token = data.get("access_token") if isinstance(data, dict) else None
            if not token:
                raise TransportError("Token exchange returned no access_token")

            try:
                expires_in = int(data.get("expires_in", ASSERTION_LIFETIME_SECONDS))
            except (TypeError, ValueError) as e:
                raise TransportError(
                    f"Token exchange returned invalid expires_in: {e}"
                ) from e

            self._access_token = token
            self._expires_at = issued_at + expires_in
            logger.debug(
                "Fetched FCM access token",
                client_email=self.client_email,
                expires_in=data.get("expires_in"),
            )
            return token

    def invalidate(self) -> None:
        """Drop the cached token so the next call fetches a fresh one."""
        self._access_token = None
        self._expires_at = 0.0
