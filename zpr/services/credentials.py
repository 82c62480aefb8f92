"""Bearer token lifecycle for the source control provider.

CredentialManager owns the one live access token and refreshes it before it
comes within REFRESH_SKEW of expiring. The actual token request is delegated
to a TokenExchange:

- AzureADTokenExchange: OAuth2 client-credentials grant for Azure DevOps
- GitHubAppTokenExchange: GitHub App JWT exchanged for an installation token
"""

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Protocol

import httpx
import jwt

from zpr.config.settings import Settings
from zpr.errors import CredentialExchangeError

logger = logging.getLogger(__name__)

# Refresh when the token has less than this left
REFRESH_SKEW = timedelta(minutes=5)

# Used when the token endpoint omits expires_in
DEFAULT_TOKEN_TTL_SECONDS = 3600

AZURE_TOKEN_ENDPOINT = "https://login.microsoftonline.com/{tenant_id}/oauth2/v2.0/token"
# Azure DevOps resource ID
AZURE_DEVOPS_SCOPE = "499b84ac-1321-427f-aa17-267ca6975798/.default"

GITHUB_API_URL = "https://api.github.com"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Credential:
    """An access token and the instant it stops being accepted."""

    token: str
    expires_at: datetime

    def is_valid(self, now: datetime, skew: timedelta = REFRESH_SKEW) -> bool:
        return now < self.expires_at - skew


class TokenExchange(Protocol):
    """Trades long-lived client credentials for a short-lived bearer token."""

    async def exchange(self) -> Credential: ...


class CredentialManager:
    """Keep a valid bearer token for outbound provider calls.

    ensure_valid_token() is cheap when the held token is still valid and is
    meant to be awaited before every authenticated request. Concurrent callers
    share a single refresh: the lock is taken and validity re-checked, so
    whoever waited behind an in-flight refresh sees its result.
    """

    def __init__(
        self,
        exchange: TokenExchange,
        clock: Callable[[], datetime] = utcnow,
        skew: timedelta = REFRESH_SKEW,
    ) -> None:
        self._exchange = exchange
        self._clock = clock
        self._skew = skew
        self._credential: Credential | None = None
        self._lock = asyncio.Lock()

    @property
    def expires_at(self) -> datetime | None:
        return self._credential.expires_at if self._credential else None

    def is_token_valid(self) -> bool:
        """Check if the held token exists and is outside the refresh margin.

        Returns:
            True if a token is held and now < expires_at - skew
        """
        if self._credential is None:
            return False
        return self._credential.is_valid(self._clock(), self._skew)

    async def ensure_valid_token(self) -> str:
        """Return a token valid for at least the refresh margin.

        Raises:
            CredentialExchangeError: If a needed refresh fails
        """
        if self.is_token_valid():
            return self._credential.token  # type: ignore[union-attr]

        async with self._lock:
            # Another caller may have refreshed while we waited
            if not self.is_token_valid():
                await self._refresh_locked()
            return self._credential.token  # type: ignore[union-attr]

    async def refresh(self) -> None:
        """Force a new token exchange.

        On failure the previously held credential is kept.

        Raises:
            CredentialExchangeError: If the exchange fails
        """
        async with self._lock:
            await self._refresh_locked()

    async def _refresh_locked(self) -> None:
        try:
            credential = await self._exchange.exchange()
        except CredentialExchangeError as e:
            logger.error(
                f"Token refresh failed (status={e.status_code}); "
                f"keeping previous credential: {e}"
            )
            raise

        self._credential = credential
        logger.info(f"Refreshed access token, expires at {credential.expires_at.isoformat()}")


class AzureADTokenExchange:
    """OAuth2 client-credentials grant against Azure AD for the Azure DevOps scope."""

    def __init__(
        self,
        tenant_id: str,
        client_id: str,
        client_secret: str,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.tenant_id = tenant_id
        self.client_id = client_id
        self.client_secret = client_secret
        self._http_client = http_client
        self._clock = clock

    @classmethod
    def from_settings(
        cls, settings: Settings, http_client: httpx.AsyncClient | None = None
    ) -> "AzureADTokenExchange":
        if not (
            settings.azure_tenant_id
            and settings.azure_client_id
            and settings.azure_client_secret
        ):
            raise ValueError(
                "Azure service principal not configured. "
                "Set AZURE_TENANT_ID, AZURE_CLIENT_ID and AZURE_CLIENT_SECRET"
            )
        return cls(
            tenant_id=settings.azure_tenant_id,
            client_id=settings.azure_client_id,
            client_secret=settings.azure_client_secret,
            http_client=http_client,
        )

    @property
    def token_endpoint(self) -> str:
        return AZURE_TOKEN_ENDPOINT.format(tenant_id=self.tenant_id)

    async def exchange(self) -> Credential:
        data = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "grant_type": "client_credentials",
            "scope": AZURE_DEVOPS_SCOPE,
        }
        payload = await _post_for_token(self._http_client, self.token_endpoint, data=data)

        token = payload.get("access_token")
        if not token:
            raise CredentialExchangeError(
                "Token endpoint response has no access_token", body=str(payload)
            )
        ttl = payload.get("expires_in") or DEFAULT_TOKEN_TTL_SECONDS
        return Credential(
            token=token, expires_at=self._clock() + timedelta(seconds=int(ttl))
        )


class GitHubAppTokenExchange:
    """Exchange a GitHub App JWT for an installation access token."""

    def __init__(
        self,
        app_id: str,
        installation_id: str,
        private_key: str,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.app_id = app_id
        self.installation_id = installation_id
        self.private_key = private_key
        self._http_client = http_client

    @classmethod
    def from_settings(
        cls, settings: Settings, http_client: httpx.AsyncClient | None = None
    ) -> "GitHubAppTokenExchange":
        if not settings.github_app_id:
            raise ValueError("GitHub App ID not configured")
        if not settings.github_app_installation_id:
            raise ValueError("GitHub App installation ID not configured")
        return cls(
            app_id=settings.github_app_id,
            installation_id=settings.github_app_installation_id,
            private_key=load_private_key(
                settings.github_app_private_key, settings.github_app_private_key_path
            ),
            http_client=http_client,
        )

    def generate_jwt(self) -> str:
        """Generate a JWT for GitHub App authentication.

        The JWT is used to authenticate as the GitHub App itself.
        It's valid for 10 minutes (GitHub's maximum).
        """
        # Current time with 60 second clock drift protection
        now = int(time.time()) - 60

        payload = {
            "iat": now,
            "exp": now + (10 * 60),
            "iss": self.app_id,
        }

        return jwt.encode(payload, self.private_key, algorithm="RS256")

    async def exchange(self) -> Credential:
        url = f"{GITHUB_API_URL}/app/installations/{self.installation_id}/access_tokens"
        headers = {
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {self.generate_jwt()}",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        payload = await _post_for_token(self._http_client, url, headers=headers)

        try:
            # Parse expiration (ISO 8601 format)
            expires_at = datetime.fromisoformat(
                payload["expires_at"].replace("Z", "+00:00")
            )
            return Credential(token=payload["token"], expires_at=expires_at)
        except (KeyError, ValueError) as e:
            raise CredentialExchangeError(
                f"Unexpected installation token response: {e}", body=str(payload)
            ) from e


def load_private_key(key_content: str | None, key_path: str | None) -> str:
    """Load the GitHub App private key, preferring the file path.

    Raises:
        ValueError: If the key is missing, unreadable or visibly truncated
    """
    if key_path:
        path = Path(key_path)
        if path.exists():
            return path.read_text()
        raise ValueError(f"Private key file not found: {path}")

    if key_content:
        key = key_content.strip()
        lines = key.split("\n")
        if not (key.startswith("-----BEGIN") and key.endswith("-----")) or len(lines) < 3:
            raise ValueError(
                "APP_PRIVATE_KEY appears incomplete. "
                "Ensure it includes the full key content with BEGIN/END markers."
            )
        return key

    raise ValueError(
        "GitHub App private key not configured. "
        "Set APP_PRIVATE_KEY or APP_PRIVATE_KEY_PATH"
    )


async def _post_for_token(
    http_client: httpx.AsyncClient | None,
    url: str,
    **kwargs: object,
) -> dict:
    """POST to a token endpoint and return the JSON body.

    Raises:
        CredentialExchangeError: On transport errors and non-2xx responses
    """
    try:
        if http_client is not None:
            response = await http_client.post(url, **kwargs)  # type: ignore[arg-type]
        else:
            async with httpx.AsyncClient(timeout=30.0) as client:
                response = await client.post(url, **kwargs)  # type: ignore[arg-type]
    except httpx.HTTPError as e:
        raise CredentialExchangeError(f"Token endpoint unreachable: {e}") from e

    if not response.is_success:
        raise CredentialExchangeError(
            f"Failed to get token: {response.status_code} - {response.text}",
            status_code=response.status_code,
            body=response.text,
        )

    try:
        return response.json()
    except ValueError as e:
        raise CredentialExchangeError(
            "Token endpoint returned invalid JSON",
            status_code=response.status_code,
            body=response.text,
        ) from e
