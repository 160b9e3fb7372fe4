"""GitHub App credentials.

The App authenticates with a short-lived RS256 JWT, which is exchanged for
an installation access token. Installation tokens are cached per
installation until shortly before they expire.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

import jwt

from ..core.exceptions import AuthenticationError
from .client import GitHubAppClient
from .models import InstallationToken

logger = logging.getLogger(__name__)

JWT_BACKDATE_SECONDS = 60
JWT_LIFETIME_SECONDS = 9 * 60
REFRESH_MARGIN = timedelta(minutes=5)


@dataclass(frozen=True)
class AppCredentials:
    """The App identity. The private key never appears in ``repr``."""

    app_id: int
    private_key: str = field(repr=False)

    def mint_jwt(self, now: float | None = None) -> str:
        issued = int(now if now is not None else time.time()) - JWT_BACKDATE_SECONDS
        claims = {
            "iat": issued,
            "exp": issued + JWT_BACKDATE_SECONDS + JWT_LIFETIME_SECONDS,
            "iss": str(self.app_id),
        }
        try:
            return jwt.encode(claims, self.private_key, algorithm="RS256")
        except (ValueError, TypeError, jwt.PyJWTError) as e:
            raise AuthenticationError(f"Could not sign the GitHub App JWT: {e}") from e


class InstallationTokenCache:
    """Process-wide cache of installation tokens.

    One lock guards the cache, so concurrent deliveries for the same
    installation share a single token exchange and never see a token that
    is about to expire.
    """

    def __init__(
        self,
        credentials: AppCredentials,
        client: GitHubAppClient,
        repositories: list[str] | None = None,
    ):
        self.credentials = credentials
        self.client = client
        self.repositories = repositories
        self._tokens: dict[int, InstallationToken] = {}
        self._lock = asyncio.Lock()

    @staticmethod
    def _is_fresh(token: InstallationToken) -> bool:
        expires_at = token.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return expires_at - datetime.now(timezone.utc) > REFRESH_MARGIN

    async def get_token(self, installation_id: int) -> str:
        """Return a valid token for the installation, refreshing it if needed."""
        async with self._lock:
            cached = self._tokens.get(installation_id)
            if cached is not None and self._is_fresh(cached):
                return cached.token.get_secret_value()

            logger.info(f"Requesting a new installation token for installation {installation_id}")
            app_jwt = self.credentials.mint_jwt()
            token = await self.client.create_installation_token(app_jwt, installation_id, self.repositories)
            self._tokens[installation_id] = token
            return token.token.get_secret_value()

    async def invalidate(self, installation_id: int | None = None) -> None:
        """Drop one cached token, or all of them."""
        async with self._lock:
            if installation_id is None:
                self._tokens.clear()
            else:
                self._tokens.pop(installation_id, None)
