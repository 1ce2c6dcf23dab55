"""Credential vault: provider credentials and bearer token lifecycle."""

import logging
from datetime import timedelta
from typing import Optional

import httpx
from sqlalchemy.orm import Session

from stockrecon.core.config import Settings, settings as default_settings
from stockrecon.core.exceptions import AuthenticationError
from stockrecon.db.base import as_utc, utcnow
from stockrecon.models.credential import ApiCredential

logger = logging.getLogger(__name__)

OLSERA_PROVIDER = "olsera"


class CredentialVault:
    """Hands out valid bearer tokens, authenticating when the cache is stale.

    Tokens for stored credentials are persisted on the ``api_credentials``
    row. When no row exists the vault falls back to the app id and secret
    from settings and caches the token in memory only.
    """

    def __init__(
        self,
        db: Session,
        http: httpx.Client,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.http = http
        self.settings = settings or default_settings
        self._fallback: dict[str, ApiCredential] = {}

    def get_credentials(self, provider: str) -> ApiCredential:
        """Return the active credential record, or the settings fallback."""
        record = (
            self.db.query(ApiCredential)
            .filter(ApiCredential.provider == provider, ApiCredential.active.is_(True))
            .first()
        )
        if record is not None:
            return record

        if provider in self._fallback:
            return self._fallback[provider]

        if not (self.settings.olsera_app_id and self.settings.olsera_secret_key):
            raise AuthenticationError(f"No credentials configured for provider '{provider}'")

        logger.info(f"Using default {provider} credentials from settings")
        # Transient instance, never added to the session
        fallback = ApiCredential(
            provider=provider,
            app_id=self.settings.olsera_app_id,
            secret_key=self.settings.olsera_secret_key,
            base_url=self.settings.olsera_base_url,
            active=True,
        )
        self._fallback[provider] = fallback
        return fallback

    def get_valid_token(self, provider: str = OLSERA_PROVIDER) -> str:
        """Return a cached token, re-authenticating if missing or expired."""
        credentials = self.get_credentials(provider)
        expiry = as_utc(credentials.token_expiry)
        if credentials.access_token and expiry is not None and expiry > utcnow():
            return credentials.access_token
        return self.authenticate(credentials)

    def invalidate(self, provider: str = OLSERA_PROVIDER) -> None:
        """Drop the cached token so the next call authenticates again."""
        credentials = self.get_credentials(provider)
        credentials.access_token = None
        credentials.token_expiry = None
        if credentials.id is not None:
            self.db.commit()

    def authenticate(self, credentials: ApiCredential) -> str:
        """Exchange app id and secret for a bearer token and store it."""
        base_url = (credentials.base_url or self.settings.olsera_base_url).rstrip("/")
        logger.info(f"Authenticating with {credentials.provider} API")

        try:
            response = self.http.post(
                f"{base_url}{self.settings.olsera_token_path}",
                json={
                    "app_id": credentials.app_id,
                    "secret_key": credentials.secret_key,
                    "grant_type": "secret_key",
                },
            )
        except httpx.HTTPError as e:
            logger.error(f"{credentials.provider} authentication request failed: {e}")
            raise AuthenticationError(f"Failed to reach {credentials.provider} for authentication") from e

        if response.status_code != 200:
            logger.error(
                f"{credentials.provider} authentication failed: {response.status_code} - {response.text}"
            )
            raise AuthenticationError(
                f"Failed to authenticate with {credentials.provider} API",
                provider_status=response.status_code,
            )

        try:
            data = response.json()
            access_token = data["access_token"]
            expires_in = int(data.get("expires_in") or 0)
        except (ValueError, KeyError, TypeError) as e:
            raise AuthenticationError(
                f"Malformed token response from {credentials.provider}",
                provider_status=response.status_code,
            ) from e

        credentials.access_token = access_token
        credentials.refresh_token = data.get("refresh_token")
        credentials.token_expiry = utcnow() + timedelta(seconds=expires_in)

        if credentials.id is not None:
            self.db.commit()

        logger.info(f"Successfully authenticated with {credentials.provider} API")
        return access_token
