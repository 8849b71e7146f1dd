"""Credential adapters that hand out a pre-acquired secret.

None of these refresh anything. OAuth flows and refresh-before-expiry belong
in a dedicated CredentialPort implementation outside this package.
"""
from typing import Optional

from pydantic import SecretStr

from geojob.core.models.operations_config import (
    ApiKeyAuthConfig,
    AuthConfig,
    BearerTokenAuthConfig,
)


class NoAuthCredential:
    async def current_credential(self) -> Optional[str]:
        return None


class StaticTokenCredential:
    """Token obtained elsewhere (e.g. generateToken, OAuth client credentials)."""

    def __init__(self, token: str | SecretStr):
        self._token = token if isinstance(token, SecretStr) else SecretStr(token)

    async def current_credential(self) -> Optional[str]:
        return self._token.get_secret_value()


class ApiKeyCredential(StaticTokenCredential):
    """API keys travel in the same `token` parameter as tokens do."""


def credential_from_config(config: Optional[AuthConfig]):
    if isinstance(config, ApiKeyAuthConfig):
        return ApiKeyCredential(config.key)
    if isinstance(config, BearerTokenAuthConfig):
        return StaticTokenCredential(config.token)
    return NoAuthCredential()


def credential_from_settings(settings):
    if settings.GEOJOB_TOKEN is not None:
        return StaticTokenCredential(settings.GEOJOB_TOKEN)
    if settings.GEOJOB_API_KEY is not None:
        return ApiKeyCredential(settings.GEOJOB_API_KEY)
    return NoAuthCredential()
