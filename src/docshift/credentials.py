"""
Credential resolution for document stores.

Invocations carry opaque credential references (secret names). A
CredentialProvider turns a reference into StoreCredentials; the password
is held as a pydantic SecretStr so it never shows up in logs or reprs.

Providers:
    - StaticCredentialProvider: Fixed mapping, for tests and local runs
    - SecretsManagerCredentialProvider: AWS Secrets Manager with a TTL cache
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Callable, Mapping
from typing import Any, Protocol, runtime_checkable

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError

from docshift.exceptions import CredentialResolutionError

logger = logging.getLogger(__name__)

DEFAULT_PORT = 27017

# AWS error codes that will not go away on retry
_PERMANENT_ERROR_CODES = frozenset(
    {"ResourceNotFoundException", "AccessDeniedException", "InvalidParameterException"}
)


class StoreCredentials(BaseModel):
    """
    Connection credentials of one document store.

    Attributes:
        host: Host name of the cluster.
        port: Port (default 27017).
        username: User name.
        password: Password, never rendered in reprs or logs.
        tls: Force TLS on or off; None decides from the host name.
        database: Database override; None uses the configured database.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    host: str = Field(..., min_length=1)
    port: int = Field(default=DEFAULT_PORT, ge=1, le=65535)
    username: str = Field(..., min_length=1)
    password: SecretStr
    tls: bool | None = None
    database: str | None = None

    @property
    def endpoint(self) -> str:
        """``host:port``, safe to log."""
        return f"{self.host}:{self.port}"


@runtime_checkable
class CredentialProvider(Protocol):
    """
    Protocol for resolving credential references.

    Example:
        >>> class VaultProvider:
        ...     async def resolve(self, credential_ref: str) -> StoreCredentials:
        ...         ...
    """

    async def resolve(self, credential_ref: str) -> StoreCredentials:
        """
        Resolve a reference into credentials.

        Raises:
            CredentialResolutionError: If the reference cannot be resolved.
        """
        ...


class StaticCredentialProvider:
    """Credential provider backed by a fixed mapping."""

    def __init__(self, credentials: Mapping[str, StoreCredentials]) -> None:
        self._credentials = dict(credentials)

    async def resolve(self, credential_ref: str) -> StoreCredentials:
        try:
            return self._credentials[credential_ref]
        except KeyError:
            raise CredentialResolutionError(credential_ref, "unknown reference") from None


def parse_credentials(credential_ref: str, secret_string: str) -> StoreCredentials:
    """
    Parse the JSON payload of a credentials secret.

    Raises:
        CredentialResolutionError: If the payload is not JSON or misses
            host, username or password.
    """
    try:
        payload = json.loads(secret_string)
    except json.JSONDecodeError:
        raise CredentialResolutionError(credential_ref, "secret is not valid JSON") from None

    if not isinstance(payload, dict):
        raise CredentialResolutionError(credential_ref, "secret is not a JSON object")

    try:
        return StoreCredentials.model_validate(payload)
    except ValidationError as e:
        fields = ", ".join(str(err["loc"][0]) for err in e.errors() if err["loc"])
        raise CredentialResolutionError(
            credential_ref, f"invalid credentials format ({fields})"
        ) from None


class SecretsManagerCredentialProvider:
    """
    Credential provider backed by AWS Secrets Manager.

    Resolved credentials are cached per reference for ``cache_ttl_seconds``
    so warm function invocations skip the network round trip. The blocking
    boto3 call runs in a worker thread.

    Example:
        >>> provider = SecretsManagerCredentialProvider(region_name="eu-west-1")
        >>> creds = await provider.resolve("chronas/docdb/target")
        >>> creds.endpoint
        'cluster.docdb.amazonaws.com:27017'
    """

    def __init__(
        self,
        *,
        client: Any | None = None,
        region_name: str = "eu-west-1",
        cache_ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize the provider.

        Args:
            client: A boto3 ``secretsmanager`` client; created lazily when omitted.
            region_name: AWS region used when creating the client.
            cache_ttl_seconds: Lifetime of cached credentials (0 disables caching).
            clock: Monotonic clock in seconds.
        """
        self._client = client
        self._region_name = region_name
        self._cache_ttl = cache_ttl_seconds
        self._clock = clock
        self._cache: dict[str, tuple[float, StoreCredentials]] = {}

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = boto3.client("secretsmanager", region_name=self._region_name)
        return self._client

    def clear_cache(self) -> None:
        self._cache.clear()

    async def resolve(self, credential_ref: str) -> StoreCredentials:
        if not credential_ref:
            raise CredentialResolutionError(credential_ref, "empty reference")

        cached = self._cache.get(credential_ref)
        if cached is not None:
            expires_at, credentials = cached
            if self._clock() < expires_at:
                logger.debug("Using cached credentials for %s", credential_ref)
                return credentials
            del self._cache[credential_ref]

        logger.info("Retrieving secret: %s", credential_ref)
        secret_string = await asyncio.to_thread(self._fetch_secret_string, credential_ref)
        credentials = parse_credentials(credential_ref, secret_string)

        if self._cache_ttl > 0:
            self._cache[credential_ref] = (self._clock() + self._cache_ttl, credentials)

        logger.info("Retrieved credentials for host: %s", credentials.host)
        return credentials

    def _fetch_secret_string(self, credential_ref: str) -> str:
        try:
            response = self.client.get_secret_value(SecretId=credential_ref)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "Unknown")
            if code in _PERMANENT_ERROR_CODES:
                logger.warning("Secret %s unavailable: %s", credential_ref, code)
            else:
                logger.error("Failed to retrieve secret %s: %s", credential_ref, code)
            raise CredentialResolutionError(credential_ref, code) from e
        except BotoCoreError as e:
            logger.error("Failed to retrieve secret %s: %s", credential_ref, type(e).__name__)
            raise CredentialResolutionError(credential_ref, type(e).__name__) from e

        secret_string = response.get("SecretString")
        if not secret_string:
            raise CredentialResolutionError(credential_ref, "SecretString not found")
        return secret_string


__all__ = [
    "DEFAULT_PORT",
    "StoreCredentials",
    "CredentialProvider",
    "StaticCredentialProvider",
    "SecretsManagerCredentialProvider",
    "parse_credentials",
]
