"""
Application configuration updates.

After a successful migration the application is pointed at the target
store; a rollback points it back at the source store. In both cases only
the credential reference stored in the application's configuration
changes. No documents are moved.

Updaters:
    - InMemoryConfigurationUpdater: Records the reference, for tests and dry runs
    - SecretsManagerConfigurationUpdater: Rewrites the application's
      configuration secret in AWS Secrets Manager
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import UTC, datetime
from typing import Any, Protocol, runtime_checkable

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from docshift.exceptions import ConfigurationUpdateError

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_KEY = "docDbsecretName"


@runtime_checkable
class ConfigurationUpdater(Protocol):
    """Points the application's database configuration at a credential reference."""

    async def point_to(self, credential_ref: str) -> None:
        """
        Make ``credential_ref`` the application's database.

        Raises:
            ConfigurationUpdateError: If the configuration cannot be rewritten.
        """
        ...


class InMemoryConfigurationUpdater:
    """
    Configuration updater that keeps the current reference in memory.

    Attributes:
        current_ref: Reference the application currently points at.
        history: Every reference set, in order.
    """

    def __init__(self, current_ref: str | None = None) -> None:
        self.current_ref = current_ref
        self.history: list[str] = []

    async def point_to(self, credential_ref: str) -> None:
        self.current_ref = credential_ref
        self.history.append(credential_ref)


class SecretsManagerConfigurationUpdater:
    """
    Rewrites the application's configuration secret.

    The secret is a JSON object; only ``database_key`` is replaced and an
    ``updatedAt`` timestamp is added. Other keys are preserved.

    Example:
        >>> updater = SecretsManagerConfigurationUpdater("chronas/app/config")
        >>> await updater.point_to("chronas/docdb/target")
    """

    def __init__(
        self,
        config_ref: str,
        *,
        client: Any | None = None,
        region_name: str = "eu-west-1",
        database_key: str = DEFAULT_DATABASE_KEY,
    ) -> None:
        self._config_ref = config_ref
        self._client = client or boto3.client("secretsmanager", region_name=region_name)
        self._database_key = database_key

    async def point_to(self, credential_ref: str) -> None:
        await asyncio.to_thread(self._update, credential_ref)
        logger.info("Application configuration %s now uses %s", self._config_ref, credential_ref)

    def _update(self, credential_ref: str) -> None:
        try:
            response = self._client.get_secret_value(SecretId=self._config_ref)
            config = json.loads(response.get("SecretString") or "{}")
            if not isinstance(config, dict):
                raise ConfigurationUpdateError(self._config_ref, "secret is not a JSON object")

            config[self._database_key] = credential_ref
            config["updatedAt"] = datetime.now(UTC).isoformat()

            self._client.put_secret_value(
                SecretId=self._config_ref,
                SecretString=json.dumps(config),
            )
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "Unknown")
            raise ConfigurationUpdateError(self._config_ref, code) from e
        except BotoCoreError as e:
            raise ConfigurationUpdateError(self._config_ref, type(e).__name__) from e
        except json.JSONDecodeError as e:
            raise ConfigurationUpdateError(self._config_ref, "secret is not valid JSON") from e


__all__ = [
    "DEFAULT_DATABASE_KEY",
    "ConfigurationUpdater",
    "InMemoryConfigurationUpdater",
    "SecretsManagerConfigurationUpdater",
]
