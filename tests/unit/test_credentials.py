"""
Unit tests for credential resolution.

Tests cover:
- Parsing of credentials secrets
- The static provider
- The Secrets Manager provider, its cache and its error mapping
"""

import json
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from docshift.credentials import (
    SecretsManagerCredentialProvider,
    StaticCredentialProvider,
    parse_credentials,
)
from docshift.exceptions import CredentialResolutionError
from tests.fixtures import FakeClock, make_credentials

SECRET = {
    "host": "cluster.docdb.amazonaws.com",
    "port": 27017,
    "username": "migrator",
    "password": "hunter2",
    "engine": "docdb",
}


def client_error(code: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, "GetSecretValue")


@pytest.fixture
def client() -> MagicMock:
    client = MagicMock()
    client.get_secret_value.return_value = {"SecretString": json.dumps(SECRET)}
    return client


class TestParseCredentials:
    def test_valid_secret(self):
        credentials = parse_credentials("ref", json.dumps(SECRET))

        assert credentials.host == "cluster.docdb.amazonaws.com"
        assert credentials.endpoint == "cluster.docdb.amazonaws.com:27017"
        assert credentials.password.get_secret_value() == "hunter2"

    def test_password_not_rendered(self):
        credentials = parse_credentials("ref", json.dumps(SECRET))
        assert "hunter2" not in repr(credentials)
        assert "hunter2" not in str(credentials)

    def test_invalid_json(self):
        with pytest.raises(CredentialResolutionError, match="not valid JSON"):
            parse_credentials("ref", "{host")

    def test_not_an_object(self):
        with pytest.raises(CredentialResolutionError, match="not a JSON object"):
            parse_credentials("ref", "[1, 2]")

    def test_missing_fields_are_named(self):
        with pytest.raises(CredentialResolutionError) as exc_info:
            parse_credentials("ref", json.dumps({"host": "h"}))

        message = str(exc_info.value)
        assert "username" in message
        assert "password" in message
        assert exc_info.value.credential_ref == "ref"


class TestStaticCredentialProvider:
    @pytest.mark.asyncio
    async def test_resolve(self):
        credentials = make_credentials("mongo.local")
        provider = StaticCredentialProvider({"source": credentials})

        assert await provider.resolve("source") is credentials

    @pytest.mark.asyncio
    async def test_unknown_reference(self):
        with pytest.raises(CredentialResolutionError, match="unknown reference"):
            await StaticCredentialProvider({}).resolve("missing")


class TestSecretsManagerCredentialProvider:
    """Tests for SecretsManagerCredentialProvider."""

    @pytest.mark.asyncio
    async def test_resolves_secret(self, client):
        provider = SecretsManagerCredentialProvider(client=client)

        credentials = await provider.resolve("chronas/docdb/target")

        assert credentials.username == "migrator"
        client.get_secret_value.assert_called_once_with(SecretId="chronas/docdb/target")

    @pytest.mark.asyncio
    async def test_cached_until_ttl(self, client):
        clock = FakeClock()
        provider = SecretsManagerCredentialProvider(client=client, cache_ttl_seconds=60, clock=clock)

        await provider.resolve("ref")
        clock.advance(59)
        await provider.resolve("ref")
        assert client.get_secret_value.call_count == 1

        clock.advance(1)
        await provider.resolve("ref")
        assert client.get_secret_value.call_count == 2

    @pytest.mark.asyncio
    async def test_cache_disabled(self, client):
        provider = SecretsManagerCredentialProvider(client=client, cache_ttl_seconds=0)

        await provider.resolve("ref")
        await provider.resolve("ref")

        assert client.get_secret_value.call_count == 2

    @pytest.mark.asyncio
    async def test_clear_cache(self, client):
        provider = SecretsManagerCredentialProvider(client=client)

        await provider.resolve("ref")
        provider.clear_cache()
        await provider.resolve("ref")

        assert client.get_secret_value.call_count == 2

    @pytest.mark.asyncio
    async def test_client_error(self, client):
        client.get_secret_value.side_effect = client_error("ResourceNotFoundException")
        provider = SecretsManagerCredentialProvider(client=client)

        with pytest.raises(CredentialResolutionError, match="ResourceNotFoundException"):
            await provider.resolve("ref")

    @pytest.mark.asyncio
    async def test_botocore_error(self, client):
        client.get_secret_value.side_effect = EndpointConnectionError(endpoint_url="https://sm")
        provider = SecretsManagerCredentialProvider(client=client)

        with pytest.raises(CredentialResolutionError, match="EndpointConnectionError"):
            await provider.resolve("ref")

    @pytest.mark.asyncio
    async def test_missing_secret_string(self, client):
        client.get_secret_value.return_value = {"SecretBinary": b"..."}
        provider = SecretsManagerCredentialProvider(client=client)

        with pytest.raises(CredentialResolutionError, match="SecretString not found"):
            await provider.resolve("ref")

    @pytest.mark.asyncio
    async def test_empty_reference(self, client):
        provider = SecretsManagerCredentialProvider(client=client)

        with pytest.raises(CredentialResolutionError):
            await provider.resolve("")

        client.get_secret_value.assert_not_called()
