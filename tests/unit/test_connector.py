"""Unit tests for scoped store acquisition."""

import logging
from unittest.mock import AsyncMock

import pytest

from docshift.exceptions import CredentialResolutionError, StoreConnectionError
from docshift.stores.connector import StoreConnector, close_quietly, open_store_pair
from tests.fixtures import StaticConnector

SOURCE_REF = "chronas/mongodb/source"
TARGET_REF = "chronas/docdb/target"


class TestOpenStorePair:
    """Tests for open_store_pair()."""

    def test_static_connector_is_a_store_connector(self, connector):
        assert isinstance(connector, StoreConnector)

    @pytest.mark.asyncio
    async def test_yields_both_stores_and_closes_them(
        self, credential_provider, connector, seeded_source, target_store
    ):
        async with open_store_pair(
            credential_provider, connector, SOURCE_REF, TARGET_REF
        ) as stores:
            assert stores.source is seeded_source
            assert stores.target is target_store
            assert not seeded_source.closed

        assert connector.connected == ["source", "target"]
        assert seeded_source.closed and target_store.closed

    @pytest.mark.asyncio
    async def test_closes_on_error_in_block(
        self, credential_provider, connector, seeded_source, target_store
    ):
        with pytest.raises(RuntimeError):
            async with open_store_pair(credential_provider, connector, SOURCE_REF, TARGET_REF):
                raise RuntimeError("boom")

        assert seeded_source.closed and target_store.closed

    @pytest.mark.asyncio
    async def test_target_failure_closes_source(
        self, credential_provider, connector, seeded_source, target_store
    ):
        connector.unreachable.add("target")

        with pytest.raises(StoreConnectionError):
            async with open_store_pair(credential_provider, connector, SOURCE_REF, TARGET_REF):
                pass

        assert seeded_source.closed is True
        assert target_store.closed is False

    @pytest.mark.asyncio
    async def test_credentials_resolved_before_connecting(self, credential_provider):
        connector = StaticConnector({})

        with pytest.raises(CredentialResolutionError):
            async with open_store_pair(credential_provider, connector, SOURCE_REF, "unknown"):
                pass

        assert connector.connected == []


class TestCloseQuietly:
    @pytest.mark.asyncio
    async def test_close_failure_is_logged(self, caplog):
        store = AsyncMock()
        store.close.side_effect = ConnectionError("reset by peer")

        with caplog.at_level(logging.WARNING, logger="docshift.stores.connector"):
            await close_quietly(store, "target")

        assert "Error closing target connection: reset by peer" in caplog.text
