"""Tests for AdapterService."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from gitchamber.adapters.base import RepositoryProvider
from gitchamber.adapters.service import AdapterService


class FakeProvider(RepositoryProvider):
    def __init__(self, enabled=True, repository=None):
        self._enabled = enabled
        self.repository = repository
        self.listeners = []
        self.open_repository = AsyncMock(return_value=repository)

    @property
    def enabled(self):
        return self._enabled

    async def open_repository(self, directory):  # replaced per instance
        return self.repository

    def on_enablement_change(self, listener):
        self.listeners.append(listener)
        return lambda: self.listeners.remove(listener)


class TestAdapterService:
    """Tests for provider initialisation and enablement tracking."""

    @pytest.mark.asyncio
    async def test_no_factory_returns_none(self):
        service = AdapterService()
        assert await service.get_or_init() is None
        assert await service.get_repository("/repo") is None

    @pytest.mark.asyncio
    async def test_disabled_by_config(self):
        factory = MagicMock()
        service = AdapterService(factory, enabled=False)
        assert await service.get_repository("/repo") is None
        factory.assert_not_called()

    @pytest.mark.asyncio
    async def test_factory_error_returns_none(self):
        def factory():
            raise RuntimeError("no gitpython")

        service = AdapterService(factory)
        assert await service.get_or_init() is None

    @pytest.mark.asyncio
    async def test_disabled_provider_returns_none(self):
        service = AdapterService(lambda: FakeProvider(enabled=False))
        assert await service.get_or_init() is None
        assert service.is_active is False

    @pytest.mark.asyncio
    async def test_provider_initialised_once(self):
        repo = MagicMock()
        provider = FakeProvider(repository=repo)
        factory = MagicMock(return_value=provider)
        service = AdapterService(factory)

        assert await service.get_repository("/repo") is repo
        assert await service.get_repository("/repo") is repo
        factory.assert_called_once()
        assert service.is_active is True

    @pytest.mark.asyncio
    async def test_open_failure_returns_none(self):
        provider = FakeProvider()
        provider.open_repository = AsyncMock(side_effect=RuntimeError("bad repo"))
        service = AdapterService(lambda: provider)
        assert await service.get_repository("/repo") is None

    @pytest.mark.asyncio
    async def test_disable_event_drops_provider(self):
        first = FakeProvider(repository=MagicMock())
        second = FakeProvider(repository=MagicMock())
        factory = MagicMock(side_effect=[first, second])
        service = AdapterService(factory)

        assert await service.get_or_init() is first
        first.listeners[0](False)
        assert service.is_active is False

        assert await service.get_or_init() is second
        assert first.listeners == []
        assert len(second.listeners) == 1

    @pytest.mark.asyncio
    async def test_close_unsubscribes(self):
        provider = FakeProvider()
        service = AdapterService(lambda: provider)
        await service.get_or_init()

        service.close()
        assert provider.listeners == []
        assert service.is_active is False
