"""Process-scoped access to the structured repository adapter."""

import logging
from typing import Callable, Optional

from ..utils.validators import normalize_directory_path
from .base import RepositoryProvider, StructuredRepository

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[], Optional[RepositoryProvider]]


class AdapterService:
    """
    Lazily initialises one RepositoryProvider and tracks its enablement.

    With no factory (or a disabled provider) every lookup returns None, which
    routes callers to the command-line path.
    """

    def __init__(self, provider_factory: Optional[ProviderFactory] = None, enabled: bool = True):
        self._provider_factory = provider_factory
        self._configured = enabled
        self._provider: Optional[RepositoryProvider] = None
        self._provider_enabled = False
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def is_active(self) -> bool:
        return self._provider is not None and self._provider_enabled

    def _on_enablement_changed(self, enabled: bool) -> None:
        logger.info(f"Structured adapter {'enabled' if enabled else 'disabled'}")
        self._provider_enabled = enabled
        if not enabled:
            self._provider = None

    async def get_or_init(self) -> Optional[RepositoryProvider]:
        if self.is_active:
            return self._provider
        if not self._configured or self._provider_factory is None:
            return None

        try:
            provider = self._provider_factory()
        except Exception as e:
            logger.error(f"Failed to initialize structured adapter: {e}")
            return None

        if provider is None:
            logger.warning("Structured adapter not available")
            return None
        if not provider.enabled:
            logger.warning("Structured adapter is disabled")
            return None

        if self._unsubscribe is not None:
            self._unsubscribe()
        self._provider = provider
        self._provider_enabled = True
        self._unsubscribe = provider.on_enablement_change(self._on_enablement_changed)
        return provider

    async def get_repository(self, directory: str) -> Optional[StructuredRepository]:
        provider = await self.get_or_init()
        if provider is None:
            return None
        try:
            return await provider.open_repository(normalize_directory_path(directory))
        except Exception as e:
            logger.warning(f"Structured adapter could not open {directory}: {e}")
            return None

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._provider = None
        self._provider_enabled = False
