"""
Dependency container for the shared resources of the service.

The HTTP client and the assessment store are built lazily, once, and shared
by every run; each run still gets its own ``PipelineState``.
"""

from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Any

from ..observability.logging import get_logger
from .settings import Settings, get_settings

logger = get_logger(__name__)


class Container:
    """Lazy service registry with async cleanup."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self._services: dict[str, Any] = {}
        self._factories: dict[str, Any] = {}
        self._singletons: dict[str, Any] = {}

    def register_factory(self, name: str, factory: Any) -> None:
        self._factories[name] = factory

    def register_singleton(self, name: str, instance: Any) -> None:
        """Register a ready-made instance; takes precedence over factories."""
        self._singletons[name] = instance

    def get(self, name: str, default: Any = None) -> Any:
        if name in self._singletons:
            return self._singletons[name]

        if name in self._services:
            return self._services[name]

        if name in self._factories:
            instance = self._factories[name](self)
            self._services[name] = instance
            return instance

        return default

    async def cleanup(self) -> None:
        """Close every resource this container built."""
        for name, resource in list(self._services.items()):
            try:
                if hasattr(resource, "aclose"):
                    await resource.aclose()
                elif hasattr(resource, "close"):
                    resource.close()
            except Exception as e:
                logger.error(f"Error cleaning up {name}: {e}")

        self._services.clear()

    @asynccontextmanager
    async def lifespan(self):
        try:
            yield self
        finally:
            await self.cleanup()


def setup_container(settings: Settings | None = None) -> Container:
    """Setup container with default service factories."""
    container = Container(settings)

    def _http_client_factory(c: Container):
        import httpx

        gen = c.settings.generation
        return httpx.AsyncClient(
            timeout=httpx.Timeout(gen.timeout, connect=gen.connect_timeout),
            limits=httpx.Limits(max_connections=20, max_keepalive_connections=5),
        )

    def _generation_client_factory(c: Container):
        from ..generation.client import GenerationClient

        return GenerationClient(c.settings.generation, http_client=c.get("http_client"))

    def _assessment_store_factory(c: Container):
        from ..storage import create_store

        return create_store(c.settings.storage)

    def _pipeline_factory(c: Container):
        from ..stages import build_pipeline

        return build_pipeline(c.settings, c.get("generation_client"), c.get("assessment_store"))

    container.register_factory("http_client", _http_client_factory)
    container.register_factory("generation_client", _generation_client_factory)
    container.register_factory("assessment_store", _assessment_store_factory)
    container.register_factory("pipeline", _pipeline_factory)

    return container


@lru_cache
def get_container() -> Container:
    """Get cached container instance."""
    return setup_container()
