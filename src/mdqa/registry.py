"""Provider lookup for the pipeline.

Config names an embedding provider and a generative model provider; this
module turns those names into instances.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from mdqa.exceptions import PluginError

if TYPE_CHECKING:
    from collections.abc import Callable

    from mdqa.config import MdqaConfig

__all__ = ["PROVIDER_KINDS", "ProviderRegistry", "default_registry"]

logger = logging.getLogger(__name__)

PROVIDER_KINDS = ("embedding", "llm")


class ProviderRegistry:
    """Factories for embedding and llm providers, keyed by config name.

    The default registry imports ``mdqa.embed`` and ``mdqa.llm`` on first
    lookup; those packages register the built-in providers into it.
    """

    def __init__(self, *, load_builtins: bool = False) -> None:
        self._factories: dict[str, dict[str, Callable[[MdqaConfig], Any]]] = {
            kind: {} for kind in PROVIDER_KINDS
        }
        self._pending_builtins = load_builtins

    def _providers(self, kind: str) -> dict[str, Callable[[MdqaConfig], Any]]:
        if kind not in self._factories:
            raise PluginError(f"Unknown provider kind {kind!r}; expected one of {PROVIDER_KINDS}")
        if self._pending_builtins:
            self._pending_builtins = False
            import mdqa.embed  # noqa: F401
            import mdqa.llm  # noqa: F401
        return self._factories[kind]

    def register(self, kind: str, name: str, factory: Callable[[MdqaConfig], Any]) -> None:
        """Add a provider factory; names are unique per kind.

        Raises:
            PluginError: On an unknown kind or a name already taken.
        """
        if kind not in self._factories:
            raise PluginError(f"Unknown provider kind {kind!r}; expected one of {PROVIDER_KINDS}")
        providers = self._factories[kind]
        if name in providers:
            raise PluginError(f"{kind} provider {name!r} is already registered")
        providers[name] = factory
        logger.debug("Registered %s provider %s", kind, name)

    def create(self, kind: str, name: str, config: MdqaConfig) -> Any:
        """Build the ``kind`` provider called ``name`` from ``config``.

        Raises:
            PluginError: If nothing is registered under that kind and name.
        """
        providers = self._providers(kind)
        if name not in providers:
            raise PluginError(
                f"No {kind} provider named {name!r}. Available: {sorted(providers)}"
            )
        logger.info("Using %s provider %s", kind, name)
        return providers[name](config)

    def list_providers(self, kind: str) -> list[str]:
        """Registered provider names for ``kind``, sorted."""
        return sorted(self._providers(kind))


default_registry = ProviderRegistry(load_builtins=True)
