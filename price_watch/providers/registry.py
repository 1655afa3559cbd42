from __future__ import annotations

from functools import lru_cache
from typing import Dict, Iterable, List, Optional, Tuple

from loguru import logger

from price_watch.providers.base import PriceProvider


class ProviderRegistry:
    """Maps provider names to price lookup implementations."""

    def __init__(self, providers: Iterable[PriceProvider] = ()):
        self._providers: Dict[str, PriceProvider] = {}
        for provider in providers:
            self.register(provider)

    def register(self, provider: PriceProvider) -> None:
        if not provider.name:
            raise ValueError("Provider must have a name")
        if provider.name in self._providers:
            raise ValueError(f"Provider already registered: {provider.name}")
        self._providers[provider.name] = provider

    def get(self, name: str) -> Optional[PriceProvider]:
        return self._providers.get(name)

    def names(self) -> List[str]:
        return list(self._providers)

    def __contains__(self, name: str) -> bool:
        return name in self._providers

    def select(self, names: Iterable[str]) -> List[Tuple[str, Optional[PriceProvider]]]:
        """Resolve names in the given order; unknown names map to None."""
        selected = []
        for name in names:
            provider = self._providers.get(name)
            if provider is None:
                logger.warning(f"Unknown provider: {name}")
            selected.append((name, provider))
        return selected


def build_default_registry() -> ProviderRegistry:
    """建立內建的價格來源 (Jupiter / Raydium / Birdeye)"""
    from price_watch.providers.birdeye import BirdeyeProvider
    from price_watch.providers.jupiter import JupiterProvider
    from price_watch.providers.raydium import RaydiumProvider

    return ProviderRegistry([JupiterProvider(), RaydiumProvider(), BirdeyeProvider()])


@lru_cache
def get_default_registry() -> ProviderRegistry:
    return build_default_registry()
