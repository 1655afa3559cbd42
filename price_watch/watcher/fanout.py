"""Concurrent price lookups across the providers of one watch job."""
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import List, Optional

from loguru import logger

from price_watch.providers.base import ProviderResult
from price_watch.providers.registry import ProviderRegistry

DEFAULT_TIMEOUT = 8.0  # seconds, shared deadline for the whole fan-out


@dataclass
class ProviderOutcome:
    provider: str
    data: Optional[ProviderResult] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def gather_prices(
    registry: ProviderRegistry,
    provider_names: List[str],
    tokens: List[str],
    timeout: float = DEFAULT_TIMEOUT,
) -> List[ProviderOutcome]:
    """Query every named provider concurrently and wait for all of them.

    A failing or slow provider never cancels the others; it just yields a
    failed outcome. The returned list follows ``provider_names`` order.
    """
    selected = registry.select(provider_names)
    outcomes: List[Optional[ProviderOutcome]] = [None] * len(selected)
    futures = {}

    executor = ThreadPoolExecutor(max_workers=max(len(selected), 1))
    try:
        for index, (name, provider) in enumerate(selected):
            if provider is None:
                outcomes[index] = ProviderOutcome(provider=name, error="not registered")
                continue
            futures[executor.submit(provider.fetch_prices, list(tokens))] = index

        done, _ = wait(futures, timeout=timeout)
        for future, index in futures.items():
            name = selected[index][0]
            if future not in done:
                logger.warning(f"{name} timed out after {timeout}s")
                outcomes[index] = ProviderOutcome(provider=name, error="timed out")
                continue
            try:
                outcomes[index] = ProviderOutcome(provider=name, data=future.result())
            except Exception as e:
                logger.error(f"Error fetching prices from {name}: {e}")
                outcomes[index] = ProviderOutcome(provider=name, error=str(e) or type(e).__name__)
    finally:
        # timed out lookups are left to finish in the background
        executor.shutdown(wait=False, cancel_futures=True)

    return outcomes
