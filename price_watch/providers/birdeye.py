from __future__ import annotations

from typing import List, Optional

from price_watch.config import get_settings
from price_watch.errors import ProviderError
from price_watch.providers.base import (
    REQUEST_TIMEOUT,
    PriceProvider,
    PriceQuote,
    ProviderResult,
    to_float,
)

MULTI_PRICE_URL = "https://public-api.birdeye.so/defi/multi_price"


class BirdeyeProvider(PriceProvider):
    name = "Birdeye"

    def __init__(self, api_key: Optional[str] = None, timeout: float = REQUEST_TIMEOUT):
        super().__init__(timeout=timeout)
        self.api_key = api_key if api_key is not None else get_settings().birdeye_api_key

    def fetch_prices(self, tokens: List[str]) -> ProviderResult:
        if not self.api_key:
            raise ProviderError(self.name, "API key not configured")

        payload = self._get_json(
            MULTI_PRICE_URL,
            params={"list_address": ",".join(tokens)},
            headers={"X-API-KEY": self.api_key, "x-chain": "solana"},
        )
        if not isinstance(payload, dict) or not payload.get("success", False):
            raise ProviderError(self.name, "request not successful")

        data = payload.get("data") or {}
        results: ProviderResult = {}
        for token in tokens:
            entry = data.get(token)
            if not isinstance(entry, dict):
                continue
            results[token] = PriceQuote(
                price=to_float(entry.get("value")),
                change_24h=to_float(entry.get("priceChange24h")),
                raw=entry,
            )
        return results
