from __future__ import annotations

from typing import List

from price_watch.errors import ProviderError
from price_watch.providers.base import PriceProvider, PriceQuote, ProviderResult, to_float

PRICE_URL = "https://api-v3.raydium.io/mint/price"


class RaydiumProvider(PriceProvider):
    """Raydium only reports spot prices, never a 24h change."""

    name = "Raydium"

    def fetch_prices(self, tokens: List[str]) -> ProviderResult:
        payload = self._get_json(PRICE_URL, params={"mints": ",".join(tokens)})
        if not isinstance(payload, dict) or not payload.get("success", False):
            raise ProviderError(self.name, "request not successful")

        prices = payload.get("data") or {}
        results: ProviderResult = {}
        for token in tokens:
            if token not in prices:
                continue
            results[token] = PriceQuote(
                price=to_float(prices[token]),
                raw={"price": prices[token]},
            )
        return results
