from __future__ import annotations

from typing import List

from price_watch.errors import ProviderError
from price_watch.providers.base import PriceProvider, PriceQuote, ProviderResult, to_float

PRICE_URL = "https://lite-api.jup.ag/price/v3"


class JupiterProvider(PriceProvider):
    name = "Jupiter"

    def fetch_prices(self, tokens: List[str]) -> ProviderResult:
        data = self._get_json(PRICE_URL, params={"ids": ",".join(tokens)})
        if not isinstance(data, dict):
            raise ProviderError(self.name, "unexpected response shape")

        results: ProviderResult = {}
        for token in tokens:
            entry = data.get(token)
            if not isinstance(entry, dict):
                continue
            results[token] = PriceQuote(
                price=to_float(entry.get("usdPrice")),
                change_24h=to_float(entry.get("priceChange24h")),
                raw=entry,
            )
        return results
