from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from price_watch.errors import ProviderError

REQUEST_TIMEOUT = 10  # seconds


@dataclass
class PriceQuote:
    price: Optional[float]
    change_24h: Optional[float] = None
    raw: Dict[str, Any] = field(default_factory=dict)


# token id -> quote
ProviderResult = Dict[str, PriceQuote]


def to_float(value: Any) -> Optional[float]:
    """Coerce a provider's number or numeric string, None when unusable."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class PriceProvider(ABC):
    name: str = ""

    def __init__(self, timeout: float = REQUEST_TIMEOUT):
        self.client = httpx.Client(timeout=timeout, headers={"Accept": "application/json"})

    @abstractmethod
    def fetch_prices(self, tokens: List[str]) -> ProviderResult:
        """取得多個 token 的最新價格，失敗時拋出 ProviderError"""
        ...

    def _get_json(self, url: str, **kwargs) -> Any:
        try:
            resp = self.client.get(url, **kwargs)
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPStatusError as e:
            raise ProviderError(
                self.name, f"HTTP {e.response.status_code}"
            ) from e
        except httpx.RequestError as e:
            raise ProviderError(self.name, f"request failed: {e}") from e
        except ValueError as e:
            raise ProviderError(self.name, f"invalid JSON: {e}") from e
