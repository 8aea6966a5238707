"""
Exchange rates with a one-hour local cache.
"""

from __future__ import annotations

from typing import Callable

from passit.cache import LocalCache
from passit.exchange_rates import ExchangeRateApiClient
from shared.constants import EXCHANGE_RATE_CACHE_DURATION_MS
from shared.formatting import now_millis
from shared.types import CachedRate, ExchangeRate


def rate_cache_id(from_currency: str, to_currency: str) -> str:
    return f"{from_currency}_{to_currency}"


class ExchangeRateRepository:
    def __init__(
        self,
        cache: LocalCache,
        api: ExchangeRateApiClient,
        clock: Callable[[], int] = now_millis,
    ):
        self.cache = cache
        self.api = api
        self.clock = clock

    def get_exchange_rate(self, from_currency: str, to_currency: str) -> float:
        """Returns a cached rate younger than an hour, otherwise fetches and caches one."""
        now = self.clock()
        cached = self.cache.get_rate(from_currency, to_currency)
        if cached is not None and now - cached.timestamp <= EXCHANGE_RATE_CACHE_DURATION_MS:
            return cached.rate

        rate = self.api.get_rate(from_currency, to_currency)
        self.cache.upsert_rate(
            CachedRate(
                id=rate_cache_id(from_currency, to_currency),
                from_currency=from_currency,
                to_currency=to_currency,
                rate=rate,
                timestamp=now,
            )
        )
        return rate

    def get_all_rates(self, base_currency: str) -> ExchangeRate:
        return self.api.get_all_rates(base_currency, timestamp=self.clock())

    def convert(self, amount: float, from_currency: str, to_currency: str) -> float:
        return amount * self.get_exchange_rate(from_currency, to_currency)

    def clear_cache(self) -> None:
        self.cache.clear_rates()

    def prune_expired(self) -> int:
        return self.cache.delete_rates_older_than(self.clock() - EXCHANGE_RATE_CACHE_DURATION_MS)
