"""
Currency exchange rates from the open.er-api.com latest-rates endpoint.

Any failure (network, HTTP status, a body whose `result` is not "success",
or a missing currency) falls back to an approximate hardcoded CAD table.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional

import requests

from shared.constants import FALLBACK_CAD_RATES
from shared.formatting import now_millis
from shared.types import ExchangeRate

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://open.er-api.com/v6/latest"
REQUEST_TIMEOUT = 10  # seconds


class ExchangeRateApiError(Exception):
    """The rates API answered but did not report success."""


def fallback_rate(from_currency: str, to_currency: str) -> float:
    """Converts through CAD using the hardcoded table; unknown codes count as 1.0."""
    if from_currency == to_currency:
        return 1.0
    from_to_cad = 1.0 / FALLBACK_CAD_RATES.get(from_currency, 1.0)
    cad_to_target = FALLBACK_CAD_RATES.get(to_currency, 1.0)
    return from_to_cad * cad_to_target


def fallback_rates(base_currency: str) -> Dict[str, float]:
    if base_currency == "CAD":
        return dict(FALLBACK_CAD_RATES)
    base_to_cad = 1.0 / FALLBACK_CAD_RATES.get(base_currency, 1.0)
    return {code: base_to_cad * rate for code, rate in FALLBACK_CAD_RATES.items()}


class ExchangeRateApiClient:
    """HTTP client for the latest-rates endpoint."""

    def __init__(self, base_url: str = DEFAULT_BASE_URL, timeout: float = REQUEST_TIMEOUT):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def fetch_latest(self, base_currency: str) -> Dict[str, float]:
        """
        Fetches every rate for `base_currency` from the API.

        Raises:
            requests.RequestException: On network or HTTP errors.
            ExchangeRateApiError: If the body does not report success.
        """
        response = requests.get(f"{self.base_url}/{base_currency}", timeout=self.timeout)
        response.raise_for_status()
        body = response.json()
        result = body.get("result")
        if result != "success":
            raise ExchangeRateApiError(f"API request failed: {result}")
        return {code: float(rate) for code, rate in (body.get("rates") or {}).items()}

    def get_rate(self, from_currency: str, to_currency: str) -> float:
        if from_currency == to_currency:
            return 1.0
        try:
            return self.fetch_latest(from_currency)[to_currency]
        except Exception as exc:
            logger.warning(
                "Exchange rate API failed for %s->%s, using fallback: %s",
                from_currency,
                to_currency,
                exc,
            )
            return fallback_rate(from_currency, to_currency)

    def get_all_rates(self, base_currency: str, timestamp: Optional[int] = None) -> ExchangeRate:
        try:
            rates = self.fetch_latest(base_currency)
        except Exception as exc:
            logger.warning(
                "Exchange rate API failed for %s, using fallback: %s", base_currency, exc
            )
            rates = fallback_rates(base_currency)
        return ExchangeRate(
            base_currency=base_currency,
            rates=rates,
            timestamp=timestamp if timestamp is not None else now_millis(),
        )
