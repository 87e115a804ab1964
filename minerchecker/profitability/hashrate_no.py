"""
Per-coin revenue estimator backed by hashrate.no coin pages.

The page renders something like "Est. Revenue ... $0.000252 ... per Gh/s". The
text is flattened with BeautifulSoup and matched with one regex; the per-unit
value is divided by the unit's SI multiplier to get USD/day per base unit.

This is the only place that knows the page format. Anything that goes wrong
(timeout, non-2xx, no match, unknown unit, non-positive value) is cached as a
negative result and returned as None.
"""
import logging
import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote

import requests
from bs4 import BeautifulSoup

from minerchecker.config import (
    HASHRATE_NO_URL, PER_COIN_TIMEOUT_S, PER_COIN_CACHE_TTL_S, PER_COIN_NEGATIVE_TTL_S,
)
from minerchecker.profitability.cache import EstimateCache
from minerchecker.profitability.units import to_finite, unit_multiplier

logger = logging.getLogger('profitability.hashrate_no')

REVENUE_PATTERN = re.compile(
    r'Est\.?\s*Revenue.{0,600}?\$?\s*([0-9]+(?:\.[0-9]+)?)'
    r'.{0,200}?\bper\b.{0,40}?(?:1\s*)?([A-Za-z0-9]+/[A-Za-z]+)\b',
    re.IGNORECASE | re.DOTALL,
)


@dataclass(frozen=True)
class RevenueEstimate:
    identifier: str
    per_base_unit_per_day: float    # USD/day per H/s, Sol/s or Graph/s
    source_unit: str                # unit the page quoted, e.g. "Gh/s"


def parse_revenue_per_unit(html) -> Optional[tuple]:
    """(usd per unit per day, unit label) from a coin page, or None."""
    if not html:
        return None
    text = BeautifulSoup(html, 'html.parser').get_text(' ')
    m = REVENUE_PATTERN.search(text)
    if not m:
        return None
    revenue = to_finite(m.group(1))
    unit = m.group(2).strip()
    if revenue is None or revenue <= 0 or not unit:
        return None
    return revenue, unit


class HashrateNoEstimator:
    """
    Cached, timeout-bounded client for hashrate.no coin pages.

    One instance per run; pass a shared EstimateCache to keep results across runs
    in the same process.
    """

    def __init__(self, cache: EstimateCache = None, timeout=PER_COIN_TIMEOUT_S,
                 base_url=HASHRATE_NO_URL, http=None):
        self.cache = cache if cache is not None else EstimateCache(
            positive_ttl=PER_COIN_CACHE_TTL_S,
            negative_ttl=PER_COIN_NEGATIVE_TTL_S,
        )
        self.timeout = timeout
        self.base_url = base_url.rstrip('/')
        self.http = http or requests

    def _fetch(self, identifier) -> Optional[RevenueEstimate]:
        try:
            return self._fetch_estimate(identifier)
        except Exception as e:
            logger.debug("hashrate.no lookup failed for %s: %s", identifier, e)
            return None

    def _fetch_estimate(self, identifier) -> Optional[RevenueEstimate]:
        url = f"{self.base_url}/{quote(identifier)}"
        resp = self.http.get(
            url,
            headers={'User-Agent': 'Mozilla/5.0', 'Accept': 'text/html'},
            timeout=self.timeout,
        )

        if resp.status_code != 200:
            logger.debug("hashrate.no returned %d for %s", resp.status_code, identifier)
            return None

        parsed = parse_revenue_per_unit(resp.text)
        if parsed is None:
            logger.debug("No revenue figure on hashrate.no page for %s", identifier)
            return None

        revenue, unit = parsed
        mult = unit_multiplier(unit)
        if mult is None:
            logger.debug("Unknown unit %r on hashrate.no page for %s", unit, identifier)
            return None

        per_base = revenue / mult[0]
        if per_base <= 0:
            return None
        return RevenueEstimate(identifier=identifier, per_base_unit_per_day=per_base, source_unit=unit)

    def fetch_revenue_per_base_unit_per_day(self, identifier) -> Optional[RevenueEstimate]:
        """Cached estimate for a coin key or symbol; None when there is no usable figure."""
        return self.cache.get_or_fetch(identifier, self._fetch)

    def is_confirmed_missing(self, identifier) -> bool:
        return self.cache.is_negative(identifier)
