"""
Reference price oracle — asset/USD spot price with provider fallback.

Providers are tried in a fixed order (CoinGecko, Binance, Coinbase, Kraken);
each gets its own timeout and the first finite, positive value wins. A
successful price is persisted so the next run can fall back to it when every
provider is down. If neither works, PriceUnavailableError is raised and the
caller aborts the run.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

import requests

from minerchecker.config import PRICE_TIMEOUT_S, REFERENCE_PRICE_SETTINGS_KEY, USER_AGENT
from minerchecker.profitability.errors import PriceUnavailableError
from minerchecker.profitability.units import to_finite
from minerchecker.services.settings_store import get_setting, put_setting

logger = logging.getLogger('profitability.price_oracle')

COINGECKO_IDS = {
    'BTC': 'bitcoin',
    'ETH': 'ethereum',
    'LTC': 'litecoin',
    'KAS': 'kaspa',
}
KRAKEN_ALIASES = {'BTC': 'XBT'}


@dataclass(frozen=True)
class ReferencePrice:
    value: float
    source: str


def _get_json(url, timeout):
    resp = requests.get(
        url,
        headers={'User-Agent': USER_AGENT, 'Accept': 'application/json'},
        timeout=timeout,
    )
    resp.raise_for_status()
    return resp.json()


def from_coingecko(asset, timeout=PRICE_TIMEOUT_S):
    coin_id = COINGECKO_IDS.get(asset, asset.lower())
    data = _get_json(
        f'https://api.coingecko.com/api/v3/simple/price?ids={coin_id}&vs_currencies=usd',
        timeout,
    )
    return (data.get(coin_id) or {}).get('usd')


def from_binance(asset, timeout=PRICE_TIMEOUT_S):
    data = _get_json(f'https://api.binance.com/api/v3/ticker/price?symbol={asset}USDT', timeout)
    return data.get('price')


def from_coinbase(asset, timeout=PRICE_TIMEOUT_S):
    data = _get_json(f'https://api.coinbase.com/v2/prices/{asset}-USD/spot', timeout)
    return (data.get('data') or {}).get('amount')


def from_kraken(asset, timeout=PRICE_TIMEOUT_S):
    pair = f"{KRAKEN_ALIASES.get(asset, asset)}USD"
    data = _get_json(f'https://api.kraken.com/0/public/Ticker?pair={pair}', timeout)
    result = data.get('result') or {}
    if not result:
        return None
    ticker = next(iter(result.values()))
    # "c" = last trade closed [price, lot volume]
    return (ticker.get('c') or [None])[0]


DEFAULT_PROVIDERS: List[Tuple[str, Callable]] = [
    ('CoinGecko', from_coingecko),
    ('Binance', from_binance),
    ('Coinbase', from_coinbase),
    ('Kraken', from_kraken),
]


class PriceOracle:
    """
    Ordered provider chain plus the persisted last-known price.

    Providers are (name, fn(asset, timeout)) pairs so tests can stub them.
    """

    def __init__(self, providers=None, timeout=PRICE_TIMEOUT_S, persist=True):
        self.providers = list(providers) if providers is not None else list(DEFAULT_PROVIDERS)
        self.timeout = timeout
        self.persist = persist

    def _from_providers(self, asset):
        last_error = None
        for name, fetch in self.providers:
            try:
                value = to_finite(fetch(asset, timeout=self.timeout))
            except Exception as e:
                logger.warning("Price provider %s failed for %s: %s", name, asset, e)
                last_error = e
                continue
            if value is None or value <= 0:
                logger.warning("Price provider %s returned an invalid %s price", name, asset)
                last_error = ValueError(f"invalid {name} price")
                continue
            return ReferencePrice(value=value, source=name), None
        return None, last_error

    def _load_stored(self, asset) -> Optional[ReferencePrice]:
        stored = get_setting(REFERENCE_PRICE_SETTINGS_KEY.format(asset=asset))
        if not isinstance(stored, dict):
            return None
        value = to_finite(stored.get('usd'))
        if value is None or value <= 0:
            return None
        return ReferencePrice(value=value, source=str(stored.get('source') or 'Stored'))

    def _store(self, asset, price: ReferencePrice, fetched_at):
        put_setting(REFERENCE_PRICE_SETTINGS_KEY.format(asset=asset), {
            'usd': price.value,
            'source': price.source,
            'fetched_at': fetched_at.isoformat(),
        })

    def get_reference_price_usd(self, asset='BTC', fetched_at=None) -> ReferencePrice:
        """Live price from the first working provider, else the stored price, else raise."""
        asset = str(asset or 'BTC').strip().upper()
        price, last_error = self._from_providers(asset)
        if price is not None:
            logger.info("%s/USD = %.2f from %s", asset, price.value, price.source)
            if self.persist:
                self._store(asset, price, fetched_at or datetime.now(timezone.utc))
            return price

        stored = self._load_stored(asset)
        if stored is not None:
            logger.warning(
                "All %s price providers failed, using stored %.2f (%s)",
                asset, stored.value, stored.source,
            )
            return stored

        logger.error("All %s price providers failed and no stored price exists", asset)
        raise PriceUnavailableError(asset, last_error)
