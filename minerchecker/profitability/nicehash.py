"""
Algorithm-level payout aggregator (NiceHash simplemultialgo).

The paying map (normalized algorithm key -> satoshi per base unit per day) is
fetched once per run. After a successful fetch it is persisted to settings;
when the live call fails the stored copy is used, and when there is no stored
copy the map is empty. None of these paths raise.
"""
import logging
from datetime import datetime, timezone
from typing import Dict, Optional

import requests

from minerchecker.config import AGGREGATOR_TIMEOUT_S, NICEHASH_PAYING_SETTINGS_KEY, NICEHASH_PAYING_URL, USER_AGENT
from minerchecker.profitability.catalog import normalize_aggregator_key
from minerchecker.profitability.units import to_finite
from minerchecker.services.settings_store import get_setting, put_setting

logger = logging.getLogger('profitability.nicehash')


def _clean_paying(raw) -> Dict[str, float]:
    out = {}
    if not isinstance(raw, dict):
        return out
    for key, value in raw.items():
        algo = normalize_aggregator_key(key)
        n = to_finite(value)
        if algo and n is not None and n > 0:
            out[algo] = n
    return out


def fetch_paying_map(timeout=AGGREGATOR_TIMEOUT_S, url=NICEHASH_PAYING_URL) -> Dict[str, float]:
    """Live paying map. Raises requests exceptions on transport / HTTP errors."""
    resp = requests.get(
        url,
        headers={'User-Agent': USER_AGENT, 'Accept': 'application/json'},
        timeout=timeout,
    )
    resp.raise_for_status()
    data = resp.json() or {}
    rows = data.get('miningAlgorithms') if isinstance(data, dict) else None
    if not isinstance(rows, list):
        return {}
    return _clean_paying({r.get('algorithm'): r.get('paying') for r in rows if isinstance(r, dict)})


def load_stored_paying_map() -> Dict[str, float]:
    stored = get_setting(NICEHASH_PAYING_SETTINGS_KEY)
    if not isinstance(stored, dict):
        return {}
    return _clean_paying(stored.get('paying'))


def get_paying_map_with_fallback(fetched_at=None, fetch=None) -> Dict[str, float]:
    """Live map (persisted on success), else the stored map, else {}."""
    try:
        paying = (fetch or fetch_paying_map)()
    except Exception as e:
        logger.warning("NiceHash paying map unavailable (%s), using stored copy", e)
        paying = load_stored_paying_map()
        logger.info("Stored NiceHash paying map has %d algorithms", len(paying))
        return paying

    if paying:
        put_setting(NICEHASH_PAYING_SETTINGS_KEY, {
            'fetched_at': (fetched_at or datetime.now(timezone.utc)).isoformat(),
            'source': 'nicehash',
            'paying': paying,
        })
    logger.info("NiceHash paying map fetched: %d algorithms", len(paying))
    return paying


class NiceHashAggregator:
    """Per-run view over a paying map; paying_rate() is the aggregator tier's lookup."""

    def __init__(self, paying: Optional[Dict[str, float]] = None):
        self.paying = _clean_paying(paying or {})

    @classmethod
    def load(cls, fetched_at=None) -> 'NiceHashAggregator':
        return cls(get_paying_map_with_fallback(fetched_at))

    def paying_rate(self, aggregator_key) -> Optional[float]:
        """Satoshi per base unit per day for an algorithm, or None."""
        rate = self.paying.get(normalize_aggregator_key(aggregator_key))
        return rate if rate is not None and rate > 0 else None
