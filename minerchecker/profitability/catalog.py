"""
Algorithm catalog loader — aggregator key overrides and static fallback rates.

Same pattern as the other YAML-backed configs: YAML file next to this module,
in-memory cache, hardcoded fallback if the file is missing or unreadable.
Catalog DB rows override what the YAML says.
"""
import logging
import os
import re
from dataclasses import dataclass
from typing import Dict, Optional

import yaml

from minerchecker.profitability.units import to_finite

logger = logging.getLogger('profitability.catalog')


@dataclass(frozen=True)
class CatalogEntry:
    key: str
    name: str
    unit: str = ''
    aggregator_key: Optional[str] = None
    fallback_revenue_usd_per_unit_per_day: Optional[float] = None


_catalog = None


def _default_config():
    """Hardcoded fallback if YAML is missing."""
    return {
        'version': 'default',
        'algorithms': [
            {'key': 'sha256', 'name': 'SHA-256', 'unit': 'TH/s', 'aggregator_key': 'SHA256'},
            {'key': 'scrypt', 'name': 'Scrypt', 'unit': 'MH/s', 'aggregator_key': 'SCRYPT'},
            {'key': 'x11', 'name': 'X11', 'unit': 'GH/s', 'aggregator_key': 'X11'},
            {'key': 'kheavyhash', 'name': 'kHeavyHash', 'unit': 'GH/s', 'aggregator_key': 'KHEAVYHASH'},
            {'key': 'equihash', 'name': 'Equihash', 'unit': 'kSol/s', 'aggregator_key': 'EQUIHASH'},
            {'key': 'randomx', 'name': 'RandomX', 'unit': 'kH/s', 'aggregator_key': 'RANDOMXMONERO'},
        ],
    }


def normalize_aggregator_key(key) -> str:
    """Upper-case and strip non-alphanumerics ("sha-256" -> "SHA256")."""
    return re.sub(r'[^A-Z0-9]', '', str(key or '').strip().upper())


def _parse(config: dict) -> Dict[str, CatalogEntry]:
    entries = {}
    for row in config.get('algorithms') or []:
        key = str(row.get('key') or '').strip().lower()
        if not key:
            continue
        rate = to_finite(row.get('fallback_revenue_usd_per_unit_per_day'))
        entries[key] = CatalogEntry(
            key=key,
            name=str(row.get('name') or key),
            unit=str(row.get('unit') or '').strip(),
            aggregator_key=normalize_aggregator_key(row['aggregator_key']) if row.get('aggregator_key') else None,
            fallback_revenue_usd_per_unit_per_day=rate if rate is not None and rate > 0 else None,
        )
    return entries


def load_algorithm_catalog() -> Dict[str, CatalogEntry]:
    """Load the catalog from YAML, with in-memory cache and hardcoded fallback."""
    global _catalog
    if _catalog is not None:
        return _catalog

    config_path = os.path.join(os.path.dirname(__file__), 'algorithm_catalog.yaml')
    try:
        with open(config_path, 'r') as f:
            config = yaml.safe_load(f) or {}
        logger.info("Algorithm catalog loaded from YAML (version=%s)", config.get('version', '?'))
    except Exception as e:
        logger.warning("Algorithm catalog YAML not found (%s), using defaults", e)
        config = _default_config()

    _catalog = _parse(config)
    return _catalog


def get_entry(algorithm_key) -> Optional[CatalogEntry]:
    return load_algorithm_catalog().get(str(algorithm_key or '').strip().lower())


def resolve_aggregator_key(algorithm_key, override=None) -> str:
    """Row override, then catalog override, then the normalized algorithm key."""
    if override:
        return normalize_aggregator_key(override)
    entry = get_entry(algorithm_key)
    if entry and entry.aggregator_key:
        return entry.aggregator_key
    return normalize_aggregator_key(algorithm_key)


def resolve_fallback_rate(algorithm_key, row_rate=None, row_unit=None):
    """(usd per unit per day, unit) from the row, else the catalog; None when neither has one."""
    rate = to_finite(row_rate)
    unit = str(row_unit or '').strip()
    if rate is not None and rate > 0 and unit:
        return rate, unit

    entry = get_entry(algorithm_key)
    if entry and entry.fallback_revenue_usd_per_unit_per_day and entry.unit:
        return entry.fallback_revenue_usd_per_unit_per_day, entry.unit
    return None


def reset_cache():
    """Reset the in-memory cache (useful for testing)."""
    global _catalog
    _catalog = None
