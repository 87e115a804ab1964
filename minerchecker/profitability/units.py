"""
Hashrate unit parsing and electricity / payout math.

Pure functions, no I/O. Every rate is normalized to an unprefixed base unit
(H/s or Sol/s) before it is compared or multiplied.
"""
import math
from dataclasses import dataclass
from typing import Optional

HASH_BASE = 'H/s'
SOL_BASE = 'Sol/s'
GRAPH_BASE = 'Graph/s'

SI_PREFIX = {
    '': 1.0,
    'K': 1e3,
    'M': 1e6,
    'G': 1e9,
    'T': 1e12,
    'P': 1e15,
    'E': 1e18,
}

SATOSHI_PER_BTC = 1e8
SECONDS_PER_DAY = 86400


@dataclass(frozen=True)
class BaseRate:
    """A hashrate expressed in its unprefixed base unit."""
    value: float
    base_unit: str


def to_finite(value) -> Optional[float]:
    """Coerce to a finite float, or None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        n = float(value)
    except (TypeError, ValueError):
        return None
    return n if math.isfinite(n) else None


def _split_unit(unit_label: str):
    """Return (family base unit, SI prefix) for a loose unit label, or None."""
    u = ''.join(str(unit_label or '').split()).upper()
    if not u:
        return None
    for suffix in ('/SECOND', '/SEC', '/S'):
        if u.endswith(suffix):
            u = u[:-len(suffix)]
            break

    if u.endswith('SOL'):
        return SOL_BASE, u[:-3]
    if u.endswith('GRAPH'):
        return GRAPH_BASE, u[:-5]
    if u.endswith('HS'):
        return HASH_BASE, u[:-2]
    if u.endswith('H'):
        return HASH_BASE, u[:-1]
    return None


def unit_multiplier(unit_label: str) -> Optional[tuple]:
    """(multiplier to base, base unit) for labels like "TH/s", "ksol/s", "GH S"."""
    parts = _split_unit(unit_label)
    if parts is None:
        return None
    base_unit, prefix = parts
    factor = SI_PREFIX.get(prefix)
    if factor is None:
        return None
    return factor, base_unit


def parse_speed_to_base(magnitude, unit_label: str) -> Optional[BaseRate]:
    """
    Parse a hashrate magnitude + unit label into a BaseRate.

    Accepts loose labels ("TH/s", "th/s", "MSOL/S", "HS", "100 GH / s").
    Returns None for unknown prefixes/families and non-finite or non-positive
    magnitudes; callers skip the machine instead of failing the batch.
    """
    n = to_finite(magnitude)
    if n is None or n <= 0:
        return None
    parsed = unit_multiplier(unit_label)
    if parsed is None:
        return None
    factor, base_unit = parsed
    return BaseRate(value=n * factor, base_unit=base_unit)


def base_to_unit(rate: BaseRate, target_unit: str) -> Optional[float]:
    """Express a base rate in target_unit; None if the unit is unknown or a different family."""
    parsed = unit_multiplier(target_unit)
    if parsed is None:
        return None
    factor, base_unit = parsed
    if base_unit != rate.base_unit:
        return None
    return rate.value / factor


def compute_electricity_usd_per_day(power_w, usd_per_kwh) -> float:
    """(W / 1000) * 24 * $/kWh. Negative or non-finite inputs cost nothing."""
    p = to_finite(power_w)
    e = to_finite(usd_per_kwh)
    if p is None or p <= 0:
        return 0.0
    if e is None or e < 0:
        return 0.0
    return (p / 1000) * 24 * e


def compute_revenue_usd_per_day_from_payout(
    speed_base_per_sec,
    btc_usd,
    paying_sat_per_unit_per_day=None,
    paying_sat_per_unit_per_sec=None,
) -> float:
    """
    USD/day from an aggregator payout rate in satoshi per base unit.

    The per-day rate wins when both are given; a per-second rate is scaled by 86400.
    """
    speed = to_finite(speed_base_per_sec)
    price = to_finite(btc_usd)
    if speed is None or speed <= 0 or price is None or price <= 0:
        return 0.0

    per_day = to_finite(paying_sat_per_unit_per_day)
    if per_day is None or per_day <= 0:
        per_sec = to_finite(paying_sat_per_unit_per_sec)
        if per_sec is None or per_sec <= 0:
            return 0.0
        per_day = per_sec * SECONDS_PER_DAY

    sat_per_day = per_day * speed
    return sat_per_day / SATOSHI_PER_BTC * price


def format_base_rate(value: float, base_unit: str = HASH_BASE) -> str:
    """Render a base rate with the largest SI prefix that keeps it >= 1 ("1.50 TH/s")."""
    for prefix in ('E', 'P', 'T', 'G', 'M', 'K'):
        factor = SI_PREFIX[prefix]
        if value >= factor:
            return f'{value / factor:.2f} {prefix}{base_unit}'
    return f'{value:.2f} {base_unit}'
