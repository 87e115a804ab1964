"""
Revenue estimator tiers — the fallback chain that turns a machine into a daily revenue.

The chain is closed and ordered:

    PER_COIN  →  AGGREGATOR  →  STATIC_FALLBACK

Each tier has the same shape, resolve(candidate) -> RevenueResult or None, and
the resolver stops at the first tier that returns a result. A later tier is
never consulted once an earlier one has produced a value. If every tier
returns None the machine is skipped; unknown revenue is never turned into 0.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Optional, Tuple

from minerchecker.profitability.catalog import resolve_aggregator_key, resolve_fallback_rate
from minerchecker.profitability.units import BaseRate, base_to_unit, compute_revenue_usd_per_day_from_payout

logger = logging.getLogger('profitability.tiers')

AGGREGATOR_CONFIDENCE = 55
STATIC_FALLBACK_CONFIDENCE = 10
NO_RUNNER_UP_CONFIDENCE = 55

# (minimum margin, confidence), checked top-down
MARGIN_BUCKETS = (
    (0.30, 90),
    (0.15, 75),
    (0.07, 60),
    (0.03, 45),
)
TIGHT_MARGIN_CONFIDENCE = 30


class EstimatorTier(str, Enum):
    PER_COIN = 'per-coin'
    AGGREGATOR = 'aggregator'
    STATIC_FALLBACK = 'catalog-fallback'


TIER_ORDER = (EstimatorTier.PER_COIN, EstimatorTier.AGGREGATOR, EstimatorTier.STATIC_FALLBACK)


@dataclass(frozen=True)
class CandidateCoin:
    id: str
    key: str = ''
    symbol: str = ''
    name: str = ''


@dataclass(frozen=True)
class RevenueCandidate:
    """Everything the tiers need to know about one machine."""
    machine_id: str
    algorithm_key: str
    speed: BaseRate
    coins: Tuple[CandidateCoin, ...] = ()
    aggregator_key_override: Optional[str] = None
    fallback_rate: Optional[float] = None
    fallback_unit: Optional[str] = None


@dataclass(frozen=True)
class RevenueResult:
    tier: EstimatorTier
    revenue_usd_per_day: float
    confidence: int
    reason: str
    best_coin_id: Optional[str] = None
    best_value: Optional[float] = None
    second_value: Optional[float] = None


def confidence_from_top2(best, second=None) -> int:
    """0-100 score from the margin between the best and second-best per-coin values."""
    if best is None or best <= 0:
        return 0
    if second is None or second <= 0:
        return NO_RUNNER_UP_CONFIDENCE

    margin = (best - second) / best
    for threshold, confidence in MARGIN_BUCKETS:
        if margin >= threshold:
            return confidence
    return TIGHT_MARGIN_CONFIDENCE


def _top2(coins, estimates):
    """(best coin, best value, second value) over coins with a usable estimate."""
    best_coin, best, second = None, None, None
    for coin in coins:
        value = estimates.get(coin.id)
        if value is None or value <= 0:
            continue
        if best is None or value > best:
            second = best
            best, best_coin = value, coin
        elif second is None or value > second:
            second = value
    return best_coin, best, second


@dataclass
class RevenueResolver:
    """
    Runs a RevenueCandidate through TIER_ORDER.

    per_coin_estimates: coin id -> USD/day per base unit (None = no data), prefetched.
    aggregator_rate:    aggregator key -> satoshi per base unit per day, or None.
    reference_price_usd: BTC/USD used by the aggregator payout formula.
    btc_coin_id:        coin reported as best coin on the aggregator path (it pays in BTC).
    """
    per_coin_estimates: Dict[str, Optional[float]]
    aggregator_rate: Callable[[str], Optional[float]]
    reference_price_usd: float
    btc_coin_id: Optional[str] = None
    tier_counts: Dict[str, int] = field(default_factory=dict)

    def resolve(self, candidate: RevenueCandidate) -> Optional[RevenueResult]:
        for tier in TIER_ORDER:
            result = self._tier_resolvers[tier](self, candidate)
            if result is not None:
                self.tier_counts[tier.value] = self.tier_counts.get(tier.value, 0) + 1
                return result
        return None

    def resolve_per_coin(self, candidate: RevenueCandidate) -> Optional[RevenueResult]:
        coin, best, second = _top2(candidate.coins, self.per_coin_estimates)
        if coin is None:
            return None

        label = coin.symbol or coin.key or coin.id
        if second is not None:
            margin_pct = max(0.0, (best - second) / best * 100)
            reason = f"Per-coin best of {len(candidate.coins)}: {label} wins by ~{margin_pct:.1f}% over #2"
        else:
            reason = f"Per-coin best of {len(candidate.coins)}: {label} selected (no #2 found)"

        return RevenueResult(
            tier=EstimatorTier.PER_COIN,
            revenue_usd_per_day=best * candidate.speed.value,
            confidence=confidence_from_top2(best, second),
            reason=reason,
            best_coin_id=coin.id,
            best_value=best,
            second_value=second,
        )

    def resolve_aggregator(self, candidate: RevenueCandidate) -> Optional[RevenueResult]:
        key = resolve_aggregator_key(candidate.algorithm_key, candidate.aggregator_key_override)
        if not key:
            return None
        rate = self.aggregator_rate(key)
        if rate is None or rate <= 0:
            return None

        revenue = compute_revenue_usd_per_day_from_payout(
            candidate.speed.value,
            self.reference_price_usd,
            paying_sat_per_unit_per_day=rate,
        )
        if revenue <= 0:
            return None

        logger.debug("Machine %s: aggregator fallback via %s", candidate.machine_id, key)
        return RevenueResult(
            tier=EstimatorTier.AGGREGATOR,
            revenue_usd_per_day=revenue,
            confidence=AGGREGATOR_CONFIDENCE,
            reason=f"Aggregator payout used ({key}, BTC payout); per-coin estimates unavailable for this coin set.",
            best_coin_id=self.btc_coin_id,
        )

    def resolve_static_fallback(self, candidate: RevenueCandidate) -> Optional[RevenueResult]:
        fallback = resolve_fallback_rate(candidate.algorithm_key, candidate.fallback_rate, candidate.fallback_unit)
        if fallback is None:
            return None
        rate, unit = fallback

        speed_in_unit = base_to_unit(candidate.speed, unit)
        if speed_in_unit is None:
            logger.debug(
                "Machine %s: fallback unit %s does not match %s",
                candidate.machine_id, unit, candidate.speed.base_unit,
            )
            return None

        return RevenueResult(
            tier=EstimatorTier.STATIC_FALLBACK,
            revenue_usd_per_day=rate * speed_in_unit,
            confidence=STATIC_FALLBACK_CONFIDENCE,
            reason="Static fallback rate used (algorithm catalog). No live revenue source available.",
        )

    _tier_resolvers = {
        EstimatorTier.PER_COIN: resolve_per_coin,
        EstimatorTier.AGGREGATOR: resolve_aggregator,
        EstimatorTier.STATIC_FALLBACK: resolve_static_fallback,
    }
