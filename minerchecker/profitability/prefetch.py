"""
Per-coin prefetch — fetch every candidate coin's estimate once, before the machine loop.

Identifiers are tried key first, then symbol, and are de-duplicated
case-insensitively so "BTC" and "btc" cost one request. All fetches go through
the ConcurrencyLimiter.
"""
import logging
from typing import Dict, Iterable, List, Optional

from minerchecker.profitability.limiter import ConcurrencyLimiter
from minerchecker.profitability.tiers import CandidateCoin

logger = logging.getLogger('profitability.prefetch')


def candidate_coins_for(machine_coins, algorithm_coins, limit) -> List[CandidateCoin]:
    """Explicitly permitted coins if any, else every coin of the algorithm, capped at limit."""
    source = machine_coins if machine_coins else algorithm_coins
    return list(source or [])[:max(0, int(limit))]


def collect_unique_candidates(candidate_lists: Iterable[List[CandidateCoin]]) -> Dict[str, CandidateCoin]:
    unique = {}
    for coins in candidate_lists:
        for coin in coins:
            unique.setdefault(coin.id, coin)
    return unique


def _norm(identifier) -> str:
    return str(identifier or '').strip().lower()


def _fetch_unique(identifiers, estimator, limiter, known) -> None:
    pending = []
    for ident in identifiers:
        k = _norm(ident)
        if k and k not in known and k not in pending:
            pending.append(k)
    if not pending:
        return

    def _one(ident) -> Optional[float]:
        est = estimator.fetch_revenue_per_base_unit_per_day(ident)
        if est is None or not est.per_base_unit_per_day or est.per_base_unit_per_day <= 0:
            return None
        return est.per_base_unit_per_day

    for ident, value in zip(pending, limiter.map(_one, pending)):
        known[ident] = value


def prefetch_per_coin_estimates(coins: Iterable[CandidateCoin], estimator,
                                limiter: ConcurrencyLimiter) -> Dict[str, Optional[float]]:
    """coin id -> USD/day per base unit (None when neither key nor symbol had data)."""
    coins = list(coins)
    by_identifier: Dict[str, Optional[float]] = {}

    _fetch_unique((c.key for c in coins), estimator, limiter, by_identifier)

    retry = [c for c in coins if by_identifier.get(_norm(c.key)) is None]
    _fetch_unique((c.symbol for c in retry), estimator, limiter, by_identifier)

    out = {}
    for c in coins:
        value = by_identifier.get(_norm(c.key))
        if value is None:
            value = by_identifier.get(_norm(c.symbol))
        out[c.id] = value

    found = sum(1 for v in out.values() if v is not None)
    logger.info(
        "Per-coin prefetch: %d coins, %d identifiers, %d with estimates (peak concurrency %d)",
        len(coins), len(by_identifier), found, limiter.peak,
    )
    return out
