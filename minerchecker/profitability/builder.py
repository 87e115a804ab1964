"""
Snapshot builder — one profitability run over the machine catalog.

    reference price  →  aggregator paying map  →  load catalog + FX
      →  prefetch per-coin estimates (bounded concurrency)
      →  per machine: base rate → tier chain → cost breakdown → snapshot row
      →  chunked idempotent write  →  RunSummary

Every snapshot of a run shares one hour bucket and one set of baseline inputs
(electricity price, pool fee, hosting). Per-machine problems are counted in the
summary by reason; only a missing reference price or a failed write aborts the run.
"""
import logging
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import selectinload

from minerchecker.config import (
    BASELINE_ELECTRICITY_USD_PER_KWH, CANDIDATE_COIN_LIMIT, DEFAULT_ELECTRICITY_USD_PER_KWH,
    PER_COIN_CONCURRENCY, PER_COIN_MAX_CONCURRENCY, REFERENCE_ASSET, SNAPSHOT_CHUNK_SIZE,
)
from minerchecker.database import get_session
from minerchecker.models.catalog import Coin, Machine
from minerchecker.profitability.costs import CostInputs, compute_cost_breakdown
from minerchecker.profitability.errors import PriceUnavailableError, RunAbortedError
from minerchecker.profitability.hashrate_no import HashrateNoEstimator
from minerchecker.profitability.limiter import ConcurrencyLimiter
from minerchecker.profitability.nicehash import NiceHashAggregator
from minerchecker.profitability.prefetch import (
    candidate_coins_for, collect_unique_candidates, prefetch_per_coin_estimates,
)
from minerchecker.profitability.price_oracle import PriceOracle
from minerchecker.profitability.store import write_snapshots
from minerchecker.profitability.tiers import CandidateCoin, RevenueCandidate, RevenueResolver
from minerchecker.profitability.units import format_base_rate, parse_speed_to_base, to_finite
from minerchecker.services.fx import convert_to_usd, get_latest_fx_rates

logger = logging.getLogger('profitability.builder')

SKIP_UNPARSEABLE_HASHRATE = 'unparseable_hashrate'
SKIP_NO_REVENUE_SOURCE = 'no_revenue_source'


@dataclass
class RunSummary:
    computed_at: datetime
    baseline_electricity_usd_per_kwh: float
    pool_fee_pct: float
    hosting_usd_per_day: float
    bucket: str = 'hour'
    duration_ms: int = 0
    machines_total: int = 0
    snapshots_written: int = 0
    duplicates_skipped: int = 0
    skipped: int = 0
    skipped_by_reason: Dict[str, int] = field(default_factory=dict)
    revenue_sources: Dict[str, int] = field(default_factory=dict)
    reference_asset: str = REFERENCE_ASSET
    reference_price_usd: Optional[float] = None
    reference_price_source: Optional[str] = None
    machine_ids: Optional[List[str]] = None
    unique_coins_prefetched: int = 0
    per_coin_lookups: int = 0
    per_coin_concurrency: int = 0
    failed_phase: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.failed_phase is None

    def skip(self, reason: str) -> None:
        self.skipped += 1
        self.skipped_by_reason[reason] = self.skipped_by_reason.get(reason, 0) + 1

    def to_dict(self) -> dict:
        d = asdict(self)
        d['computed_at'] = self.computed_at.isoformat()
        d['ok'] = self.ok
        return d


def hour_bucket(dt: Optional[datetime] = None) -> datetime:
    """Truncate to the UTC hour, returned naive (the column stores naive UTC)."""
    dt = dt or datetime.now(timezone.utc)
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.replace(minute=0, second=0, microsecond=0)


def normalize_run_params(electricity_usd_per_kwh=None, pool_fee_pct=None, hosting_usd_per_day=None):
    """(electricity $/kWh, pool fee %, hosting $/day) clamped to what a run accepts."""
    electricity = to_finite(electricity_usd_per_kwh)
    if electricity is None:
        baseline = to_finite(BASELINE_ELECTRICITY_USD_PER_KWH)
        electricity = baseline if baseline is not None and baseline > 0 else DEFAULT_ELECTRICITY_USD_PER_KWH

    fee = to_finite(pool_fee_pct)
    fee = min(100.0, max(0.0, round(fee, 3))) if fee is not None else 0.0

    hosting = to_finite(hosting_usd_per_day)
    hosting = max(0.0, hosting) if hosting is not None else 0.0
    return electricity, fee, hosting


def _dec(n, places) -> Decimal:
    n = to_finite(n)
    return Decimal(f"{n if n is not None else 0:.{places}f}")


def lowest_offer_usd(offerings, fx_rates):
    """
    (lowest in-stock price in USD, shipping of that same offer in USD).

    Shipping always comes from the offer that set the lowest price; offers whose
    currency cannot be converted are ignored.
    """
    lowest_price, lowest_shipping = None, None
    for offer in offerings or []:
        if not offer.in_stock:
            continue
        price = convert_to_usd(offer.price, offer.currency, fx_rates)
        if price is None:
            continue
        if lowest_price is None or price < lowest_price:
            lowest_price = price
            lowest_shipping = (
                convert_to_usd(offer.shipping_cost, offer.currency, fx_rates)
                if offer.shipping_cost is not None else None
            )
    return lowest_price, lowest_shipping


def _candidate_coin(row) -> CandidateCoin:
    return CandidateCoin(id=row.id, key=row.key or '', symbol=row.symbol or '', name=row.name or '')


def _load_catalog(session, machine_ids):
    query = session.query(Machine).options(
        selectinload(Machine.algorithm),
        selectinload(Machine.coins),
        selectinload(Machine.offerings),
    )
    if machine_ids:
        query = query.filter(Machine.id.in_(machine_ids))
    machines = query.order_by(Machine.id).all()

    coins_by_algorithm: Dict[str, List[CandidateCoin]] = {}
    for coin in session.query(Coin).order_by(Coin.id).all():
        coins_by_algorithm.setdefault(coin.algorithm_id, []).append(_candidate_coin(coin))

    btc = (
        session.query(Coin)
        .filter(or_(Coin.key == 'btc', Coin.symbol == 'BTC'))
        .order_by(Coin.id)
        .first()
    )
    return machines, coins_by_algorithm, btc.id if btc else None


def build_snapshot_row(machine, result, breakdown, bucket, electricity, pool_fee_pct,
                       hosting, lowest_price, reference_price) -> dict:
    blob = breakdown.to_dict()
    blob['meta'] = {
        'computed_at': bucket.isoformat(),
        'revenue_source': result.tier.value,
        'best_coin_id': result.best_coin_id,
        'best_coin_confidence': result.confidence,
        'best_coin_reason': result.reason,
        'best_coin_value_usd_per_base_unit_per_day': result.best_value,
        'runner_up_value_usd_per_base_unit_per_day': result.second_value,
        'payback_date': breakdown.payback_date.isoformat() if breakdown.payback_date else None,
        'baseline_electricity_usd_per_kwh': electricity,
        'pool_fee_pct': pool_fee_pct,
        'hosting_usd_per_day': hosting,
        'reference_price_usd': reference_price.value,
        'reference_price_source': reference_price.source,
    }
    return {
        'machine_id': machine.id,
        'computed_at': bucket,
        'electricity_usd_per_kwh': _dec(electricity, 5),
        'best_coin_id': result.best_coin_id,
        'revenue_usd_per_day': _dec(breakdown.revenue_usd_per_day, 6),
        'electricity_usd_per_day': _dec(breakdown.electricity_usd_per_day, 6),
        'profit_usd_per_day': _dec(breakdown.net_profit_usd_per_day, 6),
        'lowest_price_usd': _dec(lowest_price, 2) if lowest_price is not None else None,
        'roi_days': breakdown.roi_days,
        'breakdown': blob,
        'best_coin_confidence': max(0, min(100, int(result.confidence))),
        'best_coin_reason': result.reason,
        'revenue_source': result.tier.value,
    }


def compute_profitability_snapshots(machine_ids=None, electricity_usd_per_kwh=None, pool_fee_pct=None,
                                    hosting_usd_per_day=None, computed_at=None, estimator=None,
                                    oracle=None, aggregator=None, limiter=None,
                                    chunk_size=SNAPSHOT_CHUNK_SIZE,
                                    candidate_limit=CANDIDATE_COIN_LIMIT) -> RunSummary:
    """
    Compute and persist one hour bucket of snapshots.

    estimator / oracle / aggregator / limiter default to the live implementations
    and can be replaced with stubs. Raises RunAbortedError for fatal phases.
    """
    started = time.monotonic()
    bucket = hour_bucket(computed_at)
    electricity, fee, hosting = normalize_run_params(electricity_usd_per_kwh, pool_fee_pct, hosting_usd_per_day)
    machine_ids = [str(m) for m in machine_ids] if machine_ids else None

    summary = RunSummary(
        computed_at=bucket,
        baseline_electricity_usd_per_kwh=electricity,
        pool_fee_pct=fee,
        hosting_usd_per_day=hosting,
        machine_ids=machine_ids,
    )
    logger.info(
        "Profitability run %s: electricity=%.5f $/kWh pool_fee=%.3f%% hosting=%.2f $/day machines=%s",
        bucket.isoformat(), electricity, fee, hosting, len(machine_ids) if machine_ids else 'all',
    )

    # ── Reference price (fatal) ──────────────────────────────────────────────
    oracle = oracle or PriceOracle()
    try:
        reference = oracle.get_reference_price_usd(REFERENCE_ASSET, fetched_at=bucket)
    except PriceUnavailableError as e:
        summary.failed_phase = 'reference_price'
        summary.duration_ms = int((time.monotonic() - started) * 1000)
        logger.error("Profitability run %s aborted: %s", bucket.isoformat(), e)
        raise RunAbortedError('reference_price', summary, e) from e
    summary.reference_price_usd = reference.value
    summary.reference_price_source = reference.source

    aggregator = aggregator or NiceHashAggregator.load(bucket)
    estimator = estimator or HashrateNoEstimator()
    limiter = limiter or ConcurrencyLimiter(PER_COIN_CONCURRENCY, PER_COIN_MAX_CONCURRENCY)
    summary.per_coin_concurrency = limiter.max_concurrency
    fx_rates = get_latest_fx_rates()

    rows = []
    session = get_session()
    try:
        machines, coins_by_algorithm, btc_coin_id = _load_catalog(session, machine_ids)
        summary.machines_total = len(machines)

        candidates_by_machine = {
            m.id: candidate_coins_for(
                [_candidate_coin(c) for c in m.coins],
                coins_by_algorithm.get(m.algorithm_id, []),
                candidate_limit,
            )
            for m in machines
        }
        unique = collect_unique_candidates(candidates_by_machine.values())
        summary.unique_coins_prefetched = len(unique)
        estimates = prefetch_per_coin_estimates(unique.values(), estimator, limiter)
        summary.per_coin_lookups = limiter.completed

        resolver = RevenueResolver(
            per_coin_estimates=estimates,
            aggregator_rate=aggregator.paying_rate,
            reference_price_usd=reference.value,
            btc_coin_id=btc_coin_id,
        )

        for machine in machines:
            speed = parse_speed_to_base(machine.hashrate, machine.hashrate_unit)
            if speed is None:
                logger.debug(
                    "Skipping machine %s: cannot parse hashrate %r %r",
                    machine.id, machine.hashrate, machine.hashrate_unit,
                )
                summary.skip(SKIP_UNPARSEABLE_HASHRATE)
                continue

            algorithm = machine.algorithm
            candidate = RevenueCandidate(
                machine_id=machine.id,
                algorithm_key=algorithm.key if algorithm else '',
                speed=speed,
                coins=tuple(candidates_by_machine.get(machine.id, [])),
                aggregator_key_override=algorithm.aggregator_key if algorithm else None,
                fallback_rate=algorithm.fallback_revenue_usd_per_unit_per_day if algorithm else None,
                fallback_unit=algorithm.fallback_unit if algorithm else None,
            )
            result = resolver.resolve(candidate)
            if result is None:
                logger.debug(
                    "Skipping machine %s (%s at %s): no revenue source",
                    machine.id, candidate.algorithm_key, format_base_rate(speed.value, speed.base_unit),
                )
                summary.skip(SKIP_NO_REVENUE_SOURCE)
                continue

            lowest_price, shipping = lowest_offer_usd(machine.offerings, fx_rates)
            breakdown = compute_cost_breakdown(
                CostInputs(
                    power_w=machine.power_w,
                    electricity_usd_per_kwh=electricity,
                    revenue_usd_per_day=result.revenue_usd_per_day,
                    pool_fee_pct=fee,
                    hosting_usd_per_day=hosting,
                    hardware_price_usd=lowest_price,
                    shipping_usd=shipping,
                ),
                computed_at=bucket,
            )
            rows.append(build_snapshot_row(
                machine, result, breakdown, bucket, electricity, fee, hosting, lowest_price, reference,
            ))
        summary.revenue_sources = dict(resolver.tier_counts)
    finally:
        session.close()

    # ── Persist (fatal on non-duplicate errors) ──────────────────────────────
    try:
        stored = write_snapshots(rows, chunk_size=chunk_size)
    except Exception as e:
        summary.failed_phase = 'persist'
        summary.duration_ms = int((time.monotonic() - started) * 1000)
        logger.error("Profitability run %s aborted while persisting", bucket.isoformat(), exc_info=True)
        raise RunAbortedError('persist', summary, e) from e

    summary.snapshots_written = stored.written
    summary.duplicates_skipped = stored.duplicates_skipped
    summary.duration_ms = int((time.monotonic() - started) * 1000)

    logger.info(
        "Profitability run %s done in %dms: %d machines, %d written, %d duplicates, %d skipped %s",
        bucket.isoformat(), summary.duration_ms, summary.machines_total, summary.snapshots_written,
        summary.duplicates_skipped, summary.skipped, summary.skipped_by_reason or '',
    )
    return summary


def compute_profitability_for_machine(machine_id, **kwargs) -> RunSummary:
    return compute_profitability_snapshots(machine_ids=[machine_id], **kwargs)
