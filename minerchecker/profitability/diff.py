"""
Snapshot differ — "what changed since yesterday" for one machine.

extract_breakdown() reads the versioned breakdown blob when it is readable and
otherwise falls back to the snapshot's top-level columns. Without a stored
pool/hosting split, pool fee is inferred as revenue - electricity - net and
hosting as 0.
"""
import logging
from dataclasses import asdict, dataclass
from datetime import date, datetime, timedelta, timezone
from typing import List, Optional

from minerchecker.database import get_session
from minerchecker.models.snapshot import ProfitabilitySnapshot
from minerchecker.profitability.costs import CostBreakdown
from minerchecker.profitability.units import to_finite

logger = logging.getLogger('profitability.diff')

MONEY_FIELDS = (
    'revenue_usd_per_day',
    'electricity_usd_per_day',
    'pool_fee_usd_per_day',
    'hosting_usd_per_day',
    'net_profit_usd_per_day',
)
MAX_HISTORY = 200


@dataclass
class BreakdownView:
    revenue_usd_per_day: Optional[float] = None
    electricity_usd_per_day: Optional[float] = None
    pool_fee_usd_per_day: Optional[float] = None
    hosting_usd_per_day: Optional[float] = None
    net_profit_usd_per_day: Optional[float] = None
    roi_days: Optional[int] = None
    payback_date: Optional[str] = None


@dataclass
class DeltaField:
    current: Optional[float]
    previous: Optional[float]
    delta: Optional[float]
    delta_pct: Optional[float]


@dataclass
class ProfitabilityDiff:
    machine_id: str
    current_at: str
    previous_at: str
    revenue_usd_per_day: DeltaField
    electricity_usd_per_day: DeltaField
    pool_fee_usd_per_day: DeltaField
    hosting_usd_per_day: DeltaField
    net_profit_usd_per_day: DeltaField
    roi_days: dict
    payback_date: dict
    best_coin: dict

    def to_dict(self) -> dict:
        return asdict(self)


def pct_change(current, previous) -> Optional[float]:
    if current is None or previous is None or previous == 0:
        return None
    return (current - previous) / abs(previous) * 100


def delta_field(current, previous) -> DeltaField:
    return DeltaField(
        current=current,
        previous=previous,
        delta=None if current is None or previous is None else current - previous,
        delta_pct=pct_change(current, previous),
    )


def _column_breakdown(snapshot) -> BreakdownView:
    revenue = to_finite(snapshot.revenue_usd_per_day)
    electricity = to_finite(snapshot.electricity_usd_per_day)
    net = to_finite(snapshot.profit_usd_per_day)
    pool_fee = hosting = None
    if revenue is not None and electricity is not None and net is not None:
        pool_fee = revenue - electricity - net
        hosting = 0.0
    return BreakdownView(
        revenue_usd_per_day=revenue,
        electricity_usd_per_day=electricity,
        pool_fee_usd_per_day=pool_fee,
        hosting_usd_per_day=hosting,
        net_profit_usd_per_day=net,
        roi_days=snapshot.roi_days,
    )


def _first(*values):
    for value in values:
        if value is not None:
            return value
    return None


def extract_breakdown(snapshot) -> BreakdownView:
    """
    Cost fields for one snapshot: the versioned breakdown blob where it has a
    value, the snapshot columns for whatever the blob lacks.
    """
    columns = _column_breakdown(snapshot)
    structured = CostBreakdown.from_dict(snapshot.breakdown)
    if structured is None:
        return columns

    return BreakdownView(
        revenue_usd_per_day=_first(to_finite(structured.revenue_usd_per_day), columns.revenue_usd_per_day),
        electricity_usd_per_day=_first(to_finite(structured.electricity_usd_per_day),
                                       columns.electricity_usd_per_day),
        pool_fee_usd_per_day=_first(to_finite(structured.pool_fee_usd_per_day), columns.pool_fee_usd_per_day),
        hosting_usd_per_day=_first(to_finite(structured.hosting_usd_per_day), columns.hosting_usd_per_day),
        net_profit_usd_per_day=_first(to_finite(structured.net_profit_usd_per_day),
                                      columns.net_profit_usd_per_day),
        roi_days=_first(snapshot.roi_days, structured.roi_days),
        payback_date=structured.payback_date.isoformat() if structured.payback_date else None,
    )


def _coin(snapshot) -> dict:
    coin = getattr(snapshot, 'best_coin', None)
    return {
        'id': snapshot.best_coin_id or (coin.id if coin is not None else None),
        'symbol': coin.symbol if coin is not None else None,
        'name': coin.name if coin is not None else None,
    }


def _iso(value) -> Optional[str]:
    return value.isoformat() if isinstance(value, (datetime, date)) else None


def diff_snapshots(current, previous) -> ProfitabilityDiff:
    """Per-field deltas between two snapshots of the same machine."""
    c, p = extract_breakdown(current), extract_breakdown(previous)

    c_coin, p_coin = _coin(current), _coin(previous)
    if c_coin['id'] and p_coin['id']:
        coin_changed = c_coin['id'] != p_coin['id']
    else:
        coin_changed = (c_coin['symbol'] or '') != (p_coin['symbol'] or '')

    c_conf = current.best_coin_confidence
    p_conf = previous.best_coin_confidence

    return ProfitabilityDiff(
        machine_id=current.machine_id,
        current_at=_iso(current.computed_at),
        previous_at=_iso(previous.computed_at),
        **{name: delta_field(getattr(c, name), getattr(p, name)) for name in MONEY_FIELDS},
        roi_days={
            'current': c.roi_days,
            'previous': p.roi_days,
            'delta': None if c.roi_days is None or p.roi_days is None else c.roi_days - p.roi_days,
        },
        payback_date={
            'current': c.payback_date,
            'previous': p.payback_date,
            'changed': c.payback_date != p.payback_date,
        },
        best_coin={
            'current': c_coin,
            'previous': p_coin,
            'changed': coin_changed,
            'confidence': {
                'current': c_conf,
                'previous': p_conf,
                'delta': None if c_conf is None or p_conf is None else c_conf - p_conf,
            },
            'reason': {
                'current': current.best_coin_reason,
                'previous': previous.best_coin_reason,
            },
        },
    )


def pick_previous_snapshot(snaps_desc: List, now: Optional[datetime] = None, target_hours_ago: int = 24):
    """
    Pick the comparison snapshot from a newest-first list.

    Among snapshots strictly older than the newest, take the one closest to
    now - target_hours_ago; if none is strictly older, use the second newest.
    None when there are fewer than two snapshots.
    """
    if len(snaps_desc) < 2:
        return None
    now = now or datetime.now(timezone.utc).replace(tzinfo=None)
    target = now - timedelta(hours=target_hours_ago)
    newest_at = snaps_desc[0].computed_at

    older = [s for s in snaps_desc[1:] if s.computed_at < newest_at]
    if not older:
        return snaps_desc[1]
    return min(older, key=lambda s: abs((s.computed_at - target).total_seconds()))


def get_machine_profitability_diff(machine_id, now: Optional[datetime] = None,
                                   lookback_days: int = 3) -> Optional[ProfitabilityDiff]:
    """Diff the latest snapshot against the one closest to 24h ago; None without history."""
    now = now or datetime.now(timezone.utc).replace(tzinfo=None)
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc).replace(tzinfo=None)
    since = now - timedelta(days=lookback_days)

    session = get_session()
    try:
        snaps = (
            session.query(ProfitabilitySnapshot)
            .filter(
                ProfitabilitySnapshot.machine_id == machine_id,
                ProfitabilitySnapshot.computed_at >= since,
            )
            .order_by(ProfitabilitySnapshot.computed_at.desc())
            .limit(MAX_HISTORY)
            .all()
        )
        if not snaps:
            return None
        previous = pick_previous_snapshot(snaps, now)
        if previous is None:
            return None
        return diff_snapshots(snaps[0], previous)
    finally:
        session.close()
