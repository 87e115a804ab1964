"""
Cost / ROI engine — the single place net profit, margin and payback are computed.

compute_cost_breakdown() is pure: inputs are clamped to their valid domains, the
daily cost components are derived, and ROI is only defined when there is a known,
positive capex and a strictly positive daily profit. "No capex known" (None) is
never conflated with "zero capex".

The breakdown is persisted inside each snapshot as a versioned JSON blob
(BREAKDOWN_SCHEMA_VERSION); from_dict() returns None for blobs it cannot read so
callers fall back to the snapshot's top-level columns.
"""
import math
from dataclasses import dataclass, field, asdict
from datetime import date, datetime, timedelta
from typing import Optional

from minerchecker.profitability.units import compute_electricity_usd_per_day, to_finite

BREAKDOWN_SCHEMA_VERSION = 1


def _clamp(n, lo, hi=None):
    n = to_finite(n)
    if n is None:
        return lo
    n = max(lo, n)
    return min(hi, n) if hi is not None else n


def _optional_non_negative(v) -> Optional[float]:
    if v is None:
        return None
    n = to_finite(v)
    return max(0.0, n) if n is not None else 0.0


def _round(n, dp=6):
    if n is None:
        return None
    return round(n, dp) if math.isfinite(n) else 0.0


@dataclass(frozen=True)
class CostInputs:
    power_w: float
    electricity_usd_per_kwh: float
    revenue_usd_per_day: float
    pool_fee_pct: float = 0.0
    hosting_usd_per_day: float = 0.0
    hardware_price_usd: Optional[float] = None
    shipping_usd: Optional[float] = None
    vat_usd: Optional[float] = None
    other_one_time_usd: Optional[float] = None

    def normalized(self) -> 'CostInputs':
        """Clamp every field into its valid domain."""
        return CostInputs(
            power_w=_clamp(self.power_w, 0.0),
            electricity_usd_per_kwh=_clamp(self.electricity_usd_per_kwh, 0.0),
            revenue_usd_per_day=_clamp(self.revenue_usd_per_day, 0.0),
            pool_fee_pct=_clamp(self.pool_fee_pct, 0.0, 100.0),
            hosting_usd_per_day=_clamp(self.hosting_usd_per_day, 0.0),
            hardware_price_usd=_optional_non_negative(self.hardware_price_usd),
            shipping_usd=_optional_non_negative(self.shipping_usd),
            vat_usd=_optional_non_negative(self.vat_usd),
            other_one_time_usd=_optional_non_negative(self.other_one_time_usd),
        )

    @property
    def capex_total_usd(self) -> Optional[float]:
        parts = [
            p for p in (self.hardware_price_usd, self.shipping_usd, self.vat_usd, self.other_one_time_usd)
            if p is not None
        ]
        return sum(parts) if parts else None


@dataclass(frozen=True)
class CostBreakdown:
    inputs: CostInputs
    electricity_usd_per_day: float
    pool_fee_usd_per_day: float
    hosting_usd_per_day: float
    total_daily_cost_usd: float
    net_profit_usd_per_day: float
    gross_margin_pct: Optional[float]
    roi_days: Optional[int]
    capex_total_usd: Optional[float]
    payback_date: Optional[date] = None
    schema_version: int = field(default=BREAKDOWN_SCHEMA_VERSION)

    @property
    def revenue_usd_per_day(self) -> float:
        return self.inputs.revenue_usd_per_day

    def to_dict(self) -> dict:
        inputs = {k: _round(v) for k, v in asdict(self.inputs).items()}
        return {
            'schema_version': self.schema_version,
            'inputs': inputs,
            'daily': {
                'electricity_usd_per_day': _round(self.electricity_usd_per_day),
                'pool_fee_usd_per_day': _round(self.pool_fee_usd_per_day),
                'hosting_usd_per_day': _round(self.hosting_usd_per_day),
                'total_daily_cost_usd': _round(self.total_daily_cost_usd),
            },
            'totals': {
                'net_profit_usd_per_day': _round(self.net_profit_usd_per_day),
                'gross_margin_pct': _round(self.gross_margin_pct, 4),
                'roi_days': self.roi_days,
                'capex_total_usd': _round(self.capex_total_usd),
                'payback_date': self.payback_date.isoformat() if self.payback_date else None,
            },
        }

    @classmethod
    def from_dict(cls, blob) -> Optional['CostBreakdown']:
        """Rebuild from a persisted blob; None when the version or a section is unusable."""
        if not isinstance(blob, dict) or blob.get('schema_version') != BREAKDOWN_SCHEMA_VERSION:
            return None
        inputs, daily, totals = blob.get('inputs'), blob.get('daily'), blob.get('totals')
        if not all(isinstance(s, dict) for s in (inputs, daily, totals)):
            return None
        try:
            payback = totals.get('payback_date')
            roi = totals.get('roi_days')
            margin = totals.get('gross_margin_pct')
            capex = totals.get('capex_total_usd')
            return cls(
                inputs=CostInputs(**{k: inputs.get(k) for k in CostInputs.__dataclass_fields__}),
                electricity_usd_per_day=float(daily['electricity_usd_per_day']),
                pool_fee_usd_per_day=float(daily['pool_fee_usd_per_day']),
                hosting_usd_per_day=float(daily['hosting_usd_per_day']),
                total_daily_cost_usd=float(daily['total_daily_cost_usd']),
                net_profit_usd_per_day=float(totals['net_profit_usd_per_day']),
                gross_margin_pct=float(margin) if margin is not None else None,
                roi_days=int(roi) if roi is not None else None,
                capex_total_usd=float(capex) if capex is not None else None,
                payback_date=date.fromisoformat(payback) if payback else None,
            )
        except (KeyError, TypeError, ValueError):
            return None


def compute_roi_days(capex_total_usd, net_profit_usd_per_day) -> Optional[int]:
    """ceil(capex / profit), only for a known positive capex and a strictly positive profit."""
    if capex_total_usd is None or capex_total_usd <= 0:
        return None
    if net_profit_usd_per_day is None or net_profit_usd_per_day <= 0:
        return None
    return math.ceil(capex_total_usd / net_profit_usd_per_day)


def compute_payback_date(computed_at, roi_days) -> Optional[date]:
    """computed_at + roi_days as a calendar date."""
    if not roi_days or roi_days <= 0 or computed_at is None:
        return None
    start = computed_at.date() if isinstance(computed_at, datetime) else computed_at
    return start + timedelta(days=roi_days)


def compute_cost_breakdown(inputs: CostInputs, computed_at=None) -> CostBreakdown:
    """Daily electricity, pool fee, hosting, net profit, margin, capex, ROI and payback."""
    i = inputs.normalized()

    electricity = compute_electricity_usd_per_day(i.power_w, i.electricity_usd_per_kwh)
    pool_fee = i.revenue_usd_per_day * (i.pool_fee_pct / 100)
    hosting = i.hosting_usd_per_day

    total_daily = electricity + pool_fee + hosting
    net_profit = i.revenue_usd_per_day - total_daily

    gross_margin = (net_profit / i.revenue_usd_per_day) * 100 if i.revenue_usd_per_day > 0 else None

    capex_total = i.capex_total_usd
    roi_days = compute_roi_days(capex_total, net_profit)

    return CostBreakdown(
        inputs=i,
        electricity_usd_per_day=electricity,
        pool_fee_usd_per_day=pool_fee,
        hosting_usd_per_day=hosting,
        total_daily_cost_usd=total_daily,
        net_profit_usd_per_day=net_profit,
        gross_margin_pct=gross_margin,
        roi_days=roi_days,
        capex_total_usd=capex_total,
        payback_date=compute_payback_date(computed_at, roi_days),
    )


def compute_user_profit_from_snapshot(
    revenue_usd_per_day,
    baseline_electricity_usd_per_day,
    baseline_electricity_usd_per_kwh,
    user_electricity_usd_per_kwh,
) -> dict:
    """Rescale a snapshot's baseline electricity cost to the caller's $/kWh."""
    baseline_rate = to_finite(baseline_electricity_usd_per_kwh) or 0.0
    user_rate = to_finite(user_electricity_usd_per_kwh)
    ratio = user_rate / baseline_rate if baseline_rate > 0 and user_rate is not None else 1.0

    electricity = (to_finite(baseline_electricity_usd_per_day) or 0.0) * max(0.0, ratio)
    revenue = to_finite(revenue_usd_per_day) or 0.0
    return {
        'user_electricity_usd_per_day': electricity,
        'user_profit_usd_per_day': revenue - electricity,
    }
