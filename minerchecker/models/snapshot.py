"""
ProfitabilitySnapshot model — one immutable row per (machine, hour bucket).
"""
from sqlalchemy import (
    Column, Integer, Text, Numeric, DateTime, JSON, ForeignKey, Index, UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from minerchecker.database import Base


class ProfitabilitySnapshot(Base):
    __tablename__ = 'profitability_snapshots'
    __table_args__ = (
        UniqueConstraint('machine_id', 'computed_at', name='uq_snapshot_machine_computed_at'),
        Index('ix_snapshot_computed_at', 'computed_at'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    machine_id = Column(Text, ForeignKey('machines.id', ondelete='CASCADE'), nullable=False)
    computed_at = Column(DateTime, nullable=False)            # UTC hour bucket, naive
    electricity_usd_per_kwh = Column(Numeric(10, 5), nullable=False)
    best_coin_id = Column(Text, ForeignKey('coins.id', ondelete='SET NULL'), nullable=True)
    revenue_usd_per_day = Column(Numeric(18, 6), nullable=False)
    electricity_usd_per_day = Column(Numeric(18, 6), nullable=False)
    profit_usd_per_day = Column(Numeric(18, 6), nullable=False)
    lowest_price_usd = Column(Numeric(18, 2), nullable=True)
    roi_days = Column(Integer, nullable=True)
    breakdown = Column(JSON, nullable=True)                   # versioned, see profitability.costs
    best_coin_confidence = Column(Integer, nullable=True)     # 0-100
    best_coin_reason = Column(Text, nullable=True)
    revenue_source = Column(Text, nullable=True)              # per-coin / aggregator / catalog-fallback
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    best_coin = relationship('Coin')

    def to_dict(self):
        def _f(v):
            return float(v) if v is not None else None

        coin = self.best_coin
        return {
            'id': self.id,
            'machine_id': self.machine_id,
            'computed_at': self.computed_at.isoformat() if self.computed_at else None,
            'electricity_usd_per_kwh': _f(self.electricity_usd_per_kwh),
            'best_coin': {
                'id': coin.id, 'symbol': coin.symbol, 'name': coin.name,
            } if coin is not None else None,
            'revenue_usd_per_day': _f(self.revenue_usd_per_day),
            'electricity_usd_per_day': _f(self.electricity_usd_per_day),
            'profit_usd_per_day': _f(self.profit_usd_per_day),
            'lowest_price_usd': _f(self.lowest_price_usd),
            'roi_days': self.roi_days,
            'best_coin_confidence': self.best_coin_confidence,
            'best_coin_reason': self.best_coin_reason,
            'revenue_source': self.revenue_source,
            'breakdown': self.breakdown,
        }
