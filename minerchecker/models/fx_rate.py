"""
FxRateSnapshot model — currency table relative to USD (units per 1 USD).
"""
from sqlalchemy import Column, Integer, Text, DateTime, JSON
from sqlalchemy.sql import func

from minerchecker.database import Base


class FxRateSnapshot(Base):
    __tablename__ = 'fx_rate_snapshots'

    id = Column(Integer, primary_key=True, autoincrement=True)
    base_currency = Column(Text, nullable=False, default='USD')
    rates = Column(JSON, nullable=False, default=dict)   # {"EUR": 0.92, "CNY": 7.2, ...}
    fetched_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
