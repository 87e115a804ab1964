"""
Catalog models — algorithms, coins, machines and vendor offers.

Owned by the catalog admin screens; the profitability pipeline only reads them.
"""
from sqlalchemy import (
    Column, Integer, Float, Text, Boolean, Numeric, DateTime, ForeignKey, Table,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from minerchecker.database import Base


machine_coins = Table(
    'machine_coins',
    Base.metadata,
    Column('machine_id', Text, ForeignKey('machines.id', ondelete='CASCADE'), primary_key=True),
    Column('coin_id', Text, ForeignKey('coins.id', ondelete='CASCADE'), primary_key=True),
)


class Algorithm(Base):
    __tablename__ = 'algorithms'

    id = Column(Text, primary_key=True)
    key = Column(Text, nullable=False, unique=True)   # sha256, kheavyhash, ...
    name = Column(Text, nullable=False)
    aggregator_key = Column(Text, nullable=True)      # overrides the catalog/normalized NiceHash key
    fallback_revenue_usd_per_unit_per_day = Column(Float, nullable=True)
    fallback_unit = Column(Text, nullable=True)       # e.g. TH/s

    coins = relationship('Coin', back_populates='algorithm')


class Coin(Base):
    __tablename__ = 'coins'

    id = Column(Text, primary_key=True)
    key = Column(Text, nullable=False)       # slug used by the per-coin estimator
    symbol = Column(Text, nullable=False)
    name = Column(Text, default='')
    algorithm_id = Column(Text, ForeignKey('algorithms.id'), nullable=False, index=True)

    algorithm = relationship('Algorithm', back_populates='coins')


class Machine(Base):
    __tablename__ = 'machines'

    id = Column(Text, primary_key=True)
    slug = Column(Text, nullable=True, unique=True)
    name = Column(Text, default='')
    manufacturer = Column(Text, nullable=True)
    algorithm_id = Column(Text, ForeignKey('algorithms.id'), nullable=False, index=True)
    hashrate = Column(Text, nullable=False)         # magnitude as entered, e.g. "100"
    hashrate_unit = Column(Text, nullable=False)    # e.g. "TH/s"
    power_w = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    algorithm = relationship('Algorithm')
    coins = relationship('Coin', secondary=machine_coins)
    offerings = relationship('VendorOffering', back_populates='machine')


class VendorOffering(Base):
    __tablename__ = 'vendor_offerings'

    id = Column(Integer, primary_key=True, autoincrement=True)
    machine_id = Column(Text, ForeignKey('machines.id', ondelete='CASCADE'), nullable=False, index=True)
    vendor_name = Column(Text, default='')
    price = Column(Numeric(18, 2), nullable=False)
    currency = Column(Text, nullable=False, default='USD')
    shipping_cost = Column(Numeric(18, 2), nullable=True)
    in_stock = Column(Boolean, default=True)

    machine = relationship('Machine', back_populates='offerings')
