"""Shared test fixtures."""
from contextlib import ExitStack
from decimal import Decimal
from unittest.mock import patch, MagicMock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from minerchecker.database import Base, import_models
from minerchecker.profitability import catalog as algorithm_catalog

# Modules that do `from minerchecker.database import get_session` at import time.
SESSION_CONSUMERS = (
    'minerchecker.database',
    'minerchecker.services.settings_store',
    'minerchecker.services.fx',
    'minerchecker.profitability.builder',
    'minerchecker.profitability.store',
    'minerchecker.profitability.diff',
    'minerchecker.routes.profitability',
)


@pytest.fixture
def db_engine():
    """In-memory SQLite engine with schema created."""
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    import_models()
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine):
    """SQLAlchemy session bound to in-memory SQLite. Rolls back after each test."""
    Session = sessionmaker(bind=db_engine)
    session = Session()
    yield session
    session.rollback()
    session.close()


@pytest.fixture(autouse=True)
def patch_get_session(db_session):
    """Route all get_session() calls to the test session.

    We disable close() so that code calling session.close() in its finally
    blocks doesn't invalidate the shared test session.
    """
    import importlib
    for name in SESSION_CONSUMERS:
        importlib.import_module(name)

    _real_close = db_session.close
    db_session.close = lambda: None
    with ExitStack() as stack:
        for name in SESSION_CONSUMERS:
            stack.enter_context(patch(f'{name}.get_session', return_value=db_session))
        yield db_session
    db_session.close = _real_close


@pytest.fixture(autouse=True)
def _reset_algorithm_catalog():
    algorithm_catalog.reset_cache()
    yield
    algorithm_catalog.reset_cache()


@pytest.fixture
def mock_redis():
    """Mock Redis client. Returns a MagicMock with common Redis methods."""
    mock = MagicMock()
    mock.get.return_value = None
    mock.set.return_value = True
    mock.delete.return_value = 1
    with patch('minerchecker.extensions.redis_client', mock):
        yield mock


@pytest.fixture
def app():
    """Flask test app."""
    from minerchecker import create_app
    app = create_app()
    app.config['TESTING'] = True
    yield app


@pytest.fixture
def client(app):
    """Flask test client."""
    with app.test_client() as c:
        yield c


@pytest.fixture
def make_catalog(db_session):
    """Factory fixture — inserts an algorithm, its coins and one machine."""
    from minerchecker.models.catalog import Algorithm, Coin, Machine, VendorOffering

    def _make(algorithm_key='sha256', hashrate='100', unit='TH/s', power_w=3000,
              coins=(('coin-btc', 'btc', 'BTC'),), machine_coin_ids=(), offers=(),
              machine_id='m-1', aggregator_key=None, fallback_rate=None, fallback_unit=None):
        algo_id = f'algo-{algorithm_key}'
        if db_session.get(Algorithm, algo_id) is None:
            db_session.add(Algorithm(
                id=algo_id, key=algorithm_key, name=algorithm_key.upper(),
                aggregator_key=aggregator_key,
                fallback_revenue_usd_per_unit_per_day=fallback_rate,
                fallback_unit=fallback_unit,
            ))
        for coin_id, key, symbol in coins:
            if db_session.get(Coin, coin_id) is None:
                db_session.add(Coin(id=coin_id, key=key, symbol=symbol, name=symbol, algorithm_id=algo_id))
        db_session.flush()

        machine = Machine(
            id=machine_id, slug=machine_id, name=machine_id, algorithm_id=algo_id,
            hashrate=hashrate, hashrate_unit=unit, power_w=power_w,
        )
        machine.coins = [db_session.get(Coin, c) for c in machine_coin_ids]
        for price, currency, shipping, in_stock in offers:
            machine.offerings.append(VendorOffering(
                vendor_name='Vendor', price=Decimal(str(price)), currency=currency,
                shipping_cost=Decimal(str(shipping)) if shipping is not None else None,
                in_stock=in_stock,
            ))
        db_session.add(machine)
        db_session.commit()
        return machine
    return _make


@pytest.fixture
def stub_oracle():
    """Price oracle stub returning BTC/USD = 50000."""
    from minerchecker.profitability.price_oracle import ReferencePrice
    oracle = MagicMock()
    oracle.get_reference_price_usd.return_value = ReferencePrice(value=50000.0, source='Stub')
    return oracle


@pytest.fixture
def null_estimator():
    """Per-coin estimator that never has data."""
    estimator = MagicMock()
    estimator.fetch_revenue_per_base_unit_per_day.return_value = None
    return estimator
