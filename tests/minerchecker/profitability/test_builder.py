"""Tests for minerchecker.profitability.builder — full run over an in-memory catalog."""
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.exc import IntegrityError

from minerchecker.models.snapshot import ProfitabilitySnapshot
from minerchecker.profitability.builder import (
    SKIP_NO_REVENUE_SOURCE,
    SKIP_UNPARSEABLE_HASHRATE,
    build_snapshot_row,
    compute_profitability_for_machine,
    compute_profitability_snapshots,
    hour_bucket,
    lowest_offer_usd,
    normalize_run_params,
)
from minerchecker.profitability.errors import PriceUnavailableError, RunAbortedError
from minerchecker.profitability.hashrate_no import RevenueEstimate
from minerchecker.profitability.nicehash import NiceHashAggregator

RUN_AT = datetime(2026, 3, 1, 12, 34, 56, tzinfo=timezone.utc)
BUCKET = datetime(2026, 3, 1, 12, 0)


@pytest.fixture
def run(stub_oracle, null_estimator):
    """Run with stubbed external sources; keyword overrides pass through."""
    def _run(**kwargs):
        params = dict(
            electricity_usd_per_kwh=0.10,
            computed_at=RUN_AT,
            oracle=stub_oracle,
            estimator=null_estimator,
            aggregator=NiceHashAggregator({'SHA256': 1e-9}),
        )
        params.update(kwargs)
        return compute_profitability_snapshots(**params)
    return _run


class TestComputeProfitabilitySnapshots:

    def test_aggregator_snapshot_end_to_end(self, run, make_catalog, db_session):
        make_catalog(offers=((4300, 'USD', None, True),))

        summary = run()

        assert summary.ok
        assert summary.machines_total == 1
        assert summary.snapshots_written == 1
        assert summary.revenue_sources == {'aggregator': 1}
        assert summary.reference_price_usd == 50000.0
        assert summary.computed_at == BUCKET

        snap = db_session.query(ProfitabilitySnapshot).one()
        assert snap.machine_id == 'm-1'
        assert snap.computed_at == BUCKET
        # 1e-9 sat/H/day * 1e14 H/s = 1e5 sat = 0.001 BTC
        assert snap.revenue_usd_per_day == Decimal('50.000000')
        assert snap.electricity_usd_per_day == Decimal('7.200000')
        assert snap.profit_usd_per_day == Decimal('42.800000')
        assert snap.lowest_price_usd == Decimal('4300.00')
        assert snap.roi_days == 101
        assert snap.revenue_source == 'aggregator'
        assert snap.best_coin_confidence == 55
        assert snap.best_coin_id == 'coin-btc'
        assert snap.breakdown['schema_version'] == 1
        assert snap.breakdown['meta']['reference_price_source'] == 'Stub'
        assert snap.breakdown['meta']['payback_date'] == '2026-06-10'
        assert snap.breakdown['meta']['best_coin_value_usd_per_base_unit_per_day'] is None
        # 'btc' key and 'BTC' symbol normalize to one lookup
        assert summary.per_coin_lookups == 1

    def test_aggregator_payout_for_unlisted_sha256_machine(self, run, make_catalog, db_session):
        make_catalog(algorithm_key='sha256', hashrate='100', unit='TH/s', power_w=3000, machine_coin_ids=())

        summary = run(aggregator=NiceHashAggregator({'SHA256': 0.00001}))

        assert summary.revenue_sources == {'aggregator': 1}
        snap = db_session.query(ProfitabilitySnapshot).one()
        # 1e-5 sat/H/day * 1e14 H/s = 1e9 sat = 10 BTC at 50000
        assert float(snap.revenue_usd_per_day) == pytest.approx(500000.0)
        assert float(snap.electricity_usd_per_day) == pytest.approx(7.2)
        assert snap.best_coin_confidence == 55
        assert snap.revenue_source == 'aggregator'

    def test_per_coin_short_circuits_aggregator(self, run, make_catalog, db_session):
        make_catalog()
        estimator = MagicMock()
        estimator.fetch_revenue_per_base_unit_per_day.return_value = RevenueEstimate('btc', 5e-13, 'TH/s')
        aggregator = MagicMock()

        summary = run(estimator=estimator, aggregator=aggregator)

        assert summary.revenue_sources == {'per-coin': 1}
        assert summary.unique_coins_prefetched == 1
        aggregator.paying_rate.assert_not_called()
        snap = db_session.query(ProfitabilitySnapshot).one()
        assert snap.revenue_source == 'per-coin'
        assert float(snap.revenue_usd_per_day) == pytest.approx(50.0)
        assert 'no #2 found' in snap.best_coin_reason
        assert snap.breakdown['meta']['best_coin_value_usd_per_base_unit_per_day'] == pytest.approx(5e-13)
        assert snap.breakdown['meta']['runner_up_value_usd_per_base_unit_per_day'] is None
        assert summary.per_coin_lookups == 1

    def test_second_run_in_same_hour_is_idempotent(self, run, make_catalog, db_session):
        make_catalog()
        first = run()
        second = run(computed_at=RUN_AT + timedelta(minutes=20))

        assert first.snapshots_written == 1
        assert second.snapshots_written == 0
        assert second.duplicates_skipped == 1
        assert db_session.query(ProfitabilitySnapshot).count() == 1

    def test_skips_are_counted_by_reason(self, run, make_catalog, db_session):
        make_catalog(hashrate='fast')
        make_catalog(machine_id='m-2', algorithm_key='blake3', unit='GH/s', coins=())

        summary = run(aggregator=NiceHashAggregator({}))

        assert summary.ok
        assert summary.machines_total == 2
        assert summary.skipped == 2
        assert summary.skipped_by_reason == {SKIP_UNPARSEABLE_HASHRATE: 1, SKIP_NO_REVENUE_SOURCE: 1}
        assert summary.snapshots_written == 0
        assert db_session.query(ProfitabilitySnapshot).count() == 0

    def test_static_fallback_when_live_sources_are_empty(self, run, make_catalog, db_session):
        make_catalog()
        summary = run(aggregator=NiceHashAggregator({}))
        assert summary.revenue_sources == {'catalog-fallback': 1}
        snap = db_session.query(ProfitabilitySnapshot).one()
        assert snap.best_coin_confidence == 10
        assert snap.best_coin_id is None

    def test_machine_filter(self, run, make_catalog):
        make_catalog()
        make_catalog(machine_id='m-2')
        summary = run(machine_ids=['m-2'])
        assert summary.machines_total == 1
        assert summary.machine_ids == ['m-2']

    def test_single_machine_helper(self, make_catalog, stub_oracle, null_estimator):
        make_catalog()
        make_catalog(machine_id='m-2')
        summary = compute_profitability_for_machine(
            'm-1', computed_at=RUN_AT, oracle=stub_oracle, estimator=null_estimator,
            aggregator=NiceHashAggregator({'SHA256': 1e-9}),
        )
        assert summary.machines_total == 1
        assert summary.snapshots_written == 1

    def test_price_failure_aborts_before_writes(self, run, make_catalog, db_session, stub_oracle):
        make_catalog()
        stub_oracle.get_reference_price_usd.side_effect = PriceUnavailableError('BTC')

        with pytest.raises(RunAbortedError) as exc_info:
            run()

        assert exc_info.value.phase == 'reference_price'
        assert exc_info.value.summary.failed_phase == 'reference_price'
        assert not exc_info.value.summary.ok
        assert db_session.query(ProfitabilitySnapshot).count() == 0

    def test_persist_failure_aborts(self, run, make_catalog):
        make_catalog()
        with patch('minerchecker.profitability.builder.write_snapshots', side_effect=RuntimeError('disk full')):
            with pytest.raises(RunAbortedError) as exc_info:
                run()
        assert exc_info.value.phase == 'persist'
        assert exc_info.value.summary.machines_total == 1

    def test_constraint_violation_aborts_persist(self, run, make_catalog, db_session):
        make_catalog()

        def _without_tariff(*args, **kwargs):
            row = build_snapshot_row(*args, **kwargs)
            row['electricity_usd_per_kwh'] = None
            return row

        with patch('minerchecker.profitability.builder.build_snapshot_row', side_effect=_without_tariff):
            with pytest.raises(RunAbortedError) as exc_info:
                run()
        assert exc_info.value.phase == 'persist'
        assert isinstance(exc_info.value.__cause__, IntegrityError)
        assert db_session.query(ProfitabilitySnapshot).count() == 0

    def test_summary_is_serializable(self, run, make_catalog):
        make_catalog()
        d = run().to_dict()
        assert d['ok'] is True
        assert d['computed_at'] == '2026-03-01T12:00:00'
        assert d['bucket'] == 'hour'
        assert d['failed_phase'] is None


class TestNormalizeRunParams:

    def test_explicit_values(self):
        assert normalize_run_params(0.07, 1.23456, 2.5) == (0.07, 1.235, 2.5)

    def test_fee_and_hosting_are_clamped(self):
        assert normalize_run_params(0.07, 150, -3) == (0.07, 100.0, 0.0)
        assert normalize_run_params(0.07, -5, None)[1] == 0.0

    def test_baseline_electricity(self):
        with patch('minerchecker.profitability.builder.BASELINE_ELECTRICITY_USD_PER_KWH', 0.08):
            assert normalize_run_params()[0] == 0.08

    def test_invalid_baseline_uses_default(self):
        with patch('minerchecker.profitability.builder.BASELINE_ELECTRICITY_USD_PER_KWH', 0):
            assert normalize_run_params('not-a-number')[0] == 0.10


class TestHourBucket:

    def test_aware_datetime_is_converted_to_utc(self):
        dt = datetime(2026, 3, 1, 14, 30, tzinfo=timezone(timedelta(hours=2)))
        assert hour_bucket(dt) == datetime(2026, 3, 1, 12, 0)

    def test_naive_datetime_is_truncated(self):
        assert hour_bucket(datetime(2026, 3, 1, 9, 59, 59, 999)) == datetime(2026, 3, 1, 9, 0)


class TestLowestOfferUsd:

    def _offer(self, price, currency='USD', shipping=None, in_stock=True):
        return SimpleNamespace(price=price, currency=currency, shipping_cost=shipping, in_stock=in_stock)

    def test_shipping_comes_from_the_lowest_offer(self):
        offers = [
            self._offer(1000, shipping=50),
            self._offer(460, 'EUR', shipping=92),
            self._offer(1, in_stock=False),
            self._offer(1, 'GBP'),
        ]
        price, shipping = lowest_offer_usd(offers, {'USD': 1.0, 'EUR': 0.92})
        assert price == pytest.approx(500.0)
        assert shipping == pytest.approx(100.0)

    def test_no_offers(self):
        assert lowest_offer_usd([], {'USD': 1.0}) == (None, None)

    def test_usd_without_fx_table(self):
        assert lowest_offer_usd([self._offer(700, shipping=20)], None) == (700.0, 20.0)
