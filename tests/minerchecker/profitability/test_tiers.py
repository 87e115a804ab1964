"""Tests for minerchecker.profitability.tiers — confidence scoring + tier fallback chain."""
from unittest.mock import MagicMock

import pytest

from minerchecker.profitability.tiers import (
    AGGREGATOR_CONFIDENCE,
    STATIC_FALLBACK_CONFIDENCE,
    CandidateCoin,
    EstimatorTier,
    RevenueCandidate,
    RevenueResolver,
    TIER_ORDER,
    confidence_from_top2,
)
from minerchecker.profitability.units import parse_speed_to_base

BTC = CandidateCoin(id='coin-btc', key='btc', symbol='BTC', name='Bitcoin')
BCH = CandidateCoin(id='coin-bch', key='bch', symbol='BCH', name='Bitcoin Cash')


def _candidate(algorithm_key='sha256', magnitude=100, unit='TH/s', coins=(BTC, BCH), **kwargs):
    return RevenueCandidate(
        machine_id='m-1',
        algorithm_key=algorithm_key,
        speed=parse_speed_to_base(magnitude, unit),
        coins=tuple(coins),
        **kwargs,
    )


def _resolver(estimates=None, rate=None, price=50000.0):
    return RevenueResolver(
        per_coin_estimates=estimates or {},
        aggregator_rate=MagicMock(return_value=rate),
        reference_price_usd=price,
        btc_coin_id='coin-btc',
    )


class TestConfidenceFromTop2:

    @pytest.mark.parametrize('best,second,expected', [
        (100, 50, 90),
        (100, 80, 75),
        (100, 90, 60),
        (100, 95, 45),
        (100, 99, 30),
        (100, None, 55),
        (100, 0, 55),
        (0, 50, 0),
        (None, None, 0),
    ])
    def test_buckets(self, best, second, expected):
        assert confidence_from_top2(best, second) == expected

    def test_always_in_range(self):
        for second in (0.1, 1, 10, 50, 99.9, 100):
            assert 0 <= confidence_from_top2(100, second) <= 100


class TestTierOrder:

    def test_order_is_fixed(self):
        assert TIER_ORDER == (EstimatorTier.PER_COIN, EstimatorTier.AGGREGATOR, EstimatorTier.STATIC_FALLBACK)

    def test_tier_values_are_reportable(self):
        assert EstimatorTier.AGGREGATOR.value == 'aggregator'


class TestPerCoinTier:

    def test_best_coin_wins(self):
        resolver = _resolver({'coin-btc': 2e-14, 'coin-bch': 1e-14}, rate=0.00001)
        result = resolver.resolve(_candidate())
        assert result.tier is EstimatorTier.PER_COIN
        assert result.best_coin_id == 'coin-btc'
        assert result.revenue_usd_per_day == pytest.approx(2.0)
        assert result.confidence == 90
        assert 'BTC wins by ~50.0% over #2' in result.reason
        resolver.aggregator_rate.assert_not_called()
        assert resolver.tier_counts == {'per-coin': 1}

    def test_single_coin_has_no_runner_up(self):
        resolver = _resolver({'coin-btc': 2e-14, 'coin-bch': None})
        result = resolver.resolve(_candidate())
        assert result.second_value is None
        assert result.confidence == 55
        assert 'no #2 found' in result.reason

    def test_non_positive_estimates_are_ignored(self):
        resolver = _resolver({'coin-btc': 0.0, 'coin-bch': -1.0}, rate=None)
        assert resolver.resolve_per_coin(_candidate()) is None


class TestAggregatorTier:

    def test_payout_formula(self):
        resolver = _resolver(rate=0.00001)
        result = resolver.resolve(_candidate())
        assert result.tier is EstimatorTier.AGGREGATOR
        # 1e-5 sat/H/day * 1e14 H/s = 1e9 sat = 10 BTC
        assert result.revenue_usd_per_day == pytest.approx(500000.0)
        assert result.confidence == AGGREGATOR_CONFIDENCE
        assert result.best_coin_id == 'coin-btc'
        resolver.aggregator_rate.assert_called_once_with('SHA256')

    def test_row_override_is_normalized(self):
        resolver = _resolver(rate=0.00001)
        resolver.resolve(_candidate(aggregator_key_override='sha-256-asicboost'))
        resolver.aggregator_rate.assert_called_once_with('SHA256ASICBOOST')

    def test_unknown_algorithm_uses_normalized_key(self):
        resolver = _resolver(rate=None)
        resolver.resolve_aggregator(_candidate(algorithm_key='Some-Algo'))
        resolver.aggregator_rate.assert_called_once_with('SOMEALGO')

    def test_zero_rate_falls_through(self):
        assert _resolver(rate=0).resolve_aggregator(_candidate()) is None


class TestStaticFallbackTier:

    def test_catalog_rate(self):
        result = _resolver().resolve(_candidate())
        assert result.tier is EstimatorTier.STATIC_FALLBACK
        assert result.revenue_usd_per_day == pytest.approx(5.0)
        assert result.confidence == STATIC_FALLBACK_CONFIDENCE
        assert result.best_coin_id is None

    def test_row_rate_overrides_catalog(self):
        result = _resolver().resolve(_candidate(fallback_rate=0.2, fallback_unit='PH/s'))
        assert result.revenue_usd_per_day == pytest.approx(0.2 * 0.1)

    def test_unit_family_mismatch_is_none(self):
        candidate = _candidate(magnitude=50, unit='kSol/s', fallback_rate=0.3, fallback_unit='TH/s')
        assert _resolver().resolve_static_fallback(candidate) is None

    def test_nothing_available_is_none(self):
        resolver = _resolver()
        assert resolver.resolve(_candidate(algorithm_key='blake3', unit='GH/s')) is None
        assert resolver.tier_counts == {}
