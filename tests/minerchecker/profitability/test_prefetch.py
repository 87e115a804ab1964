"""Tests for minerchecker.profitability.prefetch — de-duplicated per-coin fetches."""
from unittest.mock import MagicMock

from minerchecker.profitability.hashrate_no import RevenueEstimate
from minerchecker.profitability.limiter import ConcurrencyLimiter
from minerchecker.profitability.prefetch import (
    candidate_coins_for,
    collect_unique_candidates,
    prefetch_per_coin_estimates,
)
from minerchecker.profitability.tiers import CandidateCoin


def _estimator(values):
    """Estimator stub answering from {identifier: per-base value}."""
    mock = MagicMock()

    def fetch(ident):
        value = values.get(ident)
        return RevenueEstimate(ident, value, 'H/s') if value is not None else None

    mock.fetch_revenue_per_base_unit_per_day.side_effect = fetch
    return mock


class TestCandidateCoins:

    def test_machine_coins_take_precedence(self):
        a, b = CandidateCoin('a'), CandidateCoin('b')
        assert candidate_coins_for([a], [a, b], limit=5) == [a]

    def test_algorithm_coins_when_machine_has_none(self):
        coins = [CandidateCoin(str(i)) for i in range(5)]
        assert candidate_coins_for([], coins, limit=3) == coins[:3]

    def test_collect_unique_by_id(self):
        a = CandidateCoin('a', key='aaa')
        unique = collect_unique_candidates([[a], [CandidateCoin('a', key='other'), CandidateCoin('b')]])
        assert list(unique) == ['a', 'b']
        assert unique['a'].key == 'aaa'


class TestPrefetchPerCoinEstimates:

    def test_identifiers_fetched_once(self):
        coins = [
            CandidateCoin('coin-btc', key='btc', symbol='BTC'),
            CandidateCoin('coin-btc2', key='BTC', symbol='BTC'),
        ]
        estimator = _estimator({'btc': 1e-13})
        out = prefetch_per_coin_estimates(coins, estimator, ConcurrencyLimiter(4))
        assert out == {'coin-btc': 1e-13, 'coin-btc2': 1e-13}
        estimator.fetch_revenue_per_base_unit_per_day.assert_called_once_with('btc')

    def test_symbol_retry_when_key_has_no_data(self):
        coins = [CandidateCoin('coin-kas', key='kaspa', symbol='KAS')]
        estimator = _estimator({'kas': 5e-10})
        out = prefetch_per_coin_estimates(coins, estimator, ConcurrencyLimiter(2))
        assert out == {'coin-kas': 5e-10}
        called = [c.args[0] for c in estimator.fetch_revenue_per_base_unit_per_day.call_args_list]
        assert called == ['kaspa', 'kas']

    def test_no_data_anywhere_is_none(self):
        coins = [CandidateCoin('coin-x', key='x', symbol='X')]
        out = prefetch_per_coin_estimates(coins, _estimator({}), ConcurrencyLimiter(2))
        assert out == {'coin-x': None}

    def test_empty_input(self):
        estimator = _estimator({})
        assert prefetch_per_coin_estimates([], estimator, ConcurrencyLimiter(2)) == {}
        estimator.fetch_revenue_per_base_unit_per_day.assert_not_called()
