"""Tests for minerchecker.services.settings_store."""
from unittest.mock import patch

from minerchecker.services.settings_store import get_setting, put_setting


class TestSettingsStore:

    def test_missing_key(self):
        assert get_setting('NOPE') is None

    def test_insert_then_update(self):
        assert put_setting('BTC_USD_LAST', {'usd': 1}) is True
        assert put_setting('BTC_USD_LAST', {'usd': 2}) is True
        assert get_setting('BTC_USD_LAST') == {'usd': 2}

    def test_read_error_returns_none(self, db_session):
        with patch.object(db_session, 'get', side_effect=RuntimeError('db down')):
            assert get_setting('BTC_USD_LAST') is None

    def test_write_error_returns_false(self, db_session):
        with patch.object(db_session, 'commit', side_effect=RuntimeError('db down')):
            assert put_setting('BTC_USD_LAST', {'usd': 1}) is False
