"""
Centralized configuration — env vars and run defaults for the profitability pipeline.
"""
import os


def _float_env(name, default):
    try:
        return float(os.getenv(name, default))
    except (TypeError, ValueError):
        return float(default)


def _int_env(name, default):
    try:
        return int(os.getenv(name, default))
    except (TypeError, ValueError):
        return int(default)


# ── Logging ──────────────────────────────────────────────────────────────────
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
LOG_FORMAT = os.getenv('LOG_FORMAT', 'text')

# ── Environment ──────────────────────────────────────────────────────────────
APP_ENV = os.getenv('APP_ENV', 'development').lower()

# ── Redis (single-flight lock + RQ queue) ─────────────────────────────────────
REDIS_URL = os.getenv('REDIS_URL', 'redis://localhost:6379/0')
RUN_LOCK_TTL_S = _int_env('RUN_LOCK_TTL_S', 1800)

# ── PostgreSQL ────────────────────────────────────────────────────────────────
DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///local.db')

# ── Cron auth ─────────────────────────────────────────────────────────────────
CRON_SECRET = os.getenv('CRON_SECRET', '')

# ── Run baseline ──────────────────────────────────────────────────────────────
DEFAULT_ELECTRICITY_USD_PER_KWH = 0.10
BASELINE_ELECTRICITY_USD_PER_KWH = _float_env(
    'BASELINE_ELECTRICITY_USD_PER_KWH', DEFAULT_ELECTRICITY_USD_PER_KWH,
)
CANDIDATE_COIN_LIMIT = _int_env('CANDIDATE_COIN_LIMIT', 25)
SNAPSHOT_CHUNK_SIZE = _int_env('SNAPSHOT_CHUNK_SIZE', 1000)

# ── Per-coin estimator (hashrate.no) ──────────────────────────────────────────
HASHRATE_NO_URL = os.getenv('HASHRATE_NO_URL', 'https://hashrate.no/coins')
PER_COIN_CONCURRENCY = _int_env('PER_COIN_CONCURRENCY', 8)
PER_COIN_MAX_CONCURRENCY = 20
PER_COIN_TIMEOUT_S = _float_env('PER_COIN_TIMEOUT_S', 8)
PER_COIN_CACHE_TTL_S = _float_env('PER_COIN_CACHE_TTL_S', 600)
PER_COIN_NEGATIVE_TTL_S = _float_env('PER_COIN_NEGATIVE_TTL_S', 60)

# ── Aggregator (NiceHash) ─────────────────────────────────────────────────────
NICEHASH_PAYING_URL = os.getenv(
    'NICEHASH_PAYING_URL',
    'https://api2.nicehash.com/main/api/v2/public/simplemultialgo/info',
)
AGGREGATOR_TIMEOUT_S = _float_env('AGGREGATOR_TIMEOUT_S', 8)

# ── Reference price providers ─────────────────────────────────────────────────
PRICE_TIMEOUT_S = _float_env('PRICE_TIMEOUT_S', 8)
REFERENCE_ASSET = 'BTC'

# ── HTTP ──────────────────────────────────────────────────────────────────────
USER_AGENT = os.getenv('HTTP_USER_AGENT', 'minerchecker/1.0')

# ── Settings keys (persisted fallbacks) ──────────────────────────────────────
NICEHASH_PAYING_SETTINGS_KEY = 'NICEHASH_PAYING_MAP'
REFERENCE_PRICE_SETTINGS_KEY = '{asset}_USD_LAST'
