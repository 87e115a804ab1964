"""
Shared client instances — Redis.

redis.from_url() does not connect until the first command, so importing this
module is always safe (even when Redis is not running during tests).
"""
import logging
import redis

from minerchecker.config import REDIS_URL

logger = logging.getLogger('minerchecker.extensions')

# ── Redis ─────────────────────────────────────────────────────────────────────
redis_client = redis.from_url(REDIS_URL, decode_responses=True)
