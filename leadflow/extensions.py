"""
Shared process-wide instances — Redis client, round-robin allocator.

Importing this module is always safe: redis.from_url() does not connect until
the first command, so tests and local dev work without a Redis server.
"""
import logging
import redis

from leadflow.config import REDIS_URL
from leadflow.automation.round_robin import RoundRobinAllocator

logger = logging.getLogger('leadflow.extensions')

# ── Redis ─────────────────────────────────────────────────────────────────────
redis_client = redis.from_url(REDIS_URL, decode_responses=True)

# ── Round-robin cursor ───────────────────────────────────────────────────────
# One allocator per process; lead creation and the escalation sweep share it.
allocator = RoundRobinAllocator()
