"""
Shared client instances — Redis, OpenAI.

Importing this module never opens a connection: redis-py connects lazily and
the OpenAI client is only built when OPENAI_API_KEY is set.
"""
import logging
import redis

from prospector.config import REDIS_URL, OPENAI_API_KEY

logger = logging.getLogger('prospector.extensions')

# ── Redis ─────────────────────────────────────────────────────────────────────
redis_client = redis.from_url(REDIS_URL, decode_responses=True)

# ── OpenAI ────────────────────────────────────────────────────────────────────
openai_client = None
if OPENAI_API_KEY:
    try:
        from openai import OpenAI
        openai_client = OpenAI(api_key=OPENAI_API_KEY)
        logger.info("OpenAI client initialized successfully")
    except Exception as e:
        logger.error("Error initializing OpenAI client: %s", e)
else:
    logger.warning("OPENAI_API_KEY not set — strategy generation will fail until configured")

# ── RQ ────────────────────────────────────────────────────────────────────────
# RQ pickles job payloads, so its connection must not decode responses
rq_connection = redis.from_url(REDIS_URL)
