"""
Per-provider circuit breaker with Redis-backed state.

Shared across worker processes so one provider outage trips the breaker for
every prospect at once instead of letting each attempt burn its timeout.

States:
  - CLOSED    → calls pass through
  - OPEN      → calls short-circuit with CircuitOpenError (recorded as a failed pass)
  - HALF_OPEN → after reset_timeout, one probe call is let through
"""
import logging
import time

logger = logging.getLogger('services.circuit_breaker')

CLOSED = 'closed'
OPEN = 'open'
HALF_OPEN = 'half_open'


class CircuitOpenError(Exception):
    """Raised instead of calling a provider whose breaker is open."""
    def __init__(self, provider, retry_after=None):
        self.provider = provider
        self.retry_after = retry_after
        wait = f", retry in {retry_after:.0f}s" if retry_after is not None else ''
        super().__init__(f"Provider '{provider}' circuit is open{wait}")


class ProviderBreaker:
    """
    Usage:
        breaker = ProviderBreaker('maps', redis_client, failure_threshold=3, reset_timeout=300)
        data = breaker.call(requests_get_json, url, params)
    """

    PREFIX = 'breaker'

    def __init__(self, provider, redis_client, failure_threshold=3, reset_timeout=300):
        self.provider = provider
        self.redis = redis_client
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout

    def _key(self, suffix):
        return f'{self.PREFIX}:{self.provider}:{suffix}'

    @property
    def state(self):
        try:
            current = self.redis.get(self._key('state')) or CLOSED
            if current == OPEN and self._seconds_since_failure() > self.reset_timeout:
                self.redis.set(self._key('state'), HALF_OPEN)
                return HALF_OPEN
            return current
        except Exception:
            # Redis down: let calls through rather than blocking every provider
            return CLOSED

    def _seconds_since_failure(self):
        last = self.redis.get(self._key('opened_at'))
        return time.time() - float(last) if last else float('inf')

    @property
    def failure_count(self):
        try:
            return int(self.redis.get(self._key('failures')) or 0)
        except Exception:
            return 0

    def call(self, func, *args, **kwargs):
        if self.state == OPEN:
            remaining = max(0.0, self.reset_timeout - self._seconds_since_failure())
            raise CircuitOpenError(self.provider, retry_after=remaining)

        try:
            result = func(*args, **kwargs)
        except Exception as e:
            self.record_failure(e)
            raise
        self.record_success()
        return result

    def record_success(self):
        try:
            self.redis.set(self._key('state'), CLOSED)
            self.redis.set(self._key('failures'), 0)
        except Exception:
            logger.debug("Could not record success for '%s'", self.provider, exc_info=True)

    def record_failure(self, error):
        try:
            count = self.redis.incr(self._key('failures'))
            if count >= self.failure_threshold:
                self.redis.set(self._key('state'), OPEN)
                self.redis.set(self._key('opened_at'), str(time.time()))
                logger.warning("Provider '%s' circuit OPEN after %d failures: %s",
                               self.provider, count, error)
            else:
                logger.info("Provider '%s' failure %d/%d: %s",
                            self.provider, count, self.failure_threshold, error)
        except Exception:
            logger.debug("Could not record failure for '%s'", self.provider, exc_info=True)

    def reset(self):
        self.redis.set(self._key('state'), CLOSED)
        self.redis.set(self._key('failures'), 0)
        self.redis.delete(self._key('opened_at'))
        logger.info("Provider '%s' circuit manually reset", self.provider)

    def health(self):
        return {
            'provider': self.provider,
            'state': self.state,
            'failure_count': self.failure_count,
            'failure_threshold': self.failure_threshold,
            'reset_timeout': self.reset_timeout,
        }


# Thresholds per research capability
BREAKER_SETTINGS = {
    'maps': dict(failure_threshold=3, reset_timeout=300),
    'web': dict(failure_threshold=5, reset_timeout=120),
    'reviews': dict(failure_threshold=3, reset_timeout=300),
    'directory': dict(failure_threshold=3, reset_timeout=180),
    'strategy': dict(failure_threshold=5, reset_timeout=60),
}


def build_breakers(redis_client):
    """One breaker per capability, sharing the given Redis client."""
    return {
        capability: ProviderBreaker(capability, redis_client, **settings)
        for capability, settings in BREAKER_SETTINGS.items()
    }
