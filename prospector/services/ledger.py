"""
Attempt history ledger — append-only record of research attempts per prospect.

Two implementations share one contract:
  - SqlLedger:      research_attempts table via SQLAlchemy, per-prospect
                    reservation through a Redis lock (production)
  - InMemoryLedger: dict + threading lock (tests, MOCK_PIPELINE runs)

append() refuses an attempt whose number is not latest + 1, which is how a
racing second writer surfaces as ConcurrentAttemptConflict instead of
interleaving its history with the first.
"""
import logging
import threading
import uuid
from datetime import timezone
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Dict, List, Any, Optional

from sqlalchemy import func as sql_func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from prospector.config import ATTEMPT_LOCK_TTL
from prospector.errors import ConcurrentAttemptConflict, LedgerError
from prospector.pipeline.base import Attempt, PassResult

logger = logging.getLogger('services.ledger')


class Ledger(ABC):

    @abstractmethod
    def latest_attempt(self, prospect_id: str) -> Optional[Attempt]:
        ...

    @abstractmethod
    def append(self, prospect_id: str, attempt: Attempt) -> Attempt:
        """Persist the attempt. Raises ConcurrentAttemptConflict or LedgerError."""
        ...

    @abstractmethod
    def history(self, prospect_id: str) -> List[Attempt]:
        """All attempts for the prospect, oldest first."""
        ...

    @abstractmethod
    def reserve(self, prospect_id: str):
        """Context manager held for the whole attempt. Raises ConcurrentAttemptConflict if taken."""
        ...

    def all_succeeded_outputs(self, prospect_id: str) -> Dict[str, Any]:
        """Merge outputs of every pass that actually ran and succeeded, later attempts winning."""
        merged = {}
        for attempt in self.history(prospect_id):
            for result in attempt.results:
                if result.succeeded and not result.carried_forward:
                    merged.update(result.outputs)
        return merged

    def succeeded_passes(self, prospect_id: str) -> List[str]:
        names = []
        for attempt in self.history(prospect_id):
            for result in attempt.results:
                if result.succeeded and result.pass_name not in names:
                    names.append(result.pass_name)
        return names


# ── Reservation locks ────────────────────────────────────────────────────────

class LocalAttemptLock:
    """Process-local reservation set."""

    def __init__(self):
        self._held = set()
        self._guard = threading.Lock()

    @contextmanager
    def hold(self, prospect_id):
        with self._guard:
            if prospect_id in self._held:
                raise ConcurrentAttemptConflict(prospect_id)
            self._held.add(prospect_id)
        try:
            yield
        finally:
            with self._guard:
                self._held.discard(prospect_id)


class RedisAttemptLock:
    """
    Cross-process reservation: SET key token NX EX ttl.

    The TTL bounds how long a crashed worker can keep a prospect busy.
    Release only deletes the key if it still holds our token.
    """
    PREFIX = 'attempt_lock'

    def __init__(self, redis_client, ttl=ATTEMPT_LOCK_TTL):
        self.redis = redis_client
        self.ttl = ttl

    @contextmanager
    def hold(self, prospect_id):
        key = f'{self.PREFIX}:{prospect_id}'
        token = uuid.uuid4().hex
        if not self.redis.set(key, token, nx=True, ex=self.ttl):
            raise ConcurrentAttemptConflict(prospect_id)
        try:
            yield
        finally:
            try:
                if self.redis.get(key) == token:
                    self.redis.delete(key)
            except Exception:
                logger.warning("Could not release attempt lock for %s (expires in %ds)",
                               prospect_id, self.ttl, exc_info=True)


# ── In-memory ledger ─────────────────────────────────────────────────────────

class InMemoryLedger(Ledger):

    def __init__(self, lock=None):
        self._attempts: Dict[str, List[Attempt]] = {}
        self._guard = threading.Lock()
        self._lock = lock or LocalAttemptLock()

    def latest_attempt(self, prospect_id):
        with self._guard:
            attempts = self._attempts.get(prospect_id)
            return attempts[-1] if attempts else None

    def history(self, prospect_id):
        with self._guard:
            return list(self._attempts.get(prospect_id, []))

    def append(self, prospect_id, attempt):
        with self._guard:
            attempts = self._attempts.setdefault(prospect_id, [])
            expected = len(attempts) + 1
            if attempt.number != expected:
                raise ConcurrentAttemptConflict(prospect_id)
            attempts.append(attempt)
        logger.info("Attempt #%d recorded for %s", attempt.number, prospect_id,
                    extra={'prospect_id': prospect_id, 'attempt': attempt.number})
        return attempt

    def reserve(self, prospect_id):
        return self._lock.hold(prospect_id)


# ── SQL ledger ───────────────────────────────────────────────────────────────

class SqlLedger(Ledger):
    """
    research_attempts-backed ledger.

    session_factory defaults to prospector.database.get_session; tests pass a
    factory bound to in-memory SQLite.
    """

    def __init__(self, session_factory=None, lock=None):
        if session_factory is None:
            from prospector import database
            session_factory = lambda: database.get_session()
        self._session_factory = session_factory
        if lock is None:
            from prospector.extensions import redis_client
            lock = RedisAttemptLock(redis_client)
        self._lock = lock

    def reserve(self, prospect_id):
        return self._lock.hold(prospect_id)

    def latest_attempt(self, prospect_id):
        from prospector.models.research_attempt import ResearchAttempt
        session = self._session_factory()
        try:
            row = (session.query(ResearchAttempt)
                   .filter_by(prospect_id=prospect_id)
                   .order_by(ResearchAttempt.attempt_number.desc())
                   .first())
            return _to_attempt(row) if row else None
        except SQLAlchemyError as e:
            raise LedgerError(f"Could not read attempts for {prospect_id}: {e}") from e
        finally:
            session.close()

    def history(self, prospect_id):
        from prospector.models.research_attempt import ResearchAttempt
        session = self._session_factory()
        try:
            rows = (session.query(ResearchAttempt)
                    .filter_by(prospect_id=prospect_id)
                    .order_by(ResearchAttempt.attempt_number.asc())
                    .all())
            return [_to_attempt(r) for r in rows]
        except SQLAlchemyError as e:
            raise LedgerError(f"Could not read attempts for {prospect_id}: {e}") from e
        finally:
            session.close()

    def append(self, prospect_id, attempt):
        from prospector.models.research_attempt import ResearchAttempt
        session = self._session_factory()
        try:
            latest = (session.query(sql_func.max(ResearchAttempt.attempt_number))
                      .filter_by(prospect_id=prospect_id)
                      .scalar()) or 0
            if attempt.number != latest + 1:
                raise ConcurrentAttemptConflict(prospect_id)

            session.add(ResearchAttempt(
                prospect_id=prospect_id,
                attempt_number=attempt.number,
                status=attempt.status,
                pass_results=[r.to_dict() for r in attempt.results],
                started_at=attempt.started_at,
            ))
            session.commit()
        except ConcurrentAttemptConflict:
            session.rollback()
            raise
        except IntegrityError as e:
            session.rollback()
            # Unique (prospect_id, attempt_number) lost the race to another writer
            raise ConcurrentAttemptConflict(prospect_id) from e
        except SQLAlchemyError as e:
            session.rollback()
            logger.error("Failed to append attempt #%d for %s", attempt.number, prospect_id, exc_info=True)
            raise LedgerError(f"Could not record attempt #{attempt.number} for {prospect_id}: {e}") from e
        finally:
            session.close()

        logger.info("Attempt #%d recorded for %s", attempt.number, prospect_id,
                    extra={'prospect_id': prospect_id, 'attempt': attempt.number})
        return attempt


def _to_attempt(row) -> Attempt:
    started = row.started_at or row.created_at
    if started is not None and started.tzinfo is None:
        # SQLite drops tzinfo on round-trip
        started = started.replace(tzinfo=timezone.utc)
    kwargs = {'started_at': started} if started is not None else {}
    return Attempt(
        prospect_id=row.prospect_id,
        number=row.attempt_number,
        results=[PassResult.from_dict(d) for d in (row.pass_results or [])],
        status=row.status,
        **kwargs,
    )
