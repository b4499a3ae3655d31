"""Tests for prospector.services.ledger — InMemoryLedger, SqlLedger, reservation locks."""
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from prospector.errors import ConcurrentAttemptConflict, LedgerError
from prospector.models.research_attempt import ResearchAttempt
from prospector.pipeline.base import Attempt, PassResult, ATTEMPT_CANCELLED
from prospector.services.ledger import (
    InMemoryLedger, SqlLedger, LocalAttemptLock, RedisAttemptLock,
)


def attempt(number, prospect_id='p-1', **results):
    rows = []
    for name, value in results.items():
        if isinstance(value, dict):
            rows.append(PassResult.success(name, value))
        else:
            rows.append(PassResult.failed(name, value))
    return Attempt(prospect_id, number, rows)


@pytest.fixture
def sql_ledger(session_factory, make_prospect):
    make_prospect(id='p-1')
    return SqlLedger(session_factory, lock=LocalAttemptLock())


@pytest.fixture(params=['memory', 'sql'])
def ledger(request):
    if request.param == 'memory':
        return InMemoryLedger()
    return request.getfixturevalue('sql_ledger')


class TestLedgerContract:

    def test_empty(self, ledger):
        assert ledger.latest_attempt('p-1') is None
        assert ledger.history('p-1') == []
        assert ledger.all_succeeded_outputs('p-1') == {}

    def test_append_and_read_back(self, ledger):
        ledger.append('p-1', attempt(1, location_data={'place_id': 'x'}, web_research='HTTP 500'))
        latest = ledger.latest_attempt('p-1')

        assert latest.number == 1
        assert latest.result_for('location_data').outputs == {'place_id': 'x'}
        assert latest.result_for('web_research').error == 'HTTP 500'
        assert latest.started_at.tzinfo is not None

    def test_out_of_sequence_append_conflicts(self, ledger):
        ledger.append('p-1', attempt(1, location_data={'place_id': 'x'}))
        with pytest.raises(ConcurrentAttemptConflict):
            ledger.append('p-1', attempt(1, location_data={'place_id': 'y'}))
        with pytest.raises(ConcurrentAttemptConflict):
            ledger.append('p-1', attempt(3, location_data={'place_id': 'y'}))
        assert len(ledger.history('p-1')) == 1

    def test_history_oldest_first(self, ledger):
        ledger.append('p-1', attempt(1, web_research='down'))
        ledger.append('p-1', attempt(2, web_research={'has_website': True}))
        assert [a.number for a in ledger.history('p-1')] == [1, 2]

    def test_all_succeeded_outputs_merges_later_wins(self, ledger):
        ledger.append('p-1', attempt(1, location_data={'place_id': 'x', 'city': 'Denver'}, web_research='down'))
        second = Attempt('p-1', 2, [
            PassResult.success('location_data', {'place_id': 'x', 'city': 'Denver'}).carry_forward(),
            PassResult.success('web_research', {'has_website': True, 'city': 'Boulder'}),
        ])
        ledger.append('p-1', second)

        merged = ledger.all_succeeded_outputs('p-1')
        assert merged == {'place_id': 'x', 'city': 'Boulder', 'has_website': True}
        assert ledger.succeeded_passes('p-1') == ['location_data', 'web_research']

    def test_cancelled_status_preserved(self, ledger):
        a = attempt(1, location_data={'place_id': 'x'})
        a.status = ATTEMPT_CANCELLED
        ledger.append('p-1', a)
        assert ledger.latest_attempt('p-1').status == ATTEMPT_CANCELLED

    def test_reserve_is_exclusive(self, ledger):
        with ledger.reserve('p-1'):
            with pytest.raises(ConcurrentAttemptConflict):
                with ledger.reserve('p-1'):
                    pass
            with ledger.reserve('p-2'):
                pass
        with ledger.reserve('p-1'):
            pass


class TestSqlLedger:

    def test_rows_written(self, sql_ledger, db_session):
        sql_ledger.append('p-1', attempt(1, location_data={'place_id': 'x'}))
        row = db_session.query(ResearchAttempt).filter_by(prospect_id='p-1').one()
        assert row.attempt_number == 1
        assert row.pass_results[0]['outcome'] == 'succeeded'

    def test_database_error_becomes_ledger_error(self):
        session = MagicMock()
        session.query.side_effect = OperationalError('SELECT', {}, Exception('db gone'))
        ledger = SqlLedger(lambda: session, lock=LocalAttemptLock())

        with pytest.raises(LedgerError):
            ledger.latest_attempt('p-1')
        with pytest.raises(LedgerError):
            ledger.append('p-1', attempt(1, location_data={'place_id': 'x'}))
        session.rollback.assert_called()

    def test_defaults_to_get_session(self, patch_get_session, make_prospect):
        make_prospect(id='p-9')
        ledger = SqlLedger(lock=LocalAttemptLock())
        ledger.append('p-9', attempt(1, 'p-9', location_data={'place_id': 'x'}))
        assert ledger.latest_attempt('p-9').number == 1


class TestRedisAttemptLock:

    def test_acquire_and_release(self, fake_redis):
        lock = RedisAttemptLock(fake_redis, ttl=60)
        with lock.hold('p-1'):
            assert fake_redis.get('attempt_lock:p-1') is not None
            assert fake_redis.expiry['attempt_lock:p-1'] == 60
        assert fake_redis.get('attempt_lock:p-1') is None

    def test_held_elsewhere_conflicts(self, fake_redis):
        fake_redis.set('attempt_lock:p-1', 'other-worker')
        with pytest.raises(ConcurrentAttemptConflict):
            with RedisAttemptLock(fake_redis).hold('p-1'):
                pass
        assert fake_redis.get('attempt_lock:p-1') == 'other-worker'

    def test_does_not_release_foreign_token(self, fake_redis):
        lock = RedisAttemptLock(fake_redis)
        with lock.hold('p-1'):
            # lock expired and another worker took it
            fake_redis.store['attempt_lock:p-1'] = 'other-worker'
        assert fake_redis.get('attempt_lock:p-1') == 'other-worker'

    def test_released_on_error(self, fake_redis):
        lock = RedisAttemptLock(fake_redis)
        with pytest.raises(RuntimeError):
            with lock.hold('p-1'):
                raise RuntimeError('boom')
        assert fake_redis.get('attempt_lock:p-1') is None
