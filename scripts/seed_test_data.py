#!/usr/bin/env python3
"""
Seed demo prospects and research them against the mock providers.

Creates prospects covering key scenarios:
  1. Fully researched, in the service area
  2. Partial research (supplementary + strategy fail), retried once
  3. Interested prospect that auto-qualifies on score
  4. Out-of-area prospect that stays low
  5. Lost prospect (terminal stage, score ignored)

Usage:
    python scripts/seed_test_data.py          # seed all scenarios
    python scripts/seed_test_data.py --clear  # wipe seeded data first

Uses DATABASE_URL (defaults to sqlite:///local.db). No Redis or provider keys needed.
"""
import sys
import os
import uuid
import argparse

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from prospector.database import get_session, init_db
from prospector.logging_config import configure_logging
from prospector.models.prospect import Prospect
from prospector.models.research_attempt import ResearchAttempt
from prospector.models.stage_transition import StageTransition
from prospector.pipeline.mock_adapters import build_mock_adapters
from prospector.pipeline.orchestrator import AttemptOrchestrator
from prospector.services.ledger import SqlLedger, LocalAttemptLock
from prospector.services.research import research_prospect


# Prefix for seeded IDs so we can clear them
SEED_PREFIX = 'seed-'


def make_id():
    return SEED_PREFIX + str(uuid.uuid4())


def _orchestrator(fail_passes=()):
    ledger = SqlLedger(lock=LocalAttemptLock())
    return AttemptOrchestrator(ledger, build_mock_adapters(fail_passes=list(fail_passes), delay=False))


def _add(session, **fields):
    prospect = Prospect(id=make_id(), **fields)
    session.add(prospect)
    session.commit()
    return prospect.id


# ── Scenarios ────────────────────────────────────────────────────────────────

def seed_full_research(session):
    pid = _add(session, business_name='Mile High Dental', industry='healthcare', city='Denver', state='CO')
    outcome = research_prospect(pid, orchestrator=_orchestrator())
    print(f'  [1] Full research:     {pid}  score={outcome.breakdown.total}')
    return pid


def seed_partial_then_retry(session):
    pid = _add(session, business_name='Front Range Roofing', industry='home_services',
               city='Aurora', state='CO', pipeline_stage='contacted')
    first = research_prospect(pid, orchestrator=_orchestrator(['supplementary_sources', 'strategy_generation']))
    second = research_prospect(pid, orchestrator=_orchestrator())
    print(f'  [2] Partial + retry:   {pid}  score {first.breakdown.total} → {second.breakdown.total}')
    return pid


def seed_auto_qualified(session):
    pid = _add(session, business_name='Boulder Family Law', industry='legal_services',
               city='Boulder', state='CO', pipeline_stage='interested')
    outcome = research_prospect(pid, orchestrator=_orchestrator())
    print(f'  [3] Interested:        {pid}  score={outcome.breakdown.total} stage={outcome.transition.to_stage.value}')
    return pid


def seed_out_of_area(session):
    pid = _add(session, business_name='Desert Bloom Florist', industry='retail', city='Phoenix', state='AZ')
    outcome = research_prospect(pid, orchestrator=_orchestrator(['web_research']))
    print(f'  [4] Out of area:       {pid}  score={outcome.breakdown.total}')
    return pid


def seed_lost(session):
    pid = _add(session, business_name='Colfax Auto Body', industry='automotive',
               city='Denver', state='CO', pipeline_stage='lost')
    research_prospect(pid, orchestrator=_orchestrator())
    print(f'  [5] Lost:              {pid}')
    return pid


# ── Clear / Main ─────────────────────────────────────────────────────────────

def clear_seeded_data(session):
    """Remove all seeded prospects with their attempts and transitions."""
    ids = [p.id for p in session.query(Prospect).filter(Prospect.id.like(f'{SEED_PREFIX}%')).all()]
    if not ids:
        print('No seeded data found.')
        return

    deleted_attempts = session.query(ResearchAttempt).filter(
        ResearchAttempt.prospect_id.in_(ids)).delete(synchronize_session=False)
    deleted_transitions = session.query(StageTransition).filter(
        StageTransition.prospect_id.in_(ids)).delete(synchronize_session=False)
    deleted = session.query(Prospect).filter(Prospect.id.in_(ids)).delete(synchronize_session=False)
    session.commit()

    print(f'Cleared {deleted} prospects, {deleted_attempts} attempts, {deleted_transitions} transitions.')


def main():
    parser = argparse.ArgumentParser(description='Seed demo prospects')
    parser.add_argument('--clear', action='store_true', help='Clear seeded data before (or instead of) seeding')
    parser.add_argument('--clear-only', action='store_true', help='Only clear, do not re-seed')
    args = parser.parse_args()

    configure_logging(level='WARNING')
    init_db()

    session = get_session()
    try:
        if args.clear or args.clear_only:
            clear_seeded_data(session)
            if args.clear_only:
                return

        print('Seeding demo prospects...')
        seed_full_research(session)
        seed_partial_then_retry(session)
        seed_auto_qualified(session)
        seed_out_of_area(session)
        seed_lost(session)
        print('\nDone! Try: prospector status <id>')

    except Exception as e:
        session.rollback()
        print(f'Error: {e}')
        raise
    finally:
        session.close()


if __name__ == '__main__':
    main()
