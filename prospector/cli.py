"""
Command-line entry point.

Usage:
    prospector init-db
    prospector add "Mile High Dental" --industry healthcare --city Denver --state CO
    prospector research <prospect_id>            # run an attempt now
    prospector research <prospect_id> --enqueue  # hand it to the RQ worker
    prospector event <prospect_id> advance --note "picked up, wants pricing"
    prospector status <prospect_id>

Set MOCK_PIPELINE=true to run research against fake providers.
"""
import argparse
import json
import logging
import sys

from prospector import database
from prospector.config import INDUSTRIES
from prospector.errors import PipelineError
from prospector.logging_config import configure_logging
from prospector.models.prospect import Prospect
from prospector.pipeline.stages import Action, Stage, StageEvent

logger = logging.getLogger('prospector.cli')


def _print_json(data):
    print(json.dumps(data, indent=2, default=str))


# ── Commands ─────────────────────────────────────────────────────────────────

def cmd_init_db(args):
    database.init_db()
    print('Tables created.')
    return 0


def cmd_add(args):
    from prospector.services.research import create_prospect

    attrs = {k: getattr(args, k) for k in (
        'industry', 'address', 'city', 'state', 'website', 'phone', 'email',
        'contact_name', 'employee_count', 'estimated_revenue',
    ) if getattr(args, k) is not None}

    session = database.get_session()
    try:
        prospect = create_prospect(session, args.business_name, **attrs)
        print(prospect.id)
    finally:
        session.close()
    return 0


def cmd_research(args):
    from prospector.services.research import research_prospect, enqueue_research

    if args.enqueue:
        job = enqueue_research(args.prospect_id)
        print(f'Enqueued job {job.id}')
        return 0

    outcome = research_prospect(args.prospect_id)
    _print_json(outcome.to_dict())
    return 0 if not outcome.attempt.failed and not outcome.attempt.skipped else 2


def cmd_event(args):
    from prospector.services.research import apply_stage_event

    event = StageEvent.parse(args.prospect_id, args.action, target_stage=args.target, note=args.note or '')
    transition = apply_stage_event(event)
    verb = 'moved' if transition.changed else 'held'
    print(f'{verb}: {transition.from_stage.value} → {transition.to_stage.value} ({transition.reason})')
    return 0


def cmd_status(args):
    from prospector.services.ledger import SqlLedger, LocalAttemptLock

    session = database.get_session()
    try:
        prospect = session.get(Prospect, args.prospect_id)
        if prospect is None:
            print(f'Prospect {args.prospect_id} not found', file=sys.stderr)
            return 1
        data = prospect.to_dict()
    finally:
        session.close()

    ledger = SqlLedger(lock=LocalAttemptLock())
    latest = ledger.latest_attempt(args.prospect_id)
    data['latest_attempt'] = latest.to_dict() if latest else None
    data['attempts'] = len(ledger.history(args.prospect_id))
    _print_json(data)
    return 0


# ── Parser ───────────────────────────────────────────────────────────────────

def build_parser():
    parser = argparse.ArgumentParser(prog='prospector', description='Prospect enrichment and qualification')
    parser.add_argument('--log-level', default=None, help='Overrides LOG_LEVEL')
    sub = parser.add_subparsers(dest='command', required=True)

    p = sub.add_parser('init-db', help='Create database tables')
    p.set_defaults(func=cmd_init_db)

    p = sub.add_parser('add', help='Create a prospect')
    p.add_argument('business_name')
    p.add_argument('--industry', choices=INDUSTRIES)
    p.add_argument('--address')
    p.add_argument('--city')
    p.add_argument('--state')
    p.add_argument('--website')
    p.add_argument('--phone')
    p.add_argument('--email')
    p.add_argument('--contact-name', dest='contact_name')
    p.add_argument('--employee-count', dest='employee_count', type=int)
    p.add_argument('--estimated-revenue', dest='estimated_revenue', type=float)
    p.set_defaults(func=cmd_add)

    p = sub.add_parser('research', help='Run a research attempt')
    p.add_argument('prospect_id')
    p.add_argument('--enqueue', action='store_true', help='Queue on RQ instead of running inline')
    p.set_defaults(func=cmd_research)

    p = sub.add_parser('event', help='Apply a stage action')
    p.add_argument('prospect_id')
    p.add_argument('action', choices=[a.value for a in Action])
    p.add_argument('--target', choices=[s.value for s in Stage], help='Target stage for override')
    p.add_argument('--note')
    p.set_defaults(func=cmd_event)

    p = sub.add_parser('status', help='Show a prospect and its latest attempt')
    p.add_argument('prospect_id')
    p.set_defaults(func=cmd_status)

    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    configure_logging(level=args.log_level)
    try:
        return args.func(args)
    except (PipelineError, ValueError) as e:
        logger.error("%s failed: %s", args.command, e)
        print(f'Error: {e}', file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
