"""
Research workflow — attempt → prospect update → score → stage.

This is the one place that owns a database session for the prospect row.
The orchestrator only talks to the ledger; everything prospect-visible
(digital-presence flags, contact data, score, stage) is written here, after
the attempt has been recorded.
"""
import logging
from dataclasses import dataclass
from typing import Optional, Dict, Any

from prospector import database
from prospector.config import MOCK_PIPELINE, AUTO_QUALIFY_THRESHOLD
from prospector.errors import AttemptCancelled, ConcurrentAttemptConflict
from prospector.models.prospect import Prospect
from prospector.models.stage_transition import StageTransition
from prospector.pipeline.base import Attempt
from prospector.pipeline.orchestrator import AttemptOrchestrator
from prospector.pipeline.scoring import compute_score, apply_score, ScoreBreakdown
from prospector.pipeline.stages import StageEngine, StageEvent, Stage, Transition
from prospector.services.ledger import SqlLedger, LocalAttemptLock
from prospector.services.notifications import notify_prospect_qualified, notify_attempt_failures

logger = logging.getLogger('services.research')

PRESENCE_FLAGS = ('has_website', 'has_google_business', 'has_social_media', 'has_online_reviews')

# pass output key → prospect column, filled only while the column is blank
CONTACT_FIELDS = {
    'phone': 'phone',
    'email': 'email',
    'website': 'website',
    'formatted_address': 'address',
    'city': 'city',
    'state': 'state',
    'owner_name': 'contact_name',
}


@dataclass
class ResearchOutcome:
    attempt: Attempt
    breakdown: ScoreBreakdown
    transition: Transition

    def to_dict(self) -> Dict[str, Any]:
        return {
            'attempt': self.attempt.to_dict(),
            'score': self.breakdown.to_dict(),
            'stage': {
                'from': self.transition.from_stage.value,
                'to': self.transition.to_stage.value,
                'reason': self.transition.reason,
            },
            'retry_next': self.attempt.retry_set(),
        }


def _default_session_factory():
    return database.get_session()


# ── Wiring ───────────────────────────────────────────────────────────────────

def build_orchestrator(session_factory=None, ledger=None) -> AttemptOrchestrator:
    """Production wiring: real adapters + breakers + Redis lock, or fakes under MOCK_PIPELINE."""
    session_factory = session_factory or _default_session_factory
    if MOCK_PIPELINE:
        from prospector.pipeline.mock_adapters import build_mock_adapters
        adapters = build_mock_adapters()
        ledger = ledger or SqlLedger(session_factory, lock=LocalAttemptLock())
        logger.info("MOCK_PIPELINE active — using fake adapters")
    else:
        from prospector.extensions import redis_client, openai_client
        from prospector.pipeline.adapters import build_adapters
        from prospector.services.circuit_breaker import build_breakers
        adapters = build_adapters(build_breakers(redis_client), openai_client)
        ledger = ledger or SqlLedger(session_factory)
    return AttemptOrchestrator(ledger, adapters)


# ── Prospect mutation ────────────────────────────────────────────────────────

def apply_outputs(prospect, outputs: Dict[str, Any]):
    """Copy research results onto the prospect row."""
    for flag in PRESENCE_FLAGS:
        if flag in outputs:
            setattr(prospect, flag, bool(outputs[flag]))

    for key, column in CONTACT_FIELDS.items():
        value = outputs.get(key)
        if value and not getattr(prospect, column, None):
            setattr(prospect, column, value)

    if outputs.get('employee_count'):
        prospect.employee_count = int(outputs['employee_count'])
    if outputs.get('estimated_revenue'):
        prospect.estimated_revenue = float(outputs['estimated_revenue'])
    return prospect


def _record_transition(session, prospect, transition, score):
    session.add(StageTransition(
        prospect_id=prospect.id,
        from_stage=transition.from_stage.value,
        to_stage=transition.to_stage.value,
        action=transition.action,
        score=score,
        reason=transition.reason,
    ))
    prospect.pipeline_stage = transition.to_stage.value
    logger.info("Prospect %s stage %s → %s (%s)", prospect.id,
                transition.from_stage.value, transition.to_stage.value, transition.reason,
                extra={'prospect_id': prospect.id})


def refresh_prospect(session, prospect, ledger, engine: Optional[StageEngine] = None):
    """Re-derive flags, score and score-driven stage from the full attempt history."""
    engine = engine or StageEngine(AUTO_QUALIFY_THRESHOLD)
    outputs = ledger.all_succeeded_outputs(prospect.id)
    apply_outputs(prospect, outputs)

    breakdown = compute_score(prospect, outputs, ledger.succeeded_passes(prospect.id))
    apply_score(prospect, breakdown)

    transition = engine.evaluate(prospect.pipeline_stage, prospect.qualification_score)
    if transition.changed:
        _record_transition(session, prospect, transition, prospect.qualification_score)
    return breakdown, transition


# ── Public API ───────────────────────────────────────────────────────────────

def create_prospect(session, business_name, **attrs) -> Prospect:
    unknown = [k for k in attrs if not hasattr(Prospect, k)]
    if unknown:
        raise ValueError(f"Unknown prospect field(s): {', '.join(unknown)}")
    prospect = Prospect(business_name=business_name, pipeline_stage=Stage.COLD.value, **attrs)
    session.add(prospect)
    session.commit()
    logger.info("Created prospect %s (%s)", prospect.id, business_name)
    return prospect


def research_prospect(prospect_id, orchestrator=None, session_factory=None,
                      engine=None, cancel_event=None) -> ResearchOutcome:
    """
    Run one research attempt for the prospect and fold the results back in.

    A cancelled attempt that still recorded some successful passes updates the
    prospect from what was recorded before AttemptCancelled is re-raised.
    """
    session_factory = session_factory or _default_session_factory
    orchestrator = orchestrator or build_orchestrator(session_factory)

    session = session_factory()
    try:
        prospect = session.get(Prospect, prospect_id)
        if prospect is None:
            raise ValueError(f"Prospect {prospect_id} not found")

        cancelled = None
        try:
            attempt = orchestrator.run_attempt(prospect, cancel_event=cancel_event)
        except AttemptCancelled as e:
            if e.attempt is None:
                raise
            attempt, cancelled = e.attempt, e

        stage_before = prospect.pipeline_stage
        breakdown, transition = refresh_prospect(session, prospect, orchestrator.ledger, engine)
        session.commit()
        session.refresh(prospect)
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

    logger.info("Prospect %s scored %d (%s) after attempt #%d",
                prospect_id, breakdown.total, breakdown.qualification_level, attempt.number,
                extra={'prospect_id': prospect_id, 'attempt': attempt.number})

    if transition.changed and transition.to_stage is Stage.QUALIFIED and stage_before != Stage.QUALIFIED.value:
        notify_prospect_qualified(prospect, transition)
    notify_attempt_failures(prospect, attempt)

    if cancelled is not None:
        raise cancelled
    return ResearchOutcome(attempt, breakdown, transition)


def apply_stage_event(event: StageEvent, session_factory=None, engine=None) -> Transition:
    """Apply a call outcome / manual action to the prospect's stage."""
    session_factory = session_factory or _default_session_factory
    engine = engine or StageEngine(AUTO_QUALIFY_THRESHOLD)

    session = session_factory()
    try:
        prospect = session.get(Prospect, event.prospect_id)
        if prospect is None:
            raise ValueError(f"Prospect {event.prospect_id} not found")

        transition = engine.evaluate(prospect.pipeline_stage, prospect.qualification_score or 0, event)
        if transition.changed:
            _record_transition(session, prospect, transition, prospect.qualification_score)
            session.commit()
            session.refresh(prospect)
        else:
            logger.info("Prospect %s held at %s on '%s': %s", prospect.id,
                        transition.from_stage.value, event.action.value, transition.reason)
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

    if transition.changed and transition.to_stage is Stage.QUALIFIED:
        notify_prospect_qualified(prospect, transition)
    return transition


# ── Background jobs (RQ) ─────────────────────────────────────────────────────

_queue = None


def _get_queue():
    global _queue
    if _queue is None:
        from rq import Queue
        from prospector.extensions import rq_connection
        _queue = Queue('research', connection=rq_connection)
    return _queue


def enqueue_research(prospect_id, job_timeout=1800):
    """Schedule research_job on the RQ 'research' queue."""
    job = _get_queue().enqueue(research_job, prospect_id, job_timeout=job_timeout)
    logger.info("Enqueued research for %s (job %s)", prospect_id, job.id)
    return job


def research_job(prospect_id):
    """RQ entrypoint. A busy prospect means another worker already has it."""
    try:
        return research_prospect(prospect_id).to_dict()
    except ConcurrentAttemptConflict as e:
        logger.warning("%s — dropping duplicate job", e)
        return None
