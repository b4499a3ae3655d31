"""
Stage Transition Engine — moves a prospect through the sales pipeline.

    cold → contacted → interested → qualified → meeting_scheduled → won
                         (any non-terminal stage) → lost

Two kinds of input drive it:
  - the qualification score, which can only promote interested → qualified,
    and only when it meets the auto-qualify threshold
  - explicit action events (call outcomes, manual moves)

Stages never move backward on their own. The only demotion is an explicit
`failed` event, which steps back one stage.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from prospector.config import AUTO_QUALIFY_THRESHOLD
from prospector.errors import InvalidTransition

logger = logging.getLogger('pipeline.stages')


class Stage(str, Enum):
    COLD = 'cold'
    CONTACTED = 'contacted'
    INTERESTED = 'interested'
    QUALIFIED = 'qualified'
    MEETING_SCHEDULED = 'meeting_scheduled'
    WON = 'won'
    LOST = 'lost'

    @property
    def terminal(self) -> bool:
        return self in (Stage.WON, Stage.LOST)


# Forward path; lost sits outside it
STAGE_ORDER = [
    Stage.COLD, Stage.CONTACTED, Stage.INTERESTED,
    Stage.QUALIFIED, Stage.MEETING_SCHEDULED, Stage.WON,
]


class Action(str, Enum):
    ADVANCE = 'advance'
    HOLD = 'hold'
    LOST = 'lost'
    MEETING_SCHEDULED = 'meeting_scheduled'
    WON = 'won'
    OVERRIDE = 'override'   # manual jump forward, ignores score and ordering
    FAILED = 'failed'       # explicit demotion by one stage


SCORE_ACTION = 'score'


@dataclass(frozen=True)
class StageEvent:
    prospect_id: str
    action: Action
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    target_stage: Optional[Stage] = None   # OVERRIDE only; defaults to qualified
    note: str = ''

    @classmethod
    def parse(cls, prospect_id, action, target_stage=None, note='', timestamp=None):
        """Build an event from raw strings, raising InvalidTransition on bad values."""
        try:
            action = Action(action)
        except ValueError:
            raise InvalidTransition(
                f"Unknown action '{action}'. Valid: {', '.join(a.value for a in Action)}"
            ) from None
        if target_stage is not None:
            try:
                target_stage = Stage(target_stage)
            except ValueError:
                raise InvalidTransition(f"Unknown stage '{target_stage}'") from None
            if action is not Action.OVERRIDE:
                raise InvalidTransition("target_stage is only valid with the override action")
        kwargs = {'timestamp': timestamp} if timestamp else {}
        return cls(prospect_id, action, target_stage=target_stage, note=note, **kwargs)


@dataclass(frozen=True)
class Transition:
    from_stage: Stage
    to_stage: Stage
    action: str
    reason: str

    @property
    def changed(self) -> bool:
        return self.from_stage is not self.to_stage


def _index(stage):
    return STAGE_ORDER.index(stage)


class StageEngine:

    def __init__(self, threshold: int = AUTO_QUALIFY_THRESHOLD):
        self.threshold = threshold

    def evaluate(self, stage, score: int, event: Optional[StageEvent] = None) -> Transition:
        """Decide the next stage. Pure: never touches the database."""
        current = Stage(stage)
        action = event.action.value if event else SCORE_ACTION

        def hold(reason):
            return Transition(current, current, action, reason)

        def move(to, reason):
            return Transition(current, to, action, reason)

        if current.terminal:
            return hold(f"{current.value} is terminal")

        if event is None:
            return self._score_driven(current, score)

        kind = event.action
        if kind is Action.HOLD:
            return hold(event.note or 'held by action')

        if kind is Action.LOST:
            return move(Stage.LOST, event.note or 'marked lost')

        if kind is Action.FAILED:
            if current is Stage.COLD:
                return hold('already at the first stage')
            return move(STAGE_ORDER[_index(current) - 1], event.note or 'demoted after failed action')

        if kind is Action.OVERRIDE:
            target = event.target_stage or Stage.QUALIFIED
            if target is Stage.LOST:
                return move(Stage.LOST, event.note or 'override to lost')
            if _index(target) <= _index(current):
                return hold(f"override target {target.value} is not ahead of {current.value}")
            return move(target, event.note or 'manual override')

        if kind is Action.ADVANCE:
            nxt = STAGE_ORDER[_index(current) + 1]
            if nxt is Stage.QUALIFIED and score < self.threshold:
                return hold(f"score {score} below qualify threshold {self.threshold}")
            return move(nxt, event.note or 'advanced')

        if kind is Action.MEETING_SCHEDULED:
            if current in (Stage.INTERESTED, Stage.QUALIFIED):
                return move(Stage.MEETING_SCHEDULED, event.note or 'meeting booked')
            return hold(f"cannot schedule a meeting from {current.value}")

        if kind is Action.WON:
            if current in (Stage.QUALIFIED, Stage.MEETING_SCHEDULED):
                return move(Stage.WON, event.note or 'deal won')
            return hold(f"cannot win from {current.value}")

        raise InvalidTransition(f"Unhandled action {kind!r}")

    def _score_driven(self, current, score) -> Transition:
        # Score alone never skips cold/contacted ahead; only interested can auto-qualify
        if current is Stage.INTERESTED and score >= self.threshold:
            return Transition(current, Stage.QUALIFIED, SCORE_ACTION,
                              f"score {score} meets qualify threshold {self.threshold}")
        return Transition(current, current, SCORE_ACTION, 'no score-driven change')
