"""
Research pass contracts.

Every provider adapter implements PassAdapter.fetch() and is called through
PassAdapter.invoke(), which normalizes success or failure into an
AdapterOutput. The orchestrator only sees that uniform shape and turns it into
a PassResult on the Attempt.
"""
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Any, Optional

logger = logging.getLogger('pipeline.base')


class PassOutcome(str, Enum):
    SUCCEEDED = 'succeeded'
    FAILED = 'failed'
    SKIPPED_MISSING_DEPENDENCY = 'skipped_missing_dependency'

    @property
    def retryable(self) -> bool:
        return self is not PassOutcome.SUCCEEDED


@dataclass(frozen=True)
class AdapterOutput:
    """Normalized result of one adapter invocation."""
    ok: bool
    outputs: Dict[str, Any] = field(default_factory=dict)
    error: str = ''

    @classmethod
    def success(cls, outputs: Dict[str, Any]) -> 'AdapterOutput':
        return cls(ok=True, outputs=dict(outputs))

    @classmethod
    def failure(cls, error: str) -> 'AdapterOutput':
        return cls(ok=False, error=error or 'unknown error')


@dataclass
class PassResult:
    """Outcome of one pass within one attempt."""
    pass_name: str
    outcome: PassOutcome
    error: str = ''
    outputs: Dict[str, Any] = field(default_factory=dict)
    carried_forward: bool = False
    duration_ms: int = 0

    def __post_init__(self):
        if self.outcome is PassOutcome.SUCCEEDED:
            if self.error:
                raise ValueError(f"Succeeded pass '{self.pass_name}' cannot carry an error")
        else:
            if not self.error:
                raise ValueError(f"Pass '{self.pass_name}' outcome {self.outcome.value} requires an error detail")
            if self.outputs:
                raise ValueError(f"Pass '{self.pass_name}' outcome {self.outcome.value} cannot carry outputs")

    @property
    def succeeded(self) -> bool:
        return self.outcome is PassOutcome.SUCCEEDED

    @classmethod
    def success(cls, pass_name, outputs, duration_ms=0) -> 'PassResult':
        return cls(pass_name, PassOutcome.SUCCEEDED, outputs=dict(outputs), duration_ms=duration_ms)

    @classmethod
    def failed(cls, pass_name, error, duration_ms=0) -> 'PassResult':
        return cls(pass_name, PassOutcome.FAILED, error=error, duration_ms=duration_ms)

    @classmethod
    def skipped(cls, pass_name, error) -> 'PassResult':
        return cls(pass_name, PassOutcome.SKIPPED_MISSING_DEPENDENCY, error=error)

    def carry_forward(self) -> 'PassResult':
        """Copy of a prior success, recorded in a later attempt without re-running."""
        return PassResult(self.pass_name, PassOutcome.SUCCEEDED,
                          outputs=dict(self.outputs), carried_forward=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'pass_name': self.pass_name,
            'outcome': self.outcome.value,
            'error': self.error,
            'outputs': self.outputs,
            'carried_forward': self.carried_forward,
            'duration_ms': self.duration_ms,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'PassResult':
        return cls(
            pass_name=d['pass_name'],
            outcome=PassOutcome(d['outcome']),
            error=d.get('error') or '',
            outputs=d.get('outputs') or {},
            carried_forward=bool(d.get('carried_forward', False)),
            duration_ms=int(d.get('duration_ms') or 0),
        )


ATTEMPT_COMPLETED = 'completed'
ATTEMPT_CANCELLED = 'cancelled'


@dataclass
class Attempt:
    """One orchestrator run for one prospect. Immutable once appended to the ledger."""
    prospect_id: str
    number: int
    results: List[PassResult]
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    status: str = ATTEMPT_COMPLETED

    def result_for(self, pass_name: str) -> Optional[PassResult]:
        for r in self.results:
            if r.pass_name == pass_name:
                return r
        return None

    @property
    def succeeded(self) -> List[PassResult]:
        return [r for r in self.results if r.succeeded]

    @property
    def failed(self) -> List[PassResult]:
        return [r for r in self.results if r.outcome is PassOutcome.FAILED]

    @property
    def skipped(self) -> List[PassResult]:
        return [r for r in self.results if r.outcome is PassOutcome.SKIPPED_MISSING_DEPENDENCY]

    @property
    def invoked(self) -> List[PassResult]:
        """Results produced by this run (excludes carried-forward successes)."""
        return [r for r in self.results if not r.carried_forward]

    def retry_set(self) -> List[str]:
        return [r.pass_name for r in self.results if r.outcome.retryable]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'prospect_id': self.prospect_id,
            'number': self.number,
            'status': self.status,
            'started_at': self.started_at.isoformat(),
            'results': [r.to_dict() for r in self.results],
        }


class PassAdapter(ABC):
    """
    Base class for provider adapters.

    One adapter per research capability. Credentials and endpoints are injected
    at construction so tests can substitute deterministic fakes. Subclasses
    implement fetch(), which either returns the produced keys or raises.
    """
    capability: str = ''

    # Metadata — shown by `prospector status`
    description: str = ''
    apis: List[str] = []

    @abstractmethod
    def fetch(self, inputs: Dict[str, Any], timeout: float) -> Dict[str, Any]:
        """
        Call the external capability.

        Args:
            inputs:  Prospect context merged with the pass's available
                     required/optional keys.
            timeout: Seconds the provider call may take.

        Returns:
            Mapping of produced output keys to values.
        """
        ...

    def invoke(self, inputs: Dict[str, Any], timeout: float) -> AdapterOutput:
        """Run fetch() and normalize any exception into a failure."""
        started = time.monotonic()
        try:
            outputs = self.fetch(inputs, timeout)
        except Exception as e:
            logger.warning("%s failed after %.1fs: %s",
                           self.__class__.__name__, time.monotonic() - started, e)
            return AdapterOutput.failure(_describe(e))
        if not isinstance(outputs, dict):
            return AdapterOutput.failure(
                f"{self.__class__.__name__} returned {type(outputs).__name__}, expected a mapping"
            )
        return AdapterOutput.success(outputs)


def _describe(error: Exception) -> str:
    text = str(error).strip()
    name = error.__class__.__name__
    return f"{name}: {text}" if text else name
