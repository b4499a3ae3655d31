"""
Pipeline error taxonomy.

Adapter failures and unmet dependencies are absorbed into PassResults and never
escape an attempt. Everything else here is surfaced to the caller.
"""


class PipelineError(Exception):
    """Base class for all pipeline errors."""


class ConfigurationError(PipelineError):
    """Pass graph is cyclic or references an undefined output key. Fatal at startup."""


class AdapterError(PipelineError):
    """Raised inside a provider adapter when the external source is unavailable or denied."""


class DependencyUnmet(PipelineError):
    """A pass's required input was never produced."""
    def __init__(self, pass_name, missing):
        self.pass_name = pass_name
        self.missing = list(missing)
        super().__init__(
            f"Pass '{pass_name}' skipped — missing required input: {', '.join(self.missing)}"
        )


class ConcurrentAttemptConflict(PipelineError):
    """A second attempt was requested while one is in flight for the same prospect."""
    def __init__(self, prospect_id):
        self.prospect_id = prospect_id
        super().__init__(f"Prospect '{prospect_id}' is busy — an attempt is already in flight")


class LedgerError(PipelineError):
    """The attempt ledger could not be read or written."""


class AttemptCancelled(PipelineError):
    """The attempt was cancelled before all passes finished.

    `attempt` is the recorded partial attempt, or None when nothing succeeded
    and nothing was written.
    """
    def __init__(self, prospect_id, attempt=None):
        self.prospect_id = prospect_id
        self.attempt = attempt
        recorded = f"recorded as attempt #{attempt.number}" if attempt else "not recorded"
        super().__init__(f"Attempt for prospect '{prospect_id}' cancelled ({recorded})")


class InvalidTransition(PipelineError):
    """A stage action event is malformed (unknown action or target stage)."""
