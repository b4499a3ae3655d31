"""
Attempt Orchestrator — runs the research passes for one prospect.

One call to run_attempt():
  1. reserves the prospect in the ledger (a second caller gets ConcurrentAttemptConflict)
  2. reads the latest attempt and works out the eligible set: passes never run,
     or whose last outcome was failed / skipped_missing_dependency
  3. walks the pass graph in dependency order, dispatching independent passes
     to a bounded thread pool and holding back a pass until its producers finish
  4. records one PassResult per graph pass (successes from earlier attempts are
     carried forward untouched) and appends the attempt to the ledger

Provider errors, timeouts and unmet dependencies become PassResults; they never
abort the attempt.
"""
import logging
import time
from concurrent.futures import ThreadPoolExecutor, wait, FIRST_COMPLETED
from datetime import datetime, timezone
from typing import Dict, List, Any, Optional

from prospector.config import MAX_IN_FLIGHT_PASSES, ADAPTER_TIMEOUT_SECONDS
from prospector.errors import ConfigurationError, DependencyUnmet, AttemptCancelled
from prospector.pipeline.base import (
    Attempt, PassAdapter, PassResult, ATTEMPT_COMPLETED, ATTEMPT_CANCELLED,
)
from prospector.pipeline.graph import PassGraph, Pass, DEFAULT_GRAPH

logger = logging.getLogger('pipeline.orchestrator')

# How often the dispatch loop wakes up to check for cancellation
_CANCEL_POLL_SECONDS = 0.25

CANCELLED_DETAIL = 'Cancelled before the pass completed'


def _present(value):
    return value is not None and value != ''


class AttemptOrchestrator:

    def __init__(
        self,
        ledger,
        adapters: Dict[str, PassAdapter],
        graph: PassGraph = DEFAULT_GRAPH,
        max_in_flight: int = MAX_IN_FLIGHT_PASSES,
        timeout: float = ADAPTER_TIMEOUT_SECONDS,
    ):
        missing = [name for name in graph.names() if name not in adapters]
        if missing:
            raise ConfigurationError(f"No adapter registered for pass(es): {', '.join(missing)}")
        if max_in_flight < 1:
            raise ConfigurationError("max_in_flight must be at least 1")
        self.ledger = ledger
        self.adapters = adapters
        self.graph = graph
        self.max_in_flight = max_in_flight
        self.timeout = timeout

    # ── Eligibility ───────────────────────────────────────────────────

    def eligible_passes(self, latest: Optional[Attempt]) -> List[str]:
        """Pass names to run this attempt, in dependency order."""
        if latest is None:
            return self.graph.names()
        eligible = []
        for name in self.graph.names():
            prior = latest.result_for(name)
            if prior is None or prior.outcome.retryable:
                eligible.append(name)
        return eligible

    # ── Public API ────────────────────────────────────────────────────

    def run_attempt(self, prospect, cancel_event=None) -> Attempt:
        """
        Run every eligible pass for the prospect and record the attempt.

        Returns the new Attempt, or the latest recorded one unchanged when
        nothing is eligible. Raises ConcurrentAttemptConflict when the prospect
        is busy, LedgerError when the ledger cannot be written, and
        AttemptCancelled when cancel_event fires before all passes finish.
        """
        prospect_id = prospect.id
        log_extra = {'prospect_id': prospect_id}

        with self.ledger.reserve(prospect_id):
            latest = self.ledger.latest_attempt(prospect_id)
            eligible = self.eligible_passes(latest)

            if latest is not None and not eligible:
                logger.info("Prospect %s: all %d passes already succeeded — nothing to run",
                            prospect_id, len(self.graph), extra=log_extra)
                return latest

            number = latest.number + 1 if latest else 1
            log_extra['attempt'] = number
            carried = {
                name: latest.result_for(name).carry_forward()
                for name in self.graph.names()
                if latest is not None and name not in eligible
            }
            available = {}
            for result in carried.values():
                available.update({k: v for k, v in result.outputs.items() if _present(v)})

            logger.info("Prospect %s attempt #%d — running %s (carrying forward %d)",
                        prospect_id, number, ', '.join(eligible), len(carried), extra=log_extra)

            started_at = datetime.now(timezone.utc)
            results = self._execute(prospect, eligible, available, cancel_event)

            unfinished = [name for name in eligible if name not in results]
            for name in unfinished:
                results[name] = PassResult.failed(name, CANCELLED_DETAIL)

            ordered = [results[name] if name in results else carried[name] for name in self.graph.names()]
            status = ATTEMPT_CANCELLED if unfinished else ATTEMPT_COMPLETED
            attempt = Attempt(prospect_id, number, ordered, started_at=started_at, status=status)

            if unfinished:
                ran_ok = [r for r in attempt.invoked if r.succeeded]
                if not ran_ok:
                    logger.warning("Prospect %s attempt #%d cancelled before any pass succeeded — not recorded",
                                   prospect_id, number, extra=log_extra)
                    raise AttemptCancelled(prospect_id, None)
                self.ledger.append(prospect_id, attempt)
                logger.warning("Prospect %s attempt #%d cancelled — recorded %d finished pass(es)",
                               prospect_id, number, len(eligible) - len(unfinished), extra=log_extra)
                raise AttemptCancelled(prospect_id, attempt)

            self.ledger.append(prospect_id, attempt)

        invoked = attempt.invoked
        logger.info("Prospect %s attempt #%d done — succeeded=%d failed=%d skipped=%d",
                    prospect_id, number,
                    sum(1 for r in invoked if r.succeeded), len(attempt.failed), len(attempt.skipped),
                    extra=log_extra)
        return attempt

    # ── Execution ─────────────────────────────────────────────────────

    def _execute(self, prospect, eligible, available, cancel_event) -> Dict[str, PassResult]:
        """Dispatch eligible passes respecting dependencies. `available` is updated in place."""
        context = prospect.context()
        pending: List[Pass] = [p for p in self.graph.passes_in_dependency_order() if p.name in eligible]
        running = {}   # future → Pass
        started = {}   # pass name → monotonic time its adapter began
        results: Dict[str, PassResult] = {}

        # One worker per pass: a timed-out provider thread keeps its worker,
        # so later passes still start at once. max_in_flight is enforced on `running`.
        executor = ThreadPoolExecutor(max_workers=max(len(pending), 1), thread_name_prefix='pass')
        try:
            while pending or running:
                if cancel_event is not None and cancel_event.is_set():
                    for future, p in list(running.items()):
                        if future.done():
                            running.pop(future)
                            results[p.name] = self._collect(p, future, started.get(p.name), available)
                    logger.warning("Cancellation requested — %d pass(es) not finished",
                                   len(pending) + len(running), extra={'prospect_id': prospect.id})
                    for future in running:
                        future.cancel()
                    break

                self._dispatch_ready(pending, running, results, available, context, executor, started)
                if not running:
                    continue

                done, _ = wait(list(running), timeout=self._wait_budget(running, started, cancel_event),
                               return_when=FIRST_COMPLETED)
                for future in done:
                    p = running.pop(future)
                    results[p.name] = self._collect(p, future, started.get(p.name), available)

                now = time.monotonic()
                for future, p in list(running.items()):
                    began = started.get(p.name)
                    if began is None or now - began < self.timeout:
                        continue
                    running.pop(future)
                    future.cancel()
                    logger.warning("Pass '%s' timed out after %gs", p.name, self.timeout,
                                   extra={'prospect_id': prospect.id, 'pass_name': p.name})
                    results[p.name] = PassResult.failed(
                        p.name, f"Timed out after {self.timeout:g}s waiting for provider",
                        duration_ms=int((now - began) * 1000),
                    )
        finally:
            # Timed-out provider threads are abandoned, not joined
            executor.shutdown(wait=False, cancel_futures=True)

        return results

    def _dispatch_ready(self, pending, running, results, available, context, executor, started):
        for p in list(pending):
            if len(running) >= self.max_in_flight:
                return
            if self._blocked(p, pending, running):
                continue
            pending.remove(p)

            missing = [k for k in p.requires if not _present(available.get(k))]
            if missing:
                unmet = DependencyUnmet(p.name, missing)
                logger.info("%s", unmet, extra={'prospect_id': context['prospect_id'], 'pass_name': p.name})
                results[p.name] = PassResult.skipped(p.name, str(unmet))
                continue

            inputs = dict(context)
            inputs.update({k: available[k] for k in p.depends_on if _present(available.get(k))})
            future = executor.submit(self._invoke, p.name, inputs, started)
            running[future] = p

    def _invoke(self, name, inputs, started):
        """Runs on the worker thread; the pass clock starts here, not at submit."""
        started[name] = time.monotonic()
        return self.adapters[name].invoke(inputs, self.timeout)

    def _blocked(self, p, pending, running) -> bool:
        """A pass waits while any pass producing its inputs is still pending or running."""
        upstream = self.graph.upstream_of(p.name)
        if not upstream:
            return False
        in_progress = {q.name for q in pending} | {q.name for q in running.values()}
        return bool(upstream & in_progress)

    def _wait_budget(self, running, started, cancel_event):
        now = time.monotonic()
        clocks = [started[p.name] for p in running.values() if p.name in started]
        if clocks:
            budget = max(min(self.timeout - (now - began) for began in clocks), 0.0)
        else:
            # Nothing has reached its adapter yet
            budget = min(self.timeout, _CANCEL_POLL_SECONDS)
        if cancel_event is not None:
            budget = min(budget, _CANCEL_POLL_SECONDS)
        return budget

    def _collect(self, p, future, started, available) -> PassResult:
        duration_ms = int((time.monotonic() - started) * 1000) if started is not None else 0
        try:
            output = future.result()
        except Exception as e:
            # invoke() already normalizes; this catches adapters that skip the base class
            output = None
            error = f"{e.__class__.__name__}: {e}"
        else:
            error = output.error

        if output is not None and output.ok:
            unknown = set(output.outputs) - set(p.produces)
            if unknown:
                logger.debug("Pass '%s' returned undeclared keys %s — ignored", p.name, sorted(unknown))
            produced = {k: v for k, v in output.outputs.items() if k in p.produces}
            available.update({k: v for k, v in produced.items() if _present(v)})
            return PassResult.success(p.name, produced, duration_ms=duration_ms)

        logger.warning("Pass '%s' failed: %s", p.name, error, extra={'pass_name': p.name})
        return PassResult.failed(p.name, error, duration_ms=duration_ms)
