"""
Correlated request tracker: matches untagged engine output to one search.

UCI responses carry no request identifier. The only thing tying an "info"
or "bestmove" line to a search is ordering: it was printed after that
search's "go" and before its "bestmove". The tracker turns that convention
into an invariant by allowing exactly one logical request on the channel at
a time:

    1. Wait until the previous search has released the channel (its
       "bestmove" arrived). Lines printed before that belong to the old
       search and are never seen by the new one.
    2. Subscribe one listener, then send the command sequence.
    3. Race the listener against the deadline (and the stop_event).

Each request is a tiny state machine, WAITING → RESOLVED(outcome), with a
single locked transition. Whoever reaches it first (score line, bestmove,
deadline, cancellation, engine exit) decides the outcome; later arrivals
are dropped.

Resolution and release are separate. A request may resolve early (first
score line, timeout) while the engine is still searching; its listener
then stays subscribed only to watch for "bestmove", which releases the
channel and removes the listener. Timeouts never stop the engine: the next
request simply waits for that "bestmove" before sending anything.
"""

import enum
import logging
import threading
import time
from dataclasses import dataclass
from typing import Sequence

from engine.channel import EngineChannel, Subscription
from engine.constants import CANCEL_POLL_INTERVAL
from engine.errors import EngineUnavailable, EvaluationTimeout, MalformedEngineOutput
from interface import uci
from interface.uci import RawScore

_log = logging.getLogger(__name__)


class OutcomeKind(enum.Enum):
    SCORE = "score"
    MATE = "mate"
    NO_SCORE = "no_score"
    TIMED_OUT = "timed_out"
    ENGINE_ERROR = "engine_error"
    CANCELLED = "cancelled"


class RequestState(enum.Enum):
    WAITING = "waiting"
    RESOLVED = "resolved"


class WaitMode(enum.Enum):
    """
    When a request resolves.

    FIRST_SCORE: on the first score line (or on "bestmove" if no score
                 line came first).
    BESTMOVE:    on "bestmove", carrying the last score line seen.
    """

    FIRST_SCORE = "first_score"
    BESTMOVE = "bestmove"


@dataclass(frozen=True)
class SearchOutcome:
    """
    Result of one search.

    Attributes:
        kind:      Which way the search ended.
        raw:       The score as printed by the engine, if any.
        value:     Normalized pawn-unit score. Filled in by the evaluator;
                   0.0 for NO_SCORE, None when the search gave no result.
        best_move: The "bestmove" text, if the engine reached it before
                   the request resolved. None also for "(none)".
    """

    kind: OutcomeKind
    raw: RawScore | None = None
    value: float | None = None
    best_move: str | None = None

    @property
    def ok(self) -> bool:
        return self.kind in (OutcomeKind.SCORE, OutcomeKind.MATE, OutcomeKind.NO_SCORE)

    def raise_for_status(self) -> "SearchOutcome":
        """Turn a failed outcome into the matching exception."""
        if self.kind is OutcomeKind.TIMED_OUT:
            raise EvaluationTimeout("engine search timed out")
        if self.kind is OutcomeKind.ENGINE_ERROR:
            raise EngineUnavailable("engine exited during the search")
        return self


def _score_outcome(raw: RawScore | None, best_move: str | None = None) -> SearchOutcome:
    if raw is None:
        return SearchOutcome(OutcomeKind.NO_SCORE, best_move=best_move)
    kind = OutcomeKind.MATE if raw.kind == "mate" else OutcomeKind.SCORE
    return SearchOutcome(kind, raw=raw, best_move=best_move)


class _PendingRequest:
    """State of the single in-flight request."""

    def __init__(self, mode: WaitMode) -> None:
        self.mode = mode
        self.state = RequestState.WAITING
        self.outcome: SearchOutcome | None = None
        self.score: RawScore | None = None
        self.subscription: Subscription | None = None
        self.resolved = threading.Event()
        self._lock = threading.Lock()

    def resolve(self, outcome: SearchOutcome) -> bool:
        """The one WAITING → RESOLVED transition. Returns False if already resolved."""
        with self._lock:
            if self.state is RequestState.RESOLVED:
                return False
            self.state = RequestState.RESOLVED
            self.outcome = outcome
        self.resolved.set()
        return True


def _wait(event: threading.Event, deadline: float, stop_event: threading.Event | None) -> bool:
    """Wait for event until deadline; False on timeout or cancellation."""
    while True:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            return event.is_set()
        if stop_event is None:
            return event.wait(remaining)
        if event.wait(min(remaining, CANCEL_POLL_INTERVAL)):
            return True
        if stop_event.is_set():
            return False


class RequestTracker:
    """
    Serializes searches on one EngineChannel and correlates their output.

    Not reentrant: callers (PositionEvaluator) must not call run() from two
    threads at once.
    """

    def __init__(self, channel: EngineChannel) -> None:
        self.channel = channel
        self._released = threading.Event()
        self._released.set()

    @property
    def busy(self) -> bool:
        """True while a search (possibly already resolved) still holds the channel."""
        return not self._released.is_set()

    def run(
        self,
        commands: Sequence[str],
        timeout: float,
        stop_event: threading.Event | None = None,
        mode: WaitMode = WaitMode.FIRST_SCORE,
    ) -> SearchOutcome:
        """
        Send one search's commands and wait for its outcome.

        Args:
            commands:   Lines to send, ending with a "go" command.
            timeout:    Seconds until the request resolves as TIMED_OUT. The
                        wait for a previous search to release the channel
                        counts against it.
            stop_event: When set, the request resolves as CANCELLED and the
                        engine is told to "stop".
            mode:       See WaitMode.

        Returns:
            The SearchOutcome (value not yet normalized).

        Raises:
            EngineUnavailable: The channel cannot take commands.
        """
        deadline = time.monotonic() + timeout
        cancelled = SearchOutcome(OutcomeKind.CANCELLED)

        if stop_event is not None and stop_event.is_set():
            return cancelled
        if not _wait(self._released, deadline, stop_event):
            if stop_event is not None and stop_event.is_set():
                return cancelled
            _log.warning("Engine still busy with a previous search after %.1fs", timeout)
            return SearchOutcome(OutcomeKind.TIMED_OUT)
        # Cancelled while the previous search was finishing: nothing sent yet.
        if stop_event is not None and stop_event.is_set():
            return cancelled

        request = _PendingRequest(mode)
        self._released.clear()
        request.subscription = self.channel.subscribe(
            lambda line: self._on_line(request, line),
            on_close=lambda: self._on_close(request),
        )

        try:
            for command in commands:
                self.channel.send(command)
        except EngineUnavailable:
            self._release(request)
            request.resolve(SearchOutcome(OutcomeKind.ENGINE_ERROR))
            raise

        if not _wait(request.resolved, deadline, stop_event):
            if stop_event is not None and stop_event.is_set():
                if request.resolve(SearchOutcome(OutcomeKind.CANCELLED)):
                    # Makes the engine print "bestmove" now, releasing the channel.
                    try:
                        self.channel.send(uci.stop_command())
                    except EngineUnavailable:
                        self._release(request)
            elif request.resolve(SearchOutcome(OutcomeKind.TIMED_OUT)):
                _log.warning("Engine search timed out after %.1fs: %s", timeout, commands[-1])

        return request.outcome

    # -----------------------------------------------------------------------
    # Listener (runs on the channel's reader thread)
    # -----------------------------------------------------------------------

    def _on_line(self, request: _PendingRequest, line: str) -> None:
        if uci.is_bestmove(line):
            # Release first: run() may return as soon as the request resolves.
            self._release(request)
            request.resolve(_score_outcome(request.score, uci.parse_bestmove(line)))
            return

        try:
            score = uci.parse_score(line)
        except MalformedEngineOutput as exc:
            _log.debug("Ignoring engine line: %s", exc)
            return
        if score is None:
            return

        if request.mode is WaitMode.BESTMOVE:
            request.score = score
        elif request.score is None:
            request.score = score
            request.resolve(_score_outcome(score))

    def _on_close(self, request: _PendingRequest) -> None:
        self._release(request)
        if request.resolve(SearchOutcome(OutcomeKind.ENGINE_ERROR)):
            _log.error("Engine output ended during a search")

    def _release(self, request: _PendingRequest) -> None:
        if request.subscription is not None:
            request.subscription.close()
        self._released.set()
