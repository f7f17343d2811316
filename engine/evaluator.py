"""
Position evaluator: one "go" / "bestmove" round trip per call.

Every evaluation sends the same three commands (ucinewgame, position fen,
go) and hands the wait to the RequestTracker. The evaluator's own job is
turning the engine's raw score into something the sweep can compare:

    Units:       "score cp 150" → 1.5 pawns.
    Mate:        "score mate N" → ±MATE_SCORE. Only ranking is consumed
                 downstream, so mate distance is discarded. "mate 0" means
                 the side to move is already mated and counts as negative.
    Perspective: UCI scores are from the side to move in the searched
                 position. The sweep searches positions one ply after the
                 candidate move, where the opponent is to move, so by
                 default (Perspective.MOVER) the value is negated back to
                 the view of the player who made the move.
"""

import enum
import logging
import threading
from dataclasses import replace

from engine.channel import EngineChannel, SessionState
from engine.constants import CENTIPAWNS_PER_PAWN, DEFAULT_DEPTH, DEFAULT_TIMEOUT, MATE_SCORE
from engine.tracker import OutcomeKind, RequestTracker, SearchOutcome, WaitMode
from interface import uci
from interface.uci import RawScore, SearchLimit

_log = logging.getLogger(__name__)


class Perspective(enum.Enum):
    """Whose point of view a returned score takes."""

    MOVER = "mover"                # the player who moved into the position
    SIDE_TO_MOVE = "side_to_move"  # the player to move in the position


def normalize_score(raw: RawScore) -> float:
    """
    Convert an engine score to pawn units, side-to-move perspective.

    Examples:
        >>> normalize_score(RawScore("cp", 150))
        1.5
        >>> normalize_score(RawScore("mate", -3))
        -100000.0
    """
    if raw.kind == "mate":
        return MATE_SCORE if raw.value > 0 else -MATE_SCORE
    return raw.value / CENTIPAWNS_PER_PAWN


class PositionEvaluator:
    """
    Runs single searches against one engine channel.

    Callers are serialized with a lock, so the evaluator can be shared by
    concurrent web requests; they simply queue for the engine.

    Attributes:
        channel: The engine channel searches are sent to.
        limit:   Default SearchLimit when a call does not supply one.
        timeout: Default per-search deadline in seconds.
    """

    def __init__(
        self,
        channel: EngineChannel,
        limit: SearchLimit | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.channel = channel
        self.limit = limit or SearchLimit(depth=DEFAULT_DEPTH)
        self.timeout = timeout
        self._tracker = RequestTracker(channel)
        self._lock = threading.Lock()

    def evaluate(
        self,
        fen: str,
        limit: SearchLimit | None = None,
        timeout: float | None = None,
        stop_event: threading.Event | None = None,
        perspective: Perspective = Perspective.MOVER,
    ) -> SearchOutcome:
        """
        Search one position and return its normalized outcome.

        Resolves on the first score line the engine prints, or on
        "bestmove" if no score line precedes it (value 0.0).

        Args:
            fen:         Position to search.
            limit:       Depth or movetime; defaults to self.limit.
            timeout:     Deadline in seconds; defaults to self.timeout.
            stop_event:  Cancels the search when set.
            perspective: See Perspective. MOVER negates the engine's value.

        Returns:
            SearchOutcome with value set for SCORE, MATE and NO_SCORE.

        Raises:
            EngineUnavailable: The engine is not running.
        """
        outcome = self._run(fen, limit, timeout, stop_event, WaitMode.FIRST_SCORE)
        return self._normalize(outcome, perspective)

    def best_move(
        self,
        fen: str,
        limit: SearchLimit | None = None,
        timeout: float | None = None,
        stop_event: threading.Event | None = None,
    ) -> str | None:
        """
        Ask the engine for its preferred move in a position.

        Unlike evaluate(), this waits for "bestmove".

        Returns:
            The move in UCI notation (e.g. "e2e4", "e7e8q"), or None if the
            position has no legal move or the search did not finish.

        Raises:
            EngineUnavailable: The engine is not running.
        """
        outcome = self._run(fen, limit, timeout, stop_event, WaitMode.BESTMOVE)
        if not outcome.ok:
            _log.warning("No best move for %s: %s", fen, outcome.kind.value)
        return outcome.best_move

    def _run(
        self,
        fen: str,
        limit: SearchLimit | None,
        timeout: float | None,
        stop_event: threading.Event | None,
        mode: WaitMode,
    ) -> SearchOutcome:
        commands = uci.search_commands(fen, limit or self.limit)
        with self._lock:
            if self.channel.state is SessionState.UNINITIALIZED:
                self.channel.start()
            return self._tracker.run(
                commands,
                timeout if timeout is not None else self.timeout,
                stop_event=stop_event,
                mode=mode,
            )

    @staticmethod
    def _normalize(outcome: SearchOutcome, perspective: Perspective) -> SearchOutcome:
        if outcome.kind is OutcomeKind.NO_SCORE:
            return replace(outcome, value=0.0)
        if outcome.raw is None or not outcome.ok:
            return outcome

        value = normalize_score(outcome.raw)
        if perspective is Perspective.MOVER:
            value = -value
        return replace(outcome, value=value)
