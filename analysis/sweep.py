"""
Move sweep: evaluate every legal move of a position with the engine.

One sweep runs 2 + N searches against the single engine channel, strictly
one after another:

    1. the baseline position (reference for differential scores),
    2. the position after each legal move, in enumeration order,
    3. the original position again, this time for the engine's best move.

The engine's best move is then lifted to (table maximum + epsilon) so a
"pick the highest score" consumer always agrees with the engine, even
where differential scoring would have ranked a different move first.

Failure policy:
    - A move the rules layer refuses to apply is logged and skipped.
    - A timed-out or failed search skips that move.
    - EngineUnavailable propagates: without an engine there is no sweep.
    - stop_event ends the sweep at the next move; the partial table is
      returned with complete=False and no best-move reconciliation.
"""

import logging
import threading

import chess

from analysis.config import ScoringMode, SweepConfig
from analysis.rules import ChessRules
from analysis.table import EvaluationTable
from engine.errors import IllegalMoveApplication, MalformedEngineOutput
from engine.evaluator import Perspective, PositionEvaluator
from engine.tracker import OutcomeKind
from interface.uci import SearchLimit, split_move

_log = logging.getLogger(__name__)


class MoveSweep:
    """
    Attributes:
        evaluator: Runs the individual searches.
        rules:     Enumerates and applies moves (ChessRules or compatible).
        config:    Scoring mode, search limit, timeout, epsilon.
    """

    def __init__(
        self,
        evaluator: PositionEvaluator,
        rules: ChessRules | None = None,
        config: SweepConfig | None = None,
    ) -> None:
        self.evaluator = evaluator
        self.rules = rules or ChessRules()
        self.config = config or SweepConfig()

    def sweep(
        self,
        position: chess.Board,
        limit: SearchLimit | None = None,
        stop_event: threading.Event | None = None,
    ) -> EvaluationTable:
        """
        Score every legal move of position.

        Args:
            position:   The position to analyse. Not modified.
            limit:      Search limit; defaults to config.limit.
            stop_event: Cancels the sweep when set.

        Returns:
            A frozen EvaluationTable. It may hold fewer entries than there
            are legal moves.

        Raises:
            EngineUnavailable: The engine is not running.
        """
        limit = limit or self.config.limit
        table = EvaluationTable()
        fen = self.rules.serialize_position(position)
        moves = self.rules.legal_moves(position)

        baseline = self.evaluator.evaluate(
            fen,
            limit=limit,
            timeout=self.config.timeout,
            stop_event=stop_event,
            perspective=Perspective.SIDE_TO_MOVE,
        )
        if baseline.kind is OutcomeKind.CANCELLED:
            return self._cancelled(table)
        if baseline.value is None:
            _log.warning("Baseline search failed (%s); using 0.0", baseline.kind.value)
        table.baseline = baseline.value if baseline.value is not None else 0.0

        for move in moves:
            if stop_event is not None and stop_event.is_set():
                return self._cancelled(table)

            # Promotions are swept as queen promotions only.
            if move.promotion not in (None, chess.QUEEN):
                continue

            try:
                result = self.rules.apply_move(position, move)
            except IllegalMoveApplication as exc:
                _log.warning("Skipping move the rules layer rejected: %s", exc)
                continue

            outcome = self.evaluator.evaluate(
                self.rules.serialize_position(result),
                limit=limit,
                timeout=self.config.timeout,
                stop_event=stop_event,
            )
            if outcome.kind is OutcomeKind.CANCELLED:
                return self._cancelled(table)
            if outcome.value is None:
                _log.info("Skipping %s: %s", move.uci(), outcome.kind.value)
                continue

            score = outcome.value
            if self.config.scoring is ScoringMode.DIFFERENTIAL:
                score -= table.baseline
            table.add(
                chess.square_name(move.from_square),
                chess.square_name(move.to_square),
                score,
            )

        table.best_move = self.evaluator.best_move(
            fen,
            limit=limit,
            timeout=self.config.timeout,
            stop_event=stop_event,
        )
        if stop_event is not None and stop_event.is_set():
            return self._cancelled(table)

        self._reconcile(table)
        _log.info(
            "Swept %d/%d moves, best=%s, fen=%s",
            len(table),
            len(moves),
            table.best_move,
            fen[:40],
        )
        return table.freeze()

    def _reconcile(self, table: EvaluationTable) -> None:
        """Lift the engine's best move to the top of the table."""
        if table.best_move is None or len(table) == 0:
            return
        try:
            origin, destination = split_move(table.best_move)
        except MalformedEngineOutput as exc:
            _log.warning("Ignoring engine best move: %s", exc)
            return

        top = max(entry.score for entry in table)
        if not table.replace_score(origin, destination, top + self.config.epsilon):
            _log.info("Engine best move %s is not in the table", table.best_move)

    @staticmethod
    def _cancelled(table: EvaluationTable) -> EvaluationTable:
        _log.info("Sweep cancelled after %d moves", len(table))
        table.complete = False
        return table.freeze()
