"""
Unit Tests for the move sweep

Tests for scoring every legal move against a scripted engine, focusing on:
    - Table contents: only legal moves, keyed by origin, enumeration order
    - Scoring modes: differential vs absolute
    - Best-move reconciliation: max + 0.10
    - Partial results: rejected moves, timeouts, cancellation
"""

import threading

import chess
import pytest

from analysis.config import ScoringMode, SweepConfig
from analysis.rules import ChessRules
from analysis.sweep import MoveSweep
from engine.errors import EngineUnavailable, IllegalMoveApplication
from engine.evaluator import PositionEvaluator
from tests.conftest import ITALIAN_FEN, ONE_MOVE_FEN, fen_after
from tests.scripted import Delayed, ScriptedChannel, reply, table_responder


def _sweep(channel, **config):
    return MoveSweep(PositionEvaluator(channel), config=SweepConfig(**config))


def _italian_engine(best="e1g1"):
    """Baseline +0.30 for White; Nxe5 is answered at +1.20 for Black; all else level."""
    return table_responder(
        {
            ITALIAN_FEN: reply(cp=30, bestmove=best),
            fen_after(ITALIAN_FEN, "f3e5"): [
                "info depth 12 score cp 120 nodes 10 pv c6e5",
                "bestmove e5f7",
            ],
        },
        default=reply(cp=0, bestmove="a7a6"),
    )


class TestTable:
    """Tests for what ends up in the table."""

    def test_only_legal_moves(self, italian):
        table = _sweep(ScriptedChannel(_italian_engine())).sweep(italian)

        legal = {
            (chess.square_name(m.from_square), chess.square_name(m.to_square))
            for m in italian.legal_moves
        }
        assert {(e.origin, e.destination) for e in table} == legal

    def test_enumeration_order(self, italian):
        table = _sweep(ScriptedChannel(_italian_engine())).sweep(italian)

        expected = []
        for move in italian.legal_moves:
            origin = chess.square_name(move.from_square)
            if origin not in expected:
                expected.append(origin)
        assert table.origins() == expected

    def test_search_order(self, italian):
        channel = ScriptedChannel(_italian_engine())
        _sweep(channel).sweep(italian)

        positions = [line for line in channel.sent if line.startswith("position fen ")]
        assert positions[0] == f"position fen {ITALIAN_FEN}"
        assert positions[-1] == f"position fen {ITALIAN_FEN}"
        assert len(positions) == italian.legal_moves.count() + 2

    def test_table_is_frozen(self, italian):
        table = _sweep(ScriptedChannel(_italian_engine())).sweep(italian)

        with pytest.raises(RuntimeError):
            table.add("a1", "a2", 0.0)

    def test_position_not_modified(self, italian):
        _sweep(ScriptedChannel(_italian_engine())).sweep(italian)
        assert italian.fen() == ITALIAN_FEN

    def test_under_promotions_collapse_to_queen(self):
        board = chess.Board("8/P7/8/8/8/8/8/k6K w - - 0 1")
        table = _sweep(ScriptedChannel()).sweep(board)

        assert [e.destination for e in table.moves_from("a7")] == ["a8"]


class TestScoring:
    """Tests for differential and absolute scores."""

    def test_differential(self, italian):
        table = _sweep(ScriptedChannel(_italian_engine())).sweep(italian)

        assert table.baseline == pytest.approx(0.30)
        assert table.get("f3", "e5").score == pytest.approx(-1.20 - 0.30)
        assert table.get("d2", "d3").score == pytest.approx(-0.30)

    def test_absolute(self, italian):
        channel = ScriptedChannel(_italian_engine())
        table = _sweep(channel, scoring=ScoringMode.ABSOLUTE).sweep(italian)

        assert table.get("f3", "e5").score == pytest.approx(-1.20)
        assert table.get("d2", "d3").score == pytest.approx(0.0)

    def test_baseline_without_score_counts_as_zero(self, italian):
        responder = _italian_engine()
        calls = []

        def respond(fen, go):
            calls.append(fen)
            if len(calls) == 1:
                return ["bestmove e1g1"]
            return responder(fen, go)

        table = _sweep(ScriptedChannel(respond)).sweep(italian)

        assert table.baseline == 0.0
        assert table.get("f3", "e5").score == pytest.approx(-1.20)


class TestReconciliation:
    """Tests for lifting the engine's best move."""

    def test_best_move_is_max_plus_epsilon(self, italian):
        table = _sweep(ScriptedChannel(_italian_engine(best="e1g1"))).sweep(italian)

        others = [e.score for e in table if (e.origin, e.destination) != ("e1", "g1")]
        assert table.best_move == "e1g1"
        assert table.get("e1", "g1").score == pytest.approx(max(others) + 0.10)

    def test_best_move_wins_over_higher_sweep_score(self, italian):
        """Even a move the sweep liked more ends up below the engine's choice."""
        replies = {
            ITALIAN_FEN: reply(cp=0, bestmove="e1g1"),
            fen_after(ITALIAN_FEN, "c4f7"): reply(cp=-250),
        }
        table = _sweep(ScriptedChannel(table_responder(replies, reply(cp=0)))).sweep(italian)

        assert table.get("c4", "f7").score == pytest.approx(2.50)
        assert table.get("e1", "g1").score == pytest.approx(2.60)

    def test_best_move_not_in_table(self, italian):
        replies = {
            ITALIAN_FEN: reply(cp=0, bestmove="e1g1"),
            fen_after(ITALIAN_FEN, "e1g1"): Delayed(0.45, reply(cp=0)),
        }
        channel = ScriptedChannel(table_responder(replies, reply(cp=0)))
        table = _sweep(channel, timeout=0.3).sweep(italian)

        assert table.get("e1", "g1") is None
        assert all(e.score == pytest.approx(0.0) for e in table)

    def test_custom_epsilon(self, italian):
        table = _sweep(ScriptedChannel(_italian_engine()), epsilon=1.0).sweep(italian)

        others = [e.score for e in table if (e.origin, e.destination) != ("e1", "g1")]
        assert table.get("e1", "g1").score == pytest.approx(max(others) + 1.0)

    def test_single_legal_move(self):
        board = chess.Board(ONE_MOVE_FEN)
        channel = ScriptedChannel(table_responder({ONE_MOVE_FEN: reply(cp=-500, bestmove="a1b2")}, reply(cp=0)))
        table = _sweep(channel).sweep(board)

        assert table.origins() == ["a1"]
        assert len(table) == 1
        assert table.get("a1", "b2").score == pytest.approx(5.0 + 0.10)


class TestPartialResults:
    """Tests for sweeps that cannot score every move."""

    def test_rejected_move_is_skipped(self, italian):
        class RejectingRules(ChessRules):
            def apply_move(self, position, move):
                if move.uci() == "f3e5":
                    raise IllegalMoveApplication("rejected for the test")
                return super().apply_move(position, move)

        evaluator = PositionEvaluator(ScriptedChannel(_italian_engine()))
        table = MoveSweep(evaluator, RejectingRules()).sweep(italian)

        assert table.get("f3", "e5") is None
        assert len(table) == italian.legal_moves.count() - 1
        assert table.complete

    def test_timed_out_move_is_skipped(self, italian):
        replies = {
            ITALIAN_FEN: reply(cp=0, bestmove="e1g1"),
            fen_after(ITALIAN_FEN, "d2d4"): Delayed(0.45, reply(cp=0)),
        }
        channel = ScriptedChannel(table_responder(replies, reply(cp=0)))
        table = _sweep(channel, timeout=0.3).sweep(italian)

        assert table.get("d2", "d4") is None
        assert table.get("d2", "d3") is not None
        assert table.complete

    def test_cancelled_before_moves(self, italian):
        stop_event = threading.Event()
        stop_event.set()
        channel = ScriptedChannel(_italian_engine())

        table = _sweep(channel).sweep(italian, stop_event=stop_event)

        assert not table.complete
        assert len(table) == 0
        assert table.best_move is None
        assert channel.go_count() == 0

    def test_cancelled_mid_sweep(self, italian):
        stop_event = threading.Event()
        responder = _italian_engine()
        calls = []

        def respond(fen, go):
            calls.append(fen)
            if len(calls) == 4:
                stop_event.set()
            return responder(fen, go)

        channel = ScriptedChannel(respond)
        table = _sweep(channel).sweep(italian, stop_event=stop_event)

        assert not table.complete
        assert len(table) == 3
        assert channel.go_count() == 4

    def test_engine_unavailable_propagates(self, italian):
        channel = ScriptedChannel().start()
        channel.stop()

        with pytest.raises(EngineUnavailable):
            _sweep(channel).sweep(italian)
