#!/usr/bin/env python3
"""
Benchmark: measure how long a full move sweep takes per position.

A sweep runs one engine search per legal move plus two extra searches
(baseline and best move), so its cost grows with the branching factor.
Run this after changing depth or timeout defaults to see what the overlay
will cost in the browser.

Usage: CHESS_ENGINE_PATH=/path/to/stockfish python3 tools/bench.py [depth]
"""
import os
import shlex
import sys
import time

# Make the repo's packages importable when run as a script from anywhere.
REPO = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if REPO not in sys.path:
    sys.path.insert(0, REPO)

import chess

from analysis import scores
from analysis.sweep import MoveSweep
from engine.channel import EngineChannel
from engine.evaluator import PositionEvaluator
from interface.uci import SearchLimit

ENGINE = shlex.split(os.environ.get("CHESS_ENGINE_PATH", "stockfish"))

# Standard positions spanning opening, middlegame, and endgame.
# Fixed positions, so every run compares the same sweeps.
POSITIONS = [
    ("Start",        chess.STARTING_FEN),
    ("Italian",      "r1bqkbnr/pppp1ppp/2n5/4p3/2B1P3/5N2/PPPP1PPP/RNBQK2R w KQkq - 4 4"),
    ("Mid-open",     "r1bqkb1r/pppp1ppp/2n2n2/4p3/2B1P3/5N2/PPPP1PPP/RNBQK2R w KQkq - 4 4"),
    ("Complex mid",  "r2q1rk1/ppp2ppp/2np1n2/2b1p1B1/2B1P1b1/2NP1N2/PPP2PPP/R2Q1RK1 w - - 0 8"),
    ("Queen ending", "6k1/ppp2ppp/8/3p4/3P4/8/PPP2PPP/6K1 w - - 0 1"),
    ("Rook ending",  "8/5pk1/6p1/7p/7P/6P1/5PK1/8 w - - 0 1"),
    ("Pawn race",    "8/1p4k1/p7/P1K5/8/8/8/8 w - - 0 1"),
]


def run_position(sweep: MoveSweep, label: str, fen: str, depth: int) -> dict:
    """Sweep one position and return metrics.

    Args:
        sweep: The sweep to run, bound to a started engine.
        label: Human-readable position name for display.
        fen: Position to sweep.
        depth: Search depth per position.

    Returns:
        Dict with keys: label, legal, scored, best, top, time_ms.
    """
    board = chess.Board(fen)
    start = time.monotonic()
    table = sweep.sweep(board, limit=SearchLimit(depth=depth))
    elapsed_ms = int((time.monotonic() - start) * 1000)
    top = scores.global_best(table)
    return {
        "label": label,
        "legal": board.legal_moves.count(),
        "scored": len(table),
        "best": table.best_move or "(none)",
        "top": f"{top:.2f}" if top is not None else "-",
        "time_ms": elapsed_ms,
    }


def main() -> None:
    """Sweep all benchmark positions and print a summary table."""
    depth = int(sys.argv[1]) if len(sys.argv) > 1 else 8
    print(f"Move sweep benchmark — engine {' '.join(ENGINE)}, depth {depth}")
    print()
    print(f"{'Position':<14} {'Legal':>5} {'Scored':>6} {'Best':<7} {'Top':>9} {'Time(ms)':>9}")
    print("-" * 56)

    total_ms = 0
    with EngineChannel(ENGINE) as channel:
        sweep = MoveSweep(PositionEvaluator(channel))
        for label, fen in POSITIONS:
            r = run_position(sweep, label, fen, depth)
            total_ms += r["time_ms"]
            print(
                f"{r['label']:<14} {r['legal']:>5} {r['scored']:>6} {r['best']:<7} "
                f"{r['top']:>9} {r['time_ms']:>9,}"
            )

    print("-" * 56)
    print(f"{'TOTAL':<14} {'':>5} {'':>6} {'':<7} {'':>9} {total_ms:>9,}")


if __name__ == "__main__":
    main()
