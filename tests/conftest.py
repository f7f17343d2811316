import sys
from pathlib import Path

import chess
import pytest

from tests.scripted import ScriptedChannel

FAKE_ENGINE = Path(__file__).parent / "fake_engine.py"

ITALIAN_FEN = "r1bqkbnr/pppp1ppp/2n5/4p3/2B1P3/5N2/PPPP1PPP/RNBQK2R w KQkq - 4 4"

# White king on a1 can only take the undefended rook on b2.
ONE_MOVE_FEN = "k7/8/8/8/8/8/1r6/K7 w - - 0 1"


@pytest.fixture
def italian():
    return chess.Board(ITALIAN_FEN)


@pytest.fixture
def scripted():
    channel = ScriptedChannel()
    yield channel
    channel.stop()


@pytest.fixture
def fake_engine_command():
    """argv that runs the scripted UCI engine as a real subprocess."""
    return [sys.executable, str(FAKE_ENGINE)]


def fen_after(fen: str, uci_move: str) -> str:
    board = chess.Board(fen)
    board.push_uci(uci_move)
    return board.fen()
