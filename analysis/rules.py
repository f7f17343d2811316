"""
Rules adapter: the chess rules the sweep relies on, backed by python-chess.

The sweep never inspects a position itself. It only asks this module to
enumerate moves, apply one, or turn a position into FEN for the engine, so
any object with the same five methods can stand in for it (tests use this
to simulate a rules layer that rejects a move).
"""

from dataclasses import dataclass

import chess

from engine.errors import IllegalMoveApplication


@dataclass(frozen=True)
class GameStatus:
    """Whether the game is over, why, and who won ("white", "black", or None for a draw)."""

    over: bool
    reason: str | None = None
    winner: str | None = None


class ChessRules:
    """Standard chess rules via python-chess. Positions are chess.Board objects."""

    def parse_position(self, text: str) -> chess.Board:
        """
        Raises:
            ValueError: text is not a valid FEN.
        """
        return chess.Board(text)

    def serialize_position(self, position: chess.Board) -> str:
        return position.fen()

    def legal_moves(self, position: chess.Board) -> list[chess.Move]:
        return list(position.legal_moves)

    def apply_move(self, position: chess.Board, move: chess.Move) -> chess.Board:
        """
        Return a new position with move played. The input is not modified.

        Raises:
            IllegalMoveApplication: move is not legal in position.
        """
        if move not in position.legal_moves:
            raise IllegalMoveApplication(f"{move.uci()} is not legal in {position.fen()}")
        result = position.copy(stack=False)
        result.push(move)
        return result

    def is_game_over(self, position: chess.Board) -> GameStatus:
        if position.is_checkmate():
            return GameStatus(True, "checkmate", chess.COLOR_NAMES[not position.turn])
        if position.is_stalemate():
            return GameStatus(True, "stalemate")
        if position.is_insufficient_material():
            return GameStatus(True, "insufficient material")
        if position.is_seventyfive_moves():
            return GameStatus(True, "75-move rule")
        if position.is_fivefold_repetition():
            return GameStatus(True, "fivefold repetition")
        # Counted from the FEN halfmove clock, so it needs no move history.
        if position.is_fifty_moves():
            return GameStatus(True, "fifty-move rule")
        return GameStatus(False)

    def parse_move(self, position: chess.Board, text: str) -> chess.Move:
        """
        Parse a UCI move typed by a player, promoting to a queen by default.

        Raises:
            IllegalMoveApplication: text is not a legal move in position.
        """
        try:
            move = chess.Move.from_uci(text)
        except ValueError as exc:
            raise IllegalMoveApplication(f"not a UCI move: {text!r}") from exc

        if move.promotion is None and is_promotion(position, move):
            move = chess.Move(move.from_square, move.to_square, promotion=chess.QUEEN)
        if move not in position.legal_moves:
            raise IllegalMoveApplication(f"{move.uci()} is not legal in {position.fen()}")
        return move


def is_promotion(position: chess.Board, move: chess.Move) -> bool:
    """True if move is a pawn reaching the last rank."""
    piece = position.piece_at(move.from_square)
    if piece is None or piece.piece_type != chess.PAWN:
        return False
    rank = chess.square_rank(move.to_square)
    return (piece.color == chess.WHITE and rank == 7) or (piece.color == chess.BLACK and rank == 0)
