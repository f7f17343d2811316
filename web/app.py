"""
FastAPI web application: play against a UCI engine with per-move scores.

Exposes a small JSON API over the engine client and serves the browser
frontend from static files. The client sends the full FEN with every
request; no board state is kept on the server. The engine process is the
only server-side state.

Endpoints:
    POST /api/evaluate     full sweep: a score for every legal move
    POST /api/bestmove     the engine's preferred move
    POST /api/move         the engine plays its move in the position
    POST /api/play         a human move, validated and applied
    POST /api/legal-moves  movable pieces and their destinations

Architecture notes:
- Sync endpoints (not async): FastAPI runs sync handlers in a thread pool.
  Engine calls block, and the evaluator's lock queues concurrent requests
  for the single engine process.
- The engine starts lazily on the first search and is stopped when the
  application shuts down.
- Static files mounted LAST: route registration is first-match, so API routes
  must be registered before the StaticFiles catch-all.
"""

import logging
import os
import shlex
from contextlib import asynccontextmanager
from pathlib import Path

import chess
from fastapi import Depends, FastAPI, HTTPException
from fastapi.responses import FileResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, field_validator

from analysis import scores
from analysis.config import SweepConfig
from analysis.rules import ChessRules
from analysis.sweep import MoveSweep
from engine.channel import EngineChannel
from engine.constants import DEFAULT_DEPTH, MAX_DEPTH
from engine.errors import EngineUnavailable, IllegalMoveApplication
from engine.evaluator import PositionEvaluator
from interface.uci import SearchLimit

# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------

logging.basicConfig(level=logging.INFO)
_log = logging.getLogger(__name__)

# Absolute path resolved at import time, independent of the working directory.
_STATIC_DIR = Path(__file__).parent / "static"

# Engine binary plus arguments, e.g. "stockfish" or "/opt/sf/stockfish -x".
ENGINE_COMMAND = shlex.split(os.environ.get("CHESS_ENGINE_PATH", "stockfish"))

_rules = ChessRules()
_channel = EngineChannel(ENGINE_COMMAND)
_evaluator = PositionEvaluator(_channel)
_sweep = MoveSweep(_evaluator, _rules, SweepConfig())


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    _channel.stop()


app = FastAPI(title="Chess Move Scores", version="1.0.0", lifespan=lifespan)


def get_sweep() -> MoveSweep:
    """Dependency: the process-wide sweep (overridden in tests)."""
    return _sweep


# ---------------------------------------------------------------------------
# Request / response models
# ---------------------------------------------------------------------------


class PositionRequest(BaseModel):
    """
    A position to analyse.

    Fields:
        fen:   Full FEN string of the position.
        depth: Search depth per position (clamped to [1, MAX_DEPTH]; a full
               sweep runs one search per legal move).
    """

    fen: str
    depth: int = DEFAULT_DEPTH

    @field_validator("depth")
    @classmethod
    def clamp_depth(cls, v: int) -> int:
        """Clamp depth to a safe operating range."""
        return max(1, min(v, MAX_DEPTH))


class PlayRequest(BaseModel):
    """
    A human move.

    Fields:
        fen:  Position before the move.
        move: Move in UCI notation ("e2e4"). Pawn moves to the last rank
              promote to a queen unless a piece letter is appended.
    """

    fen: str
    move: str


class GameStatusModel(BaseModel):
    over: bool
    reason: str | None = None
    winner: str | None = None


class ScoredSquare(BaseModel):
    square: str
    score: float


class TieredSquare(BaseModel):
    square: str
    score: float
    is_best: bool


class EvaluationResponse(BaseModel):
    """
    A full sweep.

    Fields:
        moves:          Origin square → scored destinations, in move
                        generation order. Missing moves were not evaluated.
        best_move:      The engine's choice (UCI), boosted to the top score.
        baseline:       Score of the position itself, side-to-move view.
        complete:       False if the sweep stopped early.
        best_by_origin: Origin square → best score of that piece.
        global_best:    Highest score in the table.
        origin_tiers:   Overlay with no piece selected: one score per piece,
                        the overall best flagged.
        destination_tiers: Overlay per selected piece: one score per
                        destination, that piece's best flagged.
    """

    moves: dict[str, list[ScoredSquare]]
    best_move: str | None
    baseline: float | None
    complete: bool
    best_by_origin: dict[str, float]
    global_best: float | None
    origin_tiers: list[TieredSquare]
    destination_tiers: dict[str, list[TieredSquare]]


class BestMoveResponse(BaseModel):
    move: str | None


class MoveResponse(BaseModel):
    """
    Position after a move.

    Fields:
        move:   The move played (UCI).
        fen:    Board FEN after the move.
        status: Whether the game is over after the move.
    """

    move: str
    fen: str
    status: GameStatusModel


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _parse_fen(fen: str) -> chess.Board:
    try:
        return _rules.parse_position(fen)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid FEN: {exc}") from exc


def _require_in_progress(board: chess.Board) -> None:
    status = _rules.is_game_over(board)
    if status.over:
        raise HTTPException(status_code=400, detail=f"Game is already over: {status.reason}")


def _engine_unavailable(exc: EngineUnavailable) -> HTTPException:
    _log.error("Engine unavailable: %s", exc)
    return HTTPException(status_code=503, detail=f"Engine unavailable: {exc}")


def _status(board: chess.Board) -> GameStatusModel:
    status = _rules.is_game_over(board)
    return GameStatusModel(over=status.over, reason=status.reason, winner=status.winner)


def _tiered(tier: scores.TieredScore) -> TieredSquare:
    return TieredSquare(square=tier.square, score=tier.score, is_best=tier.is_best)


# ---------------------------------------------------------------------------
# API routes (registered BEFORE StaticFiles mount)
# ---------------------------------------------------------------------------


@app.post("/api/evaluate", response_model=EvaluationResponse)
def api_evaluate(
    request: PositionRequest,
    sweep: MoveSweep = Depends(get_sweep),
) -> EvaluationResponse:
    """
    Score every legal move of a position.

    Raises:
        HTTPException 400: Malformed FEN or game already over.
        HTTPException 503: The engine could not be started or has exited.
    """
    board = _parse_fen(request.fen)
    _require_in_progress(board)

    try:
        table = sweep.sweep(board, limit=SearchLimit(depth=request.depth))
    except EngineUnavailable as exc:
        raise _engine_unavailable(exc) from exc

    return EvaluationResponse(
        moves=table.as_dict(),
        best_move=table.best_move,
        baseline=table.baseline,
        complete=table.complete,
        best_by_origin=scores.best_by_origin(table),
        global_best=scores.global_best(table),
        origin_tiers=[_tiered(t) for t in scores.origin_tiers(table)],
        destination_tiers={
            origin: [_tiered(t) for t in scores.destination_tiers(table, origin)]
            for origin in table.origins()
        },
    )


@app.post("/api/bestmove", response_model=BestMoveResponse)
def api_bestmove(
    request: PositionRequest,
    sweep: MoveSweep = Depends(get_sweep),
) -> BestMoveResponse:
    """Return the engine's preferred move, or null if it found none."""
    board = _parse_fen(request.fen)
    _require_in_progress(board)

    try:
        move = sweep.evaluator.best_move(board.fen(), limit=SearchLimit(depth=request.depth))
    except EngineUnavailable as exc:
        raise _engine_unavailable(exc) from exc
    return BestMoveResponse(move=move)


@app.post("/api/move", response_model=MoveResponse)
def api_move(
    request: PositionRequest,
    sweep: MoveSweep = Depends(get_sweep),
) -> MoveResponse:
    """
    Let the engine play its move.

    Raises:
        HTTPException 400: Malformed FEN or game already over.
        HTTPException 500: The engine returned no usable move.
        HTTPException 503: The engine could not be started or has exited.
    """
    board = _parse_fen(request.fen)
    _require_in_progress(board)

    try:
        uci_move = sweep.evaluator.best_move(board.fen(), limit=SearchLimit(depth=request.depth))
    except EngineUnavailable as exc:
        raise _engine_unavailable(exc) from exc

    if uci_move is None:
        raise HTTPException(status_code=500, detail="Engine returned no move")

    try:
        move = _rules.parse_move(board, uci_move)
        board = _rules.apply_move(board, move)
    except IllegalMoveApplication as exc:
        _log.exception("Engine move rejected for FEN=%s", request.fen)
        raise HTTPException(status_code=500, detail=f"Engine error: {exc}") from exc

    _log.info("Engine move=%s fen=%s", move.uci(), request.fen[:40])
    return MoveResponse(move=move.uci(), fen=board.fen(), status=_status(board))


@app.post("/api/play", response_model=MoveResponse)
def api_play(request: PlayRequest) -> MoveResponse:
    """
    Apply a human move.

    Raises:
        HTTPException 400: Malformed FEN, game over, or illegal move.
    """
    board = _parse_fen(request.fen)
    _require_in_progress(board)

    try:
        move = _rules.parse_move(board, request.move)
        board = _rules.apply_move(board, move)
    except IllegalMoveApplication as exc:
        raise HTTPException(status_code=400, detail=f"Illegal move: {exc}") from exc

    return MoveResponse(move=move.uci(), fen=board.fen(), status=_status(board))


@app.post("/api/legal-moves", response_model=dict[str, list[str]])
def api_legal_moves(request: PositionRequest) -> dict[str, list[str]]:
    """Origin square → destination squares, for highlighting movable pieces."""
    board = _parse_fen(request.fen)
    movable: dict[str, list[str]] = {}
    for move in _rules.legal_moves(board):
        destinations = movable.setdefault(chess.square_name(move.from_square), [])
        to_square = chess.square_name(move.to_square)
        if to_square not in destinations:
            destinations.append(to_square)
    return movable


@app.get("/", include_in_schema=False)
def serve_root() -> FileResponse:
    """Serve the main chessboard UI."""
    return FileResponse(_STATIC_DIR / "index.html")


# ---------------------------------------------------------------------------
# Static file mount: MUST be last (catch-all for /static/* assets)
# ---------------------------------------------------------------------------

app.mount("/static", StaticFiles(directory=_STATIC_DIR), name="static")
