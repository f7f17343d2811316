"""
UCI (Universal Chess Interface) wire codec, client side.

UCI is a line-oriented text protocol. The GUI (here: this package) writes
commands to the engine's stdin and reads responses from its stdout. There
are no request identifiers: a response belongs to whatever search was most
recently started, so everything in this module is stateless and the
correlation logic lives in engine.tracker.

Protocol subset used:
    GUI → Engine: uci, ucinewgame, position fen <FEN>, go depth <N>,
                  go movetime <ms>, stop, quit
    Engine → GUI: info ... score (cp|mate) <int> ..., bestmove <move> [ponder <move>]

Everything else the engine prints (id, option, uciok, readyok, info string,
...) is noise to the client and is ignored.
"""

from dataclasses import dataclass

from engine.errors import MalformedEngineOutput

# Sent by engines in positions with no legal move.
_NULL_MOVES = frozenset({"(none)", "0000"})


@dataclass(frozen=True)
class SearchLimit:
    """
    How long the engine should search.

    Exactly one of depth or movetime_ms is used; depth wins if both are set.

    Attributes:
        depth:       Search to this many plies ("go depth N").
        movetime_ms: Search for this many milliseconds ("go movetime N").
    """

    depth: int | None = None
    movetime_ms: int | None = None

    def __post_init__(self) -> None:
        if self.depth is None and self.movetime_ms is None:
            raise ValueError("SearchLimit needs a depth or a movetime")


@dataclass(frozen=True)
class RawScore:
    """A score exactly as the engine printed it (side-to-move perspective)."""

    kind: str  # "cp" | "mate"
    value: int


# ---------------------------------------------------------------------------
# Outbound commands
# ---------------------------------------------------------------------------


def handshake_command() -> str:
    return "uci"


def new_game_command() -> str:
    return "ucinewgame"


def position_command(fen: str) -> str:
    return f"position fen {fen}"


def go_command(limit: SearchLimit) -> str:
    """Render a SearchLimit as a "go" command."""
    if limit.depth is not None:
        return f"go depth {limit.depth}"
    return f"go movetime {limit.movetime_ms}"


def stop_command() -> str:
    return "stop"


def quit_command() -> str:
    return "quit"


def search_commands(fen: str, limit: SearchLimit) -> list[str]:
    """
    The three-command sequence that starts one independent search.

    "ucinewgame" before every position clears the engine's hash so that
    successive sweep positions do not influence each other.
    """
    return [new_game_command(), position_command(fen), go_command(limit)]


# ---------------------------------------------------------------------------
# Inbound lines
# ---------------------------------------------------------------------------


def is_handshake_done(line: str) -> bool:
    return line == "uciok"


def parse_score(line: str) -> RawScore | None:
    """
    Extract the first "score cp|mate <int>" pair from an info line.

    Bound markers ("lowerbound"/"upperbound") after the number are ignored.

    Args:
        line: One stripped engine output line.

    Returns:
        RawScore, or None if the line is not an info line or has no score.

    Raises:
        MalformedEngineOutput: The line has a "score" token that is not
                               followed by "cp|mate <int>".
    """
    tokens = line.split()
    if not tokens or tokens[0] != "info" or "score" not in tokens:
        return None

    idx = tokens.index("score")
    try:
        kind = tokens[idx + 1]
        value = int(tokens[idx + 2])
    except (IndexError, ValueError) as exc:
        raise MalformedEngineOutput(f"unparsable score in {line!r}") from exc

    if kind not in ("cp", "mate"):
        raise MalformedEngineOutput(f"unknown score kind {kind!r} in {line!r}")
    return RawScore(kind, value)


def is_bestmove(line: str) -> bool:
    return line == "bestmove" or line.startswith("bestmove ")


def parse_bestmove(line: str) -> str | None:
    """
    Return the move of a "bestmove <move> [ponder <move>]" line.

    Returns None both for non-bestmove lines and for the null move the
    engine sends when the position has no legal move; use is_bestmove()
    to tell the two apart.
    """
    if not is_bestmove(line):
        return None
    tokens = line.split()
    if len(tokens) < 2 or tokens[1] in _NULL_MOVES:
        return None
    return tokens[1]


def split_move(move: str) -> tuple[str, str]:
    """
    Split a UCI move into (origin, destination) square names.

    Only the first two 2-character pairs are read, so "e7e8q" maps to
    ("e7", "e8"): the sweep keys its table by squares, not promotions.
    """
    if len(move) < 4:
        raise MalformedEngineOutput(f"move too short: {move!r}")
    return move[0:2], move[2:4]
