"""
Engine client constants: search defaults, timeouts, and score shaping.

All numeric constants used by the engine-communication layer are defined
here so that the channel, tracker, and evaluator never introduce their own
magic numbers. Centralizing them makes tuning against a particular engine
binary (Stockfish, a slower Python engine, ...) a one-file change.

Scores leave this layer in pawn units (1.0 = one pawn), not centipawns.
"""

# ---------------------------------------------------------------------------
# Search defaults
# ---------------------------------------------------------------------------
# DEFAULT_DEPTH is the "go depth N" sent when the caller supplies no limit.
# A full sweep runs one search per legal move (30-40 in a middlegame), so
# the depth has to stay modest for the overlay to appear in seconds.
DEFAULT_DEPTH: int = 12

# Upper bound accepted from clients. Stockfish reaches 30 quickly on simple
# positions but a 40-move sweep at that depth takes minutes.
MAX_DEPTH: int = 30

# ---------------------------------------------------------------------------
# Timeouts (seconds)
# ---------------------------------------------------------------------------
# Wall-clock deadline for a single position. A timed-out position is
# skipped by the sweep; the engine is left to finish on its own.
DEFAULT_TIMEOUT: float = 10.0

# How often a waiting request re-checks its stop_event. Bounds the latency
# of cancellation without busy-waiting.
CANCEL_POLL_INTERVAL: float = 0.05

# Grace period for the engine to exit after "quit" before it is killed.
QUIT_GRACE_TIMEOUT: float = 2.0

# Join timeout for the reader thread on shutdown.
READER_JOIN_TIMEOUT: float = 2.0

# ---------------------------------------------------------------------------
# Score shaping
# ---------------------------------------------------------------------------
# Centipawns per pawn: "score cp 150" becomes 1.5.
CENTIPAWNS_PER_PAWN: int = 100

# Mate scores collapse to a saturating sentinel. Only ranking is consumed
# downstream, so mate distance is discarded.
MATE_SCORE: float = 100_000.0

# Added on top of the table maximum for the engine's own best move, so it
# always ranks strictly first.
BEST_MOVE_EPSILON: float = 0.10
