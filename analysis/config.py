"""
Sweep configuration.

Two observed variants of the overlay disagreed on scoring (absolute vs.
differential), depth (12 / 25 / 31), and timeout (10s / 30s). Rather than
bake one in, they are options here; the defaults are the ones the web app
ships with.
"""

import enum
from dataclasses import dataclass

from engine.constants import BEST_MOVE_EPSILON, DEFAULT_DEPTH, DEFAULT_TIMEOUT
from interface.uci import SearchLimit


class ScoringMode(enum.Enum):
    """
    ABSOLUTE:     a move's score is the engine's value for the resulting
                  position.
    DIFFERENTIAL: the same value minus the baseline (pre-move) value, i.e.
                  how much the move changes the mover's evaluation.
    """

    ABSOLUTE = "absolute"
    DIFFERENTIAL = "differential"


@dataclass(frozen=True)
class SweepConfig:
    """
    Attributes:
        limit:        Search limit for every position in the sweep.
        timeout:      Per-position deadline in seconds.
        scoring:      See ScoringMode.
        epsilon:      Margin by which the engine's best move is lifted
                      above the table maximum.
    """

    limit: SearchLimit = SearchLimit(depth=DEFAULT_DEPTH)
    timeout: float = DEFAULT_TIMEOUT
    scoring: ScoringMode = ScoringMode.DIFFERENTIAL
    epsilon: float = BEST_MOVE_EPSILON
