"""
Evaluation table: per-move scores from one sweep, keyed by origin square.

A table is built by MoveSweep and frozen before it is returned. Insertion
order is the rules layer's enumeration order, both for origin squares and
for the moves listed under each origin.

Scores follow one sign convention everywhere: higher is better for the
side that moved. A legal move with no entry was not evaluated (timeout,
engine error, rejected by the rules layer) and must be read as "unknown",
not as a bad move.
"""

from dataclasses import dataclass, replace
from typing import Iterator


@dataclass(frozen=True)
class MoveScore:
    origin: str
    destination: str
    score: float


class EvaluationTable:
    """
    Attributes:
        baseline:  Score of the position before any move, side-to-move view.
        best_move: The engine's own choice for the position, in UCI notation.
        complete:  False if the sweep was cancelled before every legal move
                   was tried.
    """

    def __init__(self) -> None:
        self._entries: dict[str, list[MoveScore]] = {}
        self._frozen = False
        self.baseline: float | None = None
        self.best_move: str | None = None
        self.complete = True

    def add(self, origin: str, destination: str, score: float) -> MoveScore:
        self._check_mutable()
        entry = MoveScore(origin, destination, score)
        self._entries.setdefault(origin, []).append(entry)
        return entry

    def replace_score(self, origin: str, destination: str, score: float) -> bool:
        """Overwrite the score of one entry. Returns False if it is not in the table."""
        self._check_mutable()
        entries = self._entries.get(origin, [])
        for i, entry in enumerate(entries):
            if entry.destination == destination:
                entries[i] = replace(entry, score=score)
                return True
        return False

    def freeze(self) -> "EvaluationTable":
        self._frozen = True
        return self

    def _check_mutable(self) -> None:
        if self._frozen:
            raise RuntimeError("evaluation table is frozen")

    # -----------------------------------------------------------------------
    # Read access
    # -----------------------------------------------------------------------

    def get(self, origin: str, destination: str) -> MoveScore | None:
        for entry in self._entries.get(origin, []):
            if entry.destination == destination:
                return entry
        return None

    def moves_from(self, origin: str) -> list[MoveScore]:
        return list(self._entries.get(origin, []))

    def origins(self) -> list[str]:
        return [origin for origin, entries in self._entries.items() if entries]

    def __iter__(self) -> Iterator[MoveScore]:
        for entries in self._entries.values():
            yield from entries

    def __len__(self) -> int:
        return sum(len(entries) for entries in self._entries.values())

    def as_dict(self) -> dict[str, list[dict]]:
        """Origin → [{"square": destination, "score": score}, ...], for JSON."""
        return {
            origin: [{"square": e.destination, "score": e.score} for e in entries]
            for origin, entries in self._entries.items()
            if entries
        }
