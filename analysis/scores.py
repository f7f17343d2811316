"""
Score selection over an EvaluationTable, for presentation.

All functions are pure: no engine access, no mutation. An origin square
with no scored moves is absent from every result, never treated as 0.

The overlay has two views:
    no piece selected — one number per piece: its best move's score, with
                        the overall best highlighted (origin_tiers)
    piece selected    — one number per destination of that piece, with the
                        piece's best highlighted (destination_tiers)
"""

from dataclasses import dataclass

from analysis.table import EvaluationTable, MoveScore


@dataclass(frozen=True)
class TieredScore:
    square: str
    score: float
    is_best: bool


def best_by_origin(table: EvaluationTable) -> dict[str, float]:
    return {
        origin: max(entry.score for entry in table.moves_from(origin))
        for origin in table.origins()
    }


def global_best(table: EvaluationTable) -> float | None:
    scores = [entry.score for entry in table]
    return max(scores) if scores else None


def is_global_best(table: EvaluationTable, entry: MoveScore) -> bool:
    return entry.score == global_best(table)


def origin_tiers(table: EvaluationTable) -> list[TieredScore]:
    best = global_best(table)
    return [
        TieredScore(origin, score, score == best)
        for origin, score in best_by_origin(table).items()
    ]


def destination_tiers(table: EvaluationTable, origin: str) -> list[TieredScore]:
    entries = table.moves_from(origin)
    if not entries:
        return []
    best = max(entry.score for entry in entries)
    return [TieredScore(e.destination, e.score, e.score == best) for e in entries]
