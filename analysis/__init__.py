"""
Analysis package: per-move evaluation sweeps built on the engine client.

Modules:
    config — SweepConfig and ScoringMode (absolute vs differential scores)
    rules  — chess rules adapter over python-chess
    table  — EvaluationTable / MoveScore, the sweep's result
    sweep  — MoveSweep: one engine search per legal move, best-move boost
    scores — pure selectors over a table (per-piece best, global best)
"""
