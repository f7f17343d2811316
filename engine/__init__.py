"""
Engine client package.

This package drives an external UCI chess engine (Stockfish or any other
UCI binary) as a single long-lived background process.

Modules:
    constants — search defaults, timeouts, score shaping constants
    errors    — error taxonomy (EngineUnavailable, EvaluationTimeout, ...)
    channel   — EngineChannel: process lifecycle, command writer, line stream
    tracker   — RequestTracker: one search at a time, output correlation
    evaluator — PositionEvaluator: one search → normalized score
"""
