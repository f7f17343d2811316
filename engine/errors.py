"""
Error taxonomy for the engine client.

Only EngineUnavailable is meant to reach the caller of a sweep. The other
conditions are recovered locally and degrade a sweep to a partial result:

    EvaluationTimeout       a single search exceeded its deadline
    IllegalMoveApplication  the rules layer rejected an enumerated move
    MalformedEngineOutput   an engine line could not be parsed
"""


class EngineAnalysisError(Exception):
    """Base class for all engine client errors."""


class EngineUnavailable(EngineAnalysisError):
    """The engine process could not be started, or has gone away."""


class EvaluationTimeout(EngineAnalysisError):
    """A search did not produce a result before its deadline."""


class IllegalMoveApplication(EngineAnalysisError):
    """A move could not be applied to the position it was generated for."""


class MalformedEngineOutput(EngineAnalysisError):
    """An engine line looked like a recognised pattern but did not parse."""
