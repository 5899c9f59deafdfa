"""
Perspective normalisation for engine scores.

UCI engines score a position for whoever is to move in the position they
searched. The service uses one fixed convention instead:

    A score is positive when it favours the side to move in the position the
    caller asked about, i.e. the position *before* any candidate move.

Two search shapes feed that convention:

    broad analysis     — the engine searches the caller's position itself,
                         so its numbers already match; no change.
    per-candidate      — the engine searches the position *after* the
                         candidate, where the other side is to move, so the
                         number is negated exactly once.

External responses name the favoured colour explicitly ("white"/"black");
to_white() converts when a fixed-White view is needed.
"""

import chess

from sparring.models import Evaluation


def normalise(evaluation: Evaluation, *, searched_after_move: bool) -> Evaluation:
    """
    Express an engine evaluation in the caller's perspective.

    Args:
        evaluation:          Score as the engine reported it.
        searched_after_move: True if the engine searched the position
                             resulting from the candidate move.

    Returns:
        Evaluation whose positive scores favour the mover in the original
        position.
    """
    return evaluation.negated() if searched_after_move else evaluation


def to_white(score: float, perspective: chess.Color) -> float:
    """Re-express a score that favours ``perspective`` as White's advantage."""
    if perspective == chess.WHITE or not score:
        return score
    return -score


def color_name(color: chess.Color) -> str:
    return "white" if color == chess.WHITE else "black"
