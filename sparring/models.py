"""
Data records exchanged between the orchestration layers.

Every score stored in these records is in pawn units and follows the single
perspective convention documented in sparring.perspective: positive favours
the side to move in the position the caller asked about.
"""

from dataclasses import dataclass, field, replace
from enum import Enum

import chess

from sparring.constants import DIFFICULTY_PERCENTILES, NEUTRAL_SCORE


class DifficultyLevel(Enum):
    """Computer opponent strength, weakest first."""

    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"
    IMPOSSIBLE = "impossible"

    @property
    def percentile(self) -> float:
        """Fraction of the ranked move list the selector draws from."""
        return DIFFICULTY_PERCENTILES[self.value]


class RankingStrategy(Enum):
    """How candidate moves get their scores."""

    # One multi-line analysis of the position, mapped back onto the candidates.
    BROAD = "broad"
    # One analysis of the resulting position per candidate.
    PER_MOVE = "per_move"


@dataclass(frozen=True)
class Evaluation:
    """
    Engine verdict on one move.

    Attributes:
        move:    Move text as the caller knows it (SAN for engine-reported
                 moves, the caller's own spelling for requested candidates).
        score:   Pawn units, positive = good for the perspective side.
        is_mate: True when score is the forced-mate sentinel.
        depth:   Search depth of the line the score came from (0 = unscored).
        legal:   False for candidates rejected by the rules collaborator.
    """

    move: str
    score: float
    is_mate: bool = False
    depth: int = 0
    legal: bool = True

    @classmethod
    def neutral(cls, move: str, *, legal: bool = True) -> "Evaluation":
        return cls(move=move, score=NEUTRAL_SCORE, legal=legal)

    def negated(self) -> "Evaluation":
        # Avoid handing out -0.0 for neutral scores.
        return replace(self, score=-self.score if self.score else NEUTRAL_SCORE)


@dataclass
class RankedMoveList:
    """
    Candidate evaluations ordered best-for-``perspective`` first.

    Attributes:
        fen:          Position the candidates belong to.
        perspective:  Colour whose advantage a positive score denotes.
        evaluations:  One entry per distinct candidate, legal ones first.
        engine_ready: False when scores are neutral because no engine answered.
    """

    fen: str
    perspective: chess.Color
    evaluations: list[Evaluation] = field(default_factory=list)
    engine_ready: bool = True

    def __len__(self) -> int:
        return len(self.evaluations)

    def __iter__(self):
        return iter(self.evaluations)

    def moves(self) -> list[str]:
        return [e.move for e in self.evaluations]

    def in_perspective(self, color: chess.Color) -> "RankedMoveList":
        """
        Return the same ranking expressed for another fixed colour.

        Scores are negated when the colour changes and the list is re-sorted
        so it stays best-for-``color`` first. Illegal candidates stay at the
        tail.
        """
        if color == self.perspective:
            return self
        legal = [e.negated() for e in self.evaluations if e.legal]
        rejected = [e for e in self.evaluations if not e.legal]
        legal.sort(key=lambda e: e.score, reverse=True)
        return RankedMoveList(
            fen=self.fen,
            perspective=color,
            evaluations=legal + rejected,
            engine_ready=self.engine_ready,
        )


@dataclass
class PositionAnalysis:
    """
    Result of one broad multi-line analysis.

    Attributes:
        fen:           Analysed position.
        evaluations:   Ranked lines, rank 1 first, at most MultiPV entries.
        best_move:     Engine's terminal choice in SAN, if any.
        best_move_uci: Same move in coordinate form, as the engine sent it.
        completed:     False when the search was cut off by the deadline or
                       no engine was available.
    """

    fen: str
    evaluations: list[Evaluation] = field(default_factory=list)
    best_move: str | None = None
    best_move_uci: str | None = None
    completed: bool = False
