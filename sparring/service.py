"""
Engine service: the boundary the HTTP layer (or any other caller) talks to.

Wires one EngineProcess, one Transceiver and one MoveRanker together and
exposes three operations:

    evaluate_position(fen, depth, candidate_moves)  → PositionReport
    choose_move(fen, difficulty, ...)               → MoveChoice
    health()                                        → {"ready", "busy"}

Contract with callers:
    - Engine trouble of any kind (missing binary, slow handshake, crash,
      timeout) never raises. Results come back with neutral scores and a
      ``warning`` explaining that the opponent is currently unavailable.
    - The only error surfaced is InvalidPositionError, for input that no
      engine could help with (malformed FEN, no legal moves to choose from).
    - Every score favours the side to move in ``fen``; each report names that
      colour in ``perspective``.
"""

import logging
import random
from collections.abc import Sequence
from dataclasses import dataclass, field

import chess

from sparring.config import EngineSettings
from sparring.models import DifficultyLevel, Evaluation, RankingStrategy
from sparring.perspective import color_name, to_white
from sparring.process import EngineProcess
from sparring.ranking import MoveRanker, clamp_depth, pool_size, select
from sparring.transceiver import Transceiver

_log = logging.getLogger(__name__)

ENGINE_UNAVAILABLE_WARNING = "Engine unavailable: scores are neutral"
PARTIAL_ANALYSIS_WARNING = "Engine analysis timed out: results are partial"


class InvalidPositionError(ValueError):
    """Raised for a malformed FEN or a position with nothing to play."""


@dataclass
class ScoredMove:
    """One row of a PositionReport."""

    move: str
    evaluation: float
    rank: int
    is_mate: bool = False
    depth: int = 0
    legal: bool = True
    white_evaluation: float = 0.0


@dataclass
class PositionReport:
    """
    Result of evaluate_position().

    Attributes:
        fen:             Position that was evaluated.
        perspective:     "white" or "black": the colour positive scores favour.
        evaluated_moves: Broad path: ranked lines, best first.
                         Candidate path: request order, each with its rank.
        evaluation:      Score of the rank-1 line (broad path only).
        depth:           Search depth that was requested.
        best_move:       Engine's own choice in SAN (broad path only).
        warning:         Set when scores are neutral or partial.
    """

    fen: str
    perspective: str
    evaluated_moves: list[ScoredMove] = field(default_factory=list)
    best_move: str | None = None
    evaluation: float | None = None
    depth: int = 0
    warning: str | None = None


@dataclass
class MoveChoice:
    """
    Result of choose_move().

    Attributes:
        fen:         Position the move is for.
        move:        Chosen candidate, in the caller's notation.
        evaluation:  Its score, favouring the side to move.
        rank:        1-based position of the move in the ranked list.
        pool_size:   How many top candidates the draw was made from.
        candidates:  Number of legal candidates ranked.
        perspective: "white" or "black".
        warning:     Set when the choice was made without engine scores.
    """

    fen: str
    move: str
    evaluation: float
    rank: int
    pool_size: int
    candidates: int
    perspective: str
    warning: str | None = None


def parse_position(fen: str) -> chess.Board:
    """
    Validate a FEN through the rules collaborator.

    Raises:
        InvalidPositionError: The FEN cannot be parsed.
    """
    try:
        return chess.Board(fen)
    except ValueError as exc:
        raise InvalidPositionError(f"Invalid FEN: {exc}") from exc


class EngineService:
    """
    Facade owning the engine for the lifetime of an application.

    Attributes:
        settings:    Resolved EngineSettings.
        process:     The engine subprocess manager.
        transceiver: Single-flight protocol channel over ``process``.
        ranker:      Candidate scoring and ranking.
    """

    def __init__(self, settings: EngineSettings | None = None) -> None:
        self.settings = settings or EngineSettings()
        self.process = EngineProcess(
            self.settings.command,
            handshake_timeout=self.settings.handshake_timeout,
            multipv=self.settings.multipv,
        )
        self.transceiver = Transceiver(self.process)
        self.ranker = MoveRanker(self.process, self.transceiver, self.settings)

    # -----------------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------------

    async def start(self) -> bool:
        """Launch the engine; False means the service runs without one (for now)."""
        ready = await self.process.start()
        if not ready:
            _log.warning("Starting without a ready engine; moves will be scored neutrally")
        return ready

    async def stop(self) -> None:
        await self.process.stop()

    def health(self) -> dict[str, bool]:
        """Readiness, and whether an engine exchange is in flight."""
        return {"ready": self.process.is_ready(), "busy": self.transceiver.busy}

    # -----------------------------------------------------------------------
    # Operations
    # -----------------------------------------------------------------------

    async def evaluate_position(
        self,
        fen: str,
        depth: int | None = None,
        candidate_moves: Sequence[str] | None = None,
    ) -> PositionReport:
        """
        Evaluate a position broadly, or score specific candidate moves.

        Args:
            fen:             Position to evaluate.
            depth:           Search depth; settings default when None.
            candidate_moves: If given and non-empty, each move is scored
                             individually and returned in request order.

        Returns:
            PositionReport, always well-formed.

        Raises:
            InvalidPositionError: ``fen`` is malformed.
        """
        board = parse_position(fen)
        depth = clamp_depth(depth or self.settings.default_depth)

        if candidate_moves:
            return await self._evaluate_candidates(fen, board.turn, candidate_moves, depth)

        analysis = await self.ranker.analyse(board.fen(), depth)
        warning = None
        if not self.process.is_ready() and not analysis.evaluations:
            warning = ENGINE_UNAVAILABLE_WARNING
        elif not analysis.completed:
            warning = PARTIAL_ANALYSIS_WARNING

        return PositionReport(
            fen=fen,
            perspective=color_name(board.turn),
            evaluated_moves=[
                _scored(e, rank, board.turn)
                for rank, e in enumerate(analysis.evaluations, start=1)
            ],
            best_move=analysis.best_move,
            evaluation=analysis.evaluations[0].score if analysis.evaluations else None,
            depth=depth,
            warning=warning,
        )

    async def choose_move(
        self,
        fen: str,
        difficulty: DifficultyLevel = DifficultyLevel.MEDIUM,
        candidate_moves: Sequence[str] | None = None,
        depth: int | None = None,
        *,
        strategy: RankingStrategy | None = None,
        rng: random.Random | None = None,
    ) -> MoveChoice:
        """
        Pick the computer's move at the given difficulty.

        Args:
            fen:             Position the computer is to move in.
            difficulty:      Strength level.
            candidate_moves: Moves to choose among; every legal move if None.
            depth:           Search depth; settings default when None.
            strategy:        Ranking strategy; settings default when None.
            rng:             Random source for the final draw.

        Raises:
            InvalidPositionError: Malformed FEN, no legal moves, or no legal
                                  move among ``candidate_moves``.
        """
        board = parse_position(fen)
        if candidate_moves is None:
            candidate_moves = [board.san(m) for m in board.legal_moves]
        if not candidate_moves:
            raise InvalidPositionError(f"No legal moves in position: {fen}")

        ranked = await self.ranker.rank(fen, candidate_moves, depth=depth, strategy=strategy)
        try:
            chosen = select(ranked, difficulty, rng)
        except ValueError as exc:
            raise InvalidPositionError(str(exc)) from exc

        legal_count = sum(1 for e in ranked if e.legal)
        _log.info(
            "Chose %s (score %.2f) at %s from %d candidates",
            chosen.move,
            chosen.score,
            difficulty.value,
            legal_count,
        )
        return MoveChoice(
            fen=fen,
            move=chosen.move,
            evaluation=chosen.score,
            rank=ranked.moves().index(chosen.move) + 1,
            pool_size=pool_size(legal_count, difficulty),
            candidates=legal_count,
            perspective=color_name(ranked.perspective),
            warning=None if ranked.engine_ready else ENGINE_UNAVAILABLE_WARNING,
        )

    async def _evaluate_candidates(
        self,
        fen: str,
        turn: chess.Color,
        candidate_moves: Sequence[str],
        depth: int,
    ) -> PositionReport:
        ready_before = self.process.is_ready()
        evaluations = await self.ranker.score_candidates(fen, candidate_moves, depth)

        order = sorted(
            (e for e in evaluations if e.legal), key=lambda e: e.score, reverse=True
        ) + [e for e in evaluations if not e.legal]
        ranks = {e.move: rank for rank, e in enumerate(order, start=1)}

        warning = None
        if not (ready_before and self.process.is_ready()):
            warning = ENGINE_UNAVAILABLE_WARNING
        return PositionReport(
            fen=fen,
            perspective=color_name(turn),
            evaluated_moves=[_scored(e, ranks[e.move], turn) for e in evaluations],
            best_move=None,
            depth=depth,
            warning=warning,
        )


def _scored(evaluation: Evaluation, rank: int, turn: chess.Color) -> ScoredMove:
    return ScoredMove(
        move=evaluation.move,
        evaluation=evaluation.score,
        rank=rank,
        is_mate=evaluation.is_mate,
        depth=evaluation.depth,
        legal=evaluation.legal,
        white_evaluation=to_white(evaluation.score, turn),
    )
