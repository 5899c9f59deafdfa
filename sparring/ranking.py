"""
Move ranking and difficulty-controlled selection.

MoveRanker turns a position plus candidate moves into a RankedMoveList by
asking the engine, either once for the whole position (broad, MultiPV) or
once per candidate. Every path degrades instead of failing: an engine that is
missing, not ready, crashing, or slow yields neutral scores for whatever it
did not score, so the game can always continue.

select() then narrows the ranked list to the strongest slice allowed by the
difficulty level and draws uniformly from it:

    pool size = max(1, ceil(len(candidates) * percentile(difficulty)))

Batch scoring is strictly sequential. The engine has one output stream, and
the Transceiver would serialise concurrent exchanges anyway.
"""

import logging
import math
import random
from collections.abc import Iterable
from dataclasses import replace

import chess

from sparring.config import EngineSettings
from sparring.constants import MAX_DEPTH, MIN_DEPTH
from sparring.models import (
    DifficultyLevel,
    Evaluation,
    PositionAnalysis,
    RankedMoveList,
    RankingStrategy,
)
from sparring.parser import collect_variations, parse_best_move, ranked_evaluations, uci_to_san
from sparring.perspective import normalise
from sparring.process import EngineProcess, EngineUnavailableError
from sparring.transceiver import Transceiver, is_bestmove

_log = logging.getLogger(__name__)


def resolve_move(board: chess.Board, text: str) -> chess.Move | None:
    """
    Parse a candidate in SAN (or, failing that, UCI) for ``board``.

    Returns:
        The legal move, or None if the text names no legal move. Null-move
        spellings ("--", "0000") are rejected.
    """
    for parse in (board.parse_san, board.parse_uci):
        try:
            move = parse(text)
        except ValueError:
            continue
        return move if move else None
    return None


def unique(candidates: Iterable[str]) -> list[str]:
    """Candidates with duplicates removed, first occurrence kept."""
    return list(dict.fromkeys(candidates))


def clamp_depth(depth: int) -> int:
    return max(MIN_DEPTH, min(depth, MAX_DEPTH))


class MoveRanker:
    """
    Scores candidate moves through one engine.

    Attributes:
        settings: Depth defaults, time budgets and MultiPV count.
    """

    def __init__(
        self,
        process: EngineProcess,
        transceiver: Transceiver,
        settings: EngineSettings | None = None,
    ) -> None:
        self.settings = settings or EngineSettings()
        self._process = process
        self._transceiver = transceiver

    # -----------------------------------------------------------------------
    # Engine queries
    # -----------------------------------------------------------------------

    async def analyse(self, fen: str, depth: int | None = None) -> PositionAnalysis:
        """
        Broad multi-line analysis of ``fen``.

        Scores favour the side to move in ``fen`` (no negation needed).
        Returns an empty, incomplete analysis if the engine is unavailable.
        """
        board = chess.Board(fen)
        if not self._process.is_ready():
            return PositionAnalysis(fen=fen)

        depth = clamp_depth(depth or self.settings.default_depth)
        try:
            output = await self._transceiver.exchange(
                f"position fen {board.fen()}",
                f"go depth {depth} movetime {self.settings.broad_movetime_ms}",
                is_bestmove,
                self.settings.broad_time_budget,
                window=self.settings.setup_quiescence,
            )
        except EngineUnavailableError as exc:
            _log.warning("Broad analysis of %s abandoned: %s", fen, exc)
            return PositionAnalysis(fen=fen)

        variations = collect_variations(output.lines, self.settings.multipv)
        evaluations = [
            normalise(e, searched_after_move=False)
            for e in ranked_evaluations(variations, board)
        ]
        best_uci = parse_best_move(output.lines)
        return PositionAnalysis(
            fen=fen,
            evaluations=evaluations,
            best_move=uci_to_san(board, best_uci) if best_uci else None,
            best_move_uci=best_uci,
            completed=output.completed,
        )

    async def score_move(
        self,
        board: chess.Board,
        move: chess.Move,
        label: str,
        depth: int | None = None,
    ) -> Evaluation:
        """
        Score one legal move by searching the position after it.

        Args:
            board: Position before the move. Not modified.
            move:  Legal move in ``board``.
            label: Text to report the move under (the caller's notation).
            depth: Search depth; settings default when None.

        Returns:
            Evaluation favouring the side to move in ``board``; neutral if the
            engine produced no usable line in time.

        Raises:
            EngineUnavailableError: The engine is not running.
        """
        after = board.copy(stack=False)
        after.push(move)
        depth = clamp_depth(depth or self.settings.default_depth)

        output = await self._transceiver.exchange(
            f"position fen {after.fen()}",
            f"go depth {depth} movetime {self.settings.candidate_movetime_ms}",
            is_bestmove,
            self.settings.candidate_time_budget,
            window=self.settings.setup_quiescence,
        )
        principal = collect_variations(output.lines, self.settings.multipv).get(1)
        if principal is None:
            _log.info("No score for %s within budget; using neutral", label)
            return Evaluation.neutral(label)

        raw = Evaluation(
            move=label,
            score=principal.score,
            is_mate=principal.is_mate,
            depth=principal.depth,
        )
        return normalise(raw, searched_after_move=True)

    async def score_candidates(
        self,
        fen: str,
        candidates: Iterable[str],
        depth: int | None = None,
    ) -> list[Evaluation]:
        """
        Score each candidate individually, in request order.

        Illegal candidates are scored neutral with legal=False and never reach
        the engine. Candidates after an engine failure are scored neutral.
        """
        board = chess.Board(fen)
        evaluations: list[Evaluation] = []
        for text in unique(candidates):
            move = resolve_move(board, text)
            if move is None:
                _log.info("Candidate %r is not legal in %s; scored neutral", text, fen)
                evaluations.append(Evaluation.neutral(text, legal=False))
                continue
            if not self._process.is_ready():
                evaluations.append(Evaluation.neutral(text))
                continue
            try:
                evaluations.append(await self.score_move(board, move, text, depth))
            except EngineUnavailableError as exc:
                _log.warning("Engine unavailable while scoring %s: %s", text, exc)
                evaluations.append(Evaluation.neutral(text))
        return evaluations

    # -----------------------------------------------------------------------
    # Ranking
    # -----------------------------------------------------------------------

    async def rank(
        self,
        fen: str,
        candidates: Iterable[str],
        *,
        depth: int | None = None,
        strategy: RankingStrategy | None = None,
    ) -> RankedMoveList:
        """
        Rank candidates best-first for the side to move in ``fen``.

        Every distinct candidate appears exactly once. Legal candidates are
        sorted by score (stable, so ties keep request order); illegal ones
        follow, scored neutral.
        """
        board = chess.Board(fen)
        candidates = unique(candidates)
        strategy = strategy or self.settings.strategy
        ready = self._process.is_ready()

        if not ready:
            _log.warning("Engine not ready; ranking %d candidates neutrally", len(candidates))
            evaluations = [
                Evaluation.neutral(text, legal=resolve_move(board, text) is not None)
                for text in candidates
            ]
        elif strategy is RankingStrategy.BROAD:
            evaluations = await self._broad_scores(board, candidates, depth)
        else:
            evaluations = await self.score_candidates(fen, candidates, depth)

        legal = sorted((e for e in evaluations if e.legal), key=lambda e: e.score, reverse=True)
        rejected = [e for e in evaluations if not e.legal]
        return RankedMoveList(
            fen=fen,
            perspective=board.turn,
            evaluations=legal + rejected,
            engine_ready=ready and self._process.is_ready(),
        )

    async def _broad_scores(
        self,
        board: chess.Board,
        candidates: list[str],
        depth: int | None,
    ) -> list[Evaluation]:
        analysis = await self.analyse(board.fen(), depth)
        by_san = {e.move: e for e in analysis.evaluations}

        evaluations: list[Evaluation] = []
        for text in candidates:
            move = resolve_move(board, text)
            if move is None:
                evaluations.append(Evaluation.neutral(text, legal=False))
                continue
            scored = by_san.get(board.san(move))
            if scored is None:
                # Outside the engine's top lines: unscored, not an error.
                evaluations.append(Evaluation.neutral(text))
            else:
                evaluations.append(replace(scored, move=text))
        return evaluations


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------


def pool_size(total: int, difficulty: DifficultyLevel) -> int:
    """Number of top entries the selector may draw from."""
    return max(1, math.ceil(total * difficulty.percentile))


def select(
    ranked: RankedMoveList,
    difficulty: DifficultyLevel,
    rng: random.Random | None = None,
) -> Evaluation:
    """
    Draw the computer's move from the strongest slice of ``ranked``.

    The slice is taken from the mover's point of view: a list ranked for the
    other colour is first re-expressed for the mover.

    Args:
        ranked:     Ranked candidates for one position.
        difficulty: Strength level controlling the slice width.
        rng:        Random source; pass a seeded Random for reproducibility.

    Returns:
        The chosen Evaluation (its ``move`` is the candidate text).

    Raises:
        ValueError: No legal candidate to choose from.
    """
    legal = [e for e in ranked.evaluations if e.legal]
    if not legal:
        raise ValueError("no legal candidate move to choose from")

    mover = chess.Board(ranked.fen).turn
    ordered = [e for e in ranked.in_perspective(mover).evaluations if e.legal]
    pool = ordered[:pool_size(len(ordered), difficulty)]
    return (rng or random).choice(pool)
