"""
Evaluation parser: engine output lines → structured evaluations.

Only two UCI line shapes matter here:

    info depth 18 seldepth 24 multipv 2 score cp -31 nodes ... pv e7e5 g1f3 ...
    bestmove e2e4 ponder e7e5

Everything else ("info string", "info currmove", option echoes, blank noise)
is ignored. Malformed lines are skipped with a debug log, never fatal.

Scores come out of this module exactly as the engine reported them: for the
side to move in the searched position. Sign normalisation is the job of
sparring.perspective.

Aggregation rules for one request (multi-line reports):
    - Each rank (multipv 1..N) keeps the latest line whose depth is not lower
      than the one already held, so deeper iterations supersede shallow ones.
    - A mate reading for a rank is never replaced by a centipawn reading for
      the same rank within the same request.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass

import chess

from sparring.constants import (
    BEST_MOVE,
    CENTIPAWNS_PER_PAWN,
    INFO,
    MATE_SCORE,
    MULTIPV,
    NO_MOVE_TOKENS,
)
from sparring.models import Evaluation

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class InfoLine:
    """
    One scored "info" line.

    Attributes:
        multipv:  Rank of the variation (1 = best). Defaults to 1 when absent.
        depth:    Nominal search depth, 0 when absent.
        score_cp: Centipawn score, or None for mate lines.
        mate:     Signed mate distance in moves, or None for centipawn lines.
                  0 or negative means the side to move is being mated.
        pv:       Principal variation in UCI coordinate notation.
    """

    multipv: int
    depth: int
    score_cp: int | None
    mate: int | None
    pv: tuple[str, ...] = ()

    @property
    def is_mate(self) -> bool:
        return self.mate is not None

    @property
    def score(self) -> float:
        """Score in pawn units; mates map to ±MATE_SCORE."""
        if self.mate is not None:
            return MATE_SCORE if self.mate > 0 else -MATE_SCORE
        return self.score_cp / CENTIPAWNS_PER_PAWN

    @property
    def move(self) -> str | None:
        """First move of the principal variation."""
        return self.pv[0] if self.pv else None


def parse_info_line(line: str) -> InfoLine | None:
    """
    Parse one engine line into an InfoLine.

    Args:
        line: Raw output line (surrounding whitespace is ignored).

    Returns:
        InfoLine for scored "info" lines; None for any other shape.
    """
    tokens = line.split()
    if not tokens or tokens[0] != INFO:
        return None

    depth = 0
    multipv = 1
    score_cp: int | None = None
    mate: int | None = None
    pv: tuple[str, ...] = ()

    i = 1
    try:
        while i < len(tokens):
            key = tokens[i]
            if key == "string":
                # Free text runs to the end of the line.
                return None
            if key == "pv":
                pv = tuple(tokens[i + 1:])
                break
            if key == "score":
                kind, value = tokens[i + 1], int(tokens[i + 2])
                if kind == "cp":
                    score_cp = value
                elif kind == "mate":
                    mate = value
                i += 3
            elif key == "depth":
                depth = int(tokens[i + 1])
                i += 2
            elif key == "multipv":
                multipv = int(tokens[i + 1])
                i += 2
            else:
                i += 1
    except (IndexError, ValueError):
        _log.debug("Skipping malformed info line: %s", line)
        return None

    if score_cp is None and mate is None:
        return None
    return InfoLine(multipv=multipv, depth=depth, score_cp=score_cp, mate=mate, pv=pv)


def collect_variations(lines: Iterable[str], max_rank: int = MULTIPV) -> dict[int, InfoLine]:
    """
    Reduce a request's output to the deepest line per rank.

    Args:
        lines:    Output lines of one request, in arrival order.
        max_rank: Ranks above this are ignored.

    Returns:
        Mapping rank → InfoLine for every rank that was reported.
    """
    held: dict[int, InfoLine] = {}
    for line in lines:
        info = parse_info_line(line)
        if info is None or not 1 <= info.multipv <= max_rank:
            continue
        current = held.get(info.multipv)
        if current is not None:
            if current.is_mate and not info.is_mate:
                continue
            if info.depth < current.depth:
                continue
        held[info.multipv] = info
    return held


def parse_best_move(lines: Iterable[str]) -> str | None:
    """
    Engine's terminal choice, scanning from the end.

    Returns:
        The UCI move after "bestmove", or None if the line is missing or the
        engine reported no legal move.
    """
    for line in reversed(list(lines)):
        tokens = line.split()
        if tokens and tokens[0] == BEST_MOVE:
            if len(tokens) < 2 or tokens[1] in NO_MOVE_TOKENS:
                return None
            return tokens[1]
    return None


def uci_to_san(board: chess.Board, uci: str) -> str:
    """
    Convert a coordinate move to SAN for ``board``.

    The board is not modified. If the move does not fit the position (engine
    and position out of sync), the coordinate form is returned unchanged.
    """
    try:
        return board.san(board.parse_uci(uci))
    except ValueError as exc:
        _log.warning("Could not convert engine move %s in %s: %s", uci, board.fen(), exc)
        return uci


def ranked_evaluations(variations: dict[int, InfoLine], board: chess.Board) -> list[Evaluation]:
    """
    Turn per-rank lines into Evaluations in rank order.

    Moves are converted to SAN; lines without a PV are skipped and a move
    reported under two ranks keeps only its better rank. Scores keep the
    engine's perspective (side to move in ``board``).
    """
    evaluations: list[Evaluation] = []
    seen: set[str] = set()
    for rank in sorted(variations):
        info = variations[rank]
        if info.move is None:
            _log.debug("Rank %d has no principal variation; skipped", rank)
            continue
        san = uci_to_san(board, info.move)
        if san in seen:
            continue
        seen.add(san)
        evaluations.append(
            Evaluation(move=san, score=info.score, is_mate=info.is_mate, depth=info.depth)
        )
    return evaluations
