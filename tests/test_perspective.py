"""Tests for score perspective handling and the evaluation records."""

import math

import chess
import pytest

from sparring.models import DifficultyLevel, Evaluation, RankedMoveList
from sparring.perspective import color_name, normalise, to_white


class TestNormalise:
    def test_broad_scores_are_unchanged(self):
        evaluation = Evaluation(move="e4", score=0.35, depth=12)
        assert normalise(evaluation, searched_after_move=False) is evaluation

    def test_per_move_scores_are_negated_once(self):
        evaluation = Evaluation(move="Qxd2", score=-9.0, depth=3)
        assert normalise(evaluation, searched_after_move=True).score == 9.0

    def test_mate_flag_survives_negation(self):
        evaluation = Evaluation(move="Ra8#", score=-999.0, is_mate=True)
        result = normalise(evaluation, searched_after_move=True)
        assert result.score == 999.0
        assert result.is_mate

    def test_neutral_score_never_becomes_negative_zero(self):
        result = normalise(Evaluation.neutral("e4"), searched_after_move=True)
        assert result.score == 0.0
        assert math.copysign(1.0, result.score) == 1.0


class TestToWhite:
    def test_white_perspective_is_identity(self):
        assert to_white(1.5, chess.WHITE) == 1.5

    def test_black_perspective_flips(self):
        assert to_white(1.5, chess.BLACK) == -1.5

    def test_zero_stays_positive_zero(self):
        assert math.copysign(1.0, to_white(0.0, chess.BLACK)) == 1.0

    def test_color_names(self):
        assert color_name(chess.WHITE) == "white"
        assert color_name(chess.BLACK) == "black"


class TestRankedMoveList:
    def _ranked(self) -> RankedMoveList:
        return RankedMoveList(
            fen=chess.STARTING_FEN,
            perspective=chess.WHITE,
            evaluations=[
                Evaluation(move="e4", score=0.4, depth=10),
                Evaluation(move="d4", score=0.3, depth=10),
                Evaluation(move="a3", score=-0.2, depth=10),
                Evaluation.neutral("Ke2??", legal=False),
            ],
        )

    def test_same_perspective_is_returned_as_is(self):
        ranked = self._ranked()
        assert ranked.in_perspective(chess.WHITE) is ranked

    def test_other_perspective_negates_and_resorts(self):
        flipped = self._ranked().in_perspective(chess.BLACK)
        assert flipped.perspective == chess.BLACK
        assert flipped.moves() == ["a3", "d4", "e4", "Ke2??"]
        assert [e.score for e in flipped][:3] == [0.2, -0.3, -0.4]

    def test_rejected_candidates_stay_at_tail(self):
        flipped = self._ranked().in_perspective(chess.BLACK)
        assert not flipped.evaluations[-1].legal

    def test_length_and_iteration(self):
        ranked = self._ranked()
        assert len(ranked) == 4
        assert [e.move for e in ranked] == ranked.moves()


class TestDifficultyLevel:
    def test_percentiles(self):
        assert DifficultyLevel.EASY.percentile == pytest.approx(0.8)
        assert DifficultyLevel.MEDIUM.percentile == pytest.approx(0.5)
        assert DifficultyLevel.HARD.percentile == pytest.approx(0.25)
        assert DifficultyLevel.IMPOSSIBLE.percentile == pytest.approx(0.01)

    def test_ordered_levels_shrink_the_pool(self):
        percentiles = [level.percentile for level in DifficultyLevel]
        assert percentiles == sorted(percentiles, reverse=True)

    def test_lookup_by_value(self):
        assert DifficultyLevel("impossible") is DifficultyLevel.IMPOSSIBLE
