"""Shared constants and builders for the test suite."""

import sys
from pathlib import Path

import chess

from sparring.config import EngineSettings
from sparring.models import RankingStrategy

SCRIPTED_ENGINE = Path(__file__).resolve().parent.parent / "interface" / "scripted_engine.py"
MISSING_ENGINE = "/nonexistent/bin/stockfish"

START_FEN = chess.STARTING_FEN

# White to move and in check from an undefended queen on d2.
# Legal: Qxd2, Kxd2, Kf1. The one-ply scripted engine scores both captures
# at +9 for White and Kf1 at 0.
QUEEN_FEN = "4k3/8/8/8/8/8/3q4/3QK3 w - - 0 1"

# White mates with Ra8#.
BACK_RANK_FEN = "6k1/5ppp/8/8/8/8/8/R5K1 w - - 0 1"

# Fool's mate: White is checkmated, no legal moves.
MATED_FEN = "rnb1kbnr/pppp1ppp/8/4p3/6Pq/5P2/PPPPP2P/RNBQKBNR w KQkq - 1 3"


def scripted_command(*flags: str) -> list[str]:
    """argv that launches the scripted engine with the given fault flags."""
    return [sys.executable, str(SCRIPTED_ENGINE), *flags]


def scripted_settings(*flags: str, **overrides) -> EngineSettings:
    """EngineSettings pointing at the scripted engine, with short budgets."""
    settings = EngineSettings(
        engine_path=sys.executable,
        engine_args=[str(SCRIPTED_ENGINE), *flags],
        handshake_timeout=15.0,
        candidate_time_budget=3.0,
        broad_time_budget=3.0,
        setup_quiescence=0.05,
        strategy=RankingStrategy.BROAD,
    )
    for key, value in overrides.items():
        setattr(settings, key, value)
    return settings


def missing_settings(**overrides) -> EngineSettings:
    """EngineSettings whose engine binary does not exist."""
    settings = EngineSettings(engine_path=MISSING_ENGINE, setup_quiescence=0.05)
    for key, value in overrides.items():
        setattr(settings, key, value)
    return settings
