"""
Runtime settings for the engine service.

Defaults come from sparring.constants; deployments override them through
environment variables so the same build runs locally (Stockfish on PATH) and
in a container (absolute binary path). Unparseable values are logged and the
default is kept.
"""

import logging
import os
import platform
import shlex
from collections.abc import Mapping
from dataclasses import dataclass, field

from sparring.constants import (
    BROAD_MOVETIME_MS,
    BROAD_TIME_BUDGET_S,
    CANDIDATE_MOVETIME_MS,
    CANDIDATE_TIME_BUDGET_S,
    DEFAULT_DEPTH,
    HANDSHAKE_TIMEOUT_S,
    MULTIPV,
    SETUP_QUIESCENCE_S,
)
from sparring.models import RankingStrategy

_log = logging.getLogger(__name__)


def default_engine_path() -> str:
    """
    Best-guess Stockfish location for the current platform.

    Linux containers usually have the binary on PATH; Homebrew installs it
    under /usr/local/bin; on Windows there is no convention, so we use the
    download's default file name.
    """
    system = platform.system()
    if system == "Windows":
        return r"C:\stockfish\stockfish-windows-x86-64-avx2.exe"
    if system == "Darwin":
        return "/usr/local/bin/stockfish"
    return "stockfish"


@dataclass
class EngineSettings:
    """
    Everything the service needs to launch and drive the engine.

    Fields:
        engine_path:          Engine executable (resolved through PATH).
        engine_args:          Extra argv passed after the executable.
        handshake_timeout:    Seconds start() waits for uciok/readyok.
        multipv:              Ranked-lines count set after the handshake.
        default_depth:        Depth used when a caller does not give one.
        candidate_movetime_ms / candidate_time_budget:
                              Engine movetime and read deadline per candidate.
        broad_movetime_ms / broad_time_budget:
                              Same for a broad multi-line analysis.
        setup_quiescence:     Drain window after "position" commands.
        strategy:             How choose_move() ranks candidates.
        log_level:            Root logging level for the web app.
    """

    engine_path: str = field(default_factory=default_engine_path)
    engine_args: list[str] = field(default_factory=list)
    handshake_timeout: float = HANDSHAKE_TIMEOUT_S
    multipv: int = MULTIPV
    default_depth: int = DEFAULT_DEPTH
    candidate_movetime_ms: int = CANDIDATE_MOVETIME_MS
    candidate_time_budget: float = CANDIDATE_TIME_BUDGET_S
    broad_movetime_ms: int = BROAD_MOVETIME_MS
    broad_time_budget: float = BROAD_TIME_BUDGET_S
    setup_quiescence: float = SETUP_QUIESCENCE_S
    strategy: RankingStrategy = RankingStrategy.BROAD
    log_level: str = "INFO"

    @property
    def command(self) -> list[str]:
        """Full argv for the engine subprocess."""
        return [self.engine_path, *self.engine_args]

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "EngineSettings":
        """
        Build settings from CHESS_ENGINE_* environment variables.

        Args:
            environ: Mapping to read instead of os.environ (used by tests).

        Returns:
            EngineSettings with every recognised variable applied.
        """
        env = os.environ if environ is None else environ
        settings = cls()

        path = env.get("CHESS_ENGINE_PATH")
        if path:
            settings.engine_path = path
        args = env.get("CHESS_ENGINE_ARGS")
        if args:
            settings.engine_args = shlex.split(args)

        settings.default_depth = _env_number(
            env, "CHESS_ENGINE_DEPTH", int, settings.default_depth
        )
        settings.handshake_timeout = _env_number(
            env, "CHESS_ENGINE_HANDSHAKE_TIMEOUT", float, settings.handshake_timeout
        )

        strategy = env.get("CHESS_ENGINE_STRATEGY")
        if strategy:
            try:
                settings.strategy = RankingStrategy(strategy.lower())
            except ValueError:
                _log.warning("Ignoring unknown CHESS_ENGINE_STRATEGY=%r", strategy)

        level = env.get("CHESS_ENGINE_LOG_LEVEL")
        if level:
            if isinstance(logging.getLevelName(level.upper()), int):
                settings.log_level = level.upper()
            else:
                _log.warning("Ignoring unknown CHESS_ENGINE_LOG_LEVEL=%r", level)
        return settings


def _env_number(env: Mapping[str, str], key: str, kind: type, default):
    raw = env.get(key)
    if not raw:
        return default
    try:
        return kind(raw)
    except ValueError:
        _log.warning("Ignoring %s=%r: not a valid %s", key, raw, kind.__name__)
        return default
