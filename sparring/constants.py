"""
Orchestration constants: protocol tokens, time budgets, and score sentinels.

All numeric constants used by the engine orchestration layer are defined here
so the other modules never introduce their own magic numbers. Time values are
in seconds unless the name says otherwise; engine-side budgets that travel in
a "go" command are in milliseconds because that is what UCI expects.
"""

# ---------------------------------------------------------------------------
# UCI protocol tokens
# ---------------------------------------------------------------------------

UCI_OK: str = "uciok"
READY_OK: str = "readyok"
BEST_MOVE: str = "bestmove"
INFO: str = "info"

# "bestmove (none)" is what Stockfish prints when the side to move has no
# legal moves; some engines print the null move instead.
NO_MOVE_TOKENS: frozenset[str] = frozenset({"(none)", "0000"})

# ---------------------------------------------------------------------------
# Engine options
# ---------------------------------------------------------------------------

# Number of ranked variations the engine is asked to report (MultiPV).
MULTIPV: int = 5

# ---------------------------------------------------------------------------
# Lifecycle timing
# ---------------------------------------------------------------------------

# How long start() waits for "uciok" + "readyok". The engine may still finish
# its handshake later; readiness flips whenever that happens.
HANDSHAKE_TIMEOUT_S: float = 5.0

# Grace period between "quit" and a hard kill.
STOP_GRACE_S: float = 1.0

# Upper bound on the "isready" round trip used to resynchronise the stream
# after a timed-out request.
RESYNC_TIMEOUT_S: float = 2.0

# Quiescence window after "position ..." commands, which produce no output
# terminator of their own.
SETUP_QUIESCENCE_S: float = 0.1

# ---------------------------------------------------------------------------
# Search budgets
# ---------------------------------------------------------------------------

DEFAULT_DEPTH: int = 15
MIN_DEPTH: int = 1
MAX_DEPTH: int = 30

# Scoring one candidate move: engine movetime and our hard read deadline.
CANDIDATE_MOVETIME_MS: int = 1_000
CANDIDATE_TIME_BUDGET_S: float = 5.0

# Broad multi-line analysis of a position.
BROAD_MOVETIME_MS: int = 2_000
BROAD_TIME_BUDGET_S: float = 10.0

# ---------------------------------------------------------------------------
# Scores
# ---------------------------------------------------------------------------

CENTIPAWNS_PER_PAWN: int = 100

# Sentinel for a forced mate, in pawn units. Outranks any realistic material
# score, sign gives the direction.
MATE_SCORE: float = 999.0

# Score given to anything the engine did not (or could not) evaluate.
NEUTRAL_SCORE: float = 0.0

# ---------------------------------------------------------------------------
# Difficulty
# ---------------------------------------------------------------------------
# Fraction of the ranked candidate list the computer may choose from. Smaller
# means a narrower, stronger slice. Keyed by DifficultyLevel value.

DIFFICULTY_PERCENTILES: dict[str, float] = {
    "easy": 0.8,
    "medium": 0.5,
    "hard": 0.25,
    "impossible": 0.01,
}
