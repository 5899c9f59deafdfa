"""
Chess sparring package: orchestration of an external UCI engine.

This package owns a long-lived chess engine subprocess, talks to it over the
UCI text protocol, and turns its streamed analysis into ranked candidate moves
from which a difficulty-controlled computer move is drawn.

Modules:
    constants   — Protocol tokens, time budgets, score sentinels
    config      — EngineSettings resolved from environment variables
    models      — Evaluation, RankedMoveList, DifficultyLevel and friends
    process     — Engine subprocess lifecycle and UCI handshake
    transceiver — Serialised command/response exchanges with deadlines
    parser      — "info" / "bestmove" line parsing and UCI→SAN conversion
    perspective — Sign convention for scores
    ranking     — Candidate ranking and difficulty-based selection
    service     — Boundary used by the HTTP layer: evaluate, choose, health
"""
