"""
FastAPI web application for the chess sparring service.

Exposes the engine service over a small REST surface:

    POST /api/evaluate  — evaluate a position broadly, or score given moves
    POST /api/move      — pick the computer's move at a difficulty level
    GET  /api/health    — whether the engine is ready

Architecture notes:
- Async endpoints: the engine is driven through asyncio subprocess pipes,
  so handlers await the service directly on the event loop; there is no
  CPU-bound work in this process.
- Engine lifecycle is tied to the app lifespan: started once on startup,
  stopped on shutdown. create_app() takes explicit settings so tests can
  point the app at a scripted engine (or at nothing at all).
- Engine trouble is reported in-band: responses stay 200 with neutral scores
  and a ``warning``. Only malformed input gets a 400.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel, field_validator

from sparring.config import EngineSettings
from sparring.constants import DEFAULT_DEPTH
from sparring.models import DifficultyLevel
from sparring.ranking import clamp_depth
from sparring.service import EngineService, InvalidPositionError

_log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Request / response models
# ---------------------------------------------------------------------------


class EvaluateRequest(BaseModel):
    """
    Client request for an evaluation.

    Fields:
        fen:   Full FEN string of the position.
        depth: Engine search depth (clamped to [1, 30]).
        moves: Optional candidate moves in SAN. When present, each move is
               scored individually; when absent, the top engine lines are
               returned.
    """

    fen: str
    depth: int = DEFAULT_DEPTH
    moves: list[str] | None = None

    @field_validator("depth")
    @classmethod
    def clamp(cls, v: int) -> int:
        return clamp_depth(v)


class MoveRequest(BaseModel):
    """
    Client request for a computer move.

    Fields:
        fen:        Position the computer is to move in.
        difficulty: easy | medium | hard | impossible.
        moves:      Optional candidate moves; every legal move by default.
        depth:      Optional search depth (clamped to [1, 30]).
    """

    fen: str
    difficulty: DifficultyLevel = DifficultyLevel.MEDIUM
    moves: list[str] | None = None
    depth: int | None = None

    @field_validator("depth")
    @classmethod
    def clamp(cls, v: int | None) -> int | None:
        return None if v is None else clamp_depth(v)


class EvaluatedMove(BaseModel):
    rank: int
    move: str
    evaluation: float
    is_mate: bool
    depth: int
    legal: bool
    white_evaluation: float


class EvaluateResponse(BaseModel):
    """
    Evaluation result.

    Fields:
        perspective:     "white" or "black": the colour positive scores favour
                         (always the side to move in ``fen``).
        evaluated_moves: Ranked lines, or the requested moves in request order.
        evaluation:      Score of the best line (broad analysis only).
        depth:           Search depth used.
        best_move:       Engine's choice in SAN (broad analysis only).
        warning:         Present when scores are neutral or partial.
    """

    fen: str
    perspective: str
    evaluated_moves: list[EvaluatedMove]
    best_move: str | None = None
    evaluation: float | None = None
    depth: int
    warning: str | None = None


class MoveResponse(BaseModel):
    fen: str
    move: str
    evaluation: float
    rank: int
    pool_size: int
    candidates: int
    perspective: str
    warning: str | None = None


class HealthResponse(BaseModel):
    ready: bool
    busy: bool
    status: str


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app(settings: EngineSettings | None = None) -> FastAPI:
    """
    Build the FastAPI app around one EngineService.

    Args:
        settings: Engine settings; read from the environment when None.
    """
    settings = settings or EngineSettings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        service = EngineService(settings)
        app.state.engine = service
        await service.start()
        try:
            yield
        finally:
            await service.stop()

    app = FastAPI(title="Chess Sparring", version="1.0.0", lifespan=lifespan)

    @app.post("/api/evaluate", response_model=EvaluateResponse)
    async def api_evaluate(body: EvaluateRequest, request: Request) -> EvaluateResponse:
        """
        Evaluate a position, or score the given candidate moves.

        Raises:
            HTTPException 400: Malformed FEN.
        """
        service: EngineService = request.app.state.engine
        try:
            report = await service.evaluate_position(body.fen, body.depth, body.moves)
        except InvalidPositionError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

        if report.warning:
            _log.warning("evaluate fen=%s: %s", body.fen[:40], report.warning)
        return EvaluateResponse(
            fen=report.fen,
            perspective=report.perspective,
            evaluated_moves=[
                EvaluatedMove(
                    rank=m.rank,
                    move=m.move,
                    evaluation=m.evaluation,
                    is_mate=m.is_mate,
                    depth=m.depth,
                    legal=m.legal,
                    white_evaluation=m.white_evaluation,
                )
                for m in report.evaluated_moves
            ],
            best_move=report.best_move,
            evaluation=report.evaluation,
            depth=report.depth,
            warning=report.warning,
        )

    @app.post("/api/move", response_model=MoveResponse)
    async def api_move(body: MoveRequest, request: Request) -> MoveResponse:
        """
        Choose the computer's move for the given difficulty.

        Raises:
            HTTPException 400: Malformed FEN, or nothing legal to play.
        """
        service: EngineService = request.app.state.engine
        try:
            choice = await service.choose_move(
                body.fen, body.difficulty, body.moves, body.depth
            )
        except InvalidPositionError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

        _log.info(
            "Move=%s score=%.2f rank=%d/%d difficulty=%s fen=%s",
            choice.move,
            choice.evaluation,
            choice.rank,
            choice.candidates,
            body.difficulty.value,
            body.fen[:40],
        )
        return MoveResponse(
            fen=choice.fen,
            move=choice.move,
            evaluation=choice.evaluation,
            rank=choice.rank,
            pool_size=choice.pool_size,
            candidates=choice.candidates,
            perspective=choice.perspective,
            warning=choice.warning,
        )

    @app.get("/api/health", response_model=HealthResponse)
    async def api_health(request: Request) -> HealthResponse:
        service: EngineService = request.app.state.engine
        health = service.health()
        return HealthResponse(
            ready=health["ready"],
            busy=health["busy"],
            status="ready" if health["ready"] else "initializing",
        )

    return app


logging.basicConfig(level=EngineSettings.from_env().log_level)
app = create_app()
