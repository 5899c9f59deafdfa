"""
Tests for the protocol transceiver.

Covers terminator detection, single-flight exchanges under concurrency,
timeout with partial output and stream resynchronisation, and engine exit
during a request.
"""

import asyncio
import time

import chess
import pytest

from helpers import QUEEN_FEN, START_FEN, scripted_command
from sparring.parser import parse_best_move
from sparring.process import EngineProcess, EngineUnavailableError
from sparring.transceiver import Deadline, Transceiver, is_bestmove


async def started(*flags: str) -> tuple[EngineProcess, Transceiver]:
    process = EngineProcess(scripted_command(*flags), handshake_timeout=15.0)
    assert await process.start()
    return process, Transceiver(process)


def bestmoves(lines: list[str]) -> list[str]:
    return [line for line in lines if is_bestmove(line)]


# ════════════════════════════════════════════════════════════════════════════
#  HELPERS
# ════════════════════════════════════════════════════════════════════════════


class TestTerminatorAndDeadline:
    @pytest.mark.parametrize(
        "line, expected",
        [
            ("bestmove e2e4", True),
            ("bestmove e2e4 ponder e7e5", True),
            ("bestmove (none)", True),
            ("info depth 1 score cp 0 pv bestmove", False),
            ("bestmoves", False),
            ("", False),
        ],
    )
    def test_is_bestmove(self, line, expected):
        assert is_bestmove(line) is expected

    def test_deadline_counts_down(self):
        deadline = Deadline(10.0)
        first = deadline.remaining()
        time.sleep(0.01)
        assert 0.0 < deadline.remaining() < first
        assert not deadline.expired

    def test_zero_budget_is_already_expired(self):
        assert Deadline(0.0).expired
        assert Deadline(-5.0).remaining() == 0.0


# ════════════════════════════════════════════════════════════════════════════
#  EXCHANGES
# ════════════════════════════════════════════════════════════════════════════


class TestExchanges:
    def test_request_completes_on_bestmove(self):
        async def scenario():
            process, transceiver = await started()
            try:
                await transceiver.send_and_drain(f"position fen {START_FEN}", 0.05)
                output = await transceiver.request("go depth 2", is_bestmove, 5.0)
            finally:
                await process.stop()
            assert output.completed
            assert is_bestmove(output.lines[-1])
            assert any(line.startswith("info depth 2") for line in output.lines)

        asyncio.run(scenario())

    def test_send_and_drain_returns_after_window(self):
        async def scenario():
            process, transceiver = await started()
            try:
                began = time.monotonic()
                output = await transceiver.send_and_drain("position startpos", 0.1)
                elapsed = time.monotonic() - began
            finally:
                await process.stop()
            assert output.lines == []
            assert not output.completed
            assert elapsed < 2.0

        asyncio.run(scenario())

    def test_concurrent_exchanges_do_not_mix_output(self):
        async def scenario():
            process, transceiver = await started()
            try:
                return await asyncio.gather(
                    transceiver.exchange(
                        f"position fen {START_FEN}", "go depth 3", is_bestmove, 5.0, window=0.05
                    ),
                    transceiver.exchange(
                        f"position fen {QUEEN_FEN}", "go depth 3", is_bestmove, 5.0, window=0.05
                    ),
                    transceiver.exchange(
                        f"position fen {START_FEN}", "go depth 1", is_bestmove, 5.0, window=0.05
                    ),
                )
            finally:
                await process.stop()

        results = asyncio.run(scenario())
        for fen, output in zip([START_FEN, QUEEN_FEN, START_FEN], results):
            assert output.completed
            assert len(bestmoves(output.lines)) == 1
            board = chess.Board(fen)
            assert chess.Move.from_uci(parse_best_move(output.lines)) in board.legal_moves
            for line in output.lines:
                if " pv " in line:
                    move = chess.Move.from_uci(line.split(" pv ")[1].split()[0])
                    assert move in board.legal_moves

    def test_busy_while_exchange_runs(self):
        async def scenario():
            process, transceiver = await started()
            try:
                assert not transceiver.busy
                task = asyncio.create_task(
                    transceiver.exchange("position startpos", "go depth 1", is_bestmove, 5.0, window=0.2)
                )
                await asyncio.sleep(0.05)
                assert transceiver.busy
                await task
                assert not transceiver.busy
            finally:
                await process.stop()

        asyncio.run(scenario())


# ════════════════════════════════════════════════════════════════════════════
#  FAILURE PATHS
# ════════════════════════════════════════════════════════════════════════════


class TestFailures:
    def test_timeout_returns_partial_lines_then_resyncs(self):
        async def scenario():
            process, transceiver = await started("--mute-go", "1")
            try:
                partial = await transceiver.exchange(
                    f"position fen {START_FEN}", "go depth 3", is_bestmove, 0.5, window=0.05
                )
                following = await transceiver.exchange(
                    f"position fen {QUEEN_FEN}", "go depth 3", is_bestmove, 5.0, window=0.05
                )
                still_ready = process.is_ready()
            finally:
                await process.stop()
            return partial, following, still_ready

        partial, following, still_ready = asyncio.run(scenario())
        assert not partial.completed
        assert partial.lines
        assert bestmoves(partial.lines) == []
        assert still_ready

        # The muted search's late bestmove must not leak into this answer.
        assert following.completed
        assert len(bestmoves(following.lines)) == 1
        best = chess.Move.from_uci(parse_best_move(following.lines))
        assert best in chess.Board(QUEEN_FEN).legal_moves

    def test_engine_exit_ends_request_early(self):
        async def scenario():
            process, transceiver = await started("--exit-on-go", "1")
            try:
                began = time.monotonic()
                output = await transceiver.exchange(
                    "position startpos", "go depth 3", is_bestmove, 10.0, window=0.05
                )
                elapsed = time.monotonic() - began
                ready = process.is_ready()
                with pytest.raises(EngineUnavailableError):
                    await transceiver.request("go depth 1", is_bestmove, 1.0)
            finally:
                await process.stop()
            return output, elapsed, ready

        output, elapsed, ready = asyncio.run(scenario())
        assert not output.completed
        assert elapsed < 5.0
        assert not ready

    def test_request_without_engine_raises(self):
        async def scenario():
            process = EngineProcess(["/nonexistent/bin/stockfish"])
            transceiver = Transceiver(process)
            with pytest.raises(EngineUnavailableError):
                await transceiver.request("isready", lambda line: line == "readyok", 1.0)

        asyncio.run(scenario())
