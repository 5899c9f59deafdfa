"""
Tests for the engine process manager.

These run the scripted UCI engine (interface/scripted_engine.py) as a real
child process, so spawn, handshake, pipe I/O and teardown are all exercised.
"""

import asyncio
import os
import shlex

import pytest

from helpers import MISSING_ENGINE, scripted_command
from sparring.process import EngineProcess, EngineUnavailableError


async def wait_until_not_ready(process: EngineProcess, timeout: float = 5.0) -> None:
    loop = asyncio.get_running_loop()
    give_up = loop.time() + timeout
    while process.is_ready() and loop.time() < give_up:
        await asyncio.sleep(0.02)


# ════════════════════════════════════════════════════════════════════════════
#  STARTUP
# ════════════════════════════════════════════════════════════════════════════


class TestStart:
    def test_handshake_makes_engine_ready(self):
        async def scenario():
            process = EngineProcess(scripted_command(), handshake_timeout=15.0)
            try:
                assert await process.start() is True
                assert process.is_ready()
                assert process.running
                assert process.pid is not None
            finally:
                await process.stop()
            assert not process.is_ready()
            assert not process.running
            assert process.pid is None

        asyncio.run(scenario())

    def test_missing_binary_reports_not_ready(self):
        async def scenario():
            process = EngineProcess([MISSING_ENGINE])
            assert await process.start() is False
            assert not process.is_ready()
            assert not process.running
            assert await process.wait_ready(0.1) is False
            await process.stop()

        asyncio.run(scenario())

    def test_non_executable_file_reports_not_ready(self, tmp_path):
        path = tmp_path / "stockfish"
        path.write_text("not an engine\n")
        os.chmod(path, 0o644)

        async def scenario():
            process = EngineProcess([str(path)])
            assert await process.start() is False
            assert not process.is_ready()

        asyncio.run(scenario())

    def test_late_handshake_still_becomes_ready(self):
        async def scenario():
            process = EngineProcess(
                scripted_command("--handshake-delay", "1.0"), handshake_timeout=0.2
            )
            try:
                assert await process.start() is False
                assert not process.is_ready()
                assert process.running
                assert await process.wait_ready(15.0) is True
                assert process.is_ready()
            finally:
                await process.stop()

        asyncio.run(scenario())

    def test_start_twice_restarts_the_engine(self):
        async def scenario():
            process = EngineProcess(scripted_command(), handshake_timeout=15.0)
            try:
                assert await process.start()
                first_pid = process.pid
                assert await process.start()
                assert process.is_ready()
                assert process.pid != first_pid
            finally:
                await process.stop()

        asyncio.run(scenario())


# ════════════════════════════════════════════════════════════════════════════
#  I/O AND EXIT
# ════════════════════════════════════════════════════════════════════════════


class TestIO:
    def test_send_and_read_after_handshake(self):
        async def scenario():
            process = EngineProcess(scripted_command(), handshake_timeout=15.0)
            try:
                assert await process.start()
                await process.send("isready")
                assert await process.read_line(5.0) == "readyok"
            finally:
                await process.stop()

        asyncio.run(scenario())

    def test_read_line_times_out_when_silent(self):
        async def scenario():
            process = EngineProcess(scripted_command(), handshake_timeout=15.0)
            try:
                assert await process.start()
                with pytest.raises(asyncio.TimeoutError):
                    await process.read_line(0.1)
            finally:
                await process.stop()

        asyncio.run(scenario())

    def test_discard_pending_drops_buffered_lines(self):
        async def scenario():
            process = EngineProcess(scripted_command(), handshake_timeout=15.0)
            try:
                assert await process.start()
                await process.send("isready")
                await asyncio.sleep(0.3)
                assert process.discard_pending() == ["readyok"]
                assert process.discard_pending() == []
            finally:
                await process.stop()

        asyncio.run(scenario())

    def test_send_without_process_raises(self):
        async def scenario():
            process = EngineProcess([MISSING_ENGINE])
            with pytest.raises(EngineUnavailableError):
                await process.send("isready")

        asyncio.run(scenario())

    def test_unexpected_exit_clears_readiness(self):
        async def scenario():
            process = EngineProcess(scripted_command("--exit-on-go", "1"), handshake_timeout=15.0)
            try:
                assert await process.start()
                await process.send("position startpos")
                await process.send("go depth 1")
                await wait_until_not_ready(process)
                assert not process.is_ready()
                assert await process.read_line(1.0) is None
                assert not process.running
                with pytest.raises(EngineUnavailableError):
                    await process.send("isready")
            finally:
                await process.stop()

        asyncio.run(scenario())

    def test_restart_with_lingering_stdout_holder(self):
        # A grandchild keeps the pipes open after the engine quits, so the
        # old pumps outlive the grace period and have to be cancelled.
        script = "(sleep 4) & exec " + " ".join(shlex.quote(part) for part in scripted_command())

        async def scenario():
            process = EngineProcess(["sh", "-c", script], handshake_timeout=15.0)
            try:
                assert await process.start()
                old_pumps = [process._stdout_task, process._stderr_task]
                assert await process.start() is True
                assert all(task.done() for task in old_pumps)
                assert process.is_ready()
                await process.send("isready")
                assert await process.read_line(5.0) == "readyok"
            finally:
                await process.stop()

        asyncio.run(scenario())

    def test_stop_is_idempotent(self):
        async def scenario():
            process = EngineProcess(scripted_command(), handshake_timeout=15.0)
            assert await process.start()
            await process.stop()
            await process.stop()
            assert not process.is_ready()

        asyncio.run(scenario())
