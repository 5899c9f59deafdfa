"""
Engine process manager: spawn, UCI handshake, readiness, and teardown.

The external engine is a long-lived child process speaking UCI over its
standard streams. This module owns that process and nothing else: it starts
it, performs the "uci" / "isready" handshake, pumps stdout into a line queue,
and reports whether the engine can accept analysis work.

Readiness model:
    ready is False until both "uciok" and "readyok" have been seen. start()
    waits at most handshake_timeout seconds for that, but the stdout pump keeps
    watching afterwards, so an engine that finishes its handshake late still
    flips ready to True. Any exit of the process clears ready and wakes
    whoever is waiting for output.

Line ownership:
    Lines emitted before the handshake completes (id, option, uciok, readyok)
    are consumed here. Everything after goes to a single queue that only the
    Transceiver reads.
"""

import asyncio
import contextlib
import logging
from collections.abc import Sequence

from sparring.constants import (
    HANDSHAKE_TIMEOUT_S,
    MULTIPV,
    READY_OK,
    STOP_GRACE_S,
    UCI_OK,
)

_log = logging.getLogger(__name__)

# StreamReader line limit. Long principal variations at high depth can exceed
# asyncio's 64 KiB default.
_STREAM_LIMIT = 1 << 20


class EngineUnavailableError(Exception):
    """Raised when a command cannot reach the engine because it is not running."""


class EngineProcess:
    """
    Owner of one external UCI engine subprocess.

    Attributes:
        command:           argv used to spawn the engine.
        handshake_timeout: Seconds start() waits for the handshake to finish.
        multipv:           Ranked-lines count applied once the engine is ready.
    """

    def __init__(
        self,
        command: Sequence[str],
        *,
        handshake_timeout: float = HANDSHAKE_TIMEOUT_S,
        multipv: int = MULTIPV,
    ) -> None:
        self.command = list(command)
        self.handshake_timeout = handshake_timeout
        self.multipv = multipv

        self._proc: asyncio.subprocess.Process | None = None
        self._stdout_task: asyncio.Task | None = None
        self._stderr_task: asyncio.Task | None = None
        self._lines: asyncio.Queue[str | None] = asyncio.Queue()
        self._handshake: asyncio.Event | None = None
        self._seen_uciok = False
        self._seen_readyok = False
        self._ready = False
        self._eof = True
        self._stopping = False

    # -----------------------------------------------------------------------
    # State
    # -----------------------------------------------------------------------

    def is_ready(self) -> bool:
        """True once the handshake has completed and the process is alive."""
        return self._ready

    @property
    def running(self) -> bool:
        """True while the process exists and its stdout has not closed."""
        return self._proc is not None and not self._eof

    @property
    def pid(self) -> int | None:
        return self._proc.pid if self._proc is not None else None

    # -----------------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------------

    async def start(self) -> bool:
        """
        Spawn the engine and perform the UCI handshake.

        A running engine is stopped first, so start() doubles as restart.
        Launch failures are logged, never raised.

        Returns:
            True if the engine became ready within handshake_timeout.
        """
        if self._proc is not None:
            await self.stop()
        self._reset_state()

        try:
            self._proc = await asyncio.create_subprocess_exec(
                *self.command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=_STREAM_LIMIT,
            )
        except OSError as exc:
            _log.warning("Could not launch engine %r: %s", self.command[0], exc)
            self._proc = None
            return False

        _log.info("Engine started: %s (pid %s)", " ".join(self.command), self._proc.pid)
        self._eof = False
        self._stdout_task = asyncio.create_task(self._pump_stdout())
        self._stderr_task = asyncio.create_task(self._pump_stderr())

        try:
            await self.send("uci")
            await self.send("isready")
        except EngineUnavailableError as exc:
            _log.warning("Engine went away during handshake: %s", exc)
            return False

        if await self.wait_ready(self.handshake_timeout):
            return True
        if self.running:
            _log.warning(
                "Engine handshake not complete after %.1fs; will accept a late readyok",
                self.handshake_timeout,
            )
        return False

    async def wait_ready(self, timeout: float) -> bool:
        """
        Wait up to ``timeout`` seconds for readiness.

        Returns immediately with False if no engine is running.
        """
        if self._ready:
            return True
        if self._handshake is None or self._eof:
            return False
        try:
            await asyncio.wait_for(self._handshake.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return self._ready

    async def stop(self) -> None:
        """
        Terminate the engine: "quit", a short grace period, then kill.

        Safe to call when nothing is running.
        """
        self._ready = False
        proc = self._proc
        if proc is None:
            return

        self._stopping = True
        if proc.returncode is None:
            if self.running:
                with contextlib.suppress(EngineUnavailableError):
                    await self.send("quit")
            try:
                await asyncio.wait_for(proc.wait(), STOP_GRACE_S)
            except asyncio.TimeoutError:
                _log.warning("Engine ignored quit; killing pid %s", proc.pid)
                proc.kill()
                await proc.wait()

        tasks = [t for t in (self._stdout_task, self._stderr_task) if t is not None]
        if tasks:
            _, pending = await asyncio.wait(tasks, timeout=STOP_GRACE_S)
            for task in pending:
                task.cancel()
            # Old pumps must finish before a restart installs a fresh queue.
            await asyncio.gather(*pending, return_exceptions=True)

        self._proc = None
        self._stdout_task = None
        self._stderr_task = None
        self._eof = True

    # -----------------------------------------------------------------------
    # I/O used by the Transceiver
    # -----------------------------------------------------------------------

    async def send(self, command: str) -> None:
        """
        Write one command line to the engine's stdin.

        Raises:
            EngineUnavailableError: No process, or its stdin pipe is broken.
        """
        if self._proc is None or self._proc.stdin is None or self._eof:
            raise EngineUnavailableError("engine process is not running")
        _log.debug("engine << %s", command)
        try:
            self._proc.stdin.write(f"{command}\n".encode())
            await self._proc.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as exc:
            raise EngineUnavailableError(f"engine stdin closed: {exc}") from exc

    async def read_line(self, timeout: float) -> str | None:
        """
        Next post-handshake output line.

        Returns:
            The line, or None once the process has exited and every buffered
            line has been consumed.

        Raises:
            asyncio.TimeoutError: Nothing arrived within ``timeout`` seconds.
        """
        if self._eof and self._lines.empty():
            return None
        return await asyncio.wait_for(self._lines.get(), timeout)

    def discard_pending(self) -> list[str]:
        """Drop and return every buffered line that nobody has read yet."""
        dropped: list[str] = []
        while True:
            try:
                line = self._lines.get_nowait()
            except asyncio.QueueEmpty:
                return dropped
            if line is not None:
                dropped.append(line)

    # -----------------------------------------------------------------------
    # Internal helpers
    # -----------------------------------------------------------------------

    def _reset_state(self) -> None:
        self._lines = asyncio.Queue()
        self._handshake = asyncio.Event()
        self._seen_uciok = False
        self._seen_readyok = False
        self._ready = False
        self._eof = True
        self._stopping = False

    async def _pump_stdout(self) -> None:
        assert self._proc is not None and self._proc.stdout is not None
        stdout = self._proc.stdout
        try:
            while True:
                raw = await stdout.readline()
                if not raw:
                    break
                line = raw.decode("utf-8", errors="replace").strip()
                if not line:
                    continue
                _log.debug("engine >> %s", line)
                if self._ready:
                    self._lines.put_nowait(line)
                else:
                    await self._track_handshake(line)
        finally:
            self._on_exit()

    async def _pump_stderr(self) -> None:
        assert self._proc is not None and self._proc.stderr is not None
        async for raw in self._proc.stderr:
            line = raw.decode("utf-8", errors="replace").rstrip()
            if line:
                _log.warning("engine stderr: %s", line)

    async def _track_handshake(self, line: str) -> None:
        if line == UCI_OK:
            self._seen_uciok = True
        elif line == READY_OK:
            self._seen_readyok = True
        else:
            return
        if not (self._seen_uciok and self._seen_readyok):
            return

        try:
            await self.send(f"setoption name MultiPV value {self.multipv}")
        except EngineUnavailableError as exc:
            _log.warning("Engine went away before MultiPV could be set: %s", exc)
            return
        self._ready = True
        if self._handshake is not None:
            self._handshake.set()
        _log.info("Engine ready (MultiPV %d)", self.multipv)

    def _on_exit(self) -> None:
        was_ready = self._ready
        self._ready = False
        self._eof = True
        # Wake a reader blocked in read_line().
        self._lines.put_nowait(None)
        if self._handshake is not None:
            self._handshake.set()
        if self._stopping:
            _log.info("Engine process stopped")
        else:
            _log.warning("Engine process exited unexpectedly (was ready: %s)", was_ready)
