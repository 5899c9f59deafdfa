"""
Protocol transceiver: serialised command/response exchanges with the engine.

A UCI engine has one output stream and tags nothing with a request id. If two
callers read from it at the same time, each steals the other's lines. The
Transceiver therefore owns the read side of the stream and lets exactly one
exchange run at a time; everyone else queues on an asyncio.Lock (FIFO).

Exchange shapes:
    request(cmd, until, budget)   — write cmd, collect lines until one satisfies
                                    ``until`` or the deadline passes.
    send_and_drain(cmd, window)   — write a command that has no terminator
                                    ("position ...") and collect whatever
                                    arrives during a short quiescence window.
    exchange(setup, cmd, ...)     — both of the above under one hold, so a
                                    position and its "go" can never be split
                                    by another caller.

Timeouts never raise. A timed-out request returns the lines it saw with
completed=False, and the engine is told to "stop". Before the next exchange
the transceiver sends "isready" and discards everything up to "readyok", so
the abandoned search's late "bestmove" is not mistaken for the next answer.
"""

import asyncio
import contextlib
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from sparring.constants import BEST_MOVE, READY_OK, RESYNC_TIMEOUT_S, SETUP_QUIESCENCE_S
from sparring.process import EngineProcess, EngineUnavailableError

_log = logging.getLogger(__name__)

TerminatorPredicate = Callable[[str], bool]


def is_bestmove(line: str) -> bool:
    """Terminator for "go" requests."""
    tokens = line.split()
    return bool(tokens) and tokens[0] == BEST_MOVE


class Deadline:
    """Absolute expiry for one read, measured on the monotonic clock."""

    __slots__ = ("expires_at",)

    def __init__(self, budget: float) -> None:
        self.expires_at = time.monotonic() + max(0.0, budget)

    def remaining(self) -> float:
        return max(0.0, self.expires_at - time.monotonic())

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0.0


@dataclass
class RawOutput:
    """
    Lines collected for one exchange.

    Attributes:
        lines:     Engine output in arrival order.
        completed: True if the terminator line was seen. False after a
                   timeout or engine exit; the lines are still usable.
    """

    lines: list[str] = field(default_factory=list)
    completed: bool = False


class Transceiver:
    """
    Single-flight reader/writer over one EngineProcess.

    Attributes:
        resync_timeout: Upper bound for the "isready" round trip that follows
                        a timed-out request.
    """

    def __init__(self, process: EngineProcess, *, resync_timeout: float = RESYNC_TIMEOUT_S) -> None:
        self.resync_timeout = resync_timeout
        self._process = process
        self._lock = asyncio.Lock()
        self._needs_resync = False

    @property
    def busy(self) -> bool:
        """True while an exchange holds the output stream."""
        return self._lock.locked()

    # -----------------------------------------------------------------------
    # Public exchanges
    # -----------------------------------------------------------------------

    async def send(self, command: str) -> None:
        """Write one line without reading anything back."""
        await self._process.send(command)

    async def request(
        self,
        command: str,
        until: TerminatorPredicate,
        time_budget: float,
    ) -> RawOutput:
        """
        Write ``command`` and accumulate output until ``until`` or timeout.

        Raises:
            EngineUnavailableError: The engine is not running.
        """
        async with self._lock:
            await self._prepare()
            return await self._request(command, until, Deadline(time_budget))

    async def send_and_drain(self, command: str, window: float = SETUP_QUIESCENCE_S) -> RawOutput:
        """
        Write ``command`` and return whatever arrives within ``window`` seconds.

        Raises:
            EngineUnavailableError: The engine is not running.
        """
        async with self._lock:
            await self._prepare()
            return await self._drain(command, window)

    async def exchange(
        self,
        setup: str,
        command: str,
        until: TerminatorPredicate,
        time_budget: float,
        *,
        window: float = SETUP_QUIESCENCE_S,
    ) -> RawOutput:
        """
        Run a setup command and a request back to back under one hold.

        Only the request's lines are returned; setup output is logged and
        dropped.

        Raises:
            EngineUnavailableError: The engine is not running.
        """
        async with self._lock:
            await self._prepare()
            setup_output = await self._drain(setup, window)
            if setup_output.lines:
                _log.debug("Setup %r produced %d lines", setup, len(setup_output.lines))
            return await self._request(command, until, Deadline(time_budget))

    # -----------------------------------------------------------------------
    # Internal helpers (caller holds the lock)
    # -----------------------------------------------------------------------

    async def _prepare(self) -> None:
        stale = self._process.discard_pending()
        if stale:
            _log.debug("Discarded %d stale engine lines", len(stale))
        if not self._needs_resync or not self._process.running:
            return

        await self._process.send("isready")
        synced = await self._collect(Deadline(self.resync_timeout), lambda line: line == READY_OK)
        self._needs_resync = not synced.completed
        if synced.completed:
            _log.debug("Resynchronised engine stream (%d lines dropped)", len(synced.lines) - 1)
        else:
            _log.warning("Engine did not answer isready within %.1fs", self.resync_timeout)

    async def _request(self, command: str, until: TerminatorPredicate, deadline: Deadline) -> RawOutput:
        await self._process.send(command)
        output = await self._collect(deadline, until)
        if output.completed:
            return output

        _log.warning(
            "No terminator for %r before deadline; using %d partial lines",
            command,
            len(output.lines),
        )
        if self._process.running:
            self._needs_resync = True
            with contextlib.suppress(EngineUnavailableError):
                await self._process.send("stop")
        return output

    async def _drain(self, command: str, window: float) -> RawOutput:
        await self._process.send(command)
        return await self._collect(Deadline(window), None)

    async def _collect(self, deadline: Deadline, until: TerminatorPredicate | None) -> RawOutput:
        output = RawOutput()
        while True:
            try:
                line = await self._process.read_line(deadline.remaining())
            except asyncio.TimeoutError:
                return output
            if line is None:
                # Process exited; whatever we have is all there will be.
                return output
            output.lines.append(line)
            if until is not None and until(line):
                output.completed = True
                return output
