"""
Scripted UCI engine: a deterministic stand-in for Stockfish.

Speaks enough of the UCI protocol for the orchestration layer to be tested
against a real child process: handshake, MultiPV, "position fen", "go",
"stop", "isready", "quit". Its "search" is a one-ply material count, so every
number it prints can be predicted from the position alone.

Scoring rules (centipawns, for the side to move in the searched position):
    - Each legal move m is scored as the material balance after m, seen by
      the player who made m. A move that delivers checkmate scores "mate 1".
    - Lines are reported best-first, one per MultiPV rank, repeated for
      depths 1..min(requested depth, 3).
    - A position with no legal moves reports "depth 0 score mate 0" when
      checkmated, "score cp 0" when stalemated, then "bestmove (none)".

Fault injection (command-line flags):
    --handshake-delay S   Sleep S seconds before answering "uci".
    --mute-go N           For the first N "go" commands, print the info lines
                          but hold back "bestmove" until "stop" arrives.
    --exit-on-go N        Exit abruptly (status 3) on the N-th "go".

Critical rule: NEVER print to stdout except for valid UCI responses.
Diagnostics go to stderr.
"""

import argparse
import os
import sys
import time

import chess

# Material values in centipawns. Kings never leave the board.
_PIECE_CP: dict[int, int] = {
    chess.PAWN: 100,
    chess.KNIGHT: 320,
    chess.BISHOP: 330,
    chess.ROOK: 500,
    chess.QUEEN: 900,
    chess.KING: 0,
}

_MAX_REPORTED_DEPTH = 3


def _send(line: str) -> None:
    """Write one UCI response line and flush immediately."""
    print(line, flush=True)


def _log(message: str) -> None:
    """Write a diagnostic line to stderr."""
    print(message, file=sys.stderr, flush=True)


def material(board: chess.Board, color: chess.Color) -> int:
    """Material balance in centipawns from ``color``'s point of view."""
    total = 0
    for piece_type, value in _PIECE_CP.items():
        total += value * len(board.pieces(piece_type, color))
        total -= value * len(board.pieces(piece_type, not color))
    return total


def score_moves(board: chess.Board) -> list[tuple[chess.Move, str, int]]:
    """
    One-ply score for every legal move, best first.

    Returns:
        (move, kind, value) triples where kind is "cp" or "mate". Ties keep
        python-chess's legal move generation order.
    """
    scored = []
    for move in board.legal_moves:
        mover = board.turn
        board.push(move)
        if board.is_checkmate():
            scored.append((move, "mate", 1))
        else:
            scored.append((move, "cp", material(board, mover)))
        board.pop()

    def _key(entry: tuple[chess.Move, str, int]) -> int:
        _, kind, value = entry
        return 1_000_000 if kind == "mate" else value

    return sorted(scored, key=_key, reverse=True)


class ScriptedHandler:
    """
    Stateful UCI handler with optional fault injection.

    Attributes:
        board:           Position set by the last "position" command.
        multipv:         Ranked-lines count set through setoption.
        mute_go:         Number of remaining "go" commands without bestmove.
        exit_on_go:      1-based "go" count at which to exit; 0 = never.
        go_count:        "go" commands received so far.
        held_bestmove:   Bestmove line withheld by a muted search.
    """

    def __init__(self, *, handshake_delay: float = 0.0, mute_go: int = 0, exit_on_go: int = 0) -> None:
        self.board = chess.Board()
        self.multipv = 1
        self.handshake_delay = handshake_delay
        self.mute_go = mute_go
        self.exit_on_go = exit_on_go
        self.go_count = 0
        self.held_bestmove: str | None = None

    # -----------------------------------------------------------------------
    # Command handlers
    # -----------------------------------------------------------------------

    def handle_uci(self) -> None:
        if self.handshake_delay:
            time.sleep(self.handshake_delay)
        _send("id name ScriptedEngine")
        _send("id author Chess Sparring")
        _send("option name MultiPV type spin default 1 min 1 max 500")
        _send("uciok")

    def handle_isready(self) -> None:
        _send("readyok")

    def handle_setoption(self, tokens: list[str]) -> None:
        # setoption name <name> value <value>
        if "name" not in tokens or "value" not in tokens:
            return
        name = " ".join(tokens[tokens.index("name") + 1:tokens.index("value")])
        value = " ".join(tokens[tokens.index("value") + 1:])
        if name.lower() == "multipv":
            try:
                self.multipv = max(1, int(value))
            except ValueError:
                _log(f"scripted: bad MultiPV value {value!r}")

    def handle_position(self, tokens: list[str]) -> None:
        """
        Apply "position startpos|fen <FEN> [moves ...]".
        """
        if not tokens:
            return
        if tokens[0] == "startpos":
            self.board = chess.Board()
            rest = tokens[1:]
        elif tokens[0] == "fen":
            if "moves" in tokens:
                idx = tokens.index("moves")
                fen, rest = " ".join(tokens[1:idx]), tokens[idx:]
            else:
                fen, rest = " ".join(tokens[1:]), []
            self.board = chess.Board(fen)
        else:
            _log(f"scripted: unknown position type: {tokens[0]}")
            return
        if rest and rest[0] == "moves":
            for uci in rest[1:]:
                self.board.push_uci(uci)

    def handle_go(self, tokens: list[str]) -> None:
        self.go_count += 1
        if self.exit_on_go and self.go_count >= self.exit_on_go:
            _log("scripted: exiting on go as instructed")
            sys.stdout.flush()
            os._exit(3)

        depth = _MAX_REPORTED_DEPTH
        if "depth" in tokens:
            try:
                depth = int(tokens[tokens.index("depth") + 1])
            except (IndexError, ValueError):
                pass
        depth = max(1, min(depth, _MAX_REPORTED_DEPTH))

        bestmove = self._report(depth)
        if self.mute_go > 0:
            self.mute_go -= 1
            self.held_bestmove = bestmove
            return
        _send(bestmove)

    def handle_stop(self) -> None:
        if self.held_bestmove is not None:
            _send(self.held_bestmove)
            self.held_bestmove = None

    # -----------------------------------------------------------------------
    # Internal helpers
    # -----------------------------------------------------------------------

    def _report(self, depth: int) -> str:
        """Print the info lines for the current position; return the bestmove line."""
        scored = score_moves(self.board)
        if not scored:
            kind, value = ("mate", 0) if self.board.is_checkmate() else ("cp", 0)
            _send(f"info depth 0 score {kind} {value}")
            return "bestmove (none)"

        for d in range(1, depth + 1):
            for rank, (move, kind, value) in enumerate(scored[:self.multipv], start=1):
                _send(
                    f"info depth {d} seldepth {d} multipv {rank} score {kind} {value} "
                    f"nodes {len(scored) * d} nps 1000 time 1 pv {move.uci()}"
                )
        return f"bestmove {scored[0][0].uci()}"


def run_loop(handler: ScriptedHandler) -> None:
    """Read commands from stdin until "quit" or EOF."""
    for raw_line in sys.stdin:
        tokens = raw_line.split()
        if not tokens:
            continue
        command, args = tokens[0], tokens[1:]
        try:
            if command == "uci":
                handler.handle_uci()
            elif command == "isready":
                handler.handle_isready()
            elif command == "setoption":
                handler.handle_setoption(args)
            elif command == "ucinewgame":
                handler.board = chess.Board()
            elif command == "position":
                handler.handle_position(args)
            elif command == "go":
                handler.handle_go(args)
            elif command == "stop":
                handler.handle_stop()
            elif command == "quit":
                return
            else:
                _log(f"scripted: ignoring unknown command: {command!r}")
        except ValueError as e:
            _log(f"scripted: error for command {command!r}: {e}")


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Deterministic UCI engine for tests")
    parser.add_argument("--handshake-delay", type=float, default=0.0)
    parser.add_argument("--mute-go", type=int, default=0)
    parser.add_argument("--exit-on-go", type=int, default=0)
    args = parser.parse_args(argv)
    run_loop(
        ScriptedHandler(
            handshake_delay=args.handshake_delay,
            mute_go=args.mute_go,
            exit_on_go=args.exit_on_go,
        )
    )


if __name__ == "__main__":
    main()
