"""
Engine channel: owns the one long-lived UCI engine process.

The channel is the only object that touches the engine's pipes. Everything
else talks to the engine through three calls:

    send(line)        write one command line, fire-and-forget
    subscribe(cb)     receive every output line produced from now on
    stop()            release the process (idempotent)

Threading model:
    A daemon reader thread blocks on the engine's stdout and pushes each
    line to a snapshot of the current subscribers. Callers never block on
    the pipe themselves; they wait on their own events (see engine.tracker).
    The subscriber list is guarded by a lock so subscribe/close can run on
    the caller's thread while the reader dispatches.

Session lifecycle:
    UNINITIALIZED → HANDSHAKING → READY → (SEARCHING ⇄ READY) → TERMINATED

Start failures never raise from the constructor or from start(). They are
remembered and surfaced as EngineUnavailable by the first send(), which in
practice is the first search a caller attempts.
"""

import enum
import logging
import subprocess
import threading
from typing import Callable, Sequence

from engine.constants import QUIT_GRACE_TIMEOUT, READER_JOIN_TIMEOUT
from engine.errors import EngineUnavailable
from interface import uci

_log = logging.getLogger(__name__)

LineCallback = Callable[[str], None]
CloseCallback = Callable[[], None]


class SessionState(enum.Enum):
    UNINITIALIZED = "uninitialized"
    HANDSHAKING = "handshaking"
    READY = "ready"
    SEARCHING = "searching"
    TERMINATED = "terminated"


class Subscription:
    """
    One listener on the channel's line stream.

    Returned by EngineChannel.subscribe(). close() removes the listener and
    may be called any number of times, from any thread, including from
    inside the listener's own callback.
    """

    def __init__(
        self,
        channel: "EngineChannel",
        on_line: LineCallback,
        on_close: CloseCallback | None,
    ) -> None:
        self._channel = channel
        self.on_line = on_line
        self.on_close = on_close
        self.closed = False

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._channel._unsubscribe(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class EngineChannel:
    """
    A UCI engine process plus the thread that reads its output.

    Use as a context manager for scoped acquisition:

        with EngineChannel(["stockfish"]) as channel:
            ...

    Attributes:
        command: argv used to spawn the engine.
        state:   Current SessionState.
    """

    def __init__(self, command: Sequence[str]) -> None:
        self.command: list[str] = list(command)
        self.state: SessionState = SessionState.UNINITIALIZED
        self._proc: subprocess.Popen | None = None
        self._reader: threading.Thread | None = None
        self._subscribers: list[Subscription] = []
        self._lock = threading.Lock()
        self._write_lock = threading.Lock()
        self._start_error: Exception | None = None

    # -----------------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------------

    def start(self) -> "EngineChannel":
        """
        Spawn the engine and send the "uci" handshake.

        Calling start() on a running channel is a no-op. A failed spawn is
        logged and remembered; the next send() raises EngineUnavailable.
        """
        if self.state is not SessionState.UNINITIALIZED:
            return self

        try:
            self._proc = subprocess.Popen(
                self.command,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.DEVNULL,
                text=True,
                bufsize=1,
            )
        except OSError as exc:
            _log.error("Could not start engine %s: %s", self.command, exc)
            self._start_error = exc
            self.state = SessionState.TERMINATED
            return self

        self.state = SessionState.HANDSHAKING
        self._reader = threading.Thread(
            target=self._read_loop,
            name="engine-reader",
            daemon=True,
        )
        self._reader.start()
        _log.info("Engine started: %s (pid %d)", self.command, self._proc.pid)

        try:
            self.send(uci.handshake_command())
        except EngineUnavailable as exc:
            _log.error("Engine handshake failed: %s", exc)
        return self

    def stop(self) -> None:
        """
        Release the engine process. Safe to call repeatedly, or before start().
        """
        proc = self._proc
        self._proc = None
        self.state = SessionState.TERMINATED
        if proc is None:
            return

        try:
            proc.stdin.write(uci.quit_command() + "\n")
            proc.stdin.flush()
        except (OSError, ValueError):
            # Pipe already closed: the engine is gone.
            pass

        try:
            proc.wait(timeout=QUIT_GRACE_TIMEOUT)
        except subprocess.TimeoutExpired:
            _log.warning("Engine did not quit in %.1fs; killing it", QUIT_GRACE_TIMEOUT)
            proc.kill()
            proc.wait()

        # The reader sees EOF once the process is gone; close the pipes after it.
        if self._reader is not None and self._reader is not threading.current_thread():
            self._reader.join(timeout=READER_JOIN_TIMEOUT)
        self._reader = None

        for stream in (proc.stdin, proc.stdout):
            try:
                stream.close()
            except (OSError, ValueError):
                pass
        _log.info("Engine stopped")

    def __enter__(self) -> "EngineChannel":
        return self.start()

    def __exit__(self, *exc_info) -> None:
        self.stop()

    @property
    def is_alive(self) -> bool:
        return self.state not in (SessionState.UNINITIALIZED, SessionState.TERMINATED)

    # -----------------------------------------------------------------------
    # Commands
    # -----------------------------------------------------------------------

    def send(self, line: str) -> None:
        """
        Write one command line to the engine.

        Raises:
            EngineUnavailable: The channel was never started, failed to
                               start, or the engine has exited.
        """
        proc = self._proc
        if proc is None or self.state is SessionState.TERMINATED:
            if self._start_error is not None:
                raise EngineUnavailable(
                    f"engine {self.command} failed to start: {self._start_error}"
                ) from self._start_error
            raise EngineUnavailable(f"engine {self.command} is not running")

        # Before the write: the reader may see "bestmove" before write() returns.
        if line.startswith("go"):
            self.state = SessionState.SEARCHING

        _log.debug(">> %s", line)
        try:
            with self._write_lock:
                proc.stdin.write(line + "\n")
                proc.stdin.flush()
        except (OSError, ValueError) as exc:
            self.state = SessionState.TERMINATED
            raise EngineUnavailable(f"engine {self.command} closed its input") from exc

    # -----------------------------------------------------------------------
    # Line stream
    # -----------------------------------------------------------------------

    def subscribe(
        self,
        on_line: LineCallback,
        on_close: CloseCallback | None = None,
    ) -> Subscription:
        """
        Register a listener for engine output lines.

        The listener sees every line read after this call returns. Callbacks
        run on the reader thread and must not block.

        Args:
            on_line:  Called with each stripped, non-empty output line.
            on_close: Called once if the engine's output ends while the
                      subscription is still open.
        """
        subscription = Subscription(self, on_line, on_close)
        with self._lock:
            self._subscribers.append(subscription)
        return subscription

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def _unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscribers:
                self._subscribers.remove(subscription)

    def _dispatch(self, line: str) -> None:
        if self.state is SessionState.HANDSHAKING and uci.is_handshake_done(line):
            self.state = SessionState.READY
        elif self.state is SessionState.SEARCHING and uci.is_bestmove(line):
            self.state = SessionState.READY

        with self._lock:
            subscribers = list(self._subscribers)
        for subscription in subscribers:
            if subscription.closed:
                continue
            try:
                subscription.on_line(line)
            except Exception:
                # A broken listener must not kill the reader for everyone else.
                _log.exception("Engine line listener failed on %r", line)

    def _read_loop(self) -> None:
        proc = self._proc
        if proc is None:
            return
        try:
            for raw_line in proc.stdout:
                line = raw_line.strip()
                if line:
                    _log.debug("<< %s", line)
                    self._dispatch(line)
        except (OSError, ValueError):
            # stdout closed underneath us by stop().
            pass

        self.state = SessionState.TERMINATED
        with self._lock:
            subscribers = list(self._subscribers)
        for subscription in subscribers:
            if subscription.on_close is not None and not subscription.closed:
                subscription.on_close()
