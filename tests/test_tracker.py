"""
Unit Tests for the correlated request tracker

Tests for matching untagged engine output to one search, focusing on:
    - Resolution: first score wins, bestmove-only, score beats bestmove
    - Release: one subscription per request, removed on bestmove
    - Isolation: a late reply to an old search never reaches a new one
    - Deadlines and cancellation
"""

import threading
import time

from engine.tracker import (
    OutcomeKind,
    RequestState,
    RequestTracker,
    SearchOutcome,
    WaitMode,
    _PendingRequest,
)
from interface.uci import RawScore
from tests.scripted import Delayed, ScriptedChannel, reply

COMMANDS = ["ucinewgame", "position fen 8/8/8/8/8/8/8/K6k w - - 0 1", "go depth 12"]


def _started(responder):
    return ScriptedChannel(responder).start()


def _exit_soon(channel, seconds):
    """Responder: the engine dies shortly after receiving "go"."""
    threading.Timer(seconds, channel.close_output).start()


class TestResolution:
    """Tests for which line decides the outcome."""

    def test_first_score_wins(self):
        channel = _started(lambda fen, go: [
            "info depth 1 score cp 20",
            "info depth 2 score cp 35",
            "bestmove e2e4",
        ])
        outcome = RequestTracker(channel).run(COMMANDS, timeout=1.0)

        assert outcome.kind is OutcomeKind.SCORE
        assert outcome.raw == RawScore("cp", 20)

    def test_bestmove_without_score(self):
        channel = _started(lambda fen, go: ["bestmove (none)"])
        outcome = RequestTracker(channel).run(COMMANDS, timeout=1.0)

        assert outcome.kind is OutcomeKind.NO_SCORE
        assert outcome.best_move is None

    def test_mate_score(self):
        channel = _started(lambda fen, go: reply(mate=-3))
        outcome = RequestTracker(channel).run(COMMANDS, timeout=1.0)

        assert outcome.kind is OutcomeKind.MATE
        assert outcome.raw == RawScore("mate", -3)

    def test_bestmove_mode_keeps_last_score_and_move(self):
        channel = _started(lambda fen, go: [
            "info depth 1 score cp 20",
            "info depth 2 score cp 35",
            "bestmove g1f3 ponder g8f6",
        ])
        outcome = RequestTracker(channel).run(COMMANDS, timeout=1.0, mode=WaitMode.BESTMOVE)

        assert outcome.raw == RawScore("cp", 35)
        assert outcome.best_move == "g1f3"

    def test_noise_and_malformed_lines_ignored(self):
        channel = _started(lambda fen, go: [
            "info string hello",
            "info depth 1 score cp nonsense",
            "readyok",
            "info depth 2 score cp -7",
            "bestmove e2e4",
        ])
        outcome = RequestTracker(channel).run(COMMANDS, timeout=1.0)

        assert outcome.raw == RawScore("cp", -7)

    def test_commands_sent_in_order(self):
        channel = _started(lambda fen, go: reply(cp=0))
        RequestTracker(channel).run(COMMANDS, timeout=1.0)

        assert channel.sent[-3:] == COMMANDS

    def test_single_transition(self):
        request = _PendingRequest(WaitMode.FIRST_SCORE)

        assert request.resolve(SearchOutcome(OutcomeKind.SCORE))
        assert not request.resolve(SearchOutcome(OutcomeKind.TIMED_OUT))
        assert request.state is RequestState.RESOLVED
        assert request.outcome.kind is OutcomeKind.SCORE


class TestRelease:
    """Tests for listener teardown."""

    def test_no_listener_left_after_bestmove(self):
        channel = _started(lambda fen, go: reply(cp=10))
        tracker = RequestTracker(channel)

        for _ in range(5):
            tracker.run(COMMANDS, timeout=1.0)

        assert channel.subscriber_count == 0
        assert not tracker.busy

    def test_engine_exit_is_engine_error(self):
        channel = _started(lambda fen, go: _exit_soon(channel, 0.1))

        outcome = RequestTracker(channel).run(COMMANDS, timeout=5.0)

        assert outcome.kind is OutcomeKind.ENGINE_ERROR
        assert channel.subscriber_count == 0

    def test_listener_gone_when_run_returns(self):
        """On bestmove and on engine exit the subscription closes before run() returns."""
        for _ in range(20):
            channel = _started(lambda fen, go: Delayed(0.01, ["bestmove (none)"]))
            RequestTracker(channel).run(COMMANDS, timeout=5.0)
            assert channel.subscriber_count == 0

            channel = _started(lambda fen, go: _exit_soon(channel, 0.01))
            RequestTracker(channel).run(COMMANDS, timeout=5.0)
            assert channel.subscriber_count == 0


class TestDeadlines:
    """Tests for the deadline race and cancellation."""

    def test_silent_engine_times_out(self):
        channel = _started(lambda fen, go: None)
        start = time.monotonic()

        outcome = RequestTracker(channel).run(COMMANDS, timeout=0.2)

        assert outcome.kind is OutcomeKind.TIMED_OUT
        assert time.monotonic() - start < 0.2 + 0.5

    def test_timeout_does_not_stop_engine(self):
        channel = _started(lambda fen, go: None)
        RequestTracker(channel).run(COMMANDS, timeout=0.1)

        assert "stop" not in channel.sent

    def test_late_score_after_timeout_is_dropped(self):
        channel = _started(lambda fen, go: Delayed(0.3, ["info depth 9 score cp 500", "bestmove e2e4"]))
        tracker = RequestTracker(channel)

        outcome = tracker.run(COMMANDS, timeout=0.1)
        assert outcome.kind is OutcomeKind.TIMED_OUT
        assert tracker.busy

        time.sleep(0.5)
        assert outcome.kind is OutcomeKind.TIMED_OUT
        assert not tracker.busy
        assert channel.subscriber_count == 0

    def test_cancel_sends_stop(self):
        channel = _started(lambda fen, go: None)
        stop_event = threading.Event()
        threading.Timer(0.1, stop_event.set).start()
        start = time.monotonic()

        outcome = RequestTracker(channel).run(COMMANDS, timeout=5.0, stop_event=stop_event)

        assert outcome.kind is OutcomeKind.CANCELLED
        assert time.monotonic() - start < 1.0
        assert channel.sent[-1] == "stop"
        assert channel.subscriber_count == 0

    def test_already_cancelled_sends_nothing(self):
        channel = _started(lambda fen, go: reply(cp=10))
        stop_event = threading.Event()
        stop_event.set()

        outcome = RequestTracker(channel).run(COMMANDS, timeout=1.0, stop_event=stop_event)

        assert outcome.kind is OutcomeKind.CANCELLED
        assert channel.sent == ["uci"]
        assert channel.subscriber_count == 0

    def test_cancelled_while_waiting_for_release(self):
        channel = _started(lambda fen, go: None)
        tracker = RequestTracker(channel)
        tracker.run(COMMANDS, timeout=0.1)
        assert tracker.busy

        stop_event = threading.Event()
        threading.Timer(0.1, stop_event.set).start()
        outcome = tracker.run(COMMANDS, timeout=5.0, stop_event=stop_event)

        assert outcome.kind is OutcomeKind.CANCELLED
        assert channel.go_count() == 1


class TestIsolation:
    """A request only ever sees lines produced after its own search began."""

    def test_late_reply_goes_to_old_request(self):
        replies = iter([None, reply(cp=50)])
        channel = _started(lambda fen, go: next(replies))
        tracker = RequestTracker(channel)

        first = tracker.run(COMMANDS, timeout=0.1)
        assert first.kind is OutcomeKind.TIMED_OUT

        result = {}
        second = threading.Thread(target=lambda: result.update(outcome=tracker.run(COMMANDS, timeout=5.0)))
        second.start()

        # The second search must not start while the first still holds the engine.
        time.sleep(0.2)
        assert channel.go_count() == 1

        # The first search finally answers, with a score the second must never see.
        channel.emit("info depth 20 score cp 999", "bestmove a1a2")
        second.join(5.0)

        assert channel.go_count() == 2
        assert result["outcome"].raw == RawScore("cp", 50)
        assert channel.subscriber_count == 0

    def test_busy_engine_times_out_without_sending(self):
        channel = _started(lambda fen, go: None)
        tracker = RequestTracker(channel)

        tracker.run(COMMANDS, timeout=0.1)
        sent_before = len(channel.sent)
        outcome = tracker.run(COMMANDS, timeout=0.1)

        assert outcome.kind is OutcomeKind.TIMED_OUT
        assert len(channel.sent) == sent_before
