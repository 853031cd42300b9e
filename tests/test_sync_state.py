"""Unit tests for run state tracking."""

import pytest

from pyremotesync.sync.modes import SyncMode
from pyremotesync.sync.operations import TransferOutcome
from pyremotesync.sync.state import StateMachine, SyncPhase, SyncResult, SyncState


def outcome(succeeded=(), failed=()):
    result = TransferOutcome()
    for path in succeeded:
        result.record_success(path)
    for path in failed:
        result.record_failure(path, RuntimeError("boom"))
    return result


class TestStateMachine:
    """Tests for StateMachine class."""

    def test_initial_state(self):
        """Test that a new machine is idle."""
        machine = StateMachine()
        assert machine.state == SyncState.IDLE
        assert machine.history == [SyncState.IDLE]
        assert not machine.is_terminal

    def test_sync_sequence(self):
        """Test the full sync state sequence."""
        machine = StateMachine()
        sequence = [
            SyncState.LISTING,
            SyncState.PLAN_ADDITIONS,
            SyncState.EXEC_ADDITIONS,
            SyncState.PLAN_DELETIONS,
            SyncState.EXEC_DELETIONS,
            SyncState.PLAN_UPDATES,
            SyncState.EXEC_UPDATES,
            SyncState.DONE,
        ]
        for state in sequence:
            machine.advance(state)

        assert machine.history == [SyncState.IDLE] + sequence
        assert machine.is_terminal

    def test_skipping_a_pass_is_rejected(self):
        """Test that passes cannot run out of order."""
        machine = StateMachine()
        machine.advance(SyncState.LISTING)

        with pytest.raises(RuntimeError, match="Invalid state transition"):
            machine.advance(SyncState.PLAN_DELETIONS)

    def test_fail_from_any_running_state(self):
        """Test that a running machine can always fail."""
        machine = StateMachine()
        machine.advance(SyncState.LISTING)
        machine.advance(SyncState.EXEC_BACKUP)

        machine.fail()

        assert machine.state == SyncState.FAILED
        assert machine.is_terminal

    def test_fail_after_done_is_ignored(self):
        """Test that fail() leaves a finished run alone."""
        machine = StateMachine()
        machine.advance(SyncState.LISTING)
        machine.advance(SyncState.EXEC_RESTORE)
        machine.advance(SyncState.DONE)

        machine.fail()

        assert machine.state == SyncState.DONE

    def test_no_transition_out_of_terminal_state(self):
        """Test that terminal states have no successors."""
        machine = StateMachine()
        machine.fail()

        with pytest.raises(RuntimeError):
            machine.advance(SyncState.LISTING)
        with pytest.raises(RuntimeError, match="already finished"):
            machine.advance(SyncState.FAILED)


class TestSyncResult:
    """Tests for SyncResult class."""

    def test_counts(self):
        """Test success and failure totals across phases."""
        result = SyncResult(
            mode=SyncMode.SYNC,
            outcomes={
                SyncPhase.ADDITIONS: outcome(["/a", "/b"], ["/c"]),
                SyncPhase.UPDATES: outcome(["/d"]),
            },
            state=SyncState.DONE,
        )

        assert result.succeeded_count == 3
        assert result.failed_count == 1

    def test_partial_failure_is_tolerated(self):
        """Test tolerant versus strict success."""
        result = SyncResult(
            mode=SyncMode.BACKUP,
            outcomes={SyncPhase.BACKUP: outcome(["/a"], ["/b"])},
            state=SyncState.DONE,
        )

        assert result.succeeded
        assert not result.strict_succeeded
        assert result.exit_code() == 0
        assert result.exit_code(strict=True) == 1

    def test_all_failed(self):
        """Test that a run where every item failed is not a success."""
        result = SyncResult(
            mode=SyncMode.RESTORE,
            outcomes={SyncPhase.RESTORE: outcome(failed=["/a"])},
            state=SyncState.DONE,
        )

        assert not result.succeeded
        assert result.exit_code() == 1

    def test_empty_run_succeeds(self):
        """Test that a run with nothing to do is a success."""
        result = SyncResult(mode=SyncMode.BACKUP, state=SyncState.DONE)

        assert result.succeeded
        assert result.strict_succeeded

    def test_failed_state_never_succeeds(self):
        """Test that a fatal error overrides item results."""
        result = SyncResult(
            mode=SyncMode.SYNC,
            outcomes={SyncPhase.ADDITIONS: outcome(["/a"])},
            state=SyncState.FAILED,
            error="connection lost",
        )

        assert not result.succeeded
        assert not result.strict_succeeded
        assert result.exit_code() == 1

    def test_to_dict(self):
        """Test JSON serialization."""
        result = SyncResult(
            mode=SyncMode.SYNC,
            outcomes={
                SyncPhase.ADDITIONS: outcome(["/a"]),
                SyncPhase.DELETIONS: outcome(failed=["/x"]),
            },
            state=SyncState.DONE,
            dry_run=True,
        )

        assert result.to_dict() == {
            "mode": "sync",
            "state": "done",
            "dry_run": True,
            "succeeded": True,
            "strict_succeeded": False,
            "error": None,
            "phases": {
                "additions": {"succeeded": ["/a"], "failed": {}},
                "deletions": {"succeeded": [], "failed": {"/x": "boom"}},
            },
        }
