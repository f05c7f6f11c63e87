from datetime import datetime, timedelta, timezone

import pytest

from stack_errors import MonitorTimeoutError, StackNotFoundError
from stack_monitor import (
    DELETE_POLICY,
    DEPLOY_POLICY,
    EventSeverity,
    MonitorState,
    StackEvent,
    StackMonitor,
    classify_event_status,
)

T0 = datetime(2025, 9, 1, 12, 0, 0, 750000, tzinfo=timezone.utc)
START = T0.replace(microsecond=0)


def make_event(seconds, status="CREATE_IN_PROGRESS", logical_id="Instance", reason=None):
    return StackEvent(
        timestamp=START + timedelta(seconds=seconds),
        resource_status=status,
        resource_type="AWS::EC2::Instance",
        logical_id=logical_id,
        reason=reason,
    )


class ScriptedStack:
    """Stands in for StackManager with a fixed status sequence and event log."""

    def __init__(self, statuses, events=()):
        self.statuses = list(statuses)
        self.events = list(events)
        self.cursors = []

    def get_stack_status(self):
        return self.statuses.pop(0)

    def get_events_since(self, cursor):
        self.cursors.append(cursor)
        return [event for event in self.events if event.timestamp > cursor]


class TestStackMonitor:
    """Test cases for the polling state machine."""

    @pytest.fixture
    def sleeps(self):
        return []

    def make_monitor(self, stack, policy, sleeps, emitted=None, **kwargs):
        return StackMonitor(
            stack,
            policy,
            on_event=(emitted.append if emitted is not None else None),
            sleep=sleeps.append,
            clock=lambda: T0,
            **kwargs,
        )

    def test_deploy_succeeds_after_three_polls(self, sleeps):
        """Test that CREATE_COMPLETE on the third poll ends successfully."""
        events = [make_event(1), make_event(2, "CREATE_COMPLETE")]
        stack = ScriptedStack(
            ["CREATE_IN_PROGRESS", "CREATE_IN_PROGRESS", "CREATE_COMPLETE"], events
        )
        emitted = []

        result = self.make_monitor(stack, DEPLOY_POLICY, sleeps, emitted).run()

        assert result.state is MonitorState.SUCCEEDED
        assert result.status == "CREATE_COMPLETE"
        assert result.polls == 3
        assert sleeps == [5, 5]

    def test_each_event_emitted_once(self, sleeps):
        """Test that re-polling with the same cursor never repeats events."""
        events = [make_event(1), make_event(2, "CREATE_COMPLETE")]
        stack = ScriptedStack(
            ["CREATE_IN_PROGRESS", "CREATE_IN_PROGRESS", "CREATE_COMPLETE"], events
        )
        emitted = []

        result = self.make_monitor(stack, DEPLOY_POLICY, sleeps, emitted).run()

        assert emitted == events
        assert result.events_seen == 2

    def test_cursor_follows_event_timestamps(self, sleeps):
        """Test the cursor starts at the truncated clock and tracks the last event."""
        stack = ScriptedStack(
            ["CREATE_IN_PROGRESS", "CREATE_IN_PROGRESS", "CREATE_COMPLETE"],
            [make_event(1), make_event(4)],
        )

        self.make_monitor(stack, DEPLOY_POLICY, sleeps).run()

        later = START + timedelta(seconds=4)
        assert stack.cursors == [START, later, later]

    def test_events_before_start_are_ignored(self, sleeps):
        stack = ScriptedStack(["CREATE_COMPLETE"], [make_event(-30), make_event(0)])
        emitted = []

        self.make_monitor(stack, DEPLOY_POLICY, sleeps, emitted).run()

        assert emitted == []

    def test_deploy_rollback_fails(self, sleeps):
        """Test that ROLLBACK_COMPLETE is a failed deployment."""
        stack = ScriptedStack(["CREATE_IN_PROGRESS", "ROLLBACK_COMPLETE"])

        result = self.make_monitor(stack, DEPLOY_POLICY, sleeps).run()

        assert result.state is MonitorState.FAILED
        assert result.polls == 2
        assert not result.succeeded

    @pytest.mark.parametrize(
        "status",
        ["CREATE_FAILED", "UPDATE_FAILED", "UPDATE_ROLLBACK_COMPLETE", "DELETE_COMPLETE"],
    )
    def test_deploy_failure_statuses(self, sleeps, status):
        result = self.make_monitor(ScriptedStack([status]), DEPLOY_POLICY, sleeps).run()

        assert result.state is MonitorState.FAILED

    def test_update_complete_succeeds(self, sleeps):
        stack = ScriptedStack(["UPDATE_IN_PROGRESS", "UPDATE_COMPLETE"])

        assert self.make_monitor(stack, DEPLOY_POLICY, sleeps).run().succeeded

    def test_deploy_absent_stack_is_fatal(self, sleeps):
        """Test that a vanished stack during deploy raises."""
        stack = ScriptedStack(["CREATE_IN_PROGRESS", None])

        with pytest.raises(StackNotFoundError, match="Stack not found"):
            self.make_monitor(stack, DEPLOY_POLICY, sleeps).run()

    def test_delete_absent_stack_succeeds(self, sleeps):
        """Test that a vanished stack during delete means success."""
        stack = ScriptedStack(["DELETE_IN_PROGRESS", None])

        result = self.make_monitor(stack, DELETE_POLICY, sleeps).run()

        assert result.state is MonitorState.SUCCEEDED
        assert result.status is None
        assert result.polls == 2
        # No event lookup once the stack is gone
        assert len(stack.cursors) == 1

    def test_delete_failed(self, sleeps):
        stack = ScriptedStack(["DELETE_IN_PROGRESS", "DELETE_FAILED"])

        result = self.make_monitor(stack, DELETE_POLICY, sleeps).run()

        assert result.state is MonitorState.FAILED

    def test_poll_interval_is_used(self, sleeps):
        stack = ScriptedStack(["CREATE_IN_PROGRESS", "CREATE_COMPLETE"])

        self.make_monitor(stack, DEPLOY_POLICY, sleeps, poll_interval=10).run()

        assert sleeps == [10]

    def test_timeout(self, sleeps):
        """Test that the optional timeout stops an endless operation."""
        ticks = iter([T0, T0 + timedelta(seconds=3), T0 + timedelta(seconds=6)])
        stack = ScriptedStack(["CREATE_IN_PROGRESS"] * 3)
        monitor = StackMonitor(
            stack, DEPLOY_POLICY, timeout=5, sleep=sleeps.append, clock=lambda: next(ticks)
        )

        with pytest.raises(MonitorTimeoutError, match="within 5s"):
            monitor.run()

        assert len(sleeps) == 1


class TestEventClassification:
    """Test cases for event display severity."""

    @pytest.mark.parametrize(
        "status,expected",
        [
            ("CREATE_COMPLETE", EventSeverity.SUCCESS),
            ("DELETE_COMPLETE", EventSeverity.SUCCESS),
            ("ROLLBACK_COMPLETE", EventSeverity.SUCCESS),
            ("CREATE_FAILED", EventSeverity.ERROR),
            ("UPDATE_ROLLBACK_IN_PROGRESS", EventSeverity.ERROR),
            ("ROLLBACK_IN_PROGRESS", EventSeverity.ERROR),
            ("CREATE_IN_PROGRESS", EventSeverity.INFO),
            ("DELETE_SKIPPED", EventSeverity.PLAIN),
        ],
    )
    def test_classify_event_status(self, status, expected):
        assert classify_event_status(status) is expected

    def test_event_from_api(self):
        raw = {
            "Timestamp": START,
            "ResourceStatus": "CREATE_FAILED",
            "ResourceType": "AWS::EC2::Instance",
            "LogicalResourceId": "Instance",
            "ResourceStatusReason": "Insufficient capacity",
        }

        event = StackEvent.from_api(raw)

        assert event.logical_id == "Instance"
        assert event.reason == "Insufficient capacity"
        assert event.severity is EventSeverity.ERROR
