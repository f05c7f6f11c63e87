"""
Lifecycle monitoring for CloudFormation stack operations.

A single polling state machine watches the stack after a create, update or
delete has been issued. What counts as success or failure is supplied by a
TerminalPolicy, so deploy and cleanup share the same loop.
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, FrozenSet, List, Optional

from stack_config import DEFAULT_POLL_INTERVAL
from stack_errors import MonitorTimeoutError, StackNotFoundError


class MonitorState(Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class EventSeverity(Enum):
    SUCCESS = "success"
    ERROR = "error"
    INFO = "info"
    PLAIN = "plain"


@dataclass(frozen=True)
class StackEvent:
    """One entry of the stack's event log."""

    timestamp: datetime
    resource_status: str
    resource_type: str
    logical_id: str
    reason: Optional[str] = None

    @classmethod
    def from_api(cls, event: dict) -> "StackEvent":
        return cls(
            timestamp=event["Timestamp"],
            resource_status=event.get("ResourceStatus", ""),
            resource_type=event.get("ResourceType", ""),
            logical_id=event.get("LogicalResourceId", ""),
            reason=event.get("ResourceStatusReason") or None,
        )

    @property
    def severity(self) -> "EventSeverity":
        return classify_event_status(self.resource_status)


def classify_event_status(status: str) -> EventSeverity:
    """Map a resource status to the style it is displayed with.

    Order matters: ROLLBACK_COMPLETE is shown as a completion.
    """
    if status.endswith("COMPLETE"):
        return EventSeverity.SUCCESS
    if status.endswith("FAILED") or "ROLLBACK" in status:
        return EventSeverity.ERROR
    if status.endswith("IN_PROGRESS"):
        return EventSeverity.INFO
    return EventSeverity.PLAIN


@dataclass(frozen=True)
class TerminalPolicy:
    """Decides when a stack status ends the monitoring loop.

    Args:
        name: Operation being watched, used in messages
        succeeded: Statuses that end monitoring successfully
        failed: Statuses that end monitoring with a failure
        absent_is_success: Whether a vanished stack means success (delete)
            or a fatal error (create/update)
    """

    name: str
    succeeded: FrozenSet[str]
    failed: FrozenSet[str]
    absent_is_success: bool = False

    def classify(self, status: Optional[str]) -> MonitorState:
        if not status:
            if self.absent_is_success:
                return MonitorState.SUCCEEDED
            raise StackNotFoundError("Stack not found or unable to get status")
        if status in self.succeeded:
            return MonitorState.SUCCEEDED
        if status in self.failed:
            return MonitorState.FAILED
        return MonitorState.PENDING


# DELETE_COMPLETE while watching a create/update means the operation was aborted
DEPLOY_POLICY = TerminalPolicy(
    name="deploy",
    succeeded=frozenset({"CREATE_COMPLETE", "UPDATE_COMPLETE"}),
    failed=frozenset(
        {
            "CREATE_FAILED",
            "UPDATE_FAILED",
            "ROLLBACK_COMPLETE",
            "UPDATE_ROLLBACK_COMPLETE",
            "DELETE_COMPLETE",
        }
    ),
)

DELETE_POLICY = TerminalPolicy(
    name="delete",
    succeeded=frozenset({"DELETE_COMPLETE"}),
    failed=frozenset({"DELETE_FAILED"}),
    absent_is_success=True,
)


@dataclass
class MonitorResult:
    state: MonitorState
    status: Optional[str]
    polls: int
    events_seen: int

    @property
    def succeeded(self) -> bool:
        return self.state is MonitorState.SUCCEEDED


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class StackMonitor:
    """Polls stack status and new events until a terminal state.

    Polling has no upper bound unless a timeout is given. Interrupting the
    process stops the loop but not the remote stack operation.
    """

    def __init__(
        self,
        client,
        policy: TerminalPolicy,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        timeout: Optional[float] = None,
        on_event: Optional[Callable[[StackEvent], None]] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = _utc_now,
    ):
        """Initialize the monitor.

        Args:
            client: Object with get_stack_status() and get_events_since(cursor),
                normally a StackManager
            policy: Terminal classification to apply
            poll_interval: Seconds to sleep between polls
            timeout: Optional limit in seconds; None polls indefinitely
            on_event: Called once for every new event, oldest first
            sleep: Sleep function
            clock: Returns the current UTC time
        """
        self.client = client
        self.policy = policy
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.on_event = on_event or (lambda event: None)
        self._sleep = sleep
        self._clock = clock
        self.logger = logging.getLogger(__name__)

    def run(self) -> MonitorResult:
        """Poll until the policy reports a terminal state.

        Returns:
            MonitorResult with the final state and raw status

        Raises:
            StackNotFoundError: If the stack vanished and the policy treats
                that as fatal
            MonitorTimeoutError: If a timeout was set and has elapsed
        """
        started = self._clock()
        cursor = started.replace(microsecond=0)
        polls = 0
        events_seen = 0

        self.logger.info(
            f"Monitoring {self.policy.name} (interval={self.poll_interval}s, "
            f"timeout={self.timeout if self.timeout is not None else 'none'})"
        )

        while True:
            status = self.client.get_stack_status()
            polls += 1

            if status:
                events: List[StackEvent] = self.client.get_events_since(cursor)
                for event in events:
                    self.on_event(event)
                if events:
                    # Follow the API's own timestamps, not the local clock
                    cursor = events[-1].timestamp
                    events_seen += len(events)

            self.logger.debug(f"Poll {polls}: status={status or '<absent>'}")
            state = self.policy.classify(status)
            if state is not MonitorState.PENDING:
                self.logger.info(
                    f"{self.policy.name} finished as {state.value} "
                    f"(status={status or '<absent>'}, polls={polls})"
                )
                return MonitorResult(
                    state=state, status=status, polls=polls, events_seen=events_seen
                )

            if self.timeout is not None:
                elapsed = (self._clock() - started).total_seconds()
                if elapsed >= self.timeout:
                    self.logger.error(
                        f"Gave up after {elapsed:.0f}s; last status was {status}"
                    )
                    raise MonitorTimeoutError(
                        f"Stack did not reach a terminal state within {self.timeout:g}s "
                        f"(last status: {status})"
                    )

            self._sleep(self.poll_interval)
