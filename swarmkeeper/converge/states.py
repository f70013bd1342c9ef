"""Lifecycle states of swarm tasks and their ordering."""

from enum import Enum


class TaskState(str, Enum):
    """States a swarm task passes through, in lifecycle order.

    Any state string the daemon reports that is not listed here parses
    as ``UNKNOWN``, which ranks 0 and is never acted upon.
    """
    UNKNOWN = "unknown"
    NEW = "new"
    ALLOCATED = "allocated"
    PENDING = "pending"
    ASSIGNED = "assigned"
    ACCEPTED = "accepted"
    PREPARING = "preparing"
    READY = "ready"
    STARTING = "starting"
    RUNNING = "running"
    COMPLETE = "complete"
    SHUTDOWN = "shutdown"
    FAILED = "failed"
    REJECTED = "rejected"

    @classmethod
    def _missing_(cls, value):
        return cls.UNKNOWN

    @property
    def rank(self) -> int:
        return _RANKS[self]

    @property
    def is_terminal(self) -> bool:
        return self.rank > _RANKS[TaskState.RUNNING]


_RANKS = {
    TaskState.UNKNOWN: 0,
    TaskState.NEW: 1,
    TaskState.ALLOCATED: 2,
    TaskState.PENDING: 3,
    TaskState.ASSIGNED: 4,
    TaskState.ACCEPTED: 5,
    TaskState.PREPARING: 6,
    TaskState.READY: 7,
    TaskState.STARTING: 8,
    TaskState.RUNNING: 9,
    # Not shown in progress output, only used for ordering
    TaskState.COMPLETE: 10,
    TaskState.SHUTDOWN: 11,
    TaskState.FAILED: 12,
    TaskState.REJECTED: 13,
}


def rank(state: TaskState | str | None) -> int:
    """Return the position of ``state`` in the lifecycle (0 for unknown states).

    Args:
        state: Task state, either as enum member or raw daemon string

    Returns:
        int: 1..13 for known states, 0 otherwise
    """
    if state is None:
        return 0
    return TaskState(state).rank


def is_terminal(state: TaskState | str | None) -> bool:
    """True for complete, shutdown, failed and rejected."""
    return rank(state) > _RANKS[TaskState.RUNNING]
