"""
Status machine of a test run (TestReport).

    queued -> running -> completed
                      -> failed

Only ``create_run`` enters ``queued``; every later edge is driven by the
external execution engine. ``completed`` and ``failed`` are terminal.
"""

from enum import Enum
from typing import Dict, FrozenSet

from autotester.utils.errors import InputInvalid, InvalidTransition


class RunStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


RUN_TRANSITIONS: Dict[RunStatus, FrozenSet[RunStatus]] = {
    RunStatus.QUEUED: frozenset({RunStatus.RUNNING}),
    RunStatus.RUNNING: frozenset({RunStatus.COMPLETED, RunStatus.FAILED}),
    RunStatus.COMPLETED: frozenset(),
    RunStatus.FAILED: frozenset(),
}

TERMINAL_STATUSES = frozenset(
    status for status, targets in RUN_TRANSITIONS.items() if not targets
)


def parse_status(value: str) -> RunStatus:
    try:
        return RunStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in RunStatus)
        raise InputInvalid(f"Unknown run status '{value}'. Expected one of: {allowed}.")


def is_terminal(status: RunStatus) -> bool:
    return status in TERMINAL_STATUSES


def check_transition(current: RunStatus, target: RunStatus) -> None:
    if target not in RUN_TRANSITIONS[current]:
        if is_terminal(current):
            msg = f"Run is already {current.value}; no further transitions are allowed."
        else:
            msg = f"Cannot move a run from {current.value} to {target.value}."
        raise InvalidTransition(msg, current=current.value, target=target.value)
