"""Status and classification enumerations.

Statuses are plain enumerations. There is no transition graph: anyone allowed
to update a record may set any value, including reopening a completed one.
"""

from enum import Enum


class Role(str, Enum):
    ADMIN = "admin"
    TECH = "tech"


class Priority(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class HandoffPriority(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class Criticality(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class WorkOrderStatus(str, Enum):
    OPEN = "Open"
    IN_PROGRESS = "In Progress"
    ON_HOLD = "On Hold"
    COMPLETED = "Completed"
    CANCELED = "Canceled"


class HandoffStatus(str, Enum):
    OPEN = "Open"
    PICKED_UP = "Picked Up"
    DONE = "Done"


class Frequency(str, Enum):
    DAILY = "Daily"
    WEEKLY = "Weekly"
    MONTHLY = "Monthly"


CLOSED_WORK_ORDER_STATUSES = frozenset({WorkOrderStatus.COMPLETED.value, WorkOrderStatus.CANCELED.value})


def next_handoff_status(current: str) -> str:
    """Quick transition used by the handoff board.

    Open goes to Picked Up, anything else goes to Done. This is a convenience
    for a plain field update, not a guarded state machine.
    """
    if current == HandoffStatus.OPEN.value:
        return HandoffStatus.PICKED_UP.value
    return HandoffStatus.DONE.value
