from .actions import NOOP, PLANS, Action, Plan, plan_for
from .dispatcher import DispatchResult, Dispatcher, SnapshotUnavailableError

__all__ = [
    "NOOP",
    "PLANS",
    "Action",
    "DispatchResult",
    "Dispatcher",
    "Plan",
    "SnapshotUnavailableError",
    "plan_for",
]
