"""
Dispatch error taxonomy
"""
from typing import Optional


class DispatchError(Exception):
    """Base exception for dispatch engine errors"""
    pass


class OrderNotFound(DispatchError):
    """Order not found"""
    pass


class UserNotFound(DispatchError):
    """User not found"""
    pass


class InvalidTransition(DispatchError):
    """Requested status is not reachable from the current status"""
    
    def __init__(self, current, requested, reason: str = ""):
        self.current = current
        self.requested = requested
        message = f"Cannot move order from {_label(current)} to {_label(requested)}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class AssignError(DispatchError):
    """Driver missing or fee malformed"""
    pass


class UnsupportedBulkTarget(DispatchError):
    """Bulk status update requested for a target without a selection rule"""
    pass


class BatchWriteFailure(DispatchError):
    """
    A gateway write rejected mid-operation
    
    completed is the number of documents confirmed written before the failure,
    or None when the partial state cannot be determined.
    """
    
    def __init__(self, message: str, completed: Optional[int] = None):
        self.completed = completed
        super().__init__(message)


class UndoError(DispatchError):
    """Audit entry cannot be undone"""
    pass


def _label(status) -> str:
    return getattr(status, "value", status)
