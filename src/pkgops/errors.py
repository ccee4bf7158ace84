"""Exceptions raised by the operation core."""


class OperationError(RuntimeError):
    """Base class for operation tracking errors."""


class DuplicateOperationError(OperationError):
    """Raised when an operation id is registered twice."""

    def __init__(self, operation_id: str):
        super().__init__(f"operation already registered: {operation_id}")
        self.operation_id = operation_id


class InvalidTransitionError(OperationError):
    """Raised when a status change would break the forward-only lifecycle."""

    def __init__(self, operation_id: str, old: str, new: str):
        super().__init__(f"{operation_id}: cannot move from {old} to {new}")
        self.operation_id = operation_id
        self.old = old
        self.new = new


class SubscriptionError(OperationError):
    """Raised when a handler could not be attached to an event channel."""


class LaunchError(OperationError):
    """Raised when a command could not be handed to the process supervisor."""
