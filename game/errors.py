"""
Error types for the fruit merge training engine.

NotInitializedError is fatal to the calling operation only. Persistence
failures are recovered by the caller (a failed load means "no checkpoint").
"""


class NotInitializedError(RuntimeError):
    """Raised when the scheduler or agent is used before it is bound."""
    pass


class InvalidActionError(ValueError):
    """Raised when an action index is outside [0, action_size)."""
    pass


class QueueFullError(RuntimeError):
    """Raised when the pending-action queue is at capacity."""
    pass


class ActionDiscardedError(RuntimeError):
    """Set on pending action futures that a reset threw away."""
    pass


class PersistenceUnavailableError(RuntimeError):
    """Raised by checkpoint stores when a save or load cannot complete."""
    pass
