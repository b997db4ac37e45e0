class PreproError(Exception):
    """Base exception for all prepro related errors."""
    pass

class ValidationError(PreproError):
    """Raised when client supplied data fails validation."""
    pass

class RejectedError(PreproError):
    """Raised when the engine refuses a variable, clause or label addition."""
    pass

class UnknownLabelError(RejectedError):
    """Raised when a label passed to the engine does not exist."""
    pass

class EngineContractError(PreproError):
    """Raised when the engine returns data that violates its interface contract."""
    pass

class SessionClosedError(PreproError):
    """Raised when an operation is issued on a released session."""
    pass

class ConcurrentAccessError(PreproError):
    """Raised when a second mutating call enters a session that is already busy."""
    pass

class BackendUnavailableError(PreproError):
    """Raised when a preprocessing backend cannot be loaded."""
    pass
