class DreamError(Exception):
    """Base class for all exceptions in DreamLoop."""
    pass

class ConfigurationError(DreamError):
    """Raised when there is a configuration-related error."""
    pass

class RepositoryError(DreamError):
    """Raised when the target repository cannot be mounted, read or written."""
    pass

class CollaboratorError(DreamError):
    """Raised when an external collaborator returns something unusable."""
    pass

class SegmentationError(DreamError):
    """Raised when Solver output cannot be mapped onto any file."""
    pass

class GoalQueueError(DreamError):
    """Raised when an error occurs in Goal Queue operations."""
    pass

class SecurityError(DreamError):
    """Raised when a security boundary is violated."""
    pass
