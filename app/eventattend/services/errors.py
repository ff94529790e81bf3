# --- Service Layer Exception Classes ---

class ServiceError(Exception):
    """General exception class for the service layer."""
    pass

class ValidationError(ServiceError):
    """Missing or malformed input. Raised before anything is written."""
    pass

class NotFoundError(ServiceError):
    """A referenced event, student, admin, event name or period does not exist."""
    pass

class ConflictError(ServiceError):
    """A uniqueness rule or the duplicate-event rule would be violated."""
    pass

class StateError(ServiceError):
    """The operation is not valid for the entity's current status."""
    pass

class StorageError(ServiceError):
    """The database failed; the transaction was rolled back."""
    pass
