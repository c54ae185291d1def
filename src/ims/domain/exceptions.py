"""Domain-level exceptions.

All business rule violations are expressed as subclasses of DomainException
so the CLI layer can catch them uniformly and display user-friendly messages.
Infrastructure failures live under InfrastructureError and are never mapped
to business outcomes.
"""


class DomainException(Exception):
    """Base class for all domain errors."""


class ValidationError(DomainException):
    """A business rule or invariant was violated."""


class EntityNotFoundError(DomainException):
    """A requested entity does not exist."""


class InsufficientStockError(ValidationError):
    """Not enough unreserved stock to satisfy a reservation."""


class DuplicateReservationError(ValidationError):
    """A reservation id was reused for a different request."""


class ReservationNotFoundError(EntityNotFoundError):
    """No reservation with the given id exists for the item."""


class InvariantViolationError(DomainException):
    """Aggregate state is inconsistent; indicates a bug or corrupt data."""


class ConcurrencyConflictError(DomainException):
    """Another writer advanced the aggregate version first."""


class InfrastructureError(Exception):
    """Base class for storage and transport failures."""


class PersistenceError(InfrastructureError):
    """The persistence substrate failed to read or write."""


class BrokerPublishError(InfrastructureError):
    """The broker rejected, timed out, or could not be reached."""
