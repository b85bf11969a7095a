"""Service layer exception classes for Cake Order Tracker.

This module defines all custom exceptions used by the service layer to provide
consistent error handling across the application. Every exception carries an
``http_status_code`` so callers that expose the services over HTTP can map
errors without a lookup table of their own.

Exception Hierarchy:
    ServiceError (base)
    ├── NotFound
    │   ├── OrderNotFound
    │   ├── BakingTaskNotFound
    │   └── TripNotFound
    ├── InvalidTransition
    ├── InvalidSequence
    ├── TripNotEmpty
    ├── PreconditionFailed
    ├── ValidationError
    └── DatabaseError
"""

from typing import Iterable, Optional


class ServiceError(Exception):
    """Base exception for all service layer errors.

    All service-specific exceptions should inherit from this class.
    """

    http_status_code = 500


class NotFound(ServiceError):
    """Raised when an entity cannot be found by id.

    Args:
        entity: Human-readable entity name ("Order", "Trip", ...)
        entity_id: The id that was not found

    Example:
        >>> raise NotFound("Order", "05-25-001")
        NotFound: Order with ID 05-25-001 not found
    """

    http_status_code = 404

    def __init__(self, entity: str, entity_id):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} with ID {entity_id} not found")


class OrderNotFound(NotFound):
    """Raised when an order cannot be found by its shop code."""

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__("Order", order_id)


class BakingTaskNotFound(NotFound):
    """Raised when a baking task cannot be found by id."""

    def __init__(self, task_id: int):
        self.task_id = task_id
        super().__init__("Baking task", task_id)


class TripNotFound(NotFound):
    """Raised when a delivery trip cannot be found by id."""

    def __init__(self, trip_id: int):
        self.trip_id = trip_id
        super().__init__("Trip", trip_id)


class InvalidTransition(ServiceError):
    """Raised when a status change is not permitted from the current state.

    Args:
        entity_id: Id of the order, task or trip
        current_state: State the entity is in
        requested: The state or action that was requested
        use: Optional name of the operation that performs this change

    Example:
        >>> raise InvalidTransition("05-25-001", "in-queue", "ready-to-deliver")
        InvalidTransition: Cannot move 05-25-001 from 'in-queue' to 'ready-to-deliver'
    """

    http_status_code = 409

    def __init__(self, entity_id, current_state, requested, use=None):
        self.entity_id = entity_id
        self.current_state = current_state
        self.requested = requested
        self.use = use
        message = (
            f"Cannot move {entity_id} from '{_state_value(current_state)}' "
            f"to '{_state_value(requested)}'"
        )
        if use:
            message = f"{message}; use {use}()"
        super().__init__(message)


class InvalidSequence(ServiceError):
    """Raised when a resequence map does not match the trip's membership.

    Args:
        trip_id: Trip being resequenced
        missing: Member order ids absent from the new map
        unexpected: Ids in the new map that are not trip members
        reason: Optional free-form explanation (e.g. bad position values)
    """

    http_status_code = 422

    def __init__(
        self,
        trip_id: int,
        missing: Iterable[str] = (),
        unexpected: Iterable[str] = (),
        reason: Optional[str] = None,
    ):
        self.trip_id = trip_id
        self.missing = sorted(missing)
        self.unexpected = sorted(unexpected)
        parts = []
        if self.missing:
            parts.append(f"missing {', '.join(self.missing)}")
        if self.unexpected:
            parts.append(f"unexpected {', '.join(self.unexpected)}")
        if reason:
            parts.append(reason)
        super().__init__(f"Invalid sequence for trip {trip_id}: {'; '.join(parts)}")


class TripNotEmpty(ServiceError):
    """Raised when deleting a trip that still has member orders."""

    http_status_code = 409

    def __init__(self, trip_id: int, order_ids: Iterable[str]):
        self.trip_id = trip_id
        self.order_ids = list(order_ids)
        super().__init__(
            f"Cannot delete trip {trip_id}: remove orders {', '.join(self.order_ids)} first"
        )


class PreconditionFailed(ServiceError):
    """Raised when an operation's precondition does not hold.

    Example:
        >>> raise PreconditionFailed("3rd-party driver requires a driver name")
        PreconditionFailed: Precondition failed: 3rd-party driver requires a driver name
    """

    http_status_code = 412

    def __init__(self, message: str):
        self.reason = message
        super().__init__(f"Precondition failed: {message}")


class ValidationError(ServiceError):
    """Raised when data validation fails."""

    http_status_code = 400

    def __init__(self, errors: list):
        self.errors = errors
        error_msg = "; ".join(errors)
        super().__init__(f"Validation failed: {error_msg}")


class DatabaseError(ServiceError):
    """Raised when a database operation fails."""

    http_status_code = 500

    def __init__(self, message: str, original_error: Exception = None):
        self.original_error = original_error
        super().__init__(f"Database error: {message}")


def _state_value(state) -> str:
    return getattr(state, "value", state)
