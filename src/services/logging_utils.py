"""Service layer logging utilities.

Provides structured logging functions for service operations, enabling
consistent log format and context across order, production and delivery
service operations.

Usage:
    from src.services.logging_utils import get_service_logger, log_operation, log_rejection

    logger = get_service_logger(__name__)

    # Log successful operation
    log_operation(
        logger,
        operation="approve",
        outcome="success",
        order_id="05-25-001",
        approver="mgr1",
    )

    # Log a rejected operation at WARNING, then raise it
    raise log_rejection(logger, "delete_trip", TripNotEmpty(3, order_ids), trip_id=3)
"""

import logging
from typing import Any


def get_service_logger(name: str) -> logging.Logger:
    """
    Get a logger configured for service operations.

    Args:
        name: Logger name (typically __name__ of the calling module)

    Returns:
        Configured logger instance with the 'cake_tracker.services' prefix.

    Example:
        >>> logger = get_service_logger(__name__)
        >>> logger.name
        'cake_tracker.services.trip_planner_service'
    """
    # Extract just the module name if full path is provided
    if "." in name:
        name = name.split(".")[-1]
    return logging.getLogger(f"cake_tracker.services.{name}")


def log_operation(
    logger: logging.Logger,
    operation: str,
    outcome: str,
    level: int = logging.INFO,
    **context: Any,
) -> None:
    """
    Log a service operation with structured context.

    The context is passed via the 'extra' parameter for structured logging.

    Args:
        logger: Logger instance to use
        operation: Operation name (e.g., "record_completion", "add_order")
        outcome: Outcome description (e.g., "success", "invalid_transition")
        level: Log level (default: INFO). Use DEBUG for verbose/frequent logs.
        **context: Additional context fields (entity IDs, error details, etc.)
            Common fields:
            - order_id: Shop code of the order
            - task_id: Baking task id
            - trip_id: Delivery trip id
            - error: Error message if outcome is an error

    Example:
        >>> log_operation(
        ...     logger,
        ...     operation="aggregate_orders_into_tasks",
        ...     outcome="success",
        ...     tasks_created=2,
        ...     tasks_merged=1,
        ...     tasks_cancelled=0,
        ... )
        # Logs: "aggregate_orders_into_tasks: success" with extra context
    """
    extra = {
        "operation": operation,
        "outcome": outcome,
        **context,
    }
    logger.log(level, f"{operation}: {outcome}", extra=extra)


def log_rejection(
    logger: logging.Logger, operation: str, error: Exception, **context: Any
) -> Exception:
    """
    Log a rejected operation at WARNING and return the error for raising.

    The outcome is the exception class name and the message goes in the
    ``error`` field.

    Example:
        >>> raise log_rejection(logger, "delete_trip", TripNotEmpty(3, ids), trip_id=3)
        # Logs: "delete_trip: TripNotEmpty" at WARNING, then raises
    """
    log_operation(
        logger,
        operation=operation,
        outcome=type(error).__name__,
        level=logging.WARNING,
        error=str(error),
        **context,
    )
    return error
