"""Services package - Business logic layer for Cake Order Tracker.

This package contains the service classes that move cake orders from
intake through baking to delivery.

Architecture:
- Services: Classes constructed with a PersistenceGateway (no global store)
- Transactions: Managed via gateway.session_scope(session=None)
- Exceptions: Consistent error handling via ServiceError hierarchy
- Validation: Input validation before database operations

Service Modules:
- order_lifecycle_service: Order status machine, approvals and archive
- baking_task_service: Aggregation of queued orders into baking tasks
- production_ledger_service: Production log and cake inventory
- trip_planner_service: Delivery trips and order membership
- driver_assignment_service: Driver assignments per order

Infrastructure:
- gateway: Persistence gateway and repositories
- database: Engine and session factory setup
- exceptions: Custom exception classes for service layer errors
- logging_utils: Structured service logging
"""

from .gateway import PersistenceGateway
from .order_lifecycle_service import ALLOWED_TRANSITIONS, OrderLifecycleService
from .baking_task_service import ProductionTaskAggregator
from .production_ledger_service import ProductionLedger
from .trip_planner_service import TripPlanner
from .driver_assignment_service import DriverAssignmentService

from .exceptions import (
    ServiceError,
    NotFound,
    OrderNotFound,
    BakingTaskNotFound,
    TripNotFound,
    InvalidTransition,
    InvalidSequence,
    TripNotEmpty,
    PreconditionFailed,
    ValidationError,
    DatabaseError,
)

__all__ = [
    "PersistenceGateway",
    "ALLOWED_TRANSITIONS",
    "OrderLifecycleService",
    "ProductionTaskAggregator",
    "ProductionLedger",
    "TripPlanner",
    "DriverAssignmentService",
    # Exceptions
    "ServiceError",
    "NotFound",
    "OrderNotFound",
    "BakingTaskNotFound",
    "TripNotFound",
    "InvalidTransition",
    "InvalidSequence",
    "TripNotEmpty",
    "PreconditionFailed",
    "ValidationError",
    "DatabaseError",
]
