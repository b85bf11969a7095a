"""Production Ledger Service - records baking output and keeps cake stock.

Every completed batch becomes an immutable production log entry and adds
to the cake inventory for its specification. Cancelled tasks are cleared
by acknowledging them, which leaves a zero-quantity cancelled entry behind.

Session Management Pattern:
- All public methods accept session=None
- If session provided, it is reused and the caller owns the transaction
- If session is None, the gateway opens a committing scope
"""

from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from src.models import BakingTask, BakingTaskStatus, CakeInventoryItem, ProductionLogEntry
from src.services.exceptions import (
    BakingTaskNotFound,
    InvalidTransition,
    ValidationError,
)
from src.services.logging_utils import get_service_logger, log_operation, log_rejection
from src.utils.constants import DEFAULT_CANCELLED_ACK_NOTE
from src.utils.validators import (
    sanitize_string,
    validate_non_negative_integer,
    validate_required_string,
)

logger = get_service_logger(__name__)


def next_task_status(task: BakingTask, quantity_completed: int) -> BakingTaskStatus:
    """Status a task moves to once ``quantity_completed`` cakes are done."""
    if quantity_completed >= task.quantity:
        return BakingTaskStatus.COMPLETED
    if quantity_completed > 0:
        return BakingTaskStatus.IN_PROGRESS
    return BakingTaskStatus(task.status)


class ProductionLedger:
    """
    Production log and cake inventory.

    Args:
        gateway: PersistenceGateway used for every read and write
    """

    def __init__(self, gateway):
        self._gateway = gateway

    def _get_task_or_raise(self, session: Session, task_id: int) -> BakingTask:
        task = self._gateway.tasks.get(session, task_id)
        if task is None:
            raise log_rejection(logger, "get_task", BakingTaskNotFound(task_id), task_id=task_id)
        return task

    def record_completion(
        self,
        task_id: int,
        quantity_produced: int,
        quality_checks: Optional[Dict[str, Any]] = None,
        baker: Optional[str] = None,
        notes: Optional[str] = None,
        session: Optional[Session] = None,
    ) -> ProductionLogEntry:
        """
        Record cakes baked for an active task.

        Transaction boundary: ALL operations in a single session (atomic).
        Atomicity guarantee: Either ALL steps succeed OR the entire
        operation rolls back.
        Steps executed atomically:
            1. Append the production log entry
            2. Add the produced cakes to inventory (when more than zero)
            3. Advance the task's completed count and status

        Args:
            task_id: Baking task being worked
            quantity_produced: Cakes produced in this run (zero allowed)
            quality_checks: Optional quality check results
            baker: Who baked
            notes: Optional notes
            session: Optional session for transaction sharing

        Returns:
            The new ProductionLogEntry

        Raises:
            BakingTaskNotFound: Unknown task id
            InvalidTransition: Task is completed or cancelled
            ValidationError: quantity_produced is negative or not a whole number
        """
        is_valid, error = validate_non_negative_integer(quantity_produced, "Quantity produced")
        if not is_valid:
            raise log_rejection(
                logger, "record_completion", ValidationError([error]), task_id=task_id
            )

        with self._gateway.session_scope(session) as session:
            task = self._get_task_or_raise(session, task_id)
            if not task.is_active:
                error = InvalidTransition(task_id, task.status, "record completion")
                raise log_rejection(logger, "record_completion", error, task_id=task_id)

            entry = self._gateway.production_log.append(
                session,
                cake_shape=task.cake_shape,
                cake_size=task.cake_size,
                cake_flavor=task.cake_flavor,
                quantity=quantity_produced,
                baker=baker,
                quality_checks=quality_checks,
                notes=notes,
                task_id=task.id,
                cancelled=False,
                is_manual=task.is_manual,
            )

            if quantity_produced > 0:
                self._gateway.inventory.upsert(session, task.spec_key, quantity_produced)

            quantity_completed = (task.quantity_completed or 0) + quantity_produced
            changes: Dict[str, Any] = {
                "quantity_completed": quantity_completed,
                "status": next_task_status(task, quantity_completed),
            }
            if quality_checks is not None:
                changes["quality_checks"] = quality_checks
            self._gateway.tasks.update(session, task_id, changes)

            log_operation(
                logger,
                operation="record_completion",
                outcome="success",
                task_id=task_id,
                quantity_produced=quantity_produced,
                quantity_completed=quantity_completed,
                task_status=changes["status"].value,
            )
            return entry

    def acknowledge_cancelled(
        self,
        task_id: int,
        notes: Optional[str] = None,
        baker: Optional[str] = None,
        session: Optional[Session] = None,
    ) -> ProductionLogEntry:
        """
        Clear a cancelled task from the board.

        Writes a zero-quantity cancelled entry carrying the task's
        cancellation reason, then deletes the task.

        Raises:
            BakingTaskNotFound: Unknown task id
            InvalidTransition: Task is not cancelled
        """
        with self._gateway.session_scope(session) as session:
            task = self._get_task_or_raise(session, task_id)
            if task.status != BakingTaskStatus.CANCELLED:
                error = InvalidTransition(task_id, task.status, "acknowledge cancellation")
                raise log_rejection(logger, "acknowledge_cancelled", error, task_id=task_id)

            entry = self._gateway.production_log.append(
                session,
                cake_shape=task.cake_shape,
                cake_size=task.cake_size,
                cake_flavor=task.cake_flavor,
                quantity=0,
                baker=baker,
                notes=sanitize_string(notes) or DEFAULT_CANCELLED_ACK_NOTE,
                task_id=task.id,
                cancelled=True,
                cancellation_reason=task.cancellation_reason,
                is_manual=task.is_manual,
            )
            self._gateway.tasks.delete(session, task_id)

            log_operation(
                logger, operation="acknowledge_cancelled", outcome="success", task_id=task_id
            )
            return entry

    def get_production_log(self, session: Optional[Session] = None) -> List[ProductionLogEntry]:
        """All production log entries, newest first."""
        with self._gateway.session_scope(session) as session:
            return self._gateway.production_log.list(session)

    def get_cake_inventory(self, session: Optional[Session] = None) -> List[CakeInventoryItem]:
        """Cake stock for every specification ever produced."""
        with self._gateway.session_scope(session) as session:
            return self._gateway.inventory.list(session)

    def adjust_inventory(
        self,
        cake_shape: str,
        cake_size: str,
        cake_flavor: str,
        delta: int,
        session: Optional[Session] = None,
    ) -> CakeInventoryItem:
        """
        Correct the stock count for one specification by ``delta``.

        Raises:
            ValidationError: Missing specification, non-integer delta, or the
                count would drop below zero
        """
        errors = []
        for value, label in (
            (cake_shape, "Cake shape"),
            (cake_size, "Cake size"),
            (cake_flavor, "Cake flavor"),
        ):
            is_valid, error = validate_required_string(value, label)
            if not is_valid:
                errors.append(error)
        if isinstance(delta, bool) or not isinstance(delta, int):
            errors.append("Delta: Must be a whole number")
        if errors:
            raise log_rejection(logger, "adjust_inventory", ValidationError(errors))

        spec = (cake_shape.strip(), cake_size.strip(), cake_flavor.strip())
        with self._gateway.session_scope(session) as session:
            try:
                item = self._gateway.inventory.upsert(session, spec, delta)
            except ValidationError as e:
                raise log_rejection(logger, "adjust_inventory", e, delta=delta)

            log_operation(
                logger,
                operation="adjust_inventory",
                outcome="success",
                delta=delta,
                stock=item.quantity,
            )
            return item
