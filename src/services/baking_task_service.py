"""Baking Task Service - turns queued orders into shared baking work.

Orders waiting for the baker are grouped by cake specification
(shape, size, flavor); each group feeds exactly one active baking task.
Running the aggregation again after orders change reconciles existing
tasks first, then merges or creates.

Bakers may also create tasks by hand. Manual tasks can be cancelled or
deleted directly; aggregated tasks only ever change through aggregation
and the production ledger.

Session Management Pattern:
- All public methods accept session=None
- If session provided, it is reused and the caller owns the transaction
- If session is None, the gateway opens a committing scope
"""

from collections import OrderedDict
from datetime import date
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from src.models import BakingTask, BakingTaskStatus, KitchenStatus, Order, OrderStatus
from src.services.exceptions import (
    BakingTaskNotFound,
    InvalidTransition,
    PreconditionFailed,
    ValidationError,
)
from src.services.logging_utils import get_service_logger, log_operation, log_rejection
from src.utils.constants import (
    DEFAULT_MANUAL_CANCEL_REASON,
    MANUAL_DELETE_NOTE,
    MANUAL_DELETE_REASON,
)
from src.utils.datetime_utils import local_today
from src.utils.validators import (
    parse_enum,
    sanitize_string,
    validate_cake_spec,
    validate_positive_integer,
)

logger = get_service_logger(__name__)

ACTIVE_STATUSES = (BakingTaskStatus.PENDING, BakingTaskStatus.IN_PROGRESS)

SpecTriple = Tuple[str, str, str]


def is_production_relevant(order: Order) -> bool:
    """True when an order still needs the baker: queued, or in the kitchen awaiting a baker."""
    if order.status == OrderStatus.IN_QUEUE:
        return True
    return (
        order.status == OrderStatus.IN_KITCHEN
        and order.kitchen_status == KitchenStatus.WAITING_BAKER
    )


def format_modified_reason(order_ids: List[str]) -> str:
    """Cancellation reason naming the orders that left a task."""
    noun = "Orders" if len(order_ids) > 1 else "Order"
    return f"{noun} {', '.join(order_ids)} modified"


def group_orders_by_spec(orders: List[Order]) -> "OrderedDict[SpecTriple, dict]":
    """
    Group orders by specification triple.

    Returns:
        Ordered mapping of triple -> {"order_ids": [...], "due_date": earliest delivery date}
    """
    groups: "OrderedDict[SpecTriple, dict]" = OrderedDict()
    for order in orders:
        group = groups.setdefault(
            order.spec_key, {"order_ids": [], "due_date": order.delivery_date}
        )
        group["order_ids"].append(order.id)
        if order.delivery_date < group["due_date"]:
            group["due_date"] = order.delivery_date
    return groups


class ProductionTaskAggregator:
    """
    Aggregates orders into baking tasks and manages manual tasks.

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

    def _active_task_for(self, session: Session, spec: SpecTriple) -> Optional[BakingTask]:
        for task in self._gateway.tasks.list(session, statuses=ACTIVE_STATUSES):
            if task.spec_key == spec:
                return task
        return None

    # =========================================================================
    # Aggregation
    # =========================================================================

    def aggregate_orders_into_tasks(
        self, today: Optional[date] = None, session: Optional[Session] = None
    ) -> List[BakingTask]:
        """
        Reconcile active tasks with current orders, then merge or create tasks.

        Steps:
            1. Group production-relevant orders by specification triple.
            2. Reconcile: drop order ids whose order is gone, no longer
               production-relevant, or now has a different specification.
               A task left with no orders is cancelled; otherwise its
               quantity shrinks to the remaining order count.
            3. Merge each group into the active task for its triple (union
               of order ids, larger quantity, earlier due date), or create a
               pending task when there is none.

        Args:
            today: Date used for the priority flag (defaults to local today)
            session: Optional session for transaction sharing

        Returns:
            Every task that was reconciled, merged or created
        """
        today = today or local_today()

        with self._gateway.session_scope(session) as session:
            relevant = OrderedDict(
                (order.id, order)
                for order in self._gateway.orders.list(session)
                if is_production_relevant(order)
            )
            groups = group_orders_by_spec(list(relevant.values()))

            touched: Dict[int, BakingTask] = OrderedDict()
            cancelled_count = 0
            shrunk_count = 0

            for task in self._gateway.tasks.list(session, statuses=ACTIVE_STATUSES):
                order_ids = list(task.order_ids or [])
                if not order_ids:
                    continue

                modified = [
                    order_id
                    for order_id in order_ids
                    if order_id not in relevant or relevant[order_id].spec_key != task.spec_key
                ]
                if not modified:
                    continue

                remaining = [order_id for order_id in order_ids if order_id not in modified]
                if remaining:
                    self._gateway.tasks.update(
                        session, task.id, {"order_ids": remaining, "quantity": len(remaining)}
                    )
                    shrunk_count += 1
                else:
                    self._gateway.tasks.update(
                        session,
                        task.id,
                        {
                            "status": BakingTaskStatus.CANCELLED,
                            "cancellation_reason": format_modified_reason(modified),
                        },
                    )
                    cancelled_count += 1
                touched[task.id] = task

            merged_count = 0
            created_count = 0
            for spec, group in groups.items():
                existing = self._active_task_for(session, spec)
                if existing is not None:
                    order_ids = list(existing.order_ids or [])
                    order_ids.extend(oid for oid in group["order_ids"] if oid not in order_ids)
                    due_date = min(existing.due_date, group["due_date"])
                    self._gateway.tasks.update(
                        session,
                        existing.id,
                        {
                            "order_ids": order_ids,
                            "quantity": max(existing.quantity, len(group["order_ids"])),
                            "due_date": due_date,
                            "is_priority": due_date == today,
                        },
                    )
                    touched[existing.id] = existing
                    merged_count += 1
                else:
                    shape, size, flavor = spec
                    task = self._gateway.tasks.create(
                        session,
                        cake_shape=shape,
                        cake_size=size,
                        cake_flavor=flavor,
                        quantity=len(group["order_ids"]),
                        quantity_completed=0,
                        status=BakingTaskStatus.PENDING,
                        due_date=group["due_date"],
                        order_ids=list(group["order_ids"]),
                        is_manual=False,
                        is_priority=group["due_date"] == today,
                    )
                    touched[task.id] = task
                    created_count += 1

            log_operation(
                logger,
                operation="aggregate_orders_into_tasks",
                outcome="success",
                relevant_orders=len(relevant),
                tasks_created=created_count,
                tasks_merged=merged_count,
                tasks_shrunk=shrunk_count,
                tasks_cancelled=cancelled_count,
            )
            return list(touched.values())

    # =========================================================================
    # Manual tasks
    # =========================================================================

    def create_manual_task(
        self,
        cake_shape: str,
        cake_size: str,
        cake_flavor: str,
        quantity: int,
        due_date: date,
        notes: Optional[str] = None,
        today: Optional[date] = None,
        session: Optional[Session] = None,
    ) -> BakingTask:
        """
        Create a baking task by hand.

        Raises:
            ValidationError: Invalid specification or quantity, or an active
                task for the same specification already exists
        """
        spec = {
            "cake_shape": sanitize_string(cake_shape),
            "cake_size": sanitize_string(cake_size),
            "cake_flavor": sanitize_string(cake_flavor),
            "notes": notes,
        }
        _, errors = validate_cake_spec(spec)
        is_valid, error = validate_positive_integer(quantity, "Quantity")
        if not is_valid:
            errors.append(error)
        if not isinstance(due_date, date):
            errors.append("Due date: This field is required")
        if errors:
            raise log_rejection(logger, "create_manual_task", ValidationError(errors))

        triple = (spec["cake_shape"], spec["cake_size"], spec["cake_flavor"])
        today = today or local_today()

        with self._gateway.session_scope(session) as session:
            existing = self._active_task_for(session, triple)
            if existing is not None:
                error = ValidationError(
                    [f"An active baking task (#{existing.id}) already exists for {' / '.join(triple)}"]
                )
                raise log_rejection(logger, "create_manual_task", error, task_id=existing.id)

            task = self._gateway.tasks.create(
                session,
                cake_shape=triple[0],
                cake_size=triple[1],
                cake_flavor=triple[2],
                quantity=quantity,
                quantity_completed=0,
                status=BakingTaskStatus.PENDING,
                due_date=due_date,
                order_ids=[],
                is_manual=True,
                is_priority=due_date == today,
                notes=notes,
            )

            log_operation(
                logger, operation="create_manual_task", outcome="success", task_id=task.id
            )
            return task

    def _get_manual_task_or_raise(
        self, session: Session, task_id: int, operation: str
    ) -> BakingTask:
        task = self._get_task_or_raise(session, task_id)
        if not task.is_manual:
            error = PreconditionFailed(
                f"baking task {task_id} was created from orders and cannot be changed by hand"
            )
            raise log_rejection(logger, operation, error, task_id=task_id)
        return task

    def cancel_manual_task(
        self,
        task_id: int,
        reason: Optional[str] = None,
        session: Optional[Session] = None,
    ) -> BakingTask:
        """
        Cancel an active manual task.

        The cancelled task stays visible until the baker acknowledges it
        through the production ledger.

        Raises:
            BakingTaskNotFound: Unknown task id
            PreconditionFailed: Task was created by aggregation
            InvalidTransition: Task is already completed or cancelled
        """
        with self._gateway.session_scope(session) as session:
            task = self._get_manual_task_or_raise(session, task_id, "cancel_manual_task")
            if not task.is_active:
                error = InvalidTransition(task_id, task.status, BakingTaskStatus.CANCELLED)
                raise log_rejection(logger, "cancel_manual_task", error, task_id=task_id)

            self._gateway.tasks.update(
                session,
                task_id,
                {
                    "status": BakingTaskStatus.CANCELLED,
                    "cancellation_reason": sanitize_string(reason) or DEFAULT_MANUAL_CANCEL_REASON,
                },
            )

            log_operation(logger, operation="cancel_manual_task", outcome="success", task_id=task_id)
            return task

    def delete_manual_task(
        self,
        task_id: int,
        baker: Optional[str] = None,
        session: Optional[Session] = None,
    ) -> None:
        """
        Delete a manual task, leaving a cancelled entry in the production log.

        Raises:
            BakingTaskNotFound: Unknown task id
            PreconditionFailed: Task was created by aggregation
        """
        with self._gateway.session_scope(session) as session:
            task = self._get_manual_task_or_raise(session, task_id, "delete_manual_task")

            self._gateway.production_log.append(
                session,
                cake_shape=task.cake_shape,
                cake_size=task.cake_size,
                cake_flavor=task.cake_flavor,
                quantity=0,
                baker=baker,
                notes=MANUAL_DELETE_NOTE,
                task_id=task.id,
                cancelled=True,
                cancellation_reason=MANUAL_DELETE_REASON,
                is_manual=True,
            )
            self._gateway.tasks.delete(session, task_id)

            log_operation(logger, operation="delete_manual_task", outcome="success", task_id=task_id)

    # =========================================================================
    # Reads
    # =========================================================================

    def get_task(self, task_id: int, session: Optional[Session] = None) -> BakingTask:
        """
        Get a baking task by id.

        Raises:
            BakingTaskNotFound: Unknown task id
        """
        with self._gateway.session_scope(session) as session:
            return self._get_task_or_raise(session, task_id)

    def list_tasks(self, status=None, session: Optional[Session] = None) -> List[BakingTask]:
        """List tasks in creation order, optionally filtered to one status."""
        statuses = None
        if status is not None:
            member, error = parse_enum(BakingTaskStatus, status, "Status")
            if error:
                raise ValidationError([error])
            statuses = [member]

        with self._gateway.session_scope(session) as session:
            return self._gateway.tasks.list(session, statuses=statuses)

    def list_active_tasks(self, session: Optional[Session] = None) -> List[BakingTask]:
        """Pending and in-progress tasks, priority first, then by due date."""
        with self._gateway.session_scope(session) as session:
            tasks = self._gateway.tasks.list(session, statuses=ACTIVE_STATUSES)
        return sorted(tasks, key=lambda task: (not task.is_priority, task.due_date, task.id))
