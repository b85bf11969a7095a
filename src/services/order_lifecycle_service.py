"""Order Lifecycle Service - status machine for cake orders.

Owns every change to an order's primary status and kitchen substate:

    INCOMPLETE -> IN_QUEUE -> IN_KITCHEN -> WAITING_PHOTO
    -> PENDING_APPROVAL <-> NEEDS_REVISION -> READY_TO_DELIVER
    -> IN_DELIVERY -> WAITING_FEEDBACK -> FINISHED -> ARCHIVED

CANCELLED is reachable from any non-terminal state. Every status change
appends a status-change entry to the order log; restoring an order from
the archive reads those entries back to find where it came from.

No operation here touches baking tasks or delivery trips. The production
aggregator and the trip planner observe order state on their own.

Session Management Pattern:
- All public methods accept session=None
- If session provided, it is reused and the caller owns the transaction
- If session is None, the gateway opens a committing scope
"""

from datetime import date
from typing import Any, Dict, FrozenSet, List, Optional

from sqlalchemy.orm import Session

from src.models import (
    CakeRevision,
    KitchenStatus,
    Order,
    OrderLogType,
    OrderStatus,
    PrintEvent,
    PrintType,
)
from src.services.exceptions import (
    InvalidTransition,
    OrderNotFound,
    PreconditionFailed,
    ValidationError,
)
from src.services.logging_utils import get_service_logger, log_operation, log_rejection
from src.utils.constants import ORDER_ID_DATE_FORMAT, ORDER_SEQUENCE_WIDTH
from src.utils.datetime_utils import local_today, utc_now
from src.utils.validators import parse_enum, sanitize_string, validate_cake_spec

logger = get_service_logger(__name__)


ALLOWED_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.INCOMPLETE: frozenset({OrderStatus.IN_QUEUE, OrderStatus.CANCELLED}),
    OrderStatus.IN_QUEUE: frozenset({OrderStatus.IN_KITCHEN, OrderStatus.CANCELLED}),
    OrderStatus.IN_KITCHEN: frozenset({OrderStatus.WAITING_PHOTO, OrderStatus.CANCELLED}),
    OrderStatus.WAITING_PHOTO: frozenset(
        {OrderStatus.PENDING_APPROVAL, OrderStatus.CANCELLED}
    ),
    OrderStatus.PENDING_APPROVAL: frozenset(
        {OrderStatus.READY_TO_DELIVER, OrderStatus.NEEDS_REVISION, OrderStatus.CANCELLED}
    ),
    OrderStatus.NEEDS_REVISION: frozenset(
        {OrderStatus.PENDING_APPROVAL, OrderStatus.CANCELLED}
    ),
    OrderStatus.READY_TO_DELIVER: frozenset({OrderStatus.IN_DELIVERY, OrderStatus.CANCELLED}),
    OrderStatus.IN_DELIVERY: frozenset({OrderStatus.WAITING_FEEDBACK, OrderStatus.CANCELLED}),
    OrderStatus.WAITING_FEEDBACK: frozenset({OrderStatus.FINISHED, OrderStatus.CANCELLED}),
    # FINISHED leaves only through archive(); ARCHIVED only through restore_from_archive()
    OrderStatus.FINISHED: frozenset({OrderStatus.ARCHIVED}),
    OrderStatus.ARCHIVED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

# Targets with side effects of their own, reachable only through the named operation
OPERATION_OWNED_STATUSES: Dict[OrderStatus, str] = {
    OrderStatus.PENDING_APPROVAL: "submit_for_approval",
    OrderStatus.NEEDS_REVISION: "request_revision",
    OrderStatus.READY_TO_DELIVER: "approve",
    OrderStatus.ARCHIVED: "archive",
    OrderStatus.CANCELLED: "cancel",
}

# Statuses an order may be created in
INITIAL_STATUSES = frozenset({OrderStatus.INCOMPLETE, OrderStatus.IN_QUEUE})

# Statuses whose details are frozen
LOCKED_DETAIL_STATUSES = frozenset({OrderStatus.CANCELLED, OrderStatus.ARCHIVED})

# Fields update_order_details() may change
EDITABLE_FIELDS = frozenset(
    {
        "customer_name",
        "delivery_date",
        "delivery_address",
        "notes",
        "cake_shape",
        "cake_size",
        "cake_flavor",
        "cake_tier",
        "tier_details",
    }
)


def can_transition(current: OrderStatus, requested: OrderStatus) -> bool:
    """Return True if the transition table allows current -> requested."""
    return requested in ALLOWED_TRANSITIONS.get(current, frozenset())


def resolve_restore_status(order: Order) -> OrderStatus:
    """
    Work out which status an archived order returns to.

    Scans the order log newest-first for the status-change that moved the
    order into ARCHIVED and returns the status it left. Orders with no such
    entry (imported data, hand edits) fall back to FINISHED.
    """
    for entry in reversed(order.logs or []):
        if (
            entry.log_type == OrderLogType.STATUS_CHANGE
            and entry.new_status == OrderStatus.ARCHIVED
            and entry.previous_status is not None
        ):
            return OrderStatus(entry.previous_status)
    return OrderStatus.FINISHED


class OrderLifecycleService:
    """
    Status machine and detail editing for cake orders.

    Args:
        gateway: PersistenceGateway used for every read and write
    """

    def __init__(self, gateway):
        self._gateway = gateway

    # =========================================================================
    # Internal helpers
    # =========================================================================

    def _get_order_or_raise(self, session: Session, order_id: str) -> Order:
        order = self._gateway.orders.get(session, order_id)
        if order is None:
            raise log_rejection(logger, "get_order", OrderNotFound(order_id), order_id=order_id)
        return order

    def _write_status(
        self,
        session: Session,
        order: Order,
        new_status: OrderStatus,
        actor: Optional[str] = None,
        note: Optional[str] = None,
    ) -> Order:
        """Write a status unconditionally and append the status-change log entry."""
        previous = order.status
        changes: Dict[str, Any] = {"status": new_status}
        if new_status == OrderStatus.IN_KITCHEN and order.kitchen_status is None:
            changes["kitchen_status"] = KitchenStatus.WAITING_BAKER

        self._gateway.orders.update(session, order.id, changes)
        self._gateway.orders.append_log(
            session,
            order.id,
            OrderLogType.STATUS_CHANGE,
            previous_status=previous,
            new_status=new_status,
            note=note,
            user=actor,
        )
        return order

    def _transition(
        self,
        session: Session,
        order: Order,
        new_status: OrderStatus,
        operation: str,
        actor: Optional[str] = None,
        note: Optional[str] = None,
    ) -> Order:
        if not can_transition(order.status, new_status):
            raise log_rejection(
                logger,
                operation,
                InvalidTransition(order.id, order.status, new_status),
                order_id=order.id,
            )
        return self._write_status(session, order, new_status, actor=actor, note=note)

    def _require_status(
        self, order: Order, allowed, requested, operation: str
    ) -> None:
        if order.status not in allowed:
            raise log_rejection(
                logger,
                operation,
                InvalidTransition(order.id, order.status, requested),
                order_id=order.id,
            )

    # =========================================================================
    # Creation and details
    # =========================================================================

    def create_order(
        self,
        customer_name: Optional[str],
        delivery_date: date,
        cake_shape: str,
        cake_size: str,
        cake_flavor: str,
        cake_tier: int = 1,
        order_date: Optional[date] = None,
        status=OrderStatus.INCOMPLETE,
        delivery_address: Optional[str] = None,
        notes: Optional[str] = None,
        tier_details: Optional[List[Dict[str, Any]]] = None,
        actor: Optional[str] = None,
        session: Optional[Session] = None,
    ) -> Order:
        """
        Create an order with the next shop code for its order month.

        Shop codes read MM-YY-NNN where NNN counts up within the month of
        ``order_date`` (today when omitted).

        Raises:
            ValidationError: Missing cake specification, bad tier count,
                missing delivery date or an initial status other than
                incomplete / in-queue
        """
        status_member, status_error = parse_enum(OrderStatus, status, "Status")
        errors = []
        if status_error:
            errors.append(status_error)
        elif status_member not in INITIAL_STATUSES:
            errors.append(f"Status: new orders start as incomplete or in-queue, not {status_member.value}")

        spec = {
            "cake_shape": sanitize_string(cake_shape),
            "cake_size": sanitize_string(cake_size),
            "cake_flavor": sanitize_string(cake_flavor),
            "cake_tier": cake_tier,
            "customer_name": customer_name,
            "notes": notes,
        }
        _, spec_errors = validate_cake_spec(spec)
        errors.extend(spec_errors)
        if not isinstance(delivery_date, date):
            errors.append("Delivery date: This field is required")

        if errors:
            raise log_rejection(logger, "create_order", ValidationError(errors))

        order_date = order_date or local_today()
        prefix = f"{order_date.strftime(ORDER_ID_DATE_FORMAT)}-"

        with self._gateway.session_scope(session) as session:
            next_number = self._gateway.orders.max_sequence_for_prefix(session, prefix) + 1
            order_id = f"{prefix}{next_number:0{ORDER_SEQUENCE_WIDTH}d}"

            order = self._gateway.orders.create(
                session,
                id=order_id,
                status=status_member,
                customer_name=sanitize_string(customer_name),
                order_date=order_date,
                delivery_date=delivery_date,
                delivery_address=sanitize_string(delivery_address),
                notes=notes,
                cake_shape=spec["cake_shape"],
                cake_size=spec["cake_size"],
                cake_flavor=spec["cake_flavor"],
                cake_tier=cake_tier,
                tier_details=tier_details,
                revision_count=0,
            )
            self._gateway.orders.append_log(
                session,
                order_id,
                OrderLogType.NOTE,
                new_status=status_member,
                note="Order created",
                user=actor,
            )

            log_operation(logger, operation="create_order", outcome="success", order_id=order_id)
            return order

    def update_order_details(
        self, order_id: str, actor: Optional[str] = None, session: Optional[Session] = None, **fields
    ) -> Order:
        """
        Change an order's cake specification or delivery details.

        The status is never touched. Changing the specification of a queued
        order is picked up by the next aggregation run.

        Raises:
            OrderNotFound: Unknown order id
            ValidationError: Unknown field names or invalid values
            PreconditionFailed: Order is cancelled or archived
        """
        unknown = sorted(set(fields) - EDITABLE_FIELDS)
        if unknown:
            raise log_rejection(
                logger,
                "update_order_details",
                ValidationError([f"Cannot update field(s): {', '.join(unknown)}"]),
                order_id=order_id,
            )

        for key in ("cake_shape", "cake_size", "cake_flavor", "customer_name", "delivery_address"):
            if key in fields:
                fields[key] = sanitize_string(fields[key])

        _, errors = validate_cake_spec(fields, partial=True)
        if "delivery_date" in fields and not isinstance(fields["delivery_date"], date):
            errors.append("Delivery date: This field is required")
        if errors:
            raise log_rejection(
                logger,
                "update_order_details", ValidationError(errors), order_id=order_id
            )

        with self._gateway.session_scope(session) as session:
            order = self._get_order_or_raise(session, order_id)
            if order.status in LOCKED_DETAIL_STATUSES:
                raise log_rejection(
                    logger,
                    "update_order_details",
                    PreconditionFailed(
                        f"order {order_id} is {order.status.value}; details can no longer change"
                    ),
                    order_id=order_id,
                )

            self._gateway.orders.update(session, order_id, fields)
            self._gateway.orders.append_log(
                session,
                order_id,
                OrderLogType.NOTE,
                note="Order details updated",
                user=actor,
                details={"fields": sorted(fields)},
            )

            log_operation(
                logger,
                operation="update_order_details",
                outcome="success",
                order_id=order_id,
                fields=sorted(fields),
            )
            return order

    # =========================================================================
    # Status transitions
    # =========================================================================

    def transition_status(
        self,
        order_id: str,
        new_status,
        actor: Optional[str] = None,
        note: Optional[str] = None,
        session: Optional[Session] = None,
    ) -> Order:
        """
        Move an order to ``new_status`` if the transition table allows it.

        This is the low-level primitive for the plain workflow steps. Targets
        in OPERATION_OWNED_STATUSES carry side effects (photos, approval,
        revision history, archive date) and are refused here; use
        submit_for_approval, approve, request_revision, archive or cancel.

        Args:
            order_id: Shop code of the order
            new_status: OrderStatus member or its wire value
            actor: Who made the change (stored on the log entry)
            note: Optional free-form note for the log entry
            session: Optional session for transaction sharing

        Returns:
            The updated Order

        Raises:
            OrderNotFound: Unknown order id
            InvalidTransition: Transition not in ALLOWED_TRANSITIONS, or the
                target belongs to a dedicated operation
            ValidationError: ``new_status`` is not an order status
        """
        status, error = parse_enum(OrderStatus, new_status, "Status")
        if error:
            raise log_rejection(
                logger, "transition_status", ValidationError([error]), order_id=order_id
            )

        with self._gateway.session_scope(session) as session:
            order = self._get_order_or_raise(session, order_id)
            previous = order.status
            if status in OPERATION_OWNED_STATUSES:
                raise log_rejection(
                    logger,
                    "transition_status",
                    InvalidTransition(
                        order_id, order.status, status, use=OPERATION_OWNED_STATUSES[status]
                    ),
                    order_id=order_id,
                )
            self._transition(session, order, status, "transition_status", actor=actor, note=note)

            log_operation(
                logger,
                operation="transition_status",
                outcome="success",
                order_id=order_id,
                previous_status=previous.value,
                new_status=status.value,
            )
            return order

    def advance_kitchen_status(
        self, order_id: str, actor: Optional[str] = None, session: Optional[Session] = None
    ) -> Order:
        """
        Move an in-kitchen order one step along the kitchen chain.

        Reaching DONE_WAITING_APPROVAL hands the order on to WAITING_PHOTO.

        Raises:
            OrderNotFound: Unknown order id
            InvalidTransition: Order is not in the kitchen, or the kitchen
                chain is already finished
        """
        with self._gateway.session_scope(session) as session:
            order = self._get_order_or_raise(session, order_id)
            self._require_status(
                order, {OrderStatus.IN_KITCHEN}, "advance kitchen status", "advance_kitchen_status"
            )

            current = order.kitchen_status
            next_status = current.next_status() if current else KitchenStatus.WAITING_BAKER
            if next_status is None:
                raise log_rejection(
                    logger,
                    "advance_kitchen_status",
                    InvalidTransition(order_id, current, "next kitchen step"),
                    order_id=order_id,
                )

            self._gateway.orders.update(session, order_id, {"kitchen_status": next_status})
            self._gateway.orders.append_log(
                session,
                order_id,
                OrderLogType.KITCHEN_STATUS_CHANGE,
                user=actor,
                details={
                    "previous_kitchen_status": current.value if current else None,
                    "new_kitchen_status": next_status.value,
                },
            )

            if next_status == KitchenStatus.DONE_WAITING_APPROVAL:
                self._transition(
                    session, order, OrderStatus.WAITING_PHOTO, "advance_kitchen_status", actor=actor
                )

            log_operation(
                logger,
                operation="advance_kitchen_status",
                outcome="success",
                order_id=order_id,
                kitchen_status=next_status.value,
            )
            return order

    def submit_for_approval(
        self,
        order_id: str,
        photos: List[str],
        actor: Optional[str] = None,
        session: Optional[Session] = None,
    ) -> Order:
        """
        Submit finished-cake photos for manager approval.

        Allowed from WAITING_PHOTO and NEEDS_REVISION. The photos replace any
        previously submitted set.
        """
        if not photos:
            raise log_rejection(
                logger,
                "submit_for_approval",
                ValidationError(["Photos: at least one photo is required"]),
                order_id=order_id,
            )

        with self._gateway.session_scope(session) as session:
            order = self._get_order_or_raise(session, order_id)
            self._require_status(
                order,
                {OrderStatus.WAITING_PHOTO, OrderStatus.NEEDS_REVISION},
                OrderStatus.PENDING_APPROVAL,
                "submit_for_approval",
            )

            self._gateway.orders.update(session, order_id, {"finished_cake_photos": list(photos)})
            self._transition(
                session,
                order,
                OrderStatus.PENDING_APPROVAL,
                "submit_for_approval",
                actor=actor,
                note=f"{len(photos)} photo(s) submitted",
            )

            log_operation(
                logger,
                operation="submit_for_approval",
                outcome="success",
                order_id=order_id,
                photo_count=len(photos),
            )
            return order

    def approve(
        self, order_id: str, approver: str, session: Optional[Session] = None
    ) -> Order:
        """
        Approve the submitted photos; the order becomes READY_TO_DELIVER.

        Raises:
            OrderNotFound: Unknown order id
            InvalidTransition: Order is not pending approval
            ValidationError: No approver given
        """
        approver = sanitize_string(approver)
        if approver is None:
            raise log_rejection(
                logger,
                "approve", ValidationError(["Approver: This field is required"]), order_id=order_id
            )

        with self._gateway.session_scope(session) as session:
            order = self._get_order_or_raise(session, order_id)
            self._require_status(
                order, {OrderStatus.PENDING_APPROVAL}, OrderStatus.READY_TO_DELIVER, "approve"
            )

            self._gateway.orders.update(
                session, order_id, {"approved_by": approver, "approval_date": utc_now()}
            )
            self._transition(
                session, order, OrderStatus.READY_TO_DELIVER, "approve", actor=approver
            )
            self._gateway.orders.append_log(
                session, order_id, OrderLogType.APPROVED, user=approver
            )

            log_operation(
                logger, operation="approve", outcome="success", order_id=order_id, approver=approver
            )
            return order

    def request_revision(
        self,
        order_id: str,
        notes: str,
        photos: Optional[List[str]] = None,
        requested_by: Optional[str] = None,
        session: Optional[Session] = None,
    ) -> Order:
        """
        Send a pending-approval order back for rework.

        Appends a CakeRevision, increments revision_count and moves the
        order to NEEDS_REVISION.
        """
        with self._gateway.session_scope(session) as session:
            order = self._get_order_or_raise(session, order_id)
            self._require_status(
                order,
                {OrderStatus.PENDING_APPROVAL},
                OrderStatus.NEEDS_REVISION,
                "request_revision",
            )

            order.revisions.append(
                CakeRevision(
                    notes=notes,
                    photos=list(photos or []),
                    requested_by=requested_by,
                    timestamp=utc_now(),
                )
            )
            revision_count = (order.revision_count or 0) + 1
            self._gateway.orders.update(session, order_id, {"revision_count": revision_count})
            self._transition(
                session,
                order,
                OrderStatus.NEEDS_REVISION,
                "request_revision",
                actor=requested_by,
                note=notes,
            )
            self._gateway.orders.append_log(
                session,
                order_id,
                OrderLogType.REVISION_REQUESTED,
                note=notes,
                user=requested_by,
                details={"revision_count": revision_count},
            )

            log_operation(
                logger,
                operation="request_revision",
                outcome="success",
                order_id=order_id,
                revision_count=revision_count,
            )
            return order

    def archive(
        self, order_id: str, actor: Optional[str] = None, session: Optional[Session] = None
    ) -> Order:
        """Archive a finished order and stamp archived_date."""
        with self._gateway.session_scope(session) as session:
            order = self._get_order_or_raise(session, order_id)
            self._transition(session, order, OrderStatus.ARCHIVED, "archive", actor=actor)
            self._gateway.orders.update(session, order_id, {"archived_date": utc_now()})

            log_operation(logger, operation="archive", outcome="success", order_id=order_id)
            return order

    def restore_from_archive(
        self, order_id: str, actor: Optional[str] = None, session: Optional[Session] = None
    ) -> Order:
        """
        Return an archived order to the status it had before archiving.

        The target comes from the order log (see resolve_restore_status) and
        bypasses the transition table. archived_date is cleared.

        Raises:
            OrderNotFound: Unknown order id
            InvalidTransition: Order is not archived
        """
        with self._gateway.session_scope(session) as session:
            order = self._get_order_or_raise(session, order_id)
            self._require_status(
                order, {OrderStatus.ARCHIVED}, "restore from archive", "restore_from_archive"
            )

            target = resolve_restore_status(order)
            self._write_status(
                session, order, target, actor=actor, note="Restored from archive"
            )
            self._gateway.orders.update(session, order_id, {"archived_date": None})

            log_operation(
                logger,
                operation="restore_from_archive",
                outcome="success",
                order_id=order_id,
                restored_status=target.value,
            )
            return order

    def cancel(
        self,
        order_id: str,
        actor: Optional[str] = None,
        note: Optional[str] = None,
        session: Optional[Session] = None,
    ) -> Order:
        """
        Cancel an order from any non-terminal status.

        Raises:
            OrderNotFound: Unknown order id
            InvalidTransition: Order is finished, archived or already cancelled
        """
        with self._gateway.session_scope(session) as session:
            order = self._get_order_or_raise(session, order_id)
            if order.status.is_terminal:
                raise log_rejection(
                    logger,
                    "cancel",
                    InvalidTransition(order_id, order.status, OrderStatus.CANCELLED),
                    order_id=order_id,
                )
            previous = order.status
            self._transition(session, order, OrderStatus.CANCELLED, "cancel", actor=actor, note=note)

            log_operation(
                logger,
                operation="cancel",
                outcome="success",
                order_id=order_id,
                previous_status=previous.value,
            )
            return order

    # =========================================================================
    # History and reads
    # =========================================================================

    def record_print(
        self,
        order_id: str,
        print_type,
        user: Optional[str] = None,
        session: Optional[Session] = None,
    ) -> PrintEvent:
        """Record that an order form or delivery label was printed."""
        kind, error = parse_enum(PrintType, print_type, "Print type")
        if error:
            raise log_rejection(logger, "record_print", ValidationError([error]), order_id=order_id)

        with self._gateway.session_scope(session) as session:
            order = self._get_order_or_raise(session, order_id)
            event = PrintEvent(print_type=kind, user=user, timestamp=utc_now())
            order.print_history.append(event)
            self._gateway.orders.append_log(
                session,
                order_id,
                OrderLogType.PRINT,
                user=user,
                details={"print_type": kind.value},
            )

            log_operation(
                logger,
                operation="record_print",
                outcome="success",
                order_id=order_id,
                print_type=kind.value,
            )
            return event

    def get_order(self, order_id: str, session: Optional[Session] = None) -> Order:
        """
        Get an order by shop code.

        Raises:
            OrderNotFound: Unknown order id
        """
        with self._gateway.session_scope(session) as session:
            return self._get_order_or_raise(session, order_id)

    def list_orders(self, status=None, session: Optional[Session] = None) -> List[Order]:
        """List orders by shop code, optionally filtered to one status."""
        statuses = None
        if status is not None:
            member, error = parse_enum(OrderStatus, status, "Status")
            if error:
                raise ValidationError([error])
            statuses = [member]

        with self._gateway.session_scope(session) as session:
            return self._gateway.orders.list(session, statuses=statuses)
