"""Driver Assignment Service - who delivers each order.

Assignments accumulate on the order; the most recently created one is
current. Dispatch may pre-assign a driver while the cake is still being
made (preliminary), and confirms the driver once the order is ready.
"""

from typing import List, Optional

from sqlalchemy.orm import Session

from src.models import DeliveryAssignment, DriverType, Order, OrderLogType, OrderStatus
from src.services.exceptions import OrderNotFound, PreconditionFailed, ValidationError
from src.services.logging_utils import get_service_logger, log_operation, log_rejection
from src.utils.datetime_utils import utc_now
from src.utils.validators import parse_enum, sanitize_string

logger = get_service_logger(__name__)

# Statuses in which a driver may be pencilled in ahead of approval
PRELIMINARY_STATUSES = frozenset(
    {
        OrderStatus.IN_QUEUE,
        OrderStatus.IN_KITCHEN,
        OrderStatus.WAITING_PHOTO,
        OrderStatus.PENDING_APPROVAL,
        OrderStatus.NEEDS_REVISION,
    }
)

# Statuses in which a final assignment may be made
FINAL_STATUSES = frozenset({OrderStatus.READY_TO_DELIVER, OrderStatus.IN_DELIVERY})


def describe_assignment(assignment: DeliveryAssignment) -> str:
    """Short note for the order log, e.g. "Assigned to driver-1 (Sam)"."""
    prefix = "Pre-assigned" if assignment.is_preliminary else "Assigned"
    text = f"{prefix} to {assignment.driver_type.value}"
    if assignment.driver_name:
        text += f" ({assignment.driver_name})"
    return text


class DriverAssignmentService:
    """
    Driver assignments for orders.

    Args:
        gateway: PersistenceGateway used for every read and write
    """

    def __init__(self, gateway):
        self._gateway = gateway

    def _get_order_or_raise(self, session: Session, order_id: str) -> Order:
        order = self._gateway.orders.get(session, order_id)
        if order is None:
            raise log_rejection(logger, "get_order", OrderNotFound(order_id), order_id=order_id)
        return order

    def assign(
        self,
        order_id: str,
        driver_type,
        assigned_by: str,
        driver_name: Optional[str] = None,
        vehicle_info: Optional[str] = None,
        is_preliminary: bool = False,
        notes: Optional[str] = None,
        session: Optional[Session] = None,
    ) -> DeliveryAssignment:
        """
        Assign a driver to an order.

        Args:
            order_id: Shop code of the order
            driver_type: DriverType member or wire value
            assigned_by: Who made the assignment
            driver_name: Required for 3rd-party couriers
            vehicle_info: Optional vehicle description
            is_preliminary: Pre-assignment before the order is ready
            notes: Optional notes
            session: Optional session for transaction sharing

        Returns:
            The new DeliveryAssignment (now the order's current assignment)

        Raises:
            OrderNotFound: Unknown order id
            ValidationError: Unknown driver type
            PreconditionFailed: 3rd-party without a name, or the order's
                status does not allow this kind of assignment
        """
        driver, error = parse_enum(DriverType, driver_type, "Driver type")
        if error:
            raise log_rejection(
                logger, "assign_driver", ValidationError([error]), order_id=order_id
            )

        driver_name = sanitize_string(driver_name)

        with self._gateway.session_scope(session) as session:
            order = self._get_order_or_raise(session, order_id)

            reason = None
            if driver == DriverType.THIRD_PARTY and not driver_name:
                reason = "3rd-party driver requires a driver name"
            elif is_preliminary and order.status not in PRELIMINARY_STATUSES:
                reason = f"cannot pre-assign a driver to an order that is {order.status.value}"
            elif not is_preliminary and order.status not in FINAL_STATUSES:
                reason = f"order {order_id} is {order.status.value}, not ready for delivery"
            if reason:
                raise log_rejection(
                    logger, "assign_driver", PreconditionFailed(reason), order_id=order_id
                )

            assignment = DeliveryAssignment(
                driver_type=driver,
                driver_name=driver_name,
                assigned_by=assigned_by,
                vehicle_info=sanitize_string(vehicle_info),
                notes=notes,
                is_preliminary=bool(is_preliminary),
                assigned_at=utc_now(),
            )
            order.delivery_assignments.append(assignment)
            session.flush()

            self._gateway.orders.append_log(
                session,
                order_id,
                OrderLogType.DRIVER_ASSIGNED,
                note=describe_assignment(assignment),
                user=assigned_by,
                details={
                    "driver_type": driver.value,
                    "driver_name": driver_name,
                    "is_preliminary": bool(is_preliminary),
                },
            )

            log_operation(
                logger,
                operation="assign_driver",
                outcome="success",
                order_id=order_id,
                driver_type=driver.value,
                is_preliminary=bool(is_preliminary),
            )
            return assignment

    def get_current_assignment(
        self, order_id: str, session: Optional[Session] = None
    ) -> Optional[DeliveryAssignment]:
        """The most recently created assignment, or None."""
        with self._gateway.session_scope(session) as session:
            return self._get_order_or_raise(session, order_id).delivery_assignment

    def get_assignment_history(
        self, order_id: str, session: Optional[Session] = None
    ) -> List[DeliveryAssignment]:
        """All assignments for an order, oldest first."""
        with self._gateway.session_scope(session) as session:
            return list(self._get_order_or_raise(session, order_id).delivery_assignments)
