"""Trip Planner Service - delivery trips and their member orders.

A trip is one driver's delivery run on one date. The trip owns membership
(``order_ids``) and visit order (``sequence``); each member order keeps a
mirror of both in ``trip_id`` / ``trip_sequence``.

Membership changes always write the trip side first and the order side
second, inside one session, so both halves commit or roll back together.
``reconcile_trip_links`` repairs drift left by writers that bypass this
service.

Session Management Pattern:
- All public methods accept session=None
- If session provided, it is reused and the caller owns the transaction
- If session is None, the gateway opens a committing scope
"""

import logging
from collections import OrderedDict
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from src.models import DeliveryTrip, DriverType, Order, OrderLogType, OrderStatus, TripStatus
from src.services.exceptions import (
    InvalidSequence,
    InvalidTransition,
    OrderNotFound,
    PreconditionFailed,
    TripNotEmpty,
    TripNotFound,
    ValidationError,
)
from src.services.logging_utils import get_service_logger, log_operation, log_rejection
from src.utils.constants import MAX_NAME_LENGTH
from src.utils.validators import (
    parse_enum,
    sanitize_string,
    validate_required_string,
    validate_string_length,
)

logger = get_service_logger(__name__)


TRIP_TRANSITIONS = {
    TripStatus.PLANNED: frozenset({TripStatus.IN_PROGRESS, TripStatus.CANCELLED}),
    TripStatus.IN_PROGRESS: frozenset({TripStatus.COMPLETED, TripStatus.CANCELLED}),
    TripStatus.COMPLETED: frozenset(),
    TripStatus.CANCELLED: frozenset(),
}

EDITABLE_TRIP_FIELDS = frozenset({"name", "driver_type", "driver_name", "vehicle_info", "notes"})

# Completed trips are delivery history: their membership never changes.
# Orders on a cancelled trip may still be moved or removed for re-planning.
FROZEN_MEMBERSHIP_STATUSES = frozenset({TripStatus.COMPLETED})


def _is_position(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def _check_driver_name(driver_type: DriverType, driver_name: Optional[str]) -> None:
    if driver_type == DriverType.THIRD_PARTY and not driver_name:
        raise PreconditionFailed("3rd-party driver requires a driver name")


def _require_open_membership(trip: DeliveryTrip, operation: str, order_id: str) -> None:
    if TripStatus(trip.status) in FROZEN_MEMBERSHIP_STATUSES:
        raise log_rejection(
            logger,
            operation,
            PreconditionFailed(f"trip {trip.id} is {trip.status.value}; its orders cannot change"),
            trip_id=trip.id,
            order_id=order_id,
        )


class TripPlanner:
    """
    Plans delivery trips and keeps orders in step with trip membership.

    Args:
        gateway: PersistenceGateway used for every read and write
    """

    def __init__(self, gateway):
        self._gateway = gateway

    # =========================================================================
    # Internal helpers
    # =========================================================================

    def _get_trip_or_raise(self, session: Session, trip_id: int) -> DeliveryTrip:
        trip = self._gateway.trips.get(session, trip_id)
        if trip is None:
            raise log_rejection(logger, "get_trip", TripNotFound(trip_id), trip_id=trip_id)
        return trip

    def _get_order_or_raise(self, session: Session, order_id: str) -> Order:
        order = self._gateway.orders.get(session, order_id)
        if order is None:
            raise log_rejection(logger, "get_order", OrderNotFound(order_id), order_id=order_id)
        return order

    def _link_order(self, session: Session, order: Order, trip: DeliveryTrip) -> None:
        """Write the order-side mirror of the trip's membership."""
        self._gateway.orders.update(
            session,
            order.id,
            {"trip_id": trip.id, "trip_sequence": (trip.sequence or {}).get(order.id)},
        )

    def _unlink_order(self, session: Session, order_id: str, trip_id: int) -> bool:
        """Clear an order's trip pointer if it names ``trip_id``."""
        order = self._gateway.orders.get(session, order_id)
        if order is None or order.trip_id != trip_id:
            return False
        self._gateway.orders.update(session, order_id, {"trip_id": None, "trip_sequence": None})
        return True

    def _remove_member(
        self,
        session: Session,
        trip: DeliveryTrip,
        order_id: str,
        actor: Optional[str] = None,
    ) -> bool:
        """Drop ``order_id`` from a trip, trip side first. Returns True if it was a member."""
        was_member = order_id in (trip.order_ids or [])
        if was_member:
            sequence = dict(trip.sequence or {})
            sequence.pop(order_id, None)
            self._gateway.trips.update(
                session,
                trip.id,
                {
                    "order_ids": [oid for oid in trip.order_ids if oid != order_id],
                    "sequence": sequence,
                },
            )

        self._unlink_order(session, order_id, trip.id)

        if was_member and self._gateway.orders.get(session, order_id) is not None:
            self._gateway.orders.append_log(
                session,
                order_id,
                OrderLogType.TRIP_REMOVED,
                user=actor,
                details={"trip_id": trip.id},
            )
        return was_member

    # =========================================================================
    # Trips
    # =========================================================================

    def create_trip(
        self,
        name: str,
        driver_type,
        trip_date: date,
        driver_name: Optional[str] = None,
        vehicle_info: Optional[str] = None,
        notes: Optional[str] = None,
        session: Optional[Session] = None,
    ) -> DeliveryTrip:
        """
        Create an empty planned trip.

        trip_number counts the trips already planned for ``trip_date``.

        Raises:
            ValidationError: Missing name, unknown driver type or missing date
            PreconditionFailed: 3rd-party trip without a driver name
        """
        driver, error = parse_enum(DriverType, driver_type, "Driver type")
        errors = [error] if error else []
        name = sanitize_string(name)
        is_valid, error = validate_required_string(name, "Name")
        if not is_valid:
            errors.append(error)
        else:
            is_valid, error = validate_string_length(name, MAX_NAME_LENGTH, "Name")
            if not is_valid:
                errors.append(error)
        if not isinstance(trip_date, date):
            errors.append("Trip date: This field is required")
        if errors:
            raise log_rejection(logger, "create_trip", ValidationError(errors))

        driver_name = sanitize_string(driver_name)
        try:
            _check_driver_name(driver, driver_name)
        except PreconditionFailed as e:
            raise log_rejection(logger, "create_trip", e, driver_type=driver.value)

        with self._gateway.session_scope(session) as session:
            trip_number = self._gateway.trips.count_for_date(session, trip_date) + 1
            trip = self._gateway.trips.create(
                session,
                name=name,
                driver_type=driver,
                driver_name=driver_name,
                vehicle_info=sanitize_string(vehicle_info),
                trip_date=trip_date,
                trip_number=trip_number,
                status=TripStatus.PLANNED,
                notes=notes,
                order_ids=[],
                sequence={},
            )

            log_operation(
                logger,
                operation="create_trip",
                outcome="success",
                trip_id=trip.id,
                trip_number=trip_number,
            )
            return trip

    def update_trip_details(
        self, trip_id: int, session: Optional[Session] = None, **fields
    ) -> DeliveryTrip:
        """
        Change a trip's name, driver, vehicle or notes.

        The 3rd-party driver-name rule is checked against the resulting
        values, so clearing the name of a courier trip is rejected.

        Raises:
            TripNotFound: Unknown trip id
            ValidationError: Unknown fields or invalid values
            PreconditionFailed: 3rd-party trip left without a driver name
        """
        unknown = sorted(set(fields) - EDITABLE_TRIP_FIELDS)
        if unknown:
            raise log_rejection(
                logger,
                "update_trip_details",
                ValidationError([f"Cannot update field(s): {', '.join(unknown)}"]),
                trip_id=trip_id,
            )

        changes = dict(fields)
        if "driver_type" in changes:
            driver, error = parse_enum(DriverType, changes["driver_type"], "Driver type")
            if error:
                raise log_rejection(
                    logger, "update_trip_details", ValidationError([error]), trip_id=trip_id
                )
            changes["driver_type"] = driver
        for key in ("name", "driver_name", "vehicle_info"):
            if key in changes:
                changes[key] = sanitize_string(changes[key])
        if "name" in changes:
            is_valid, error = validate_required_string(changes["name"], "Name")
            if not is_valid:
                raise log_rejection(
                    logger, "update_trip_details", ValidationError([error]), trip_id=trip_id
                )

        with self._gateway.session_scope(session) as session:
            trip = self._get_trip_or_raise(session, trip_id)
            try:
                _check_driver_name(
                    changes.get("driver_type", trip.driver_type),
                    changes.get("driver_name", trip.driver_name),
                )
            except PreconditionFailed as e:
                raise log_rejection(logger, "update_trip_details", e, trip_id=trip_id)

            self._gateway.trips.update(session, trip_id, changes)

            log_operation(
                logger,
                operation="update_trip_details",
                outcome="success",
                trip_id=trip_id,
                fields=sorted(changes),
            )
            return trip

    def update_status(
        self, trip_id: int, status, session: Optional[Session] = None
    ) -> DeliveryTrip:
        """
        Move a trip along planned -> in-progress -> completed, or cancel it.

        Raises:
            TripNotFound: Unknown trip id
            InvalidTransition: Move not allowed from the current status
            ValidationError: ``status`` is not a trip status
        """
        new_status, error = parse_enum(TripStatus, status, "Status")
        if error:
            raise log_rejection(
                logger, "update_trip_status", ValidationError([error]), trip_id=trip_id
            )

        with self._gateway.session_scope(session) as session:
            trip = self._get_trip_or_raise(session, trip_id)
            current = TripStatus(trip.status)
            if new_status not in TRIP_TRANSITIONS[current]:
                raise log_rejection(
                    logger,
                    "update_trip_status",
                    InvalidTransition(trip_id, current, new_status),
                    trip_id=trip_id,
                )

            self._gateway.trips.update(session, trip_id, {"status": new_status})

            log_operation(
                logger,
                operation="update_trip_status",
                outcome="success",
                trip_id=trip_id,
                previous_status=current.value,
                new_status=new_status.value,
            )
            return trip

    def delete_trip(self, trip_id: int, session: Optional[Session] = None) -> None:
        """
        Delete an empty trip.

        Raises:
            TripNotFound: Unknown trip id
            TripNotEmpty: The trip still has member orders
        """
        with self._gateway.session_scope(session) as session:
            trip = self._get_trip_or_raise(session, trip_id)
            if trip.order_ids:
                raise log_rejection(
                    logger,
                    "delete_trip", TripNotEmpty(trip_id, trip.order_ids), trip_id=trip_id
                )

            # Orders may still point here after an external write
            for order in self._gateway.orders.list(session):
                if order.trip_id == trip_id:
                    self._unlink_order(session, order.id, trip_id)

            self._gateway.trips.delete(session, trip_id)
            log_operation(logger, operation="delete_trip", outcome="success", trip_id=trip_id)

    # =========================================================================
    # Membership
    # =========================================================================

    def add_order(
        self,
        trip_id: int,
        order_id: str,
        sequence: Optional[int] = None,
        actor: Optional[str] = None,
        session: Optional[Session] = None,
    ) -> DeliveryTrip:
        """
        Add an order to a trip, moving it out of any other trip first.

        If the order is already a member only its position changes (and only
        when ``sequence`` is given). New members go to ``sequence`` or to
        member count + 1.

        Raises:
            TripNotFound / OrderNotFound: Unknown ids
            PreconditionFailed: Trip is completed or cancelled, or the order
                sits on a completed trip
            InvalidSequence: ``sequence`` is not a positive whole number
        """
        if sequence is not None and not _is_position(sequence):
            raise log_rejection(
                logger,
                "add_order",
                InvalidSequence(trip_id, reason=f"position for {order_id} must be a positive integer"),
                trip_id=trip_id,
                order_id=order_id,
            )

        with self._gateway.session_scope(session) as session:
            trip = self._get_trip_or_raise(session, trip_id)
            order = self._get_order_or_raise(session, order_id)
            if TripStatus(trip.status).is_terminal:
                raise log_rejection(
                    logger,
                    "add_order",
                    PreconditionFailed(f"trip {trip_id} is {trip.status.value}"),
                    trip_id=trip_id,
                    order_id=order_id,
                )

            if order_id in (trip.order_ids or []):
                if sequence is not None:
                    new_sequence = dict(trip.sequence or {})
                    new_sequence[order_id] = sequence
                    self._gateway.trips.update(session, trip_id, {"sequence": new_sequence})
                self._link_order(session, order, trip)
                log_operation(
                    logger,
                    operation="add_order",
                    outcome="already_member",
                    level=logging.DEBUG,
                    trip_id=trip_id,
                    order_id=order_id,
                )
                return trip

            sources = [
                other
                for other in self._gateway.trips.find_by_order(session, order_id)
                if other.id != trip_id
            ]
            for other in sources:
                _require_open_membership(other, "add_order", order_id)
            for other in sources:
                self._remove_member(session, other, order_id, actor=actor)

            order_ids = list(trip.order_ids or [])
            position = sequence or len(order_ids) + 1
            new_sequence = dict(trip.sequence or {})
            new_sequence[order_id] = position

            # Trip side first, then the order mirror
            self._gateway.trips.update(
                session, trip_id, {"order_ids": order_ids + [order_id], "sequence": new_sequence}
            )
            self._link_order(session, order, trip)
            self._gateway.orders.append_log(
                session,
                order_id,
                OrderLogType.TRIP_ASSIGNED,
                user=actor,
                details={"trip_id": trip_id, "sequence": position},
            )

            log_operation(
                logger,
                operation="add_order",
                outcome="success",
                trip_id=trip_id,
                order_id=order_id,
                sequence=position,
            )
            return trip

    def remove_order(
        self,
        trip_id: int,
        order_id: str,
        actor: Optional[str] = None,
        session: Optional[Session] = None,
    ) -> DeliveryTrip:
        """
        Remove an order from a trip.

        Removing a non-member is a no-op apart from clearing an order
        pointer that still names this trip. A member whose order row is gone
        is still removed.

        Raises:
            TripNotFound: Unknown trip id
            OrderNotFound: Unknown order id that is not a member either
            PreconditionFailed: Trip is completed
        """
        with self._gateway.session_scope(session) as session:
            trip = self._get_trip_or_raise(session, trip_id)
            if (
                order_id not in (trip.order_ids or [])
                and self._gateway.orders.get(session, order_id) is None
            ):
                raise log_rejection(
                    logger, "remove_order", OrderNotFound(order_id), trip_id=trip_id
                )
            _require_open_membership(trip, "remove_order", order_id)
            was_member = self._remove_member(session, trip, order_id, actor=actor)

            log_operation(
                logger,
                operation="remove_order",
                outcome="success" if was_member else "not_member",
                trip_id=trip_id,
                order_id=order_id,
            )
            return trip

    def resequence(
        self, trip_id: int, new_sequence: Dict[str, int], session: Optional[Session] = None
    ) -> DeliveryTrip:
        """
        Replace a trip's visit order.

        ``new_sequence`` must name exactly the trip's members, each with a
        positive integer position. Membership never changes.

        Raises:
            TripNotFound: Unknown trip id
            InvalidSequence: Key set differs from membership, or a position
                is not a positive integer
        """
        with self._gateway.session_scope(session) as session:
            trip = self._get_trip_or_raise(session, trip_id)
            members = set(trip.order_ids or [])
            keys = set(new_sequence or {})

            missing = members - keys
            unexpected = keys - members
            bad_positions = sorted(oid for oid in keys & members if not _is_position(new_sequence[oid]))
            if missing or unexpected or bad_positions:
                reason = None
                if bad_positions:
                    reason = f"positions must be positive integers ({', '.join(bad_positions)})"
                raise log_rejection(
                    logger,
                    "resequence",
                    InvalidSequence(trip_id, missing=missing, unexpected=unexpected, reason=reason),
                    trip_id=trip_id,
                )

            ordered = {oid: new_sequence[oid] for oid in trip.order_ids}
            self._gateway.trips.update(session, trip_id, {"sequence": ordered})
            for order_id, position in ordered.items():
                order = self._gateway.orders.get(session, order_id)
                if order is not None:
                    self._gateway.orders.update(
                        session, order_id, {"trip_id": trip_id, "trip_sequence": position}
                    )

            log_operation(
                logger,
                operation="resequence",
                outcome="success",
                trip_id=trip_id,
                order_count=len(ordered),
            )
            return trip

    # =========================================================================
    # Reads
    # =========================================================================

    def get_trip(self, trip_id: int, session: Optional[Session] = None) -> DeliveryTrip:
        """
        Get a trip by id.

        Raises:
            TripNotFound: Unknown trip id
        """
        with self._gateway.session_scope(session) as session:
            return self._get_trip_or_raise(session, trip_id)

    def list_trips(
        self, trip_date: Optional[date] = None, session: Optional[Session] = None
    ) -> List[DeliveryTrip]:
        """Trips by date and trip number, optionally for one date."""
        with self._gateway.session_scope(session) as session:
            return self._gateway.trips.list(session, trip_date=trip_date)

    def get_trip_for_order(
        self, order_id: str, session: Optional[Session] = None
    ) -> Optional[DeliveryTrip]:
        """The trip that lists ``order_id``, or None."""
        with self._gateway.session_scope(session) as session:
            trips = self._gateway.trips.find_by_order(session, order_id)
            return trips[0] if trips else None

    def get_trip_orders(self, trip_id: int, session: Optional[Session] = None) -> List[Order]:
        """Member orders in visit order. Members whose order row is gone are skipped."""
        with self._gateway.session_scope(session) as session:
            trip = self._get_trip_or_raise(session, trip_id)
            orders = []
            for order_id in trip.ordered_order_ids():
                order = self._gateway.orders.get(session, order_id)
                if order is not None:
                    orders.append(order)
            return orders

    def list_unassigned_orders(
        self, delivery_date: Optional[date] = None, session: Optional[Session] = None
    ) -> List[Order]:
        """Ready-to-deliver orders that no trip lists, optionally for one delivery date."""
        with self._gateway.session_scope(session) as session:
            assigned = set()
            for trip in self._gateway.trips.list(session):
                assigned.update(trip.order_ids or [])

            return [
                order
                for order in self._gateway.orders.list(
                    session, statuses=[OrderStatus.READY_TO_DELIVER]
                )
                if order.id not in assigned
                and (delivery_date is None or order.delivery_date == delivery_date)
            ]

    # =========================================================================
    # Repair
    # =========================================================================

    def reconcile_trip_links(self, session: Optional[Session] = None) -> Dict[str, list]:
        """
        Repair drift between trip membership and order pointers.

        Trip membership wins. Repairs, in order:
            - members whose order row no longer exists are dropped
            - sequence maps are brought back to the membership key set
              (members without a position go to the end)
            - an order listed by several trips stays in the trip its pointer
              names (else the lowest trip id) and leaves the others
            - member orders get their trip_id / trip_sequence re-written
            - orders pointing at a trip that does not list them are cleared

        Returns:
            Report dict with one list per repair kind
        """
        report: Dict[str, list] = {
            "missing_orders_dropped": [],
            "sequences_repaired": [],
            "duplicate_memberships_removed": [],
            "order_links_repaired": [],
            "stale_links_cleared": [],
        }

        with self._gateway.session_scope(session) as session:
            orders = OrderedDict((order.id, order) for order in self._gateway.orders.list(session))
            trips = sorted(self._gateway.trips.list(session), key=lambda t: t.id)

            for trip in trips:
                order_ids = list(trip.order_ids or [])
                kept = [oid for oid in order_ids if oid in orders]
                for oid in order_ids:
                    if oid not in orders:
                        report["missing_orders_dropped"].append((trip.id, oid))

                original = dict(trip.sequence or {})
                sequence = {oid: original[oid] for oid in kept if _is_position(original.get(oid))}
                next_position = max(sequence.values(), default=0) + 1
                for oid in kept:
                    if oid not in sequence:
                        sequence[oid] = next_position
                        next_position += 1
                ordered = {oid: sequence[oid] for oid in kept}

                if set(original) - set(order_ids) or any(
                    not _is_position(original.get(oid)) for oid in kept
                ):
                    report["sequences_repaired"].append(trip.id)
                if kept != order_ids or ordered != original:
                    self._gateway.trips.update(
                        session, trip.id, {"order_ids": kept, "sequence": ordered}
                    )

            owners: Dict[str, DeliveryTrip] = {}
            for trip in trips:
                for oid in list(trip.order_ids):
                    if oid not in owners:
                        owners[oid] = trip
                        continue
                    pointer = orders[oid].trip_id
                    keep, drop = owners[oid], trip
                    if pointer == trip.id and pointer != keep.id:
                        keep, drop = trip, owners[oid]
                    owners[oid] = keep
                    sequence = dict(drop.sequence or {})
                    sequence.pop(oid, None)
                    self._gateway.trips.update(
                        session,
                        drop.id,
                        {
                            "order_ids": [x for x in drop.order_ids if x != oid],
                            "sequence": sequence,
                        },
                    )
                    report["duplicate_memberships_removed"].append((drop.id, oid))

            for oid, trip in owners.items():
                order = orders[oid]
                position = trip.sequence.get(oid)
                if order.trip_id != trip.id or order.trip_sequence != position:
                    self._gateway.orders.update(
                        session, oid, {"trip_id": trip.id, "trip_sequence": position}
                    )
                    report["order_links_repaired"].append(oid)

            for oid, order in orders.items():
                if order.trip_id is not None and oid not in owners:
                    self._gateway.orders.update(
                        session, oid, {"trip_id": None, "trip_sequence": None}
                    )
                    report["stale_links_cleared"].append(oid)

            repairs = sum(len(items) for items in report.values())
            log_operation(
                logger,
                operation="reconcile_trip_links",
                outcome="repaired" if repairs else "consistent",
                level=logging.WARNING if repairs else logging.INFO,
                repairs=repairs,
            )
            return report
