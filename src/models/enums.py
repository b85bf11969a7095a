"""
Enumerations for order, production and delivery tracking.

This module contains the closed status sets used across the models:
- OrderStatus / KitchenStatus: order workflow and its kitchen substate
- OrderLogType / PrintType: order history record kinds
- BakingTaskStatus: production task lifecycle
- TripStatus / DriverType: delivery trips
"""

from enum import Enum
from typing import Optional


class OrderStatus(str, Enum):
    """
    Primary workflow state of a cake order.

    Happy path:
        INCOMPLETE -> IN_QUEUE -> IN_KITCHEN -> WAITING_PHOTO
        -> PENDING_APPROVAL <-> NEEDS_REVISION -> READY_TO_DELIVER
        -> IN_DELIVERY -> WAITING_FEEDBACK -> FINISHED -> ARCHIVED

    CANCELLED is reachable from any non-terminal state.
    """

    INCOMPLETE = "incomplete"
    IN_QUEUE = "in-queue"
    IN_KITCHEN = "in-kitchen"
    WAITING_PHOTO = "waiting-photo"
    PENDING_APPROVAL = "pending-approval"
    NEEDS_REVISION = "needs-revision"
    READY_TO_DELIVER = "ready-to-deliver"
    IN_DELIVERY = "in-delivery"
    WAITING_FEEDBACK = "waiting-feedback"
    FINISHED = "finished"
    ARCHIVED = "archived"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        """True for states the normal workflow never leaves."""
        return self in (OrderStatus.FINISHED, OrderStatus.ARCHIVED, OrderStatus.CANCELLED)


class KitchenStatus(str, Enum):
    """
    Production substate while an order is IN_KITCHEN.

    WAITING_BAKER -> WAITING_CRUMBCOAT -> WAITING_COVER -> DECORATING
    -> DONE_WAITING_APPROVAL
    """

    WAITING_BAKER = "waiting-baker"
    WAITING_CRUMBCOAT = "waiting-crumbcoat"
    WAITING_COVER = "waiting-cover"
    DECORATING = "decorating"
    DONE_WAITING_APPROVAL = "done-waiting-approval"

    def next_status(self) -> Optional["KitchenStatus"]:
        """Return the following kitchen step, or None at the end of the chain."""
        members = list(KitchenStatus)
        index = members.index(self)
        if index + 1 < len(members):
            return members[index + 1]
        return None


class OrderLogType(str, Enum):
    """Kinds of entries in an order's append-only log."""

    STATUS_CHANGE = "status-change"
    KITCHEN_STATUS_CHANGE = "kitchen-status-change"
    REVISION_REQUESTED = "revision-requested"
    APPROVED = "approved"
    DRIVER_ASSIGNED = "driver-assigned"
    TRIP_ASSIGNED = "trip-assigned"
    TRIP_REMOVED = "trip-removed"
    PRINT = "print"
    NOTE = "note"


class PrintType(str, Enum):
    """Printed documents tracked in an order's print history."""

    ORDER_FORM = "order-form"
    DELIVERY_LABEL = "delivery-label"


class BakingTaskStatus(str, Enum):
    """
    Baking task lifecycle.

    PENDING -> IN_PROGRESS -> COMPLETED, or CANCELLED by reconciliation
    (or by the baker for manual tasks).
    """

    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_active(self) -> bool:
        return self in (BakingTaskStatus.PENDING, BakingTaskStatus.IN_PROGRESS)


class TripStatus(str, Enum):
    """
    Delivery trip lifecycle.

    PLANNED -> IN_PROGRESS -> COMPLETED; any non-terminal -> CANCELLED.
    """

    PLANNED = "planned"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (TripStatus.COMPLETED, TripStatus.CANCELLED)


class DriverType(str, Enum):
    """Who drives a delivery: one of the shop's drivers or a courier."""

    DRIVER_1 = "driver-1"
    DRIVER_2 = "driver-2"
    THIRD_PARTY = "3rd-party"
