"""
Order models for tracking custom cake orders.

This module contains:
- Order: A customer's cake order, identified by its shop code (MM-YY-NNN)
- OrderLog: Append-only history of everything that happened to an order
- CakeRevision: Photo-approval revision requests
- PrintEvent: Printed order forms and delivery labels
- DeliveryAssignment: Preliminary and final driver assignments
"""

from typing import Optional, Tuple

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    CheckConstraint,
    Enum as SQLEnum,
)
from sqlalchemy.orm import relationship

from .base import BaseModel
from .enums import DriverType, KitchenStatus, OrderLogType, OrderStatus, PrintType
from src.utils.datetime_utils import utc_now


class Order(BaseModel):
    """
    Order model representing one custom cake order.

    The order owns its history tables; baking tasks and delivery trips refer
    to it by id only.

    Attributes:
        id: Shop code "MM-YY-NNN", sequential within the creation month
        status: Primary workflow state (OrderStatus)
        kitchen_status: Production substate while in the kitchen
        cake_shape / cake_size / cake_flavor: The spec triple used for baking
        cake_tier: Number of tiers
        tier_details: Per-tier detail (JSON list of dicts)
        delivery_date: Calendar date the cake is due
        trip_id / trip_sequence: Mirror of the delivery trip membership
        revision_count: Number of photo revisions requested
        finished_cake_photos: Photos submitted for approval (JSON list)
    """

    __tablename__ = "orders"

    id = Column(String(16), primary_key=True)

    status = Column(SQLEnum(OrderStatus), nullable=False, default=OrderStatus.INCOMPLETE)
    kitchen_status = Column(SQLEnum(KitchenStatus), nullable=True)

    customer_name = Column(String(200), nullable=True)
    order_date = Column(Date, nullable=True)
    delivery_date = Column(Date, nullable=False)
    delivery_address = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)

    # Cake specification
    cake_shape = Column(String(100), nullable=False)
    cake_size = Column(String(100), nullable=False)
    cake_flavor = Column(String(100), nullable=False)
    cake_tier = Column(Integer, nullable=False, default=1)
    tier_details = Column(JSON, nullable=True)

    # Delivery trip mirror (the trip owns membership)
    trip_id = Column(
        Integer, ForeignKey("delivery_trips.id", ondelete="RESTRICT"), nullable=True
    )
    trip_sequence = Column(Integer, nullable=True)

    # Approval flow
    revision_count = Column(Integer, nullable=False, default=0)
    finished_cake_photos = Column(JSON, nullable=True)
    approved_by = Column(String(200), nullable=True)
    approval_date = Column(DateTime, nullable=True)
    archived_date = Column(DateTime, nullable=True)

    logs = relationship(
        "OrderLog",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderLog.id",
        lazy="selectin",
    )
    revisions = relationship(
        "CakeRevision",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="CakeRevision.id",
        lazy="selectin",
    )
    print_history = relationship(
        "PrintEvent",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="PrintEvent.id",
        lazy="selectin",
    )
    delivery_assignments = relationship(
        "DeliveryAssignment",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="DeliveryAssignment.id",
        lazy="selectin",
    )

    __table_args__ = (
        Index("idx_order_status", "status"),
        Index("idx_order_delivery_date", "delivery_date"),
        Index("idx_order_trip", "trip_id"),
        CheckConstraint("cake_tier >= 1", name="ck_order_cake_tier_positive"),
        CheckConstraint("revision_count >= 0", name="ck_order_revision_count_non_negative"),
    )

    @property
    def spec_key(self) -> Tuple[str, str, str]:
        """The (shape, size, flavor) triple that groups orders for baking."""
        return (self.cake_shape, self.cake_size, self.cake_flavor)

    @property
    def delivery_assignment(self) -> Optional["DeliveryAssignment"]:
        """The current (most recently created) driver assignment."""
        if not self.delivery_assignments:
            return None
        return self.delivery_assignments[-1]

    def __repr__(self) -> str:
        """String representation of order."""
        return f"Order(id='{self.id}', status={self.status.value if self.status else None})"


class OrderLog(BaseModel):
    """
    One entry in an order's append-only history.

    Status-change entries are the source of truth for an order's past
    statuses; restoring from the archive reads them back.
    """

    __tablename__ = "order_logs"

    order_id = Column(
        String(16), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False
    )
    log_type = Column(SQLEnum(OrderLogType), nullable=False)
    previous_status = Column(SQLEnum(OrderStatus), nullable=True)
    new_status = Column(SQLEnum(OrderStatus), nullable=True)
    note = Column(Text, nullable=True)
    user = Column(String(200), nullable=True)
    timestamp = Column(DateTime, nullable=False, default=utc_now)
    details = Column(JSON, nullable=True)

    order = relationship("Order", back_populates="logs")

    __table_args__ = (
        Index("idx_order_log_order", "order_id"),
        Index("idx_order_log_type", "log_type"),
    )

    def __repr__(self) -> str:
        return f"OrderLog(id={self.id}, order_id='{self.order_id}', type={self.log_type.value})"


class CakeRevision(BaseModel):
    """A revision requested while reviewing finished-cake photos."""

    __tablename__ = "order_revisions"

    order_id = Column(
        String(16), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False
    )
    notes = Column(Text, nullable=True)
    photos = Column(JSON, nullable=True)
    requested_by = Column(String(200), nullable=True)
    timestamp = Column(DateTime, nullable=False, default=utc_now)

    order = relationship("Order", back_populates="revisions")

    __table_args__ = (Index("idx_order_revision_order", "order_id"),)


class PrintEvent(BaseModel):
    """A printed order form or delivery label."""

    __tablename__ = "order_print_history"

    order_id = Column(
        String(16), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False
    )
    print_type = Column(SQLEnum(PrintType), nullable=False)
    user = Column(String(200), nullable=True)
    timestamp = Column(DateTime, nullable=False, default=utc_now)

    order = relationship("Order", back_populates="print_history")

    __table_args__ = (Index("idx_order_print_order", "order_id"),)


class DeliveryAssignment(BaseModel):
    """
    A driver assignment attached to an order.

    Assignments accumulate; the most recently created one is current.
    Preliminary assignments let dispatch plan drivers before the cake
    photos are approved.
    """

    __tablename__ = "order_delivery_assignments"

    order_id = Column(
        String(16), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False
    )
    driver_type = Column(SQLEnum(DriverType), nullable=False)
    driver_name = Column(String(200), nullable=True)
    assigned_by = Column(String(200), nullable=True)
    vehicle_info = Column(String(200), nullable=True)
    notes = Column(Text, nullable=True)
    is_preliminary = Column(Boolean, nullable=False, default=False)
    assigned_at = Column(DateTime, nullable=False, default=utc_now)

    order = relationship("Order", back_populates="delivery_assignments")

    __table_args__ = (Index("idx_order_assignment_order", "order_id"),)

    def __repr__(self) -> str:
        return (
            f"DeliveryAssignment(id={self.id}, order_id='{self.order_id}', "
            f"driver_type={self.driver_type.value}, preliminary={self.is_preliminary})"
        )
