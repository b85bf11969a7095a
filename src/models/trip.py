"""
DeliveryTrip model for driver delivery runs.

A trip is one driver's delivery run on one calendar date. The trip owns
membership (order_ids) and the visit order (sequence); each member order
carries a mirror of both in its trip_id / trip_sequence columns.
"""

from typing import List

from sqlalchemy import (
    Column,
    Date,
    Index,
    Integer,
    JSON,
    String,
    Text,
    CheckConstraint,
    Enum as SQLEnum,
)

from .base import BaseModel
from .enums import DriverType, TripStatus


class DeliveryTrip(BaseModel):
    """
    DeliveryTrip model.

    order_ids and sequence always have identical key sets. Both are JSON
    documents that are replaced whole on every write.

    Attributes:
        name: Descriptive name
        driver_type: DriverType
        driver_name: Required for 3rd-party couriers
        vehicle_info: Free-form vehicle description
        trip_date: Calendar date of the run
        trip_number: 1-based position among the day's trips
        status: TripStatus
        order_ids: Member order ids in the order they were added
        sequence: Map of order id -> visit position
    """

    __tablename__ = "delivery_trips"

    name = Column(String(200), nullable=False)
    driver_type = Column(SQLEnum(DriverType), nullable=False)
    driver_name = Column(String(200), nullable=True)
    vehicle_info = Column(String(200), nullable=True)
    trip_date = Column(Date, nullable=False)
    trip_number = Column(Integer, nullable=False, default=1)
    status = Column(SQLEnum(TripStatus), nullable=False, default=TripStatus.PLANNED)
    notes = Column(Text, nullable=True)

    order_ids = Column(JSON, nullable=False, default=list)
    sequence = Column(JSON, nullable=False, default=dict)

    __table_args__ = (
        Index("idx_trip_date", "trip_date"),
        Index("idx_trip_status", "status"),
        CheckConstraint("trip_number >= 1", name="ck_trip_number_positive"),
    )

    def ordered_order_ids(self) -> List[str]:
        """Member order ids sorted by visit position."""
        sequence = self.sequence or {}
        return sorted(self.order_ids or [], key=lambda oid: (sequence.get(oid, 0), oid))

    def __repr__(self) -> str:
        """String representation of delivery trip."""
        return (
            f"DeliveryTrip(id={self.id}, name='{self.name}', date={self.trip_date}, "
            f"orders={len(self.order_ids or [])})"
        )
