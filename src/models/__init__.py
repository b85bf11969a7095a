"""
Database models package.

This package contains all SQLAlchemy ORM models for the application.
"""

from .base import Base, BaseModel
from .enums import (
    OrderStatus,
    KitchenStatus,
    OrderLogType,
    PrintType,
    BakingTaskStatus,
    TripStatus,
    DriverType,
)
from .order import Order, OrderLog, CakeRevision, PrintEvent, DeliveryAssignment
from .baking_task import BakingTask
from .production_log_entry import ProductionLogEntry
from .cake_inventory_item import CakeInventoryItem
from .trip import DeliveryTrip

__all__ = [
    "Base",
    "BaseModel",
    # Enums
    "OrderStatus",
    "KitchenStatus",
    "OrderLogType",
    "PrintType",
    "BakingTaskStatus",
    "TripStatus",
    "DriverType",
    # Orders
    "Order",
    "OrderLog",
    "CakeRevision",
    "PrintEvent",
    "DeliveryAssignment",
    # Production
    "BakingTask",
    "ProductionLogEntry",
    "CakeInventoryItem",
    # Delivery
    "DeliveryTrip",
]
