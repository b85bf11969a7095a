"""
CakeInventoryItem model for baked cake stock.

Holds the running count of baked (undecorated) cakes per specification
triple. Only the production ledger changes it.
"""

from sqlalchemy import (
    Column,
    DateTime,
    Integer,
    String,
    CheckConstraint,
    UniqueConstraint,
)

from .base import BaseModel
from src.utils.datetime_utils import utc_now


class CakeInventoryItem(BaseModel):
    """
    CakeInventoryItem model: stock count for one specification triple.

    Attributes:
        cake_shape / cake_size / cake_flavor: Specification triple (unique)
        quantity: Cakes in stock
        last_updated: When the count last changed
    """

    __tablename__ = "cake_inventory"

    cake_shape = Column(String(100), nullable=False)
    cake_size = Column(String(100), nullable=False)
    cake_flavor = Column(String(100), nullable=False)
    quantity = Column(Integer, nullable=False, default=0)
    last_updated = Column(DateTime, nullable=False, default=utc_now)

    __table_args__ = (
        UniqueConstraint(
            "cake_shape", "cake_size", "cake_flavor", name="uq_cake_inventory_spec"
        ),
        CheckConstraint("quantity >= 0", name="ck_cake_inventory_quantity_non_negative"),
    )

    def __repr__(self) -> str:
        return (
            f"CakeInventoryItem(id={self.id}, spec=({self.cake_shape}, {self.cake_size}, "
            f"{self.cake_flavor}), quantity={self.quantity})"
        )
