"""
BakingTask model for shared production work.

A baking task represents work in progress for one cake specification
(shape + size + flavor). Orders with the same specification share a task;
bakers may also create tasks by hand.
"""

from typing import Tuple

from sqlalchemy import (
    Boolean,
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
from .enums import BakingTaskStatus


class BakingTask(BaseModel):
    """
    BakingTask model for aggregated or manual production work.

    At most one active (pending or in-progress) task exists per
    specification triple. The order_ids column is always replaced as a
    whole list, never mutated in place.

    Attributes:
        cake_shape / cake_size / cake_flavor: Specification triple
        quantity: Target number of cakes
        quantity_completed: Cakes produced so far
        status: BakingTaskStatus
        due_date: Earliest delivery date among contributing orders
        order_ids: Contributing order ids (JSON list, set semantics)
        is_manual: Created directly by a baker
        is_priority: Due today
        cancellation_reason: Why the task was cancelled
        quality_checks: Last quality check results (JSON)
    """

    __tablename__ = "baking_tasks"

    cake_shape = Column(String(100), nullable=False)
    cake_size = Column(String(100), nullable=False)
    cake_flavor = Column(String(100), nullable=False)

    quantity = Column(Integer, nullable=False)
    quantity_completed = Column(Integer, nullable=False, default=0)
    status = Column(SQLEnum(BakingTaskStatus), nullable=False, default=BakingTaskStatus.PENDING)
    due_date = Column(Date, nullable=False)

    order_ids = Column(JSON, nullable=False, default=list)
    is_manual = Column(Boolean, nullable=False, default=False)
    is_priority = Column(Boolean, nullable=False, default=False)
    cancellation_reason = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    quality_checks = Column(JSON, nullable=True)

    __table_args__ = (
        Index("idx_baking_task_spec", "cake_shape", "cake_size", "cake_flavor"),
        Index("idx_baking_task_status", "status"),
        Index("idx_baking_task_due_date", "due_date"),
        CheckConstraint("quantity >= 0", name="ck_baking_task_quantity_non_negative"),
        CheckConstraint(
            "quantity_completed >= 0", name="ck_baking_task_completed_non_negative"
        ),
    )

    @property
    def spec_key(self) -> Tuple[str, str, str]:
        """The (shape, size, flavor) triple this task bakes."""
        return (self.cake_shape, self.cake_size, self.cake_flavor)

    @property
    def is_active(self) -> bool:
        """True while the task is pending or in progress."""
        return BakingTaskStatus(self.status).is_active

    def __repr__(self) -> str:
        """String representation of baking task."""
        return (
            f"BakingTask(id={self.id}, spec={self.spec_key}, "
            f"quantity={self.quantity}, completed={self.quantity_completed}, "
            f"status={self.status.value if self.status else None})"
        )
