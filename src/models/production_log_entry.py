"""
ProductionLogEntry model for the production ledger.

Each entry is an immutable record of a finished (or cancelled) production
run. Entries outlive their baking task, so task_id is a plain column
rather than a foreign key.
"""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    JSON,
    String,
    Text,
    CheckConstraint,
)

from .base import BaseModel
from src.utils.datetime_utils import utc_now


class ProductionLogEntry(BaseModel):
    """
    ProductionLogEntry model recording one production run.

    Attributes:
        cake_shape / cake_size / cake_flavor: Specification triple
        quantity: Cakes produced (0 for cancellations)
        completed_at: When the run was recorded
        baker: Who baked
        quality_checks: Quality check results (JSON)
        task_id: Originating baking task, if any
        cancelled: True when the entry records a cancellation
        cancellation_reason: Why the task was cancelled
        is_manual: True when the task was created by a baker
    """

    __tablename__ = "production_log"

    cake_shape = Column(String(100), nullable=False)
    cake_size = Column(String(100), nullable=False)
    cake_flavor = Column(String(100), nullable=False)
    quantity = Column(Integer, nullable=False)
    completed_at = Column(DateTime, nullable=False, default=utc_now)
    baker = Column(String(200), nullable=True)
    quality_checks = Column(JSON, nullable=True)
    notes = Column(Text, nullable=True)
    task_id = Column(Integer, nullable=True)
    cancelled = Column(Boolean, nullable=False, default=False)
    cancellation_reason = Column(Text, nullable=True)
    is_manual = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index("idx_production_log_completed_at", "completed_at"),
        Index("idx_production_log_task", "task_id"),
        CheckConstraint("quantity >= 0", name="ck_production_log_quantity_non_negative"),
    )

    def __repr__(self) -> str:
        """String representation of production log entry."""
        return (
            f"ProductionLogEntry(id={self.id}, task_id={self.task_id}, "
            f"quantity={self.quantity}, cancelled={self.cancelled})"
        )
