"""
Persistence gateway for the order, production and delivery services.

The gateway is the only place that talks to SQLAlchemy query APIs. It is
an explicitly owned object passed into each service (no global store):

    gateway = PersistenceGateway.in_memory()          # tests, scratch use
    gateway = PersistenceGateway.from_config(config)  # durable SQLite file

Repositories hang off the gateway (``gateway.orders``, ``gateway.tasks``,
``gateway.production_log``, ``gateway.inventory``, ``gateway.trips``). Every
repository method takes the active session as its first argument; services
obtain one with ``gateway.session_scope(session)``, which reuses a
caller-supplied session or opens a committing scope.

JSON document columns (task/trip order lists, trip sequence maps) are
always replaced whole by the services; repositories never patch them.
"""

from contextlib import contextmanager, nullcontext
from typing import Any, Dict, List, Optional, Sequence, Tuple
import logging

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.engine import Engine

from src.models import (
    BakingTask,
    BakingTaskStatus,
    CakeInventoryItem,
    DeliveryTrip,
    Order,
    OrderLog,
    OrderLogType,
    OrderStatus,
    ProductionLogEntry,
)
from src.services.database import (
    IN_MEMORY_URL,
    create_database_engine,
    create_session_factory,
    dispose_engine,
    init_database,
)
from src.services.exceptions import (
    BakingTaskNotFound,
    DatabaseError,
    OrderNotFound,
    TripNotFound,
    ValidationError,
)
from src.utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)

SpecTriple = Tuple[str, str, str]


class OrderRepository:
    """Order rows and their append-only history."""

    def list(
        self, session: Session, statuses: Optional[Sequence[OrderStatus]] = None
    ) -> List[Order]:
        query = session.query(Order)
        if statuses:
            query = query.filter(Order.status.in_(list(statuses)))
        return query.order_by(Order.id).all()

    def get(self, session: Session, order_id: str) -> Optional[Order]:
        return session.get(Order, order_id)

    def create(self, session: Session, **fields: Any) -> Order:
        order = Order(**fields)
        session.add(order)
        session.flush()
        return order

    def update(self, session: Session, order_id: str, changes: Dict[str, Any]) -> Order:
        order = self.get(session, order_id)
        if order is None:
            raise OrderNotFound(order_id)
        order.update_from_dict(changes)
        session.flush()
        return order

    def append_log(
        self, session: Session, order_id: str, log_type: OrderLogType, **fields: Any
    ) -> OrderLog:
        order = self.get(session, order_id)
        if order is None:
            raise OrderNotFound(order_id)
        fields.setdefault("timestamp", utc_now())
        entry = OrderLog(log_type=log_type, **fields)
        order.logs.append(entry)
        session.flush()
        return entry

    def delete(self, session: Session, order_id: str) -> bool:
        order = self.get(session, order_id)
        if order is None:
            return False
        session.delete(order)
        session.flush()
        return True

    def max_sequence_for_prefix(self, session: Session, prefix: str) -> int:
        """Highest NNN used by order ids starting with ``prefix`` (e.g. "05-25-")."""
        ids = session.query(Order.id).filter(Order.id.like(f"{prefix}%")).all()
        highest = 0
        for (order_id,) in ids:
            suffix = order_id[len(prefix):]
            if suffix.isdigit():
                highest = max(highest, int(suffix))
        return highest


class TaskRepository:
    """Baking tasks."""

    def list(
        self, session: Session, statuses: Optional[Sequence[BakingTaskStatus]] = None
    ) -> List[BakingTask]:
        query = session.query(BakingTask)
        if statuses:
            query = query.filter(BakingTask.status.in_(list(statuses)))
        return query.order_by(BakingTask.id).all()

    def get(self, session: Session, task_id: int) -> Optional[BakingTask]:
        return session.get(BakingTask, task_id)

    def create(self, session: Session, **fields: Any) -> BakingTask:
        task = BakingTask(**fields)
        session.add(task)
        session.flush()
        return task

    def update(self, session: Session, task_id: int, changes: Dict[str, Any]) -> BakingTask:
        task = self.get(session, task_id)
        if task is None:
            raise BakingTaskNotFound(task_id)
        task.update_from_dict(changes)
        session.flush()
        return task

    def delete(self, session: Session, task_id: int) -> bool:
        task = self.get(session, task_id)
        if task is None:
            return False
        session.delete(task)
        session.flush()
        return True


class ProductionLogRepository:
    """Immutable production ledger entries."""

    def append(self, session: Session, **fields: Any) -> ProductionLogEntry:
        fields.setdefault("completed_at", utc_now())
        entry = ProductionLogEntry(**fields)
        session.add(entry)
        session.flush()
        return entry

    def list(self, session: Session) -> List[ProductionLogEntry]:
        """All entries, newest first."""
        return (
            session.query(ProductionLogEntry)
            .order_by(ProductionLogEntry.completed_at.desc(), ProductionLogEntry.id.desc())
            .all()
        )


class InventoryRepository:
    """Cake stock counts keyed by specification triple."""

    def list(self, session: Session) -> List[CakeInventoryItem]:
        return (
            session.query(CakeInventoryItem)
            .order_by(
                CakeInventoryItem.cake_shape,
                CakeInventoryItem.cake_size,
                CakeInventoryItem.cake_flavor,
            )
            .all()
        )

    def get(self, session: Session, spec: SpecTriple) -> Optional[CakeInventoryItem]:
        shape, size, flavor = spec
        return (
            session.query(CakeInventoryItem)
            .filter_by(cake_shape=shape, cake_size=size, cake_flavor=flavor)
            .first()
        )

    def upsert(self, session: Session, spec: SpecTriple, delta: int) -> CakeInventoryItem:
        """Add ``delta`` to the stock for ``spec``, creating the row if needed."""
        item = self.get(session, spec)
        current = item.quantity if item is not None else 0
        if current + delta < 0:
            raise ValidationError(
                [f"Inventory for {' / '.join(spec)} cannot go below zero (have {current})"]
            )

        if item is None:
            shape, size, flavor = spec
            item = CakeInventoryItem(
                cake_shape=shape,
                cake_size=size,
                cake_flavor=flavor,
                quantity=delta,
                last_updated=utc_now(),
            )
            session.add(item)
        else:
            item.quantity = current + delta
            item.last_updated = utc_now()
        session.flush()
        return item


class TripRepository:
    """Delivery trips."""

    def list(self, session: Session, trip_date=None) -> List[DeliveryTrip]:
        query = session.query(DeliveryTrip)
        if trip_date is not None:
            query = query.filter(DeliveryTrip.trip_date == trip_date)
        return query.order_by(
            DeliveryTrip.trip_date, DeliveryTrip.trip_number, DeliveryTrip.id
        ).all()

    def get(self, session: Session, trip_id: int) -> Optional[DeliveryTrip]:
        return session.get(DeliveryTrip, trip_id)

    def create(self, session: Session, **fields: Any) -> DeliveryTrip:
        fields.setdefault("order_ids", [])
        fields.setdefault("sequence", {})
        trip = DeliveryTrip(**fields)
        session.add(trip)
        session.flush()
        return trip

    def update(self, session: Session, trip_id: int, changes: Dict[str, Any]) -> DeliveryTrip:
        trip = self.get(session, trip_id)
        if trip is None:
            raise TripNotFound(trip_id)
        trip.update_from_dict(changes)
        session.flush()
        return trip

    def delete(self, session: Session, trip_id: int) -> bool:
        trip = self.get(session, trip_id)
        if trip is None:
            return False
        session.delete(trip)
        session.flush()
        return True

    def count_for_date(self, session: Session, trip_date) -> int:
        return (
            session.query(func.count(DeliveryTrip.id))
            .filter(DeliveryTrip.trip_date == trip_date)
            .scalar()
        )

    def find_by_order(self, session: Session, order_id: str) -> List[DeliveryTrip]:
        """Trips whose membership lists ``order_id`` (normally zero or one)."""
        return [trip for trip in self.list(session) if order_id in (trip.order_ids or [])]


class PersistenceGateway:
    """
    Owns an engine, a session factory and the entity repositories.

    Args:
        engine: SQLAlchemy engine with the schema already created
        session_factory: Optional sessionmaker; built from the engine if omitted
    """

    def __init__(self, engine: Engine, session_factory: Optional[sessionmaker] = None):
        self.engine = engine
        self._session_factory = session_factory or create_session_factory(engine)

        self.orders = OrderRepository()
        self.tasks = TaskRepository()
        self.production_log = ProductionLogRepository()
        self.inventory = InventoryRepository()
        self.trips = TripRepository()

    @classmethod
    def in_memory(cls, echo: bool = False) -> "PersistenceGateway":
        """Gateway over a private in-memory SQLite database."""
        engine = create_database_engine(IN_MEMORY_URL, echo=echo)
        init_database(engine)
        return cls(engine)

    @classmethod
    def from_config(cls, config=None) -> "PersistenceGateway":
        """Gateway over the durable SQLite file named by the application config."""
        if config is None:
            from src.utils.config import get_config

            config = get_config()

        config.ensure_directories()
        if config.database_exists():
            logger.info(f"Using existing database at: {config.database_path}")
        else:
            logger.info(f"Creating new database at: {config.database_path}")

        engine = create_database_engine(config.database_url, timeout=config.db_timeout)
        init_database(engine)
        return cls(engine)

    def new_session(self) -> Session:
        """Create a new, caller-managed session."""
        return self._session_factory()

    @contextmanager
    def _transaction(self):
        session = self.new_session()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Database error, transaction rolled back: {e}")
            raise DatabaseError(str(e), original_error=e) from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def session_scope(self, session: Optional[Session] = None):
        """
        Provide a transactional scope for database operations.

        If ``session`` is given it is reused as-is (the caller owns commit
        and rollback). Otherwise a new session is opened that commits on
        success, rolls back on exception and is always closed.

        Example:
            with gateway.session_scope() as session:
                order = gateway.orders.get(session, "05-25-001")
        """
        if session is not None:
            return nullcontext(session)
        return self._transaction()

    def close(self) -> None:
        """Dispose of the engine and its connections."""
        dispose_engine(self.engine)
