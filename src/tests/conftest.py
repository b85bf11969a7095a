"""Pytest configuration and fixtures for service layer tests."""

from datetime import date

import pytest

from src.models import OrderStatus
from src.services.baking_task_service import ProductionTaskAggregator
from src.services.driver_assignment_service import DriverAssignmentService
from src.services.gateway import PersistenceGateway
from src.services.order_lifecycle_service import OrderLifecycleService
from src.services.production_ledger_service import ProductionLedger
from src.services.trip_planner_service import TripPlanner

# Orders created by the factory all land in May 2025 (ids 05-25-NNN)
ORDER_DATE = date(2025, 5, 10)
DELIVERY_DATE = date(2025, 5, 20)

# Happy path used to walk an order to a target status
HAPPY_PATH = [
    OrderStatus.INCOMPLETE,
    OrderStatus.IN_QUEUE,
    OrderStatus.IN_KITCHEN,
    OrderStatus.WAITING_PHOTO,
    OrderStatus.PENDING_APPROVAL,
    OrderStatus.READY_TO_DELIVER,
    OrderStatus.IN_DELIVERY,
    OrderStatus.WAITING_FEEDBACK,
    OrderStatus.FINISHED,
    OrderStatus.ARCHIVED,
]


@pytest.fixture(scope="function")
def gateway():
    """Provide a clean in-memory gateway for each test function."""
    gateway = PersistenceGateway.in_memory()
    yield gateway
    gateway.close()


@pytest.fixture
def order_service(gateway):
    return OrderLifecycleService(gateway)


@pytest.fixture
def aggregator(gateway):
    return ProductionTaskAggregator(gateway)


@pytest.fixture
def ledger(gateway):
    return ProductionLedger(gateway)


@pytest.fixture
def trip_planner(gateway):
    return TripPlanner(gateway)


@pytest.fixture
def driver_service(gateway):
    return DriverAssignmentService(gateway)


def walk_to_status(order_service, order_id, target):
    """Move an order along the happy path (or into needs-revision / cancelled)."""
    if target == OrderStatus.CANCELLED:
        return order_service.cancel(order_id)
    if target == OrderStatus.NEEDS_REVISION:
        walk_to_status(order_service, order_id, OrderStatus.PENDING_APPROVAL)
        return order_service.request_revision(order_id, notes="Needs work")

    order = order_service.get_order(order_id)
    start = HAPPY_PATH.index(order.status)
    for status in HAPPY_PATH[start + 1 : HAPPY_PATH.index(target) + 1]:
        if status == OrderStatus.PENDING_APPROVAL:
            order = order_service.submit_for_approval(order_id, ["cake.jpg"])
        elif status == OrderStatus.READY_TO_DELIVER:
            order = order_service.approve(order_id, "mgr1")
        elif status == OrderStatus.ARCHIVED:
            order = order_service.archive(order_id)
        else:
            order = order_service.transition_status(order_id, status)
    return order


@pytest.fixture
def advance_order(order_service):
    """Callable fixture: advance_order(order_id, target_status)."""

    def _advance(order_id, target):
        return walk_to_status(order_service, order_id, target)

    return _advance


@pytest.fixture
def make_order(order_service):
    """
    Factory for orders.

    Usage:
        order = make_order()                                  # in-queue Round/16CM/Vanilla
        order = make_order(status=OrderStatus.READY_TO_DELIVER)
        order = make_order(cake_flavor="Chocolate", delivery_date=date(2025, 5, 18))
    """

    def _make(
        status=OrderStatus.IN_QUEUE,
        cake_shape="Round",
        cake_size="16CM",
        cake_flavor="Vanilla",
        delivery_date=DELIVERY_DATE,
        customer_name="Test Customer",
        **kwargs,
    ):
        order = order_service.create_order(
            customer_name=customer_name,
            delivery_date=delivery_date,
            cake_shape=cake_shape,
            cake_size=cake_size,
            cake_flavor=cake_flavor,
            order_date=ORDER_DATE,
            **kwargs,
        )
        if status != OrderStatus.INCOMPLETE:
            order = walk_to_status(order_service, order.id, status)
        return order

    return _make
