"""Tests for the baking task service (order aggregation and manual tasks)."""

from datetime import date

import pytest

from src.models import BakingTaskStatus, KitchenStatus, OrderStatus
from src.services.baking_task_service import (
    ACTIVE_STATUSES,
    format_modified_reason,
    is_production_relevant,
)
from src.services.exceptions import (
    BakingTaskNotFound,
    InvalidTransition,
    PreconditionFailed,
    ValidationError,
)
from src.utils.constants import DEFAULT_MANUAL_CANCEL_REASON, MANUAL_DELETE_REASON

TODAY = date(2025, 5, 15)


def active_tasks(gateway):
    with gateway.session_scope() as session:
        return gateway.tasks.list(session, statuses=ACTIVE_STATUSES)


def assert_one_active_task_per_spec(gateway):
    specs = [task.spec_key for task in active_tasks(gateway)]
    assert len(specs) == len(set(specs))


class TestProductionRelevance:
    """Tests for is_production_relevant()."""

    def test_queued_and_waiting_baker_are_relevant(self, make_order, order_service):
        queued = make_order()
        kitchen = make_order(status=OrderStatus.IN_KITCHEN)
        assert is_production_relevant(queued)
        assert is_production_relevant(kitchen)

        order_service.advance_kitchen_status(kitchen.id)
        assert not is_production_relevant(order_service.get_order(kitchen.id))

    def test_other_statuses_are_not_relevant(self, make_order):
        assert not is_production_relevant(make_order(status=OrderStatus.INCOMPLETE))
        assert not is_production_relevant(make_order(status=OrderStatus.WAITING_PHOTO))
        assert not is_production_relevant(make_order(status=OrderStatus.CANCELLED))

    def test_modified_reason(self):
        assert format_modified_reason(["05-25-001"]) == "Order 05-25-001 modified"
        assert (
            format_modified_reason(["05-25-001", "05-25-002"])
            == "Orders 05-25-001, 05-25-002 modified"
        )


class TestAggregation:
    """Tests for aggregate_orders_into_tasks()."""

    def test_same_spec_orders_share_one_task(self, aggregator, make_order):
        first = make_order(delivery_date=date(2025, 5, 20))
        second = make_order(delivery_date=date(2025, 5, 18))

        tasks = aggregator.aggregate_orders_into_tasks(today=TODAY)

        assert len(tasks) == 1
        task = tasks[0]
        assert task.spec_key == ("Round", "16CM", "Vanilla")
        assert task.quantity == 2
        assert task.quantity_completed == 0
        assert task.status == BakingTaskStatus.PENDING
        assert task.order_ids == [first.id, second.id]
        assert task.due_date == date(2025, 5, 18)
        assert task.is_manual is False
        assert task.is_priority is False

    def test_different_specs_get_separate_tasks(self, aggregator, make_order):
        make_order()
        make_order(cake_flavor="Chocolate")
        make_order(cake_size="20CM")

        tasks = aggregator.aggregate_orders_into_tasks(today=TODAY)
        assert sorted(task.spec_key for task in tasks) == [
            ("Round", "16CM", "Chocolate"),
            ("Round", "16CM", "Vanilla"),
            ("Round", "20CM", "Vanilla"),
        ]

    def test_only_relevant_orders_are_aggregated(self, aggregator, make_order):
        make_order(status=OrderStatus.INCOMPLETE)
        make_order(status=OrderStatus.READY_TO_DELIVER)
        kitchen = make_order(status=OrderStatus.IN_KITCHEN)
        assert kitchen.kitchen_status == KitchenStatus.WAITING_BAKER

        tasks = aggregator.aggregate_orders_into_tasks(today=TODAY)
        assert [task.order_ids for task in tasks] == [[kitchen.id]]

    def test_due_today_is_priority(self, aggregator, make_order):
        make_order(delivery_date=TODAY)
        (task,) = aggregator.aggregate_orders_into_tasks(today=TODAY)
        assert task.is_priority is True

    def test_aggregating_twice_is_stable(self, gateway, aggregator, make_order):
        make_order()
        make_order()
        make_order(cake_flavor="Lemon")

        aggregator.aggregate_orders_into_tasks(today=TODAY)
        before = sorted(
            (t.id, t.spec_key, t.quantity, tuple(t.order_ids), t.due_date, t.status)
            for t in active_tasks(gateway)
        )
        aggregator.aggregate_orders_into_tasks(today=TODAY)
        after = sorted(
            (t.id, t.spec_key, t.quantity, tuple(t.order_ids), t.due_date, t.status)
            for t in active_tasks(gateway)
        )

        assert before == after
        assert len(aggregator.list_tasks()) == 2

    def test_new_order_merges_into_active_task(self, aggregator, make_order):
        first = make_order(delivery_date=date(2025, 5, 22))
        (task,) = aggregator.aggregate_orders_into_tasks(today=TODAY)

        second = make_order(delivery_date=date(2025, 5, 19))
        (merged,) = aggregator.aggregate_orders_into_tasks(today=TODAY)

        assert merged.id == task.id
        assert merged.order_ids == [first.id, second.id]
        assert merged.quantity == 2
        assert merged.due_date == date(2025, 5, 19)

    def test_one_changed_order_shrinks_task(self, aggregator, order_service, make_order):
        first = make_order()
        second = make_order()
        (task,) = aggregator.aggregate_orders_into_tasks(today=TODAY)

        order_service.update_order_details(first.id, cake_flavor="Chocolate")
        aggregator.aggregate_orders_into_tasks(today=TODAY)

        shrunk = aggregator.get_task(task.id)
        assert shrunk.status == BakingTaskStatus.PENDING
        assert shrunk.order_ids == [second.id]
        assert shrunk.quantity == 1

        (chocolate,) = [
            t for t in aggregator.list_active_tasks() if t.cake_flavor == "Chocolate"
        ]
        assert chocolate.order_ids == [first.id]

    def test_all_changed_orders_cancel_task(self, aggregator, order_service, make_order):
        first = make_order()
        second = make_order()
        (task,) = aggregator.aggregate_orders_into_tasks(today=TODAY)

        order_service.update_order_details(first.id, cake_flavor="Chocolate")
        order_service.update_order_details(second.id, cake_flavor="Chocolate")
        returned = aggregator.aggregate_orders_into_tasks(today=TODAY)

        cancelled = aggregator.get_task(task.id)
        assert cancelled.status == BakingTaskStatus.CANCELLED
        assert cancelled.cancellation_reason == f"Orders {first.id}, {second.id} modified"
        assert task.id in [t.id for t in returned]

        (replacement,) = aggregator.list_active_tasks()
        assert replacement.spec_key == ("Round", "16CM", "Chocolate")
        assert replacement.quantity == 2

    def test_order_leaving_queue_cancels_task(self, aggregator, order_service, make_order):
        order = make_order()
        (task,) = aggregator.aggregate_orders_into_tasks(today=TODAY)

        order_service.cancel(order.id)
        aggregator.aggregate_orders_into_tasks(today=TODAY)

        cancelled = aggregator.get_task(task.id)
        assert cancelled.status == BakingTaskStatus.CANCELLED
        assert cancelled.cancellation_reason == f"Order {order.id} modified"

    def test_deleted_order_is_dropped(self, gateway, aggregator, make_order):
        first = make_order()
        second = make_order()
        (task,) = aggregator.aggregate_orders_into_tasks(today=TODAY)

        with gateway.session_scope() as session:
            gateway.orders.delete(session, first.id)
        aggregator.aggregate_orders_into_tasks(today=TODAY)

        assert aggregator.get_task(task.id).order_ids == [second.id]

    def test_one_active_task_per_spec(self, gateway, aggregator, order_service, make_order):
        orders = [make_order() for _ in range(3)]
        aggregator.aggregate_orders_into_tasks(today=TODAY)
        order_service.update_order_details(orders[0].id, cake_flavor="Lemon")
        aggregator.aggregate_orders_into_tasks(today=TODAY)
        order_service.update_order_details(orders[0].id, cake_flavor="Vanilla")
        aggregator.aggregate_orders_into_tasks(today=TODAY)

        assert_one_active_task_per_spec(gateway)


class TestManualTasks:
    """Tests for manual task creation, cancellation and deletion."""

    def test_create_manual_task(self, aggregator):
        task = aggregator.create_manual_task(
            "Round", "16CM", "Vanilla", quantity=4, due_date=TODAY, today=TODAY
        )
        assert task.is_manual is True
        assert task.is_priority is True
        assert task.order_ids == []
        assert task.status == BakingTaskStatus.PENDING

    def test_rejected_when_active_task_exists(self, aggregator, make_order):
        make_order()
        aggregator.aggregate_orders_into_tasks(today=TODAY)

        with pytest.raises(ValidationError):
            aggregator.create_manual_task("Round", "16CM", "Vanilla", quantity=2, due_date=TODAY)

    @pytest.mark.parametrize("quantity", [0, -1, 1.5, True])
    def test_rejects_bad_quantity(self, aggregator, quantity):
        with pytest.raises(ValidationError):
            aggregator.create_manual_task("Round", "16CM", "Vanilla", quantity=quantity, due_date=TODAY)

    def test_orders_merge_into_manual_task(self, aggregator, make_order):
        manual = aggregator.create_manual_task(
            "Round", "16CM", "Vanilla", quantity=5, due_date=date(2025, 5, 25), today=TODAY
        )
        order = make_order()

        (merged,) = aggregator.aggregate_orders_into_tasks(today=TODAY)
        assert merged.id == manual.id
        assert merged.order_ids == [order.id]
        assert merged.quantity == 5
        assert merged.due_date == order.delivery_date

    def test_cancel_manual_task(self, aggregator):
        task = aggregator.create_manual_task("Round", "16CM", "Vanilla", quantity=2, due_date=TODAY)

        cancelled = aggregator.cancel_manual_task(task.id)
        assert cancelled.status == BakingTaskStatus.CANCELLED
        assert cancelled.cancellation_reason == DEFAULT_MANUAL_CANCEL_REASON

        with pytest.raises(InvalidTransition):
            aggregator.cancel_manual_task(task.id, reason="again")

    def test_cancel_with_reason(self, aggregator):
        task = aggregator.create_manual_task("Round", "16CM", "Vanilla", quantity=2, due_date=TODAY)
        cancelled = aggregator.cancel_manual_task(task.id, reason="Oven broken")
        assert cancelled.cancellation_reason == "Oven broken"

    def test_aggregated_task_cannot_be_cancelled_by_hand(self, aggregator, make_order):
        make_order()
        (task,) = aggregator.aggregate_orders_into_tasks(today=TODAY)

        with pytest.raises(PreconditionFailed):
            aggregator.cancel_manual_task(task.id)
        with pytest.raises(PreconditionFailed):
            aggregator.delete_manual_task(task.id)
        assert aggregator.get_task(task.id).status == BakingTaskStatus.PENDING

    def test_delete_manual_task_leaves_ledger_entry(self, aggregator, ledger):
        task = aggregator.create_manual_task("Round", "16CM", "Vanilla", quantity=2, due_date=TODAY)

        aggregator.delete_manual_task(task.id, baker="baker1")

        with pytest.raises(BakingTaskNotFound):
            aggregator.get_task(task.id)
        (entry,) = ledger.get_production_log()
        assert entry.task_id == task.id
        assert entry.quantity == 0
        assert entry.cancelled is True
        assert entry.is_manual is True
        assert entry.cancellation_reason == MANUAL_DELETE_REASON
        assert entry.baker == "baker1"

    def test_list_active_tasks_priority_first(self, aggregator):
        later = aggregator.create_manual_task(
            "Round", "16CM", "Vanilla", quantity=1, due_date=date(2025, 5, 16), today=TODAY
        )
        urgent = aggregator.create_manual_task(
            "Square", "20CM", "Lemon", quantity=1, due_date=TODAY, today=TODAY
        )
        assert [t.id for t in aggregator.list_active_tasks()] == [urgent.id, later.id]

    def test_list_tasks_by_status(self, aggregator):
        task = aggregator.create_manual_task("Round", "16CM", "Vanilla", quantity=1, due_date=TODAY)
        aggregator.cancel_manual_task(task.id)

        assert [t.id for t in aggregator.list_tasks(status="cancelled")] == [task.id]
        assert aggregator.list_tasks(status=BakingTaskStatus.PENDING) == []
