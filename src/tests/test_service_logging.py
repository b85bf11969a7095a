"""Tests for service layer structured logging.

These tests verify that order, production and delivery operations emit
structured log entries with appropriate context information.
"""

import logging
from datetime import date

import pytest

from src.models import DriverType, OrderStatus
from src.services.exceptions import InvalidTransition, OrderNotFound, TripNotEmpty
from src.services.logging_utils import get_service_logger, log_operation, log_rejection


class TestLoggingUtilities:
    """Tests for logging utility functions."""

    def test_get_service_logger_returns_logger(self):
        """get_service_logger returns a configured Logger instance."""
        logger = get_service_logger("test_module")
        assert isinstance(logger, logging.Logger)
        assert logger.name == "cake_tracker.services.test_module"

    def test_get_service_logger_extracts_module_name(self):
        """get_service_logger extracts module name from full path."""
        logger = get_service_logger("src.services.trip_planner_service")
        assert logger.name == "cake_tracker.services.trip_planner_service"

    def test_log_operation_logs_at_info_level(self, caplog):
        """log_operation logs at INFO level by default."""
        logger = get_service_logger("test")

        with caplog.at_level(logging.INFO):
            log_operation(logger, operation="test_op", outcome="success", entity_id=123)

        assert "test_op: success" in caplog.text
        assert caplog.records[0].levelno == logging.INFO

    def test_log_operation_logs_at_custom_level(self, caplog):
        """log_operation respects custom log level."""
        logger = get_service_logger("test")

        with caplog.at_level(logging.DEBUG):
            log_operation(
                logger, operation="debug_op", outcome="debug_outcome", level=logging.DEBUG
            )

        assert "debug_op: debug_outcome" in caplog.text

    def test_log_operation_includes_extra_context(self, caplog):
        """log_operation includes extra context in log records."""
        logger = get_service_logger("test")

        with caplog.at_level(logging.INFO):
            log_operation(
                logger, operation="context_test", outcome="success", order_id="05-25-001", trip_id=4
            )

        assert len(caplog.records) == 1
        record = caplog.records[0]
        assert record.operation == "context_test"
        assert record.outcome == "success"
        assert record.order_id == "05-25-001"
        assert record.trip_id == 4

    def test_log_rejection_returns_error_and_logs_warning(self, caplog):
        """log_rejection logs the exception class as outcome at WARNING."""
        logger = get_service_logger("test")
        error = TripNotEmpty(3, ["05-25-001"])

        with caplog.at_level(logging.INFO):
            returned = log_rejection(logger, "delete_trip", error, trip_id=3)

        assert returned is error
        (record,) = caplog.records
        assert record.levelno == logging.WARNING
        assert record.operation == "delete_trip"
        assert record.outcome == "TripNotEmpty"
        assert record.error == str(error)
        assert record.trip_id == 3


def records_for(caplog, operation):
    return [r for r in caplog.records if getattr(r, "operation", None) == operation]


class TestServiceOperationLogging:
    """Mutating operations log once on success and at WARNING when rejected."""

    def test_transition_logged(self, caplog, order_service, make_order):
        order = make_order()

        with caplog.at_level(logging.INFO, logger="cake_tracker.services"):
            order_service.transition_status(order.id, OrderStatus.IN_KITCHEN)

        (record,) = records_for(caplog, "transition_status")
        assert record.order_id == order.id
        assert record.previous_status == "in-queue"
        assert record.new_status == "in-kitchen"

    def test_rejected_transition_logged_as_warning(self, caplog, order_service, make_order):
        order = make_order()

        with caplog.at_level(logging.INFO, logger="cake_tracker.services"):
            with pytest.raises(InvalidTransition):
                order_service.transition_status(order.id, OrderStatus.FINISHED)

        (record,) = records_for(caplog, "transition_status")
        assert record.levelno == logging.WARNING
        assert record.outcome == "InvalidTransition"

    def test_aggregation_counts_logged(self, caplog, aggregator, make_order):
        make_order()
        make_order()
        make_order(cake_flavor="Chocolate")

        with caplog.at_level(logging.INFO, logger="cake_tracker.services"):
            aggregator.aggregate_orders_into_tasks(today=date(2025, 5, 15))

        (record,) = records_for(caplog, "aggregate_orders_into_tasks")
        assert record.tasks_created == 2
        assert record.tasks_merged == 0
        assert record.tasks_cancelled == 0

    def test_trip_not_empty_logged(self, caplog, trip_planner, make_order):
        order = make_order(status=OrderStatus.READY_TO_DELIVER)
        trip = trip_planner.create_trip("Run", DriverType.DRIVER_1, date(2025, 5, 20))
        trip_planner.add_order(trip.id, order.id)

        with caplog.at_level(logging.INFO, logger="cake_tracker.services"):
            with pytest.raises(TripNotEmpty):
                trip_planner.delete_trip(trip.id)

        (record,) = records_for(caplog, "delete_trip")
        assert record.levelno == logging.WARNING
        assert record.trip_id == trip.id

    def test_unknown_order_logged_as_warning(self, caplog, driver_service):
        with caplog.at_level(logging.INFO, logger="cake_tracker.services"):
            with pytest.raises(OrderNotFound):
                driver_service.assign("05-25-999", "driver-1", assigned_by="dispatch")

        (record,) = records_for(caplog, "get_order")
        assert record.levelno == logging.WARNING
        assert record.outcome == "OrderNotFound"
        assert record.order_id == "05-25-999"

    def test_operation_owned_target_logged_as_warning(self, caplog, order_service, make_order):
        order = make_order(status=OrderStatus.PENDING_APPROVAL)

        with caplog.at_level(logging.INFO, logger="cake_tracker.services"):
            with pytest.raises(InvalidTransition):
                order_service.transition_status(order.id, OrderStatus.NEEDS_REVISION)

        (record,) = records_for(caplog, "transition_status")
        assert record.levelno == logging.WARNING
        assert "use request_revision()" in record.error
