"""Unit tests for custom exception hierarchy"""
import pytest
from datetime import datetime

import psycopg

from habitflow.exceptions import (
    HabitFlowError,
    ValidationError,
    DuplicateCompletionError,
    InsufficientFundsError,
    ConflictError,
    DatabaseError,
    ConnectionError,
    QueryError,
    RecordNotFoundError,
    AuthenticationError,
    AuthorizationError,
    ConfigurationError,
    wrap_external_exception
)


class TestHabitFlowError:
    """Test base exception class"""

    def test_basic_exception(self):
        """Test basic exception creation"""
        error = HabitFlowError("Test error")
        assert error.message == "Test error"
        assert error.user_message == "An error occurred. Please try again."
        assert error.request_id is not None
        assert isinstance(error.timestamp, datetime)
        assert error.status_code == 500

    def test_exception_with_context(self):
        """Test exception with full context"""
        error = HabitFlowError(
            message="Ledger write failed",
            user_id="user-1",
            operation="record_completion",
            context={"habit_id": "abc-123"},
            user_message="Could not save your check-in"
        )
        assert error.user_id == "user-1"
        assert error.operation == "record_completion"
        assert error.context["habit_id"] == "abc-123"
        assert error.user_message == "Could not save your check-in"

    def test_exception_with_cause(self):
        """Test exception wrapping another exception"""
        original_error = ValueError("Invalid value")
        error = HabitFlowError(
            message="Validation failed",
            cause=original_error
        )
        assert error.cause == original_error

    def test_to_dict(self):
        """Test exception serialization"""
        error = HabitFlowError(
            message="Test error",
            user_id="user-1"
        )
        error_dict = error.to_dict()
        assert error_dict["error"] == "HabitFlowError"
        assert error_dict["message"] == "Test error"
        assert error_dict["user_message"] == "An error occurred. Please try again."
        assert "request_id" in error_dict
        assert "timestamp" in error_dict


class TestValidationError:
    """Test validation error"""

    def test_validation_error(self):
        """Test validation error with field"""
        error = ValidationError(
            message="Date cannot be in the future",
            field="completed_date",
            value="2031-01-01"
        )
        assert error.field == "completed_date"
        assert error.value == "2031-01-01"
        assert "completed_date" in error.user_message
        assert error.status_code == 400


class TestLedgerErrors:
    """Test completion and purchase errors"""

    def test_duplicate_completion(self):
        error = DuplicateCompletionError(habit_id="h-1", completed_date="2024-03-15")
        assert error.status_code == 409
        assert error.context["habit_id"] == "h-1"
        assert error.context["completed_date"] == "2024-03-15"

    def test_insufficient_funds(self):
        error = InsufficientFundsError(balance=250, cost=300)
        assert error.status_code == 400
        assert error.balance == 250
        assert error.cost == 300
        assert "300" in error.user_message

    def test_conflict_user_message_defaults_to_message(self):
        error = ConflictError("Already participating in this challenge")
        assert error.status_code == 409
        assert error.user_message == "Already participating in this challenge"


class TestDatabaseErrors:
    """Test database error hierarchy"""

    def test_connection_error(self):
        error = ConnectionError()
        assert isinstance(error, DatabaseError)
        assert error.status_code == 503
        assert "database" in error.user_message.lower()

    def test_query_error_keeps_context(self):
        error = QueryError("Query failed", query="SELECT 1", context={"habit_id": "h-1"})
        assert error.query == "SELECT 1"
        assert error.context == {"habit_id": "h-1", "query": "SELECT 1"}

    def test_record_not_found(self):
        error = RecordNotFoundError("Habit h-1 not found", record_type="Habit", record_id="h-1")
        assert isinstance(error, DatabaseError)
        assert error.status_code == 404
        assert error.user_message == "Habit not found."


class TestAuthErrors:
    """Test authentication and authorization errors"""

    def test_authentication_error(self):
        error = AuthenticationError()
        assert error.status_code == 401

    def test_authorization_error(self):
        error = AuthorizationError(resource="group g-1")
        assert error.status_code == 403
        assert "group g-1" in error.user_message


class TestConfigurationError:

    def test_configuration_error(self):
        error = ConfigurationError("Level thresholds must start at 0", config_key="level_thresholds")
        assert error.config_key == "level_thresholds"
        assert error.context["config_key"] == "level_thresholds"


class TestWrapExternalException:
    """Test wrapping external exceptions"""

    def test_habitflow_error_passes_through(self):
        original = ValidationError("bad", field="title")
        assert wrap_external_exception(original, operation="create_habit") is original

    def test_operational_error_becomes_connection_error(self):
        wrapped = wrap_external_exception(
            psycopg.OperationalError("server closed the connection"),
            operation="record_completion",
            user_id="user-1"
        )
        assert isinstance(wrapped, ConnectionError)
        assert wrapped.operation == "record_completion"
        assert wrapped.user_id == "user-1"

    def test_other_psycopg_error_becomes_query_error(self):
        cause = psycopg.errors.UniqueViolation("duplicate key")
        wrapped = wrap_external_exception(
            cause,
            operation="insert_reward_event",
            context={"source_id": "abc"}
        )
        assert isinstance(wrapped, QueryError)
        assert wrapped.cause is cause
        assert wrapped.context["source_id"] == "abc"

    def test_generic_fallback(self):
        wrapped = wrap_external_exception(RuntimeError("boom"), operation="seed_powerups")
        assert type(wrapped) is HabitFlowError
        assert "seed_powerups failed" in wrapped.message
