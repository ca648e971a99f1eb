"""
Standardized exception hierarchy for HabitFlow
Provides rich context, consistent logging, and user-friendly error messages
"""

from datetime import datetime, timezone
from typing import Optional, Dict, Any
from uuid import uuid4
import logging

logger = logging.getLogger(__name__)


class HabitFlowError(Exception):
    """
    Base exception for all HabitFlow errors

    Provides:
    - Automatic timestamping
    - Request ID for tracing
    - User-friendly messages
    - Structured context
    - Automatic logging
    - HTTP status used by the API layer

    Example:
        raise HabitFlowError(
            message="Failed to save completion",
            user_id="user-1",
            operation="record_completion",
            context={"habit_id": "abc-123"}
        )
    """

    status_code: int = 500
    log_level: int = logging.ERROR

    def __init__(
        self,
        message: str,
        user_id: Optional[str] = None,
        request_id: Optional[str] = None,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        user_message: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.user_id = user_id
        self.request_id = request_id or str(uuid4())
        self.operation = operation
        self.context = context or {}
        self.cause = cause
        self.user_message = user_message or "An error occurred. Please try again."
        self.timestamp = datetime.now(timezone.utc)

        # Auto-log on creation
        self._log_error()

    def _log_error(self) -> None:
        """Log error with full context"""
        log_data = {
            "error_type": self.__class__.__name__,
            "error_message": self.message,  # Avoid conflict with logging's 'message' field
            "request_id": self.request_id,
            "user_id": self.user_id,
            "operation": self.operation,
            "error_context": self.context,
            "timestamp": self.timestamp.isoformat()
        }

        if self.cause:
            log_data["cause"] = str(self.cause)
            logger.log(self.log_level, f"{self.__class__.__name__}: {self.message}", extra=log_data, exc_info=self.cause)
        else:
            logger.log(self.log_level, f"{self.__class__.__name__}: {self.message}", extra=log_data)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for API responses"""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "user_message": self.user_message,
            "request_id": self.request_id,
            "timestamp": self.timestamp.isoformat()
        }


# ==========================================
# Validation Errors (User Input)
# ==========================================

class ValidationError(HabitFlowError):
    """
    Raised when user input fails validation

    Examples:
    - Malformed or future completion date
    - Unknown habit frequency
    - Challenge ending before it starts

    Example:
        raise ValidationError(
            message="Date cannot be in the future",
            field="completed_date",
            value="2031-01-01",
            user_id="user-1"
        )
    """

    status_code = 400
    log_level = logging.WARNING

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        **kwargs
    ):
        self.field = field
        self.value = value
        super().__init__(
            message=message,
            user_message=f"Invalid {field}: {message}" if field else message,
            context={"field": field, "value": value},
            **kwargs
        )


# ==========================================
# Ledger & Reward Errors
# ==========================================

class DuplicateCompletionError(HabitFlowError):
    """A completion already exists for this (habit, user, date)"""

    status_code = 409
    log_level = logging.WARNING

    def __init__(
        self,
        message: str = "Already logged for this date",
        habit_id: Optional[str] = None,
        completed_date: Optional[Any] = None,
        **kwargs
    ):
        self.habit_id = habit_id
        self.completed_date = completed_date
        super().__init__(
            message=message,
            user_message="You already checked in this habit for that day.",
            context={"habit_id": habit_id, "completed_date": str(completed_date) if completed_date else None},
            **kwargs
        )


class InsufficientFundsError(HabitFlowError):
    """Coin balance does not cover a purchase"""

    status_code = 400
    log_level = logging.WARNING

    def __init__(
        self,
        message: str = "Not enough coins",
        balance: Optional[int] = None,
        cost: Optional[int] = None,
        **kwargs
    ):
        self.balance = balance
        self.cost = cost
        super().__init__(
            message=message,
            user_message=f"You need {cost} coins but only have {balance}." if cost is not None else "Not enough coins.",
            context={"balance": balance, "cost": cost},
            **kwargs
        )


class ConflictError(HabitFlowError):
    """Record already exists (challenge slug taken, already joined, ...)"""

    status_code = 409
    log_level = logging.WARNING

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("user_message", message)
        super().__init__(message=message, **kwargs)


# ==========================================
# Database Errors
# ==========================================

class DatabaseError(HabitFlowError):
    """
    Base class for database-related errors
    """
    pass


class ConnectionError(DatabaseError):
    """Database connection failed"""

    status_code = 503

    def __init__(self, message: str = "Database connection failed", **kwargs):
        super().__init__(
            message=message,
            user_message="We're having trouble connecting to the database. Please try again in a moment.",
            **kwargs
        )


class QueryError(DatabaseError):
    """Database query execution failed"""

    def __init__(
        self,
        message: str,
        query: Optional[str] = None,
        **kwargs
    ):
        self.query = query
        context = dict(kwargs.pop("context", None) or {})
        context["query"] = query
        super().__init__(
            message=message,
            user_message="We encountered an issue saving your data. Please try again.",
            context=context,
            **kwargs
        )


class RecordNotFoundError(DatabaseError):
    """Requested record does not exist (or belongs to another user)"""

    status_code = 404
    log_level = logging.WARNING

    def __init__(
        self,
        message: str,
        record_type: Optional[str] = None,
        record_id: Optional[str] = None,
        **kwargs
    ):
        self.record_type = record_type
        self.record_id = record_id
        super().__init__(
            message=message,
            user_message=f"{record_type or 'Record'} not found.",
            context={"record_type": record_type, "record_id": record_id},
            **kwargs
        )


# ==========================================
# Authentication & Authorization
# ==========================================

class AuthenticationError(HabitFlowError):
    """Authentication failed"""

    status_code = 401
    log_level = logging.WARNING

    def __init__(
        self,
        message: str = "Authentication failed",
        **kwargs
    ):
        super().__init__(
            message=message,
            user_message="Authentication failed. Please check your credentials.",
            **kwargs
        )


class AuthorizationError(HabitFlowError):
    """User lacks permission for requested operation"""

    status_code = 403
    log_level = logging.WARNING

    def __init__(
        self,
        message: str = "Insufficient permissions",
        resource: Optional[str] = None,
        **kwargs
    ):
        self.resource = resource
        super().__init__(
            message=message,
            user_message=f"You don't have permission to access {resource or 'this resource'}.",
            context={"resource": resource},
            **kwargs
        )


# ==========================================
# Configuration Errors
# ==========================================

class ConfigurationError(HabitFlowError):
    """System configuration is invalid or missing"""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        **kwargs
    ):
        self.config_key = config_key
        super().__init__(
            message=message,
            user_message="The system is not properly configured. Please contact support.",
            context={"config_key": config_key},
            **kwargs
        )


# ==========================================
# Helper Functions
# ==========================================

def wrap_external_exception(
    error: Exception,
    operation: str,
    user_id: Optional[str] = None,
    context: Optional[Dict[str, Any]] = None
) -> HabitFlowError:
    """
    Wrap external exceptions (psycopg, ...) into our exception hierarchy

    Args:
        error: Original exception
        operation: What operation was being performed
        user_id: User ID if applicable
        context: Additional context

    Returns:
        Appropriate HabitFlowError subclass

    Example:
        try:
            await conn.execute(query)
        except psycopg.Error as e:
            raise wrap_external_exception(
                e,
                operation="insert_completion",
                user_id="user-1",
                context={"habit_id": habit_id}
            )
    """
    import psycopg

    if isinstance(error, HabitFlowError):
        return error

    # Database errors
    if isinstance(error, psycopg.OperationalError):
        return ConnectionError(
            message=f"Database connection failed: {str(error)}",
            user_id=user_id,
            operation=operation,
            context=context,
            cause=error
        )
    elif isinstance(error, psycopg.Error):
        return QueryError(
            message=f"Database query failed: {str(error)}",
            user_id=user_id,
            operation=operation,
            context=context,
            cause=error
        )

    # Generic fallback
    return HabitFlowError(
        message=f"{operation} failed: {str(error)}",
        user_id=user_id,
        operation=operation,
        context=context,
        cause=error
    )
