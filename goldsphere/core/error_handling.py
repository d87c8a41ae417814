"""
Error handling module for the GoldSphere order service.

Provides:
- Standardized error categories and explicit error kinds
- The order lifecycle error taxonomy (not found, invalid state, conflict, persistence)
- Classification of driver-level database errors
- Error tracking and a retry decorator
"""

from __future__ import annotations

import functools
import logging
import random
import threading
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple, Type, Union

from fastapi import status
from pydantic import BaseModel, Field
from sqlalchemy.exc import DBAPIError


logger = logging.getLogger(__name__)


class ErrorCategory(str, Enum):
    """Standardized error categories for the application."""
    DATABASE = "database"
    DATABASE_CONNECTION = "database_connection"
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    BUSINESS_LOGIC = "business_logic"
    CONFLICT = "conflict"
    UNKNOWN = "unknown"


class ErrorSeverity(str, Enum):
    """Error severity levels."""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


class ErrorKind(str, Enum):
    """
    Tag identifying what went wrong, independent of the message text.

    Callers dispatch on this value (or on the exception class) to tell
    "nothing happened" outcomes apart.
    """
    NOT_FOUND = "not_found"
    INVALID_STATE = "invalid_state"
    CONFLICT = "conflict"
    PERSISTENCE = "persistence"
    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    UNKNOWN = "unknown"


class AppErrorDetail(BaseModel):
    """
    Structured error detail for error tracking.
    """
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    message: str
    error_category: ErrorCategory
    severity: ErrorSeverity = ErrorSeverity.MEDIUM
    error_code: Optional[str] = None
    context: Dict[str, Any] = Field(default_factory=dict)
    component: Optional[str] = None


class AppError(Exception):
    """
    Base application error class for standardized error handling.
    """
    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(
        self,
        message: str,
        error_category: ErrorCategory = ErrorCategory.UNKNOWN,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        component: Optional[str] = None,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    ):
        self.detail = AppErrorDetail(
            message=message,
            error_category=error_category,
            severity=severity,
            error_code=error_code or self.kind.value,
            context=context or {},
            component=component
        )
        self.status_code = status_code
        super().__init__(message)

    @property
    def message(self) -> str:
        return self.detail.message

    def log(self, logger_obj: Optional[logging.Logger] = None) -> None:
        """
        Log the error with appropriate context.
        """
        log_method = (logger_obj or logger).error
        log_method(
            f"{self.detail.error_category.value.upper()} Error: {self.detail.message}",
            extra={
                "error_detail": self.detail.model_dump(mode="json"),
                "severity": self.detail.severity.value,
                "component": self.detail.component
            }
        )


class NotFoundError(AppError):
    """
    A requested entity does not exist.
    """
    kind = ErrorKind.NOT_FOUND

    def __init__(
        self,
        message: str,
        **kwargs
    ):
        kwargs.setdefault('error_category', ErrorCategory.NOT_FOUND)
        kwargs.setdefault('severity', ErrorSeverity.LOW)
        kwargs.setdefault('status_code', status.HTTP_404_NOT_FOUND)
        
        super().__init__(message, **kwargs)


class InvalidStateError(AppError):
    """
    The entity is not in a state that permits the requested operation.
    """
    kind = ErrorKind.INVALID_STATE

    def __init__(
        self,
        message: str,
        current_status: Optional[str] = None,
        **kwargs
    ):
        kwargs.setdefault('error_category', ErrorCategory.BUSINESS_LOGIC)
        kwargs.setdefault('severity', ErrorSeverity.LOW)
        kwargs.setdefault('status_code', status.HTTP_409_CONFLICT)

        context = kwargs.get('context', {})
        if current_status:
            context['current_status'] = current_status
        kwargs['context'] = context
        
        super().__init__(message, **kwargs)


class ConflictError(AppError):
    """
    Two concurrent transactions collided at the storage layer.
    """
    kind = ErrorKind.CONFLICT

    def __init__(
        self,
        message: str,
        **kwargs
    ):
        kwargs.setdefault('error_category', ErrorCategory.CONFLICT)
        kwargs.setdefault('severity', ErrorSeverity.MEDIUM)
        kwargs.setdefault('status_code', status.HTTP_409_CONFLICT)
        
        super().__init__(message, **kwargs)


class DatabaseError(AppError):
    """
    Base error for database-related operations.
    """
    kind = ErrorKind.PERSISTENCE

    def __init__(
        self,
        message: str,
        db_name: Optional[str] = None,
        **kwargs
    ):
        kwargs.setdefault('error_category', ErrorCategory.DATABASE)
        kwargs.setdefault('severity', ErrorSeverity.HIGH)
        
        context = kwargs.get('context', {})
        if db_name:
            context['database'] = db_name
        kwargs['context'] = context
        
        super().__init__(message, **kwargs)


class PersistenceError(DatabaseError):
    """
    Any storage failure other than a serialization conflict.
    """


class DatabaseConnectionError(DatabaseError):
    """
    Specific error for database connection failures.
    """
    def __init__(
        self,
        message: str,
        db_name: Optional[str] = None,
        **kwargs
    ):
        kwargs.setdefault('error_category', ErrorCategory.DATABASE_CONNECTION)
        kwargs.setdefault('severity', ErrorSeverity.CRITICAL)
        kwargs.setdefault('status_code', status.HTTP_503_SERVICE_UNAVAILABLE)
        
        super().__init__(message, db_name=db_name, **kwargs)


class ValidationError(AppError):
    """
    Error for data validation failures.
    """
    kind = ErrorKind.VALIDATION

    def __init__(
        self,
        message: str,
        **kwargs
    ):
        kwargs.setdefault('error_category', ErrorCategory.VALIDATION)
        kwargs.setdefault('severity', ErrorSeverity.MEDIUM)
        kwargs.setdefault('status_code', 422)
        
        super().__init__(message, **kwargs)


class AuthenticationError(AppError):
    """
    Error for authentication-related failures.
    """
    kind = ErrorKind.AUTHENTICATION

    def __init__(
        self,
        message: str,
        **kwargs
    ):
        kwargs.setdefault('error_category', ErrorCategory.AUTHENTICATION)
        kwargs.setdefault('severity', ErrorSeverity.HIGH)
        kwargs.setdefault('status_code', status.HTTP_401_UNAUTHORIZED)
        
        super().__init__(message, **kwargs)


class AuthorizationError(AppError):
    """
    The caller is authenticated but may not act on the resource.
    """
    kind = ErrorKind.AUTHORIZATION

    def __init__(
        self,
        message: str,
        **kwargs
    ):
        kwargs.setdefault('error_category', ErrorCategory.AUTHORIZATION)
        kwargs.setdefault('severity', ErrorSeverity.MEDIUM)
        kwargs.setdefault('status_code', status.HTTP_403_FORBIDDEN)

        super().__init__(message, **kwargs)


# SQLSTATE codes that signal a transaction collision rather than a broken statement:
# serialization_failure, deadlock_detected, lock_not_available
CONFLICT_SQLSTATES = {"40001", "40P01", "55P03"}


def _sqlstate(exc: DBAPIError) -> Optional[str]:
    orig = getattr(exc, "orig", None)
    if orig is None:
        return None
    # psycopg2 exposes .pgcode, psycopg 3 exposes .sqlstate
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def is_conflict(exc: BaseException) -> bool:
    """
    Decide whether a driver error is a transaction collision.

    Args:
        exc: Exception raised by SQLAlchemy

    Returns:
        True for serialization failures, deadlocks and lock contention
    """
    if not isinstance(exc, DBAPIError):
        return False
    if _sqlstate(exc) in CONFLICT_SQLSTATES:
        return True
    # SQLite reports writer contention only through the message
    return "database is locked" in str(getattr(exc, "orig", exc)).lower()


def classify_db_error(exc: Exception, operation: str, **context: Any) -> AppError:
    """
    Convert a SQLAlchemy/driver error into the application taxonomy.

    Args:
        exc: The original exception
        operation: Short description of what was being attempted
        **context: Extra identifiers for the error context

    Returns:
        ConflictError for collisions, PersistenceError for everything else
    """
    ctx = create_error_context(operation=operation, **context)
    if is_conflict(exc):
        return ConflictError(
            f"Concurrent update conflict during {operation}",
            context=ctx,
            component="persistence"
        )
    return PersistenceError(
        f"Storage failure during {operation}: {exc}",
        context=ctx,
        component="persistence"
    )


class ErrorTracker:
    """
    Centralized error tracking and monitoring utility.

    Request threads report concurrently; every access to the stats goes
    through ``_lock``.
    """
    _error_stats = {
        "counters": {},
        "last_errors": {},
    }
    _lock = threading.Lock()

    @classmethod
    def track_error(
        cls, 
        error: Union[AppError, Exception], 
        category: Optional[ErrorCategory] = None
    ) -> None:
        """
        Track error occurrence for monitoring purposes.
        
        Args:
            error: The error that occurred
            category: Optional category override (for non-AppError exceptions)
        """
        if isinstance(error, AppError):
            error_cat = error.detail.error_category
        else:
            error_cat = category or ErrorCategory.UNKNOWN

        with cls._lock:
            counters = cls._error_stats["counters"]
            counters[error_cat] = counters.get(error_cat, 0) + 1
            cls._error_stats["last_errors"][error_cat] = error

    @classmethod
    def clear_error_stats(cls) -> None:
        """Reset error statistics (mainly for testing)."""
        with cls._lock:
            cls._error_stats["counters"] = {}
            cls._error_stats["last_errors"] = {}

    @classmethod
    def get_error_stats(cls) -> Dict[str, Any]:
        """
        Retrieve current error statistics.
        
        Returns:
            Dictionary of current error tracking data
        """
        with cls._lock:
            return {
                "counters": {k.value: v for k, v in cls._error_stats["counters"].items()},
                "last_errors": {
                    k.value: str(v) for k, v in cls._error_stats["last_errors"].items()
                },
            }


def create_error_context(
    **kwargs: Any
) -> Dict[str, Any]:
    """
    Create a standardized error context dictionary.
    
    Args:
        **kwargs: Key-value pairs to include in the context
        
    Returns:
        Standardized context dictionary with None values dropped
    """
    return {k: str(v) if not isinstance(v, (int, float, bool, str)) else v
            for k, v in kwargs.items() if v is not None}


def retry_operation(
    max_retries: int = 1,
    delay: float = 0.05,
    backoff_factor: float = 2.0,
    allowed_exceptions: Tuple[Type[Exception], ...] = (ConflictError,)
) -> Callable:
    """
    Decorator for retrying an operation after a retryable failure.
    
    Args:
        max_retries: Number of retries after the first attempt
        delay: Initial delay between retries in seconds
        backoff_factor: Multiplier for delay between retries
        allowed_exceptions: Tuple of exception types that trigger a retry
    
    Returns:
        Decorated function with retry logic

    Example:
        @retry_operation(max_retries=1, allowed_exceptions=(ConflictError,))
        def advance(order_id):
            ...
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            attempt = 0
            current_delay = delay
            
            while True:
                try:
                    return func(*args, **kwargs)
                except allowed_exceptions as e:
                    if attempt >= max_retries:
                        raise
                    attempt += 1
                    ErrorTracker.track_error(e, ErrorCategory.CONFLICT)
                    logger.warning(
                        f"{func.__name__} failed with {type(e).__name__}, "
                        f"retry {attempt}/{max_retries}"
                    )
                    if current_delay > 0:
                        time.sleep(current_delay * random.uniform(0.8, 1.2))
                    current_delay *= backoff_factor
        
        return wrapper
    
    return decorator


__all__ = [
    'AppError',
    'AppErrorDetail',
    'AuthenticationError',
    'AuthorizationError',
    'ConflictError',
    'DatabaseConnectionError',
    'DatabaseError',
    'ErrorCategory',
    'ErrorKind',
    'ErrorSeverity',
    'ErrorTracker',
    'InvalidStateError',
    'NotFoundError',
    'PersistenceError',
    'ValidationError',
    'classify_db_error',
    'create_error_context',
    'is_conflict',
    'retry_operation',
]
