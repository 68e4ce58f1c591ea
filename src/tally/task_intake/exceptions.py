"""Custom exceptions for message intake functionality."""


class TaskIntakeError(Exception):
    """Base exception for message intake errors."""

    pass


class DatabaseError(TaskIntakeError):
    """Exception raised for database related errors."""

    pass


class SchemaError(DatabaseError):
    """Exception raised for database schema errors."""

    pass


class UserNotFoundError(TaskIntakeError):
    """Exception raised when a message arrives from an unknown user."""

    pass


class TaskNotFoundError(TaskIntakeError):
    """Exception raised when a task is not found."""

    pass


class ClassificationError(TaskIntakeError):
    """Exception raised for structured extraction errors."""

    pass
