"""
Error handling utilities
"""

from typing import Optional
from taskflow.models.response import ErrorResponse, ActionResult
from taskflow.utils.logger import logger


GENERIC_FAILURE_MESSAGE = "Something went wrong. Please try again."


class TaskflowError(Exception):
    """Base exception for application errors"""
    pass


class ValidationError(TaskflowError):
    """Input rejected before any write"""
    pass


class NotAuthenticatedError(TaskflowError):
    """No authenticated user for a session-scoped action"""

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message)


class NotFoundError(TaskflowError):
    """Record missing or not visible to the caller"""
    pass


class DownstreamError(TaskflowError):
    """Store, queue or provider failure"""
    pass


def handle_error(error: Exception) -> ErrorResponse:
    """
    Handle error and return user-friendly message

    Args:
        error: Exception to handle

    Returns:
        ErrorResponse with user-friendly message
    """
    if isinstance(error, ValidationError):
        logger.warning(f"Validation error: {error}")
        return ErrorResponse(message=str(error), error_code="validation_error")

    if isinstance(error, NotAuthenticatedError):
        logger.warning(f"Authentication error: {error}")
        return ErrorResponse(message=str(error), error_code="not_authenticated")

    if isinstance(error, NotFoundError):
        logger.warning(f"Not found: {error}")
        return ErrorResponse(message=str(error), error_code="not_found")

    logger.error(f"Error occurred: {error}", exc_info=True)

    # Downstream causes are never surfaced to the user
    return ErrorResponse(message=GENERIC_FAILURE_MESSAGE)


def failure_result(error: Exception, message: Optional[str] = None) -> ActionResult:
    """
    Convert an exception raised inside an action into a failed ActionResult

    Args:
        error: Exception to convert
        message: Message to show instead of the generic one for unexpected errors

    Returns:
        ActionResult with success=False
    """
    response = handle_error(error)
    if message and response.error_code not in ("validation_error", "not_found"):
        return ActionResult.failure(message)
    return ActionResult.failure(response.message)

