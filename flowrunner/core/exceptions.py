"""Custom exceptions for the execution engine with detailed error information."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCategory(Enum):
    """Categories of errors for better classification."""
    VALIDATION = "validation"
    EXECUTION = "execution"
    NETWORK = "network"
    CONFIGURATION = "configuration"
    TIMEOUT = "timeout"


class WorkflowEngineError(Exception):
    """Base exception for all execution engine errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        category: ErrorCategory = ErrorCategory.EXECUTION,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = False,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.category = category
        self.details = details or {}
        self.recoverable = recoverable
        self.context = context or {}
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging and display."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "category": self.category.value,
            "details": self.details,
            "recoverable": self.recoverable,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "exception_type": self.__class__.__name__
        }

    def add_context(self, **kwargs):
        """Add additional context to the exception."""
        self.context.update(kwargs)
        return self

    def add_details(self, **kwargs):
        """Add additional details to the exception."""
        self.details.update(kwargs)
        return self


class ExecutionEngineError(WorkflowEngineError):
    """Raised when the orchestrator is driven through an invalid lifecycle transition."""

    def __init__(
        self,
        message: str,
        run_id: Optional[str] = None,
        state: Optional[str] = None,
        **kwargs
    ):
        super().__init__(message, category=ErrorCategory.EXECUTION, **kwargs)
        if run_id:
            self.add_context(run_id=run_id)
        if state:
            self.add_context(state=state)


class ExecutorRegistryError(WorkflowEngineError):
    """Raised when executor registry operations fail."""

    def __init__(
        self,
        message: str,
        node_type: Optional[str] = None,
        operation: Optional[str] = None,
        **kwargs
    ):
        super().__init__(message, category=ErrorCategory.CONFIGURATION, **kwargs)
        if node_type:
            self.add_context(node_type=node_type)
        if operation:
            self.add_context(operation=operation)


class StepExecutionError(WorkflowEngineError):
    """Raised by a step executor when its node cannot produce a result."""

    def __init__(
        self,
        message: str,
        node_id: Optional[str] = None,
        node_type: Optional[str] = None,
        **kwargs
    ):
        kwargs.setdefault("category", ErrorCategory.EXECUTION)
        super().__init__(message, **kwargs)
        if node_id:
            self.add_context(node_id=node_id)
        if node_type:
            self.add_context(node_type=node_type)


class StepConfigurationError(StepExecutionError):
    """Raised when a node's config does not match the shape its type requires."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, category=ErrorCategory.VALIDATION, **kwargs)


class ConditionEvaluationError(StepExecutionError):
    """Raised when a condition cannot be evaluated against its input."""


class TransformError(StepExecutionError):
    """Raised when a transformation cannot be applied."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        operation: Optional[str] = None,
        **kwargs
    ):
        super().__init__(message, category=ErrorCategory.VALIDATION, **kwargs)
        if field:
            self.add_details(field=field)
        if operation:
            self.add_details(operation=operation)


class HttpRequestError(StepExecutionError):
    """Raised when an outbound HTTP call fails."""

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
        **kwargs
    ):
        super().__init__(message, category=ErrorCategory.NETWORK, **kwargs)
        self.status_code = status_code
        if url:
            self.add_context(url=url)
        if status_code is not None:
            self.add_details(status_code=status_code)


class StepTimeoutError(StepExecutionError):
    """Raised when an executor exceeds the configured node timeout."""

    def __init__(self, message: str, timeout: Optional[float] = None, **kwargs):
        super().__init__(message, category=ErrorCategory.TIMEOUT, **kwargs)
        if timeout is not None:
            self.add_details(timeout=timeout)


class ConfigurationError(WorkflowEngineError):
    """Raised when engine configuration is invalid or missing."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        **kwargs
    ):
        super().__init__(message, category=ErrorCategory.CONFIGURATION, **kwargs)
        if config_key:
            self.add_context(config_key=config_key)
