"""Core execution engine components."""

from .exceptions import (
    WorkflowEngineError,
    ExecutionEngineError,
    ExecutorRegistryError,
    StepExecutionError,
    StepConfigurationError,
    ConditionEvaluationError,
    TransformError,
    HttpRequestError,
    StepTimeoutError,
    ConfigurationError,
)
from .logging import configure_logging, setup_logging, get_logger
from .error_recovery import RetryConfig, call_with_retry
from .graph_builder import AdjacencyGraph, GraphBuilder
from .scheduler import TopologicalScheduler
from .branch_resolver import BranchResolver
from .executor_registry import ExecutorRegistry
from .execution_context import ExecutionContext
from .execution_engine import ExecutionEngine

__all__ = [
    "WorkflowEngineError",
    "ExecutionEngineError",
    "ExecutorRegistryError",
    "StepExecutionError",
    "StepConfigurationError",
    "ConditionEvaluationError",
    "TransformError",
    "HttpRequestError",
    "StepTimeoutError",
    "ConfigurationError",
    "configure_logging",
    "setup_logging",
    "get_logger",
    "RetryConfig",
    "call_with_retry",
    "AdjacencyGraph",
    "GraphBuilder",
    "TopologicalScheduler",
    "BranchResolver",
    "ExecutorRegistry",
    "ExecutionContext",
    "ExecutionEngine",
]
