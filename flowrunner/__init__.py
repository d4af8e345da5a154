"""Execution engine for visual node/edge workflows."""

from .config import EngineConfig, get_config, load_config
from .core import ExecutionEngine, ExecutorRegistry, configure_logging, setup_logging
from .models import Edge, ExecutionResult, Node, OutcomeStatus, RunState

__version__ = "1.0.0"

__all__ = [
    "EngineConfig",
    "get_config",
    "load_config",
    "ExecutionEngine",
    "ExecutorRegistry",
    "configure_logging",
    "setup_logging",
    "Edge",
    "ExecutionResult",
    "Node",
    "OutcomeStatus",
    "RunState",
]
