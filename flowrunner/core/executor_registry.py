"""Executor Registry: maps node types to their step executors."""

from typing import TYPE_CHECKING, Dict, List, Optional

from .exceptions import ExecutorRegistryError
from .logging import get_logger

if TYPE_CHECKING:
    from ..executors.base import StepExecutor

logger = get_logger(__name__)


class ExecutorRegistry:
    """Registry resolving a node's ``type`` to the executor that runs it."""

    def __init__(self):
        self._executors: Dict[str, "StepExecutor"] = {}

    @classmethod
    def with_builtins(cls) -> "ExecutorRegistry":
        """Create a registry holding one instance of every built-in executor."""
        from ..executors import BUILTIN_EXECUTORS

        registry = cls()
        for executor_class in BUILTIN_EXECUTORS:
            registry.register(executor_class())
        return registry

    def register(self, executor: "StepExecutor", node_type: Optional[str] = None, replace: bool = False) -> None:
        """Register an executor for a node type.

        Args:
            executor: Executor instance; must provide an async ``execute``
            node_type: Type to serve; defaults to ``executor.node_type``
            replace: Allow overriding an existing registration

        Raises:
            ExecutorRegistryError: If the type is empty, already taken, or the executor is unusable
        """
        node_type = (node_type or getattr(executor, "node_type", "") or "").strip()
        if not node_type:
            raise ExecutorRegistryError("Executor node type cannot be empty", operation="register")

        if not callable(getattr(executor, "execute", None)):
            raise ExecutorRegistryError(
                f"Executor for '{node_type}' must define execute()", node_type=node_type, operation="register"
            )

        if node_type in self._executors and not replace:
            raise ExecutorRegistryError(
                f"An executor for '{node_type}' is already registered", node_type=node_type, operation="register"
            )

        self._executors[node_type] = executor
        logger.debug(f"Registered executor {type(executor).__name__} for node type '{node_type}'")

    def get(self, node_type: str) -> "StepExecutor":
        """Return the executor for ``node_type``.

        Raises:
            ExecutorRegistryError: If no executor serves the type
        """
        executor = self._executors.get(node_type)
        if executor is None:
            raise ExecutorRegistryError(f"Unknown node type: {node_type}", node_type=node_type, operation="get")
        return executor

    def unregister(self, node_type: str) -> bool:
        """Remove a registration. Returns False if the type was not registered."""
        removed = self._executors.pop(node_type, None) is not None
        if removed:
            logger.debug(f"Unregistered executor for node type '{node_type}'")
        return removed

    def has(self, node_type: str) -> bool:
        return node_type in self._executors

    def node_types(self) -> List[str]:
        return list(self._executors)
