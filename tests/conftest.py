"""Pytest configuration and fixtures."""

from typing import Any, Dict, List, Optional

import pytest

from flowrunner.config import get_testing_config
from flowrunner.core.execution_engine import ExecutionEngine
from flowrunner.core.executor_registry import ExecutorRegistry
from flowrunner.executors.base import StepContext
from flowrunner.models.core import Edge, Node


def make_node(node_id: str, node_type: str = "manual-trigger", config: Optional[Dict[str, Any]] = None, **kwargs) -> Node:
    """Build a node snapshot with the category implied by its type."""
    return Node(id=node_id, type=node_type, config=config or {}, **kwargs)


def make_edge(source: str, target: str, handle: Optional[str] = None, edge_id: Optional[str] = None) -> Edge:
    return Edge(id=edge_id or f"{source}->{target}", source=source, target=target, source_handle=handle)


def chain(*node_ids: str) -> List[Edge]:
    """Edges linking the given node ids one after another."""
    return [make_edge(a, b) for a, b in zip(node_ids, node_ids[1:])]


@pytest.fixture
def settings():
    """Fast engine settings: capped delays, no retry backoff."""
    return get_testing_config()


@pytest.fixture
def registry():
    return ExecutorRegistry.with_builtins()


@pytest.fixture
def engine(settings, registry):
    """Engine with built-in executors and testing settings."""
    return ExecutionEngine(registry=registry, config=settings)


@pytest.fixture
def step_context(settings):
    """Factory for executor contexts outside of a run."""
    def factory(node_type: str = "transform", http_client=None, trigger_payload=None) -> StepContext:
        return StepContext(
            run_id="run-test",
            node_id="node-test",
            node_type=node_type,
            settings=settings,
            http_client=http_client,
            trigger_payload=trigger_payload,
        )
    return factory
