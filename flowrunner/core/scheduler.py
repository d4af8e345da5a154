"""Topological Scheduler: Kahn's algorithm with cycle tolerance."""

from collections import deque
from typing import List

from .graph_builder import AdjacencyGraph
from .logging import get_logger

logger = get_logger(__name__)


class TopologicalScheduler:
    """Computes a dependency-respecting linear order over an adjacency graph."""

    def schedule(self, graph: AdjacencyGraph) -> List[str]:
        """
        Order the graph's nodes so every edge source precedes its target.

        Zero in-degree nodes seed a FIFO ready queue in snapshot order; a node
        joins the queue when its last incoming edge is consumed. Nodes on or
        downstream of a cycle never reach zero and are left out of the order.
        Nothing is raised for cyclic input; the unscheduled ids are recorded
        on ``graph.report.unscheduled_nodes``.

        Args:
            graph: Adjacency graph produced by GraphBuilder

        Returns:
            List[str]: Node ids in execution order (possibly a strict subset)
        """
        remaining = graph.in_degree
        ready = deque(node_id for node_id in graph.node_ids if remaining[node_id] == 0)
        order: List[str] = []

        while ready:
            current = ready.popleft()
            order.append(current)

            for edge in graph.outgoing(current):
                remaining[edge.target] -= 1
                if remaining[edge.target] == 0:
                    ready.append(edge.target)

        if len(order) != len(graph):
            scheduled = set(order)
            graph.report.unscheduled_nodes = [n for n in graph.node_ids if n not in scheduled]
            logger.warning(
                f"Graph contains a cycle, {len(graph.report.unscheduled_nodes)} node(s) will not be executed: "
                f"{', '.join(graph.report.unscheduled_nodes)}"
            )

        return order
