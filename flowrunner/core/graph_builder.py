"""Graph Builder: adjacency structures derived from a node/edge snapshot."""

from typing import Dict, Iterable, List, Optional

from ..models.core import Edge, GraphReport, Node
from .logging import get_logger

logger = get_logger(__name__)


class AdjacencyGraph:
    """
    Read-only adjacency view of one workflow snapshot.

    ``in_degree[n]`` always equals ``len(incoming[n])``. The structure is
    rebuilt wholesale by :class:`GraphBuilder`; it offers no edge add/remove.
    """

    def __init__(
        self,
        nodes: Dict[str, Node],
        outgoing: Dict[str, List[Edge]],
        incoming: Dict[str, List[Edge]],
        report: GraphReport,
    ):
        self._nodes = nodes
        self._outgoing = outgoing
        self._incoming = incoming
        self._in_degree = {node_id: len(edges) for node_id, edges in incoming.items()}
        self.report = report

    @property
    def node_ids(self) -> List[str]:
        """Node ids in snapshot order."""
        return list(self._nodes)

    @property
    def in_degree(self) -> Dict[str, int]:
        return dict(self._in_degree)

    @property
    def edges(self) -> List[Edge]:
        """Every retained edge, grouped by source in snapshot order."""
        return [edge for edges in self._outgoing.values() for edge in edges]

    def node(self, node_id: str) -> Node:
        return self._nodes[node_id]

    def get_node(self, node_id: str) -> Optional[Node]:
        return self._nodes.get(node_id)

    def outgoing(self, node_id: str) -> List[Edge]:
        return list(self._outgoing.get(node_id, ()))

    def incoming(self, node_id: str) -> List[Edge]:
        return list(self._incoming.get(node_id, ()))

    def successors(self, node_id: str) -> List[str]:
        return [edge.target for edge in self._outgoing.get(node_id, ())]

    def predecessors(self, node_id: str) -> List[str]:
        return [edge.source for edge in self._incoming.get(node_id, ())]

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)


class GraphBuilder:
    """Builds :class:`AdjacencyGraph` instances from node and edge snapshots."""

    def build(self, nodes: Iterable[Node], edges: Iterable[Edge]) -> AdjacencyGraph:
        """
        Build successor/predecessor lists and in-degrees for a snapshot.

        Args:
            nodes: Node snapshots in input order
            edges: Edge snapshots in input order

        Returns:
            AdjacencyGraph: Maps keyed by node id, iterated in input order

        Malformed input never raises: a repeated node id keeps its first
        occurrence and an edge referencing an unknown node is dropped. Both
        are recorded on ``graph.report``.
        """
        report = GraphReport()
        node_map: Dict[str, Node] = {}
        outgoing: Dict[str, List[Edge]] = {}
        incoming: Dict[str, List[Edge]] = {}

        for node in nodes:
            if node.id in node_map:
                report.duplicate_nodes.append(node.id)
                continue
            node_map[node.id] = node
            outgoing[node.id] = []
            incoming[node.id] = []

        for edge in edges:
            if edge.source not in node_map or edge.target not in node_map:
                report.dangling_edges.append(edge.id)
                continue
            outgoing[edge.source].append(edge)
            incoming[edge.target].append(edge)

        for warning in report.warnings:
            logger.warning(warning)

        logger.debug(
            f"Built adjacency graph: {len(node_map)} nodes, "
            f"{sum(len(e) for e in outgoing.values())} edges"
        )
        return AdjacencyGraph(node_map, outgoing, incoming, report)
