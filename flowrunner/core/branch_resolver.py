"""Branch Resolver: decides which outgoing edges of a node stay active."""

from typing import Dict, List, Optional

from ..models.core import BranchSelector, Edge, Node
from .logging import get_logger

logger = get_logger(__name__)

# Closed mapping from edge handle labels to the branch they represent.
HANDLE_BRANCHES: Dict[str, BranchSelector] = {
    "true": BranchSelector.TRUE,
    "false": BranchSelector.FALSE,
}


def branch_for_handle(handle: Optional[str]) -> Optional[BranchSelector]:
    """Map an edge handle label to a branch selector, ``None`` if it names none."""
    if handle is None:
        return None
    return HANDLE_BRANCHES.get(handle.strip().lower())


class BranchResolver:
    """Filters a node's outgoing edges by the branch its executor selected."""

    def active_edges(self, node: Node, edges: List[Edge], branch: Optional[BranchSelector]) -> List[Edge]:
        """
        Return the subset of ``edges`` that should propagate work.

        Non-logic nodes and logic nodes that selected no branch keep every
        edge. For a branching logic node an edge without a handle stays
        active, an edge whose handle maps to the selected branch stays active,
        and every other edge is pruned.
        """
        if not node.is_logic or branch is None:
            return list(edges)

        active = []
        for edge in edges:
            if edge.source_handle is None:
                active.append(edge)
                continue

            edge_branch = branch_for_handle(edge.source_handle)
            if edge_branch is None:
                logger.warning(
                    f"Edge {edge.id} leaves branching node {node.id} through unknown handle "
                    f"'{edge.source_handle}'; treating it as inactive"
                )
            elif edge_branch == branch:
                active.append(edge)

        logger.debug(
            f"Node {node.id} selected branch '{branch.value}': "
            f"{len(active)}/{len(edges)} outgoing edges active"
        )
        return active
