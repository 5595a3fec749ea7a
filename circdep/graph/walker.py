"""
Depth-first exploration of part paths with explicit forking.

Starting from a root block, every part edge is followed until the branch
either reaches a block without part properties (clean) or meets a block
already on the branch (cyclic). Whenever a block has several part properties
the branch forks, each fork continuing from the same immutable state.

The walk uses an explicit worklist rather than recursion so that deep
containment hierarchies do not hit the interpreter's recursion limit.
"""
import logging
from typing import List, Optional, Tuple

from circdep.graph.extractor import CompositionGraph, GraphNode, PartEdge
from circdep.graph.path import InvalidPathEntry, PathState, PathStep, StepKind

logger = logging.getLogger("CycleWalker")


def node_step(node: GraphNode) -> PathStep:
    return PathStep(element=node.element, step_id=node.node_id, name=node.name, kind=StepKind.NODE)


def property_step(edge: PartEdge) -> PathStep:
    return PathStep(element=edge.prop, step_id=edge.property_id, name=edge.property_name, kind=StepKind.PROPERTY)


class CycleWalker:
    """Walks the branches of a CompositionGraph."""

    def __init__(self, graph: CompositionGraph):
        self.graph = graph

    def start_state(self, root_id: str) -> PathState:
        root = self.graph.node(root_id)
        if root is None:
            raise KeyError(f"Unknown root node {root_id}")
        return PathState.start(node_step(root))

    def walk(self, root_id: str, edge: PartEdge, state: Optional[PathState] = None) -> List[PathState]:
        """
        Explore every branch reachable through `edge` from `root_id`.

        Args:
            root_id: ID of the block the walk starts from
            edge: The first-level part edge to follow
            state: Optional state to continue from (defaults to the root alone)

        Returns:
            The final state of each branch, clean or cyclic, in declaration order
        """
        if state is None:
            state = self.start_state(root_id)

        finished: List[PathState] = []
        worklist: List[Tuple[PathState, PartEdge]] = [(state, edge)]

        while worklist:
            current, step_edge = worklist.pop()
            child = self.graph.node(step_edge.child_id)

            if child is None or not child.is_composite:
                finished.append(current)
                continue

            current = current.insert(property_step(step_edge)).insert(node_step(child))

            if current.is_cyclic:
                logger.debug(f"Cycle closed at {child} via {step_edge.property_name or step_edge.property_id}")
                finished.append(current)
                continue

            child_edges = self.graph.edges_of(child.node_id)
            if not child_edges:
                finished.append(current)
                continue

            # Pushed in reverse so the first declared property is explored first
            for next_edge in reversed(child_edges):
                worklist.append((current, next_edge))

        return finished

    def walk_root(self, root_id: str) -> List[PathState]:
        """Walk every first-level part edge of a root, each from a fresh state."""
        start = self.start_state(root_id)
        branches: List[PathState] = []
        for edge in self.graph.edges_of(root_id):
            branches.extend(self.walk(root_id, edge, start))
        return branches

    def invalid_paths(self, root_id: str) -> List[InvalidPathEntry]:
        """The cyclic branches of a root as invalid path entries."""
        entries = [InvalidPathEntry.from_state(s) for s in self.walk_root(root_id) if s.is_cyclic]
        if entries:
            logger.debug(f"Root {root_id} has {len(entries)} invalid paths")
        return entries
