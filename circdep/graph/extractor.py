"""
Extraction of the part composition graph.

Turns the live model into a read-only snapshot of composite nodes and their
outgoing part edges: (parent block) -> (part property) -> (child block).
The snapshot is taken once at the start of a validation run and never
touches the underlying model again.
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from circdep.collaborators import ModelAccess
from circdep.config import ValidatorConfig
from circdep.errors import ExtractionSkip

logger = logging.getLogger("GraphExtractor")


class GraphNode(BaseModel):
    """A composite element (block) of the composition graph."""
    # The model element itself; owned by the authoring tool, never serialized
    element: Any = Field(exclude=True)
    node_id: str
    name: str = ""
    is_composite: bool = True
    is_rollup: bool = False

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    def __str__(self) -> str:
        return f"Node({self.name or self.node_id})"

    def __repr__(self) -> str:
        return self.__str__()


class PartEdge(BaseModel):
    """A part property linking a parent block to the block it types."""
    prop: Any = Field(exclude=True)
    parent_id: str
    property_id: str
    property_name: str = ""
    order: int
    child_id: str

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    def __str__(self) -> str:
        return f"Edge({self.parent_id} -[{self.property_name or self.property_id}]-> {self.child_id})"

    def __repr__(self) -> str:
        return self.__str__()


class CompositionGraph(BaseModel):
    """
    Snapshot of the composition graph.

    `roots` lists, in model order, the nodes that seed a walk; roll-up elements
    are left out of it but stay in `nodes` so that they can still be reached
    through another block's part property.
    """
    nodes: Dict[str, GraphNode] = Field(default_factory=dict)
    edges: Dict[str, List[PartEdge]] = Field(default_factory=dict)
    roots: List[str] = Field(default_factory=list)
    skipped: List[str] = Field(default_factory=list)

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def node(self, node_id: str) -> Optional[GraphNode]:
        return self.nodes.get(node_id)

    def has_node(self, node_id: str) -> bool:
        return node_id in self.nodes

    def edges_of(self, node_id: str) -> List[PartEdge]:
        """Outgoing part edges of a node, in declaration order."""
        return self.edges.get(node_id, [])

    @property
    def node_count(self) -> int:
        return len(self.nodes)

    @property
    def edge_count(self) -> int:
        return sum(len(e) for e in self.edges.values())


class GraphExtractor:
    """
    Builds a CompositionGraph out of a ModelAccess.

    Malformed elements are skipped with a warning; extraction never aborts the
    whole run because of one element.
    """

    def __init__(self, model: ModelAccess, config: Optional[ValidatorConfig] = None):
        self.model = model
        self.config = config or ValidatorConfig()
        self._pending: List[Tuple[GraphNode, Any]] = []

    def extract(self) -> CompositionGraph:
        graph = CompositionGraph()
        blocks: List[Tuple[GraphNode, Any]] = []
        self._pending = blocks

        for element in self.model.all_elements():
            try:
                if not self.model.is_composite(element):
                    continue
                node = self._describe(element)
            except ExtractionSkip as e:
                self._skip(graph, e)
                continue
            except (AttributeError, TypeError, LookupError, ValueError) as e:
                self._skip(graph, ExtractionSkip(element, str(e)))
                continue

            if node.node_id in graph.nodes:
                continue
            graph.nodes[node.node_id] = node
            blocks.append((node, element))
            if node.is_rollup:
                logger.debug(f"{node} matches roll-up marker '{self.config.rollup_marker}', not seeding a walk")
            else:
                graph.roots.append(node.node_id)

        # Blocks reached only through a part property are appended to `blocks`
        # while edges are collected, so this loop also picks them up
        index = 0
        while index < len(blocks):
            node, element = blocks[index]
            graph.edges[node.node_id] = self._edges_of(graph, node, element)
            index += 1

        logger.info(
            f"Extracted composition graph with {graph.node_count} nodes, {graph.edge_count} part edges "
            f"and {len(graph.roots)} roots ({len(graph.skipped)} elements skipped)"
        )
        return graph

    def _describe(self, element: Any) -> GraphNode:
        try:
            node_id = self.model.element_id(element)
            name = self.model.name(element)
        except (AttributeError, TypeError, LookupError, ValueError) as e:
            raise ExtractionSkip(element, f"id or name not queryable ({e})") from e
        if not node_id:
            raise ExtractionSkip(element, "empty element id")
        return GraphNode(
            element=element,
            node_id=str(node_id),
            name=name or "",
            is_composite=True,
            is_rollup=self.config.is_rollup(name),
        )

    def _edges_of(self, graph: CompositionGraph, parent: GraphNode, element: Any) -> List[PartEdge]:
        edges: List[PartEdge] = []
        try:
            owned = list(self.model.owned_properties(element))
        except (AttributeError, TypeError, LookupError, ValueError) as e:
            self._skip(graph, ExtractionSkip(element, f"owned properties not queryable ({e})"))
            return edges

        order = 0
        for prop in owned:
            try:
                if not self.model.is_part_property(prop):
                    continue
                edge = self._edge(graph, parent, prop, order)
            except ExtractionSkip as e:
                self._skip(graph, e)
                order += 1
                continue
            order += 1
            if edge is not None:
                edges.append(edge)
        return edges

    def _edge(self, graph: CompositionGraph, parent: GraphNode, prop: Any, order: int) -> Optional[PartEdge]:
        try:
            property_id = self.model.element_id(prop)
            property_name = self.model.name(prop)
            child = self.model.property_type(prop)
            child_is_block = child is not None and self.model.is_composite(child)
        except (AttributeError, TypeError, LookupError, ValueError) as e:
            raise ExtractionSkip(prop, f"type not queryable ({e})") from e
        if not property_id:
            raise ExtractionSkip(prop, "empty property id")

        if not child_is_block:
            logger.debug(f"Part property {property_name or property_id} of {parent} is not typed by a block")
            return None

        child_node = self._child_node(graph, child)
        if self.config.exclude_intermediate_rollups and child_node.is_rollup:
            logger.debug(f"Dropping edge {parent.node_id}.{property_id} into roll-up {child_node}")
            return None

        return PartEdge(
            prop=prop,
            parent_id=parent.node_id,
            property_id=str(property_id),
            property_name=property_name or "",
            order=order,
            child_id=child_node.node_id,
        )

    def _child_node(self, graph: CompositionGraph, child: Any) -> GraphNode:
        node = self._describe(child)
        existing = graph.nodes.get(node.node_id)
        if existing is not None:
            return existing
        # Typed by a block outside the element collection: still a node, never a root
        graph.nodes[node.node_id] = node
        self._pending.append((node, child))
        return node

    def _skip(self, graph: CompositionGraph, error: ExtractionSkip) -> None:
        logger.warning(str(error))
        graph.skipped.append(repr(error.element))
