"""Graph Builder.

Converts a workflow's node records into an immutable, validated execution
graph. Connections live on the source node in storage; here they become an
explicit edge list owned by the graph, computed once per run.

Validation happens before any execution record is written:
    - every node type is known and node ids are unique
    - every connection targets a node of the same workflow (DanglingEdgeError)
    - the connection graph is acyclic (CycleDetectedError)
    - trigger nodes have no incoming connections
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
import heapq
import logging
from types import MappingProxyType
from typing import Iterator, Mapping, Sequence

from flowchord.core.types import NodeSpec, NodeType, WorkflowSpec
from flowchord.errors.exceptions import (
    CycleDetectedError,
    DanglingEdgeError,
    EmptyWorkflowError,
    ValidationError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Edge:
    """Directed dependency source -> target."""

    id: str
    source: str
    target: str


class ExecutionGraph:
    """Immutable DAG of a workflow's nodes.

    Exposes, per node, its predecessor and successor sets; the scheduler
    uses them for AND-join and fan-out decisions. Node iteration order is
    the insertion order of the workflow's node list.
    """

    def __init__(
        self,
        workflow_id: str,
        nodes: dict[str, NodeSpec],
        edges: tuple[Edge, ...],
    ) -> None:
        self._workflow_id = workflow_id
        self._nodes = MappingProxyType(dict(nodes))
        self._edges = edges
        self._index = {node_id: i for i, node_id in enumerate(nodes)}

        successors: dict[str, list[str]] = {node_id: [] for node_id in nodes}
        predecessors: dict[str, list[str]] = {node_id: [] for node_id in nodes}
        for edge in edges:
            successors[edge.source].append(edge.target)
            predecessors[edge.target].append(edge.source)

        self._successors = {k: tuple(v) for k, v in successors.items()}
        self._predecessors = {
            k: tuple(sorted(v, key=self._index.__getitem__)) for k, v in predecessors.items()
        }

        triggers = tuple(
            node_id for node_id, node in nodes.items() if node.type is NodeType.TRIGGER
        )
        self._roots = triggers or tuple(
            node_id for node_id in nodes if not self._predecessors[node_id]
        )
        self._reachable = self._collect_reachable()
        self._order = self._topological_order()

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def workflow_id(self) -> str:
        return self._workflow_id

    @property
    def nodes(self) -> Mapping[str, NodeSpec]:
        return self._nodes

    @property
    def edges(self) -> tuple[Edge, ...]:
        return self._edges

    @property
    def roots(self) -> tuple[str, ...]:
        """Trigger nodes, or every node with in-degree zero when none declared."""
        return self._roots

    @property
    def reachable(self) -> frozenset[str]:
        """Nodes reachable from the roots. Only these are executed."""
        return self._reachable

    @property
    def topological_order(self) -> tuple[str, ...]:
        """All nodes in topological order, ties broken by insertion order."""
        return self._order

    def node(self, node_id: str) -> NodeSpec:
        return self._nodes[node_id]

    def index(self, node_id: str) -> int:
        """Insertion position of the node."""
        return self._index[node_id]

    def predecessors(self, node_id: str) -> frozenset[str]:
        return frozenset(self._predecessors[node_id])

    def successors(self, node_id: str) -> tuple[str, ...]:
        return self._successors[node_id]

    def in_degree(self, node_id: str) -> int:
        return len(self._predecessors[node_id])

    def join_predecessors(self, node_id: str) -> tuple[str, ...]:
        """Predecessors that gate this node: the reachable ones, in insertion order."""
        return tuple(p for p in self._predecessors[node_id] if p in self._reachable)

    def descendants(self, node_id: str) -> frozenset[str]:
        """Every node reachable from ``node_id``, excluding itself."""
        seen: set[str] = set()
        queue = deque(self._successors[node_id])
        while queue:
            current = queue.popleft()
            if current in seen:
                continue
            seen.add(current)
            queue.extend(self._successors[current])
        return frozenset(seen)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __iter__(self) -> Iterator[str]:
        return iter(self._nodes)

    def __len__(self) -> int:
        return len(self._nodes)

    def __repr__(self) -> str:
        return (
            f"ExecutionGraph(workflow_id={self._workflow_id!r}, "
            f"nodes={len(self._nodes)}, edges={len(self._edges)})"
        )

    # ------------------------------------------------------------------
    # Derived structure
    # ------------------------------------------------------------------

    def _collect_reachable(self) -> frozenset[str]:
        seen: set[str] = set(self._roots)
        queue = deque(self._roots)
        while queue:
            current = queue.popleft()
            for target in self._successors[current]:
                if target not in seen:
                    seen.add(target)
                    queue.append(target)
        return frozenset(seen)

    def _topological_order(self) -> tuple[str, ...]:
        """Kahn's algorithm with a min-heap on insertion index."""
        in_degree = {node_id: len(preds) for node_id, preds in self._predecessors.items()}
        heap = [self._index[n] for n, deg in in_degree.items() if deg == 0]
        heapq.heapify(heap)
        ids = list(self._nodes)
        order: list[str] = []

        while heap:
            node_id = ids[heapq.heappop(heap)]
            order.append(node_id)
            for target in self._successors[node_id]:
                in_degree[target] -= 1
                if in_degree[target] == 0:
                    heapq.heappush(heap, self._index[target])

        return tuple(order)


def build_graph(
    workflow: WorkflowSpec,
    nodes: Sequence[NodeSpec] | None = None,
    *,
    max_nodes: int | None = None,
) -> ExecutionGraph:
    """Build and validate the execution graph of a workflow.

    Args:
        workflow: Workflow snapshot (policy and identity).
        nodes: Node set to use. Defaults to ``workflow.nodes``.
        max_nodes: Optional upper bound on graph size.

    Returns:
        Validated immutable graph.

    Raises:
        ValidationError: Empty workflow, too many nodes, duplicate ids,
            or a trigger node with incoming connections.
        DanglingEdgeError: A connection targets a node outside the set.
        CycleDetectedError: The connections form a directed cycle.
    """
    node_list = list(workflow.nodes if nodes is None else nodes)

    if not node_list:
        raise EmptyWorkflowError(workflow.id)

    if max_nodes is not None and len(node_list) > max_nodes:
        raise ValidationError(
            f"Workflow has {len(node_list)} nodes, maximum is {max_nodes}"
        )

    node_map: dict[str, NodeSpec] = {}
    for node in node_list:
        if node.id in node_map:
            raise ValidationError(f"Duplicate node id '{node.id}'", node_id=node.id)
        node_map[node.id] = node

    edges: list[Edge] = []
    seen_pairs: set[tuple[str, str]] = set()
    for node in node_list:
        for conn in node.connections:
            if conn.target_node_id not in node_map:
                raise DanglingEdgeError(node.id, conn.target_node_id, conn.edge_id)
            pair = (node.id, conn.target_node_id)
            if pair in seen_pairs:
                continue
            seen_pairs.add(pair)
            edges.append(Edge(
                id=conn.edge_id or f"{node.id}->{conn.target_node_id}",
                source=node.id,
                target=conn.target_node_id,
            ))

    cycle = _find_cycle(node_map, edges)
    if cycle:
        raise CycleDetectedError(cycle)

    for edge in edges:
        if node_map[edge.target].type is NodeType.TRIGGER:
            raise ValidationError(
                f"Trigger node '{edge.target}' cannot have incoming connections",
                node_id=edge.target,
            )

    graph = ExecutionGraph(workflow.id, node_map, tuple(edges))
    logger.debug(
        "Built graph for workflow %s: %d nodes, %d edges, roots=%s",
        workflow.id, len(graph), len(graph.edges), list(graph.roots),
    )
    return graph


def _find_cycle(node_map: dict[str, NodeSpec], edges: list[Edge]) -> list[str] | None:
    """Depth-first search with an explicit stack and an on-path marker.

    Iterative so graph depth is not bounded by the interpreter's recursion
    limit. Returns the cycle as a node path (first node repeated at the
    end), or None for an acyclic graph.
    """
    adjacency: dict[str, list[str]] = {node_id: [] for node_id in node_map}
    for edge in edges:
        adjacency[edge.source].append(edge.target)

    visited: set[str] = set()
    path: list[str] = []
    on_path: set[str] = set()

    for start in node_map:
        if start in visited:
            continue
        visited.add(start)
        path.append(start)
        on_path.add(start)
        frames: list[Iterator[str]] = [iter(adjacency[start])]

        while frames:
            neighbor = next(frames[-1], None)
            if neighbor is None:
                frames.pop()
                on_path.discard(path.pop())
            elif neighbor in on_path:
                return path[path.index(neighbor):] + [neighbor]
            elif neighbor not in visited:
                visited.add(neighbor)
                path.append(neighbor)
                on_path.add(neighbor)
                frames.append(iter(adjacency[neighbor]))

    return None
