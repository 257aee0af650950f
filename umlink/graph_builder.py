"""
NetworkX relationship graph.

Tracks which ordered class pairs already have a relationship so the linker
can suppress duplicates, and reports statistics about the merged diagram.
"""

import networkx as nx
from typing import Dict, Iterable, Optional, Set, Tuple

from .diagram import Diagram, Relation
from .model import RelationKind

DECLARED = "declared"
INFERRED = "inferred"


class RelationGraph:
    """Directed multigraph of diagram relationships, keyed by (tail, head)."""

    def __init__(self, diagram: Optional[Diagram] = None):
        self.graph = nx.MultiDiGraph()
        if diagram is not None:
            self._build_graph(diagram)

    def _build_graph(self, diagram: Diagram):
        """Add declared classes as nodes and declared relations as edges."""
        for decl in diagram.iter_classes():
            self.graph.add_node(decl.name, declared=True)
        for relation in diagram.relations:
            self.add_relation(relation, origin=DECLARED)

    def add_relation(self, relation: Relation, origin: str = INFERRED):
        tail, head = relation.pair
        for node in (tail, head):
            if node not in self.graph:
                self.graph.add_node(node, declared=False)
        self.graph.add_edge(
            tail,
            head,
            kind=relation.kind,
            origin=origin,
            label=relation.label,
            written=(relation.left, relation.right),
        )

    def has_pair(self, source: str, target: str) -> bool:
        """
        True if a relationship already connects `source` to `target`.

        A relation covers the pair when it points from source to target
        ("Duck --|> Animal", "Animal <|-- Duck") or is written source first
        ("Keyboard o-- KeyCode").
        """
        if self.graph.has_edge(source, target):
            return True
        if self.graph.has_edge(target, source):
            return any(data["written"] == (source, target) for data in self.graph[target][source].values())
        return False

    def edges_of_kind(self, kinds: Iterable[RelationKind]) -> Set[Tuple[str, str]]:
        wanted = set(kinds)
        return {(u, v) for u, v, data in self.graph.edges(data=True) if data["kind"] in wanted}

    def find_inheritance_cycles(self):
        """Cycles through extension/realization edges (a sign of a wrong hand-drawn arrow)."""
        hierarchy = nx.DiGraph()
        hierarchy.add_edges_from(self.edges_of_kind([RelationKind.INHERITANCE, RelationKind.REALIZATION]))
        return list(nx.simple_cycles(hierarchy))

    def get_statistics(self) -> Dict:
        """Return basic statistics of the graph."""
        origins = [data["origin"] for _, _, data in self.graph.edges(data=True)]
        node_count = self.graph.number_of_nodes()
        return {
            "node_count": node_count,
            "edge_count": self.graph.number_of_edges(),
            "declared_edges": origins.count(DECLARED),
            "inferred_edges": origins.count(INFERRED),
            "density": nx.density(self.graph) if node_count > 1 else 0,
        }

