"""NetworkX graph cache and traversal for LoreDatabase."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import networkx as nx
from networkx import MultiDiGraph

from lore.memory.entities import Relationship

if TYPE_CHECKING:
    from . import LoreDatabase

logger = logging.getLogger(__name__)


def invalidate_graph(db: LoreDatabase) -> None:
    """Force graph rebuild on next access."""
    with db._lock:
        db._graph = None
        db._graph_data_version = None
    logger.debug("Graph cache invalidated - will rebuild on next access")


def _add_edges(graph: MultiDiGraph[Any], relationship: Relationship) -> None:
    """Add the edge(s) for one relationship, keyed by relationship ID."""
    graph.add_edge(
        relationship.source_entity_id,
        relationship.target_entity_id,
        key=relationship.id,
        type=relationship.type.value,
    )
    # Bidirectional relationships are walkable from the target side too
    if relationship.bidirectional:
        graph.add_edge(
            relationship.target_entity_id,
            relationship.source_entity_id,
            key=relationship.id,
            type=relationship.type.value,
            is_reverse=True,
        )


def add_relationship_to_graph(db: LoreDatabase, relationship: Relationship) -> None:
    """Add a relationship to the cached graph incrementally (no full rebuild)."""
    if db._graph is None:
        return  # Graph not built yet, will be built on next get_graph()
    _add_edges(db._graph, relationship)


def remove_relationship_from_graph(db: LoreDatabase, relationship: Relationship) -> None:
    """Remove a relationship's edge(s) from the cached graph incrementally."""
    if db._graph is None:
        return  # Graph not built yet

    source, target = relationship.source_entity_id, relationship.target_entity_id
    key = relationship.id
    if db._graph.has_edge(source, target, key=key):
        db._graph.remove_edge(source, target, key=key)
    if relationship.bidirectional and db._graph.has_edge(target, source, key=key):
        db._graph.remove_edge(target, source, key=key)

    logger.debug("Removed relationship from graph: %s -> %s", source, target)


def remove_entity_from_graph(db: LoreDatabase, entity_id: str) -> None:
    """Remove an entity node and its incident edges from the cached graph."""
    if db._graph is None:
        return  # Graph not built yet

    if entity_id in db._graph:
        db._graph.remove_node(entity_id)
        logger.debug("Removed entity from graph: %s", entity_id)


def _data_version(db: LoreDatabase) -> int:
    """SQLite's change counter for commits made by other connections."""
    row = db.conn.execute("PRAGMA data_version").fetchone()
    return int(row[0])


def rebuild_graph(db: LoreDatabase) -> None:
    """Rebuild the graph from the relationships table.

    Callers must hold db._lock before calling this function.

    Args:
        db: LoreDatabase instance.
    """
    # Read the counter first so a commit landing mid-rebuild triggers another rebuild
    data_version = _data_version(db)
    graph: MultiDiGraph[Any] = nx.MultiDiGraph()
    for relationship in db.list_relationships():
        _add_edges(graph, relationship)

    db._graph = graph
    db._graph_data_version = data_version
    logger.debug(
        "Graph rebuilt: %d nodes, %d edges", graph.number_of_nodes(), graph.number_of_edges()
    )


def get_graph(db: LoreDatabase) -> MultiDiGraph[Any]:
    """Get the relationship graph (lazy-loaded).

    Writes through this connection keep the cache current incrementally. A commit
    from another connection (e.g. a second CLI process) bumps SQLite's data_version,
    which triggers a full rebuild here.

    Args:
        db: LoreDatabase instance.

    Returns:
        NetworkX directed multigraph with one keyed edge per relationship direction.
    """
    with db._lock:
        db._ensure_open()
        if db._graph is None or db._graph_data_version != _data_version(db):
            rebuild_graph(db)
        assert db._graph is not None  # Guaranteed by rebuild_graph
        return db._graph


def related_entities(
    db: LoreDatabase, start_id: str, depth: int, relation_type: str | None = None
) -> set[str]:
    """Get the entities reachable from a start entity within a number of hops.

    From each entity the walk follows edges it is the source of, and bidirectional
    edges it is the target of. The start entity is never part of the result, and
    each entity is counted once no matter how many paths or cycles lead to it.

    Args:
        db: LoreDatabase instance.
        start_id: Entity ID to start from.
        depth: Hop limit; clamped to [0, MAX_TRAVERSAL_DEPTH].
        relation_type: Only walk edges of this relationship type (None for all).

    Returns:
        Set of reachable entity IDs (empty for depth 0 or an isolated entity).
    """
    from . import MAX_TRAVERSAL_DEPTH

    depth = max(0, min(depth, MAX_TRAVERSAL_DEPTH))
    logger.debug(
        "related_entities called: start_id=%s, depth=%d, type=%s", start_id, depth, relation_type
    )
    if depth == 0:
        return set()

    with db._lock:
        graph = get_graph(db)
        if start_id not in graph:
            return set()
        walked: Any = graph
        if relation_type is not None:
            walked = nx.subgraph_view(
                graph, filter_edge=lambda u, v, k: graph[u][v][k]["type"] == relation_type
            )
        lengths = nx.single_source_shortest_path_length(walked, start_id, cutoff=depth)

    return set(lengths) - {start_id}
