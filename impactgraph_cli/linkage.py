"""Linkage graph: validated add/remove/query of edges from an artefact to what it touches."""

from __future__ import annotations

import logging
from typing import Optional

from .exceptions import EdgeNotFound, InvalidEdge
from .models import (
    ArtefactLink,
    CodeLink,
    DataLink,
    LinkageGraph,
    LinkEdge,
    TestLink,
)
from .storage import LinkageStore

logger = logging.getLogger(__name__)

LINK_SOURCES = ("manual", "ai_suggested", "context")


class LinkageGraphStore:
    """Validates edges before they reach the :class:`LinkageStore`.

    Edges are keyed by ``(artefact_id, target identifier)``: adding an edge
    to a target that is already linked overwrites its confidence instead of
    creating a second edge. Removing an edge never touches past impact
    items, which carry their own metadata snapshot.
    """

    def __init__(self, store: LinkageStore):
        self.store = store

    def add_edge(self, artefact_id: str, edge: LinkEdge) -> LinkEdge:
        """Attach *edge* to *artefact_id* and persist it.

        Raises:
            InvalidEdge: see :meth:`validate`.
        """
        self.validate(artefact_id, edge)
        saved = self.store.upsert_edge(edge)
        logger.info(
            "Linked %s -> %s:%s (confidence=%.2f, source=%s)",
            artefact_id, edge.target_type, edge.target_identifier,
            edge.confidence, edge.link_source,
        )
        return saved

    def remove_edge(self, edge_id: str) -> None:
        if not self.store.delete_edge(edge_id):
            raise EdgeNotFound(f"No linkage edge with id '{edge_id}'")
        logger.info("Removed linkage edge %s", edge_id)

    def edges_for(self, artefact_id: str) -> LinkageGraph:
        return self.store.edges_for(artefact_id)

    def validate(self, artefact_id: str, edge: LinkEdge) -> None:
        """Check *edge* can be attached to *artefact_id* without persisting it.

        Raises:
            InvalidEdge: edge owned by another artefact, self-reference, empty
                target, confidence outside ``[0, 1]`` or unknown link source.
        """
        if edge.artefact_id != artefact_id:
            raise InvalidEdge(
                f"Edge belongs to '{edge.artefact_id}', not '{artefact_id}'",
            )
        if not edge.target_identifier or not str(edge.target_identifier).strip():
            raise InvalidEdge("Edge target must not be empty")
        if isinstance(edge, ArtefactLink) and edge.target_id == edge.source_id:
            raise InvalidEdge("An artefact cannot be linked to itself")
        if not 0.0 <= float(edge.confidence) <= 1.0:
            raise InvalidEdge(f"Confidence must be within [0, 1], got {edge.confidence}")
        if edge.link_source not in LINK_SOURCES:
            raise InvalidEdge(f"Unknown link source '{edge.link_source}'")
        if isinstance(edge, ArtefactLink) and edge.link_source == "manual":
            edge.confidence_score = 1.0


def build_edge(
    artefact_id: str,
    target_type: str,
    target_id: str,
    link_type: str = "relates_to",
    confidence: float = 1.0,
    link_source: str = "manual",
    kpi: bool = False,
    user_id: str = "",
    test_name: Optional[str] = None,
) -> LinkEdge:
    """Build the typed edge for a ``(target_type, target_id)`` pair.

    Used by the CLI and when materialising accepted link suggestions.
    """
    if target_type == "code":
        return CodeLink(
            artefact_id=artefact_id, file_path=target_id,
            confidence=confidence, link_source=link_source,
        )
    if target_type == "test":
        return TestLink(
            artefact_id=artefact_id, test_file=target_id, test_name=test_name,
            confidence=confidence, link_source=link_source,
        )
    if target_type == "data":
        return DataLink(
            artefact_id=artefact_id,
            table_name=target_id,
            kpi_name=target_id if kpi else None,
            confidence=confidence,
            link_source=link_source,
        )
    if target_type == "artefact":
        return ArtefactLink(
            source_id=artefact_id, target_id=target_id, link_type=link_type,
            confidence_score=confidence, link_source=link_source, user_id=user_id,
        )
    raise InvalidEdge(f"Unknown target type '{target_type}'")
