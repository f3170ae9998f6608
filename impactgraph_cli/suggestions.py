"""Link Suggestion Engine: oracle-proposed edges that a human accepts or rejects."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import List, Optional, Sequence

from .exceptions import (
    InvalidSuggestion,
    OracleError,
    SuggestionAlreadyResolved,
    SuggestionNotFound,
)
from .linkage import LinkageGraphStore, build_edge
from .models import TARGET_TYPES, Artefact, LinkEdge, LinkSuggestion, SuggestedLink
from .oracle import LinkSuggestionOracle
from .storage import LinkageStore, SuggestionStore

logger = logging.getLogger(__name__)


class LinkSuggestionEngine:
    def __init__(
        self,
        oracle: LinkSuggestionOracle,
        suggestions: SuggestionStore,
        linkage: LinkageStore,
        timeout: float = 30.0,
    ):
        self.oracle = oracle
        self.suggestions = suggestions
        self.linkage = linkage
        self.graph = LinkageGraphStore(linkage)
        self.timeout = timeout

    async def generate(
        self,
        artefact: Artefact,
        known_code_ids: Optional[Sequence[str]] = None,
        known_data_ids: Optional[Sequence[str]] = None,
    ) -> List[LinkSuggestion]:
        """Ask the oracle for new edges and persist them as ``pending``.

        The catalogue defaults to every code file and data table already
        known to the linkage store. Suggestions for targets the artefact is
        already linked to, for the artefact itself, or with confidence
        outside ``(0, 1]`` are dropped.

        Raises:
            OracleError: the oracle failed or timed out.
        """
        code_ids = list(known_code_ids) if known_code_ids is not None else self.linkage.known_code_ids()
        data_ids = list(known_data_ids) if known_data_ids is not None else self.linkage.known_data_ids()

        suggest = self.oracle.suggest_links
        if inspect.iscoroutinefunction(suggest):
            call = suggest(artefact.content, code_ids, data_ids)
        else:
            call = asyncio.to_thread(suggest, artefact.content, code_ids, data_ids)
        try:
            proposed = await asyncio.wait_for(call, timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            raise OracleError(f"Link suggestion timed out after {self.timeout:.0f}s") from exc

        existing = {
            (edge.target_type, edge.target_identifier)
            for edge in self.linkage.edges_for(artefact.id).all_edges()
        }
        accepted: List[LinkSuggestion] = []
        seen = set()
        for link in proposed or []:
            try:
                self._validate(artefact, link)
            except InvalidSuggestion as exc:
                logger.warning("Dropping suggestion for %s: %s", artefact.id, exc.message)
                continue
            key = (link.target_type, link.target_id)
            if key in existing or key in seen:
                logger.debug("Skipping already linked target %s:%s", *key)
                continue
            seen.add(key)
            accepted.append(LinkSuggestion(
                artefact_id=artefact.id,
                suggested_target_type=link.target_type,
                suggested_target_id=link.target_id,
                suggested_link_type=link.link_type or "relates_to",
                confidence=float(link.confidence),
                reasoning=link.reasoning,
            ))

        if accepted:
            self.suggestions.add_suggestions(accepted)
        logger.info("Stored %d link suggestions for %s", len(accepted), artefact.id)
        return accepted

    def accept(self, suggestion_id: str) -> LinkEdge:
        """Materialise the suggested edge and mark the suggestion ``accepted``.

        The edge is validated first. The status flip is then a
        compare-and-set on ``pending``, so a second accept (or an accept
        racing a reject) never adds a second edge. If writing the edge
        fails, the suggestion goes back to ``pending`` so it can be retried.

        Raises:
            SuggestionNotFound: unknown id.
            SuggestionAlreadyResolved: the suggestion is no longer pending.
            InvalidEdge: the suggested edge cannot be attached; the
                suggestion stays ``pending``.
        """
        suggestion = self._pending(suggestion_id)
        edge = build_edge(
            suggestion.artefact_id,
            suggestion.suggested_target_type,
            suggestion.suggested_target_id,
            link_type=suggestion.suggested_link_type,
            confidence=suggestion.confidence,
            link_source="ai_suggested",
        )
        self.graph.validate(suggestion.artefact_id, edge)
        if not self.suggestions.resolve_suggestion(suggestion_id, "accepted"):
            raise SuggestionAlreadyResolved(suggestion_id, self._current_status(suggestion_id))
        try:
            saved = self.graph.add_edge(suggestion.artefact_id, edge)
        except Exception:
            logger.warning("Could not link accepted suggestion %s; reopening it", suggestion_id)
            self.suggestions.reopen_suggestion(suggestion_id, "accepted")
            raise
        logger.info("Accepted suggestion %s", suggestion_id)
        return saved

    def reject(self, suggestion_id: str) -> LinkSuggestion:
        suggestion = self._pending(suggestion_id)
        if not self.suggestions.resolve_suggestion(suggestion_id, "rejected"):
            raise SuggestionAlreadyResolved(suggestion_id, self._current_status(suggestion_id))
        suggestion.status = "rejected"
        logger.info("Rejected suggestion %s", suggestion_id)
        return suggestion

    def _pending(self, suggestion_id: str) -> LinkSuggestion:
        suggestion = self.suggestions.get_suggestion(suggestion_id)
        if suggestion is None:
            raise SuggestionNotFound(f"No link suggestion with id '{suggestion_id}'")
        if suggestion.status != "pending":
            raise SuggestionAlreadyResolved(suggestion_id, suggestion.status)
        return suggestion

    def _current_status(self, suggestion_id: str) -> str:
        current = self.suggestions.get_suggestion(suggestion_id)
        return current.status if current else "missing"

    @staticmethod
    def _validate(artefact: Artefact, link: SuggestedLink) -> None:
        if link.target_type not in TARGET_TYPES:
            raise InvalidSuggestion(f"unknown target type '{link.target_type}'")
        if not link.target_id or not str(link.target_id).strip():
            raise InvalidSuggestion("empty target id")
        if not 0.0 < float(link.confidence) <= 1.0:
            raise InvalidSuggestion(f"confidence {link.confidence} outside (0, 1]")
        if link.target_type == "artefact" and link.target_id == artefact.id:
            raise InvalidSuggestion("suggestion points at the artefact itself")
