"""ImpactEngine: the service boundary the CLI (or any host application) talks to.

A run is created synchronously after input validation, then processed as
one asyncio task: change extraction, per-target classification and
aggregation. Callers get the run id back immediately and either await
:meth:`ImpactEngine.wait`, poll :meth:`ImpactEngine.get_run`, or
:meth:`ImpactEngine.subscribe` to terminal transitions.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from datetime import datetime, timezone
from pathlib import PurePath
from typing import Any, Callable, Dict, List, Optional, Union

from . import config
from .aggregator import aggregate
from .change_extractor import ChangeExtractor
from .classifier import ImpactClassifier
from .diff_engine import DiffEngine
from .exceptions import (
    ArtefactNotFound,
    DocumentTooLarge,
    EmptyContent,
    RunFailed,
    RunNotFound,
    UnsupportedDocumentFormat,
)
from .linkage import LinkageGraphStore
from .models import (
    Artefact,
    ImpactItem,
    ImpactRun,
    InsufficientData,
    LinkageGraph,
    LinkEdge,
    LinkSuggestion,
    QueueEntry,
    RunDiff,
    new_id,
)
from .oracle import ClassifierOracle, LinkSuggestionOracle, create_oracles
from .review import ReviewWorkflow
from .storage import SQLiteStore, open_store
from .suggestions import LinkSuggestionEngine

logger = logging.getLogger(__name__)

RunListener = Callable[[ImpactRun], Any]

_USE_LATEST_VERSION = object()


class ImpactEngine:
    """Runs impact analyses and exposes review, diff, linkage and suggestion operations."""

    def __init__(
        self,
        store: Optional[SQLiteStore] = None,
        classifier_oracle: Optional[ClassifierOracle] = None,
        suggestion_oracle: Optional[LinkSuggestionOracle] = None,
        oracle_timeout: Optional[float] = None,
        max_concurrency: Optional[int] = None,
        max_document_chars: Optional[int] = None,
    ):
        self.store = store or open_store()
        if classifier_oracle is None or suggestion_oracle is None:
            default_classifier, default_suggester = create_oracles()
            classifier_oracle = classifier_oracle or default_classifier
            suggestion_oracle = suggestion_oracle or default_suggester

        timeout = oracle_timeout if oracle_timeout is not None else config.ORACLE_TIMEOUT
        self.max_document_chars = max_document_chars or config.MAX_DOCUMENT_CHARS

        self.extractor = ChangeExtractor()
        self.linkage = LinkageGraphStore(self.store)
        self.classifier = ImpactClassifier(
            classifier_oracle,
            self.store,
            timeout=timeout,
            max_concurrency=max_concurrency or config.MAX_CONCURRENCY,
        )
        self.review = ReviewWorkflow(self.store)
        self.diffs = DiffEngine(self.store)
        self.suggestions = LinkSuggestionEngine(suggestion_oracle, self.store, self.store, timeout=timeout)

        self._listeners: List[RunListener] = []
        self._tasks: Dict[str, asyncio.Task] = {}

    def close(self) -> None:
        self.store.close()

    # ------------------------------------------------------------------
    # Artefacts
    # ------------------------------------------------------------------

    def save_artefact(self, artefact: Artefact) -> Artefact:
        self.store.save_artefact(artefact)
        return artefact

    def get_artefact(self, artefact_id: str) -> Artefact:
        artefact = self.store.get_artefact(artefact_id)
        if artefact is None:
            raise ArtefactNotFound(f"No artefact with id '{artefact_id}'")
        return artefact

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    async def run_analysis(
        self,
        artefact_id: str,
        document_text: Optional[str] = None,
        document_name: Optional[str] = None,
        trigger_change_set_id: Optional[str] = None,
        previous_content: Any = _USE_LATEST_VERSION,
    ) -> str:
        """Validate the request, create a ``pending`` run and start processing it.

        Returns the run id without waiting for the run to finish.

        Raises:
            ArtefactNotFound, EmptyContent, UnsupportedDocumentFormat,
            DocumentTooLarge: the request is rejected and no run is created.
        """
        artefact = self.get_artefact(artefact_id)
        if _is_empty(artefact.content):
            raise EmptyContent(f"Artefact '{artefact_id}' has no content to analyse")
        if document_text is not None:
            self._validate_document(document_text, document_name)

        run = ImpactRun(
            id=new_id(),
            artefact_id=artefact_id,
            trigger_change_set_id=trigger_change_set_id,
        )
        self.store.create_run(run)
        logger.info("Created impact run %s for artefact %s", run.id, artefact_id)

        task = asyncio.create_task(
            self._execute(run, document_text, document_name, previous_content),
            name=f"impact-run-{run.id}",
        )
        self._tasks[run.id] = task
        task.add_done_callback(lambda _t, run_id=run.id: self._tasks.pop(run_id, None))
        return run.id

    async def analyze(self, artefact_id: str, **kwargs: Any) -> ImpactRun:
        """Run an analysis and wait for its terminal state."""
        run_id = await self.run_analysis(artefact_id, **kwargs)
        return await self.wait(run_id)

    async def analyze_document(
        self,
        artefact_id: str,
        document_text: str,
        document_name: Optional[str] = None,
    ) -> ImpactRun:
        """Compare the artefact against an uploaded document instead of its last snapshot."""
        return await self.analyze(artefact_id, document_text=document_text, document_name=document_name)

    async def wait(self, run_id: str) -> ImpactRun:
        task = self._tasks.get(run_id)
        if task is not None:
            await task
        return self.get_run(run_id)

    async def run_when_due(self, entry: QueueEntry, now: Optional[datetime] = None) -> ImpactRun:
        """Sleep until ``entry.scheduled_at`` (never negative), then run the analysis."""
        if now is None:
            now = datetime.now(timezone.utc) if entry.scheduled_at.tzinfo else datetime.now()
        delay = max(0.0, (entry.scheduled_at - now).total_seconds())
        if delay:
            logger.info("Queue entry %s due in %.1fs", entry.id, delay)
            await asyncio.sleep(delay)
        kwargs: Dict[str, Any] = {"trigger_change_set_id": entry.id}
        if entry.previous_content is not None:
            kwargs["previous_content"] = entry.previous_content
        return await self.analyze(entry.artefact_id, **kwargs)

    def subscribe(self, listener: RunListener) -> Callable[[], None]:
        """Call *listener* with every run reaching ``completed`` or ``failed``.

        Listeners may be plain functions or coroutines. Returns an
        unsubscribe callable.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def get_run(self, run_id: str) -> ImpactRun:
        run = self.store.get_run(run_id)
        if run is None:
            raise RunNotFound(f"No impact run with id '{run_id}'")
        return run

    def list_runs(self, artefact_id: str, status: Optional[str] = None) -> List[ImpactRun]:
        return self.store.list_runs(artefact_id, status=status)

    def latest_run(self, artefact_id: str) -> Optional[ImpactRun]:
        """Newest completed run; failed and in-flight runs are never "latest"."""
        completed = self.store.list_runs(artefact_id, status="completed")
        return completed[0] if completed else None

    def get_items(self, run_id: str) -> List[ImpactItem]:
        self.get_run(run_id)
        return self.store.get_items(run_id)

    # ------------------------------------------------------------------
    # Review, diff, linkage, suggestions
    # ------------------------------------------------------------------

    def set_item_status(self, item_id: str, status: str) -> ImpactItem:
        return self.review.set_status(item_id, status)

    def review_progress(self, run_id: str) -> Dict[str, Any]:
        self.get_run(run_id)
        return self.review.progress(run_id)

    def diff_runs(self, older_run_id: str, newer_run_id: str) -> Union[RunDiff, InsufficientData]:
        return self.diffs.diff_runs(older_run_id, newer_run_id)

    def diff_latest(self, artefact_id: str) -> Union[RunDiff, InsufficientData]:
        return self.diffs.diff_latest(artefact_id)

    def add_link(self, artefact_id: str, edge: LinkEdge) -> LinkEdge:
        return self.linkage.add_edge(artefact_id, edge)

    def remove_link(self, edge_id: str) -> None:
        self.linkage.remove_edge(edge_id)

    def edges_for(self, artefact_id: str) -> LinkageGraph:
        return self.linkage.edges_for(artefact_id)

    async def generate_suggestions(
        self,
        artefact_id: str,
        known_code_ids: Optional[List[str]] = None,
        known_data_ids: Optional[List[str]] = None,
    ) -> List[LinkSuggestion]:
        artefact = self.get_artefact(artefact_id)
        return await self.suggestions.generate(artefact, known_code_ids, known_data_ids)

    def list_suggestions(self, artefact_id: str, status: Optional[str] = None) -> List[LinkSuggestion]:
        return self.store.list_suggestions(artefact_id, status=status)

    def accept_suggestion(self, suggestion_id: str) -> LinkEdge:
        return self.suggestions.accept(suggestion_id)

    def reject_suggestion(self, suggestion_id: str) -> LinkSuggestion:
        return self.suggestions.reject(suggestion_id)

    # ------------------------------------------------------------------
    # Run task
    # ------------------------------------------------------------------

    async def _execute(
        self,
        run: ImpactRun,
        document_text: Optional[str],
        document_name: Optional[str],
        previous_content: Any,
    ) -> None:
        try:
            self.store.mark_running(run.id)
            run.status = "running"
            logger.info("Impact run %s running", run.id)
            await self._process(run, document_text, document_name, previous_content)
            logger.info("Impact run %s completed (score=%s)", run.id, run.impact_score)
        except Exception as exc:  # noqa: BLE001
            reason = exc.message if isinstance(exc, RunFailed) else f"{type(exc).__name__}: {exc}"
            logger.error("Impact run %s failed: %s", run.id, reason)
            self.store.fail_run(run.id, reason)
        await self._notify(run.id)

    async def _process(
        self,
        run: ImpactRun,
        document_text: Optional[str],
        document_name: Optional[str],
        previous_content: Any,
    ) -> None:
        artefact = self.store.get_artefact(run.artefact_id)
        if artefact is None:
            raise RunFailed(f"Artefact '{run.artefact_id}' was deleted before the run could start")

        version = self.store.latest_version(artefact.id)
        if document_text is not None:
            previous, current = artefact.content, document_text
        elif previous_content is not _USE_LATEST_VERSION:
            previous, current = previous_content, artefact.content
        else:
            previous, current = (version.content if version else None), artefact.content

        changes = self.extractor.extract(previous, current)
        graph = self.linkage.edges_for(artefact.id)
        result = await self.classifier.classify(run.id, artefact, changes, graph)
        if changes and result.attempted and not result.succeeded:
            raise RunFailed(
                f"Classification failed for all {result.attempted} targets: {'; '.join(result.warnings)}"
            )

        if document_text is None:
            if version is None or version.content != current:
                version = self.store.add_version(artefact.id, current)
            run.artefact_version_id = version.id

        aggregate(
            run, changes, result.items, result.exercised_edges, result.warnings,
            source="document_upload" if document_text is not None else "edit",
            document_name=document_name,
        )
        self.store.complete_run(run, result.items)
        run.status = "completed"

    async def _notify(self, run_id: str) -> None:
        if not self._listeners:
            return
        run = self.get_run(run_id)
        for listener in list(self._listeners):
            try:
                outcome = listener(run)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception:  # noqa: BLE001
                logger.exception("Run listener %r failed for run %s", listener, run_id)

    def _validate_document(self, text: str, name: Optional[str]) -> None:
        if name:
            suffix = PurePath(name).suffix.lower()
            if suffix and suffix not in config.SUPPORTED_DOCUMENT_EXTENSIONS:
                raise UnsupportedDocumentFormat(
                    f"Unsupported document format '{suffix}'",
                    details={"supported": sorted(config.SUPPORTED_DOCUMENT_EXTENSIONS)},
                )
        if not text or not text.strip():
            raise EmptyContent("The comparison document is empty")
        if len(text) > self.max_document_chars:
            raise DocumentTooLarge(
                f"Document has {len(text)} characters; the limit is {self.max_document_chars}",
            )


def _is_empty(content: Any) -> bool:
    if content is None:
        return True
    if isinstance(content, str):
        return not content.strip()
    if isinstance(content, (dict, list)):
        return not content
    return False
