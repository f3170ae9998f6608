"""Impact Classifier: asks the oracle about every linked target and builds impact items.

One oracle sub-request is issued per candidate target, all in parallel
(bounded by ``max_concurrency``), each with its own timeout. A target
whose request fails or times out is dropped from the run and recorded as
a warning; the rest of the batch is unaffected.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from .exceptions import OracleError
from .models import (
    Artefact,
    ArtefactLink,
    CandidateTarget,
    Change,
    CodeMetadata,
    DataMetadata,
    DocMetadata,
    ImpactItem,
    ItemMetadata,
    LinkageGraph,
    LinkEdge,
    TestMetadata,
    new_id,
)
from .oracle import ClassifierOracle
from .storage import ArtefactStore

logger = logging.getLogger(__name__)

MAX_SCORE = 5.0


@dataclass
class _Target:
    """A candidate target plus what is needed to turn its classification into an item."""
    candidate: CandidateTarget
    item_name: str
    item_type: str
    metadata: ItemMetadata
    edge: Optional[LinkEdge] = None
    related_artefact_id: Optional[str] = None


@dataclass
class ClassificationResult:
    items: List[ImpactItem] = field(default_factory=list)
    exercised_edges: List[LinkEdge] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    attempted: int = 0
    succeeded: int = 0

    @property
    def degraded(self) -> bool:
        return bool(self.warnings)


class ImpactClassifier:
    """Turns ``Change[]`` plus a linkage graph into deduplicated impact items."""

    def __init__(
        self,
        oracle: ClassifierOracle,
        artefacts: ArtefactStore,
        timeout: float = 30.0,
        max_concurrency: int = 8,
    ):
        self.oracle = oracle
        self.artefacts = artefacts
        self.timeout = timeout
        self.max_concurrency = max(1, max_concurrency)

    async def classify(
        self,
        run_id: str,
        artefact: Artefact,
        changes: Sequence[Change],
        graph: LinkageGraph,
    ) -> ClassificationResult:
        targets = self.candidate_targets(artefact, graph, changes)
        result = ClassificationResult(attempted=len(targets))
        if not changes or not targets:
            return result

        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def run_one(target: _Target):
            async with semaphore:
                return await self._classify_target(changes, target)

        outcomes = await asyncio.gather(*(run_one(t) for t in targets))

        merged: Dict[Tuple[str, str], ImpactItem] = {}
        for target, (classifications, warning) in zip(targets, outcomes):
            if warning is not None:
                result.warnings.append(warning)
                continue
            result.succeeded += 1
            exercised = False
            for score, reason in classifications:
                if score <= 0:
                    continue
                exercised = True
                self._merge(merged, run_id, target, score, reason)
            if exercised and target.edge is not None:
                result.exercised_edges.append(target.edge)

        result.items = sorted(merged.values(), key=lambda i: (-i.impact_score, i.item_type, i.item_name))
        logger.debug(
            "Classified %d/%d targets for run %s into %d items",
            result.succeeded, result.attempted, run_id, len(result.items),
        )
        return result

    async def _classify_target(
        self,
        changes: Sequence[Change],
        target: _Target,
    ) -> Tuple[List[Tuple[float, str]], Optional[str]]:
        """Clamped ``(score, reason)`` pairs for one target, or a warning when it failed."""
        candidate = target.candidate
        classify = self.oracle.classify
        if inspect.iscoroutinefunction(classify):
            call = classify(list(changes), [candidate])
        else:
            call = asyncio.to_thread(classify, list(changes), [candidate])
        try:
            classifications = await asyncio.wait_for(call, timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning("Oracle timed out for %s:%s", candidate.type, candidate.id)
            return [], f"Classification timed out for {candidate.type} '{candidate.id}'"
        except OracleError as exc:
            logger.warning("Oracle failed for %s:%s: %s", candidate.type, candidate.id, exc)
            return [], f"Classification failed for {candidate.type} '{candidate.id}': {exc}"
        except Exception as exc:  # noqa: BLE001
            logger.warning("Oracle raised for %s:%s: %r", candidate.type, candidate.id, exc)
            return [], (
                f"Classification failed for {candidate.type} '{candidate.id}': "
                f"{type(exc).__name__}: {exc}"
            )

        try:
            scores = [
                (_clamp(c.score), str(c.reason or ""))
                for c in classifications or []
                if c.target_id == candidate.id
            ]
        except (AttributeError, TypeError, ValueError) as exc:
            logger.warning("Malformed classification for %s:%s: %s", candidate.type, candidate.id, exc)
            return [], f"Malformed classification for {candidate.type} '{candidate.id}': {exc}"
        logger.debug("%s:%s -> %s", candidate.type, candidate.id, [s for s, _ in scores])
        return scores, None

    @staticmethod
    def _merge(
        merged: Dict[Tuple[str, str], ImpactItem],
        run_id: str,
        target: _Target,
        score: float,
        reason: str,
    ) -> None:
        key = (target.item_type, target.item_name)
        existing = merged.get(key)
        if existing is None:
            merged[key] = ImpactItem(
                id=new_id(),
                impact_run_id=run_id,
                item_name=target.item_name,
                item_type=target.item_type,
                impact_score=score,
                impact_reason=reason,
                related_artefact_id=target.related_artefact_id,
                metadata=target.metadata,
            )
            return
        existing.impact_score = max(existing.impact_score, score)
        if reason and reason not in existing.impact_reason.split("; "):
            existing.impact_reason = "; ".join(r for r in (existing.impact_reason, reason) if r)

    # ------------------------------------------------------------------
    # Candidate targets
    # ------------------------------------------------------------------

    def candidate_targets(
        self,
        artefact: Artefact,
        graph: LinkageGraph,
        changes: Sequence[Change] = (),
    ) -> List[_Target]:
        """Every linked entity of *artefact*, plus artefacts sharing its product context."""
        change_types = sorted({c.change_type for c in changes})
        targets: List[_Target] = []

        for code in graph.code:
            targets.append(_Target(
                candidate=CandidateTarget("code", code.file_path, {"symbols": code.symbols}),
                item_name=code.file_path,
                item_type="code",
                metadata=CodeMetadata(
                    coupling=code.confidence, link_source=code.link_source,
                    file_path=code.file_path, symbols=list(code.symbols),
                ),
                edge=code,
            ))

        for test in graph.tests:
            targets.append(_Target(
                candidate=CandidateTarget("test", test.target_identifier, {
                    "test_type": test.test_type, "related_file_path": test.related_file_path,
                }),
                item_name=test.target_identifier,
                item_type="test",
                metadata=TestMetadata(
                    coupling=test.confidence, link_source=test.link_source,
                    test_file=test.test_file, test_name=test.test_name, test_type=test.test_type,
                ),
                edge=test,
            ))

        for data in graph.data:
            targets.append(_Target(
                candidate=CandidateTarget("data", data.target_identifier, {
                    "table_name": data.table_name, "event_name": data.event_name,
                    "kpi_name": data.kpi_name,
                }),
                item_name=data.target_identifier,
                item_type="kpi" if data.is_kpi else "data",
                metadata=DataMetadata(
                    coupling=data.confidence, link_source=data.link_source,
                    table_name=data.table_name, event_name=data.event_name, kpi_name=data.kpi_name,
                ),
                edge=data,
            ))

        linked_ids = set()
        for link in graph.artefacts:
            linked_ids.add(link.target_id)
            target = self.artefacts.get_artefact(link.target_id)
            if target is None:
                logger.warning("Linked artefact %s no longer exists; skipping", link.target_id)
                continue
            targets.append(self._artefact_target(
                target, link.link_type, link.confidence_score, link.link_source, change_types, link,
            ))

        if artefact.product_context_id:
            for other in self.artefacts.context_artefacts(artefact.product_context_id, artefact.id):
                if other.id in linked_ids:
                    continue
                targets.append(self._artefact_target(
                    other, "shares_context", None, "context", change_types, None,
                ))

        return targets

    @staticmethod
    def _artefact_target(
        target: Artefact,
        link_type: str,
        coupling: Optional[float],
        link_source: str,
        change_types: List[str],
        edge: Optional[ArtefactLink],
    ) -> _Target:
        return _Target(
            candidate=CandidateTarget("artefact", target.id, {
                "title": target.title, "artifact_type": target.artifact_type, "link_type": link_type,
            }),
            item_name=target.title,
            item_type=target.item_type,
            metadata=DocMetadata(
                coupling=coupling, link_source=link_source,
                artefact_type=target.artifact_type, link_type=link_type, change_types=change_types,
            ),
            edge=edge,
            related_artefact_id=target.id,
        )


def _clamp(raw) -> float:
    score = float(raw)
    if not math.isfinite(score):
        raise ValueError(f"score {raw!r} is not a finite number")
    return max(0.0, min(MAX_SCORE, score))
