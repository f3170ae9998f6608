"""Run Aggregator: folds one classification pass into the run summary and headline score."""

from __future__ import annotations

import math
from collections import Counter
from typing import Iterable, List, Optional, Sequence

from .models import SEVERITY_SCORES, Change, ImpactItem, ImpactRun, LinkEdge, RunSummary, utc_now

CRITICAL_THRESHOLD = 4.0
MODERATE_THRESHOLD = 2.0
BANDS = ("low", "moderate", "critical")


def severity_band(score: float) -> str:
    """``< 2`` low, ``2-3.99`` moderate, ``>= 4`` critical."""
    if score >= CRITICAL_THRESHOLD:
        return "critical"
    if score >= MODERATE_THRESHOLD:
        return "moderate"
    return "low"


def band_rank(band: str) -> int:
    return BANDS.index(band)


def initial_review_status(score: float) -> str:
    """Items that are at least moderate need a human look; the rest wait in ``pending``."""
    return "review_required" if score >= MODERATE_THRESHOLD else "pending"


def run_score(items: Sequence[ImpactItem], changes: Sequence[Change]) -> int:
    """Headline score: the worst item dominates.

    Without items, fall back to the worst change severity (low 1,
    medium 3, high 5); with neither, 0.
    """
    if items:
        return int(math.floor(max(item.impact_score for item in items) + 0.5))
    if changes:
        return max(SEVERITY_SCORES.get(c.severity, 1) for c in changes)
    return 0


def build_summary(
    changes: Sequence[Change],
    items: Sequence[ImpactItem],
    exercised_edges: Iterable[LinkEdge] = (),
    warnings: Optional[List[str]] = None,
    source: str = "edit",
    document_name: Optional[str] = None,
) -> RunSummary:
    category = Counter(item.item_type for item in items)
    warnings = list(warnings or [])
    return RunSummary(
        total_changes=len(changes),
        type_breakdown=dict(Counter(c.change_type for c in changes)),
        high_severity_count=sum(1 for item in items if item.impact_score >= CRITICAL_THRESHOLD),
        linked_artefacts=len({item.related_artefact_id for item in items if item.related_artefact_id}),
        manual_links=sum(1 for edge in exercised_edges if edge.link_source == "manual"),
        code_files_impacted=category.get("code", 0),
        tests_impacted=category.get("test", 0),
        data_tables_impacted=category.get("data", 0),
        data_kpis_impacted=category.get("kpi", 0),
        category_breakdown=dict(category),
        degraded=bool(warnings),
        warnings=warnings,
        source=source,
        document_name=document_name,
        changes=list(changes),
    )


def aggregate(
    run: ImpactRun,
    changes: Sequence[Change],
    items: Sequence[ImpactItem],
    exercised_edges: Iterable[LinkEdge] = (),
    warnings: Optional[List[str]] = None,
    source: str = "edit",
    document_name: Optional[str] = None,
) -> ImpactRun:
    """Fill *run* in place with score, summary and the items' initial review status."""
    for item in items:
        item.impact_run_id = run.id
        item.review_status = initial_review_status(item.impact_score)
    run.impact_score = run_score(items, changes)
    run.summary = build_summary(
        changes, items, exercised_edges, warnings,
        source=source, document_name=document_name,
    )
    run.completed_at = utc_now()
    return run
