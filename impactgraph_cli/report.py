"""Markdown exports of an impact run: review checklist, test plan and full report."""

from __future__ import annotations

from typing import Callable, Dict, List, Sequence

from .aggregator import severity_band
from .models import ImpactItem, ImpactRun

CATEGORY_ORDER = ("code", "test", "data", "kpi", "documentation", "backlog", "spec")


def _date(run: ImpactRun) -> str:
    return (run.created_at or "")[:10]


def _of_type(items: Sequence[ImpactItem], item_type: str) -> List[ImpactItem]:
    return [i for i in items if i.item_type == item_type]


def _score(item: ImpactItem) -> str:
    return f"{item.impact_score:g}"


def _section(title: str, lines: List[str]) -> List[str]:
    if not lines:
        return []
    return [f"## {title}", *lines, ""]


def render_checklist(run: ImpactRun, items: Sequence[ImpactItem]) -> str:
    """Actionable ``- [ ]`` list grouped by what needs a look."""
    review_required = [i for i in items if i.review_status == "review_required"]
    lines = [
        f"# Impact Checklist (score: {run.impact_score:g})",
        f"Date: {_date(run)}",
        f"Changes: {run.summary.total_changes}",
        "",
    ]
    lines += _section("To review", [
        f"- [ ] [{i.item_type.upper()}] {i.item_name}: {i.impact_reason}" for i in review_required
    ])
    lines += _section("Impacted code", [
        f"- [ ] {i.item_name} (score: {_score(i)})" for i in _of_type(items, "code")
    ])
    lines += _section("Tests to re-run", [
        f"- [ ] {i.item_name} (score: {_score(i)})" for i in _of_type(items, "test")
    ])
    lines += _section("Data to check", [
        f"- [ ] {i.item_name}: {i.impact_reason}" for i in _of_type(items, "data")
    ])
    lines += _section("KPIs to watch", [
        f"- [ ] {i.item_name}: {i.impact_reason}" for i in _of_type(items, "kpi")
    ])
    return "\n".join(lines).rstrip() + "\n"


def render_test_plan(run: ImpactRun, items: Sequence[ImpactItem]) -> str:
    """Tests to re-validate, code needing new coverage (score >= 3) and data to validate."""
    lines = [
        "# Test Plan",
        f"Score: {run.impact_score:g} | Date: {_date(run)}",
        "",
    ]

    tests = []
    for item in _of_type(items, "test"):
        meta = item.metadata.to_dict()
        tests += [
            f"### {item.item_name}",
            f"- Reason: {item.impact_reason}",
            f"- Impact score: {_score(item)}/5",
        ]
        if meta.get("test_type"):
            tests.append(f"- Type: {meta['test_type']}")
        if meta.get("test_file"):
            tests.append(f"- File: `{meta['test_file']}`")
        tests.append("")
    lines += _section("Existing tests to re-validate", tests)

    code = []
    for item in _of_type(items, "code"):
        if item.impact_score < 3:
            continue
        coupling = item.metadata.coupling
        code += [
            f"### {item.item_name}",
            f"- Impact: {item.impact_reason}",
            f"- Score: {_score(item)}/5",
            f"- Coupling: {round(coupling * 100)}%" if coupling is not None else "- Coupling: N/A",
            "",
        ]
    lines += _section("Code needing new tests", code)

    lines += _section("Data to validate", [
        f"- {i.item_name}: {i.impact_reason}"
        for i in items if i.item_type in ("data", "kpi")
    ])
    return "\n".join(lines).rstrip() + "\n"


def render_full(run: ImpactRun, items: Sequence[ImpactItem]) -> str:
    summary = run.summary
    lines = [
        "# Full Impact Report",
        f"Overall score: {run.impact_score:g} ({severity_band(run.impact_score)}) | Status: {run.status}",
        f"Date: {_date(run)}",
    ]
    if summary.source == "document_upload":
        lines.append(f"Compared against: {summary.document_name or 'uploaded document'}")
    lines += [
        "",
        "## Executive summary",
        f"- Changes detected: {summary.total_changes}",
        f"- High severity: {summary.high_severity_count}",
        f"- Impacted items: {len(items)}",
        f"- Code files: {summary.code_files_impacted}",
        f"- Tests: {summary.tests_impacted}",
        f"- Data tables: {summary.data_tables_impacted}",
        f"- KPIs: {summary.data_kpis_impacted}",
        "",
    ]
    if summary.degraded:
        lines += _section("Warnings", [f"- {w}" for w in summary.warnings])

    by_type: Dict[str, List[ImpactItem]] = {}
    for item in items:
        by_type.setdefault(item.item_type, []).append(item)
    lines.append("## Detail by category")
    for item_type in sorted(by_type, key=lambda t: CATEGORY_ORDER.index(t) if t in CATEGORY_ORDER else 99):
        group = by_type[item_type]
        lines.append(f"### {item_type.capitalize()} ({len(group)})")
        lines += [
            f"- [{i.review_status}] {i.item_name} (score: {_score(i)}): {i.impact_reason}" for i in group
        ]
        lines.append("")
    return "\n".join(lines).rstrip() + "\n"


REPORTS: Dict[str, Callable[[ImpactRun, Sequence[ImpactItem]], str]] = {
    "checklist": render_checklist,
    "test-plan": render_test_plan,
    "full": render_full,
}


def render(kind: str, run: ImpactRun, items: Sequence[ImpactItem]) -> str:
    try:
        renderer = REPORTS[kind]
    except KeyError:
        raise ValueError(f"Unknown report kind '{kind}' (choose from {', '.join(REPORTS)})") from None
    return renderer(run, items)
