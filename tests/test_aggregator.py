"""Tests for run aggregation and severity banding."""

import pytest

from impactgraph_cli.aggregator import (
    aggregate,
    band_rank,
    build_summary,
    initial_review_status,
    run_score,
    severity_band,
)
from impactgraph_cli.models import Change, CodeLink, DataLink, ImpactItem, ImpactRun, new_id


def item(item_type: str, name: str, score: float, related: str = None) -> ImpactItem:
    return ImpactItem(
        id=new_id(), impact_run_id="r", item_name=name, item_type=item_type,
        impact_score=score, impact_reason="", related_artefact_id=related,
    )


def change(severity: str, change_type: str = "scope_change") -> Change:
    return Change(change_type, "Goals", "", "", severity, "")


class TestBanding:
    """Severity bands."""

    @pytest.mark.parametrize("score,band", [
        (0, "low"), (1.99, "low"), (2, "moderate"), (3.99, "moderate"), (4, "critical"), (5, "critical"),
    ])
    def test_band_edges(self, score, band):
        assert severity_band(score) == band

    def test_monotonic(self):
        """A higher score never lands in a lower band."""
        scores = [i / 100 for i in range(0, 501)]
        ranks = [band_rank(severity_band(s)) for s in scores]
        assert ranks == sorted(ranks)

    def test_initial_review_status(self):
        assert initial_review_status(1.9) == "pending"
        assert initial_review_status(2.0) == "review_required"


class TestRunScore:
    def test_max_item_dominates(self):
        assert run_score([item("code", "a", 1), item("code", "b", 3.6)], [change("low")]) == 4

    @pytest.mark.parametrize("score, expected", [(0.5, 1), (1.5, 2), (2.5, 3), (3.5, 4), (4.5, 5), (2.49, 2)])
    def test_halves_round_up(self, score, expected):
        assert run_score([item("code", "a", score)], []) == expected

    def test_falls_back_to_change_severity(self):
        assert run_score([], [change("low"), change("medium")]) == 3
        assert run_score([], [change("high")]) == 5

    def test_nothing_changed(self):
        assert run_score([], []) == 0


class TestSummary:
    def test_counts(self):
        items = [
            item("code", "a.py", 4.2),
            item("test", "t.py", 2),
            item("data", "orders", 4),
            item("kpi", "wau", 1),
            item("backlog", "Story", 3, related="story-1"),
            item("spec", "Spec", 1, related="spec-1"),
        ]
        edges = [
            CodeLink(artefact_id="p", file_path="a.py"),
            DataLink(artefact_id="p", table_name="orders", link_source="ai_suggested"),
        ]
        changes = [change("high"), change("low", "kpi_change"), change("low")]

        summary = build_summary(changes, items, edges, warnings=["x timed out"])

        assert summary.total_changes == 3
        assert summary.type_breakdown == {"scope_change": 2, "kpi_change": 1}
        assert summary.high_severity_count == 2
        assert summary.linked_artefacts == 2
        assert summary.manual_links == 1
        assert summary.code_files_impacted == 1
        assert summary.tests_impacted == 1
        assert summary.data_tables_impacted == 1
        assert summary.data_kpis_impacted == 1
        assert summary.degraded is True

    def test_high_severity_count_matches_items(self):
        items = [item("code", str(i), i * 0.5) for i in range(11)]
        summary = build_summary([change("high")], items)
        assert summary.high_severity_count == len([i for i in items if i.impact_score >= 4])

    def test_aggregate_assigns_review_status(self):
        run = ImpactRun(id="run-9", artefact_id="p")
        items = [item("code", "a.py", 4), item("code", "b.py", 1)]

        aggregate(run, [change("medium")], items)

        assert run.impact_score == 4
        assert [i.review_status for i in items] == ["review_required", "pending"]
        assert all(i.impact_run_id == "run-9" for i in items)
        assert run.completed_at
