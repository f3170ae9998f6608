"""Tests for markdown report exports."""

import pytest

from impactgraph_cli.models import (
    CodeMetadata,
    DataMetadata,
    ImpactItem,
    ImpactRun,
    RunSummary,
    TestMetadata,
)
from impactgraph_cli.report import render, render_checklist, render_full, render_test_plan


def make_item(item_type, name, score, status="review_required", metadata=None):
    return ImpactItem(
        id=f"id-{name}", impact_run_id="run-1", item_name=name, item_type=item_type,
        impact_score=score, impact_reason=f"because {name}", review_status=status,
        metadata=metadata or CodeMetadata(),
    )


@pytest.fixture
def run():
    return ImpactRun(
        id="run-1", artefact_id="prd-1", status="completed", impact_score=4,
        created_at="2025-06-01T10:00:00+00:00",
        summary=RunSummary(total_changes=2, high_severity_count=1, code_files_impacted=2,
                           tests_impacted=1, data_tables_impacted=1),
    )


@pytest.fixture
def items():
    return [
        make_item("code", "src/export.py", 4.5, metadata=CodeMetadata(coupling=0.8, file_path="src/export.py")),
        make_item("code", "src/util.py", 1.0, status="pending"),
        make_item("test", "tests/test_export.py", 3.0,
                  metadata=TestMetadata(test_file="tests/test_export.py", test_type="unit")),
        make_item("data", "orders", 2.0, metadata=DataMetadata(table_name="orders")),
    ]


class TestChecklist:
    def test_sections(self, run, items):
        text = render_checklist(run, items)

        assert text.startswith("# Impact Checklist (score: 4)")
        assert "Date: 2025-06-01" in text
        assert "- [ ] [CODE] src/export.py: because src/export.py" in text
        assert "[CODE] src/util.py" not in text
        assert "## Tests to re-run\n- [ ] tests/test_export.py (score: 3)" in text
        assert "## KPIs to watch" not in text

    def test_no_items(self, run):
        text = render_checklist(run, [])
        assert "## " not in text


class TestTestPlan:
    def test_only_high_scoring_code(self, run, items):
        text = render_test_plan(run, items)

        assert "### src/export.py" in text
        assert "- Coupling: 80%" in text
        assert "src/util.py" not in text
        assert "- Type: unit" in text
        assert "- orders: because orders" in text

    def test_unknown_coupling(self, run):
        item = make_item("code", "src/a.py", 3.0)
        assert "- Coupling: N/A" in render_test_plan(run, [item])


class TestFullReport:
    def test_summary_and_categories(self, run, items):
        text = render_full(run, items)

        assert "Overall score: 4 (critical)" in text
        assert "- Impacted items: 4" in text
        assert "### Code (2)" in text
        assert text.index("### Code") < text.index("### Test") < text.index("### Data")
        assert "## Warnings" not in text

    def test_degraded_and_document_source(self, run, items):
        run.summary.degraded = True
        run.summary.warnings = ["Classification timed out for code 'src/a.py'"]
        run.summary.source = "document_upload"
        run.summary.document_name = "prd-v2.md"

        text = render_full(run, items)

        assert "Compared against: prd-v2.md" in text
        assert "## Warnings\n- Classification timed out for code 'src/a.py'" in text


def test_render_dispatch(run, items):
    assert render("full", run, items) == render_full(run, items)
    with pytest.raises(ValueError):
        render("pdf", run, items)
