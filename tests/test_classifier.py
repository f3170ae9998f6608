"""Tests for the impact classifier."""

from typing import List

import pytest

from impactgraph_cli.classifier import ImpactClassifier
from impactgraph_cli.models import (
    Artefact,
    ArtefactLink,
    Change,
    Classification,
    CodeLink,
    DataLink,
    LinkageGraph,
    TestLink,
)
from impactgraph_cli.oracle import ClassifierOracle

from conftest import SlowClassifier, StubClassifier

ARTEFACT = Artefact(id="prd-1", title="Order export PRD", content="# Goals\nx")
CHANGES = [Change("scope_change", "Goals", "a", "b", "high", "Scope widened")]


def five_target_graph() -> LinkageGraph:
    return LinkageGraph(
        code=[
            CodeLink(artefact_id="prd-1", file_path="src/a.py", confidence=0.9),
            CodeLink(artefact_id="prd-1", file_path="src/b.py", confidence=0.5),
            CodeLink(artefact_id="prd-1", file_path="src/c.py"),
        ],
        tests=[TestLink(artefact_id="prd-1", test_file="tests/test_a.py")],
        data=[DataLink(artefact_id="prd-1", table_name="orders")],
    )


class DuplicatingClassifier(ClassifierOracle):
    """Answers twice for every target."""

    def classify(self, changes, targets) -> List[Classification]:
        out = []
        for target in targets:
            out.append(Classification(target.id, 2.0, "first look"))
            out.append(Classification(target.id, 4.5, "second look"))
        return out


class OddScoreClassifier(ClassifierOracle):
    """Returns a non-numeric or non-finite score for chosen targets."""

    def __init__(self, odd):
        self.odd = dict(odd)

    def classify(self, changes, targets) -> List[Classification]:
        return [Classification(t.id, self.odd.get(t.id, 3.0), "touched") for t in targets]


class TestPartialFailure:
    """Per-target isolation of oracle failures."""

    @pytest.mark.asyncio
    async def test_two_of_five_targets_fail(self, store):
        """Failures on two targets leave three items and two warnings."""
        oracle = StubClassifier(fail={"src/b.py", "orders"})
        classifier = ImpactClassifier(oracle, store, timeout=1.0)

        result = await classifier.classify("run-1", ARTEFACT, CHANGES, five_target_graph())

        assert result.attempted == 5
        assert result.succeeded == 3
        assert len(result.items) == 3
        assert {i.item_name for i in result.items} == {"src/a.py", "src/c.py", "tests/test_a.py"}
        assert result.degraded
        assert len(result.warnings) == 2

    @pytest.mark.asyncio
    async def test_timeout_isolated(self, store):
        """A stalled target times out without holding back the others."""
        oracle = SlowClassifier(slow={"src/a.py"}, delay=5.0)
        classifier = ImpactClassifier(oracle, store, timeout=0.05)

        result = await classifier.classify("run-1", ARTEFACT, CHANGES, five_target_graph())

        assert len(result.items) == 4
        assert "src/a.py" not in {i.item_name for i in result.items}
        assert any("timed out" in w for w in result.warnings)

    @pytest.mark.asyncio
    async def test_unexpected_exception_isolated(self, store):
        """A transport error outside the oracle hierarchy only drops its own target."""
        oracle = StubClassifier(fail={"src/b.py", "orders"}, error=ConnectionError)
        classifier = ImpactClassifier(oracle, store, timeout=1.0)

        result = await classifier.classify("run-1", ARTEFACT, CHANGES, five_target_graph())

        assert result.attempted == 5
        assert result.succeeded == 3
        assert len(result.items) == 3
        assert len(result.warnings) == 2
        assert all("ConnectionError" in w for w in result.warnings)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("odd_score", ["high", None, float("nan"), float("inf")])
    async def test_malformed_score_isolated(self, store, odd_score):
        classifier = ImpactClassifier(OddScoreClassifier({"src/c.py": odd_score}), store, timeout=1.0)

        result = await classifier.classify("run-1", ARTEFACT, CHANGES, five_target_graph())

        assert result.succeeded == 4
        assert "src/c.py" not in {i.item_name for i in result.items}
        assert all(i.impact_score == 3.0 for i in result.items)
        assert len(result.warnings) == 1
        assert "Malformed classification for code 'src/c.py'" in result.warnings[0]

    @pytest.mark.asyncio
    async def test_one_request_per_target(self, store):
        oracle = StubClassifier()
        classifier = ImpactClassifier(oracle, store)

        await classifier.classify("run-1", ARTEFACT, CHANGES, five_target_graph())

        assert sorted(len(call) for call in oracle.calls) == [1, 1, 1, 1, 1]


class TestItems:
    """Item construction, deduplication and metadata."""

    @pytest.mark.asyncio
    async def test_duplicate_answers_keep_max_and_join_reasons(self, store):
        graph = LinkageGraph(code=[CodeLink(artefact_id="prd-1", file_path="src/a.py")])
        classifier = ImpactClassifier(DuplicatingClassifier(), store)

        result = await classifier.classify("run-1", ARTEFACT, CHANGES, graph)

        assert len(result.items) == 1
        assert result.items[0].impact_score == 4.5
        assert result.items[0].impact_reason == "first look; second look"

    @pytest.mark.asyncio
    async def test_scores_clamped_and_zero_dropped(self, store):
        oracle = StubClassifier(scores={"src/a.py": 9, "src/b.py": 0, "src/c.py": -2})
        classifier = ImpactClassifier(oracle, store)

        result = await classifier.classify("run-1", ARTEFACT, CHANGES, five_target_graph())
        by_name = {i.item_name: i for i in result.items}

        assert by_name["src/a.py"].impact_score == 5.0
        assert "src/b.py" not in by_name
        assert "src/c.py" not in by_name
        assert result.succeeded == 5

    @pytest.mark.asyncio
    async def test_coupling_in_metadata_only(self, store):
        """Edge confidence is surfaced for reviewers and leaves the score alone."""
        graph = LinkageGraph(code=[CodeLink(artefact_id="prd-1", file_path="src/a.py", confidence=0.3)])
        classifier = ImpactClassifier(StubClassifier(default=4.0), store)

        result = await classifier.classify("run-1", ARTEFACT, CHANGES, graph)
        item = result.items[0]

        assert item.impact_score == 4.0
        assert item.metadata.coupling == 0.3
        assert item.metadata.to_dict()["file_path"] == "src/a.py"
        assert result.exercised_edges == graph.code

    @pytest.mark.asyncio
    async def test_kpi_target_type(self, store):
        graph = LinkageGraph(data=[DataLink(artefact_id="prd-1", table_name="events", kpi_name="wau")])
        classifier = ImpactClassifier(StubClassifier(), store)

        result = await classifier.classify("run-1", ARTEFACT, CHANGES, graph)

        assert [(i.item_type, i.item_name) for i in result.items] == [("kpi", "wau")]

    @pytest.mark.asyncio
    async def test_linked_and_context_artefacts(self, store):
        """Linked artefacts and artefacts sharing the product context are both candidates."""
        store.save_artefact(Artefact(id="story-1", title="Export story", content="x", artifact_type="story"))
        store.save_artefact(Artefact(id="spec-1", title="Export spec", content="x",
                                     artifact_type="tech_spec", product_context_id="ctx"))
        artefact = Artefact(id="prd-1", title="PRD", content="x", product_context_id="ctx")
        store.save_artefact(artefact)
        graph = LinkageGraph(artefacts=[ArtefactLink(source_id="prd-1", target_id="story-1")])
        classifier = ImpactClassifier(StubClassifier(), store)

        result = await classifier.classify("run-1", artefact, CHANGES, graph)
        by_type = {i.item_type: i for i in result.items}

        assert by_type["backlog"].item_name == "Export story"
        assert by_type["backlog"].related_artefact_id == "story-1"
        assert by_type["spec"].metadata.link_source == "context"
        assert len(result.exercised_edges) == 1

    @pytest.mark.asyncio
    async def test_no_changes_means_no_oracle_calls(self, store):
        oracle = StubClassifier()
        classifier = ImpactClassifier(oracle, store)

        result = await classifier.classify("run-1", ARTEFACT, [], five_target_graph())

        assert result.items == []
        assert oracle.calls == []
