"""Tests for heuristic and LLM-backed oracles."""

import json

import pytest

from impactgraph_cli.exceptions import MalformedOracleResponse, OracleError
from impactgraph_cli.models import CandidateTarget, Change
from impactgraph_cli.oracle import (
    HeuristicClassifierOracle,
    HeuristicLinkSuggestionOracle,
    LLMClassifierOracle,
    LLMLinkSuggestionOracle,
    create_oracles,
)


class FakeClient:
    """Returns a canned answer and records prompts."""

    def __init__(self, answer):
        self.answer = answer
        self.prompts = []

    def generate(self, prompt, system="", timeout=30.0):
        self.prompts.append(prompt)
        return self.answer


TARGETS = [
    CandidateTarget("code", "src/export.py"),
    CandidateTarget("data", "orders"),
]


def change(change_type="scope_change", severity="high"):
    return Change(change_type, "Goals", "a", "b", severity, "Scope widened")


class TestHeuristicClassifier:
    def test_top_severity_drives_score(self):
        results = HeuristicClassifierOracle().classify(
            [change(severity="low"), change(severity="high")], TARGETS,
        )
        by_id = {r.target_id: r for r in results}

        assert by_id["src/export.py"].score == 5.0
        assert by_id["src/export.py"].reason == "Review Required: Scope widened"

    def test_data_discounted_without_data_change(self):
        results = HeuristicClassifierOracle().classify([change(severity="medium")], TARGETS)
        by_id = {r.target_id: r.score for r in results}

        assert by_id == {"src/export.py": 3.0, "orders": 1.8}

    def test_data_change_keeps_full_score(self):
        results = HeuristicClassifierOracle().classify([change("data_field_modified", "medium")], TARGETS)

        assert {r.score for r in results} == {3.0}
        assert results[0].reason.startswith("Schema Review")

    def test_no_changes(self):
        assert HeuristicClassifierOracle().classify([], TARGETS) == []


class TestHeuristicSuggester:
    def test_full_id_and_stem(self):
        text = "Export lives in src/export.py and reads the invoices table."
        links = HeuristicLinkSuggestionOracle().suggest_links(
            text, ["src/export.py", "lib/invoices.py", "src/app.py"], ["invoices"],
        )
        found = {(l.target_type, l.target_id): (l.confidence, l.link_type) for l in links}

        assert found == {
            ("code", "src/export.py"): (0.9, "implements"),
            ("code", "lib/invoices.py"): (0.6, "implements"),
            ("data", "invoices"): (0.9, "tracks"),
        }

    def test_json_content(self):
        links = HeuristicLinkSuggestionOracle().suggest_links({"Data": "orders table"}, [], ["orders"])
        assert [l.target_id for l in links] == ["orders"]


class TestLLMClassifier:
    def test_parses_array_inside_prose(self):
        answer = 'Sure:\n[{"target_id": "src/export.py", "score": 4.5, "reason": "export path"}]\nDone.'
        client = FakeClient(answer)

        results = LLMClassifierOracle(client).classify([change()], TARGETS)

        assert [(r.target_id, r.score, r.reason) for r in results] == [("src/export.py", 4.5, "export path")]
        assert "src/export.py" in client.prompts[0]

    def test_no_response(self):
        with pytest.raises(OracleError):
            LLMClassifierOracle(FakeClient(None)).classify([change()], TARGETS)

    @pytest.mark.parametrize("answer", [
        "no json here",
        "[{not json}]",
        '{"target_id": "x"}',
        json.dumps([{"target_id": "x", "score": "high"}]),
        json.dumps([{"score": 3}]),
    ])
    def test_malformed(self, answer):
        with pytest.raises(MalformedOracleResponse):
            LLMClassifierOracle(FakeClient(answer)).classify([change()], TARGETS)


class TestLLMSuggester:
    def test_drops_bad_entries(self):
        answer = json.dumps([
            {"target_type": "code", "target_id": "src/a.py", "link_type": "implements",
             "confidence": 0.7, "reasoning": "mentioned"},
            {"target_type": "code", "confidence": 0.5},
        ])

        links = LLMLinkSuggestionOracle(FakeClient(answer)).suggest_links("text", ["src/a.py"], [])

        assert [(l.target_id, l.confidence) for l in links] == [("src/a.py", 0.7)]

    def test_no_response(self):
        with pytest.raises(OracleError):
            LLMLinkSuggestionOracle(FakeClient(None)).suggest_links("text", [], [])


class TestCreateOracles:
    def test_heuristic(self):
        classifier, suggester = create_oracles("heuristic")
        assert isinstance(classifier, HeuristicClassifierOracle)
        assert isinstance(suggester, HeuristicLinkSuggestionOracle)

    def test_default_uses_config(self):
        classifier, _ = create_oracles()
        assert isinstance(classifier, HeuristicClassifierOracle)

    def test_llm_provider(self):
        classifier, suggester = create_oracles("ollama", timeout=5)
        assert isinstance(classifier, LLMClassifierOracle)
        assert classifier.timeout == 5
        assert suggester.client is classifier.client
        assert classifier.client.provider_name == "ollama"
