"""Tests for the link suggestion workflow."""

import sqlite3

import pytest

from impactgraph_cli.exceptions import InvalidEdge, SuggestionAlreadyResolved, SuggestionNotFound
from impactgraph_cli.models import CodeLink, LinkSuggestion, SuggestedLink
from impactgraph_cli.oracle import HeuristicLinkSuggestionOracle
from impactgraph_cli.suggestions import LinkSuggestionEngine

from conftest import StubSuggester


def code_rows(store, artefact_id):
    return store.conn.execute(
        "SELECT * FROM feature_code_map WHERE feature_id = ?", (artefact_id,),
    ).fetchall()


@pytest.fixture
def suggester() -> StubSuggester:
    return StubSuggester([
        SuggestedLink("code", "src/export.py", "implements", 0.8, "CSV export lives here"),
        SuggestedLink("data", "orders", "tracks", 0.6, "orders table"),
        SuggestedLink("artefact", "prd-1", "relates_to", 0.9, "self"),
        SuggestedLink("code", "src/zero.py", "implements", 0.0, "no confidence"),
        SuggestedLink("code", "src/over.py", "implements", 1.2, "too sure"),
        SuggestedLink("dashboard", "sales", "shows", 0.5, "unknown type"),
    ])


@pytest.fixture
def suggestions(store, suggester) -> LinkSuggestionEngine:
    return LinkSuggestionEngine(suggester, store, store, timeout=1.0)


class TestGenerate:
    """Generating suggestions."""

    @pytest.mark.asyncio
    async def test_invalid_suggestions_dropped(self, store, suggestions, sample_artefact):
        stored = await suggestions.generate(sample_artefact)

        assert [(s.suggested_target_type, s.suggested_target_id) for s in stored] == [
            ("code", "src/export.py"), ("data", "orders"),
        ]
        assert all(s.status == "pending" for s in stored)
        assert len(store.list_suggestions("prd-1", status="pending")) == 2

    @pytest.mark.asyncio
    async def test_already_linked_target_skipped(self, store, suggestions, sample_artefact):
        store.upsert_edge(CodeLink(artefact_id="prd-1", file_path="src/export.py"))

        stored = await suggestions.generate(sample_artefact)

        assert [s.suggested_target_id for s in stored] == ["orders"]

    @pytest.mark.asyncio
    async def test_catalogue_defaults_to_known_ids(self, store, suggester, suggestions, sample_artefact):
        store.upsert_edge(CodeLink(artefact_id="other", file_path="src/billing.py"))

        await suggestions.generate(sample_artefact)

        assert suggester.catalogues == [(["src/billing.py"], [])]

    @pytest.mark.asyncio
    async def test_heuristic_matches_mentions(self, store, sample_artefact):
        engine = LinkSuggestionEngine(HeuristicLinkSuggestionOracle(), store, store)

        stored = await engine.generate(sample_artefact, ["src/orders.py", "src/payments.py"], ["orders"])
        found = {(s.suggested_target_type, s.suggested_target_id): s.confidence for s in stored}

        assert found == {("code", "src/orders.py"): 0.6, ("data", "orders"): 0.9}


class TestAcceptReject:
    """Accepting and rejecting suggestions."""

    @pytest.mark.asyncio
    async def test_accept_materialises_one_edge(self, store, suggestions, sample_artefact):
        """Accepting a code suggestion adds one ai_suggested row and flips the status."""
        stored = await suggestions.generate(sample_artefact)
        code = stored[0]

        edge = suggestions.accept(code.id)

        rows = code_rows(store, "prd-1")
        assert len(rows) == 1
        assert rows[0]["link_source"] == "ai_suggested"
        assert rows[0]["confidence"] == 0.8
        assert edge.file_path == "src/export.py"
        assert store.get_suggestion(code.id).status == "accepted"

    @pytest.mark.asyncio
    async def test_accept_twice_never_double_inserts(self, store, suggestions, sample_artefact):
        stored = await suggestions.generate(sample_artefact)
        suggestions.accept(stored[0].id)

        with pytest.raises(SuggestionAlreadyResolved):
            suggestions.accept(stored[0].id)

        assert len(code_rows(store, "prd-1")) == 1

    @pytest.mark.asyncio
    async def test_failed_edge_write_keeps_suggestion_pending(
        self, store, suggestions, sample_artefact, monkeypatch,
    ):
        """A storage error while linking leaves the suggestion retryable."""
        stored = await suggestions.generate(sample_artefact)
        upsert_edge = store.upsert_edge

        def locked(edge):
            raise sqlite3.OperationalError("database is locked")

        monkeypatch.setattr(store, "upsert_edge", locked)
        with pytest.raises(sqlite3.OperationalError):
            suggestions.accept(stored[0].id)

        assert store.get_suggestion(stored[0].id).status == "pending"
        assert code_rows(store, "prd-1") == []

        monkeypatch.setattr(store, "upsert_edge", upsert_edge)
        suggestions.accept(stored[0].id)

        assert store.get_suggestion(stored[0].id).status == "accepted"
        assert len(code_rows(store, "prd-1")) == 1

    def test_invalid_edge_rejected_before_status_flip(self, store, suggestions, sample_artefact):
        bad = LinkSuggestion("prd-1", "code", "src/export.py", "implements", confidence=1.5)
        store.add_suggestions([bad])

        with pytest.raises(InvalidEdge):
            suggestions.accept(bad.id)

        assert store.get_suggestion(bad.id).status == "pending"
        assert code_rows(store, "prd-1") == []

    @pytest.mark.asyncio
    async def test_accept_data_suggestion(self, store, suggestions, sample_artefact):
        stored = await suggestions.generate(sample_artefact)

        suggestions.accept(stored[1].id)

        assert [d.table_name for d in store.edges_for("prd-1").data] == ["orders"]

    @pytest.mark.asyncio
    async def test_reject_is_terminal(self, store, suggestions, sample_artefact):
        stored = await suggestions.generate(sample_artefact)

        rejected = suggestions.reject(stored[0].id)

        assert rejected.status == "rejected"
        with pytest.raises(SuggestionAlreadyResolved):
            suggestions.accept(stored[0].id)
        assert code_rows(store, "prd-1") == []

    def test_unknown_suggestion(self, suggestions):
        with pytest.raises(SuggestionNotFound):
            suggestions.accept("missing")
