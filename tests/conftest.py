"""Pytest configuration and fixtures for ImpactGraph tests."""

import asyncio
import shutil
import tempfile
from pathlib import Path
from typing import Dict, Generator, Iterable, List, Optional, Sequence, Tuple

import pytest

from impactgraph_cli.engine import ImpactEngine
from impactgraph_cli.exceptions import OracleError
from impactgraph_cli.models import (
    Artefact,
    Classification,
    ImpactItem,
    ImpactRun,
    ItemMetadata,
    SuggestedLink,
    new_id,
    utc_now,
)
from impactgraph_cli.oracle import ClassifierOracle, LinkSuggestionOracle
from impactgraph_cli.storage import SQLiteStore

SAMPLE_PRD = """# Goals
Users must be able to export orders as CSV.

# Data Model
Table orders has a status column.

# Timeline
Launch in Q3 2025.
"""


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture(autouse=True)
def _isolated_home(temp_dir: Path, monkeypatch):
    """Point every test at a throwaway home and the offline heuristic provider.

    ``config`` resolves its paths at import time, so the module attributes
    are patched directly; ``open_store`` and ``config_manager`` read them
    at call time.
    """
    home = temp_dir / "home"
    monkeypatch.setattr("impactgraph_cli.config.BASE_DIR", home)
    monkeypatch.setattr("impactgraph_cli.config.DB_PATH", home / "impact.db")
    monkeypatch.setattr("impactgraph_cli.config.CONFIG_FILE", home / "config.toml")
    monkeypatch.setattr("impactgraph_cli.config.LLM_PROVIDER", "heuristic")
    return home


class StubClassifier(ClassifierOracle):
    """Deterministic classifier: fixed score per target id, optional failures."""

    def __init__(
        self,
        scores: Optional[Dict[str, float]] = None,
        default: float = 3.0,
        fail: Iterable[str] = (),
        skip: Iterable[str] = (),
        error: type = OracleError,
    ):
        self.scores = scores or {}
        self.default = default
        self.fail = set(fail)
        self.skip = set(skip)
        self.error = error
        self.calls: List[List[str]] = []

    def classify(self, changes, targets) -> List[Classification]:
        self.calls.append([t.id for t in targets])
        results = []
        for target in targets:
            if target.id in self.fail:
                raise self.error(f"boom for {target.id}")
            if target.id in self.skip:
                continue
            results.append(Classification(
                target_id=target.id,
                score=self.scores.get(target.id, self.default),
                reason=f"affected: {target.id}",
            ))
        return results


class SlowClassifier(ClassifierOracle):
    """Async classifier that stalls on some targets."""

    def __init__(self, slow: Iterable[str], delay: float = 5.0, score: float = 3.0):
        self.slow = set(slow)
        self.delay = delay
        self.score = score

    async def classify(self, changes, targets) -> List[Classification]:
        if any(t.id in self.slow for t in targets):
            await asyncio.sleep(self.delay)
        return [Classification(t.id, self.score, "slow oracle") for t in targets]


class StubSuggester(LinkSuggestionOracle):
    def __init__(self, links: Sequence[SuggestedLink] = ()):
        self.links = list(links)
        self.catalogues: List[Tuple[List[str], List[str]]] = []

    def suggest_links(self, artefact_content, known_code_ids, known_data_ids) -> List[SuggestedLink]:
        self.catalogues.append((list(known_code_ids), list(known_data_ids)))
        return list(self.links)


@pytest.fixture
def store(temp_dir: Path) -> Generator[SQLiteStore, None, None]:
    """SQLiteStore on a temporary file."""
    s = SQLiteStore(temp_dir / "impact.db")
    yield s
    s.close()


@pytest.fixture
def stub_classifier() -> StubClassifier:
    return StubClassifier()


@pytest.fixture
def stub_suggester() -> StubSuggester:
    return StubSuggester()


@pytest.fixture
def engine(store: SQLiteStore, stub_classifier: StubClassifier, stub_suggester: StubSuggester) -> ImpactEngine:
    return ImpactEngine(
        store,
        classifier_oracle=stub_classifier,
        suggestion_oracle=stub_suggester,
        oracle_timeout=0.5,
        max_concurrency=4,
    )


@pytest.fixture
def sample_artefact(store: SQLiteStore) -> Artefact:
    artefact = Artefact(id="prd-1", title="Order export PRD", content=SAMPLE_PRD, artifact_type="prd")
    store.save_artefact(artefact)
    return artefact


@pytest.fixture
def make_run(store: SQLiteStore):
    """Persist a completed run with items given as ``(item_type, item_name, score)``."""

    def _make(
        artefact_id: str,
        items: Sequence[Tuple[str, str, float]],
        impact_score: Optional[float] = None,
        status: str = "completed",
    ) -> ImpactRun:
        run = ImpactRun(id=new_id(), artefact_id=artefact_id)
        store.create_run(run)
        if status == "failed":
            store.fail_run(run.id, "synthetic failure")
            return store.get_run(run.id)
        store.mark_running(run.id)
        built = [
            ImpactItem(
                id=new_id(),
                impact_run_id=run.id,
                item_name=name,
                item_type=item_type,
                impact_score=score,
                impact_reason=f"reason for {name}",
                review_status="review_required" if score >= 2 else "pending",
                metadata=ItemMetadata(),
            )
            for item_type, name, score in items
        ]
        run.impact_score = impact_score if impact_score is not None else max((s for _, _, s in items), default=0)
        run.completed_at = utc_now()
        store.complete_run(run, built)
        return store.get_run(run.id)

    return _make
