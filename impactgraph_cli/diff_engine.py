"""Diff Engine: compares the items of two completed runs of the same artefact."""

from __future__ import annotations

import logging
from typing import List, Union

from .exceptions import RunNotFound, ValidationError
from .models import ImpactItem, ImpactRun, InsufficientData, RunDiff
from .storage import RunStore

logger = logging.getLogger(__name__)

MIN_COMPLETED_RUNS = 2


def diff_items(older: List[ImpactItem], newer: List[ImpactItem]) -> tuple:
    """Split items by identity key into ``(new, resolved, persisted)``.

    ``persisted`` carries the newer run's items.
    """
    older_keys = {item.key for item in older}
    newer_keys = {item.key for item in newer}
    new = [item for item in newer if item.key not in older_keys]
    resolved = [item for item in older if item.key not in newer_keys]
    persisted = [item for item in newer if item.key in older_keys]
    return new, resolved, persisted


class DiffEngine:
    def __init__(self, runs: RunStore):
        self.runs = runs

    def diff_runs(self, older_run_id: str, newer_run_id: str) -> Union[RunDiff, InsufficientData]:
        """Diff two runs.

        Returns :class:`InsufficientData` when the artefact has fewer than
        two completed runs.

        Raises:
            RunNotFound: either run id is unknown.
            ValidationError: the runs belong to different artefacts, or one
                of them is not completed.
        """
        older = self._load(older_run_id)
        newer = self._load(newer_run_id)
        if older.artefact_id != newer.artefact_id:
            raise ValidationError(
                "Runs belong to different artefacts",
                details={"older": older.artefact_id, "newer": newer.artefact_id},
            )

        completed = self.runs.list_runs(older.artefact_id, status="completed")
        if len(completed) < MIN_COMPLETED_RUNS:
            return InsufficientData(artefact_id=older.artefact_id, completed_runs=len(completed))

        for run in (older, newer):
            if run.status != "completed":
                raise ValidationError(
                    f"Run {run.id} is {run.status}; only completed runs can be compared",
                    details={"run_id": run.id, "status": run.status},
                )
        return self._diff(older, newer)

    def diff_latest(self, artefact_id: str) -> Union[RunDiff, InsufficientData]:
        """Diff the two most recent completed runs; failed runs are skipped."""
        completed = self.runs.list_runs(artefact_id, status="completed")
        if len(completed) < MIN_COMPLETED_RUNS:
            return InsufficientData(artefact_id=artefact_id, completed_runs=len(completed))
        newer, older = completed[0], completed[1]
        return self._diff(older, newer)

    def _diff(self, older: ImpactRun, newer: ImpactRun) -> RunDiff:
        new, resolved, persisted = diff_items(self.runs.get_items(older.id), self.runs.get_items(newer.id))
        diff = RunDiff(
            older_run_id=older.id,
            newer_run_id=newer.id,
            new=new,
            resolved=resolved,
            persisted=persisted,
            score_delta=newer.impact_score - older.impact_score,
        )
        logger.debug(
            "Diff %s..%s: %d new, %d resolved, %d persisted",
            older.id, newer.id, len(new), len(resolved), len(persisted),
        )
        return diff

    def _load(self, run_id: str) -> ImpactRun:
        run = self.runs.get_run(run_id)
        if run is None:
            raise RunNotFound(f"No impact run with id '{run_id}'")
        return run
