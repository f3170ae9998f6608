"""Review Workflow: human triage state machine for impact items."""

from __future__ import annotations

import logging
from typing import Dict

from .exceptions import InvalidReviewStatus, InvalidTransition, ItemNotFound
from .models import REVIEW_STATUSES, ImpactItem
from .storage import RunStore

logger = logging.getLogger(__name__)

# Allowed moves; setting the current status again is always a no-op.
TRANSITIONS: Dict[str, tuple] = {
    "pending": ("review_required", "reviewed", "ignored"),
    "review_required": ("reviewed", "ignored"),
    "reviewed": ("review_required",),
    "ignored": ("review_required",),
}


def can_transition(current: str, target: str) -> bool:
    return current == target or target in TRANSITIONS.get(current, ())


class ReviewWorkflow:
    def __init__(self, runs: RunStore):
        self.runs = runs

    def set_status(self, item_id: str, status: str) -> ImpactItem:
        """Move one item to *status*.

        Idempotent: re-applying the current status changes nothing. Score
        and reason are never touched. Terminal items (``reviewed``,
        ``ignored``) only leave their state through an explicit re-open to
        ``review_required``.

        Raises:
            InvalidReviewStatus: *status* is not a review status.
            ItemNotFound: no item with *item_id*.
            InvalidTransition: the move is not allowed from the current state.
        """
        if status not in REVIEW_STATUSES:
            raise InvalidReviewStatus(
                f"Unknown review status '{status}'",
                details={"allowed": list(REVIEW_STATUSES)},
            )
        item = self.runs.get_item(item_id)
        if item is None:
            raise ItemNotFound(f"No impact item with id '{item_id}'")
        if item.review_status == status:
            return item
        if not can_transition(item.review_status, status):
            raise InvalidTransition(item.review_status, status)

        self.runs.set_item_status(item_id, status)
        logger.info("Item %s: %s -> %s", item_id, item.review_status, status)
        item.review_status = status
        return item

    def progress(self, run_id: str) -> Dict[str, object]:
        """Counts per review status plus the share of items that are settled."""
        items = self.runs.get_items(run_id)
        counts = {status: 0 for status in REVIEW_STATUSES}
        for item in items:
            counts[item.review_status] = counts.get(item.review_status, 0) + 1
        settled = counts["reviewed"] + counts["ignored"]
        return {
            "total": len(items),
            "counts": counts,
            "percent_reviewed": round(100.0 * settled / len(items), 1) if items else 100.0,
        }
