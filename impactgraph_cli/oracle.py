"""Classifier and link-suggestion oracles.

The engine only sees the two interfaces below. ``Heuristic*`` oracles are
deterministic and offline; ``LLM*`` oracles prompt the configured
provider through :class:`~impactgraph_cli.llm.LLMClient` and parse a
JSON array out of the answer.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import PurePosixPath
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .exceptions import MalformedOracleResponse, OracleError
from .models import SEVERITY_SCORES, CandidateTarget, Change, Classification, SuggestedLink

logger = logging.getLogger(__name__)

_JSON_ARRAY_RE = re.compile(r"\[[\s\S]*\]")

# Review label prefixed to the reason, by change type
REVIEW_LABELS: Dict[str, str] = {
    "business_rule_update": "Review Required",
    "data_field_added": "Schema Review",
    "data_field_modified": "Schema Review",
    "nfr_change": "Perf/Sec Review",
    "scope_change": "Review Required",
    "persona_change": "Review Required",
    "kpi_change": "Review Required",
    "timeline_change": "Review Required",
    "dependency_change": "Review Required",
}

_DATA_CHANGE_TYPES = {"data_field_added", "data_field_modified", "kpi_change", "business_rule_update"}
DATA_DISCOUNT = 0.6


class ClassifierOracle:
    """Decides whether a set of changes affects each candidate target."""

    def classify(self, changes: Sequence[Change], targets: Sequence[CandidateTarget]) -> List[Classification]:
        """Return one classification per affected target (score 0..5).

        Targets absent from the result are considered unaffected.
        """
        raise NotImplementedError


class LinkSuggestionOracle:
    """Proposes new linkage edges for an artefact."""

    def suggest_links(
        self,
        artefact_content: Any,
        known_code_ids: Sequence[str],
        known_data_ids: Sequence[str],
    ) -> List[SuggestedLink]:
        raise NotImplementedError


# ----------------------------------------------------------------------
# Heuristic oracles
# ----------------------------------------------------------------------

class HeuristicClassifierOracle(ClassifierOracle):
    """Scores each target by the most severe change (low 1, medium 3, high 5).

    Data and KPI targets are discounted unless a data, KPI or business-rule
    change is present.
    """

    def classify(self, changes: Sequence[Change], targets: Sequence[CandidateTarget]) -> List[Classification]:
        if not changes:
            return []
        top = max(changes, key=lambda c: SEVERITY_SCORES.get(c.severity, 1))
        base = float(SEVERITY_SCORES.get(top.severity, 1))
        has_data_change = any(c.change_type in _DATA_CHANGE_TYPES for c in changes)

        results = []
        for target in targets:
            score = base
            if target.type == "data" and not has_data_change:
                score = round(base * DATA_DISCOUNT, 1)
            label = REVIEW_LABELS.get(top.change_type, "Review")
            results.append(Classification(
                target_id=target.id,
                score=score,
                reason=f"{label}: {top.description or top.entity}",
            ))
        return results


class HeuristicLinkSuggestionOracle(LinkSuggestionOracle):
    """Suggests catalogue entries that the artefact text mentions."""

    def suggest_links(
        self,
        artefact_content: Any,
        known_code_ids: Sequence[str],
        known_data_ids: Sequence[str],
    ) -> List[SuggestedLink]:
        text = _content_text(artefact_content).lower()
        suggestions: List[SuggestedLink] = []
        for target_type, ids, link_type in (
            ("code", known_code_ids, "implements"),
            ("data", known_data_ids, "tracks"),
        ):
            for target_id in ids:
                match = _mention_confidence(target_id, text)
                if match is None:
                    continue
                confidence, how = match
                suggestions.append(SuggestedLink(
                    target_type=target_type,
                    target_id=target_id,
                    link_type=link_type,
                    confidence=confidence,
                    reasoning=f"The artefact mentions '{how}'",
                ))
        return suggestions


def _mention_confidence(target_id: str, text: str) -> Optional[Tuple[float, str]]:
    if target_id.lower() in text:
        return 0.9, target_id
    stem = PurePosixPath(target_id).stem.lower()
    if len(stem) >= 4 and re.search(rf"\b{re.escape(stem)}\b", text):
        return 0.6, stem
    return None


# ----------------------------------------------------------------------
# LLM oracles
# ----------------------------------------------------------------------

CLASSIFIER_SYSTEM = "You are a precise impact classification engine for product artefacts. Output only valid JSON."
SUGGESTER_SYSTEM = "You are a traceability assistant linking product artefacts to code and data. Output only valid JSON."


class LLMClassifierOracle(ClassifierOracle):
    def __init__(self, client: Any, timeout: float = 30.0, snapshot_chars: int = 8000):
        self.client = client
        self.timeout = timeout
        self.snapshot_chars = snapshot_chars

    def classify(self, changes: Sequence[Change], targets: Sequence[CandidateTarget]) -> List[Classification]:
        prompt = f"""You are a Product Impact Analyst. A product artefact changed. For each linked target below,
decide whether the changes plausibly affect it and how severely.

CHANGES:
{json.dumps([c.to_dict() for c in changes], indent=2)[: self.snapshot_chars]}

TARGETS:
{json.dumps([{"type": t.type, "id": t.id, "metadata": t.metadata} for t in targets], indent=2)}

Return a JSON array with one entry per affected target:
[
  {{"target_id": "id of the target exactly as given", "score": 0-5 (decimals allowed), "reason": "short explanation"}}
]
Scores: below 2 low, 2 to 3.99 moderate, 4 to 5 critical. Omit unaffected targets.
Return ONLY the JSON array, no markdown."""

        raw = self.client.generate(prompt, system=CLASSIFIER_SYSTEM, timeout=self.timeout)
        if raw is None:
            raise OracleError("Classifier oracle returned no response")

        results = []
        for entry in _parse_array(raw):
            try:
                results.append(Classification(
                    target_id=str(entry["target_id"]),
                    score=float(entry["score"]),
                    reason=str(entry.get("reason", "")),
                ))
            except (KeyError, TypeError, ValueError) as exc:
                raise MalformedOracleResponse(f"Unparseable classification entry: {entry!r}") from exc
        return results


class LLMLinkSuggestionOracle(LinkSuggestionOracle):
    def __init__(self, client: Any, timeout: float = 30.0, snapshot_chars: int = 8000):
        self.client = client
        self.timeout = timeout
        self.snapshot_chars = snapshot_chars

    def suggest_links(
        self,
        artefact_content: Any,
        known_code_ids: Sequence[str],
        known_data_ids: Sequence[str],
    ) -> List[SuggestedLink]:
        prompt = f"""Propose traceability links for this product artefact.

ARTEFACT:
{_content_text(artefact_content)[: self.snapshot_chars]}

KNOWN CODE FILES:
{json.dumps(list(known_code_ids)[:50])}

KNOWN DATA TABLES / EVENTS / KPIS:
{json.dumps(list(known_data_ids)[:50])}

Return a JSON array:
[
  {{"target_type": "code" | "data" | "artefact", "target_id": "identifier", "link_type": "implements" | "tracks" | "relates_to",
    "confidence": 0-1, "reasoning": "why this link exists"}}
]
Return ONLY the JSON array, no markdown."""

        raw = self.client.generate(prompt, system=SUGGESTER_SYSTEM, timeout=self.timeout)
        if raw is None:
            raise OracleError("Link-suggestion oracle returned no response")

        results = []
        for entry in _parse_array(raw):
            try:
                results.append(SuggestedLink(
                    target_type=str(entry["target_type"]),
                    target_id=str(entry["target_id"]),
                    link_type=str(entry.get("link_type", "relates_to")),
                    confidence=float(entry["confidence"]),
                    reasoning=str(entry.get("reasoning", "")),
                ))
            except (KeyError, TypeError, ValueError):
                logger.warning("Dropping unparseable link suggestion: %r", entry)
        return results


def _parse_array(raw: str) -> List[Dict[str, Any]]:
    match = _JSON_ARRAY_RE.search(raw.strip())
    if not match:
        raise MalformedOracleResponse("No JSON array in oracle response")
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        raise MalformedOracleResponse(f"Invalid JSON in oracle response: {exc}") from exc
    if not isinstance(parsed, list) or not all(isinstance(e, dict) for e in parsed):
        raise MalformedOracleResponse("Oracle response is not an array of objects")
    return parsed


def _content_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    return json.dumps(content, indent=2, ensure_ascii=False)


def create_oracles(
    provider: Optional[str] = None,
    timeout: Optional[float] = None,
) -> Tuple[ClassifierOracle, LinkSuggestionOracle]:
    """Build the oracle pair for the configured (or given) provider."""
    from . import config

    name = (provider or config.LLM_PROVIDER).lower()
    if name == "heuristic":
        return HeuristicClassifierOracle(), HeuristicLinkSuggestionOracle()

    from .llm import LLMClient

    client = LLMClient(provider=name)
    timeout = timeout or config.ORACLE_TIMEOUT
    return (
        LLMClassifierOracle(client, timeout=timeout, snapshot_chars=config.SNAPSHOT_CHARS),
        LLMLinkSuggestionOracle(client, timeout=timeout, snapshot_chars=config.SNAPSHOT_CHARS),
    )
