"""Deterministic change extraction between two snapshots of an artefact.

Content is split into top-level sections (JSON keys, or markdown headings
for text), sections are matched by normalised title, and matched sections
are diffed block by block with :mod:`difflib`. Every added, removed or
modified block becomes one :class:`~impactgraph_cli.models.Change`.
"""

from __future__ import annotations

import difflib
import json
import re
from typing import Any, Dict, List, Optional, Tuple

from .models import Change

_HEADING_RE = re.compile(r"^\s{0,3}#{1,6}\s+(.+?)\s*#*\s*$")
_REQUIREMENT_RE = re.compile(
    r"\b(must|shall|required|requirements?|mandatory|committed|guarantee[sd]?|sla|compliance|gdpr)\b",
    re.IGNORECASE,
)
_NUMBER_RE = re.compile(r"\d+(?:[.,]\d+)?")
_MAX_EXCERPT = 500
# At or above this similarity a modified block counts as a wording edit
WORDING_RATIO = 0.75

# (change_type, keywords) checked in order against the section title, then the block text
_CHANGE_TYPE_RULES: List[Tuple[str, Tuple[str, ...]]] = [
    ("kpi_change", ("kpi", "metric", "okr", "north star", "success criteria", "conversion rate")),
    ("timeline_change", ("timeline", "milestone", "deadline", "release", "roadmap", "launch date", "sprint")),
    ("persona_change", ("persona", "audience", "user segment", "target user", "customer segment")),
    ("nfr_change", ("nfr", "non-functional", "performance", "latency", "security", "availability", "scalability")),
    ("dependency_change", ("dependency", "dependencies", "integration", "depends on", "third-party", "api contract")),
    ("data_field", ("data model", "schema", "field", "column", "table", "tracking event", "payload")),
    ("business_rule_update", ("business rule", "rule", "policy", "pricing", "validation", "eligibility")),
    ("scope_change", ("scope", "out of scope", "in scope", "feature", "goal", "objective", "user stor")),
]

UNTITLED_SECTION = "Overview"


class ChangeExtractor:
    """Produces the ordered ``Change`` list for one analysis pass."""

    def extract(self, previous: Any, current: Any) -> List[Change]:
        """Diff *previous* against *current*.

        Args:
            previous: Prior snapshot (or the artefact content when comparing
                against an uploaded document). ``None`` means the artefact has
                never been analysed.
            current: Content being analysed.

        Returns:
            Changes in section order of *current*, removed sections last.
        """
        current_sections = split_sections(current)
        if previous is None:
            return [
                Change(
                    change_type="new_artefact",
                    entity=title,
                    before="",
                    after=_excerpt(text),
                    severity="high",
                    description=f"New section '{title}' introduced with the artefact",
                )
                for title, text in current_sections.items()
            ]

        previous_sections = split_sections(previous)
        previous_by_key = {_normalise(t): (t, body) for t, body in previous_sections.items()}
        seen = set()
        changes: List[Change] = []

        for title, text in current_sections.items():
            key = _normalise(title)
            if key not in previous_by_key:
                changes.append(self._section_added(title, text))
                continue
            seen.add(key)
            _, old_text = previous_by_key[key]
            if old_text != text:
                changes.extend(self._diff_section(title, old_text, text))

        for key, (title, old_text) in previous_by_key.items():
            if key not in seen:
                changes.append(self._section_removed(title, old_text))

        return changes

    # ------------------------------------------------------------------
    # Section level
    # ------------------------------------------------------------------

    def _section_added(self, title: str, text: str) -> Change:
        change_type = _classify(title, text, default="section_added", added=True)
        return Change(
            change_type=change_type,
            entity=title,
            before="",
            after=_excerpt(text),
            severity="medium",
            description=f"Section '{title}' added",
        )

    def _section_removed(self, title: str, text: str) -> Change:
        committed = bool(_REQUIREMENT_RE.search(text))
        return Change(
            change_type=_classify(title, text, default="section_removed"),
            entity=title,
            before=_excerpt(text),
            after="",
            severity="high" if committed else "medium",
            description=(
                f"Section '{title}' removed, including committed requirements"
                if committed else f"Section '{title}' removed"
            ),
        )

    # ------------------------------------------------------------------
    # Block level
    # ------------------------------------------------------------------

    def _diff_section(self, title: str, old_text: str, new_text: str) -> List[Change]:
        old_blocks = _blocks(old_text)
        new_blocks = _blocks(new_text)
        matcher = difflib.SequenceMatcher(a=old_blocks, b=new_blocks, autojunk=False)
        changes: List[Change] = []
        for tag, i1, i2, j1, j2 in matcher.get_opcodes():
            if tag == "equal":
                continue
            before = "\n".join(old_blocks[i1:i2])
            after = "\n".join(new_blocks[j1:j2])
            if tag == "delete":
                changes.append(self._block_removed(title, before))
            elif tag == "insert":
                changes.append(self._block_added(title, after))
            else:
                changes.append(self._block_modified(title, before, after))
        return changes

    def _block_added(self, title: str, after: str) -> Change:
        committed = bool(_REQUIREMENT_RE.search(after))
        return Change(
            change_type=_classify(title, after, default="content_update", added=True),
            entity=title,
            before="",
            after=_excerpt(after),
            severity="medium" if committed else "low",
            description=(
                f"New requirement added to '{title}'" if committed
                else f"Content added to '{title}'"
            ),
        )

    def _block_removed(self, title: str, before: str) -> Change:
        committed = bool(_REQUIREMENT_RE.search(before))
        return Change(
            change_type=_classify(title, before, default="content_update"),
            entity=title,
            before=_excerpt(before),
            after="",
            severity="high" if committed else "medium",
            description=(
                f"Committed requirement removed from '{title}'" if committed
                else f"Content removed from '{title}'"
            ),
        )

    def _block_modified(self, title: str, before: str, after: str) -> Change:
        ratio = difflib.SequenceMatcher(a=before, b=after, autojunk=False).ratio()
        dropped_requirement = bool(_REQUIREMENT_RE.search(before)) and not _REQUIREMENT_RE.search(after)
        numbers_changed = _NUMBER_RE.findall(before) != _NUMBER_RE.findall(after)

        if dropped_requirement:
            severity, description = "high", f"Requirement in '{title}' was relaxed or dropped"
        elif numbers_changed:
            severity, description = "medium", f"Values changed in '{title}'"
        elif ratio >= WORDING_RATIO:
            severity, description = "low", f"Wording edited in '{title}'"
        else:
            severity, description = "medium", f"Content rewritten in '{title}'"

        return Change(
            change_type=_classify(title, f"{before}\n{after}", default="content_update"),
            entity=title,
            before=_excerpt(before),
            after=_excerpt(after),
            severity=severity,
            description=description,
        )


# ----------------------------------------------------------------------
# Content splitting helpers
# ----------------------------------------------------------------------

def split_sections(content: Any) -> Dict[str, str]:
    """Top-level sections of *content* as ``{title: text}`` in document order."""
    if content is None:
        return {}
    if isinstance(content, str):
        parsed = _maybe_json(content)
        if parsed is not None:
            return split_sections(parsed)
        return _markdown_sections(content)
    if isinstance(content, dict):
        rendered = {str(key): _render(value) for key, value in content.items()}
        return {key: text for key, text in rendered.items() if text.strip()}
    if isinstance(content, list):
        sections: Dict[str, str] = {}
        for index, value in enumerate(content, start=1):
            title = f"Item {index}"
            if isinstance(value, dict):
                title = str(value.get("title") or value.get("name") or title)
            if title in sections:
                title = f"{title} ({index})"
            sections[title] = _render(value)
        return sections
    return {UNTITLED_SECTION: str(content)}


def _markdown_sections(text: str) -> Dict[str, str]:
    sections: Dict[str, List[str]] = {}
    title = UNTITLED_SECTION
    for line in text.splitlines():
        match = _HEADING_RE.match(line)
        if match:
            title = match.group(1).strip()
            sections.setdefault(title, [])
            continue
        sections.setdefault(title, []).append(line)
    return {
        t: "\n".join(lines).strip()
        for t, lines in sections.items()
        if "\n".join(lines).strip() or t != UNTITLED_SECTION
    }


def _maybe_json(text: str) -> Optional[Any]:
    stripped = text.strip()
    if not stripped or stripped[0] not in "{[":
        return None
    try:
        return json.loads(stripped)
    except json.JSONDecodeError:
        return None


def _render(value: Any) -> str:
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, dict):
        return "\n".join(f"{k}: {_render(v)}" for k, v in value.items())
    if isinstance(value, list):
        return "\n".join(f"- {_render(v)}" for v in value)
    if value is None:
        return ""
    return json.dumps(value)


def _blocks(text: str) -> List[str]:
    return [line.strip() for line in text.splitlines() if line.strip()]


def _normalise(title: str) -> str:
    return " ".join(title.lower().split())


def _classify(title: str, text: str, default: str, added: bool = False) -> str:
    for haystack in (title.lower(), text.lower()):
        for change_type, keywords in _CHANGE_TYPE_RULES:
            if any(k in haystack for k in keywords):
                if change_type == "data_field":
                    return "data_field_added" if added else "data_field_modified"
                return change_type
    return default


def _excerpt(text: str) -> str:
    if len(text) <= _MAX_EXCERPT:
        return text
    return text[:_MAX_EXCERPT] + "…"
