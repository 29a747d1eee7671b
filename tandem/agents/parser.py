"""
Action Parser for Tandem.

Extracts structured actions from raw model text. Three fenced block forms
are recognised, distinguished by the tag after the opening fence:

    ```run              ```read             ```write:path/to/file
    npm test            src/app.ts          file content
    ```                 ```                 ```

This is a best-effort pattern scanner, not a grammar:
- Each block kind is scanned independently (earliest start, non-overlapping,
  lazy up to the next closing fence).
- Actions are returned in order of appearance, after one leading Text entry
  holding the response with every matched span removed.
- Unterminated fences do not match and stay in the Text.
- Spans of different kinds can overlap (e.g. a run fence closed by the opening
  fence of a read block). That is a ParseAmbiguity: it is logged, never raised,
  and the residual Text may then hold duplicated or fragmentary text.
"""

import logging
import re
from dataclasses import dataclass
from typing import List, Tuple

from tandem.agents.state import ParsedAction, ReadFile, RunCommand, Text, WriteFile

logger = logging.getLogger(__name__)


# ============================================================================
# BLOCK PATTERNS
# ============================================================================

RUN_BLOCK = re.compile(r"```run\n([\s\S]*?)```")
READ_BLOCK = re.compile(r"```read\n([\s\S]*?)```")
WRITE_BLOCK = re.compile(r"```write:([^\n]*)\n([\s\S]*?)```")

# Residual text is built by removing spans kind by kind, in this order
_REMOVAL_ORDER = (RUN_BLOCK, READ_BLOCK, WRITE_BLOCK)


@dataclass(frozen=True)
class ParseAmbiguity:
    """Two matched blocks of different kinds whose spans overlap."""

    first_kind: str
    first_span: Tuple[int, int]
    second_kind: str
    second_span: Tuple[int, int]

    def __str__(self) -> str:
        return (
            f"{self.first_kind} block at {self.first_span} overlaps "
            f"{self.second_kind} block at {self.second_span}"
        )


# ============================================================================
# SCANNING
# ============================================================================

def _scan(text: str) -> List[Tuple[int, int, ParsedAction]]:
    """Every matched block as (start, end, action), in order of appearance."""
    found: List[Tuple[int, int, ParsedAction]] = []

    for match in RUN_BLOCK.finditer(text):
        command = match.group(1).strip()
        if command:
            found.append((match.start(), match.end(), RunCommand(command=command)))

    for match in READ_BLOCK.finditer(text):
        path = match.group(1).strip()
        if path:
            found.append((match.start(), match.end(), ReadFile(path=path)))

    for match in WRITE_BLOCK.finditer(text):
        path = match.group(1).strip()
        if path:
            found.append((
                match.start(),
                match.end(),
                WriteFile(path=path, content=match.group(2)),
            ))

    found.sort(key=lambda item: item[0])
    return found


def find_ambiguities(text: str) -> List[ParseAmbiguity]:
    """
    Report overlapping spans between blocks of different kinds.

    Args:
        text: Raw model response.

    Returns:
        One ParseAmbiguity per overlapping pair (empty when unambiguous).
    """
    spans = _scan(text)
    ambiguities: List[ParseAmbiguity] = []

    for i, (start_a, end_a, action_a) in enumerate(spans):
        for start_b, end_b, action_b in spans[i + 1:]:
            if start_b >= end_a:
                break
            if action_a.kind != action_b.kind:
                ambiguities.append(ParseAmbiguity(
                    first_kind=action_a.kind,
                    first_span=(start_a, end_a),
                    second_kind=action_b.kind,
                    second_span=(start_b, end_b),
                ))

    return ambiguities


def residual_text(text: str) -> str:
    """The response with every matched block removed, trimmed."""
    for pattern in _REMOVAL_ORDER:
        text = pattern.sub("", text)
    return text.strip()


# ============================================================================
# PARSE
# ============================================================================

def parse(response_text: str) -> List[ParsedAction]:
    """
    Decompose a model response into ordered actions.

    Args:
        response_text: Raw text returned by the Model Gateway.

    Returns:
        [Text(residual)] (omitted when the residual is empty) followed by the
        RunCommand/ReadFile/WriteFile actions in order of appearance.
        Empty or whitespace-only input yields [].

    Example:
        >>> parse("List files:\\n```run\\nls\\n```")
        [Text(content='List files:'), RunCommand(command='ls')]
    """
    if not response_text or not response_text.strip():
        return []

    blocks = _scan(response_text)
    for ambiguity in find_ambiguities(response_text):
        logger.warning(f"Ambiguous action blocks: {ambiguity}")

    # Blank blocks are not actions but are still removed from the text
    actions: List[ParsedAction] = []
    residual = residual_text(response_text)
    if residual:
        actions.append(Text(content=residual))

    actions.extend(action for _, _, action in blocks)
    if not actions:
        return [Text(content=response_text.strip())]

    logger.debug(
        f"Parsed {len(blocks)} action blocks "
        f"(residual text: {len(residual)} chars)"
    )
    return actions


__all__ = [
    "parse",
    "find_ambiguities",
    "residual_text",
    "ParseAmbiguity",
    "RUN_BLOCK",
    "READ_BLOCK",
    "WRITE_BLOCK",
]
