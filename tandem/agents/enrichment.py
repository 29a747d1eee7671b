"""
Message Enrichment for Tandem.

Before planning, a user message may be expanded with workspace content:
- a message naming a specific source file ("explain utils.py") gets that
  file's content inlined
- a code review request ("review code", "how does ...") gets a bounded
  bundle of project source files inlined

A named file wins over the review bundle. History keeps the user's original
text; only the gateway request carries the expanded one.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional

from tandem.core.prompts import FILE_ENRICHMENT_PROMPT, REVIEW_ENRICHMENT_PROMPT
from tandem.core.workspace import (
    REVIEW_BUNDLE_MAX_CHARS,
    REVIEW_FILE_MAX_CHARS,
    WorkspaceInspector,
)

logger = logging.getLogger(__name__)


CODE_REVIEW_PATTERN = re.compile(
    r"\b(check code|review code|explain code|understand|analyze|what does|how does|"
    r"code review|look at code|check repo|check folder|explain class|explain this)\b"
)

FILE_MENTION_PATTERN = re.compile(
    r"(?:explain|check|review|look at|open)\s+(\S+\.(?:py|js|jsx|ts|tsx|go|rs|java|"
    r"cls|trigger|cmp|html|css))\b",
    re.IGNORECASE,
)


def is_code_review_request(message: str) -> bool:
    return CODE_REVIEW_PATTERN.search(message.lower()) is not None


def find_file_mention(message: str) -> Optional[str]:
    """The file name a message asks about, e.g. "check src/app.ts" -> "src/app.ts"."""
    match = FILE_MENTION_PATTERN.search(message)
    return match.group(1) if match else None


@dataclass
class Enrichment:
    """Expanded gateway message plus what was inlined (for status events)."""

    message: str
    kind: Optional[str] = None  # "file" | "review"
    source: Optional[str] = None


def enrich_message(
    message: str,
    inspector: WorkspaceInspector,
    max_total: int = REVIEW_BUNDLE_MAX_CHARS,
    max_per_file: int = REVIEW_FILE_MAX_CHARS
) -> Enrichment:
    """
    Expand a user message with workspace content when it asks about code.

    Args:
        message: The user's text.
        inspector: Workspace Inspector of the session.
        max_total: Review bundle cap (characters).
        max_per_file: Per-file cap inside the bundle (characters).

    Returns:
        Enrichment whose ``message`` is the text to send (the original
        message when nothing applies).
    """
    mentioned = find_file_mention(message)
    if mentioned:
        path = inspector.find_file(mentioned)
        if path is not None:
            try:
                content = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                logger.warning(f"Cannot inline {path}: {e}")
            else:
                logger.info(f"Inlining mentioned file {path} ({len(content)} chars)")
                return Enrichment(
                    message=FILE_ENRICHMENT_PROMPT.format(
                        message=message, path=mentioned, content=content
                    ),
                    kind="file",
                    source=mentioned,
                )

    if is_code_review_request(message):
        sources = inspector.collect_sources(max_total=max_total, max_per_file=max_per_file)
        if sources:
            logger.info(f"Inlining review bundle ({len(sources)} chars)")
            return Enrichment(
                message=REVIEW_ENRICHMENT_PROMPT.format(message=message, sources=sources),
                kind="review",
            )

    return Enrichment(message=message)


__all__ = [
    "Enrichment",
    "enrich_message",
    "is_code_review_request",
    "find_file_mention",
]
