"""Writes narrative text into the renderer's per-domain text files.

The renderer reads each domain's narrative from a ``<summary>`` block in the
domain's ``_text.qmd`` file. Existing blocks are replaced, a ``<summary/>``
placeholder is expanded, and files without either get a block prepended.
"""

import logging
import os
import re
import tempfile
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

SUMMARY_BLOCK_PATTERN = re.compile(
    r"<summary>\s*.*?\s*</summary>", re.DOTALL | re.IGNORECASE
)
SUMMARY_PLACEHOLDER_PATTERN = re.compile(r"<summary\s*/>", re.IGNORECASE)


@dataclass
class SummaryMetadata:
    """Provenance rendered as an HTML comment above the narrative."""

    model_id: str = "unknown"
    quality_score: Optional[int] = None
    timestamp: datetime = field(default_factory=datetime.now)

    def as_comment(self) -> str:
        quality = self.quality_score if self.quality_score is not None else "N/A"
        return (
            f"<!-- Generated: {self.timestamp.strftime('%Y-%m-%d %H:%M:%S')} | "
            f"Model: {self.model_id} | Quality: {quality} -->"
        )


def render_summary_block(
    existing: str, text: str, metadata: Optional[SummaryMetadata] = None
) -> str:
    """Return ``existing`` with its summary block set to ``text``.

    Args:
        existing: Current file content (may be empty)
        text: Narrative text
        metadata: Optional provenance comment

    Returns:
        New file content
    """
    content = text.strip()
    if metadata is not None:
        content = f"{metadata.as_comment()}\n\n{content}"
    block = f"<summary>\n\n{content}\n\n</summary>"

    if SUMMARY_BLOCK_PATTERN.search(existing):
        return SUMMARY_BLOCK_PATTERN.sub(lambda _: block, existing, count=1)
    if SUMMARY_PLACEHOLDER_PATTERN.search(existing):
        return SUMMARY_PLACEHOLDER_PATTERN.sub(lambda _: block, existing, count=1)
    if not existing.strip():
        return f"{block}\n"
    return f"{block}\n\n{existing}"


def inject_summary_block(
    path: str | Path, text: str, metadata: Optional[SummaryMetadata] = None
) -> Path:
    """Write a narrative into a renderer text file.

    The file is created if missing and replaced atomically.

    Args:
        path: Target ``_text.qmd`` file
        text: Narrative text
        metadata: Optional provenance comment

    Returns:
        Path of the written file
    """
    path = Path(path)
    existing = path.read_text(encoding="utf-8") if path.exists() else ""
    updated = render_summary_block(existing, text, metadata)

    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(updated)
        os.replace(tmp_name, path)
    except OSError:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise

    logger.info(f"Wrote summary block to {path}")
    return path
