"""Shared text utility functions.

Provides common text processing functions used by the providers, the
output validator and the narrative cache.
"""

import math
import re

THINK_BLOCK_PATTERN = re.compile(r"<think>.*?</think>", re.DOTALL | re.IGNORECASE)
UNCLOSED_THINK_PATTERN = re.compile(r"<think>.*\Z", re.DOTALL | re.IGNORECASE)


def strip_think_blocks(text: str) -> str:
    """Strip reasoning blocks from model output.

    Reasoning models such as qwen3 wrap their chain of thought in
    ``<think>...</think>`` before the answer. An unclosed block at the end
    of the text (output cut off mid-thought) is removed as well.

    Args:
        text: Raw model output

    Returns:
        Text with reasoning blocks removed and surrounding whitespace trimmed
    """
    if not text:
        return ""

    cleaned = THINK_BLOCK_PATTERN.sub("", text)
    cleaned = UNCLOSED_THINK_PATTERN.sub("", cleaned)
    return cleaned.strip()


def estimate_tokens(text: str) -> int:
    """Estimate the token count of a text.

    Note:
        This is a rough approximation (1 token ≈ 4 characters), used when
        the backend does not report usage.
    """
    if not text:
        return 0
    return math.ceil(len(text) / 4)
