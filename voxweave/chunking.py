from __future__ import annotations

import re
from typing import List

from loguru import logger

# A unit is a run of ordinary characters plus any terminators that follow it.
# A leading run of bare terminators forms its own unit so nothing is dropped.
_SENTENCE_PATTERN = re.compile(r"[^.!?\n]+[.!?\n]*|[.!?\n]+")


def split_sentences(text: str) -> List[str]:
    """Split text after ``.``, ``!``, ``?`` or newline, keeping terminators attached."""
    units = _SENTENCE_PATTERN.findall(text)
    return units if units else [text]


def chunk_text(text: str, max_len: int) -> List[str]:
    """Greedily pack sentence units into chunks of at most ``max_len`` characters.

    A sentence longer than ``max_len`` is never cut; it becomes an oversized
    chunk of its own.
    """
    if max_len <= 0:
        raise ValueError(f"max_len must be a positive integer, got {max_len}")

    chunks: List[str] = []
    current = ""
    for unit in split_sentences(text):
        if current and len(current + unit) > max_len:
            flushed = current.strip()
            if flushed:
                chunks.append(flushed)
            current = unit
        else:
            current += unit
    tail = current.strip()
    if tail:
        chunks.append(tail)

    oversized = sum(1 for chunk in chunks if len(chunk) > max_len)
    if oversized:
        logger.debug(
            "chunking.oversized count={count} max_len={max_len}",
            count=oversized,
            max_len=max_len,
        )
    return chunks
