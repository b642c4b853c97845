# supportdesk/services/chunker.py
"""Split long text into overlapping fixed-size windows for embedding."""
from typing import List

from supportdesk.utils.exceptions import ConfigurationError


def chunk_text(text: str, chunk_size: int = 1000, overlap: int = 200) -> List[str]:
    """
    Sliding-window chunking.

    Windows of `chunk_size` characters advance by `chunk_size - overlap`.
    When the text left uncovered after a window is shorter than
    `chunk_size / 2`, it is appended to that window instead of becoming a
    tiny trailing chunk, so the last chunk may be up to 1.5x `chunk_size`.

    Removing the first `overlap` characters of every chunk after the first
    and concatenating the result gives back `text`.

    Raises:
        ConfigurationError: chunk_size <= 0, overlap < 0 or overlap >= chunk_size
    """
    if chunk_size <= 0:
        raise ConfigurationError(f"chunk_size must be positive, got {chunk_size}")
    if overlap < 0 or overlap >= chunk_size:
        raise ConfigurationError(
            f"overlap must be in [0, chunk_size), got overlap={overlap} chunk_size={chunk_size}"
        )

    if len(text) <= chunk_size:
        return [text]

    step = chunk_size - overlap
    chunks: List[str] = []
    start = 0

    while True:
        end = start + chunk_size
        tail = len(text) - end
        if tail <= 0 or tail < chunk_size / 2:
            chunks.append(text[start:])
            return chunks

        chunks.append(text[start:end])
        start += step
