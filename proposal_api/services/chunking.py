from __future__ import annotations

from typing import List, Sequence

DEFAULT_WORDS_PER_CHUNK = 500
DEFAULT_SECTION = "General"


def chunk_text(text: str, words_per_chunk: int = DEFAULT_WORDS_PER_CHUNK) -> List[str]:
    if words_per_chunk < 1:
        raise ValueError("words_per_chunk must be at least 1")
    words = text.split()
    chunks: List[str] = []
    for start in range(0, len(words), words_per_chunk):
        chunk = " ".join(words[start : start + words_per_chunk])
        if chunk.strip():
            chunks.append(chunk)
    return chunks


def section_for_chunks(chunks: Sequence[str], sections: Sequence[str]) -> List[str]:
    """Label each chunk with the last section heading seen up to and including it."""
    normalized = [(" ".join(section.split()), section) for section in sections if section.strip()]
    labels: List[str] = []
    current = DEFAULT_SECTION
    for chunk in chunks:
        last_hit = -1
        for needle, section in normalized:
            position = chunk.rfind(needle)
            if position > last_hit:
                last_hit = position
                current = section
        labels.append(current)
    return labels
