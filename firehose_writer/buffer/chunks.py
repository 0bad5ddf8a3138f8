"""Split drained payloads into chunks that fit one delivery call."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence, Tuple


@dataclass(frozen=True)
class Chunk:
    """Records for one delivery call.

    Attributes:
        records: Payloads in buffer order
        size: Sum of payload lengths
    """

    records: Tuple[bytes, ...]
    size: int

    def __len__(self) -> int:
        return len(self.records)


def split_into_chunks(
    records: Sequence[bytes],
    max_chunk_bytes: int,
    max_chunk_records: int,
) -> List[Chunk]:
    """Greedily pack records into chunks, in a single pass.

    A record joins the current chunk if the chunk stays within both limits,
    otherwise it starts a new chunk. A record that alone exceeds
    max_chunk_bytes still gets a chunk of its own.

    The result lists the most recently started chunk first and the first
    chunk filled last.

    Example:
        >>> chunks = split_into_chunks([b"a" * 500, b"a" * 500, b"a"], 1000, 3)
        >>> [chunk.size for chunk in chunks]
        [1, 1000]
    """
    chunks: List[Chunk] = []
    current: List[bytes] = []
    size = 0

    for record in records:
        record_size = len(record)
        size_fits = size + record_size <= max_chunk_bytes
        count_fits = len(current) + 1 <= max_chunk_records

        if current and not (size_fits and count_fits):
            chunks.append(Chunk(records=tuple(current), size=size))
            current = []
            size = 0

        current.append(record)
        size += record_size

    if current:
        chunks.append(Chunk(records=tuple(current), size=size))

    chunks.reverse()
    return chunks
