"""
Buffering for the Firehose writer.

Records are encoded on put(), appended to the Accumulator, and split into
delivery-sized chunks when the buffer is drained.
"""

from .accumulator import Accumulator
from .chunks import Chunk, split_into_chunks
from .encoder import encode_record

__all__ = [
    "Accumulator",
    "Chunk",
    "encode_record",
    "split_into_chunks",
]
