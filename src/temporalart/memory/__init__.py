"""Working memory, list-chunk masking field and sequence categories."""

from temporalart.memory.masking_field import (
    ChunkCategory,
    ChunkingResult,
    ChunkingStatistics,
    ListChunk,
    MaskingField,
)
from temporalart.memory.temporal_art import (
    SequenceCategory,
    SequenceResult,
    TemporalART,
    TemporalARTStatistics,
)
from temporalart.memory.working_memory import (
    MemoryItem,
    TemporalPattern,
    WorkingMemory,
    WorkingMemoryResult,
)

__all__ = [
    "WorkingMemory",
    "WorkingMemoryResult",
    "MemoryItem",
    "TemporalPattern",
    "MaskingField",
    "ListChunk",
    "ChunkCategory",
    "ChunkingResult",
    "ChunkingStatistics",
    "TemporalART",
    "SequenceCategory",
    "SequenceResult",
    "TemporalARTStatistics",
]
