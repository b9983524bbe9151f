"""
Sequence learning on top of working memory and the masking field.

A list is stored in STORE 2 working memory, parsed into list chunks by the
masking field, and coded as a whole by a sequence category. The sequence
code concatenates the stored items in list order, each scaled by its gated
activity relative to the strongest item, so it carries both item identity
and the primacy gradient. Categories are matched the ART way:

    match = |min(I, w)| / |I| >= vigilance  ->  resonance, w <- (1 - beta) w + beta I
                                    else    ->  recruit a new category

Only categories coding lists of the same length compete. With learning
disabled both the sequence categories and the chunk categories are looked
up and left untouched.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from temporalart.dynamics.kernels import match_ratio
from temporalart.errors import InvalidParameterError
from temporalart.memory.masking_field import ChunkingResult, MaskingField
from temporalart.memory.working_memory import WorkingMemory, WorkingMemoryResult
from temporalart.parameters import IntegratorParameters, TemporalARTParameters, TimeScaleParameters

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class SequenceCategory:
    """A learned sequence category; `length` is the number of items it codes."""

    index: int
    length: int
    template: np.ndarray
    uses: int = 1
    created_at: float = 0.0


@dataclass
class SequenceResult:
    """
    Outcome of presenting one sequence.

    Attributes:
        category: Index of the sequence category; -1 if none was found or created
        match: ART match against that category (best rejected match otherwise)
        resonant: True if an existing category was reused
        memory: Working-memory run that stored the sequence
        chunking: Masking-field parse of the stored items
    """

    category: int
    match: float
    resonant: bool
    memory: WorkingMemoryResult
    chunking: ChunkingResult

    @property
    def length(self) -> int:
        return self.memory.n_items


@dataclass(frozen=True)
class TemporalARTStatistics:
    category_count: int
    item_count: int
    chunk_count: int
    chunk_category_count: int
    average_chunk_size: float
    compression_ratio: float


def sequence_code(memory: WorkingMemoryResult) -> np.ndarray:
    """Stored items in list order, each scaled by its share of the peak gated activity."""
    if memory.n_items == 0:
        return np.zeros(0)
    patterns = np.stack([item.pattern for item in memory.items])
    weights = memory.retrieval_weights()
    peak = float(np.max(weights))
    if peak > 0:
        patterns = patterns * (weights / peak)[:, None]
    return patterns.ravel()


class TemporalART:
    """
    Learns and recognises whole item sequences.

    The sequence categories persist across calls, so a list learned earlier
    is still recognised after other lists have been learned.

    Args:
        parameters: Category settings and the parameters of both memories
            (list-learning preset if None)
        integrator_parameters: Step size shared by both memories
        time_scales: Tier ratios shared by both memories
    """

    def __init__(self, parameters: Optional[TemporalARTParameters] = None,
                 integrator_parameters: Optional[IntegratorParameters] = None,
                 time_scales: Optional[TimeScaleParameters] = None):
        self.parameters = parameters or TemporalARTParameters.list_learning_defaults()
        self.working_memory = WorkingMemory(self.parameters.working_memory,
                                            integrator_parameters, time_scales)
        self.masking_field = MaskingField(self.parameters.masking_field,
                                          integrator_parameters, time_scales)
        self.categories: List[SequenceCategory] = []
        self.learning_enabled = True
        self.current_time = 0.0
        self.last_result: Optional[SequenceResult] = None

    def set_learning_enabled(self, enabled: bool):
        self.learning_enabled = bool(enabled)

    def reset(self):
        """Forget every sequence and chunk category and re-enable learning."""
        self.categories = []
        self.masking_field.reset()
        self.learning_enabled = True
        self.current_time = 0.0
        self.last_result = None

    def best_category(self, code: np.ndarray) -> Tuple[Optional[SequenceCategory], float]:
        """Stored category of the same length with the highest match, and that match."""
        best, best_match = None, -1.0
        for category in self.categories:
            if category.template.shape != code.shape:
                continue
            m = match_ratio(code, category.template)
            if m > best_match:
                best, best_match = category, m
        return best, max(best_match, 0.0)

    def _encode(self, patterns: Sequence, learn: bool) -> Tuple[WorkingMemoryResult, ChunkingResult, np.ndarray]:
        if len(patterns) == 0:
            raise InvalidParameterError("patterns", patterns, "at least one item")
        memory = self.working_memory.store_sequence(patterns)
        chunking = self.masking_field.chunk_working_memory(memory, learn=learn)
        return memory, chunking, sequence_code(memory)

    def _learn(self, category: Optional[SequenceCategory], match: float, resonant: bool,
               code: np.ndarray, length: int) -> Tuple[int, float]:
        if resonant:
            beta = self.parameters.learning_rate
            template = (1.0 - beta) * category.template + beta * code
            template.setflags(write=False)
            self.categories[self.categories.index(category)] = SequenceCategory(
                index=category.index, length=length, template=template,
                uses=category.uses + 1, created_at=category.created_at,
            )
            return category.index, match

        if len(self.categories) >= self.parameters.max_categories:
            logger.warning("Sequence category memory full (%d); list of %d items left uncoded",
                           len(self.categories), length)
            return -1, match

        template = np.array(code, dtype=float)
        template.setflags(write=False)
        index = len(self.categories)
        self.categories.append(SequenceCategory(index=index, length=length, template=template,
                                                created_at=self.current_time))
        return index, 1.0

    def process_sequence(self, patterns: Sequence) -> SequenceResult:
        """
        Present a sequence and, while learning is enabled, code it.

        Args:
            patterns: Non-negative item vectors of equal length, in order

        Returns:
            SequenceResult naming the resonant or newly created category
        """
        learn = self.learning_enabled
        memory, chunking, code = self._encode(patterns, learn)
        category, match = self.best_category(code)
        resonant = category is not None and match >= self.parameters.vigilance
        if learn:
            index, match = self._learn(category, match, resonant, code, memory.n_items)
        else:
            index = category.index if resonant else -1

        result = SequenceResult(category=index, match=match, resonant=resonant,
                                memory=memory, chunking=chunking)
        self.current_time += len(patterns) * self.parameters.working_memory.item_duration
        self.last_result = result
        outcome = "resonant" if resonant else ("new" if learn else "unknown")
        logger.info("Sequence of %d items -> category %d (%s, match %.3f)",
                    memory.n_items, index, outcome, match)
        return result

    def recognize_sequence(self, patterns: Sequence) -> SequenceResult:
        """Look a sequence up without changing any category."""
        memory, chunking, code = self._encode(patterns, learn=False)
        category, match = self.best_category(code)
        resonant = category is not None and match >= self.parameters.vigilance
        return SequenceResult(category=category.index if resonant else -1, match=match,
                              resonant=resonant, memory=memory, chunking=chunking)

    def predict_sequence(self, patterns: Sequence) -> int:
        """Index of the category that recognises the sequence, or -1."""
        return self.recognize_sequence(patterns).category

    def statistics(self) -> TemporalARTStatistics:
        """Category counts, plus item and chunk counts of the last processed sequence."""
        items, chunks, average = 0, 0, 0.0
        if self.last_result is not None:
            items = self.last_result.length
            chunks = self.last_result.chunking.statistics.total_chunks
            average = self.last_result.chunking.statistics.average_chunk_size
        return TemporalARTStatistics(
            category_count=len(self.categories),
            item_count=items,
            chunk_count=chunks,
            chunk_category_count=len(self.masking_field.categories),
            average_chunk_size=average,
            compression_ratio=items / chunks if chunks else 1.0,
        )
